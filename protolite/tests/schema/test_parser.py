"""Tests for the schema parser."""

import json

import pytest

from protolite.errors import SchemaSyntaxError, UnknownTypeError
from protolite.schema import parse


def describe_parse_message():
    def parses_dog_fixture(expect, dog_schema):
        dog = dog_schema.message("Dog")
        expect(dog.name) == "Dog"
        expect([f.name for f in dog.fields]) == ["name", "age"]
        expect([f.number for f in dog.fields]) == [1, 2]
        expect([f.type for f in dog.fields]) == ["string", "int32"]

    def parses_empty_message(expect):
        schema = parse("message Empty {}")
        expect(schema.message("Empty").fields) == []

    def keeps_declaration_order_not_number_order(expect):
        schema = parse("message Point { int32 y = 2; int32 x = 1; }")
        expect([f.name for f in schema.message("Point").fields]) == ["y", "x"]

    def parses_repeated_fields(expect):
        schema = parse("message Tags { repeated string values = 1; bool strict = 2; }")
        values, strict = schema.message("Tags").fields
        expect(values.repeated) == True
        expect(strict.repeated) == False

    def parses_all_primitive_types(expect):
        schema = parse(
            """
            message AllTypes {
                bool a = 1;
                int32 b = 2;
                int64 c = 3;
                uint32 d = 4;
                uint64 e = 5;
                string f = 6;
                bytes g = 7;
            }
            """
        )
        expect(len(schema.message("AllTypes").fields)) == 7

    def allows_keywords_as_field_names(expect):
        schema = parse("message Note { string message = 1; string service = 2; }")
        expect([f.name for f in schema.message("Note").fields]) == ["message", "service"]

    def ignores_comments(expect):
        schema = parse(
            """
            // leading comment
            message Dog {
                string name = 1; // trailing comment
                /* block
                   comment */
                int32 age = 2;
            }
            """
        )
        expect(len(schema.message("Dog").fields)) == 2


def describe_type_resolution():
    def resolves_forward_references(expect):
        schema = parse(
            """
            message Owner { Dog pet = 1; }
            message Dog { string name = 1; }
            """
        )
        pet = schema.message("Owner").fields[0]
        expect(pet.is_message) == True
        expect(pet.message is schema.message("Dog")) == True

    def resolves_recursive_messages(expect):
        schema = parse("message Node { string label = 1; Node next = 2; }")
        node = schema.message("Node")
        expect(node.fields[1].message is node) == True

    def resolves_package_qualified_names(expect):
        schema = parse(
            """
            package pets.v1;
            message Dog { string name = 1; }
            message Owner { pets.v1.Dog pet = 1; }
            """
        )
        expect(schema.package) == "pets.v1"
        expect(schema.message("Owner").fields[0].type) == "Dog"

    def provides_builtin_empty(expect):
        schema = parse(
            """
            message Dog { string name = 1; }
            service DogService { rpc GetDog (Empty) returns (Dog); }
            """
        )
        method = schema.service("DogService").method("GetDog")
        expect(method.request.name) == "Empty"
        expect(method.request.fields) == []
        expect("Empty" in schema.messages) == True

    def prefers_declared_empty_over_builtin(expect):
        schema = parse(
            """
            message Empty { string note = 1; }
            message Holder { Empty e = 1; google.protobuf.Empty g = 2; }
            """
        )
        empty = schema.message("Empty")
        expect([f.name for f in empty.fields]) == ["note"]
        holder = schema.message("Holder")
        expect(holder.fields[0].message is empty) == True
        expect(holder.fields[1].message is empty) == True

    def rejects_unknown_field_type(expect):
        with pytest.raises(UnknownTypeError) as exc:
            parse("message Dog { Breed breed = 1; }")
        expect(exc.value.message_name) == "Dog"
        expect(exc.value.field_name) == "breed"
        expect(exc.value.type_name) == "Breed"

    def rejects_unknown_method_type(expect):
        with pytest.raises(UnknownTypeError) as exc:
            parse("service DogService { rpc GetDog (Empty) returns (Dog); }")
        expect(exc.value.message_name) == "DogService"
        expect(exc.value.field_name) == "GetDog"
        expect(exc.value.type_name) == "Dog"


def describe_parse_service():
    def parses_methods_in_order(expect, dog_schema):
        service = dog_schema.service("DogService")
        expect([m.name for m in service.methods]) == ["GetDog", "FindDog", "Bark"]

    def parses_method_signature(expect, dog_schema):
        method = dog_schema.service("DogService").method("FindDog")
        expect(method.request_type) == "DogQuery"
        expect(method.response_type) == "Dog"
        expect(method.response is dog_schema.message("Dog")) == True

    def dumps_schema_to_json(expect, dog_schema):
        data = json.loads(dog_schema.to_json())
        expect(sorted(data["messages"])) == ["Dog", "DogQuery", "Empty"]
        name_field = data["messages"]["Dog"]["fields"][0]
        expect(name_field["name"]) == "name"
        expect(name_field["number"]) == 1
        expect("message" in name_field) == False
        expect(data["services"]["DogService"]["methods"][0]["request_type"]) == "Empty"


def describe_validation():
    def rejects_duplicate_field_number(expect):
        with pytest.raises(SchemaSyntaxError) as exc:
            parse("message Dog {\n  string name = 1;\n  int32 age = 1;\n}")
        expect(exc.value.line) == 3
        expect("duplicate field number" in exc.value.message) == True

    def rejects_duplicate_field_name(expect):
        with pytest.raises(SchemaSyntaxError) as exc:
            parse("message Dog { string name = 1; int32 name = 2; }")
        expect("duplicate field name" in exc.value.message) == True

    def rejects_field_number_zero(expect):
        with pytest.raises(SchemaSyntaxError) as exc:
            parse("message Dog { string name = 0; }")
        expect("out of range" in exc.value.message) == True

    def rejects_duplicate_message(expect):
        with pytest.raises(SchemaSyntaxError):
            parse("message Dog {}\nmessage Dog {}")

    def rejects_duplicate_method(expect):
        with pytest.raises(SchemaSyntaxError) as exc:
            parse(
                "message Empty {}\n"
                "service S {\n"
                "  rpc Ping (Empty) returns (Empty);\n"
                "  rpc Ping (Empty) returns (Empty);\n"
                "}"
            )
        expect(exc.value.line) == 4

    def rejects_unsupported_syntax(expect):
        with pytest.raises(SchemaSyntaxError):
            parse('syntax = "proto2";\nmessage Dog {}')


def describe_parse_errors():
    def reports_position_of_unexpected_token(expect):
        with pytest.raises(SchemaSyntaxError) as exc:
            parse("message Dog {\n  string name = 1;\n  int32 age 2;\n}")
        expect(exc.value.line) == 3
        expect(exc.value.column) == 13

    def reports_unexpected_character(expect):
        with pytest.raises(SchemaSyntaxError) as exc:
            parse("message Dog { string name = 1; $ }")
        expect(exc.value.line) == 1
        expect("unexpected character" in exc.value.message) == True

    def reports_unclosed_brace(expect):
        with pytest.raises(SchemaSyntaxError) as exc:
            parse("message Dog {\n  string name = 1;\n")
        expect("end of input" in exc.value.message) == True

    def rejects_method_without_returns(expect):
        with pytest.raises(SchemaSyntaxError):
            parse("message Empty {}\nservice S { rpc Ping (Empty); }")

    def rejects_free_text(expect):
        with pytest.raises(SchemaSyntaxError):
            parse("this is not valid syntax")
