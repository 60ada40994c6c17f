"""Tests for CLI interface."""

import json
import os

from click.testing import CliRunner

from protolite.cli import cli

FILE_DIR = os.path.dirname(os.path.realpath(__file__))
DOG_PROTO = f"{FILE_DIR}/fixtures/dog.proto"


def get_dog(_request):
    return {"name": "Spot", "age": 5}


def describe_info_command():
    def prints_messages_and_services(expect):
        result = CliRunner().invoke(cli, ["info", "-i", DOG_PROTO])
        expect(result.exit_code) == 0
        expect("DogQuery" in result.output) == True
        expect("DogService" in result.output) == True
        expect("FindDog" in result.output) == True

    def prints_json(expect):
        result = CliRunner().invoke(cli, ["info", "-i", DOG_PROTO, "--json"])
        expect(result.exit_code) == 0
        data = json.loads(result.output)
        expect([f["name"] for f in data["messages"]["Dog"]["fields"]]) == ["name", "age"]
        expect(data["services"]["DogService"]["methods"][0]["name"]) == "GetDog"

    def fails_on_invalid_schema(expect, tmp_path):
        broken = tmp_path / "broken.proto"
        broken.write_text("message Dog {\n  Breed breed = 1;\n}\n")
        result = CliRunner().invoke(cli, ["info", "-i", str(broken)])
        expect(result.exit_code) == 1
        expect("Breed" in result.output) == True


def describe_call_command():
    def prints_response_as_json(expect, serve, make_server):
        config = serve(make_server(GetDog=get_dog))
        result = CliRunner().invoke(
            cli, ["call", "-i", DOG_PROTO, "--port", str(config.port), "DogService.GetDog"]
        )
        expect(result.exit_code) == 0
        expect(json.loads(result.output)) == {"name": "Spot", "age": 5}

    def sends_request_data(expect, serve, make_server):
        def find_dog(request):
            return {"name": request["name"], "age": 3}

        config = serve(make_server(FindDog=find_dog))
        result = CliRunner().invoke(
            cli,
            ["call", "-i", DOG_PROTO, "-p", str(config.port), "-d", '{"name": "Rex"}', "DogService.FindDog"],
        )
        expect(result.exit_code) == 0
        expect(json.loads(result.output)) == {"name": "Rex", "age": 3}

    def fails_without_service_name(expect):
        result = CliRunner().invoke(cli, ["call", "-i", DOG_PROTO, "GetDog"])
        expect(result.exit_code) == 1
        expect("Service.Method" in result.output) == True

    def fails_on_invalid_json(expect):
        result = CliRunner().invoke(cli, ["call", "-i", DOG_PROTO, "-d", "{", "DogService.GetDog"])
        expect(result.exit_code) == 1
        expect("Invalid request JSON" in result.output) == True

    def reports_remote_errors(expect, serve, make_server):
        config = serve(make_server(GetDog=get_dog))
        result = CliRunner().invoke(
            cli, ["call", "-i", DOG_PROTO, "--port", str(config.port), "DogService.Bark"]
        )
        expect(result.exit_code) == 1
        expect("UnknownMethodError" in result.output) == True
