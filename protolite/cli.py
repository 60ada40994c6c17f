"""Command-line interface for inspecting schemas and calling services."""

from __future__ import annotations

import json
import logging
import sys
from typing import TYPE_CHECKING, Any

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from protolite.config import DEFAULT_HOST, DEFAULT_PORT, ClientConfig
from protolite.errors import ProtoliteError
from protolite.rpc import Client
from protolite.schema import parse

if TYPE_CHECKING:
    from protolite.schema.types import SchemaModel


def _load_schema(input_file: str) -> SchemaModel:
    with open(input_file, encoding="utf-8") as f:
        text = f.read()

    try:
        return parse(text)
    except ProtoliteError as e:
        click.echo(f"{input_file}: {e}", err=True)
        sys.exit(1)


@click.group()
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """protolite schema and RPC tool."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        )


@cli.command()
@click.option("--input", "-i", "input_file", required=True, help="Input schema file")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def info(input_file: str, output_json: bool) -> None:
    """Display the messages and services of a schema."""
    schema = _load_schema(input_file)

    if output_json:
        print(json.dumps(schema.to_dict(), indent=2))
    else:
        _output_plain(schema)


def _field_type(type_name: str, repeated: bool) -> str:
    return f"repeated {type_name}" if repeated else type_name


def _output_plain(schema: SchemaModel) -> None:
    """Output schema info using rich text formatting."""
    console = Console()

    if schema.package:
        console.print(f"[bold cyan]Package[/bold cyan] {schema.package}")
        console.print()

    console.print("[bold cyan]Messages[/bold cyan]")
    message_table = Table(show_header=True, box=None, padding=(0, 2, 0, 0))
    message_table.add_column("Message", style="white")
    message_table.add_column("#", style="yellow", justify="right")
    message_table.add_column("Field", style="white")
    message_table.add_column("Type", style="dim")

    for message in schema.messages.values():
        if not message.fields:
            message_table.add_row(message.name, "", "", "(empty)")
        for index, f in enumerate(message.fields):
            message_table.add_row(
                message.name if index == 0 else "",
                str(f.number),
                f.name,
                _field_type(f.type, f.repeated),
            )

    console.print(message_table)
    console.print()

    console.print("[bold cyan]Services[/bold cyan]")
    service_table = Table(show_header=True, box=None, padding=(0, 2, 0, 0))
    service_table.add_column("Service", style="white")
    service_table.add_column("Method", style="green")
    service_table.add_column("Request", style="dim")
    service_table.add_column("Response", style="dim")

    for service in schema.services.values():
        for index, method in enumerate(service.methods):
            service_table.add_row(
                service.name if index == 0 else "",
                method.name,
                method.request_type,
                method.response_type,
            )

    console.print(service_table)


def _to_json(value: Any) -> Any:
    if isinstance(value, bytes):
        return value.hex()
    if isinstance(value, dict):
        return {k: _to_json(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_json(v) for v in value]
    return value


@cli.command()
@click.option("--input", "-i", "input_file", required=True, help="Input schema file")
@click.option("--host", default=DEFAULT_HOST, show_default=True, help="Server host")
@click.option("--port", "-p", default=DEFAULT_PORT, show_default=True, help="Server port")
@click.option("--timeout", default=10.0, show_default=True, help="Call timeout in seconds")
@click.option("--data", "-d", default="{}", help="Request message as JSON")
@click.argument("method")
def call(input_file: str, host: str, port: int, timeout: float, data: str, method: str) -> None:
    """Call METHOD (Service.Method) and print the response as JSON."""
    schema = _load_schema(input_file)

    service_name, sep, method_name = method.rpartition(".")
    if not sep:
        click.echo(f"Method must be given as Service.Method, got {method!r}", err=True)
        sys.exit(1)
    if schema.package and service_name.startswith(schema.package + "."):
        service_name = service_name[len(schema.package) + 1 :]

    try:
        request = json.loads(data)
    except json.JSONDecodeError as e:
        click.echo(f"Invalid request JSON: {e}", err=True)
        sys.exit(1)

    try:
        client = Client(schema, service_name, config=ClientConfig(host=host, port=port, timeout=timeout))
        response = client.call(method_name, request)
    except ProtoliteError as e:
        click.echo(f"{type(e).__name__}: {e}", err=True)
        sys.exit(1)

    print(json.dumps(_to_json(response), indent=2))


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
