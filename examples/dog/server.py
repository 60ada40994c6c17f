"""Serve DogService on 127.0.0.1:3500."""

import logging
from pathlib import Path

from protolite.config import ServerConfig
from protolite.rpc import Server
from protolite.schema import parse

PROTO_FILE = Path(__file__).parent / "service_def.proto"


def get_dog(_request: dict) -> dict:
    return {"name": "Spot", "age": 5}


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")

    schema = parse(PROTO_FILE.read_text(encoding="utf-8"))
    server = Server(schema, config=ServerConfig(host="127.0.0.1", port=3500))
    server.add_service("DogService", {"GetDog": get_dog})
    server.serve()


if __name__ == "__main__":
    main()
