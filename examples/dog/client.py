"""Call DogService.GetDog on 127.0.0.1:3500."""

from pathlib import Path

from protolite.config import ClientConfig
from protolite.errors import ProtoliteError
from protolite.rpc import Client
from protolite.schema import parse

PROTO_FILE = Path(__file__).parent / "service_def.proto"


def main() -> None:
    schema = parse(PROTO_FILE.read_text(encoding="utf-8"))
    client = Client(schema, "DogService", config=ClientConfig(host="localhost", port=3500))

    try:
        dog = client.GetDog({})
    except ProtoliteError as e:
        print(e)
    else:
        print(dog)


if __name__ == "__main__":
    main()
