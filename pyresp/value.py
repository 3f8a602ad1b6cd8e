"""Protocol value model for PyResp."""

from dataclasses import dataclass, field
from typing import List, Tuple

from .errors import InvalidCommand, UnsupportedEncoding, ValueShapeError

CRLF = b"\r\n"


class Value:
    """A single protocol value. Concrete kinds are the subclasses below."""

    marker = b""

    def encode(self) -> bytes:
        raise UnsupportedEncoding(f"encoding not supported for {type(self).__name__}")

    def to_command(self) -> Tuple[str, List["Value"]]:
        raise InvalidCommand(f"expected a non-empty array, got {type(self).__name__}")

    def unwrap_bulk(self) -> str:
        raise ValueShapeError(f"expected a bulk string, got {type(self).__name__}")


@dataclass(frozen=True)
class SimpleString(Value):
    text: str
    marker = b"+"

    def encode(self) -> bytes:
        return self.marker + self.text.encode('utf-8') + CRLF


@dataclass(frozen=True)
class ErrorValue(Value):
    text: str
    marker = b"-"

    def encode(self) -> bytes:
        return self.marker + self.text.encode('utf-8') + CRLF


@dataclass(frozen=True)
class BulkString(Value):
    text: str
    marker = b"$"

    def encode(self) -> bytes:
        # Length prefix counts characters, so only ASCII payloads round-trip byte-exact.
        length = f"{len(self.text)}".encode('utf-8')
        return self.marker + length + CRLF + self.text.encode('utf-8') + CRLF

    def unwrap_bulk(self) -> str:
        return self.text


@dataclass(frozen=True)
class Array(Value):
    items: List[Value] = field(default_factory=list)
    marker = b"*"

    def to_command(self) -> Tuple[str, List[Value]]:
        """Split into (command name, arguments).

        The first element must be a bulk string.
        """
        if not self.items:
            raise InvalidCommand("empty array is not a command")
        head = self.items[0]
        if not isinstance(head, BulkString):
            raise InvalidCommand(f"command name must be a bulk string, got {type(head).__name__}")
        return head.text, list(self.items[1:])
