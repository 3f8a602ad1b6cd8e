"""Incremental decoder for the RESP wire protocol.

Every decode function takes the whole accumulated buffer plus the offset where
the value starts, and returns either ``(value, consumed)`` or ``None`` when the
buffer does not hold a complete value yet. ``None`` is not an error: the caller
should read more bytes and try again from the same offset.
"""

import re
from typing import Optional, Tuple, Union

from .errors import (
    IncompleteMessage,
    InvalidInteger,
    MalformedUtf8,
    UnrecognizedMessageType,
)
from .value import Array, BulkString, ErrorValue, SimpleString, Value

CRLF = b"\r\n"

INTEGER_PATTERN = re.compile(rb"[+-]?[0-9]+")

Buffer = Union[bytes, bytearray]
ParseResult = Optional[Tuple[Value, int]]


def get_line(buffer: Buffer, start: int = 0) -> Optional[Tuple[bytes, int]]:
    """Find the first CRLF at or after ``start``.

    Returns (line without terminator, bytes spanned including terminator),
    or None if no terminator has arrived yet.
    """
    end = buffer.find(CRLF, start)
    if end == -1:
        return None
    return bytes(buffer[start:end]), end + len(CRLF) - start


def parse_string(data: bytes) -> str:
    try:
        return data.decode('utf-8')
    except UnicodeDecodeError as e:
        raise MalformedUtf8(f"Could not parse string: {e.reason}") from e


def parse_integer(data: bytes) -> int:
    if not INTEGER_PATTERN.fullmatch(data):
        raise InvalidInteger(f"Could not parse integer: {data!r}")
    return int(data)


def parse_message(buffer: Buffer, start: int = 0) -> ParseResult:
    """Parse one value starting at ``start``.

    Returns the value and the number of bytes it occupies, or None if the
    buffer is incomplete.
    """
    if start >= len(buffer):
        return None
    if buffer[start] == ord("*"):
        return decode_array(buffer, start)
    return _decode_scalar(buffer, start)


def _decode_scalar(buffer: Buffer, start: int) -> ParseResult:
    marker = buffer[start]
    if marker == ord("+"):
        return decode_simple_string(buffer, start)
    if marker == ord("-"):
        return decode_error(buffer, start)
    if marker == ord("$"):
        return decode_bulk_string(buffer, start)
    raise UnrecognizedMessageType(f"unrecognised message type: {chr(marker)!r}")


def _decode_line_value(buffer: Buffer, start: int, kind) -> ParseResult:
    found = get_line(buffer, start + 1)
    if found is None:
        return None
    line, span = found
    return kind(parse_string(line)), span + 1


def decode_simple_string(buffer: Buffer, start: int = 0) -> ParseResult:
    return _decode_line_value(buffer, start, SimpleString)


def decode_error(buffer: Buffer, start: int = 0) -> ParseResult:
    return _decode_line_value(buffer, start, ErrorValue)


def _read_array_header(buffer: Buffer, pos: int) -> Optional[Tuple[int, int]]:
    found = get_line(buffer, pos + 1)
    if found is None:
        return None
    line, span = found
    return parse_integer(line), span + 1


def decode_array(buffer: Buffer, start: int = 0) -> ParseResult:
    """Decode ``*<count>\\r\\n`` followed by ``count`` nested values.

    Nested arrays are tracked on an explicit stack of [remaining, items]
    frames, so nesting depth is limited by the buffer, not the interpreter.
    If any element is incomplete the whole array is reported incomplete;
    the next attempt re-parses every element from the header.
    """
    stack = []
    pos = start
    while True:
        if pos >= len(buffer):
            return None

        if buffer[pos] == ord("*"):
            header = _read_array_header(buffer, pos)
            if header is None:
                return None
            count, header_len = header
            pos += header_len
            if count > 0:
                stack.append([count, []])
                continue
            value = Array([])
        else:
            parsed = _decode_scalar(buffer, pos)
            if parsed is None:
                return None
            value, length = parsed
            pos += length

        # Attach the finished value to its parent, closing every array it completes.
        while stack:
            frame = stack[-1]
            frame[1].append(value)
            frame[0] -= 1
            if frame[0] > 0:
                break
            stack.pop()
            value = Array(frame[1])

        if not stack:
            return value, pos - start


def decode_bulk_string(buffer: Buffer, start: int = 0) -> ParseResult:
    found = get_line(buffer, start + 1)
    if found is None:
        return None
    line, span = found
    length = parse_integer(line)
    if length < 0:
        raise InvalidInteger(f"bulk string length must not be negative: {length}")

    payload_start = span + 1
    end_of_bulk = payload_start + length
    end_of_record = end_of_bulk + 2  # trailing CRLF, not validated

    if start + end_of_record > len(buffer):
        return None
    text = parse_string(bytes(buffer[start + payload_start:start + end_of_bulk]))
    return BulkString(text), end_of_record


def decode(data: Buffer) -> Value:
    """Decode a single complete message held entirely in ``data``."""
    parsed = parse_message(data)
    if parsed is None:
        raise IncompleteMessage(f"incomplete message of {len(data)} bytes")
    return parsed[0]
