"""Tests for the protocol decoder."""

import pytest
from pyresp.errors import (
    IncompleteMessage,
    InvalidCommand,
    InvalidInteger,
    MalformedUtf8,
    UnrecognizedMessageType,
)
from pyresp.protocol import (
    decode,
    get_line,
    parse_integer,
    parse_message,
    parse_string,
)
from pyresp.value import Array, BulkString, ErrorValue, SimpleString


class TestGetLine:
    """Tests for CRLF line scanning."""

    def test_line_found(self):
        """Test the line and span including the terminator."""
        assert get_line(b"PING\r\nrest") == (b"PING", 6)

    def test_line_from_offset(self):
        """Test scanning starts at the given offset."""
        assert get_line(b"+OK\r\n", 1) == (b"OK", 4)

    def test_no_terminator(self):
        """Test an unterminated line is reported missing."""
        assert get_line(b"PING") is None

    def test_lone_carriage_return(self):
        """Test CR without LF is not a terminator."""
        assert get_line(b"PI\rNG\r") is None

    def test_empty_line(self):
        """Test an empty line before the terminator."""
        assert get_line(b"\r\n") == (b"", 2)


class TestParseHelpers:
    """Tests for integer and string parsing."""

    def test_parse_integer(self):
        """Test decimal integers, signed and unsigned."""
        assert parse_integer(b"42") == 42
        assert parse_integer(b"-1") == -1
        assert parse_integer(b"+7") == 7

    @pytest.mark.parametrize("data", [b"", b"abc", b"1.5", b" 4", b"1_000", b"\xff"])
    def test_parse_integer_invalid(self, data):
        """Test malformed integers raise InvalidInteger."""
        with pytest.raises(InvalidInteger):
            parse_integer(data)

    def test_parse_string(self):
        """Test UTF-8 text decodes."""
        assert parse_string("café".encode('utf-8')) == "café"

    def test_parse_string_invalid_utf8(self):
        """Test invalid UTF-8 raises MalformedUtf8."""
        with pytest.raises(MalformedUtf8):
            parse_string(b"\xff\xfe")


class TestParseMessage:
    """Tests for parse_message."""

    def test_parse_ping(self):
        """Test a simple string consumes the whole message."""
        assert parse_message(b"+PING\r\n") == (SimpleString("PING"), 7)

    def test_parse_error(self):
        """Test an error value."""
        assert parse_message(b"-ERR boom\r\n") == (ErrorValue("ERR boom"), 11)

    def test_parse_array_of_ping(self):
        """Test a one-element array."""
        value, consumed = parse_message(b"*1\r\n$4\r\nping\r\n")
        assert value == Array([BulkString("ping")])
        assert consumed == 14

    def test_parse_echo(self):
        """Test an ECHO command and its command extraction."""
        data = b"*2\r\n$4\r\nECHO\r\n$3\r\nhey\r\n"
        value, consumed = parse_message(data)
        assert value == Array([BulkString("ECHO"), BulkString("hey")])
        assert consumed == len(data)
        assert value.to_command() == ("ECHO", [BulkString("hey")])

    def test_parse_nested_array(self):
        """Test arrays nest recursively with mixed kinds."""
        data = b"*2\r\n*1\r\n+a\r\n$1\r\nb\r\n"
        value, consumed = parse_message(data)
        assert value == Array([Array([SimpleString("a")]), BulkString("b")])
        assert consumed == len(data)

    def test_parse_empty_array(self):
        """Test a zero-length array."""
        assert parse_message(b"*0\r\n") == (Array([]), 4)

    def test_negative_array_count_is_empty(self):
        """Test a negative count yields an empty array."""
        assert parse_message(b"*-1\r\n") == (Array([]), 5)

    def test_trailing_bytes_not_consumed(self):
        """Test only the first value is consumed."""
        assert parse_message(b"+OK\r\n+NEXT\r\n") == (SimpleString("OK"), 5)

    def test_parse_from_offset(self):
        """Test parsing a value that starts mid-buffer."""
        assert parse_message(b"+OK\r\n+NEXT\r\n", 5) == (SimpleString("NEXT"), 7)

    def test_bulk_consumed_bytes(self):
        """Test bulk consumption is header line + length + 2."""
        data = b"$11\r\nhello world\r\n"
        value, consumed = parse_message(data)
        assert value == BulkString("hello world")
        assert consumed == len(b"$11\r\n") + 11 + 2

    def test_bulk_may_contain_crlf(self):
        """Test bulk payloads are length-delimited, not line-delimited."""
        assert parse_message(b"$4\r\na\r\nb\r\n") == (BulkString("a\r\nb"), 10)

    def test_unrecognized_type(self):
        """Test an unknown marker raises."""
        with pytest.raises(UnrecognizedMessageType):
            parse_message(b"%x\r\n")

    def test_invalid_array_count(self):
        """Test a non-numeric array count raises."""
        with pytest.raises(InvalidInteger):
            parse_message(b"*x\r\n")

    def test_invalid_bulk_length(self):
        """Test a non-numeric bulk length raises."""
        with pytest.raises(InvalidInteger):
            parse_message(b"$abc\r\nhey\r\n")

    def test_negative_bulk_length(self):
        """Test a negative bulk length raises."""
        with pytest.raises(InvalidInteger):
            parse_message(b"$-1\r\n")

    def test_malformed_utf8_simple_string(self):
        """Test invalid UTF-8 in a simple string raises."""
        with pytest.raises(MalformedUtf8):
            parse_message(b"+\xff\r\n")

    def test_malformed_utf8_bulk_string(self):
        """Test invalid UTF-8 in a bulk payload raises."""
        with pytest.raises(MalformedUtf8):
            parse_message(b"$2\r\n\xc3\x28\r\n")

    def test_error_inside_array_propagates(self):
        """Test a bad element fails the whole array."""
        with pytest.raises(UnrecognizedMessageType):
            parse_message(b"*2\r\n$1\r\na\r\n!oops\r\n")


class TestIncompleteInput:
    """Tests for incomplete buffers."""

    @pytest.mark.parametrize("data", [
        b"",
        b"+",
        b"+PING",
        b"+PING\r",
        b"$4\r\npi",
        b"$4\r\nping",
        b"$4\r\nping\r",
        b"*",
        b"*2\r\n",
        b"*1\r\n$4\r\n",
        b"*2\r\n$4\r\nECHO\r\n",
        b"*2\r\n$4\r\nECHO\r\n$3\r\nhe",
    ])
    def test_incomplete_returns_none(self, data):
        """Test every strict prefix reports incomplete."""
        assert parse_message(data) is None

    def test_split_message_completes(self):
        """Test a message split in two parses once both parts arrive."""
        first = b"*1\r\n$4\r\n"
        second = b"ping\r\n"
        assert parse_message(first) is None
        assert parse_message(first + second) == (Array([BulkString("ping")]), 14)

    def test_every_prefix_of_nested_message(self):
        """Test byte-by-byte arrival yields one value only at the end."""
        data = b"*2\r\n*1\r\n$3\r\nfoo\r\n-ERR x\r\n"
        for end in range(len(data)):
            assert parse_message(data[:end]) is None
        assert parse_message(data) == (
            Array([Array([BulkString("foo")]), ErrorValue("ERR x")]),
            len(data),
        )


class TestDecode:
    """Tests for decode of a complete message."""

    @pytest.mark.parametrize("value", [
        SimpleString("OK"),
        SimpleString(""),
        ErrorValue("ERR something went wrong"),
        BulkString("hello world"),
        BulkString(""),
    ])
    def test_decode_encoded_value(self, value):
        """Test decoding an encoded value returns the original."""
        assert decode(value.encode()) == value

    def test_decode_incomplete(self):
        """Test decode raises on a partial message."""
        with pytest.raises(IncompleteMessage):
            decode(b"$5\r\nhel")


def nested(depth: int, leaf: bytes = b"+x\r\n") -> bytes:
    return b"*1\r\n" * depth + leaf


def unwrap_depth(value):
    """Walk single-element arrays without recursion; return (depth, leaf)."""
    depth = 0
    while isinstance(value, Array):
        assert len(value.items) == 1
        value = value.items[0]
        depth += 1
    return depth, value


class TestDeepNesting:
    """Tests for arrays nested far beyond the interpreter recursion limit."""

    def test_deeply_nested_array(self):
        """Test a 10 000 level array decodes completely."""
        data = nested(10000)
        value, consumed = parse_message(data)
        assert consumed == len(data)
        assert unwrap_depth(value) == (10000, SimpleString("x"))

    def test_deeply_nested_array_split(self):
        """Test split points through a 10 000 level array are incomplete."""
        data = nested(10000)
        split_points = list(range(0, len(data), 997)) + [len(data) - 2, len(data) - 1]
        for end in split_points:
            assert parse_message(data[:end]) is None
        assert parse_message(data)[1] == len(data)

    def test_every_prefix_of_deep_array(self):
        """Test every prefix of an array deeper than the recursion limit."""
        data = nested(1200, b"$2\r\nok\r\n")
        for end in range(len(data)):
            assert parse_message(data[:end]) is None
        value, consumed = parse_message(data)
        assert consumed == len(data)
        assert unwrap_depth(value) == (1200, BulkString("ok"))

    def test_deep_array_with_siblings(self):
        """Test a deep branch followed by a sibling element."""
        data = b"*2\r\n" + nested(5000) + b"$3\r\nend\r\n"
        value, consumed = parse_message(data)
        assert consumed == len(data)
        assert len(value.items) == 2
        assert unwrap_depth(value.items[0]) == (5000, SimpleString("x"))
        assert value.items[1] == BulkString("end")

    def test_deep_array_bad_leaf_is_typed_error(self):
        """Test a malformed leaf deep inside raises the protocol error."""
        with pytest.raises(UnrecognizedMessageType):
            parse_message(nested(10000, b"%x\r\n"))

    def test_deep_array_is_not_a_command(self):
        """Test command extraction on a deep array raises InvalidCommand."""
        value, _ = parse_message(nested(10000))
        with pytest.raises(InvalidCommand):
            value.to_command()
