"""Tests for the value model."""

import pytest
from pyresp.errors import InvalidCommand, UnsupportedEncoding, ValueShapeError
from pyresp.value import Array, BulkString, ErrorValue, SimpleString


class TestEncode:
    """Tests for Value.encode."""

    def test_encode_simple_string(self):
        """Test encoding a simple string."""
        assert SimpleString("PONG").encode() == b"+PONG\r\n"

    def test_encode_empty_simple_string(self):
        """Test encoding an empty simple string."""
        assert SimpleString("").encode() == b"+\r\n"

    def test_encode_error(self):
        """Test encoding an error value."""
        assert ErrorValue("ERR unknown command").encode() == b"-ERR unknown command\r\n"

    def test_encode_bulk_string(self):
        """Test encoding a bulk string."""
        assert BulkString("hey").encode() == b"$3\r\nhey\r\n"

    def test_encode_empty_bulk_string(self):
        """Test encoding an empty bulk string."""
        assert BulkString("").encode() == b"$0\r\n\r\n"

    def test_encode_bulk_string_counts_characters(self):
        """Test the bulk length prefix is the character count."""
        assert BulkString("café").encode() == b"$4\r\ncaf\xc3\xa9\r\n"

    def test_encode_array_unsupported(self):
        """Test array encoding fails with a typed error."""
        with pytest.raises(UnsupportedEncoding):
            Array([BulkString("ping")]).encode()

    def test_unsupported_encoding_is_recoverable(self):
        """Test the encoding error lets the connection stay open."""
        with pytest.raises(UnsupportedEncoding) as exc_info:
            Array([]).encode()
        assert exc_info.value.recoverable is True


class TestToCommand:
    """Tests for Value.to_command."""

    def test_command_without_arguments(self):
        """Test a single-element array."""
        name, args = Array([BulkString("PING")]).to_command()
        assert name == "PING"
        assert args == []

    def test_command_with_arguments(self):
        """Test the remaining elements become arguments."""
        name, args = Array([BulkString("ECHO"), BulkString("hey")]).to_command()
        assert name == "ECHO"
        assert args == [BulkString("hey")]

    def test_empty_array_is_invalid(self):
        """Test an empty array raises instead of crashing."""
        with pytest.raises(InvalidCommand):
            Array([]).to_command()

    def test_simple_string_is_invalid(self):
        """Test a non-array value is not a command."""
        with pytest.raises(InvalidCommand):
            SimpleString("x").to_command()

    def test_non_bulk_head_is_invalid(self):
        """Test the command name must be a bulk string."""
        with pytest.raises(InvalidCommand):
            Array([SimpleString("PING")]).to_command()

    def test_invalid_command_is_recoverable(self):
        """Test InvalidCommand is flagged recoverable."""
        with pytest.raises(InvalidCommand) as exc_info:
            Array([]).to_command()
        assert exc_info.value.recoverable is True


class TestUnwrapBulk:
    """Tests for Value.unwrap_bulk."""

    def test_unwrap_bulk_string(self):
        """Test a bulk string yields its text."""
        assert BulkString("hey").unwrap_bulk() == "hey"

    def test_unwrap_other_kind_raises_shape_error(self):
        """Test other kinds raise a shape error."""
        with pytest.raises(ValueShapeError):
            SimpleString("hey").unwrap_bulk()

    def test_shape_error_is_invalid_command(self):
        """Test shape errors are a kind of InvalidCommand."""
        assert issubclass(ValueShapeError, InvalidCommand)


class TestEquality:
    """Tests for value equality."""

    def test_same_kind_same_text_equal(self):
        """Test values compare by payload."""
        assert BulkString("a") == BulkString("a")

    def test_different_kinds_not_equal(self):
        """Test values of different kinds never compare equal."""
        assert SimpleString("a") != BulkString("a")
        assert SimpleString("a") != ErrorValue("a")

    def test_nested_arrays_equal(self):
        """Test arrays compare element-wise."""
        assert Array([Array([BulkString("a")])]) == Array([Array([BulkString("a")])])
