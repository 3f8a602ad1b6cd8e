"""Error types for PyResp."""


class RespError(Exception):
    """Base class for every failure raised by PyResp."""

    recoverable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ProtocolError(RespError):
    """The byte stream can no longer be trusted; the connection must close."""


class UnrecognizedMessageType(ProtocolError):
    pass


class MalformedUtf8(ProtocolError):
    pass


class InvalidInteger(ProtocolError):
    pass


class MessageTooLarge(ProtocolError):
    pass


class ConnectionClosedUnexpectedly(ProtocolError):
    """Peer closed the stream in the middle of a message."""


class IncompleteMessage(ProtocolError):
    """A standalone buffer ended before its value did."""


class InvalidCommand(RespError):
    """A value does not have the shape of a command."""

    recoverable = True


class ValueShapeError(InvalidCommand):
    """A value was not the variant the caller asked for."""


class UnsupportedEncoding(RespError):
    """The value kind cannot be serialized."""

    recoverable = True
