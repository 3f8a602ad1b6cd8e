"""Async RESP connection: buffered reads and value writes over one stream."""

import asyncio
from typing import Optional

from .errors import ConnectionClosedUnexpectedly, MessageTooLarge
from .logger import Logger
from .metrics import Metrics
from .protocol import parse_message
from .value import Value

DEFAULT_READ_SIZE = 512
DEFAULT_MAX_BUFFER_SIZE = 512 * 1024 * 1024


class Connection:
    """Reads and writes protocol values on a single client stream.

    Bytes left over after a value is parsed stay in the buffer for the next
    ``read_value`` call, so pipelined requests are never lost.
    """

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter,
                 read_size: int = DEFAULT_READ_SIZE,
                 max_buffer_size: int = DEFAULT_MAX_BUFFER_SIZE,
                 metrics: Optional[Metrics] = None,
                 logger: Optional[Logger] = None):
        self.reader = reader
        self.writer = writer
        self.read_size = read_size
        self.max_buffer_size = max_buffer_size
        self.buffer = bytearray()
        self.metrics = metrics
        self.logger = logger or Logger("connection")

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet consumed by a parsed value."""
        return len(self.buffer)

    def _take_value(self) -> Optional[Value]:
        parsed = parse_message(self.buffer)
        if parsed is None:
            return None
        value, consumed = parsed
        del self.buffer[:consumed]
        self.logger.debug("Value parsed", consumed=consumed, remaining=len(self.buffer))
        return value

    async def read_value(self) -> Optional[Value]:
        """Read the next complete value.

        Returns None when the peer closes cleanly between values. Raises
        ConnectionClosedUnexpectedly when it closes mid-value, and lets decode
        errors propagate; the stream is unusable after either.
        """
        if self.buffer:
            value = self._take_value()
            if value is not None:
                return value

        while True:
            chunk = await self.reader.read(self.read_size)

            if not chunk:
                if not self.buffer:
                    return None
                raise ConnectionClosedUnexpectedly(
                    f"connection closed with {len(self.buffer)} unparsed bytes"
                )

            self.buffer += chunk
            if self.metrics:
                self.metrics.record_bytes_read(len(chunk))

            value = self._take_value()
            if value is not None:
                return value

            if len(self.buffer) > self.max_buffer_size:
                raise MessageTooLarge(
                    f"buffered {len(self.buffer)} bytes without a complete value "
                    f"(limit {self.max_buffer_size})"
                )

    async def write_value(self, value: Value):
        """Encode and send a value. I/O errors propagate unchanged."""
        self.writer.write(value.encode())
        await self.writer.drain()

    async def close(self):
        try:
            self.writer.close()
            await self.writer.wait_closed()
        except (OSError, ConnectionError, RuntimeError) as e:
            self.logger.debug("Error closing connection", error=str(e))
