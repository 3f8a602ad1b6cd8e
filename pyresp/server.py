"""RESP server for PyResp - accepts clients and answers their commands."""

import asyncio
import os
import ssl
import time
from typing import Optional, Set, Tuple

from .commands import Dispatcher
from .config import Config
from .connection import Connection
from .errors import ProtocolError, RespError, UnsupportedEncoding
from .logger import Logger
from .metrics import Metrics
from .prometheus_metrics import PrometheusMetrics
from .value import ErrorValue, Value


# Constants
DEFAULT_METRICS_INTERVAL = 10  # seconds
DEFAULT_SHUTDOWN_POLL_INTERVAL = 0.1  # seconds


class Server:
    """Asyncio TCP server; one Connection per client, no state shared between them."""

    def __init__(self, host: Optional[str] = None, port: Optional[int] = None,
                 config_file: Optional[str] = None, dispatcher: Optional[Dispatcher] = None):
        self.config = Config(config_file)

        self.host = host or self.config.get("server", "host", "0.0.0.0")
        self.port = port if port is not None else self.config.get("server", "port", 6379)
        self.max_connections = self.config.get("server", "max_connections", 1000)
        self.idle_timeout = self.config.get("server", "idle_timeout")
        self.shutdown_timeout = self.config.get("server", "shutdown_timeout", 30.0)
        self.read_chunk_size = self.config.get("protocol", "read_chunk_size", 512)
        self.max_buffer_size = self.config.get("protocol", "max_buffer_size", 512 * 1024 * 1024)
        self.metrics_interval = self.config.get("monitoring", "metrics_interval", DEFAULT_METRICS_INTERVAL)

        self.dispatcher = dispatcher or Dispatcher()
        self.logger = Logger("server", level=self.config.get("logging", "level"))
        self.connection_logger = Logger("connection", level=self.config.get("logging", "level"))
        self.metrics = Metrics()

        if self.config.get("monitoring", "prometheus_enabled", False):
            prometheus_port = self.config.get("monitoring", "prometheus_port", 9090)
            self.prometheus_metrics = PrometheusMetrics(prometheus_port)
        else:
            self.prometheus_metrics = None

        self.running = False
        self.server = None
        self.event_loop = None  # Will be set in listen()
        self.connection_lock = None  # Will be asyncio.Lock after listen()
        self.shutdown_event = None  # Will be asyncio.Event after listen()
        self.active_connections: Set[asyncio.StreamWriter] = set()
        self.background_tasks: Set[asyncio.Task] = set()
        self.tls_enabled = False
        self._bytes_reported = 0

    async def listen(self):
        """Bind the listening socket and start background tasks without blocking."""
        self.event_loop = asyncio.get_running_loop()
        self.connection_lock = asyncio.Lock()
        self.shutdown_event = asyncio.Event()

        is_valid, errors = self.config.validate()
        if not is_valid:
            self.logger.error("Configuration validation failed", errors=errors)
            raise ValueError(f"Invalid configuration: {errors}")

        if self.prometheus_metrics:
            self.prometheus_metrics.start()
            self.logger.info("Prometheus metrics enabled", port=self.prometheus_metrics.port)

        ssl_context = None
        self.tls_enabled = self.config.get("security", "tls_enabled", False)
        if self.tls_enabled:
            cert_file = self.config.get("security", "tls_cert_file")
            key_file = self.config.get("security", "tls_key_file")
            ssl_context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
            ssl_context.load_cert_chain(cert_file, key_file)
            self.logger.info("TLS enabled", cert_file=cert_file)

        self.server = await asyncio.start_server(
            self._handle_client_async,
            self.host,
            self.port,
            ssl=ssl_context
        )
        if self.port == 0:
            self.port = self.server.sockets[0].getsockname()[1]

        self.running = True
        self.background_tasks.add(asyncio.create_task(self._metrics_loop()))

        self.logger.info("Server listening", host=self.host, port=self.port, tls_enabled=self.tls_enabled)

    async def start(self):
        """Start the server and serve until stopped."""
        self.logger.info("Starting server", host=self.host, port=self.port)
        await self.listen()
        async with self.server:
            await self.server.serve_forever()

    async def stop(self):
        """Stop the server gracefully."""
        self.logger.info("Shutting down server")
        self.running = False
        if self.shutdown_event:
            self.shutdown_event.set()

        if self.server:
            self.server.close()

        for task in self.background_tasks:
            task.cancel()
        await asyncio.gather(*self.background_tasks, return_exceptions=True)
        self.background_tasks.clear()

        await self._graceful_shutdown()

        if self.server:
            await self.server.wait_closed()

    async def _graceful_shutdown(self):
        """Wait for clients to disconnect, then force-close the rest."""
        if self.connection_lock is None:
            return

        async with self.connection_lock:
            active_count = len(self.active_connections)
        self.logger.info("Waiting for connections to close", active_connections=active_count)

        deadline = time.time() + self.shutdown_timeout
        while time.time() < deadline:
            async with self.connection_lock:
                if len(self.active_connections) == 0:
                    break
            await asyncio.sleep(DEFAULT_SHUTDOWN_POLL_INTERVAL)

        async with self.connection_lock:
            remaining = len(self.active_connections)
            if remaining > 0:
                self.logger.warn("Force closing remaining connections", count=remaining)
                for writer in list(self.active_connections):
                    try:
                        writer.close()
                        await writer.wait_closed()
                    except (OSError, ConnectionError, RuntimeError) as e:
                        self.logger.debug("Error closing connection during shutdown", error=str(e))
                self.active_connections.clear()

        self.logger.info("Graceful shutdown complete")

    async def _handle_client_async(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        """Serve one client until it disconnects or sends a malformed stream.

        Args:
            reader: Async stream reader
            writer: Async stream writer
        """
        if self.connection_lock is None:
            self.connection_lock = asyncio.Lock()

        address = writer.get_extra_info('peername')
        conn = Connection(reader, writer,
                          read_size=self.read_chunk_size,
                          max_buffer_size=self.max_buffer_size,
                          metrics=self.metrics,
                          logger=self.connection_logger)

        async with self.connection_lock:
            if len(self.active_connections) >= self.max_connections:
                self.logger.warn("Connection limit reached", max=self.max_connections, address=str(address))
                await self._send_error_async(conn, "ERR max number of clients reached")
                await conn.close()
                return
            self.active_connections.add(writer)

        await self.metrics.record_connection_opened()
        if self.prometheus_metrics:
            self.prometheus_metrics.record_connection_opened()
        self.logger.info("Client connected", address=str(address))

        try:
            await self._serve_connection(conn, address)
        except ProtocolError as e:
            self.logger.warn("Protocol error, closing connection", error=e.message,
                             kind=type(e).__name__, address=str(address))
            await self.metrics.record_protocol_error()
            if self.prometheus_metrics:
                self.prometheus_metrics.record_protocol_error()
            await self._send_error_async(conn, f"ERR Protocol error: {e.message}")
        except asyncio.TimeoutError:
            self.logger.warn("Idle timeout", timeout=self.idle_timeout, address=str(address))
        except (OSError, ConnectionError) as e:
            self.logger.warn("Connection I/O error", error=str(e), address=str(address))
        finally:
            async with self.connection_lock:
                self.active_connections.discard(writer)
            await conn.close()
            await self.metrics.record_connection_closed()
            if self.prometheus_metrics:
                self.prometheus_metrics.record_connection_closed()
            self.logger.info("Client disconnected", address=str(address))

    async def _serve_connection(self, conn: Connection, address: Tuple):
        while True:
            if self.idle_timeout:
                request = await asyncio.wait_for(conn.read_value(), timeout=self.idle_timeout)
            else:
                request = await conn.read_value()
            if request is None:
                return

            self.logger.debug("Received value", kind=type(request).__name__, address=str(address))
            started = time.perf_counter()
            reply, label = self._execute(request, address)

            try:
                await conn.write_value(reply)
            except UnsupportedEncoding as e:
                self.logger.warn("Reply could not be encoded", error=e.message, address=str(address))
                reply = ErrorValue(f"ERR {e.message}")
                await conn.write_value(reply)
            latency = time.perf_counter() - started

            if isinstance(reply, ErrorValue):
                await self.metrics.record_command_error()
                if self.prometheus_metrics:
                    self.prometheus_metrics.record_command_error()
            else:
                await self.metrics.record_command(latency)
                if self.prometheus_metrics:
                    self.prometheus_metrics.record_command(label, latency)

    def _execute(self, request: Value, address: Tuple) -> Tuple[Value, str]:
        """Run a request through the dispatcher; shape errors become error replies.

        Returns the reply and the command label used for metrics.
        """
        try:
            reply = self.dispatcher.handle(request)
        except RespError as e:
            if not e.recoverable:
                raise
            self.logger.warn("Invalid command received", error=e.message, address=str(address))
            return ErrorValue(f"ERR {e.message}"), "INVALID"

        # handle() succeeded, so the request is an array headed by a bulk string.
        name = request.items[0].unwrap_bulk().upper()
        label = name if name in self.dispatcher.handlers else "UNKNOWN"
        return reply, label

    async def _send_error_async(self, conn: Connection, message: str):
        """Send an error reply, ignoring a peer that is already gone."""
        try:
            await conn.write_value(ErrorValue(message))
        except (OSError, ConnectionError, RuntimeError) as e:
            self.logger.debug("Could not send error reply", error=str(e))

    async def _metrics_loop(self):
        """Background task that reports metrics periodically."""
        while self.running:
            await asyncio.sleep(self.metrics_interval)
            stats = await self.get_stats()
            self.logger.info("Metrics", **stats)
            if self.prometheus_metrics:
                self.prometheus_metrics.update_active_connections(stats["active_connections"])
                self.prometheus_metrics.record_bytes_read(stats["bytes_read"] - self._bytes_reported)
            self._bytes_reported = stats["bytes_read"]

    async def get_stats(self) -> dict:
        """Get server statistics."""
        stats = await self.metrics.get_stats(len(self.active_connections))
        stats["running"] = self.running
        stats["host"] = self.host
        stats["port"] = self.port
        return stats


async def main_async():
    """Run the server asynchronously."""
    host = os.getenv('SERVER_HOST')
    port = os.getenv('SERVER_PORT')
    server = Server(host=host, port=int(port) if port else None)
    try:
        await server.start()
    finally:
        if server.running:
            await server.stop()


def main():
    """Run the server."""
    try:
        asyncio.run(main_async())
    except KeyboardInterrupt:
        print("\nShutting down server...")


if __name__ == "__main__":
    main()
