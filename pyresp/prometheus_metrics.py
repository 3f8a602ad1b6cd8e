"""Prometheus metrics export for PyResp."""

from prometheus_client import Counter, Gauge, Histogram, start_http_server


# Module-level metrics (singleton pattern to avoid duplicate registration)
_metrics_initialized = False
_connections_opened = None
_connections_closed = None
_active_connections = None
_commands_processed = None
_command_errors = None
_protocol_errors = None
_bytes_read = None
_command_latency = None


def _init_metrics():
    """Initialize metrics only once."""
    global _metrics_initialized, _connections_opened, _connections_closed
    global _active_connections, _commands_processed, _command_errors
    global _protocol_errors, _bytes_read, _command_latency

    if _metrics_initialized:
        return

    _connections_opened = Counter('pyresp_connections_opened_total', 'Total client connections accepted')
    _connections_closed = Counter('pyresp_connections_closed_total', 'Total client connections closed')
    _active_connections = Gauge('pyresp_active_connections', 'Currently open client connections')

    _commands_processed = Counter('pyresp_commands_total', 'Total commands processed', ['command'])
    _command_errors = Counter('pyresp_command_errors_total', 'Commands rejected with an error reply')
    _protocol_errors = Counter('pyresp_protocol_errors_total', 'Connections closed on a malformed stream')
    _bytes_read = Counter('pyresp_bytes_read_total', 'Bytes read from clients')

    _command_latency = Histogram('pyresp_command_latency_seconds', 'Command handling time',
                                 buckets=[0.0001, 0.0005, 0.001, 0.005, 0.01, 0.05, 0.1])

    _metrics_initialized = True


class PrometheusMetrics:
    """Prometheus metrics collector."""

    _server_started = False

    def __init__(self, port: int = 9090):
        self.port = port
        _init_metrics()

        self.connections_opened = _connections_opened
        self.connections_closed = _connections_closed
        self.active_connections = _active_connections
        self.commands_processed = _commands_processed
        self.command_errors = _command_errors
        self.protocol_errors = _protocol_errors
        self.bytes_read = _bytes_read
        self.command_latency = _command_latency

    def start(self):
        """Start Prometheus metrics server."""
        if not PrometheusMetrics._server_started:
            start_http_server(self.port)
            PrometheusMetrics._server_started = True

    def record_connection_opened(self):
        self.connections_opened.inc()
        self.active_connections.inc()

    def record_connection_closed(self):
        self.connections_closed.inc()
        self.active_connections.dec()

    def record_command(self, command: str, latency: float):
        self.commands_processed.labels(command=command.upper()).inc()
        self.command_latency.observe(latency)

    def record_command_error(self):
        self.command_errors.inc()

    def record_protocol_error(self):
        self.protocol_errors.inc()

    def record_bytes_read(self, count: int):
        self.bytes_read.inc(count)

    def update_active_connections(self, count: int):
        self.active_connections.set(count)
