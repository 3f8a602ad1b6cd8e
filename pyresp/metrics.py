"""Metrics collection for the PyResp server."""

import time
import asyncio
from typing import Dict
from collections import deque


class Metrics:
    """Track and report connection and command metrics."""

    def __init__(self):
        self.lock = None
        self.start_time = time.time()

        self.connections_opened = 0
        self.connections_closed = 0
        self.commands_processed = 0
        self.command_errors = 0
        self.protocol_errors = 0
        self.bytes_read = 0

        self.command_latencies = deque(maxlen=100)

    async def _ensure_lock(self):
        """Ensure lock is initialized (must be called from async context)."""
        if self.lock is None:
            self.lock = asyncio.Lock()

    async def record_connection_opened(self):
        await self._ensure_lock()
        async with self.lock:
            self.connections_opened += 1

    async def record_connection_closed(self):
        await self._ensure_lock()
        async with self.lock:
            self.connections_closed += 1

    async def record_command(self, latency: float):
        """Record a command that produced a reply."""
        await self._ensure_lock()
        async with self.lock:
            self.commands_processed += 1
            self.command_latencies.append(latency)

    async def record_command_error(self):
        await self._ensure_lock()
        async with self.lock:
            self.command_errors += 1

    async def record_protocol_error(self):
        await self._ensure_lock()
        async with self.lock:
            self.protocol_errors += 1

    def record_bytes_read(self, count: int):
        # Not locked: called synchronously from the connection read loop.
        self.bytes_read += count

    async def get_stats(self, active_connections: int) -> Dict:
        """Get current statistics."""
        await self._ensure_lock()
        async with self.lock:
            uptime = time.time() - self.start_time

            avg_latency = 0.0
            if self.command_latencies:
                avg_latency = sum(self.command_latencies) / len(self.command_latencies)

            commands_per_sec = 0.0
            if uptime > 0:
                commands_per_sec = self.commands_processed / uptime

            return {
                "uptime_seconds": round(uptime, 2),
                "active_connections": active_connections,
                "connections_opened": self.connections_opened,
                "connections_closed": self.connections_closed,
                "commands_processed": self.commands_processed,
                "command_errors": self.command_errors,
                "protocol_errors": self.protocol_errors,
                "bytes_read": self.bytes_read,
                "avg_command_latency_seconds": round(avg_latency, 6),
                "commands_per_second": round(commands_per_sec, 2)
            }
