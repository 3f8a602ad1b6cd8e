#!/usr/bin/env python3
"""Launcher script for the RESP server plus its status API."""

import asyncio
import threading
import time

import uvicorn

from pyresp.api import app, set_server
from pyresp.server import Server


def start_server() -> Server:
    """Run the RESP server on its own event loop in a background thread."""
    server = Server()
    set_server(server)

    server_thread = threading.Thread(target=asyncio.run, args=(server.start(),), daemon=True)
    server_thread.start()
    time.sleep(1)

    return server


if __name__ == "__main__":
    server = start_server()

    api_port = server.config.get("api", "port", 8080)
    print(f"Starting API server on port {api_port}")
    print(f"RESP server running on {server.host}:{server.port}")

    try:
        uvicorn.run(app, host="0.0.0.0", port=api_port)
    except KeyboardInterrupt:
        print("\nShutting down...")
