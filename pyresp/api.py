"""FastAPI status API for PyResp."""

import asyncio
from typing import Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from .server import Server


app = FastAPI(title="PyResp API", version="1.0.0")
server_instance: Optional[Server] = None

SECRET_KEYS = {"tls_key_file"}


class HealthResponse(BaseModel):
    status: str
    server_running: bool


def set_server(server: Optional[Server]):
    """Set the server instance for the API."""
    global server_instance
    server_instance = server


@app.get("/health", response_model=HealthResponse)
async def health():
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        server_running=server_instance is not None and server_instance.running
    )


@app.get("/api/stats")
async def get_stats():
    """Get connection and command statistics."""
    if not server_instance:
        raise HTTPException(status_code=503, detail="Server not available")

    loop = server_instance.event_loop
    if loop is not None and loop.is_running() and loop is not asyncio.get_running_loop():
        # The RESP server owns its metrics lock; ask its loop for the numbers.
        future = asyncio.run_coroutine_threadsafe(server_instance.get_stats(), loop)
        return await asyncio.wrap_future(future)
    return await server_instance.get_stats()


@app.get("/api/config")
async def get_config():
    """Get the effective configuration with secrets masked."""
    if not server_instance:
        raise HTTPException(status_code=503, detail="Server not available")

    masked = {}
    for section, values in server_instance.config.config.items():
        if isinstance(values, dict):
            masked[section] = {
                key: ("***" if key in SECRET_KEYS and value else value)
                for key, value in values.items()
            }
        else:
            masked[section] = values
    return masked
