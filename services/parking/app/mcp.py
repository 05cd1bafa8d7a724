from __future__ import annotations

import os
from typing import Any, Awaitable, Callable, Dict

from anyio import to_thread
from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.server import TransportSecuritySettings

from libs.core import logging as core_logging
from libs.framework.tool_runtime import InternalFault, InvalidPayloadError, ToolRegistry

LOGGER = core_logging.get_logger("parking")


def _tool_function(
    registry: ToolRegistry, name: str
) -> Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]:
    async def invoke(data: Dict[str, Any]) -> Dict[str, Any]:
        try:
            result = await to_thread.run_sync(registry.dispatch, name, {"data": data})
        except (InvalidPayloadError, InternalFault) as exc:
            LOGGER.warning("mcp_tool_failed", tool_name=name, error=exc.detail)
            raise RuntimeError(exc.detail) from exc
        return result.model_dump(exclude_none=True)

    return invoke


def create_mcp_server(registry: ToolRegistry) -> FastMCP:
    default_hosts = [
        "parking",
        "parking:3000",
        "localhost",
        "localhost:3000",
        "localhost:*",
        "127.0.0.1",
        "127.0.0.1:3000",
        "127.0.0.1:*",
    ]
    raw_allowed_hosts = os.getenv("MCP_ALLOWED_HOSTS", "")
    allowed_hosts = [h.strip() for h in raw_allowed_hosts.split(",") if h.strip()] or default_hosts
    mcp = FastMCP(
        "parking-analysis",
        transport_security=TransportSecuritySettings(allowed_hosts=allowed_hosts),
    )
    for spec in registry.list_specs():
        mcp.add_tool(_tool_function(registry, spec.name), name=spec.name, description=spec.description)
    return mcp


def create_mcp_asgi_app(registry: ToolRegistry):
    mcp = create_mcp_server(registry)
    mcp_app = mcp.streamable_http_app()
    session_manager = mcp_app.routes[0].app.session_manager
    return mcp_app, session_manager
