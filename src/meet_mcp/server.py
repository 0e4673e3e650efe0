"""FastMCP binding for the tool registry.

Every catalog entry is registered as a :class:`DispatchedTool` whose input
schema comes from the tool's pydantic argument model and whose execution is
delegated to :meth:`Dispatcher.dispatch`.  The raw MCP arguments are passed
through unvalidated so that the dispatcher alone decides what is invalid.

The same behaviour is available in-process through :func:`list_tools` and
:func:`call_tool`.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

import httpx
import uvicorn
from fastmcp import FastMCP
from fastmcp.exceptions import ToolError as MCPToolError
from fastmcp.tools import Tool
from fastmcp.tools.tool import ToolResult
from mcp.types import TextContent

from meet_mcp.auth import AuthManager
from meet_mcp.config import SERVER_NAME, MeetMCPConfig
from meet_mcp.core.metrics import ToolMetrics, init_metrics
from meet_mcp.core.telemetry import init_telemetry
from meet_mcp.credentials import select_credential_store
from meet_mcp.dispatcher import Dispatcher, ResultEnvelope, ToolSuccess
from meet_mcp.providers import CalendarAdapter, MeetAdapter
from meet_mcp.registry import TOOLS, ToolDescriptor, tool_catalog

logger = logging.getLogger(__name__)

_INSTRUCTIONS = (
    "Google Calendar and Google Meet tools. Use calendar_v3_create_event with "
    "create_meet_conference=true to schedule a meeting with a Meet link on any account; "
    "meet_v2_* space and artifact tools may require a Google Workspace tier."
)


def list_tools() -> list[dict[str, Any]]:
    """Return the tool catalog as ``{name, description, inputSchema}`` entries."""
    return tool_catalog()


async def call_tool(
    dispatcher: Dispatcher, name: str, arguments: Mapping[str, Any] | None
) -> dict[str, Any]:
    """Invoke *name* and return an MCP ``CallToolResult``-shaped dict."""
    envelope = await dispatcher.dispatch(name, dict(arguments) if arguments is not None else None)
    return {
        "content": [{"type": "text", "text": render_envelope(envelope)}],
        "isError": not envelope.ok,
    }


def render_envelope(envelope: ResultEnvelope) -> str:
    if isinstance(envelope, ToolSuccess):
        return json.dumps(envelope.data, indent=2)
    return envelope.error.message


class DispatchedTool(Tool):
    """MCP tool whose calls are served by a :class:`Dispatcher`."""

    dispatcher: Any

    @classmethod
    def from_descriptor(cls, descriptor: ToolDescriptor, dispatcher: Dispatcher) -> DispatchedTool:
        return cls(
            name=descriptor.name,
            description=descriptor.description,
            parameters=descriptor.input_schema(),
            tags={descriptor.category},
            dispatcher=dispatcher,
        )

    async def run(self, arguments: dict[str, Any]) -> ToolResult:
        envelope = await self.dispatcher.dispatch(self.name, arguments)
        if not envelope.ok:
            raise MCPToolError(render_envelope(envelope))
        return ToolResult(content=[TextContent(type="text", text=render_envelope(envelope))])


def create_server(dispatcher: Dispatcher) -> FastMCP:
    """Build a FastMCP application exposing every registered tool."""
    mcp = FastMCP(SERVER_NAME, instructions=_INSTRUCTIONS)
    for descriptor in TOOLS:
        mcp.add_tool(DispatchedTool.from_descriptor(descriptor, dispatcher))
    logger.debug("Registered %d tools on %s", len(TOOLS), SERVER_NAME)
    return mcp


def build_http_client(config: MeetMCPConfig) -> httpx.AsyncClient:
    """Shared HTTP client for the token endpoint and both Google APIs."""
    return httpx.AsyncClient(timeout=httpx.Timeout(config.server.request_timeout_s))


def build_dispatcher(
    config: MeetMCPConfig,
    http_client: httpx.AsyncClient,
    *,
    environ: Mapping[str, str] | None = None,
    metrics: ToolMetrics | None = None,
) -> Dispatcher:
    """Wire credential store, auth manager and adapters into a dispatcher.

    Raises :class:`~meet_mcp.errors.CredentialError` when neither credential
    source is configured.
    """
    metrics = metrics or ToolMetrics()
    store = select_credential_store(environ)
    auth = AuthManager(
        store,
        http_client,
        principal_id=config.google.principal_id,
        metrics=metrics,
    )
    return Dispatcher(
        auth,
        CalendarAdapter(http_client),
        MeetAdapter(http_client),
        metrics=metrics,
    )


async def serve(config: MeetMCPConfig, *, environ: Mapping[str, str] | None = None) -> None:
    """Run the server on the configured transport until it is stopped."""
    init_telemetry(SERVER_NAME)
    init_metrics(SERVER_NAME)

    async with build_http_client(config) as http_client:
        dispatcher = build_dispatcher(config, http_client, environ=environ)
        mcp = create_server(dispatcher)

        if config.server.transport == "sse":
            app = mcp.http_app(transport="sse")
            uvicorn_config = uvicorn.Config(
                app,
                host=config.server.host,
                port=config.server.port,
                log_level="info",
                timeout_graceful_shutdown=0,
            )
            logger.info(
                "Serving %s over SSE on %s:%d",
                SERVER_NAME,
                config.server.host,
                config.server.port,
            )
            await uvicorn.Server(uvicorn_config).serve()
        else:
            logger.info("Serving %s over stdio", SERVER_NAME)
            await mcp.run_async(transport="stdio")
