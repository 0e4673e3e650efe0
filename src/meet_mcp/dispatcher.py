"""Single entry point for tool invocations.

``Dispatcher.dispatch`` resolves the tool, validates arguments, obtains a
bearer token, invokes the adapter and wraps the outcome in a result
envelope.  It never raises for a tool failure: every exception is classified
into a :class:`~meet_mcp.errors.ToolError`.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Literal

from opentelemetry import trace
from pydantic import BaseModel, ConfigDict

from meet_mcp.auth import AuthManager
from meet_mcp.classifier import classify
from meet_mcp.core.logging import set_principal_context
from meet_mcp.core.metrics import ToolMetrics
from meet_mcp.core.telemetry import tool_span
from meet_mcp.errors import (
    AuthError,
    ErrorKind,
    ProviderRequestError,
    ToolError,
    UnknownToolError,
)
from meet_mcp.providers import CalendarAdapter, MeetAdapter
from meet_mcp.registry import ToolDescriptor, get_tool
from meet_mcp.schemas import ToolArguments, validate_arguments

logger = logging.getLogger(__name__)

# Failures decided locally, before any provider traffic.
_LOCAL_ERROR_KINDS = frozenset({ErrorKind.INVALID_INPUT, ErrorKind.UNKNOWN_TOOL})


class ToolSuccess(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: Literal[True] = True
    data: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class ToolFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: Literal[False] = False
    error: ToolError

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


ResultEnvelope = ToolSuccess | ToolFailure


class Dispatcher:
    """Routes tool calls for one principal session."""

    def __init__(
        self,
        auth: AuthManager,
        calendar: CalendarAdapter,
        meet: MeetAdapter,
        *,
        metrics: ToolMetrics | None = None,
    ) -> None:
        self._auth = auth
        self._adapters: dict[str, CalendarAdapter | MeetAdapter] = {
            "calendar": calendar,
            "meet": meet,
        }
        self._metrics = metrics or ToolMetrics()
        self._last_provider_error: ToolError | None = None

    @property
    def last_provider_error(self) -> ToolError | None:
        return self._last_provider_error

    async def dispatch(self, tool_name: str, raw_args: Any) -> ResultEnvelope:
        """Run *tool_name* with *raw_args* and return a result envelope."""
        started = time.monotonic()
        set_principal_context(self._auth.principal_id)

        try:
            descriptor = get_tool(tool_name)
        except UnknownToolError as exc:
            return self._failure(str(tool_name), exc, started)

        with tool_span(tool_name, category=descriptor.category) as span:
            try:
                args = validate_arguments(tool_name, descriptor.input_model, raw_args)
                data = await self._invoke(descriptor, args)
            except Exception as exc:
                failure = self._failure(tool_name, exc, started)
                span.set_attribute("tool.error_kind", failure.error.kind.value)
                span.set_status(trace.StatusCode.ERROR, failure.error.kind.value)
                return failure

        self._record(tool_name, started, outcome="success")
        return ToolSuccess(data=data)

    def get_health(self) -> dict[str, Any]:
        """Synchronous snapshot of auth and provider health."""
        health: dict[str, Any] = {"auth_state": self._auth.state.value}
        if self._last_provider_error is not None:
            health["last_provider_error"] = self._last_provider_error.model_dump(
                mode="json", exclude_none=True
            )
        expires_in = self._auth.token_expires_in_seconds()
        if expires_in is not None:
            health["token_expires_in_seconds"] = expires_in
        return health

    async def probe(self) -> dict[str, Any]:
        """Obtain a token (refreshing if needed), then return :meth:`get_health`."""
        try:
            await self._auth.get_valid_access_token()
        except AuthError as exc:
            self._last_provider_error = classify(exc, "health")
        return self.get_health()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _invoke(self, descriptor: ToolDescriptor, args: ToolArguments) -> dict[str, Any]:
        method = getattr(self._adapters[descriptor.adapter], descriptor.method)
        token = await self._auth.get_valid_access_token()
        try:
            return await method(token, args)
        except ProviderRequestError as exc:
            if exc.status_code != 401:
                raise
            # Google rejected a token we believed valid: refresh once and retry once.
            logger.info(
                "Access token rejected by Google; refreshing and retrying %s", descriptor.name
            )
            token = await self._auth.get_valid_access_token(
                force_refresh=True, rejected_token=token
            )
            return await method(token, args)

    def _failure(self, tool_name: str, exc: Exception, started: float) -> ToolFailure:
        error = classify(exc, tool_name)
        if error.kind not in _LOCAL_ERROR_KINDS:
            self._last_provider_error = error
        if error.kind is ErrorKind.UNKNOWN:
            logger.warning("Unclassified failure in %s", tool_name, exc_info=exc)
        self._record(tool_name, started, outcome="error", error_kind=error.kind)
        return ToolFailure(error=error)

    def _record(
        self,
        tool_name: str,
        started: float,
        *,
        outcome: str,
        error_kind: ErrorKind | None = None,
    ) -> None:
        duration_ms = (time.monotonic() - started) * 1000
        self._metrics.record_tool_call(
            tool_name,
            outcome=outcome,
            duration_ms=duration_ms,
            error_kind=error_kind.value if error_kind is not None else None,
        )
        logger.info(
            "tool call %s %s",
            tool_name,
            outcome,
            extra={
                "tool_name": tool_name,
                "outcome": outcome,
                "duration_ms": round(duration_ms, 2),
                "error_kind": error_kind.value if error_kind is not None else None,
            },
        )
