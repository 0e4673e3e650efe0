"""Structured logging for the meet_mcp server.

Uses structlog's ProcessorFormatter so every ``logging.getLogger(__name__)``
call site renders through the same pipeline.

Two output formats:
- ``text``: colored, human-readable console output (dev default)
- ``json``: JSON lines (production / log aggregation)

Everything is written to stderr: under the stdio transport, stdout carries
the MCP protocol stream and must stay clean.  The active principal and the
OTel trace context are injected by processors, and every handler carries a
:class:`CredentialRedactionFilter`.
"""

from __future__ import annotations

import logging
import re
import sys
from contextvars import ContextVar
from pathlib import Path

import structlog
from opentelemetry import trace

_principal_context: ContextVar[str | None] = ContextVar("principal_id", default=None)


def set_principal_context(principal_id: str | None) -> None:
    """Set the principal id for the current async context."""
    _principal_context.set(principal_id)


def get_principal_context() -> str | None:
    return _principal_context.get()


# ---------------------------------------------------------------------------
# Structlog processors
# ---------------------------------------------------------------------------


def add_principal_context(
    logger: logging.Logger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: dict,
) -> dict:
    """Inject ``principal`` from the ContextVar into the event dict."""
    event_dict["principal"] = _principal_context.get()
    return event_dict


def add_otel_context(
    logger: logging.Logger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: dict,
) -> dict:
    """Inject ``trace_id`` and ``span_id`` from the current OTel span."""
    ctx = trace.get_current_span().get_span_context()
    if ctx and ctx.trace_id:
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    return event_dict


# ---------------------------------------------------------------------------
# Credential redaction
# ---------------------------------------------------------------------------

_SECRET_KEYS = r"(?:client_secret|refresh_token|access_token|token)"
_REDACTION_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(rf"(?i)\b({_SECRET_KEYS})\s*=\s*([^\s,;&]+)"), r"\1=[REDACTED]"),
    (
        re.compile(rf"""(?i)(['"]?{_SECRET_KEYS}['"]?\s*:\s*)(['"]).*?\2"""),
        r'\1"[REDACTED]"',
    ),
    (re.compile(rf"""(?i)\b({_SECRET_KEYS})\s*:\s*([^\s,;"']+)"""), r"\1: [REDACTED]"),
    (re.compile(r"(?i)\bBearer\s+[A-Za-z0-9._~+/=-]+"), "Bearer [REDACTED]"),
)


def redact_credential_values(message: str) -> str:
    """Replace credential-shaped values (tokens, client secrets) with ``[REDACTED]``."""
    for pattern, replacement in _REDACTION_PATTERNS:
        message = pattern.sub(replacement, message)
    return message


class CredentialRedactionFilter(logging.Filter):
    """Scrub credential values from every record before it is emitted.

    The message is interpolated first; when anything is redacted the result
    replaces ``msg`` and ``args`` is cleared so it is not formatted twice.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not isinstance(record.msg, str):
            # structlog-native records carry an event dict.
            return True
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            return True
        redacted = redact_credential_values(message)
        if redacted != message:
            record.msg = redacted
            record.args = ()
        return True


_NOISE_LOGGERS = (
    "uvicorn.access",
    "uvicorn.error",
    "mcp.server.lowlevel.server",
    "httpx",
    "httpcore",
)


def _build_processors(time_fmt: str) -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt=time_fmt),
        add_principal_context,
        add_otel_context,
        structlog.stdlib.ExtraAdder(),
    ]


def configure_logging(
    level: str = "INFO",
    fmt: str = "text",
    log_root: Path | None = None,
) -> None:
    """Configure structured logging for the process.

    Parameters
    ----------
    level:
        Root log level (e.g. "DEBUG", "INFO").
    fmt:
        ``"text"`` for colored console output, ``"json"`` for JSON lines.
    log_root:
        Optional directory; when set, a JSON copy of every record is also
        written to ``{log_root}/meet-mcp.log``.
    """
    if fmt == "json":
        processors = _build_processors(time_fmt="iso")
        renderer = structlog.processors.JSONRenderer()
    else:
        processors = _build_processors(time_fmt="%H:%M:%S")
        renderer = structlog.dev.ConsoleRenderer()

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=processors,
    )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(CredentialRedactionFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console_handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in _NOISE_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if log_root is not None:
        log_root = Path(log_root)
        log_root.mkdir(parents=True, exist_ok=True)
        file_formatter = structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.JSONRenderer(),
            ],
            foreign_pre_chain=_build_processors(time_fmt="iso"),
        )
        file_handler = logging.FileHandler(log_root / "meet-mcp.log")
        file_handler.setFormatter(file_formatter)
        file_handler.setLevel(logging.DEBUG)
        file_handler.addFilter(CredentialRedactionFilter())
        root.addHandler(file_handler)

    structlog.configure(
        processors=[
            *processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
