"""Map raw failures to the closed :class:`~meet_mcp.errors.ErrorKind` taxonomy.

Classification is driven by exception type and HTTP status.  Message text
is consulted only for 403 responses, to tell Workspace licensing gates apart
from ordinary permission failures; those patterns live in
``LICENSING_PATTERNS`` below and nowhere else.

Messages are paraphrased.  Provider payloads are never echoed verbatim;
the only provider-derived text that may reach a caller is the canonical
reason code (e.g. ``PERMISSION_DENIED``), after credential redaction.
"""

from __future__ import annotations

import httpx

from meet_mcp.core.logging import redact_credential_values
from meet_mcp.errors import (
    AuthExpiredError,
    AuthRevokedError,
    CredentialError,
    ErrorKind,
    InvalidArgumentsError,
    ProviderRequestError,
    TokenEndpointUnavailableError,
    ToolError,
    UnknownToolError,
)

# Case-insensitive fragments of Google 403 messages that signal a licensing or
# tier restriction rather than missing scopes/ACLs.
LICENSING_PATTERNS: tuple[str, ...] = (
    "business standard",
    "workspace edition",
    "workspace plan",
    "license",
    "licence",
    "upgrade",
    "premium",
    "gemini",
    "not available for your",
    "feature is not enabled",
)

# Meet config features that are tier-gated; a bare PERMISSION_DENIED from a
# Meet tool that touches them is treated as a licensing gate.
_TIER_GATED_MEET_TOOLS = frozenset({"meet_v2_create_space", "meet_v2_update_space"})

_REMEDIATION = {
    ErrorKind.INVALID_INPUT: "Check argument formats (timestamps as 2025-08-01T10:00:00Z, "
    "resource names such as spaces/{id}) and try again.",
    ErrorKind.AUTH_EXPIRED: "Retry the call; if it keeps failing, re-run the authorization "
    "flow to obtain a new refresh token.",
    ErrorKind.AUTH_REVOKED: "Re-run the authorization flow to grant access again.",
    ErrorKind.PERMISSION_DENIED: "Make sure the account granted the Calendar and Meet scopes "
    "and has access to this resource.",
    ErrorKind.FEATURE_REQUIRES_UPGRADE: "This feature requires a higher Google Workspace tier "
    "(recording/transcription need Business Standard or above, smart notes need Gemini). "
    "Use calendar_v3_create_event with create_meet_conference=true for a basic Meet link.",
    ErrorKind.NOT_FOUND: "Verify the identifier; list the parent collection first to obtain a "
    "valid one. Conference artifacts can take some time to appear after a meeting ends.",
    ErrorKind.RATE_LIMITED: "Wait a minute or two before retrying.",
    ErrorKind.PROVIDER_UNAVAILABLE: "Google could not be reached or is failing; retry shortly.",
    ErrorKind.UNKNOWN: "Retry once; if it persists, report the tool name and time of failure.",
}

_LABELS = {
    ErrorKind.INVALID_INPUT: "Invalid request",
    ErrorKind.UNKNOWN_TOOL: "Unknown tool",
    ErrorKind.AUTH_EXPIRED: "Authentication expired",
    ErrorKind.AUTH_REVOKED: "Authorization revoked",
    ErrorKind.PERMISSION_DENIED: "Access denied",
    ErrorKind.FEATURE_REQUIRES_UPGRADE: "Feature requires upgrade",
    ErrorKind.NOT_FOUND: "Not found",
    ErrorKind.RATE_LIMITED: "Rate limited",
    ErrorKind.PROVIDER_UNAVAILABLE: "Google API unavailable",
    ErrorKind.UNKNOWN: "Unexpected error",
}

_RETRIABLE = frozenset({ErrorKind.RATE_LIMITED, ErrorKind.PROVIDER_UNAVAILABLE})


def classify(exc: BaseException, tool_name: str) -> ToolError:
    """Classify *exc* raised while serving *tool_name*."""
    if isinstance(exc, UnknownToolError):
        return ToolError(
            kind=ErrorKind.UNKNOWN_TOOL,
            message=f"{_LABELS[ErrorKind.UNKNOWN_TOOL]}: {exc.tool_name!r} is not a "
            "supported tool. Call tools/list to see the available tools.",
        )

    if isinstance(exc, InvalidArgumentsError):
        target = "the arguments" if exc.field == "arguments" else f"'{exc.field}'"
        return _build(
            ErrorKind.INVALID_INPUT,
            tool_name,
            detail=exc.detail,
            remediation=f"Correct {target} and call {tool_name} again.",
        )

    if isinstance(exc, AuthRevokedError):
        return _build(ErrorKind.AUTH_REVOKED, tool_name)

    if isinstance(exc, CredentialError):
        return _build(
            ErrorKind.AUTH_REVOKED, tool_name, detail="stored credentials could not be loaded"
        )

    if isinstance(exc, TokenEndpointUnavailableError):
        return _build(
            ErrorKind.PROVIDER_UNAVAILABLE,
            tool_name,
            detail="the OAuth token endpoint could not be reached",
        )

    if isinstance(exc, AuthExpiredError):
        return _build(ErrorKind.AUTH_EXPIRED, tool_name)

    if isinstance(exc, ProviderRequestError):
        return classify_status(exc.status_code, tool_name, message=exc.message, reason=exc.reason)

    if isinstance(exc, httpx.TimeoutException):
        return _build(ErrorKind.PROVIDER_UNAVAILABLE, tool_name, detail="the request timed out")

    if isinstance(exc, httpx.TransportError):
        return _build(
            ErrorKind.PROVIDER_UNAVAILABLE,
            tool_name,
            detail=f"network failure ({_network_failure(exc)})",
        )

    return _build(ErrorKind.UNKNOWN, tool_name)


def classify_status(
    status_code: int,
    tool_name: str,
    *,
    message: str = "",
    reason: str | None = None,
) -> ToolError:
    """Classify a Google HTTP error status.

    The same status always yields the same kind; only a 403 looks further,
    at *message* and *reason*, to separate licensing gates from ordinary
    permission failures.
    """
    if status_code == 400:
        kind = ErrorKind.INVALID_INPUT
    elif status_code == 401:
        kind = ErrorKind.AUTH_EXPIRED
    elif status_code == 403:
        kind = (
            ErrorKind.FEATURE_REQUIRES_UPGRADE
            if is_licensing_error(message, reason, tool_name)
            else ErrorKind.PERMISSION_DENIED
        )
    elif status_code == 404:
        kind = ErrorKind.NOT_FOUND
    elif status_code == 429:
        kind = ErrorKind.RATE_LIMITED
    elif 500 <= status_code < 600:
        kind = ErrorKind.PROVIDER_UNAVAILABLE
    else:
        kind = ErrorKind.UNKNOWN

    detail = f"Google returned {status_code}"
    if reason:
        detail += f" ({redact_credential_values(reason)[:64]})"
    return _build(kind, tool_name, detail=detail, http_status=status_code)


def is_licensing_error(message: str, reason: str | None, tool_name: str) -> bool:
    lowered = message.lower()
    if any(pattern in lowered for pattern in LICENSING_PATTERNS):
        return True
    if reason == "PERMISSION_DENIED" and tool_name in _TIER_GATED_MEET_TOOLS:
        return True
    return "PERMISSION_DENIED" in message and tool_name in _TIER_GATED_MEET_TOOLS


def _build(
    kind: ErrorKind,
    tool_name: str,
    *,
    detail: str | None = None,
    http_status: int | None = None,
    remediation: str | None = None,
) -> ToolError:
    parts = [f"{_LABELS[kind]} in {tool_name}"]
    if detail:
        parts.append(f": {detail}")
    text = "".join(parts) + "."
    next_action = remediation or _REMEDIATION.get(kind)
    if next_action:
        text += f" {next_action}"
    return ToolError(
        kind=kind,
        message=redact_credential_values(text),
        http_status=http_status,
        retriable=kind in _RETRIABLE,
    )


def _network_failure(exc: httpx.TransportError) -> str:
    text = str(exc)
    if "Name or service not known" in text or "nodename nor servname" in text:
        return "DNS lookup failed"
    if isinstance(exc, httpx.ConnectError):
        return "connection refused or unreachable"
    return type(exc).__name__
