"""Exception hierarchy and error taxonomy for the tool-invocation pipeline.

Raw failures are raised as the exceptions below (or as ``httpx`` transport
exceptions, which propagate unmodified from the provider adapters).  The
dispatcher turns every one of them into a :class:`ToolError` through
:func:`meet_mcp.classifier.classify`.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class ErrorKind(StrEnum):
    """Closed set of error kinds surfaced to callers."""

    INVALID_INPUT = "InvalidInput"
    UNKNOWN_TOOL = "UnknownTool"
    AUTH_EXPIRED = "AuthExpired"
    AUTH_REVOKED = "AuthRevoked"
    PERMISSION_DENIED = "PermissionDenied"
    FEATURE_REQUIRES_UPGRADE = "FeatureRequiresUpgrade"
    NOT_FOUND = "NotFound"
    RATE_LIMITED = "RateLimited"
    PROVIDER_UNAVAILABLE = "ProviderUnavailable"
    UNKNOWN = "Unknown"


class ToolError(BaseModel):
    """Classified, caller-facing error carried by a failed result envelope."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: ErrorKind
    message: str
    http_status: int | None = None
    retriable: bool = False


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class MeetMCPError(RuntimeError):
    """Base error raised by meet_mcp auth and request helpers."""


class CredentialError(MeetMCPError):
    """Raised when no usable credential source is configured or readable.

    The message names missing variables or files but never secret values.
    """


class AuthError(MeetMCPError):
    """Base class for failures to obtain a valid access token."""


class AuthExpiredError(AuthError):
    """Raised when a usable access token could not be obtained this time."""


class AuthRevokedError(AuthError):
    """Raised when the refresh token is missing, invalid, or revoked.

    Terminal for the principal session: re-authorization is required.
    """


class TokenEndpointUnavailableError(AuthError):
    """Raised when the OAuth token endpoint is unreachable or failing (5xx/429)."""


class ProviderRequestError(MeetMCPError):
    """Raised when a Google API request returns a non-2xx status."""

    def __init__(self, *, status_code: int, message: str, reason: str | None = None) -> None:
        self.status_code = status_code
        self.message = message
        self.reason = reason
        super().__init__(f"Google API request failed ({status_code}): {message}")


class InvalidArgumentsError(MeetMCPError):
    """Raised by the validation layer for the first failing field of a tool call.

    ``expected`` is a constraint phrase such as ``"must be strictly after
    start_time"`` or ``"is required"``; it reads after the field name.
    """

    def __init__(self, *, tool_name: str, field: str, expected: str, received: object) -> None:
        self.tool_name = tool_name
        self.field = field
        self.expected = expected
        self.received = received
        super().__init__(f"{tool_name}: {self.detail}")

    @property
    def detail(self) -> str:
        subject = "arguments" if self.field == "arguments" else f"argument '{self.field}'"
        return f"{subject} {self.expected}; received {_describe_received(self.received)}"


class UnknownToolError(MeetMCPError):
    """Raised when a tool name is not in the registry."""

    def __init__(self, tool_name: object) -> None:
        self.tool_name = tool_name
        super().__init__(f"Unknown tool: {tool_name!r}")


def _describe_received(value: object) -> str:
    if value is MISSING:
        return "nothing"
    text = repr(value)
    if len(text) > 80:
        text = text[:77] + "..."
    return text


class _Missing:
    def __repr__(self) -> str:
        return "<missing>"


MISSING = _Missing()
