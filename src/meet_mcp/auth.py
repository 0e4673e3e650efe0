"""OAuth2 access-token lifecycle for one principal session.

State machine::

    unauthenticated --load--> token_unknown --refresh--> token_valid
                                    |                       |
                                    |                 (safety margin)
                                    v                       v
                              refresh_failed  <--refresh-- token_expired

``refresh_failed`` is terminal: the refresh token was rejected by Google and
every later call fails fast with :class:`AuthRevokedError` until the process
is re-authorized.

Refreshes are single-flight.  ``_refresh_lock`` serializes them and every
waiter re-checks the cached token after acquiring the lock, so N concurrent
callers that all find the token stale cause exactly one token-endpoint
request.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any

import httpx

from meet_mcp.core.metrics import ToolMetrics
from meet_mcp.credentials import DEFAULT_PRINCIPAL, CredentialRecord, CredentialStore
from meet_mcp.errors import AuthExpiredError, AuthRevokedError, TokenEndpointUnavailableError

logger = logging.getLogger(__name__)

GOOGLE_OAUTH_TOKEN_URL = "https://oauth2.googleapis.com/token"

# Tokens are treated as expired this long before Google's stated expiry.
EXPIRY_SAFETY_MARGIN_SECONDS = 60
MIN_TOKEN_TTL_SECONDS = 30
DEFAULT_EXPIRES_IN_SECONDS = 3600

_REVOKED_STATUS_CODES = {400, 401}


class AuthState(StrEnum):
    UNAUTHENTICATED = "unauthenticated"
    TOKEN_UNKNOWN = "token_unknown"
    TOKEN_VALID = "token_valid"
    TOKEN_EXPIRED = "token_expired"
    REFRESH_FAILED = "refresh_failed"


class AuthManager:
    """Owns the access/refresh token pair for one principal."""

    def __init__(
        self,
        store: CredentialStore,
        http_client: httpx.AsyncClient,
        *,
        principal_id: str = DEFAULT_PRINCIPAL,
        token_url: str = GOOGLE_OAUTH_TOKEN_URL,
        metrics: ToolMetrics | None = None,
    ) -> None:
        self._store = store
        self._http_client = http_client
        self._principal_id = principal_id
        self._token_url = token_url
        self._metrics = metrics or ToolMetrics()

        self._record: CredentialRecord | None = None
        self._access_token: str | None = None
        self._fresh_until: datetime | None = None
        self._state = AuthState.UNAUTHENTICATED
        self._refresh_lock = asyncio.Lock()

    @property
    def principal_id(self) -> str:
        return self._principal_id

    @property
    def state(self) -> AuthState:
        if self._state is AuthState.TOKEN_VALID and not self._token_is_fresh():
            return AuthState.TOKEN_EXPIRED
        return self._state

    def token_expires_in_seconds(self) -> int | None:
        """Seconds until Google's stated expiry of the cached token, if any."""
        if self._record is None or self._record.access_token_expiry is None:
            return None
        if self._access_token is None:
            return None
        remaining = (self._record.access_token_expiry - datetime.now(UTC)).total_seconds()
        return max(int(remaining), 0)

    async def get_valid_access_token(
        self,
        *,
        force_refresh: bool = False,
        rejected_token: str | None = None,
    ) -> str:
        """Return a bearer token that is not within the expiry safety margin.

        ``force_refresh`` bypasses the freshness check, used after Google
        rejected a token it should have accepted.  Pass the rejected token as
        ``rejected_token``: when a concurrent caller has already replaced it,
        the replacement is returned without another refresh.

        Raises
        ------
        AuthRevokedError
            No credential record, or the refresh token was rejected.
        AuthExpiredError
            The token endpoint answered without a usable access token.
        TokenEndpointUnavailableError
            The token endpoint was unreachable, timed out, or failing.
        """
        self._raise_if_revoked()
        if not force_refresh and self._token_is_fresh():
            assert self._access_token is not None
            return self._access_token

        async with self._refresh_lock:
            self._raise_if_revoked()
            if self._record is None:
                await self._load_record()

            if self._token_is_fresh():
                assert self._access_token is not None
                if not force_refresh:
                    return self._access_token
                if rejected_token is not None and self._access_token != rejected_token:
                    return self._access_token

            await self._refresh_access_token()
            assert self._access_token is not None
            return self._access_token

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _raise_if_revoked(self) -> None:
        if self._state is AuthState.REFRESH_FAILED:
            raise AuthRevokedError(
                "Google rejected the stored refresh token; authorization must be re-run"
            )

    def _token_is_fresh(self) -> bool:
        if self._access_token is None or self._fresh_until is None:
            return False
        return datetime.now(UTC) < self._fresh_until

    async def _load_record(self) -> None:
        record = await self._store.load(self._principal_id)
        if record is None:
            raise AuthRevokedError(
                f"No Google credentials stored for principal {self._principal_id!r}; "
                "run the authorization flow first"
            )
        self._record = record
        self._state = AuthState.TOKEN_UNKNOWN

        expiry = record.access_token_expiry
        if record.access_token and expiry is not None:
            fresh_until = expiry - timedelta(seconds=EXPIRY_SAFETY_MARGIN_SECONDS)
            if datetime.now(UTC) < fresh_until:
                self._access_token = record.access_token
                self._fresh_until = fresh_until
                self._state = AuthState.TOKEN_VALID
        logger.debug(
            "Loaded credentials for principal=%s state=%s", self._principal_id, self._state
        )

    async def _refresh_access_token(self) -> None:
        record = self._record
        assert record is not None

        try:
            response = await self._http_client.post(
                self._token_url,
                data={
                    "client_id": record.client_id,
                    "client_secret": record.client_secret,
                    "refresh_token": record.refresh_token,
                    "grant_type": "refresh_token",
                },
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            self._metrics.record_refresh("unavailable")
            raise TokenEndpointUnavailableError(
                f"Google OAuth token refresh request failed: {type(exc).__name__}"
            ) from exc

        if response.status_code in _REVOKED_STATUS_CODES:
            error_code = _oauth_error_code(response)
            self._state = AuthState.REFRESH_FAILED
            self._access_token = None
            self._fresh_until = None
            self._metrics.record_refresh("revoked")
            logger.warning(
                "Refresh token rejected for principal=%s (status=%d, error=%s)",
                self._principal_id,
                response.status_code,
                error_code,
            )
            raise AuthRevokedError(
                f"Google OAuth refresh was rejected ({response.status_code}, {error_code}); "
                "authorization must be re-run"
            )

        if response.status_code == 429 or response.status_code >= 500:
            self._metrics.record_refresh("unavailable")
            raise TokenEndpointUnavailableError(
                f"Google OAuth token endpoint unavailable ({response.status_code})"
            )

        if response.status_code < 200 or response.status_code >= 300:
            self._metrics.record_refresh("malformed")
            raise AuthExpiredError(
                f"Google OAuth token refresh failed ({response.status_code}, "
                f"{_oauth_error_code(response)})"
            )

        try:
            payload = response.json()
        except ValueError as exc:
            self._metrics.record_refresh("malformed")
            raise AuthExpiredError("Google OAuth token endpoint returned invalid JSON") from exc

        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if not isinstance(access_token, str) or not access_token.strip():
            self._metrics.record_refresh("malformed")
            raise AuthExpiredError(
                "Google OAuth token response is missing a non-empty access_token"
            )

        expires_in = _coerce_expires_in_seconds(payload.get("expires_in"))
        now = datetime.now(UTC)
        expiry = now + timedelta(seconds=expires_in)
        updated = record.with_access_token(access_token.strip(), expiry)

        # Commit the fully resolved pair in one step, then persist it.
        self._record = updated
        self._access_token = updated.access_token
        self._fresh_until = now + timedelta(
            seconds=max(expires_in - EXPIRY_SAFETY_MARGIN_SECONDS, MIN_TOKEN_TTL_SECONDS)
        )
        self._state = AuthState.TOKEN_VALID
        self._metrics.record_refresh("success")
        logger.info(
            "Refreshed access token for principal=%s (expires_in=%ds)",
            self._principal_id,
            expires_in,
        )

        try:
            await self._store.save(self._principal_id, updated)
        except Exception:
            # The new token stays usable in memory; only persistence failed.
            logger.warning(
                "Failed to persist refreshed token for principal=%s",
                self._principal_id,
                exc_info=True,
            )


def _coerce_expires_in_seconds(value: Any) -> int:
    if isinstance(value, bool):
        return DEFAULT_EXPIRES_IN_SECONDS
    if isinstance(value, int | float):
        return int(value) if value > 0 else DEFAULT_EXPIRES_IN_SECONDS
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip()) or DEFAULT_EXPIRES_IN_SECONDS
    return DEFAULT_EXPIRES_IN_SECONDS


def _oauth_error_code(response: httpx.Response) -> str:
    """Return the OAuth ``error`` code (e.g. ``invalid_grant``); never the description."""
    try:
        payload = response.json()
    except ValueError:
        return "unknown_error"
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, str) and error.strip():
            return error.strip()[:64]
        if isinstance(error, dict):
            status = error.get("status")
            if isinstance(status, str) and status.strip():
                return status.strip()[:64]
    return "unknown_error"
