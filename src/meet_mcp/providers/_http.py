"""Bearer-authenticated JSON transport shared by the Google adapters."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from meet_mcp.errors import MeetMCPError, ProviderRequestError

logger = logging.getLogger(__name__)


class GoogleRestClient:
    """Thin JSON-over-HTTPS helper bound to one Google API base URL.

    The caller supplies a bearer token on every request; the client never
    refreshes credentials.  Non-2xx responses raise
    :class:`ProviderRequestError`, and ``httpx`` transport exceptions
    propagate unmodified.
    """

    def __init__(self, base_url: str, http_client: httpx.AsyncClient) -> None:
        self._base_url = base_url.rstrip("/")
        self._http_client = http_client

    async def request_json(
        self,
        method: str,
        path: str,
        *,
        access_token: str,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        normalized_path = path if path.startswith("/") else f"/{path}"
        url = f"{self._base_url}{normalized_path}"

        response = await self._http_client.request(
            method,
            url,
            params=_drop_none(params),
            json=json_body,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/json",
            },
        )

        if response.status_code < 200 or response.status_code >= 300:
            message, reason = _google_error_details(response)
            logger.debug(
                "Google API %s %s failed: status=%d reason=%s",
                method,
                normalized_path,
                response.status_code,
                reason,
            )
            raise ProviderRequestError(
                status_code=response.status_code, message=message, reason=reason
            )

        if response.status_code == 204 or not response.content:
            return {}

        try:
            payload = response.json()
        except ValueError as exc:
            raise MeetMCPError(
                "Google API returned invalid JSON for a successful response"
            ) from exc

        if not isinstance(payload, dict):
            raise MeetMCPError("Google API returned an unexpected JSON payload shape")
        return payload


def _drop_none(params: dict[str, Any] | None) -> dict[str, Any] | None:
    if params is None:
        return None
    cleaned: dict[str, Any] = {}
    for key, value in params.items():
        if value is None:
            continue
        cleaned[key] = str(value).lower() if isinstance(value, bool) else value
    return cleaned


def _google_error_details(response: httpx.Response) -> tuple[str, str | None]:
    """Extract ``(message, reason)`` from a Google error response.

    ``message`` is whitespace-normalized and truncated to 200 characters.
    ``reason`` is the canonical status (``PERMISSION_DENIED``) or the first
    legacy ``errors[].reason`` (``rateLimitExceeded``) when present.
    """
    try:
        payload = response.json()
    except ValueError:
        payload = None

    message: str | None = None
    reason: str | None = None
    if isinstance(payload, dict):
        error_payload = payload.get("error")
        if isinstance(error_payload, dict):
            raw_message = error_payload.get("message")
            if isinstance(raw_message, str) and raw_message.strip():
                message = raw_message
            status = error_payload.get("status")
            if isinstance(status, str) and status.strip():
                reason = status.strip()
            errors = error_payload.get("errors")
            if reason is None and isinstance(errors, list) and errors:
                first = errors[0]
                if isinstance(first, dict) and isinstance(first.get("reason"), str):
                    reason = first["reason"]
        elif isinstance(error_payload, str) and error_payload.strip():
            message = error_payload

    if message is None:
        message = response.text.strip() or "Request failed without an error payload"
    return " ".join(message.split())[:200], reason
