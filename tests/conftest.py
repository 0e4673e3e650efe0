"""Shared fixtures: an in-memory credential store and a fake Google backend.

``FakeGoogle`` is an ``httpx.MockTransport`` handler that answers the OAuth
token endpoint and any Calendar/Meet route registered with :meth:`on`.
Unregistered API routes answer with Google's 404 envelope.  Every request is
recorded for assertions.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
import pytest

from meet_mcp.auth import GOOGLE_OAUTH_TOKEN_URL, AuthManager
from meet_mcp.credentials import DEFAULT_PRINCIPAL, CredentialRecord, CredentialStore
from meet_mcp.dispatcher import Dispatcher
from meet_mcp.providers import CalendarAdapter, MeetAdapter

CALENDAR_PREFIX = "/calendar/v3"
MEET_PREFIX = "/v2"

Route = httpx.Response | Callable[[httpx.Request], httpx.Response]


class InMemoryCredentialStore(CredentialStore):
    """Dict-backed store that records every save."""

    def __init__(self, records: dict[str, CredentialRecord] | None = None) -> None:
        self.records = dict(records or {})
        self.saved: list[CredentialRecord] = []
        self.fail_saves = False

    async def load(self, principal_id: str) -> CredentialRecord | None:
        return self.records.get(principal_id)

    async def save(self, principal_id: str, record: CredentialRecord) -> None:
        if self.fail_saves:
            raise OSError("disk full")
        self.saved.append(record)
        self.records[principal_id] = record


class FakeGoogle:
    """Canned responses for the token endpoint and the Calendar/Meet APIs."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.token_status = 200
        self.token_payload: dict[str, Any] | Callable[[httpx.Request], dict[str, Any]] = {
            "access_token": "ya29.fresh-token",
            "expires_in": 3599,
            "token_type": "Bearer",
        }
        self.token_exception: Exception | None = None
        self._routes: dict[tuple[str, str], list[Route]] = {}

    # -- configuration -----------------------------------------------------

    def on(self, method: str, path: str, *responses: Route) -> None:
        """Queue responses for ``method path``; the last one repeats."""
        self._routes[(method.upper(), path)] = list(responses)

    @staticmethod
    def error(status: int, message: str, reason: str | None = None) -> httpx.Response:
        error: dict[str, Any] = {"code": status, "message": message}
        if reason is not None:
            error["status"] = reason
        return httpx.Response(status, json={"error": error})

    # -- inspection --------------------------------------------------------

    @property
    def token_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if str(r.url) == GOOGLE_OAUTH_TOKEN_URL]

    @property
    def api_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if str(r.url) != GOOGLE_OAUTH_TOKEN_URL]

    # -- transport handler -------------------------------------------------

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if str(request.url) == GOOGLE_OAUTH_TOKEN_URL:
            if self.token_exception is not None:
                raise self.token_exception
            payload = self.token_payload
            if callable(payload):
                payload = payload(request)
            return httpx.Response(self.token_status, json=payload)

        queue = self._routes.get((request.method, request.url.path))
        if not queue:
            return self.error(404, "Requested entity was not found.", "NOT_FOUND")
        route = queue.pop(0) if len(queue) > 1 else queue[0]
        return route(request) if callable(route) else route


@pytest.fixture
def credential_record() -> CredentialRecord:
    return CredentialRecord(
        client_id="client-123.apps.googleusercontent.com",
        client_secret="super-secret-xyz",
        refresh_token="1//refresh-abc",
    )


@pytest.fixture
def fresh_credential_record(credential_record: CredentialRecord) -> CredentialRecord:
    """A record whose cached access token is valid for another hour."""
    return credential_record.with_access_token(
        "ya29.cached-token", datetime.now(UTC) + timedelta(hours=1)
    )


@pytest.fixture
def store(credential_record: CredentialRecord) -> InMemoryCredentialStore:
    return InMemoryCredentialStore({DEFAULT_PRINCIPAL: credential_record})


@pytest.fixture
def fake_google() -> FakeGoogle:
    return FakeGoogle()


@pytest.fixture
async def http_client(fake_google: FakeGoogle) -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(fake_google)) as client:
        yield client


@pytest.fixture
def auth(store: InMemoryCredentialStore, http_client: httpx.AsyncClient) -> AuthManager:
    return AuthManager(store, http_client)


@pytest.fixture
def dispatcher(auth: AuthManager, http_client: httpx.AsyncClient) -> Dispatcher:
    return Dispatcher(auth, CalendarAdapter(http_client), MeetAdapter(http_client))
