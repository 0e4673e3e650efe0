"""Tests for meet_mcp.dispatcher — the invocation pipeline end to end.

Every test drives ``Dispatcher.dispatch`` against the ``FakeGoogle``
transport, so validation, token acquisition, the adapter call and error
classification are all exercised together.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import httpx
import pytest

from meet_mcp.auth import AuthManager
from meet_mcp.credentials import DEFAULT_PRINCIPAL
from meet_mcp.dispatcher import Dispatcher, ToolFailure, ToolSuccess
from meet_mcp.errors import ErrorKind
from meet_mcp.providers import CalendarAdapter, MeetAdapter

pytestmark = pytest.mark.unit

EVENTS_PATH = "/calendar/v3/calendars/primary/events"

CREATED_EVENT = {
    "id": "evt-42",
    "summary": "Design review",
    "status": "confirmed",
    "start": {"dateTime": "2025-08-01T10:00:00Z", "timeZone": "UTC"},
    "end": {"dateTime": "2025-08-01T11:00:00Z", "timeZone": "UTC"},
    "hangoutLink": "https://meet.google.com/abc-defg-hij",
    "conferenceData": {"conferenceId": "abc-defg-hij"},
}

CREATE_ARGS = {
    "summary": "Design review",
    "start_time": "2025-08-01T10:00:00Z",
    "end_time": "2025-08-01T11:00:00Z",
    "create_meet_conference": True,
}


def _bearer(request: httpx.Request) -> str:
    return request.headers["Authorization"].removeprefix("Bearer ")


# ---------------------------------------------------------------------------
# Local failures
# ---------------------------------------------------------------------------


class TestLocalFailures:
    async def test_unknown_tool(self, dispatcher, fake_google):
        result = await dispatcher.dispatch("calendar_v3_teleport", {})

        assert isinstance(result, ToolFailure)
        assert result.error.kind is ErrorKind.UNKNOWN_TOOL
        assert "calendar_v3_teleport" in result.error.message
        assert fake_google.requests == []

    async def test_invalid_input_makes_no_network_calls(self, dispatcher, fake_google):
        result = await dispatcher.dispatch(
            "calendar_v3_create_event",
            {**CREATE_ARGS, "end_time": "2025-08-01T09:00:00Z"},
        )

        assert isinstance(result, ToolFailure)
        assert result.error.kind is ErrorKind.INVALID_INPUT
        assert "end_time" in result.error.message
        assert result.error.retriable is False
        assert fake_google.requests == []

    async def test_non_object_arguments(self, dispatcher):
        result = await dispatcher.dispatch("calendar_v3_list_calendars", ["primary"])

        assert isinstance(result, ToolFailure)
        assert result.error.kind is ErrorKind.INVALID_INPUT

    async def test_non_string_tool_name_is_unknown_tool(self, dispatcher, fake_google):
        result = await dispatcher.dispatch(["meet_v2_get_space"], {})

        assert isinstance(result, ToolFailure)
        assert result.error.kind is ErrorKind.UNKNOWN_TOOL
        assert fake_google.requests == []

    async def test_open_space_with_recording_makes_no_provider_call(
        self, dispatcher, fake_google
    ):
        result = await dispatcher.dispatch(
            "meet_v2_create_space", {"access_type": "OPEN", "enable_recording": True}
        )

        assert isinstance(result, ToolFailure)
        assert result.error.kind is ErrorKind.INVALID_INPUT
        assert "enable_recording" in result.error.message
        assert fake_google.requests == []

    async def test_bare_meeting_code_is_not_a_space_name(self, dispatcher, fake_google):
        result = await dispatcher.dispatch("meet_v2_get_space", {"space_name": "abc-defg-hij"})

        assert isinstance(result, ToolFailure)
        assert result.error.kind is ErrorKind.INVALID_INPUT
        assert "space_name" in result.error.message
        assert fake_google.requests == []

    async def test_local_failures_do_not_touch_provider_health(self, dispatcher):
        await dispatcher.dispatch("calendar_v3_teleport", {})
        await dispatcher.dispatch("meet_v2_get_space", {"space_name": "rooms/abc"})

        assert dispatcher.last_provider_error is None
        assert "last_provider_error" not in dispatcher.get_health()


# ---------------------------------------------------------------------------
# Successful calls
# ---------------------------------------------------------------------------


class TestSuccess:
    async def test_create_event_with_meet_link_then_fetch_it(self, dispatcher, fake_google):
        fake_google.on("POST", EVENTS_PATH, httpx.Response(200, json=CREATED_EVENT))
        fake_google.on("GET", f"{EVENTS_PATH}/evt-42", httpx.Response(200, json=CREATED_EVENT))

        created = await dispatcher.dispatch("calendar_v3_create_event", CREATE_ARGS)
        assert isinstance(created, ToolSuccess)
        assert created.data["hangoutLink"] == "https://meet.google.com/abc-defg-hij"

        fetched = await dispatcher.dispatch(
            "calendar_v3_get_event", {"event_id": created.data["id"]}
        )
        assert isinstance(fetched, ToolSuccess)
        assert fetched.data["id"] == "evt-42"
        assert fetched.data["hangoutLink"] == created.data["hangoutLink"]
        assert fetched.data["hasMeetConference"] is True

    async def test_requests_carry_the_refreshed_token(self, dispatcher, fake_google):
        fake_google.on("GET", "/calendar/v3/users/me/calendarList", httpx.Response(200, json={}))

        result = await dispatcher.dispatch("calendar_v3_list_calendars", None)

        assert result.to_dict() == {"ok": True, "data": {"calendars": []}}
        assert len(fake_google.token_requests) == 1
        assert _bearer(fake_google.api_requests[0]) == "ya29.fresh-token"

    async def test_records_success_metric(self, auth, http_client, fake_google):
        metrics = MagicMock()
        dispatcher = Dispatcher(
            auth, CalendarAdapter(http_client), MeetAdapter(http_client), metrics=metrics
        )
        fake_google.on("GET", "/v2/spaces/abc", httpx.Response(200, json={"name": "spaces/abc"}))

        await dispatcher.dispatch("meet_v2_get_space", {"space_name": "spaces/abc"})

        metrics.record_tool_call.assert_called_once()
        args, kwargs = metrics.record_tool_call.call_args
        assert args == ("meet_v2_get_space",)
        assert kwargs["outcome"] == "success"
        assert kwargs["error_kind"] is None

    async def test_expired_cached_token_is_replaced_before_the_call(
        self, dispatcher, store, fake_google, credential_record
    ):
        store.records[DEFAULT_PRINCIPAL] = credential_record.with_access_token(
            "ya29.expired", datetime.now(UTC) - timedelta(minutes=5)
        )
        fake_google.on("GET", "/v2/spaces/abc", httpx.Response(200, json={"name": "spaces/abc"}))

        result = await dispatcher.dispatch("meet_v2_get_space", {"space_name": "spaces/abc"})

        assert isinstance(result, ToolSuccess)
        assert len(fake_google.token_requests) == 1
        (api_request,) = fake_google.api_requests
        assert _bearer(api_request) == "ya29.fresh-token"


# ---------------------------------------------------------------------------
# Provider 401 handling
# ---------------------------------------------------------------------------


class TestRejectedToken:
    async def test_401_triggers_one_refresh_and_retry(self, auth, http_client, fake_google):
        tokens = iter(["ya29.first", "ya29.second"])

        def token_endpoint(_: httpx.Request) -> dict[str, object]:
            return {"access_token": next(tokens), "expires_in": 3599}

        fake_google.token_payload = token_endpoint
        fake_google.on(
            "GET",
            "/v2/spaces/abc",
            fake_google.error(401, "Request had invalid authentication credentials."),
            httpx.Response(200, json={"name": "spaces/abc"}),
        )
        dispatcher = Dispatcher(auth, CalendarAdapter(http_client), MeetAdapter(http_client))

        result = await dispatcher.dispatch("meet_v2_get_space", {"space_name": "spaces/abc"})

        assert isinstance(result, ToolSuccess)
        assert len(fake_google.token_requests) == 2
        assert [_bearer(r) for r in fake_google.api_requests] == ["ya29.first", "ya29.second"]

    async def test_second_401_is_auth_expired(self, dispatcher, fake_google):
        fake_google.on(
            "GET",
            "/v2/spaces/abc",
            fake_google.error(401, "Request had invalid authentication credentials."),
        )

        result = await dispatcher.dispatch("meet_v2_get_space", {"space_name": "spaces/abc"})

        assert isinstance(result, ToolFailure)
        assert result.error.kind is ErrorKind.AUTH_EXPIRED
        assert result.error.http_status == 401
        assert len(fake_google.api_requests) == 2
        assert len(fake_google.token_requests) == 2

    async def test_revoked_refresh_token(self, dispatcher, fake_google):
        fake_google.token_status = 400
        fake_google.token_payload = {"error": "invalid_grant"}

        result = await dispatcher.dispatch("calendar_v3_list_calendars", {})

        assert isinstance(result, ToolFailure)
        assert result.error.kind is ErrorKind.AUTH_REVOKED
        assert result.error.retriable is False
        assert fake_google.api_requests == []
        assert dispatcher.get_health()["auth_state"] == "refresh_failed"


# ---------------------------------------------------------------------------
# Provider failures
# ---------------------------------------------------------------------------


class TestProviderFailures:
    async def test_rate_limited_is_retriable(self, dispatcher, fake_google):
        fake_google.on(
            "GET",
            EVENTS_PATH,
            fake_google.error(429, "Rate Limit Exceeded", "RESOURCE_EXHAUSTED"),
        )

        result = await dispatcher.dispatch("calendar_v3_list_events", {})

        assert isinstance(result, ToolFailure)
        assert result.error.kind is ErrorKind.RATE_LIMITED
        assert result.error.retriable is True
        assert result.to_dict()["error"]["http_status"] == 429

    async def test_licensing_gate(self, dispatcher, fake_google):
        fake_google.on(
            "GET",
            "/v2/conferenceRecords/rec-1/recordings",
            fake_google.error(
                403,
                "Recording requires a Google Workspace Business Standard license.",
                "PERMISSION_DENIED",
            ),
        )

        result = await dispatcher.dispatch(
            "meet_v2_list_recordings", {"conference_record_name": "conferenceRecords/rec-1"}
        )

        assert isinstance(result, ToolFailure)
        assert result.error.kind is ErrorKind.FEATURE_REQUIRES_UPGRADE
        assert result.error.retriable is False

    async def test_not_found(self, dispatcher):
        result = await dispatcher.dispatch("calendar_v3_get_event", {"event_id": "missing"})

        assert isinstance(result, ToolFailure)
        assert result.error.kind is ErrorKind.NOT_FOUND
        assert result.error.http_status == 404

    async def test_timeout_is_provider_unavailable(self, dispatcher, fake_google):
        def slow(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        fake_google.on("GET", EVENTS_PATH, slow)

        result = await dispatcher.dispatch("calendar_v3_list_events", {})

        assert isinstance(result, ToolFailure)
        assert result.error.kind is ErrorKind.PROVIDER_UNAVAILABLE
        assert result.error.retriable is True
        assert result.error.http_status is None

    async def test_failure_envelope_omits_missing_status(self, dispatcher, fake_google):
        fake_google.token_exception = httpx.ConnectError("connection refused")

        result = await dispatcher.dispatch("calendar_v3_list_calendars", {})

        payload = result.to_dict()
        assert payload["ok"] is False
        assert payload["error"]["kind"] == "ProviderUnavailable"
        assert "http_status" not in payload["error"]

    async def test_records_error_metric(self, auth, http_client):
        metrics = MagicMock()
        dispatcher = Dispatcher(
            auth, CalendarAdapter(http_client), MeetAdapter(http_client), metrics=metrics
        )

        await dispatcher.dispatch("meet_v2_get_space", {"space_name": "spaces/gone"})

        _, kwargs = metrics.record_tool_call.call_args
        assert kwargs["outcome"] == "error"
        assert kwargs["error_kind"] == "NotFound"


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class TestHealth:
    async def test_initial_health(self, dispatcher):
        assert dispatcher.get_health() == {"auth_state": "unauthenticated"}

    async def test_health_after_success(self, dispatcher, fake_google):
        fake_google.on("GET", "/calendar/v3/users/me/calendarList", httpx.Response(200, json={}))

        await dispatcher.dispatch("calendar_v3_list_calendars", {})

        health = dispatcher.get_health()
        assert health["auth_state"] == "token_valid"
        assert 3500 <= health["token_expires_in_seconds"] <= 3599

    async def test_last_provider_error_is_reported(self, dispatcher, fake_google):
        fake_google.on("GET", EVENTS_PATH, fake_google.error(503, "Backend Error"))

        await dispatcher.dispatch("calendar_v3_list_events", {})

        error = dispatcher.get_health()["last_provider_error"]
        assert error["kind"] == "ProviderUnavailable"
        assert error["http_status"] == 503

    async def test_probe_refreshes_the_token(self, dispatcher, fake_google):
        health = await dispatcher.probe()

        assert health["auth_state"] == "token_valid"
        assert len(fake_google.token_requests) == 1
        assert fake_google.api_requests == []

    async def test_probe_reports_revocation(self, store, http_client, fake_google):
        fake_google.token_status = 401
        fake_google.token_payload = {"error": "unauthorized_client"}
        dispatcher = Dispatcher(
            AuthManager(store, http_client), CalendarAdapter(http_client), MeetAdapter(http_client)
        )

        health = await dispatcher.probe()

        assert health["auth_state"] == "refresh_failed"
        assert health["last_provider_error"]["kind"] == "AuthRevoked"
