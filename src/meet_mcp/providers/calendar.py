"""Google Calendar v3 adapter.

Stateless: every method takes validated arguments plus a bearer token,
performs one logical Calendar operation and returns a normalized dict.
"""

from __future__ import annotations

import uuid
from typing import Any
from urllib.parse import quote

import httpx

from meet_mcp.errors import MeetMCPError
from meet_mcp.providers._http import GoogleRestClient
from meet_mcp.providers.models import (
    Attendee,
    BusyInterval,
    CalendarAvailability,
    CalendarEventResult,
    CalendarSummary,
    FreeBusyResult,
    to_result,
)
from meet_mcp.schemas import (
    CreateEventArgs,
    DeleteEventArgs,
    GetEventArgs,
    ListCalendarsArgs,
    ListEventsArgs,
    QueryFreeBusyArgs,
    UpdateEventArgs,
)

GOOGLE_CALENDAR_API_BASE_URL = "https://www.googleapis.com/calendar/v3"


def _event_path(calendar_id: str, event_id: str | None = None) -> str:
    path = f"/calendars/{quote(calendar_id, safe='')}/events"
    if event_id is not None:
        path = f"{path}/{quote(event_id, safe='')}"
    return path


class CalendarAdapter:
    """One method per Calendar tool."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        base_url: str = GOOGLE_CALENDAR_API_BASE_URL,
    ) -> None:
        self._rest = GoogleRestClient(base_url, http_client)

    async def list_calendars(
        self,
        access_token: str,
        args: ListCalendarsArgs,  # noqa: ARG002
    ) -> dict[str, Any]:
        payload = await self._rest.request_json(
            "GET", "/users/me/calendarList", access_token=access_token
        )
        calendars = [
            to_result(
                CalendarSummary(
                    id=item["id"],
                    summary=item.get("summaryOverride") or item.get("summary") or "No title",
                    primary=bool(item.get("primary", False)),
                    access_role=item.get("accessRole"),
                    background_color=item.get("backgroundColor"),
                    foreground_color=item.get("foregroundColor"),
                    time_zone=item.get("timeZone"),
                )
            )
            for item in _items(payload, "items")
            if isinstance(item.get("id"), str)
        ]
        return {"calendars": calendars}

    async def list_events(self, access_token: str, args: ListEventsArgs) -> dict[str, Any]:
        params: dict[str, Any] = {
            "timeMin": args.time_min,
            "timeMax": args.time_max,
            "maxResults": args.max_results,
            "singleEvents": True,
            "orderBy": "startTime",
            "conferenceDataVersion": 1,
        }
        payload = await self._rest.request_json(
            "GET", _event_path(args.calendar_id), access_token=access_token, params=params
        )
        events = [_normalize_event(item) for item in _items(payload, "items")]
        return {"events": [event for event in events if event is not None]}

    async def get_event(self, access_token: str, args: GetEventArgs) -> dict[str, Any]:
        payload = await self._rest.request_json(
            "GET",
            _event_path(args.calendar_id, args.event_id),
            access_token=access_token,
            params={"conferenceDataVersion": 1},
        )
        return _normalize_event_or_raise(payload)

    async def create_event(self, access_token: str, args: CreateEventArgs) -> dict[str, Any]:
        body: dict[str, Any] = {
            "summary": args.summary,
            "start": {"dateTime": args.start_time, "timeZone": args.time_zone},
            "end": {"dateTime": args.end_time, "timeZone": args.time_zone},
            "guestsCanInviteOthers": args.guest_can_invite_others,
            "guestsCanModify": args.guest_can_modify,
            "guestsCanSeeOtherGuests": args.guest_can_see_other_guests,
        }
        if args.description is not None:
            body["description"] = args.description
        if args.location is not None:
            body["location"] = args.location
        if args.attendees:
            body["attendees"] = [{"email": email} for email in args.attendees]

        params: dict[str, Any] = {}
        if args.create_meet_conference:
            body["conferenceData"] = {
                "createRequest": {
                    "requestId": uuid.uuid4().hex,
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            }
            params["conferenceDataVersion"] = 1

        payload = await self._rest.request_json(
            "POST",
            _event_path(args.calendar_id),
            access_token=access_token,
            params=params or None,
            json_body=body,
        )
        return _normalize_event_or_raise(payload)

    async def update_event(self, access_token: str, args: UpdateEventArgs) -> dict[str, Any]:
        # PATCH semantics: only the supplied fields are sent.
        body: dict[str, Any] = {}
        if args.summary is not None:
            body["summary"] = args.summary
        if args.description is not None:
            body["description"] = args.description
        if args.location is not None:
            body["location"] = args.location
        if args.attendees is not None:
            body["attendees"] = [{"email": email} for email in args.attendees]
        if args.start_time is not None:
            body["start"] = _boundary(args.start_time, args.time_zone)
        if args.end_time is not None:
            body["end"] = _boundary(args.end_time, args.time_zone)
        if args.time_zone is not None:
            body.setdefault("start", {})["timeZone"] = args.time_zone
            body.setdefault("end", {})["timeZone"] = args.time_zone

        payload = await self._rest.request_json(
            "PATCH",
            _event_path(args.calendar_id, args.event_id),
            access_token=access_token,
            params={"conferenceDataVersion": 1},
            json_body=body,
        )
        return _normalize_event_or_raise(payload)

    async def delete_event(self, access_token: str, args: DeleteEventArgs) -> dict[str, Any]:
        await self._rest.request_json(
            "DELETE", _event_path(args.calendar_id, args.event_id), access_token=access_token
        )
        return {"deleted": True, "eventId": args.event_id}

    async def query_freebusy(self, access_token: str, args: QueryFreeBusyArgs) -> dict[str, Any]:
        payload = await self._rest.request_json(
            "POST",
            "/freeBusy",
            access_token=access_token,
            json_body={
                "timeMin": args.time_min,
                "timeMax": args.time_max,
                "timeZone": args.time_zone,
                "items": [{"id": calendar_id} for calendar_id in args.calendar_ids],
            },
        )
        raw_calendars = payload.get("calendars")
        raw_calendars = raw_calendars if isinstance(raw_calendars, dict) else {}
        calendars = []
        for calendar_id in args.calendar_ids:
            entry = raw_calendars.get(calendar_id)
            entry = entry if isinstance(entry, dict) else {}
            calendars.append(
                CalendarAvailability(
                    id=calendar_id,
                    busy=[
                        BusyInterval(start=block["start"], end=block["end"])
                        for block in _items(entry, "busy")
                        if isinstance(block.get("start"), str) and isinstance(block.get("end"), str)
                    ],
                    errors=[
                        str(error.get("reason", "unknown")) for error in _items(entry, "errors")
                    ],
                )
            )
        return to_result(
            FreeBusyResult(
                time_min=payload.get("timeMin") or args.time_min,
                time_max=payload.get("timeMax") or args.time_max,
                calendars=calendars,
            )
        )


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


def _items(payload: dict[str, Any], key: str) -> list[dict[str, Any]]:
    items = payload.get(key)
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, dict)]


def _boundary(date_time: str, time_zone: str | None) -> dict[str, Any]:
    boundary: dict[str, Any] = {"dateTime": date_time}
    if time_zone is not None:
        boundary["timeZone"] = time_zone
    return boundary


def _boundary_value(payload: Any) -> tuple[str | None, str | None]:
    if not isinstance(payload, dict):
        return None, None
    value = payload.get("dateTime") or payload.get("date")
    time_zone = payload.get("timeZone")
    return (
        value if isinstance(value, str) else None,
        time_zone if isinstance(time_zone, str) else None,
    )


def _person_email(payload: Any) -> str | None:
    if isinstance(payload, dict) and isinstance(payload.get("email"), str):
        return payload["email"]
    return None


def _video_entry_point(conference_data: Any) -> str | None:
    if not isinstance(conference_data, dict):
        return None
    entry_points = conference_data.get("entryPoints")
    if not isinstance(entry_points, list):
        return None
    for entry in entry_points:
        if isinstance(entry, dict) and entry.get("entryPointType") == "video":
            uri = entry.get("uri")
            if isinstance(uri, str) and uri:
                return uri
    return None


def _normalize_event(payload: dict[str, Any]) -> dict[str, Any] | None:
    event_id = payload.get("id")
    if not isinstance(event_id, str) or not event_id:
        return None

    start_time, start_tz = _boundary_value(payload.get("start"))
    end_time, end_tz = _boundary_value(payload.get("end"))
    conference_data = payload.get("conferenceData")
    hangout_link = payload.get("hangoutLink")
    if not isinstance(hangout_link, str) or not hangout_link:
        hangout_link = _video_entry_point(conference_data)

    attendees = [
        Attendee(
            email=attendee["email"],
            response_status=attendee.get("responseStatus"),
            optional=attendee.get("optional"),
            organizer=attendee.get("organizer"),
        )
        for attendee in _items(payload, "attendees")
        if isinstance(attendee.get("email"), str)
    ]

    return to_result(
        CalendarEventResult(
            id=event_id,
            summary=payload.get("summary"),
            description=payload.get("description"),
            location=payload.get("location"),
            status=payload.get("status"),
            start_time=start_time,
            end_time=end_time,
            time_zone=start_tz or end_tz,
            html_link=payload.get("htmlLink"),
            hangout_link=hangout_link,
            has_meet_conference=hangout_link is not None or isinstance(conference_data, dict),
            attendees=attendees,
            creator=_person_email(payload.get("creator")),
            organizer=_person_email(payload.get("organizer")),
            created=payload.get("created"),
            updated=payload.get("updated"),
            guests_can_invite_others=payload.get("guestsCanInviteOthers"),
            guests_can_modify=payload.get("guestsCanModify"),
            guests_can_see_other_guests=payload.get("guestsCanSeeOtherGuests"),
        )
    )


def _normalize_event_or_raise(payload: dict[str, Any]) -> dict[str, Any]:
    event = _normalize_event(payload)
    if event is None:
        raise MeetMCPError("Google Calendar returned an event without an id")
    return event
