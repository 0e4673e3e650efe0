"""Normalized result shapes returned by the provider adapters.

Attribute names are snake_case; :func:`to_result` dumps them with camelCase
keys and drops unset optionals, so every tool result has the same casing
regardless of which Google API produced it.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ResultModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


def to_result(model: ResultModel) -> dict[str, Any]:
    return model.model_dump(by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------


class CalendarSummary(ResultModel):
    id: str
    summary: str = "No title"
    primary: bool = False
    access_role: str | None = None
    background_color: str | None = None
    foreground_color: str | None = None
    time_zone: str | None = None


class Attendee(ResultModel):
    email: str
    response_status: str | None = None
    optional: bool | None = None
    organizer: bool | None = None


class CalendarEventResult(ResultModel):
    id: str
    summary: str | None = None
    description: str | None = None
    location: str | None = None
    status: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    time_zone: str | None = None
    html_link: str | None = None
    hangout_link: str | None = None
    has_meet_conference: bool = False
    attendees: list[Attendee] = Field(default_factory=list)
    creator: str | None = None
    organizer: str | None = None
    created: str | None = None
    updated: str | None = None
    guests_can_invite_others: bool | None = None
    guests_can_modify: bool | None = None
    guests_can_see_other_guests: bool | None = None


class BusyInterval(ResultModel):
    start: str
    end: str


class CalendarAvailability(ResultModel):
    id: str
    busy: list[BusyInterval] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class FreeBusyResult(ResultModel):
    time_min: str
    time_max: str
    calendars: list[CalendarAvailability] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Meet
# ---------------------------------------------------------------------------


class MeetSpace(ResultModel):
    name: str
    meeting_uri: str | None = None
    meeting_code: str | None = None
    config: dict[str, Any] = Field(default_factory=dict)
    active_conference: str | None = None


class ConferenceRecord(ResultModel):
    name: str
    start_time: str | None = None
    end_time: str | None = None
    expire_time: str | None = None
    space: str | None = None


class ArtifactDestination(ResultModel):
    kind: str
    resource_id: str | None = None
    export_uri: str | None = None


class MeetArtifact(ResultModel):
    """A recording or a transcript."""

    name: str
    state: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    destination: ArtifactDestination | None = None


class TranscriptEntry(ResultModel):
    name: str
    participant: str | None = None
    text: str | None = None
    language_code: str | None = None
    start_time: str | None = None
    end_time: str | None = None


class Participant(ResultModel):
    name: str
    display_name: str | None = None
    kind: str | None = None
    user: str | None = None
    earliest_start_time: str | None = None
    latest_end_time: str | None = None


class ParticipantSession(ResultModel):
    name: str
    start_time: str | None = None
    end_time: str | None = None
