"""Argument schemas for every tool, one pydantic model per tool.

Validation is pure and synchronous.  Models are strict (no ``"5"`` -> ``5``
coercion) and forbid unknown keys, so the validated model handed to a
provider adapter is exactly what the caller asked for with defaults filled
in.  :func:`validate_arguments` turns the first pydantic error into an
:class:`~meet_mcp.errors.InvalidArgumentsError` naming the field, the
expected constraint and the received value.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime, timedelta
from typing import Any, Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)

from meet_mcp.errors import MISSING, InvalidArgumentsError

# ---------------------------------------------------------------------------
# Formats
# ---------------------------------------------------------------------------

ISO_TIMESTAMP_PATTERN = r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d{1,6})?(?:Z|[+-]\d{2}:\d{2})$"
_ISO_TIMESTAMP_RE = re.compile(
    r"(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(\d{1,6}))?(Z|[+-]\d{2}:\d{2})"
)

_ID = r"[A-Za-z0-9_-]+"
SPACE_NAME_PATTERN = r"^spaces/[A-Za-z0-9_-]{1,128}$"
CONFERENCE_RECORD_NAME_PATTERN = rf"^conferenceRecords/{_ID}$"
RECORDING_NAME_PATTERN = rf"^conferenceRecords/{_ID}/recordings/{_ID}$"
TRANSCRIPT_NAME_PATTERN = rf"^conferenceRecords/{_ID}/transcripts/{_ID}$"
TRANSCRIPT_ENTRY_NAME_PATTERN = rf"^conferenceRecords/{_ID}/transcripts/{_ID}/entries/{_ID}$"
PARTICIPANT_NAME_PATTERN = rf"^conferenceRecords/{_ID}/participants/{_ID}$"
PARTICIPANT_SESSION_NAME_PATTERN = (
    rf"^conferenceRecords/{_ID}/participants/{_ID}/participantSessions/{_ID}$"
)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PYDANTIC_SUBJECT_RE = re.compile(r"^[A-Z][a-z]* (?=should )")

MAX_EVENT_DURATION = timedelta(hours=24)

AccessType = Literal["OPEN", "TRUSTED", "RESTRICTED"]
ModerationMode = Literal["ON", "OFF"]
Restriction = Literal["HOSTS_ONLY", "NO_RESTRICTION"]


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp with mandatory ``Z`` or ``±HH:MM`` offset.

    Raises ``ValueError`` on any other format or out-of-range component.
    """
    match = _ISO_TIMESTAMP_RE.fullmatch(value)
    if match is None:
        raise ValueError("must be an ISO-8601 timestamp with offset, e.g. 2025-08-01T10:00:00Z")
    base, fraction, offset = match.groups()
    normalized = base
    if fraction:
        normalized += "." + fraction.ljust(6, "0")
    normalized += "+00:00" if offset == "Z" else offset
    try:
        return datetime.fromisoformat(normalized)
    except ValueError as exc:
        raise ValueError(f"is not a valid calendar date/time ({exc})") from exc


def format_timestamp(value: datetime) -> str:
    """Render an aware datetime as a second-precision UTC ``...Z`` timestamp."""
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def _check_timestamp(value: str | None) -> str | None:
    if value is not None:
        parse_timestamp(value)
    return value


def _check_time_zone(value: str | None) -> str | None:
    if value is None:
        return None
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError("must be an IANA time zone name, e.g. 'UTC' or 'Europe/Paris'") from exc
    return value


def _check_emails(value: list[str] | None) -> list[str] | None:
    if value is None:
        return None
    for email in value:
        if not _EMAIL_RE.match(email):
            raise ValueError(f"must contain only email addresses; {email!r} is not one")
    return value


def _check_end_after_start(end: str | None, info: ValidationInfo, *, start_field: str) -> None:
    """Raise when both ends parse and *end* is not strictly after the start field."""
    start = info.data.get(start_field)
    if end is None or start is None:
        return
    end_at = parse_timestamp(end)
    start_at = parse_timestamp(start)
    if end_at <= start_at:
        raise ValueError(f"must be strictly after {start_field} ({start})")


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class ToolArguments(BaseModel):
    """Base for all tool argument models."""

    model_config = ConfigDict(extra="forbid", strict=True, frozen=True)


class _PagedArguments(ToolArguments):
    page_token: str | None = Field(
        default=None, min_length=1, description="Page token from a previous call"
    )


# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------


class ListCalendarsArgs(ToolArguments):
    pass


class ListEventsArgs(ToolArguments):
    calendar_id: str = Field(default="primary", min_length=1, description="Calendar ID")
    max_results: int = Field(
        default=10, ge=1, le=2500, description="Maximum number of events to return"
    )
    time_min: str | None = Field(
        default=None,
        pattern=ISO_TIMESTAMP_PATTERN,
        description="Lower bound (ISO-8601 with offset); defaults to now",
    )
    time_max: str | None = Field(
        default=None, pattern=ISO_TIMESTAMP_PATTERN, description="Upper bound (ISO-8601)"
    )

    @model_validator(mode="before")
    @classmethod
    def _time_min_defaults_to_now(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("time_min") is None:
            data = {**data, "time_min": format_timestamp(datetime.now(UTC))}
        return data

    @field_validator("time_min")
    @classmethod
    def _time_min_parses(cls, value: str | None) -> str | None:
        return _check_timestamp(value)

    @field_validator("time_max")
    @classmethod
    def _time_max_after_time_min(cls, value: str | None, info: ValidationInfo) -> str | None:
        _check_timestamp(value)
        _check_end_after_start(value, info, start_field="time_min")
        return value


class GetEventArgs(ToolArguments):
    event_id: str = Field(min_length=1, description="Event ID")
    calendar_id: str = Field(default="primary", min_length=1, description="Calendar ID")


class DeleteEventArgs(GetEventArgs):
    pass


class CreateEventArgs(ToolArguments):
    summary: str = Field(min_length=1, max_length=255, description="Event title")
    start_time: str = Field(pattern=ISO_TIMESTAMP_PATTERN, description="Start (ISO-8601)")
    end_time: str = Field(pattern=ISO_TIMESTAMP_PATTERN, description="End (ISO-8601)")
    description: str | None = Field(default=None, max_length=8192)
    location: str | None = Field(default=None, max_length=1024)
    time_zone: str = Field(default="UTC", description="IANA time zone for start/end")
    attendees: list[str] = Field(default_factory=list, description="Attendee email addresses")
    create_meet_conference: bool = Field(
        default=False, description="Attach a Google Meet conference to the event"
    )
    guest_can_invite_others: bool = True
    guest_can_modify: bool = False
    guest_can_see_other_guests: bool = True
    calendar_id: str = Field(default="primary", min_length=1)

    @field_validator("start_time")
    @classmethod
    def _start_time_parses(cls, value: str) -> str:
        parse_timestamp(value)
        return value

    @field_validator("end_time")
    @classmethod
    def _end_time_after_start(cls, value: str, info: ValidationInfo) -> str:
        parse_timestamp(value)
        _check_end_after_start(value, info, start_field="start_time")
        start = info.data.get("start_time")
        duration = parse_timestamp(value) - parse_timestamp(start) if start is not None else None
        if duration is not None and duration > MAX_EVENT_DURATION:
            raise ValueError("must be at most 24 hours after start_time")
        return value

    @field_validator("time_zone")
    @classmethod
    def _time_zone_known(cls, value: str) -> str:
        return _check_time_zone(value) or value

    @field_validator("attendees")
    @classmethod
    def _attendees_are_emails(cls, value: list[str]) -> list[str]:
        return _check_emails(value) or []


class UpdateEventArgs(ToolArguments):
    event_id: str = Field(min_length=1, description="Event ID")
    summary: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=8192)
    location: str | None = Field(default=None, max_length=1024)
    start_time: str | None = Field(default=None, pattern=ISO_TIMESTAMP_PATTERN)
    end_time: str | None = Field(default=None, pattern=ISO_TIMESTAMP_PATTERN)
    time_zone: str | None = None
    attendees: list[str] | None = Field(
        default=None, description="Replaces the full attendee list"
    )
    calendar_id: str = Field(default="primary", min_length=1)

    @field_validator("start_time")
    @classmethod
    def _start_time_parses(cls, value: str | None) -> str | None:
        return _check_timestamp(value)

    @field_validator("time_zone")
    @classmethod
    def _time_zone_known(cls, value: str | None) -> str | None:
        return _check_time_zone(value)

    @field_validator("attendees")
    @classmethod
    def _attendees_are_emails(cls, value: list[str] | None) -> list[str] | None:
        return _check_emails(value)

    @field_validator("end_time")
    @classmethod
    def _end_time_after_start(cls, value: str | None, info: ValidationInfo) -> str | None:
        _check_timestamp(value)
        _check_end_after_start(value, info, start_field="start_time")
        return value

    @model_validator(mode="after")
    def _has_changes(self) -> UpdateEventArgs:
        if not self.changed_fields():
            raise ValueError(
                "must include at least one of summary, description, location, start_time, "
                "end_time, time_zone, attendees"
            )
        return self

    def changed_fields(self) -> set[str]:
        return {
            name
            for name in self.model_fields_set
            if name not in ("event_id", "calendar_id") and getattr(self, name) is not None
        }


class QueryFreeBusyArgs(ToolArguments):
    time_min: str = Field(pattern=ISO_TIMESTAMP_PATTERN, description="Window start (ISO-8601)")
    time_max: str = Field(pattern=ISO_TIMESTAMP_PATTERN, description="Window end (ISO-8601)")
    calendar_ids: list[str] = Field(
        default_factory=lambda: ["primary"],
        min_length=1,
        max_length=50,
        description="Calendars to query",
    )
    time_zone: str = "UTC"

    @field_validator("time_min")
    @classmethod
    def _time_min_parses(cls, value: str) -> str:
        parse_timestamp(value)
        return value

    @field_validator("time_zone")
    @classmethod
    def _time_zone_known(cls, value: str) -> str:
        return _check_time_zone(value) or value

    @field_validator("time_max")
    @classmethod
    def _time_max_after_time_min(cls, value: str, info: ValidationInfo) -> str:
        parse_timestamp(value)
        _check_end_after_start(value, info, start_field="time_min")
        return value

    @field_validator("calendar_ids")
    @classmethod
    def _calendar_ids_non_empty(cls, value: list[str]) -> list[str]:
        if any(not item.strip() for item in value):
            raise ValueError("must not contain empty calendar IDs")
        return value


# ---------------------------------------------------------------------------
# Meet spaces
# ---------------------------------------------------------------------------


class CreateSpaceArgs(ToolArguments):
    access_type: AccessType = Field(default="TRUSTED", description="Who can join without knocking")
    enable_recording: bool = Field(
        default=False, description="Auto-record meetings (Workspace Business Standard+)"
    )
    enable_transcription: bool = Field(default=False, description="Auto-transcribe meetings")
    enable_smart_notes: bool = Field(
        default=False, description="Gemini smart notes (requires transcription)"
    )
    attendance_report: bool = False
    moderation_mode: ModerationMode = "OFF"
    chat_restriction: Restriction | None = None
    present_restriction: Restriction | None = None
    default_join_as_viewer: bool = False

    @field_validator("enable_recording")
    @classmethod
    def _recording_not_open(cls, value: bool, info: ValidationInfo) -> bool:
        if value and info.data.get("access_type") == "OPEN":
            raise ValueError("cannot be enabled together with access_type OPEN")
        return value

    @field_validator("enable_smart_notes")
    @classmethod
    def _smart_notes_need_transcription(cls, value: bool, info: ValidationInfo) -> bool:
        if value and not info.data.get("enable_transcription"):
            raise ValueError("requires enable_transcription to be true")
        return value


class SpaceNameArgs(ToolArguments):
    space_name: str = Field(pattern=SPACE_NAME_PATTERN, description="spaces/{space_id}")


class UpdateSpaceArgs(SpaceNameArgs):
    access_type: AccessType | None = None
    moderation_mode: ModerationMode | None = None
    chat_restriction: Restriction | None = None
    present_restriction: Restriction | None = None

    @model_validator(mode="after")
    def _has_changes(self) -> UpdateSpaceArgs:
        if not any(
            value is not None
            for value in (
                self.access_type,
                self.moderation_mode,
                self.chat_restriction,
                self.present_restriction,
            )
        ):
            raise ValueError(
                "must include at least one of access_type, moderation_mode, chat_restriction, "
                "present_restriction"
            )
        return self


# ---------------------------------------------------------------------------
# Meet conference records and artifacts
# ---------------------------------------------------------------------------


class ListConferenceRecordsArgs(_PagedArguments):
    filter: str | None = Field(
        default=None,
        min_length=1,
        max_length=1024,
        description='e.g. space.name="spaces/abc" or start_time>="2025-01-01T00:00:00Z"',
    )
    page_size: int = Field(default=10, ge=1, le=50)


class ConferenceRecordArgs(ToolArguments):
    conference_record_name: str = Field(
        pattern=CONFERENCE_RECORD_NAME_PATTERN, description="conferenceRecords/{record_id}"
    )


class RecordingArgs(ToolArguments):
    recording_name: str = Field(
        pattern=RECORDING_NAME_PATTERN,
        description="conferenceRecords/{record_id}/recordings/{recording_id}",
    )


class TranscriptArgs(ToolArguments):
    transcript_name: str = Field(
        pattern=TRANSCRIPT_NAME_PATTERN,
        description="conferenceRecords/{record_id}/transcripts/{transcript_id}",
    )


class ListTranscriptEntriesArgs(TranscriptArgs, _PagedArguments):
    page_size: int = Field(default=100, ge=1, le=1000)


class ParticipantArgs(ToolArguments):
    participant_name: str = Field(
        pattern=PARTICIPANT_NAME_PATTERN,
        description="conferenceRecords/{record_id}/participants/{participant_id}",
    )


class ListParticipantsArgs(ConferenceRecordArgs, _PagedArguments):
    page_size: int = Field(default=10, ge=1, le=100)


class ParticipantSessionArgs(ToolArguments):
    participant_session_name: str = Field(
        pattern=PARTICIPANT_SESSION_NAME_PATTERN,
        description=(
            "conferenceRecords/{record_id}/participants/{participant_id}"
            "/participantSessions/{session_id}"
        ),
    )


class ListParticipantSessionsArgs(ParticipantArgs, _PagedArguments):
    page_size: int = Field(default=10, ge=1, le=100)


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------


def validate_arguments(
    tool_name: str,
    model: type[ToolArguments],
    raw_args: Any,
) -> ToolArguments:
    """Validate *raw_args* against *model*, raising on the first failing field."""
    if raw_args is None:
        raw_args = {}
    if not isinstance(raw_args, dict):
        raise InvalidArgumentsError(
            tool_name=tool_name,
            field="arguments",
            expected="must be an object of named arguments",
            received=raw_args,
        )

    try:
        return model.model_validate(raw_args)
    except ValidationError as exc:
        first = exc.errors(include_url=False)[0]
        raise InvalidArgumentsError(
            tool_name=tool_name,
            field=_error_field(first),
            expected=_error_expectation(first),
            received=MISSING if first["type"] == "missing" else first.get("input"),
        ) from None


def _error_field(error: dict[str, Any]) -> str:
    loc = [str(part) for part in error.get("loc", ())]
    return ".".join(loc) if loc else "arguments"


def _error_expectation(error: dict[str, Any]) -> str:
    """Render a pydantic error as a constraint phrase that follows the field name."""
    error_type = error["type"]
    if error_type == "missing":
        return "is required"
    if error_type == "extra_forbidden":
        return "is not an accepted argument (unknown field)"
    if error_type == "string_pattern_mismatch":
        pattern = error.get("ctx", {}).get("pattern", "the documented format")
        return f"must be a string matching {pattern}"
    message = str(error.get("msg", "must be a valid value"))
    for prefix in ("Value error, ", "Assertion failed, "):
        if message.startswith(prefix):
            message = message[len(prefix) :]
    # pydantic phrases read "Input should be ...", "String should have ...".
    message = _PYDANTIC_SUBJECT_RE.sub("", message)
    return message[:1].lower() + message[1:]
