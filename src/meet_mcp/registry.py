"""Closed catalog of the tools this server exposes.

The catalog is fixed at import time; there is no runtime registration.  Each
:class:`ToolDescriptor` binds a tool name to its argument model and to the
adapter method that serves it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from meet_mcp.errors import UnknownToolError
from meet_mcp.schemas import (
    ConferenceRecordArgs,
    CreateEventArgs,
    CreateSpaceArgs,
    DeleteEventArgs,
    GetEventArgs,
    ListCalendarsArgs,
    ListConferenceRecordsArgs,
    ListEventsArgs,
    ListParticipantSessionsArgs,
    ListParticipantsArgs,
    ListTranscriptEntriesArgs,
    ParticipantArgs,
    ParticipantSessionArgs,
    QueryFreeBusyArgs,
    RecordingArgs,
    SpaceNameArgs,
    ToolArguments,
    TranscriptArgs,
    UpdateEventArgs,
    UpdateSpaceArgs,
)

AdapterName = Literal["calendar", "meet"]


@dataclass(frozen=True)
class ToolDescriptor:
    """Metadata for a single MCP tool.

    Attributes:
        name: Wire name, ``{api}_{version}_{operation}``.
        description: Human-readable summary shown by ``tools/list``.
        category: Grouping used for telemetry attributes.
        input_model: Pydantic model the raw arguments are validated against.
        adapter: Which provider adapter serves the call.
        method: Coroutine method name on that adapter.
    """

    name: str
    description: str
    category: str
    input_model: type[ToolArguments]
    adapter: AdapterName
    method: str

    def input_schema(self) -> dict[str, Any]:
        schema = self.input_model.model_json_schema()
        schema.pop("title", None)
        schema.setdefault("properties", {})
        return schema


def _calendar(
    name: str, method: str, model: type[ToolArguments], description: str
) -> ToolDescriptor:
    return ToolDescriptor(
        name=name,
        description=description,
        category="calendar",
        input_model=model,
        adapter="calendar",
        method=method,
    )


def _meet(
    name: str, method: str, model: type[ToolArguments], description: str, *, category: str
) -> ToolDescriptor:
    return ToolDescriptor(
        name=name,
        description=description,
        category=category,
        input_model=model,
        adapter="meet",
        method=method,
    )


TOOLS: tuple[ToolDescriptor, ...] = (
    # Calendar API v3
    _calendar(
        "calendar_v3_list_calendars",
        "list_calendars",
        ListCalendarsArgs,
        "List calendars visible to the authorized account.",
    ),
    _calendar(
        "calendar_v3_list_events",
        "list_events",
        ListEventsArgs,
        "List upcoming events in a calendar, ordered by start time. "
        "time_min defaults to now.",
    ),
    _calendar(
        "calendar_v3_get_event",
        "get_event",
        GetEventArgs,
        "Get one calendar event, including its Meet link when it has one.",
    ),
    _calendar(
        "calendar_v3_create_event",
        "create_event",
        CreateEventArgs,
        "Create a calendar event. Set create_meet_conference=true to attach a "
        "Google Meet link (works on every Google account tier).",
    ),
    _calendar(
        "calendar_v3_update_event",
        "update_event",
        UpdateEventArgs,
        "Update selected fields of an existing event; omitted fields are left unchanged.",
    ),
    _calendar(
        "calendar_v3_delete_event",
        "delete_event",
        DeleteEventArgs,
        "Delete a calendar event.",
    ),
    _calendar(
        "calendar_v3_query_freebusy",
        "query_freebusy",
        QueryFreeBusyArgs,
        "Return busy intervals for one or more calendars within a time window.",
    ),
    # Meet API v2: spaces
    _meet(
        "meet_v2_create_space",
        "create_space",
        CreateSpaceArgs,
        "Create a Meet space. Recording, transcription and smart notes require a "
        "Google Workspace tier that includes them.",
        category="meet_space",
    ),
    _meet(
        "meet_v2_get_space",
        "get_space",
        SpaceNameArgs,
        "Get a Meet space by resource name (spaces/{space_id}).",
        category="meet_space",
    ),
    _meet(
        "meet_v2_update_space",
        "update_space",
        UpdateSpaceArgs,
        "Update access type or moderation settings of a Meet space.",
        category="meet_space",
    ),
    _meet(
        "meet_v2_end_active_conference",
        "end_active_conference",
        SpaceNameArgs,
        "End the conference currently running in a Meet space.",
        category="meet_space",
    ),
    # Meet API v2: conference records and artifacts
    _meet(
        "meet_v2_list_conference_records",
        "list_conference_records",
        ListConferenceRecordsArgs,
        "List past conferences, newest first. Supports the Meet API filter syntax.",
        category="meet_record",
    ),
    _meet(
        "meet_v2_get_conference_record",
        "get_conference_record",
        ConferenceRecordArgs,
        "Get one conference record.",
        category="meet_record",
    ),
    _meet(
        "meet_v2_list_recordings",
        "list_recordings",
        ConferenceRecordArgs,
        "List recordings of a conference (requires a Workspace tier with recording).",
        category="meet_artifact",
    ),
    _meet(
        "meet_v2_get_recording",
        "get_recording",
        RecordingArgs,
        "Get one recording and its Drive location.",
        category="meet_artifact",
    ),
    _meet(
        "meet_v2_list_transcripts",
        "list_transcripts",
        ConferenceRecordArgs,
        "List transcripts of a conference (requires a Workspace tier with transcription).",
        category="meet_artifact",
    ),
    _meet(
        "meet_v2_get_transcript",
        "get_transcript",
        TranscriptArgs,
        "Get one transcript and its Docs location.",
        category="meet_artifact",
    ),
    _meet(
        "meet_v2_list_transcript_entries",
        "list_transcript_entries",
        ListTranscriptEntriesArgs,
        "List the spoken entries of a transcript in order.",
        category="meet_artifact",
    ),
    # Meet API v2: participants
    _meet(
        "meet_v2_get_participant",
        "get_participant",
        ParticipantArgs,
        "Get one conference participant.",
        category="meet_participant",
    ),
    _meet(
        "meet_v2_list_participants",
        "list_participants",
        ListParticipantsArgs,
        "List the participants of a conference.",
        category="meet_participant",
    ),
    _meet(
        "meet_v2_get_participant_session",
        "get_participant_session",
        ParticipantSessionArgs,
        "Get one join/leave session of a participant.",
        category="meet_participant",
    ),
    _meet(
        "meet_v2_list_participant_sessions",
        "list_participant_sessions",
        ListParticipantSessionsArgs,
        "List the join/leave sessions of a participant.",
        category="meet_participant",
    ),
)

_BY_NAME: dict[str, ToolDescriptor] = {tool.name: tool for tool in TOOLS}


def get_tool(name: str) -> ToolDescriptor:
    """Return the descriptor for *name* or raise :class:`UnknownToolError`."""
    if not isinstance(name, str):
        raise UnknownToolError(name)
    try:
        return _BY_NAME[name]
    except KeyError:
        raise UnknownToolError(name) from None


def tool_names() -> list[str]:
    return [tool.name for tool in TOOLS]


def tool_catalog() -> list[dict[str, Any]]:
    """Catalog entries as served by ``tools/list``."""
    return [
        {
            "name": tool.name,
            "description": tool.description,
            "inputSchema": tool.input_schema(),
        }
        for tool in TOOLS
    ]
