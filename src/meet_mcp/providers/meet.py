"""Google Meet REST v2 adapter.

Resource names arrive already validated (``spaces/...``,
``conferenceRecords/...``) and are used verbatim as URL paths.
"""

from __future__ import annotations

from typing import Any

import httpx

from meet_mcp.providers._http import GoogleRestClient
from meet_mcp.providers.models import (
    ArtifactDestination,
    ConferenceRecord,
    MeetArtifact,
    MeetSpace,
    Participant,
    ParticipantSession,
    TranscriptEntry,
    to_result,
)
from meet_mcp.schemas import (
    ConferenceRecordArgs,
    CreateSpaceArgs,
    ListConferenceRecordsArgs,
    ListParticipantsArgs,
    ListParticipantSessionsArgs,
    ListTranscriptEntriesArgs,
    ParticipantArgs,
    ParticipantSessionArgs,
    RecordingArgs,
    SpaceNameArgs,
    TranscriptArgs,
    UpdateSpaceArgs,
)

GOOGLE_MEET_API_BASE_URL = "https://meet.googleapis.com/v2"


class MeetAdapter:
    """One method per Meet tool."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        base_url: str = GOOGLE_MEET_API_BASE_URL,
    ) -> None:
        self._rest = GoogleRestClient(base_url, http_client)

    # -- spaces ------------------------------------------------------------

    async def create_space(self, access_token: str, args: CreateSpaceArgs) -> dict[str, Any]:
        created = await self._rest.request_json(
            "POST",
            "/spaces",
            access_token=access_token,
            json_body={"config": build_space_config(args)},
        )
        name = created.get("name")
        if not isinstance(name, str) or not name:
            return _normalize_space(created)
        # Read back so the result reflects the settings Google actually applied.
        space = await self._rest.request_json("GET", f"/{name}", access_token=access_token)
        return _normalize_space(space)

    async def get_space(self, access_token: str, args: SpaceNameArgs) -> dict[str, Any]:
        payload = await self._rest.request_json(
            "GET", f"/{args.space_name}", access_token=access_token
        )
        return _normalize_space(payload)

    async def update_space(self, access_token: str, args: UpdateSpaceArgs) -> dict[str, Any]:
        config, update_mask = build_space_patch(args)
        payload = await self._rest.request_json(
            "PATCH",
            f"/{args.space_name}",
            access_token=access_token,
            params={"updateMask": ",".join(update_mask)},
            json_body={"config": config},
        )
        return _normalize_space(payload)

    async def end_active_conference(
        self, access_token: str, args: SpaceNameArgs
    ) -> dict[str, Any]:
        await self._rest.request_json(
            "POST",
            f"/{args.space_name}:endActiveConference",
            access_token=access_token,
            json_body={},
        )
        return {"ended": True, "spaceName": args.space_name}

    # -- conference records ------------------------------------------------

    async def list_conference_records(
        self, access_token: str, args: ListConferenceRecordsArgs
    ) -> dict[str, Any]:
        payload = await self._rest.request_json(
            "GET",
            "/conferenceRecords",
            access_token=access_token,
            params={
                "filter": args.filter,
                "pageSize": args.page_size,
                "pageToken": args.page_token,
            },
        )
        records = [_record(item) for item in _items(payload, "conferenceRecords")]
        return _page(payload, "conferenceRecords", records)

    async def get_conference_record(
        self, access_token: str, args: ConferenceRecordArgs
    ) -> dict[str, Any]:
        payload = await self._rest.request_json(
            "GET", f"/{args.conference_record_name}", access_token=access_token
        )
        return _record(payload)

    # -- recordings / transcripts ------------------------------------------

    async def list_recordings(
        self, access_token: str, args: ConferenceRecordArgs
    ) -> dict[str, Any]:
        payload = await self._rest.request_json(
            "GET", f"/{args.conference_record_name}/recordings", access_token=access_token
        )
        recordings = [_artifact(item) for item in _items(payload, "recordings")]
        return _page(payload, "recordings", recordings)

    async def get_recording(self, access_token: str, args: RecordingArgs) -> dict[str, Any]:
        payload = await self._rest.request_json(
            "GET", f"/{args.recording_name}", access_token=access_token
        )
        return _artifact(payload)

    async def list_transcripts(
        self, access_token: str, args: ConferenceRecordArgs
    ) -> dict[str, Any]:
        payload = await self._rest.request_json(
            "GET", f"/{args.conference_record_name}/transcripts", access_token=access_token
        )
        return _page(
            payload, "transcripts", [_artifact(item) for item in _items(payload, "transcripts")]
        )

    async def get_transcript(self, access_token: str, args: TranscriptArgs) -> dict[str, Any]:
        payload = await self._rest.request_json(
            "GET", f"/{args.transcript_name}", access_token=access_token
        )
        return _artifact(payload)

    async def list_transcript_entries(
        self, access_token: str, args: ListTranscriptEntriesArgs
    ) -> dict[str, Any]:
        payload = await self._rest.request_json(
            "GET",
            f"/{args.transcript_name}/entries",
            access_token=access_token,
            params={"pageSize": args.page_size, "pageToken": args.page_token},
        )
        entries = [
            to_result(
                TranscriptEntry(
                    name=item["name"],
                    participant=item.get("participant"),
                    text=item.get("text"),
                    language_code=item.get("languageCode"),
                    start_time=item.get("startTime"),
                    end_time=item.get("endTime"),
                )
            )
            for item in _items(payload, "transcriptEntries")
        ]
        return _page(payload, "transcriptEntries", entries)

    # -- participants ------------------------------------------------------

    async def get_participant(self, access_token: str, args: ParticipantArgs) -> dict[str, Any]:
        payload = await self._rest.request_json(
            "GET", f"/{args.participant_name}", access_token=access_token
        )
        return _participant(payload)

    async def list_participants(
        self, access_token: str, args: ListParticipantsArgs
    ) -> dict[str, Any]:
        payload = await self._rest.request_json(
            "GET",
            f"/{args.conference_record_name}/participants",
            access_token=access_token,
            params={"pageSize": args.page_size, "pageToken": args.page_token},
        )
        participants = [_participant(item) for item in _items(payload, "participants")]
        result = _page(payload, "participants", participants)
        if isinstance(payload.get("totalSize"), int):
            result["totalSize"] = payload["totalSize"]
        return result

    async def get_participant_session(
        self, access_token: str, args: ParticipantSessionArgs
    ) -> dict[str, Any]:
        payload = await self._rest.request_json(
            "GET", f"/{args.participant_session_name}", access_token=access_token
        )
        return _session(payload)

    async def list_participant_sessions(
        self, access_token: str, args: ListParticipantSessionsArgs
    ) -> dict[str, Any]:
        payload = await self._rest.request_json(
            "GET",
            f"/{args.participant_name}/participantSessions",
            access_token=access_token,
            params={"pageSize": args.page_size, "pageToken": args.page_token},
        )
        return _page(
            payload,
            "participantSessions",
            [_session(item) for item in _items(payload, "participantSessions")],
        )


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


def build_space_config(args: CreateSpaceArgs) -> dict[str, Any]:
    """Translate create-space arguments into a Meet ``SpaceConfig``."""
    config: dict[str, Any] = {
        "accessType": args.access_type,
        "entryPointAccess": "ALL",
        "moderation": args.moderation_mode,
    }

    if args.moderation_mode == "ON":
        restrictions: dict[str, Any] = {
            "defaultJoinAsViewerType": "ON" if args.default_join_as_viewer else "OFF",
        }
        if args.chat_restriction is not None:
            restrictions["chatRestriction"] = args.chat_restriction
        if args.present_restriction is not None:
            restrictions["presentRestriction"] = args.present_restriction
        config["moderationRestrictions"] = restrictions

    artifact_config: dict[str, Any] = {}
    if args.enable_recording:
        artifact_config["recordingConfig"] = {"autoRecordingGeneration": "ON"}
    if args.enable_transcription:
        artifact_config["transcriptionConfig"] = {"autoTranscriptionGeneration": "ON"}
    if args.enable_smart_notes:
        artifact_config["smartNotesConfig"] = {"autoSmartNotesGeneration": "ON"}
    if artifact_config:
        config["artifactConfig"] = artifact_config

    if args.attendance_report:
        config["attendanceReportGenerationType"] = "GENERATE_REPORT"
    return config


def build_space_patch(args: UpdateSpaceArgs) -> tuple[dict[str, Any], list[str]]:
    """Return ``(config, update_mask)`` touching only the supplied settings."""
    config: dict[str, Any] = {}
    mask: list[str] = []

    if args.access_type is not None:
        config["accessType"] = args.access_type
        mask.append("config.accessType")

    has_restrictions = args.chat_restriction is not None or args.present_restriction is not None
    moderation = args.moderation_mode
    if moderation is None and has_restrictions:
        # Restrictions only apply while moderation is on.
        moderation = "ON"
    if moderation is not None:
        config["moderation"] = moderation
        mask.append("config.moderation")

    restrictions: dict[str, Any] = {}
    if args.chat_restriction is not None:
        restrictions["chatRestriction"] = args.chat_restriction
        mask.append("config.moderationRestrictions.chatRestriction")
    if args.present_restriction is not None:
        restrictions["presentRestriction"] = args.present_restriction
        mask.append("config.moderationRestrictions.presentRestriction")
    if restrictions:
        config["moderationRestrictions"] = restrictions

    return config, mask


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


def _items(payload: dict[str, Any], key: str) -> list[dict[str, Any]]:
    items = payload.get(key)
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, dict) and isinstance(item.get("name"), str)]


def _page(payload: dict[str, Any], key: str, items: list[dict[str, Any]]) -> dict[str, Any]:
    result: dict[str, Any] = {key: items}
    token = payload.get("nextPageToken")
    if isinstance(token, str) and token:
        result["nextPageToken"] = token
    return result


def _normalize_space(payload: dict[str, Any]) -> dict[str, Any]:
    active = payload.get("activeConference")
    conference_record = active.get("conferenceRecord") if isinstance(active, dict) else None
    config = payload.get("config")
    return to_result(
        MeetSpace(
            name=str(payload.get("name", "")),
            meeting_uri=payload.get("meetingUri"),
            meeting_code=payload.get("meetingCode"),
            config=config if isinstance(config, dict) else {},
            active_conference=conference_record if isinstance(conference_record, str) else None,
        )
    )


def _record(payload: dict[str, Any]) -> dict[str, Any]:
    return to_result(
        ConferenceRecord(
            name=str(payload.get("name", "")),
            start_time=payload.get("startTime"),
            end_time=payload.get("endTime"),
            expire_time=payload.get("expireTime"),
            space=payload.get("space"),
        )
    )


def _artifact(payload: dict[str, Any]) -> dict[str, Any]:
    destination: ArtifactDestination | None = None
    drive = payload.get("driveDestination")
    docs = payload.get("docsDestination")
    if isinstance(drive, dict):
        destination = ArtifactDestination(
            kind="drive_file", resource_id=drive.get("file"), export_uri=drive.get("exportUri")
        )
    elif isinstance(docs, dict):
        destination = ArtifactDestination(
            kind="docs_document", resource_id=docs.get("document"), export_uri=docs.get("exportUri")
        )
    return to_result(
        MeetArtifact(
            name=str(payload.get("name", "")),
            state=payload.get("state"),
            start_time=payload.get("startTime"),
            end_time=payload.get("endTime"),
            destination=destination,
        )
    )


def _participant(payload: dict[str, Any]) -> dict[str, Any]:
    kind: str | None = None
    display_name: str | None = None
    user: str | None = None
    for key, label in (
        ("signedinUser", "signedin"),
        ("anonymousUser", "anonymous"),
        ("phoneUser", "phone"),
    ):
        identity = payload.get(key)
        if isinstance(identity, dict):
            kind = label
            display_name = identity.get("displayName")
            user = identity.get("user")
            break
    return to_result(
        Participant(
            name=str(payload.get("name", "")),
            display_name=display_name,
            kind=kind,
            user=user,
            earliest_start_time=payload.get("earliestStartTime"),
            latest_end_time=payload.get("latestEndTime"),
        )
    )


def _session(payload: dict[str, Any]) -> dict[str, Any]:
    return to_result(
        ParticipantSession(
            name=str(payload.get("name", "")),
            start_time=payload.get("startTime"),
            end_time=payload.get("endTime"),
        )
    )
