"""Tests for meet_mcp.registry — the closed tool catalog."""

from __future__ import annotations

import re

import pytest

from meet_mcp.errors import UnknownToolError
from meet_mcp.providers import CalendarAdapter, MeetAdapter
from meet_mcp.registry import TOOLS, get_tool, tool_catalog, tool_names

pytestmark = pytest.mark.unit

_NAME_RE = re.compile(r"^(calendar_v3|meet_v2)_[a-z]+(?:_[a-z]+)*$")
_ADAPTERS = {"calendar": CalendarAdapter, "meet": MeetAdapter}


class TestCatalog:
    def test_catalog_size_and_uniqueness(self):
        names = tool_names()
        assert len(names) == 22
        assert len(set(names)) == len(names)

    def test_names_follow_api_version_operation(self):
        for name in tool_names():
            assert _NAME_RE.match(name), name

    def test_prefix_matches_adapter(self):
        for tool in TOOLS:
            expected = "calendar" if tool.name.startswith("calendar_v3_") else "meet"
            assert tool.adapter == expected, tool.name

    def test_every_tool_has_an_adapter_method(self):
        for tool in TOOLS:
            method = getattr(_ADAPTERS[tool.adapter], tool.method, None)
            assert callable(method), f"{tool.name} -> {tool.adapter}.{tool.method}"

    def test_categories(self):
        assert {tool.category for tool in TOOLS} == {
            "calendar",
            "meet_space",
            "meet_record",
            "meet_artifact",
            "meet_participant",
        }

    def test_catalog_entries(self):
        catalog = tool_catalog()

        assert [entry["name"] for entry in catalog] == tool_names()
        for entry in catalog:
            assert set(entry) == {"name", "description", "inputSchema"}
            assert entry["description"]
            assert entry["inputSchema"]["type"] == "object"
            assert "properties" in entry["inputSchema"]
            assert "title" not in entry["inputSchema"]


class TestInputSchemas:
    def test_no_argument_tool_has_empty_properties(self):
        schema = get_tool("calendar_v3_list_calendars").input_schema()
        assert schema["properties"] == {}
        assert schema["additionalProperties"] is False

    def test_required_fields_are_declared(self):
        schema = get_tool("calendar_v3_create_event").input_schema()
        assert set(schema["required"]) == {"summary", "start_time", "end_time"}

    def test_resource_name_pattern_is_published(self):
        schema = get_tool("meet_v2_get_space").input_schema()
        assert schema["properties"]["space_name"]["pattern"].startswith("^spaces/")


class TestLookup:
    def test_get_tool(self):
        tool = get_tool("meet_v2_list_participants")
        assert tool.adapter == "meet"
        assert tool.method == "list_participants"

    def test_unknown_tool_raises(self):
        with pytest.raises(UnknownToolError) as exc_info:
            get_tool("meet_v2_launch_rocket")
        assert exc_info.value.tool_name == "meet_v2_launch_rocket"

    @pytest.mark.parametrize("name", [["meet_v2_get_space"], None, 42])
    def test_non_string_name_is_unknown_tool(self, name):
        with pytest.raises(UnknownToolError):
            get_tool(name)
