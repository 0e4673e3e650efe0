"""Tests for server configuration loading and validation."""

from __future__ import annotations

from pathlib import Path

import pytest

from meet_mcp.config import (
    DEFAULT_REQUEST_TIMEOUT_S,
    DEFAULT_SSE_PORT,
    ConfigError,
    load_config,
    resolve_env_vars,
)

pytestmark = pytest.mark.unit

FULL_TOML = """\
[server]
transport = "sse"
host = "0.0.0.0"
port = 9000
request_timeout_s = 12.5

[server.logging]
level = "warning"
format = "json"
log_root = "/var/log/meet-mcp"

[google]
principal_id = "${MEET_USER}"
"""


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "meet-mcp.toml"
    path.write_text(text, encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


def test_defaults_without_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.chdir(tmp_path)

    config = load_config(environ={})

    assert config.source is None
    assert config.server.transport == "stdio"
    assert config.server.port == DEFAULT_SSE_PORT
    assert config.server.request_timeout_s == DEFAULT_REQUEST_TIMEOUT_S
    assert config.server.logging.level == "INFO"
    assert config.server.logging.format == "text"
    assert config.google.principal_id == "default"


def test_default_file_in_working_directory(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    _write(tmp_path, '[server]\ntransport = "sse"\n')
    monkeypatch.chdir(tmp_path)

    config = load_config(environ={})

    assert config.server.transport == "sse"
    assert config.source == Path("meet-mcp.toml")


# ---------------------------------------------------------------------------
# TOML file
# ---------------------------------------------------------------------------


def test_full_file(tmp_path: Path):
    path = _write(tmp_path, FULL_TOML)

    config = load_config(path, environ={"MEET_USER": "ana"})

    assert config.source == path
    assert config.server.transport == "sse"
    assert config.server.host == "0.0.0.0"
    assert config.server.port == 9000
    assert config.server.request_timeout_s == 12.5
    assert config.server.logging.level == "WARNING"
    assert config.server.logging.format == "json"
    assert config.server.logging.log_root == "/var/log/meet-mcp"
    assert config.google.principal_id == "ana"


def test_unresolved_variable(tmp_path: Path):
    path = _write(tmp_path, FULL_TOML)

    with pytest.raises(ConfigError, match="MEET_USER"):
        load_config(path, environ={})


def test_explicit_missing_file(tmp_path: Path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "missing.toml", environ={})


def test_invalid_toml(tmp_path: Path):
    path = _write(tmp_path, "[server\n")

    with pytest.raises(ConfigError, match="Invalid TOML"):
        load_config(path, environ={})


# ---------------------------------------------------------------------------
# Environment overlays
# ---------------------------------------------------------------------------


def test_environment_overrides_file(tmp_path: Path):
    path = _write(tmp_path, FULL_TOML)
    environ = {
        "MEET_USER": "ana",
        "MEET_MCP_TRANSPORT": "STDIO",
        "MEET_MCP_PORT": "9100",
        "MEET_MCP_REQUEST_TIMEOUT_S": "5",
        "MEET_MCP_LOG_LEVEL": "error",
        "MEET_MCP_LOG_FORMAT": "text",
    }

    config = load_config(path, environ=environ)

    assert config.server.transport == "stdio"
    assert config.server.port == 9100
    assert config.server.request_timeout_s == 5.0
    assert config.server.logging.level == "ERROR"
    assert config.server.logging.format == "text"


@pytest.mark.parametrize("value", ["1", "true", "yes", "ON"])
def test_debug_forces_debug_level(tmp_path: Path, value: str):
    path = _write(tmp_path, FULL_TOML)

    config = load_config(path, environ={"MEET_USER": "ana", "DEBUG": value})

    assert config.server.logging.level == "DEBUG"


def test_debug_false_is_ignored(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.chdir(tmp_path)
    assert load_config(environ={"DEBUG": "0"}).server.logging.level == "INFO"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("environ", "match"),
    [
        ({"MEET_MCP_TRANSPORT": "websocket"}, "server.transport"),
        ({"MEET_MCP_PORT": "http"}, "server.port must be an integer"),
        ({"MEET_MCP_PORT": "70000"}, "out of range"),
        ({"MEET_MCP_REQUEST_TIMEOUT_S": "0"}, "must be positive"),
        ({"MEET_MCP_REQUEST_TIMEOUT_S": "soon"}, "must be a number"),
        ({"MEET_MCP_LOG_FORMAT": "xml"}, "server.logging.format"),
    ],
)
def test_invalid_values(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, environ, match):
    monkeypatch.chdir(tmp_path)

    with pytest.raises(ConfigError, match=match):
        load_config(environ=environ)


def test_server_must_be_a_table(tmp_path: Path):
    path = _write(tmp_path, 'server = "sse"\n')

    with pytest.raises(ConfigError, match=r"\[server\] must be a table"):
        load_config(path, environ={})


# ---------------------------------------------------------------------------
# resolve_env_vars
# ---------------------------------------------------------------------------


def test_resolve_env_vars_walks_nested_values():
    resolved = resolve_env_vars(
        {"a": "${X}-suffix", "b": ["${Y}", 3], "c": {"d": True}},
        {"X": "one", "Y": "two"},
    )
    assert resolved == {"a": "one-suffix", "b": ["two", 3], "c": {"d": True}}


def test_resolve_env_vars_reports_every_missing_name():
    with pytest.raises(ConfigError) as exc_info:
        resolve_env_vars("${A}:${B}", {})
    assert "A, B" in str(exc_info.value)
