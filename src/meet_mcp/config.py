"""Server configuration loading and validation.

Configuration comes from an optional ``meet-mcp.toml`` file and is overlaid
by environment variables.  String values in the TOML file may reference
environment variables as ``${VAR_NAME}``.

Example::

    [server]
    transport = "sse"
    port = 8931
    request_timeout_s = 20

    [server.logging]
    level = "DEBUG"
    format = "json"

    [google]
    principal_id = "${USER}"

Credentials are deliberately not part of this file: they come from the
environment through :func:`meet_mcp.credentials.select_credential_store`.
"""

from __future__ import annotations

import os
import re
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

SERVER_NAME = "google-meet-mcp"
SERVER_VERSION = "3.0.0"

DEFAULT_CONFIG_FILENAME = "meet-mcp.toml"
DEFAULT_SSE_PORT = 8931
DEFAULT_REQUEST_TIMEOUT_S = 30.0

_VALID_TRANSPORTS = ("stdio", "sse")
_VALID_LOG_FORMATS = ("text", "json")

# Pattern matching ${VAR_NAME}.
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


class ConfigError(Exception):
    """Raised when configuration is missing, malformed, or invalid."""


@dataclass
class LoggingConfig:
    """Logging configuration from [server.logging]."""

    level: str = "INFO"
    format: str = "text"  # "text" or "json"
    log_root: str | None = None


@dataclass
class ServerConfig:
    """Transport and request settings from [server]."""

    transport: str = "stdio"
    host: str = "127.0.0.1"
    port: int = DEFAULT_SSE_PORT
    request_timeout_s: float = DEFAULT_REQUEST_TIMEOUT_S
    logging: LoggingConfig = field(default_factory=LoggingConfig)


@dataclass
class GoogleConfig:
    """Google account settings from [google]."""

    principal_id: str = "default"


@dataclass
class MeetMCPConfig:
    server: ServerConfig = field(default_factory=ServerConfig)
    google: GoogleConfig = field(default_factory=GoogleConfig)
    source: Path | None = None


def resolve_env_vars(value: Any, environ: Mapping[str, str] | None = None) -> Any:
    """Recursively resolve ``${VAR_NAME}`` references in config values.

    Walks dicts, lists, and strings.  Non-string leaves pass through.

    Raises
    ------
    ConfigError
        If a referenced environment variable is not set.
    """
    env = environ if environ is not None else os.environ

    if isinstance(value, dict):
        return {k: resolve_env_vars(v, env) for k, v in value.items()}

    if isinstance(value, list):
        return [resolve_env_vars(item, env) for item in value]

    if isinstance(value, str):
        return _resolve_string(value, env)

    return value


def _resolve_string(s: str, environ: Mapping[str, str]) -> str:
    """Replace all ``${VAR_NAME}`` occurrences in *s*; report every missing name at once."""
    missing: list[str] = []

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        env_value = environ.get(var_name)
        if env_value is None:
            missing.append(var_name)
            return match.group(0)
        return env_value

    result = _ENV_VAR_PATTERN.sub(_replace, s)

    if missing:
        vars_str = ", ".join(missing)
        raise ConfigError(
            f"Unresolved environment variable(s) in config value: {vars_str} (original: {s!r})"
        )

    return result


def load_config(
    path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> MeetMCPConfig:
    """Load configuration from *path* (optional) and the environment.

    When *path* is ``None``, ``meet-mcp.toml`` in the working directory is
    used if present; a missing default file is not an error.  An explicit
    *path* that does not exist raises :class:`ConfigError`.
    """
    env = environ if environ is not None else os.environ
    data: dict[str, Any] = {}
    source: Path | None = None

    if path is not None:
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
        source = path
    elif Path(DEFAULT_CONFIG_FILENAME).exists():
        source = Path(DEFAULT_CONFIG_FILENAME)

    if source is not None:
        try:
            data = tomllib.loads(source.read_text(encoding="utf-8"))
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"Invalid TOML in {source}: {exc}") from exc
        data = resolve_env_vars(data, env)

    server_section = data.get("server", {})
    if not isinstance(server_section, dict):
        raise ConfigError("[server] must be a table")
    logging_section = server_section.get("logging", {})
    google_section = data.get("google", {})

    transport = str(env.get("MEET_MCP_TRANSPORT", server_section.get("transport", "stdio")))
    transport = transport.strip().lower()
    if transport not in _VALID_TRANSPORTS:
        raise ConfigError(
            f"Invalid server.transport: {transport!r}. Must be one of {_VALID_TRANSPORTS}"
        )

    port = _coerce_int(
        env.get("MEET_MCP_PORT", server_section.get("port", DEFAULT_SSE_PORT)), "server.port"
    )
    if not 0 < port < 65536:
        raise ConfigError(f"server.port out of range: {port}")

    timeout = _coerce_float(
        env.get(
            "MEET_MCP_REQUEST_TIMEOUT_S",
            server_section.get("request_timeout_s", DEFAULT_REQUEST_TIMEOUT_S),
        ),
        "server.request_timeout_s",
    )
    if timeout <= 0:
        raise ConfigError("server.request_timeout_s must be positive")

    log_level = str(env.get("MEET_MCP_LOG_LEVEL", logging_section.get("level", "INFO"))).upper()
    if _truthy(env.get("DEBUG")):
        log_level = "DEBUG"
    log_format = str(env.get("MEET_MCP_LOG_FORMAT", logging_section.get("format", "text")))
    log_format = log_format.lower()
    if log_format not in _VALID_LOG_FORMATS:
        raise ConfigError(
            f"Invalid server.logging.format: {log_format!r}. Must be one of {_VALID_LOG_FORMATS}"
        )

    return MeetMCPConfig(
        server=ServerConfig(
            transport=transport,
            host=str(server_section.get("host", "127.0.0.1")),
            port=port,
            request_timeout_s=timeout,
            logging=LoggingConfig(
                level=log_level,
                format=log_format,
                log_root=logging_section.get("log_root"),
            ),
        ),
        google=GoogleConfig(
            principal_id=str(google_section.get("principal_id", "default")),
        ),
        source=source,
    )


def _coerce_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from exc


def _coerce_float(value: Any, name: str) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be a number")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be a number, got {value!r}") from exc


def _truthy(value: str | None) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")
