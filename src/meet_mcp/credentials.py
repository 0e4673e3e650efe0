"""Credential records and the stores that load and persist them.

Two alternative loaders feed the same :class:`CredentialRecord`:

- **Direct-token** (:class:`EnvCredentialStore`): ``CLIENT_ID``,
  ``CLIENT_SECRET`` and ``REFRESH_TOKEN`` in the environment (a ``GOOGLE_``
  prefix is also accepted).  Refreshed access tokens are kept in memory.
- **Legacy file** (:class:`FileCredentialStore`): an OAuth client bundle as
  downloaded from the Google Cloud console (``{"installed": {...}}``,
  ``{"web": {...}}`` or flat) plus a token cache JSON file holding
  ``refresh_token``, ``access_token`` and ``expiry_date`` (epoch ms).
  Refreshed tokens are written back to the cache file.

Secret material (client_secret, refresh_token, access_token) is never
logged in plaintext.
"""

from __future__ import annotations

import abc
import asyncio
import json
import logging
import os
import tempfile
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from meet_mcp.errors import CredentialError

logger = logging.getLogger(__name__)

DEFAULT_PRINCIPAL = "default"

ENV_CLIENT_ID = "CLIENT_ID"
ENV_CLIENT_SECRET = "CLIENT_SECRET"
ENV_REFRESH_TOKEN = "REFRESH_TOKEN"
ENV_LEGACY_CREDENTIALS = "G_OAUTH_CREDENTIALS"
ENV_CREDENTIALS_PATH = "GOOGLE_MEET_CREDENTIALS_PATH"
ENV_TOKEN_PATH = "GOOGLE_MEET_TOKEN_PATH"

_DIRECT_TOKEN_VARS = (ENV_CLIENT_ID, ENV_CLIENT_SECRET, ENV_REFRESH_TOKEN)


class CredentialRecord(BaseModel):
    """One principal's Google authorization.

    ``refresh_token`` is required; ``access_token`` and ``access_token_expiry``
    are a cache derived from it and may be absent or stale.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    client_id: str = Field(min_length=1)
    client_secret: str = Field(min_length=1)
    refresh_token: str = Field(min_length=1)
    access_token: str | None = None
    access_token_expiry: datetime | None = None

    @field_validator("client_id", "client_secret", "refresh_token")
    @classmethod
    def _normalize_non_empty(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("must be a non-empty string")
        return normalized

    @field_validator("access_token")
    @classmethod
    def _normalize_access_token(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None

    @field_validator("access_token_expiry")
    @classmethod
    def _require_aware_expiry(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    def with_access_token(self, access_token: str, expiry: datetime) -> CredentialRecord:
        """Return a copy carrying a freshly issued access token."""
        return self.model_copy(update={"access_token": access_token, "access_token_expiry": expiry})

    def __repr__(self) -> str:
        return (
            f"CredentialRecord("
            f"client_id={self.client_id!r}, "
            f"client_secret=<REDACTED>, "
            f"refresh_token=<REDACTED>, "
            f"access_token={'<REDACTED>' if self.access_token else None}, "
            f"access_token_expiry={self.access_token_expiry!r})"
        )

    # Pydantic's default __str__ would expose field values verbatim.
    __str__ = __repr__


# ---------------------------------------------------------------------------
# Store interface
# ---------------------------------------------------------------------------


class CredentialStore(abc.ABC):
    """Persists one credential record per principal."""

    @abc.abstractmethod
    async def load(self, principal_id: str) -> CredentialRecord | None:
        """Return the principal's record, or ``None`` when absent."""

    @abc.abstractmethod
    async def save(self, principal_id: str, record: CredentialRecord) -> None:
        """Persist *record* for the principal."""


class EnvCredentialStore(CredentialStore):
    """Direct-token loader reading client id/secret and refresh token from env."""

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        self._environ = environ if environ is not None else os.environ
        self._cache: dict[str, CredentialRecord] = {}

    @staticmethod
    def available(environ: Mapping[str, str] | None = None) -> bool:
        env = environ if environ is not None else os.environ
        return not _missing_direct_token_vars(env)

    async def load(self, principal_id: str) -> CredentialRecord | None:
        cached = self._cache.get(principal_id)
        if cached is not None:
            return cached
        if _missing_direct_token_vars(self._environ):
            return None
        try:
            return CredentialRecord(
                client_id=_env_value(self._environ, ENV_CLIENT_ID) or "",
                client_secret=_env_value(self._environ, ENV_CLIENT_SECRET) or "",
                refresh_token=_env_value(self._environ, ENV_REFRESH_TOKEN) or "",
            )
        except ValidationError as exc:
            raise CredentialError(
                "Direct-token credentials in the environment are invalid: "
                + ", ".join(str(err["loc"][0]) for err in exc.errors())
            ) from exc

    async def save(self, principal_id: str, record: CredentialRecord) -> None:
        self._cache[principal_id] = record


class FileCredentialStore(CredentialStore):
    """Legacy loader: OAuth client bundle file plus token cache file."""

    def __init__(self, credentials_path: Path, token_path: Path) -> None:
        self.credentials_path = Path(credentials_path)
        self.token_path = Path(token_path)
        self._lock = asyncio.Lock()

    @classmethod
    def from_environ(cls, environ: Mapping[str, str] | None = None) -> FileCredentialStore | None:
        """Build a store from ``G_OAUTH_CREDENTIALS`` or the explicit path pair."""
        env = environ if environ is not None else os.environ
        legacy = (env.get(ENV_LEGACY_CREDENTIALS) or "").strip()
        if legacy:
            return cls(Path(legacy), derive_token_path(Path(legacy)))

        credentials_path = (env.get(ENV_CREDENTIALS_PATH) or "").strip()
        token_path = (env.get(ENV_TOKEN_PATH) or "").strip()
        if credentials_path and token_path:
            return cls(Path(credentials_path), Path(token_path))
        return None

    async def load(self, principal_id: str) -> CredentialRecord | None:  # noqa: ARG002
        async with self._lock:
            return await asyncio.to_thread(self._load_sync)

    async def save(self, principal_id: str, record: CredentialRecord) -> None:  # noqa: ARG002
        async with self._lock:
            await asyncio.to_thread(self._save_sync, record)

    def _load_sync(self) -> CredentialRecord | None:
        if not self.credentials_path.exists():
            raise CredentialError(f"OAuth client file not found: {self.credentials_path}")
        bundle = _read_json_object(self.credentials_path)

        if not self.token_path.exists():
            logger.warning("Token cache not found at %s; run authorization first", self.token_path)
            return None
        token_cache = _read_json_object(self.token_path)

        refresh_token = token_cache.get("refresh_token")
        if not isinstance(refresh_token, str) or not refresh_token.strip():
            logger.warning("Token cache %s has no refresh_token", self.token_path)
            return None

        client_id = _extract_google_credential_value(bundle, "client_id")
        client_secret = _extract_google_credential_value(bundle, "client_secret")
        missing = sorted(
            key
            for key, value in (("client_id", client_id), ("client_secret", client_secret))
            if not isinstance(value, str) or not value.strip()
        )
        if missing:
            raise CredentialError(
                f"OAuth client file {self.credentials_path} is missing field(s): "
                + ", ".join(missing)
            )

        access_token = token_cache.get("access_token")
        return CredentialRecord(
            client_id=client_id,
            client_secret=client_secret,
            refresh_token=refresh_token,
            access_token=access_token if isinstance(access_token, str) else None,
            access_token_expiry=_parse_expiry_date(token_cache.get("expiry_date")),
        )

    def _save_sync(self, record: CredentialRecord) -> None:
        existing: dict[str, Any] = {}
        if self.token_path.exists():
            try:
                existing = _read_json_object(self.token_path)
            except CredentialError:
                logger.warning("Overwriting unreadable token cache at %s", self.token_path)

        payload = {
            **existing,
            "refresh_token": record.refresh_token,
            "access_token": record.access_token,
            "token_type": "Bearer",
        }
        if record.access_token_expiry is not None:
            payload["expiry_date"] = int(record.access_token_expiry.timestamp() * 1000)

        self.token_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.token_path.parent, prefix=".token-", suffix=".json"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, indent=2)
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self.token_path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------


def select_credential_store(environ: Mapping[str, str] | None = None) -> CredentialStore:
    """Pick the credential loader configured in the environment.

    Direct-token variables win when all three are set; otherwise the legacy
    file pair is used.  Raises :class:`CredentialError` naming every missing
    variable when neither is configured.
    """
    env = environ if environ is not None else os.environ

    if EnvCredentialStore.available(env):
        logger.info("Using direct-token credentials from the environment")
        return EnvCredentialStore(env)

    file_store = FileCredentialStore.from_environ(env)
    if file_store is not None:
        logger.info(
            "Using legacy credential files: credentials=%s token=%s",
            file_store.credentials_path,
            file_store.token_path,
        )
        return file_store

    missing = ", ".join(_missing_direct_token_vars(env))
    raise CredentialError(
        "No Google credentials configured. Set "
        f"{missing} (direct token), or {ENV_LEGACY_CREDENTIALS} "
        f"(or {ENV_CREDENTIALS_PATH} + {ENV_TOKEN_PATH}) for legacy credential files."
    )


def derive_token_path(credentials_path: Path) -> Path:
    """``client.json`` -> ``client.token.json`` next to the client bundle."""
    name = credentials_path.name
    if name.endswith(".json"):
        return credentials_path.with_name(name[: -len(".json")] + ".token.json")
    return credentials_path.with_name(name + ".token.json")


def _env_value(environ: Mapping[str, str], name: str) -> str | None:
    for candidate in (name, f"GOOGLE_{name}"):
        value = environ.get(candidate)
        if value and value.strip():
            return value.strip()
    return None


def _missing_direct_token_vars(environ: Mapping[str, str]) -> list[str]:
    return [name for name in _DIRECT_TOKEN_VARS if _env_value(environ, name) is None]


def _extract_google_credential_value(payload: dict[str, Any], key: str) -> Any:
    if key in payload:
        return payload[key]

    for nested_key in ("installed", "web"):
        nested = payload.get(nested_key)
        if isinstance(nested, dict) and key in nested:
            return nested[key]
    return None


def _read_json_object(path: Path) -> dict[str, Any]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise CredentialError(f"Could not read JSON from {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise CredentialError(f"{path} must contain a JSON object")
    return payload


def _parse_expiry_date(value: Any) -> datetime | None:
    if isinstance(value, bool) or not isinstance(value, int | float) or value <= 0:
        return None
    return datetime.fromtimestamp(value / 1000, tz=UTC)
