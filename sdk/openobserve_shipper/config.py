"""Pydantic models for shipper configuration."""

from __future__ import annotations

import base64
import os
from typing import Any, Mapping

import httpx
from pydantic import BaseModel, ConfigDict, Field, PositiveInt, model_validator

from openobserve_shipper.errors import ConfigurationError

DEFAULT_BATCH_SIZE = 100
DEFAULT_TIME_THRESHOLD_MS = 5 * 60 * 1000

_REQUIRED_MESSAGE = "Missing required options: url, organization, or streamName"

_ENV_FIELDS = {
    "OPENOBSERVE_URL": "url",
    "OPENOBSERVE_ORG": "organization",
    "OPENOBSERVE_STREAM": "stream_name",
    "OPENOBSERVE_BATCH_SIZE": "batch_size",
    "OPENOBSERVE_TIME_THRESHOLD": "time_threshold",
    "OPENOBSERVE_SILENT_SUCCESS": "silent_success",
    "OPENOBSERVE_SILENT_ERROR": "silent_error",
}


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes")


class BasicAuth(BaseModel):
    """Credentials sent as an HTTP basic ``Authorization`` header."""
    model_config = ConfigDict(frozen=True)

    username: str
    password: str

    def header_value(self) -> str:
        token = base64.b64encode(f"{self.username}:{self.password}".encode()).decode("ascii")
        return f"Basic {token}"


class ShipperConfig(BaseModel):
    """Where and how to ship logs. Immutable once built.

    ``time_threshold`` is in milliseconds. ``stream_name`` may also be given
    as ``streamName``.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    url: str
    organization: str
    stream_name: str = Field(alias="streamName")
    auth: BasicAuth
    batch_size: PositiveInt = DEFAULT_BATCH_SIZE
    time_threshold: PositiveInt = DEFAULT_TIME_THRESHOLD_MS
    silent_success: bool = False
    silent_error: bool = False

    @model_validator(mode="before")
    @classmethod
    def _require_destination(cls, data: Any) -> Any:
        # Runs before field validation so a missing destination always
        # surfaces as ConfigurationError rather than a ValidationError.
        if not isinstance(data, Mapping):
            raise ConfigurationError(_REQUIRED_MESSAGE)
        stream_name = data.get("stream_name") or data.get("streamName")
        if not data.get("url") or not data.get("organization") or not stream_name:
            raise ConfigurationError(_REQUIRED_MESSAGE)
        return data

    @property
    def api_url(self) -> str:
        """The ``_multi`` ingestion endpoint for this organization and stream."""
        base = httpx.URL(self.url)
        path = base.path[:-1] if base.path.endswith("/") else base.path
        host = base.netloc.decode("ascii")
        return f"{base.scheme}://{host}{path}/api/{self.organization}/{self.stream_name}/_multi"

    @property
    def time_threshold_seconds(self) -> float:
        return self.time_threshold / 1000

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides: Any) -> ShipperConfig:
        """Build a config from ``OPENOBSERVE_*`` environment variables.

        Keyword overrides take precedence over the environment.
        """
        env = os.environ if environ is None else environ
        options: dict[str, Any] = {}
        for var, field in _ENV_FIELDS.items():
            if var not in env:
                continue
            value = env[var]
            if field in ("silent_success", "silent_error"):
                options[field] = _parse_bool(value)
            else:
                options[field] = value
        username = env.get("OPENOBSERVE_USERNAME")
        password = env.get("OPENOBSERVE_PASSWORD")
        if username is not None or password is not None:
            options["auth"] = {"username": username or "", "password": password or ""}
        options.update(overrides)
        return cls(**options)
