"""Sink option parsing and validation."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping

import tomllib

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import ConfigurationError
from .models import DEFAULT_BATCH_SIZE, BasicCredential, Credential, NoCredential

LOG = logging.getLogger(__name__)

CLIENT_PREFIX = "clickhouse"


class SinkConfig(BaseModel):
    """Recognized sink options resolved against their defaults."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    host: str
    database: str
    table: str
    username: str | None = None
    password: str | None = None
    fields: tuple[str, ...] | None = None
    bulk_size: int = Field(default=DEFAULT_BATCH_SIZE, gt=0, strict=True)
    split_mode: bool = False
    sharding_key: str | None = None
    client_properties: dict[str, str] = Field(default_factory=dict)

    @field_validator("host", "database", "table")
    @classmethod
    def _require_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("sharding_key")
    @classmethod
    def _blank_key_is_unset(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _check_credentials(self) -> SinkConfig:
        if (self.username is None) != (self.password is None):
            given = "username" if self.username is not None else "password"
            missing = "password" if given == "username" else "username"
            raise ValueError(f"'{missing}' is required when '{given}' is set")
        return self

    @property
    def credential(self) -> Credential:
        if self.username is None or self.password is None:
            return NoCredential()
        return BasicCredential(self.username, self.password)

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> SinkConfig:
        """Validate a raw option bundle, raising ConfigurationError on bad input."""

        data: dict[str, Any] = {}
        client_properties: dict[str, str] = {}
        for key, value in options.items():
            if key == CLIENT_PREFIX and isinstance(value, Mapping):
                client_properties.update({str(k): _stringify(v) for k, v in value.items()})
            elif key.startswith(f"{CLIENT_PREFIX}."):
                client_properties[key[len(CLIENT_PREFIX) + 1 :]] = _stringify(value)
            elif key in cls.model_fields and key != "client_properties":
                data[key] = value
            else:
                LOG.debug("Ignoring unrecognized sink option", extra={"option": key})
        data["client_properties"] = client_properties
        try:
            config = cls.model_validate(data)
        except ValidationError as exc:
            raise ConfigurationError(_format_errors(exc)) from exc
        return config


def load_config(path: Path) -> SinkConfig:
    """Read a sink option bundle from a TOML file."""

    try:
        with path.open("rb") as handle:
            raw = tomllib.load(handle)
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Config file '{path}' does not exist") from exc
    except (tomllib.TOMLDecodeError, OSError) as exc:
        raise ConfigurationError(f"Config file '{path}' could not be read: {exc}") from exc
    return SinkConfig.from_options(raw)


def _stringify(value: object) -> str:
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)


def _format_errors(exc: ValidationError) -> str:
    messages: list[str] = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"])
        message = error["msg"].removeprefix("Value error, ")
        messages.append(f"{location}: {message}" if location else message)
    return "Invalid sink options: " + "; ".join(messages)


__all__ = ["CLIENT_PREFIX", "SinkConfig", "load_config"]
