"""Configuration file loading.

The file is YAML and lists one entry per environment::

    service:
      - names: [order-service, user-service]
        env: dev
        registry:
          addr: http://127.0.0.1:8848
          username: nacos
          password: nacos
        keep:
          - key: X_ROUTER_TAG
            value: stable
    log:
      level: info

Unknown keys are rejected so that typos surface at startup instead of being
silently ignored. ``nacos`` is accepted as an alias of ``registry``.
"""
from __future__ import annotations

from pathlib import Path
from typing import Mapping

import yaml
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigError


class RegistryEndpoint(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    addr: str = Field(..., min_length=1, description="Registry base URL, e.g. http://127.0.0.1:8848")
    username: str = ""
    password: str = ""

    @property
    def base_url(self) -> str:
        return self.addr.rstrip("/")


class KeepRule(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    key: str = Field(..., min_length=1)
    value: str = Field("", description="Expected metadata value; empty matches any value")

    def matches(self, metadata: Mapping[str, str]) -> bool:
        if self.key not in metadata:
            return False
        return self.value == "" or metadata[self.key] == self.value


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    names: list[str] = Field(default_factory=list, description="Service names tracked in this environment")
    env: str = Field(..., min_length=1)
    registry: RegistryEndpoint = Field(..., validation_alias=AliasChoices("registry", "nacos"))
    keep: list[KeepRule] = Field(default_factory=list)


class LogConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    level: str | None = None


class Config(BaseModel):
    model_config = ConfigDict(extra="forbid")

    service: list[AppConfig] = Field(default_factory=list)
    log: LogConfig = Field(default_factory=LogConfig)

    @property
    def environments(self) -> list[AppConfig]:
        return self.service


def parse_config(data: object) -> Config:
    if data is None:
        data = {}
    try:
        return Config.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


def load_config(path: str | Path) -> Config:
    """Load and validate a YAML config file."""
    path = Path(path)
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"failed to read config {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"failed to parse config {path}: {e}") from e
    return parse_config(data)
