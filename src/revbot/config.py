"""Runner and bot configuration loaded from YAML."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Dict, List, Mapping, Pattern

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import ConfigurationError


def _compile(pattern: str) -> Pattern[str]:
    try:
        return re.compile(pattern)
    except re.error as error:
        raise ValueError(f"invalid pattern {pattern!r}: {error}") from error


class StorageConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    path: Path


class SchedulerConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    workers: int = Field(default=4, ge=1)
    max_attempts: int = Field(default=3, ge=1)
    backoff_seconds: float = Field(default=1.0, ge=0)
    max_backoff_seconds: float = Field(default=30.0, ge=0)


class ReadyComment(BaseModel):
    """A comment by ``user`` matching ``pattern`` must exist before checks run."""

    model_config = ConfigDict(extra="forbid")

    user: str
    pattern: str

    @field_validator("pattern")
    @classmethod
    def _valid_pattern(cls, value: str) -> str:
        _compile(value)
        return value

    def compiled(self) -> Pattern[str]:
        return re.compile(self.pattern)


class ReadyConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    labels: List[str] = Field(default_factory=list)
    comments: List[ReadyComment] = Field(default_factory=list)


class RepositoryConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    census: str
    labels: Dict[str, List[str]] = Field(default_factory=dict)

    @field_validator("labels")
    @classmethod
    def _valid_label_patterns(cls, value: Dict[str, List[str]]) -> Dict[str, List[str]]:
        for patterns in value.values():
            for pattern in patterns:
                _compile(pattern)
        return value

    def label_patterns(self) -> Dict[str, List[Pattern[str]]]:
        return {label: [re.compile(pattern) for pattern in patterns] for label, patterns in self.labels.items()}


class CensusConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    repository: str
    ref: str = "master"


class PullRequestBotConfig(BaseModel):
    """Settings shared by every repository one bot watches."""

    model_config = ConfigDict(extra="forbid")

    external: Dict[str, str] = Field(default_factory=dict)
    blockers: Dict[str, str] = Field(default_factory=dict)
    ready: ReadyConfig = Field(default_factory=ReadyConfig)
    repositories: Dict[str, RepositoryConfig] = Field(default_factory=dict)
    census: Dict[str, CensusConfig] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _census_exists(self) -> "PullRequestBotConfig":
        for name, repository in self.repositories.items():
            if repository.census not in self.census:
                raise ValueError(f"repository {name!r} refers to unknown census {repository.census!r}")
        return self


class RunnerConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    storage: StorageConfig
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    bots: Dict[str, PullRequestBotConfig] = Field(default_factory=dict)

    def storage_folder(self, bot_name: str) -> Path:
        """Return the persistent storage folder reserved for ``bot_name``."""
        return self.storage.path / bot_name


def parse_config(data: Mapping[str, Any], *, base_path: Path | None = None) -> RunnerConfig:
    """Validate a configuration mapping, resolving ``storage.path`` against ``base_path``."""
    try:
        config = RunnerConfig.model_validate(data)
    except ValidationError as error:
        raise ConfigurationError(str(error)) from error
    if base_path is not None and not config.storage.path.is_absolute():
        config.storage.path = (base_path / config.storage.path).resolve()
    return config


def load_config(config_path: Path) -> RunnerConfig:
    """Load and validate the YAML configuration at ``config_path``."""
    if not config_path.exists():
        raise ConfigurationError(f"Config file not found: {config_path}")

    try:
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        raise ConfigurationError(f"Failed to parse config: {error}") from error

    if not isinstance(data, dict):
        raise ConfigurationError("Configuration must be a mapping at the top level.")

    return parse_config(data, base_path=config_path.parent)


__all__ = [
    "CensusConfig",
    "PullRequestBotConfig",
    "ReadyComment",
    "ReadyConfig",
    "RepositoryConfig",
    "RunnerConfig",
    "SchedulerConfig",
    "StorageConfig",
    "load_config",
    "parse_config",
]
