"""Server settings and the YAML loader consumed by ``fsmcp serve --config``."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from fsmcp import __version__
from fsmcp.protocol.framing import DEFAULT_MAX_FRAME_BYTES

DEFAULT_IGNORED_DIRS = ("node_modules", ".git", "dist", ".cache", "__pycache__", ".venv")


class ConfigError(Exception):
    """Raised when a settings file cannot be read, parsed or validated."""


class TransportSettings(BaseModel):
    """Which channel ``serve`` binds to."""

    type: Literal["stdio", "http"] = "stdio"
    host: str = "127.0.0.1"
    port: int = Field(default=8765, ge=1, le=65535)
    path: str = "/mcp"


class LoggingSettings(BaseModel):
    level: str = "INFO"
    rich: bool = True

    @field_validator("level")
    @classmethod
    def _upper(cls, value: str) -> str:
        return value.upper()


class TelemetrySettings(BaseModel):
    """Optional telemetry configuration."""

    enabled: bool = False
    otlp_endpoint: str | None = None
    export_to_console: bool = False


class SearchSettings(BaseModel):
    """Limits shared by the file-search and pattern-search tools."""

    max_results: int = Field(default=50, ge=1)
    ignored_dirs: list[str] = Field(default_factory=lambda: list(DEFAULT_IGNORED_DIRS))


class ServerSettings(BaseModel):
    """Top-level server configuration.

    ``root`` anchors every relative path a handler receives.  With
    ``restrict_to_root`` set, paths resolving outside it are refused.
    """

    name: str = "fsmcp"
    version: str = __version__
    instructions: str | None = None
    root: Path = Field(default_factory=Path.cwd)
    restrict_to_root: bool = False
    request_timeout: float | None = Field(default=None, gt=0)
    max_frame_bytes: int = Field(default=DEFAULT_MAX_FRAME_BYTES, ge=1024)
    transport: TransportSettings = Field(default_factory=TransportSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    telemetry: TelemetrySettings = Field(default_factory=TelemetrySettings)
    search: SearchSettings = Field(default_factory=SearchSettings)

    @field_validator("root")
    @classmethod
    def _absolute_root(cls, value: Path) -> Path:
        return value.expanduser().resolve()


class SettingsLoader:
    """Load and validate a settings YAML file into :class:`ServerSettings`."""

    def __init__(self, path: Path) -> None:
        self._path = path

    def load(self) -> ServerSettings:
        """Read YAML, interpolate env vars, and validate.

        Environment variables in the form ``${VAR}`` or ``$VAR`` are expanded
        using :func:`os.path.expandvars` before YAML parsing.  An empty file
        yields the defaults.

        Raises:
            ConfigError: On read errors, YAML parse errors or validation failures.
        """
        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"Cannot read {self._path}: {exc}") from exc

        expanded = os.path.expandvars(raw)

        try:
            data: Any = yaml.safe_load(expanded)
        except yaml.YAMLError as exc:
            raise ConfigError(f"YAML parse error in {self._path}: {exc}") from exc

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(f"{self._path}: settings must be a mapping")

        try:
            return ServerSettings.model_validate(data)
        except ValidationError as exc:
            raise ConfigError(f"Invalid settings in {self._path}: {exc}") from exc
