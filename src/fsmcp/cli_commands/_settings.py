"""Settings resolution shared by the subcommands: file first, then flags."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING, Any

from fsmcp.cli_commands._output import err_console
from fsmcp.config import ConfigError, ServerSettings, SettingsLoader

if TYPE_CHECKING:
    from pathlib import Path


def resolve_settings(config: Path | None, **overrides: Any) -> ServerSettings:
    """Load *config* (if given) and apply non-``None`` flag overrides.

    Dotted keys (``"transport.port"``) address nested sections.  Exits with
    status 1 on configuration errors.
    """
    try:
        settings = SettingsLoader(config).load() if config is not None else ServerSettings()
    except ConfigError as exc:
        err_console.print(f"[red]Configuration error:[/red] {exc}")
        sys.exit(1)

    data = settings.model_dump()
    for key, value in overrides.items():
        if value is None:
            continue
        section, _, field = key.rpartition(".")
        target = data[section] if section else data
        target[field] = value

    try:
        return ServerSettings.model_validate(data)
    except ValueError as exc:
        err_console.print(f"[red]Configuration error:[/red] {exc}")
        sys.exit(1)
