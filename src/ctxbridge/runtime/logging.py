"""Logging bootstrap for the CLI and the long-running server.

Settings are resolved per field, first match wins: explicit argument, the
``logging`` config section, then a default that depends on how the process
was started. ``serve`` logs to the console and records HTTP access lines;
one-shot commands keep stderr clean for their own output.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional, TypeVar

from ..core.config_schema import Config, LoggingConfig
from ..util.log import Log, LogFormat, LogLevel

LogMode = Literal["cli", "serve"]

T = TypeVar("T")


@dataclass(frozen=True)
class LogSettings:
    level: LogLevel
    format: LogFormat
    console: bool
    file: bool
    access_log: bool
    dev_file: bool


def _first(*values: Optional[T], default: T) -> T:
    for value in values:
        if value is not None:
            return value
    return default


def resolve_settings(
    config: Config,
    *,
    mode: LogMode,
    level: Optional[str] = None,
    format: Optional[str] = None,
    access_log: Optional[bool] = None,
    console: Optional[bool] = None,
    file: Optional[bool] = None,
    dev_file: Optional[bool] = None,
) -> LogSettings:
    section = config.logging or LoggingConfig()
    serving = mode == "serve"

    return LogSettings(
        level=LogLevel.parse(level or section.level or config.log_level),
        format=LogFormat.parse(format or section.format),
        console=_first(console, section.console, default=serving),
        file=_first(file, section.file, default=True),
        access_log=_first(access_log, section.access_log, default=serving),
        dev_file=_first(dev_file, section.dev_file, default=False),
    )


def bootstrap_logging(
    config: Config,
    *,
    mode: LogMode,
    level: Optional[str] = None,
    format: Optional[str] = None,
    access_log: Optional[bool] = None,
    console: Optional[bool] = None,
    file: Optional[bool] = None,
    dev_file: Optional[bool] = None,
) -> LogSettings:
    """Resolve settings from ``config`` and initialize the process logger."""
    settings = resolve_settings(
        config,
        mode=mode,
        level=level,
        format=format,
        access_log=access_log,
        console=console,
        file=file,
        dev_file=dev_file,
    )
    Log.configure(
        level=settings.level,
        format=settings.format,
        console=settings.console,
        file=settings.file,
        dev=settings.dev_file,
    )
    return settings
