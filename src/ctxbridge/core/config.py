"""Configuration management.

Loads and merges configuration from multiple sources with proper precedence:

1. Global config (``ctxbridge.json`` / ``ctxbridge.jsonc`` in the user config dir)
2. Project configs found from the filesystem root down to the working directory
3. The ``CTXBRIDGE_CONFIG_CONTENT`` environment variable (JSON)
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .config_loader import deep_merge, load_json_file
from .config_schema import (
    Config,
    LoggingConfig,
    MockOptions,
    RELOAD_POLICY,
    ReloadPolicy,
    RemoteConfig,
    ServerConfig,
)
from .global_paths import GlobalPath
from ..util.log import Log

log = Log.create({"service": "config"})

CONFIG_FILENAMES = ("ctxbridge.json", "ctxbridge.jsonc")
ENV_CONFIG = "CTXBRIDGE_CONFIG_CONTENT"

__all__ = [
    "Config",
    "ConfigError",
    "ConfigManager",
    "LoggingConfig",
    "MockOptions",
    "RELOAD_POLICY",
    "ReloadPolicy",
    "RemoteConfig",
    "ServerConfig",
]


class ConfigError(Exception):
    """Configuration error."""

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"Config error in {path}: {message}")


class ConfigManager:
    """Loads the merged configuration once and caches it.

    One instance belongs to the application context; tests build their own.
    """

    def __init__(self, directory: str = ".") -> None:
        self.directory = directory
        self._cache: Optional[Config] = None
        self._sources: List[str] = []

    def reset(self) -> None:
        self._cache = None
        self._sources = []

    def sources(self) -> List[str]:
        """Files and variables that contributed to the cached config."""
        return self._sources.copy()

    async def get(self) -> Config:
        if self._cache is None:
            self._cache = self._load()
        return self._cache

    def _load(self) -> Config:
        result: Dict[str, Any] = {}
        sources: List[str] = []

        for filename in CONFIG_FILENAMES:
            filepath = os.path.join(GlobalPath.config(), filename)
            data = load_json_file(filepath)
            if data:
                result = deep_merge(result, data)
                sources.append(filepath)
                log.info("loaded global config", {"path": filepath})

        current = Path(self.directory).resolve()
        project_configs: List[Path] = []
        while True:
            for filename in CONFIG_FILENAMES:
                candidate = current / filename
                if candidate.is_file():
                    project_configs.append(candidate)
            if current == current.parent:
                break
            current = current.parent

        # Root first so the file nearest the working directory wins.
        for filepath in reversed(project_configs):
            data = load_json_file(filepath)
            if data:
                result = deep_merge(result, data)
                sources.append(str(filepath))
                log.info("loaded project config", {"path": str(filepath)})

        env_config = os.environ.get(ENV_CONFIG)
        if env_config:
            try:
                data = json.loads(env_config)
            except json.JSONDecodeError as e:
                raise ConfigError(ENV_CONFIG, f"invalid JSON: {e}") from e
            if not isinstance(data, dict):
                raise ConfigError(ENV_CONFIG, "expected a JSON object")
            result = deep_merge(result, data)
            sources.append(ENV_CONFIG)
            log.info("loaded config from environment", {"variable": ENV_CONFIG})

        try:
            config = Config.model_validate(result)
        except ValidationError as e:
            where = sources[-1] if sources else "<defaults>"
            raise ConfigError(where, str(e)) from e

        self._sources = sources
        return config
