"""Configuration schema: pydantic models for ctxbridge config files and server snapshots."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Literal, Mapping, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DataSize = Literal["small", "medium", "large"]

DEFAULT_PORT = 3001
DEFAULT_HOST = "127.0.0.1"


class ReloadPolicy(str, Enum):
    """How a changed field reaches a running server."""
    HOT = "hot"
    RESTART = "restart"


class MockOptions(BaseModel):
    """Synthetic context generation settings."""
    enabled: bool = True
    data_size: DataSize = "medium"
    enterprise_patterns: bool = True

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )


class ServerConfig(BaseModel):
    """Immutable snapshot of the context server settings.

    Values are not range-checked on construction so that a bad port can be
    stored and reported by :meth:`problems` when the server is started.
    """
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    timeout_ms: int = Field(
        30000,
        validation_alias=AliasChoices("timeoutMs", "timeout", "timeout_ms"),
        serialization_alias="timeoutMs",
    )
    retry_attempts: int = 3
    max_concurrent_requests: int = 10
    mock: MockOptions = Field(
        default_factory=MockOptions,
        validation_alias=AliasChoices("mock", "mockOptions"),
        serialization_alias="mock",
    )
    shutdown_grace_ms: int = 3000
    health_check_interval_ms: int = 5000

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def problems(self) -> List[str]:
        """Range violations that make this snapshot unusable for a server."""
        found: List[str] = []
        if not 0 <= self.port <= 65535:
            found.append(f"port must be between 0 and 65535, got {self.port}")
        if not self.host:
            found.append("host must not be empty")
        if self.timeout_ms <= 0:
            found.append(f"timeoutMs must be positive, got {self.timeout_ms}")
        if self.retry_attempts < 0:
            found.append(f"retryAttempts must not be negative, got {self.retry_attempts}")
        if self.max_concurrent_requests < 1:
            found.append(f"maxConcurrentRequests must be at least 1, got {self.max_concurrent_requests}")
        if self.shutdown_grace_ms < 0:
            found.append(f"shutdownGraceMs must not be negative, got {self.shutdown_grace_ms}")
        if self.health_check_interval_ms <= 0:
            found.append(f"healthCheckIntervalMs must be positive, got {self.health_check_interval_ms}")
        return found

    def merge(self, partial: Mapping[str, Any]) -> "ServerConfig":
        """Return a new snapshot with ``partial`` laid over this one.

        Keys may use python or wire names. ``mock`` merges field by field.
        Raises ``ValueError`` (including pydantic's ``ValidationError``) for
        unknown keys or values of the wrong type.
        """
        data = self.model_dump()
        for key, value in partial.items():
            name = _resolve_field(ServerConfig, key)
            if name == "mock" and isinstance(value, Mapping):
                mock = dict(data["mock"])
                for mock_key, mock_value in value.items():
                    mock[_resolve_field(MockOptions, mock_key)] = mock_value
                value = mock
            data[name] = value
        return ServerConfig.model_validate(data)

    def changed_fields(self, other: "ServerConfig") -> List[str]:
        return [name for name in type(self).model_fields if getattr(self, name) != getattr(other, name)]

    def requires_restart(self, other: "ServerConfig") -> bool:
        return any(RELOAD_POLICY[name] is ReloadPolicy.RESTART for name in self.changed_fields(other))


RELOAD_POLICY: Dict[str, ReloadPolicy] = {
    "host": ReloadPolicy.RESTART,
    "port": ReloadPolicy.RESTART,
    "timeout_ms": ReloadPolicy.HOT,
    "retry_attempts": ReloadPolicy.HOT,
    "max_concurrent_requests": ReloadPolicy.HOT,
    "mock": ReloadPolicy.HOT,
    "shutdown_grace_ms": ReloadPolicy.HOT,
    "health_check_interval_ms": ReloadPolicy.HOT,
}


def _resolve_field(model: type[BaseModel], key: str) -> str:
    for name, info in model.model_fields.items():
        names = {name, info.alias, info.serialization_alias}
        if isinstance(info.validation_alias, AliasChoices):
            names.update(c for c in info.validation_alias.choices if isinstance(c, str))
        elif isinstance(info.validation_alias, str):
            names.add(info.validation_alias)
        if key in names:
            return name
    raise ValueError(f"unknown {model.__name__} field: {key}")


class RemoteConfig(BaseModel):
    """Optional remote context server."""
    url: Optional[str] = None
    api_key: Optional[str] = Field(None, alias="apiKey")
    enabled: bool = True

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: Optional[str] = None
    format: Optional[Literal["kv", "json", "pretty"]] = None
    console: Optional[bool] = None
    file: Optional[bool] = None
    access_log: Optional[bool] = Field(None, alias="accessLog")
    dev_file: Optional[bool] = Field(None, alias="devFile")

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class Config(BaseModel):
    """Main configuration schema."""
    schema_: Optional[str] = Field(None, alias="$schema")
    log_level: Optional[str] = Field(None, alias="logLevel")
    logging: Optional[LoggingConfig] = None
    server: ServerConfig = Field(default_factory=ServerConfig)
    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    cache_path: Optional[str] = Field(None, alias="cachePath")

    model_config = ConfigDict(extra="forbid", populate_by_name=True)
