"""Errors raised by the server supervisor."""

from __future__ import annotations


class SupervisorError(RuntimeError):
    """Base class for supervisor failures."""


class InvalidConfigError(SupervisorError):
    """The server configuration is malformed or out of range."""

    def __init__(self, problems: list[str]) -> None:
        self.problems = list(problems)
        super().__init__("invalid server config: " + "; ".join(self.problems))


class BindFailureError(SupervisorError):
    """The server socket could not be bound."""

    def __init__(self, host: str, port: int, reason: str) -> None:
        self.host = host
        self.port = port
        self.reason = reason
        super().__init__(f"failed to bind {host}:{port}: {reason}")


class ServerStartError(SupervisorError):
    """The server was bound but did not come up."""


class ServerCrashError(SupervisorError):
    """A running server stopped without being asked to."""
