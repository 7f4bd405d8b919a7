"""Per-user directories for ctxbridge, resolved with platformdirs."""

import os
from pathlib import Path

from platformdirs import user_config_dir, user_data_dir, user_state_dir

APP_NAME = "ctxbridge"


class GlobalPath:
    """Platform directory lookup.

    ``CTXBRIDGE_HOME`` relocates every directory under one root, which keeps
    tests and throwaway runs out of the real user profile.
    """

    @classmethod
    def _override(cls) -> Path | None:
        root = os.environ.get("CTXBRIDGE_HOME")
        return Path(root) if root else None

    @classmethod
    def data(cls) -> str:
        root = cls._override()
        return str(root / "data") if root else user_data_dir(APP_NAME)

    @classmethod
    def log(cls) -> str:
        return str(Path(cls.data()) / "log")

    @classmethod
    def config(cls) -> str:
        root = cls._override()
        return str(root / "config") if root else user_config_dir(APP_NAME)

    @classmethod
    def state(cls) -> str:
        root = cls._override()
        return str(root / "state") if root else user_state_dir(APP_NAME)

    @classmethod
    def mock_cache(cls) -> str:
        """Default location of the persisted mock context cache."""
        return str(Path(cls.state()) / "mock-cache.json")
