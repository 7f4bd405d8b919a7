from collections.abc import Iterator
from pathlib import Path

import pytest

from ctxbridge.util.log import Log, LogFormat, LogLevel


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def ctxbridge_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[Path]:
    home = tmp_path / "ctxbridge-home"
    monkeypatch.setenv("CTXBRIDGE_HOME", str(home))
    monkeypatch.delenv("CTXBRIDGE_CONFIG_CONTENT", raising=False)
    yield home
    Log.configure(level=LogLevel.INFO, format=LogFormat.KV, console=False, file=False, dev=False)
