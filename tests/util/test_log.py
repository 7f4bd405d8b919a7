from __future__ import annotations

import json
from pathlib import Path

from ctxbridge.core.global_paths import GlobalPath
from ctxbridge.util.log import KEEP_LOG_FILES, Log, LogFormat, LogLevel


def test_log_writes_console_and_file(monkeypatch, tmp_path: Path, capsys) -> None:  # type: ignore[no-untyped-def]
    monkeypatch.setattr(GlobalPath, "log", classmethod(lambda cls: str(tmp_path)))
    Log.configure(level=LogLevel.INFO, format=LogFormat.KV, console=True, file=True, dev=True)

    log = Log.create({"service": "test.log"})
    log.info("server started", {"port": 3001})
    Log.close()

    stderr = capsys.readouterr().err
    text = (tmp_path / "dev.log").read_text(encoding="utf-8")

    assert 'msg="server started"' in stderr
    assert "service=test.log" in stderr
    assert "port=3001" in text


def test_log_supports_json_format(monkeypatch, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
    monkeypatch.setattr(GlobalPath, "log", classmethod(lambda cls: str(tmp_path)))
    Log.configure(level=LogLevel.INFO, format=LogFormat.JSON, console=False, file=True, dev=True)

    log = Log.create({"service": "test.json"})
    log.warn("bind failed", {"meta": {"host": "127.0.0.1"}, "error": OSError("in use")})
    Log.close()

    payload = json.loads((tmp_path / "dev.log").read_text(encoding="utf-8").strip())

    assert payload["level"] == "warn"
    assert payload["msg"] == "bind failed"
    assert payload["service"] == "test.json"
    assert payload["meta"] == {"host": "127.0.0.1"}
    assert "in use" in payload["error"]


def test_log_level_filters_debug(monkeypatch, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
    monkeypatch.setattr(GlobalPath, "log", classmethod(lambda cls: str(tmp_path)))
    Log.configure(level=LogLevel.INFO, format=LogFormat.KV, console=False, file=True, dev=True)

    log = Log.create({"service": "test.level"})
    log.debug("hidden")
    log.error("shown")
    Log.close()

    text = (tmp_path / "dev.log").read_text(encoding="utf-8")
    assert "hidden" not in text
    assert "shown" in text


def test_log_create_caches_by_service() -> None:
    assert Log.create({"service": "cached"}) is Log.create({"service": "cached"})
    assert Log.create({"other": 1}) is not Log.create({"other": 1})


def test_old_log_files_are_pruned(monkeypatch, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
    monkeypatch.setattr(GlobalPath, "log", classmethod(lambda cls: str(tmp_path)))
    for day in range(1, KEEP_LOG_FILES + 4):
        (tmp_path / f"2024-01-{day:02d}T000000.log").write_text("x", encoding="utf-8")

    Log.configure(console=False, file=True, dev=True)
    Log.close()

    remaining = list(tmp_path.glob("????-??-??T??????.log"))
    assert len(remaining) == KEEP_LOG_FILES


def test_level_and_format_parsing() -> None:
    assert LogLevel.parse("warning") is LogLevel.WARN
    assert LogLevel.parse(None) is LogLevel.INFO
    assert LogFormat.parse("JSON") is LogFormat.JSON
    assert LogFormat.parse(None) is LogFormat.KV


def test_timer_logs_start_and_duration(capsys) -> None:  # type: ignore[no-untyped-def]
    Log.configure(level=LogLevel.INFO, format=LogFormat.KV, console=True, file=False)
    log = Log.create({"service": "test.timer"})

    with log.time("draining", {"port": 3001}):
        pass

    lines = capsys.readouterr().err.strip().splitlines()
    assert "status=started" in lines[0]
    assert "status=completed" in lines[1]
    assert "duration=" in lines[1]
    assert "port=3001" in lines[1]
