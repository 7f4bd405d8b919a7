from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

from ctxbridge.server.mock_cache import MockCache
from ctxbridge.server.models import BusinessContext, Requirement


def _context(requirement_id: str) -> BusinessContext:
    return BusinessContext(
        requirements=[Requirement(id=requirement_id, title=f"Requirement {requirement_id}")],
        last_updated=datetime(2024, 5, 1, tzinfo=timezone.utc),
    )


def test_range_lookup_is_inclusive() -> None:
    cache = MockCache()
    cache.upsert("src/a.py", 10, 20, _context("REQ-1"))

    assert cache.get("src/a.py", 10) is not None
    assert cache.get("src/a.py", 20) is not None
    assert cache.get("src/a.py", 21) is None
    assert cache.get("src/b.py", 15) is None


def test_overlapping_upsert_replaces_entry() -> None:
    cache = MockCache()
    cache.upsert("src/a.py", 10, 20, _context("REQ-1"))
    cache.upsert("src/a.py", 15, 30, _context("REQ-2"))
    cache.upsert("src/a.py", 40, 50, _context("REQ-3"))

    assert cache.get("src/a.py", 12) is None
    assert cache.get("src/a.py", 25).requirements[0].id == "REQ-2"  # type: ignore[union-attr]
    assert cache.get("src/a.py", 45).requirements[0].id == "REQ-3"  # type: ignore[union-attr]


def test_clear_by_pattern_counts_files() -> None:
    cache = MockCache()
    cache.upsert("src/auth/login.py", 1, 5, _context("REQ-1"))
    cache.upsert("src/auth/token.py", 1, 5, _context("REQ-2"))
    cache.upsert("src/billing.py", 1, 5, _context("REQ-3"))

    assert cache.clear("auth") == 2
    assert cache.keys() == ["src/billing.py"]
    assert cache.clear() == 1
    assert cache.keys() == []


def test_save_and_load_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "state" / "mock-cache.json"
    cache = MockCache(path)
    cache.upsert("src/a.py", 10, 20, _context("REQ-1"))
    cache.save()

    raw = json.loads(path.read_text(encoding="utf-8"))
    reloaded = MockCache(path)
    reloaded.load()

    assert list(raw["src/a.py"]) == ["10-20"]
    assert reloaded.get("src/a.py", 11).requirements[0].id == "REQ-1"  # type: ignore[union-attr]


def test_load_accepts_list_format(tmp_path: Path) -> None:
    path = tmp_path / "mock-cache.json"
    path.write_text(
        json.dumps({
            "src/a.py": [
                {"startLine": 1, "endLine": 3, "context": _context("REQ-7").to_wire()},
            ]
        }),
        encoding="utf-8",
    )
    cache = MockCache(path)
    cache.load()

    assert cache.get("src/a.py", 2).requirements[0].id == "REQ-7"  # type: ignore[union-attr]


def test_corrupt_file_leaves_cache_empty(tmp_path: Path) -> None:
    path = tmp_path / "mock-cache.json"
    path.write_text("[1, 2", encoding="utf-8")
    cache = MockCache(path)
    cache.upsert("src/a.py", 1, 2, _context("REQ-1"))

    cache.load()

    assert cache.keys() == []


def test_memory_only_cache_survives_load() -> None:
    cache = MockCache()
    cache.upsert("src/a.py", 1, 2, _context("REQ-1"))

    cache.load()

    assert cache.keys() == ["src/a.py"]
