"""Explicit context entries keyed by file and line range, persisted as JSON.

File format::

    {
      "src/auth/AuthService.ts": {
        "15-30": { ...BusinessContext... }
      }
    }

The older list form ``{"path": [{"startLine", "endLine", "context"}]}`` is
still accepted on load.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from ..util.log import Log
from .models import BusinessContext

log = Log.create({"service": "server.mock_cache"})


@dataclass
class CachedContextEntry:
    start_line: int
    end_line: int
    context: BusinessContext

    def contains(self, line: int) -> bool:
        return self.start_line <= line <= self.end_line

    def overlaps(self, start_line: int, end_line: int) -> bool:
        return not (end_line < self.start_line or start_line > self.end_line)


class MockCache:
    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path) if path else None
        self._data: Dict[str, List[CachedContextEntry]] = {}

    def load(self) -> None:
        """Replace the in-memory entries with the file contents.

        A missing file leaves the cache empty. An unreadable file is logged
        and also leaves the cache empty. Without a path the cache lives in
        memory only and this is a no-op.
        """
        if self.path is None:
            return
        self._data.clear()
        if not self.path.exists():
            return
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(raw, dict):
                raise ValueError("expected a JSON object")
            for file_path, entries in raw.items():
                self._data[file_path] = self._parse_entries(entries)
        except (OSError, KeyError, TypeError, ValueError, ValidationError) as e:
            log.error("failed to load mock cache", {"path": str(self.path), "error": str(e)})
            self._data.clear()
            return
        log.info("mock cache loaded", {"path": str(self.path), "files": len(self._data)})

    @staticmethod
    def _parse_entries(entries: Any) -> List[CachedContextEntry]:
        parsed: List[CachedContextEntry] = []
        if isinstance(entries, dict):
            for line_range, context in entries.items():
                start, _, end = str(line_range).partition("-")
                parsed.append(CachedContextEntry(int(start), int(end), BusinessContext.model_validate(context)))
        elif isinstance(entries, list):
            for item in entries:
                parsed.append(CachedContextEntry(
                    int(item["startLine"]),
                    int(item["endLine"]),
                    BusinessContext.model_validate(item["context"]),
                ))
        else:
            raise ValueError(f"unsupported entry format: {type(entries).__name__}")
        return parsed

    def save(self) -> None:
        if self.path is None:
            return
        payload = {
            file_path: {f"{e.start_line}-{e.end_line}": e.context.to_wire() for e in entries}
            for file_path, entries in self._data.items()
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def get(self, file_path: str, line: int) -> Optional[BusinessContext]:
        for entry in self._data.get(file_path, []):
            if entry.contains(line):
                return entry.context
        return None

    def upsert(self, file_path: str, start_line: int, end_line: int, context: BusinessContext) -> None:
        """Store ``context`` for the range, replacing the first overlapping entry."""
        entries = self._data.setdefault(file_path, [])
        entry = CachedContextEntry(start_line, end_line, context)
        for index, existing in enumerate(entries):
            if existing.overlaps(start_line, end_line):
                entries[index] = entry
                return
        entries.append(entry)

    def clear(self, pattern: str | None = None) -> int:
        """Drop files whose path contains ``pattern`` (all when empty). Returns the count removed."""
        if not pattern:
            removed = len(self._data)
            self._data.clear()
            return removed
        doomed = [key for key in self._data if pattern in key]
        for key in doomed:
            del self._data[key]
        return len(doomed)

    def keys(self) -> List[str]:
        return list(self._data)
