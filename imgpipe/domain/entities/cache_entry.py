# imgpipe/domain/entities/cache_entry.py
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class CacheEntry:
    key: str
    path: Path
    size_bytes: int
    mtime: float

    def is_older_than(self, mtime: float) -> bool:
        return self.mtime < mtime
