from __future__ import annotations
from pathlib import Path
from typing import Optional, Protocol
from imgpipe.domain.entities.cache_entry import CacheEntry

class CacheStorePort(Protocol):
    def prepare(self) -> None: ...                     # create + probe the root; startup only
    def exists(self, key: str) -> bool: ...
    def stat(self, key: str) -> Optional[CacheEntry]: ...
    def read(self, key: str) -> bytes: ...             # raises CacheMiss / CacheCorrupt
    def write(self, key: str, data: bytes) -> Path: ...
    def invalidate(self, key: str) -> bool: ...
    def path_for(self, key: str) -> Path: ...
