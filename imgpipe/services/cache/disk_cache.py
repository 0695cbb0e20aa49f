# imgpipe/services/cache/disk_cache.py
from __future__ import annotations

import os
import tempfile
from io import BytesIO
from pathlib import Path
from typing import Optional

from PIL import Image

from imgpipe.common.logging import get_logger
from imgpipe.domain.entities.cache_entry import CacheEntry
from imgpipe.domain.errors import CacheCorrupt, CacheDirectoryUnavailable, CacheMiss

logger = get_logger(__name__)

PROBE_NAME = ".write-test"
TMP_PREFIX = ".tmp-"


def decodes(data: bytes) -> bool:
    """True when `data` opens and fully decodes as an image."""
    if not data:
        return False
    try:
        with Image.open(BytesIO(data)) as im:
            im.load()
        return True
    except Exception:
        return False


def _safe_replace(tmp_path: Path, out_path: Path) -> None:
    os.replace(tmp_path, out_path)


class DiskCacheStore:
    """
    Flat key -> file store under a single cache root.

    - Writes go to a dot-prefixed temp file in the same directory and are
      renamed into place, so a reader never sees a half-written entry.
    - Reads validate the bytes; an undecodable entry is deleted and reported
      as CacheCorrupt so the caller regenerates.
    - Concurrent writers for the same key are fine: last rename wins.
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).expanduser()

    # --- startup ------------------------------------------------------------

    def prepare(self) -> None:
        """Create the root recursively and prove it is writable. Startup-time only."""
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            probe = self.root / PROBE_NAME
            probe.write_bytes(b"")
            probe.unlink()
        except OSError as e:
            logger.critical("Cache directory unavailable: %s (%s)", self.root, e)
            raise CacheDirectoryUnavailable(str(self.root), f"cache root not writable ({e})") from e
        self.root = self.root.resolve()
        logger.info("Cache directory ready: %s", self.root)

    # --- lookups ------------------------------------------------------------

    def path_for(self, key: str) -> Path:
        if not key or key != os.path.basename(key) or key.startswith(".") or "\\" in key:
            raise ValueError(f"invalid cache key: {key!r}")
        return self.root / key

    def exists(self, key: str) -> bool:
        return self.path_for(key).is_file()

    def stat(self, key: str) -> Optional[CacheEntry]:
        p = self.path_for(key)
        try:
            st = p.stat()
        except FileNotFoundError:
            return None
        return CacheEntry(key=key, path=p, size_bytes=st.st_size, mtime=st.st_mtime)

    def read(self, key: str) -> bytes:
        p = self.path_for(key)
        try:
            data = p.read_bytes()
        except FileNotFoundError as e:
            raise CacheMiss(key) from e
        except OSError as e:
            logger.warning("Cache entry unreadable, treating as miss: %s (%s)", key, e)
            raise CacheMiss(key, "cache entry unreadable") from e

        if not decodes(data):
            try:
                self.invalidate(key)
            except OSError as e:
                logger.error("Could not remove corrupt cache entry %s: %s", key, e)
            raise CacheCorrupt(key, "cache entry does not decode")
        return data

    # --- mutations ----------------------------------------------------------

    def write(self, key: str, data: bytes) -> Path:
        out_path = self.path_for(key)
        tmp_out: Optional[Path] = None
        try:
            with tempfile.NamedTemporaryFile(
                "wb", prefix=TMP_PREFIX, suffix=out_path.suffix, delete=False, dir=str(self.root)
            ) as tf:
                tmp_out = Path(tf.name)
                tf.write(data)
                tf.flush()
                os.fsync(tf.fileno())
            _safe_replace(tmp_out, out_path)
        except OSError as e:
            raise CacheDirectoryUnavailable(str(self.root), f"cache write failed for {key} ({e})") from e
        finally:
            if tmp_out is not None:
                tmp_out.unlink(missing_ok=True)
        return out_path

    def invalidate(self, key: str) -> bool:
        try:
            self.path_for(key).unlink()
            return True
        except FileNotFoundError:
            return False
