# imgpipe/common/path/safe.py
from __future__ import annotations

from pathlib import Path

from imgpipe.domain.errors import PathTraversal


def resolve_root(root: Path | str) -> Path:
    """Resolve an asset/cache root directory."""
    return Path(root).expanduser().resolve()


def safe_join(root: Path | str, rel: Path | str) -> Path:
    """
    Join 'root' and a logical (URL-ish) path safely, ensuring the result stays inside 'root'.
    Leading slashes are treated as relative to root, so "/images/a.jpg" and
    "images/a.jpg" resolve to the same file.
    Raises PathTraversal (a ValueError) if the path escapes the root.
    """
    rel_s = str(rel)
    if "\x00" in rel_s:
        raise PathTraversal(rel_s, "null byte in path")
    r = resolve_root(root)
    p = (r / rel_s.lstrip("/\\")).resolve()
    if p != r and not p.is_relative_to(r):
        raise PathTraversal(rel_s, f"path {p} escapes root {r}")
    return p

