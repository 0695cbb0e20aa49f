# imgpipe/domain/policies/image_paths.py
from __future__ import annotations

from pathlib import PurePosixPath
from typing import Iterable, Mapping, Optional

from imgpipe.domain.enums.fallback_category import FallbackCategory
from imgpipe.domain.enums.image_format import ImageFormat

SUPPORTED_EXTS = frozenset({"jpg", "jpeg", "png", "gif", "webp"})


def _ext(path: str) -> str:
    return PurePosixPath(path).suffix.lstrip(".").lower()


def is_image_path(path: str, exts: Iterable[str] = SUPPORTED_EXTS) -> bool:
    allowed = {e.lower().lstrip(".") for e in exts}
    return _ext(path) in allowed


def matches_prefix(path: str, prefixes: Iterable[str]) -> bool:
    p = "/" + path.lstrip("/")
    for prefix in prefixes:
        pre = "/" + prefix.strip("/")
        if p == pre or p.startswith(pre + "/"):
            return True
    return False


def mime_type_for(path: str) -> str:
    fmt = ImageFormat.from_extension(_ext(path))
    return fmt.mime_type if fmt else "application/octet-stream"


def category_for_path(path: str, segment_categories: Optional[Mapping[str, str]] = None) -> FallbackCategory:
    """
    Pick the content category whose fallback stands in for a missing source.
    Directory segments are checked in order; the first one listed in
    `segment_categories` wins. Everything else is the generic image category.
    """
    mapping = {k.lower(): v for k, v in (segment_categories or {}).items()}
    for seg in PurePosixPath("/" + path.lstrip("/")).parent.parts:
        cat = mapping.get(seg.lower())
        if cat:
            try:
                return FallbackCategory(cat)
            except ValueError:
                continue
    return FallbackCategory.image
