# imgpipe/services/resolver/source_resolver.py
from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

from PIL import Image, UnidentifiedImageError

from imgpipe.common.logging import get_logger
from imgpipe.common.path.safe import resolve_root, safe_join
from imgpipe.domain.entities.source_asset import SourceAsset
from imgpipe.domain.enums.fallback_category import FallbackCategory
from imgpipe.domain.enums.image_format import ImageFormat
from imgpipe.domain.errors import FallbackUnavailable, SourceMissing

logger = get_logger(__name__)

# EXIF orientations that rotate by 90/270 degrees
_SWAPPING_ORIENTATIONS = {5, 6, 7, 8}


def sniff_image(path: Path) -> Tuple[Optional[ImageFormat], Optional[int], Optional[int]]:
    """
    Read just the header: (format, width, height) with width/height as they
    will look after EXIF auto-rotation. Unknown or unsupported content, and
    pixel counts over Pillow's decompression-bomb limit, -> (None, None, None).
    """
    try:
        with Image.open(path) as im:
            fmt = ImageFormat.from_pillow(im.format)
            w, h = im.size
            try:
                orientation = im.getexif().get(0x0112)
            except Exception:
                orientation = None
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError):
        return None, None, None
    if fmt is None:
        return None, None, None
    if orientation in _SWAPPING_ORIENTATIONS:
        w, h = h, w
    return fmt, w, h


class LocalSourceResolver:
    """
    Maps logical request paths ("/images/projects/a.jpg") onto files under the
    asset root and owns the per-category fallback assets.
    """

    def __init__(
        self,
        asset_root: Path | str,
        fallbacks: Mapping[FallbackCategory | str, str],
    ) -> None:
        self.asset_root = resolve_root(asset_root)
        self._fallback_rel: Dict[FallbackCategory, str] = {
            FallbackCategory(k): v for k, v in fallbacks.items()
        }
        self._fallback_paths: Dict[FallbackCategory, Path] = {}

    # --- sources ------------------------------------------------------------

    def resolve(self, logical_path: str) -> SourceAsset:
        path = safe_join(self.asset_root, logical_path)  # PathTraversal propagates
        if not path.is_file() or not os.access(path, os.R_OK):
            raise SourceMissing(logical_path, "source not found")
        try:
            st = path.stat()
        except OSError as e:
            raise SourceMissing(logical_path, f"source unreadable ({e})") from e

        fmt, w, h = sniff_image(path)
        return SourceAsset(
            logical_path=logical_path,
            path=path,
            size_bytes=st.st_size,
            mtime=st.st_mtime,
            format=fmt,
            width=w,
            height=h,
        )

    # --- fallbacks ----------------------------------------------------------

    def verify_fallbacks(self) -> Dict[FallbackCategory, Path]:
        """
        Startup check. Each category's asset must exist and decode; a category
        whose asset is unusable degrades to the generic image fallback. A
        missing generic fallback is fatal.
        """
        usable: Dict[FallbackCategory, Path] = {}
        for cat, rel in self._fallback_rel.items():
            try:
                p = safe_join(self.asset_root, rel)
            except ValueError:
                logger.critical("Fallback path for %s escapes the asset root: %s", cat, rel)
                continue
            fmt, _, _ = sniff_image(p) if p.is_file() else (None, None, None)
            if fmt is None:
                logger.warning("Fallback asset for %s is missing or invalid: %s", cat, p)
                continue
            usable[cat] = p

        if FallbackCategory.image not in usable:
            logger.critical("Generic fallback asset unavailable under %s", self.asset_root)
            raise FallbackUnavailable(
                self._fallback_rel.get(FallbackCategory.image, "<unset>"),
                "generic fallback asset missing",
            )
        self._fallback_paths = usable
        logger.info("Fallback assets ready: %s", ", ".join(sorted(c.value for c in usable)))
        return dict(usable)

    def fallback_for(self, category: FallbackCategory) -> Path:
        for cat in (category, FallbackCategory.image):
            p = self._fallback_paths.get(cat)
            if p is None and cat in self._fallback_rel and not self._fallback_paths:
                # verify_fallbacks() not run yet: resolve lazily
                try:
                    p = safe_join(self.asset_root, self._fallback_rel[cat])
                except ValueError:
                    p = None
            if p is not None and p.is_file():
                return p
        raise FallbackUnavailable(str(category), "no fallback asset reachable")
