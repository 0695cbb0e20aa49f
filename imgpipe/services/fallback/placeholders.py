# imgpipe/services/fallback/placeholders.py
"""Draw the grey labelled placeholder images used as fallback assets."""
from __future__ import annotations

import os
import re
import sys
import tempfile
from pathlib import Path
from typing import Dict, Optional, Tuple

from PIL import Image, ImageDraw, ImageFont

from imgpipe.common.logging import get_logger
from imgpipe.common.path.safe import safe_join
from imgpipe.domain.enums.fallback_category import FallbackCategory
from imgpipe.domain.enums.image_format import ImageFormat

logger = get_logger(__name__)

# category -> (size, label)
PLACEHOLDERS: Dict[FallbackCategory, Tuple[Tuple[int, int], str]] = {
    FallbackCategory.image: ((800, 600), "No Image Available"),
    FallbackCategory.project: ((800, 600), "No Project Image"),
    FallbackCategory.team_member: ((400, 400), "No Profile Image"),
    FallbackCategory.about: ((1600, 900), "About Us"),
}


def _hex_to_rgb(hex_color: str) -> Tuple[int, int, int]:
    s = hex_color.strip().lstrip("#")
    if len(s) == 3:
        s = "".join(ch * 2 for ch in s)
    if not re.fullmatch(r"[0-9a-fA-F]{6}", s):
        return (0, 0, 0)
    return (int(s[0:2], 16), int(s[2:4], 16), int(s[4:6], 16))


def render_placeholder(
    size: Tuple[int, int],
    label: str,
    *,
    bg: str = "#EEEEEE",
    fg: str = "#666666",
) -> Image.Image:
    im = Image.new("RGB", size, color=_hex_to_rgb(bg))
    draw = ImageDraw.Draw(im)
    font = ImageFont.load_default()
    left, top, right, bottom = draw.textbbox((0, 0), label, font=font)
    x = (size[0] - (right - left)) // 2
    y = (size[1] - (bottom - top)) // 2
    draw.text((x, y), label, fill=_hex_to_rgb(fg), font=font)
    return im


def write_placeholder(out_path: Path | str, size: Tuple[int, int], label: str, quality: int = 90) -> Path:
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    fmt = ImageFormat.from_extension(out_path.suffix) or ImageFormat.JPEG
    im = render_placeholder(size, label)
    with tempfile.NamedTemporaryFile("wb", suffix=out_path.suffix, delete=False, dir=str(out_path.parent)) as tf:
        tmp_out = Path(tf.name)
    try:
        params = {"quality": quality} if fmt in (ImageFormat.JPEG, ImageFormat.WEBP) else {}
        im.save(tmp_out, format=fmt.pillow_name, **params)
        os.replace(tmp_out, out_path)
    finally:
        tmp_out.unlink(missing_ok=True)
    return out_path


def generate_fallbacks(
    asset_root: Path | str,
    fallback_paths: Dict[str, str],
    *,
    overwrite: bool = False,
) -> Dict[str, Path]:
    """Write one placeholder per configured category; existing files are kept unless `overwrite`."""
    written: Dict[str, Path] = {}
    for cat_name, rel in fallback_paths.items():
        cat = FallbackCategory(cat_name)
        out = safe_join(asset_root, rel)
        if out.exists() and not overwrite:
            logger.info("Fallback exists, keeping: %s", out)
            continue
        size, label = PLACEHOLDERS[cat]
        written[cat_name] = write_placeholder(out, size, label)
        logger.info("Wrote fallback %s -> %s", cat_name, out)
    return written


def main(argv: Optional[list[str]] = None) -> int:
    from imgpipe.common.settings import get_settings

    args = list(sys.argv[1:] if argv is None else argv)
    cfg = get_settings()
    generate_fallbacks(cfg.asset_root, cfg.fallbacks.paths(), overwrite="--overwrite" in args)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
