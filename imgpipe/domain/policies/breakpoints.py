# imgpipe/domain/policies/breakpoints.py
from __future__ import annotations

from typing import Dict, List, Mapping, Optional

from imgpipe.domain.entities.derivative_spec import DerivativeSpec
from imgpipe.domain.enums.breakpoint import Breakpoint
from imgpipe.domain.enums.image_format import ImageFormat

DEFAULT_WIDTHS: Dict[Breakpoint, int] = {
    Breakpoint.sm: 320,
    Breakpoint.md: 640,
    Breakpoint.lg: 1024,
    Breakpoint.xl: 1920,
}


def parse_breakpoint(label: Optional[str]) -> Optional[Breakpoint]:
    """'' / None -> None; unknown labels raise ValueError."""
    s = (label or "").strip().lower()
    if not s:
        return None
    return Breakpoint(s)


def breakpoint_widths(configured: Optional[Mapping[str, int]] = None) -> Dict[Breakpoint, int]:
    """Merge configured widths over the defaults; keys outside the label set are ignored."""
    out = dict(DEFAULT_WIDTHS)
    for label, width in (configured or {}).items():
        try:
            bp = Breakpoint(str(label).lower())
        except ValueError:
            continue
        if int(width) > 0:
            out[bp] = int(width)
    return out


def spec_for(
    fmt: ImageFormat,
    breakpoint: Optional[Breakpoint],
    widths: Mapping[Breakpoint, int],
    *,
    quality: int,
    effort: int,
) -> DerivativeSpec:
    width = widths[breakpoint] if breakpoint else None
    return DerivativeSpec(format=fmt, width=width, breakpoint=breakpoint, quality=quality, effort=effort)


def responsive_set(
    fmt: ImageFormat,
    widths: Mapping[Breakpoint, int],
    *,
    quality: int,
    effort: int,
    include_original: bool = True,
) -> List[DerivativeSpec]:
    """Native-size re-encode (optional) followed by every breakpoint, narrowest first."""
    specs: List[DerivativeSpec] = []
    if include_original:
        specs.append(spec_for(fmt, None, widths, quality=quality, effort=effort))
    for bp in sorted(widths, key=lambda b: widths[b]):
        specs.append(spec_for(fmt, bp, widths, quality=quality, effort=effort))
    return specs
