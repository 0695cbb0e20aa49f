# imgpipe/domain/enums/breakpoint.py
from __future__ import annotations

from enum import StrEnum


class Breakpoint(StrEnum):
    sm = "sm"
    md = "md"
    lg = "lg"
    xl = "xl"
