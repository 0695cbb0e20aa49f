# imgpipe/domain/enums/fallback_category.py
from __future__ import annotations

from enum import StrEnum


class FallbackCategory(StrEnum):
    image = "image"
    project = "project"
    team_member = "team_member"
    about = "about"
