# imgpipe/domain/enums/delivery_state.py
from __future__ import annotations

from enum import StrEnum


class DeliveryState(StrEnum):
    resolving = "resolving"
    negotiating = "negotiating"
    cache_lookup = "cache_lookup"
    cache_hit = "cache_hit"
    generating = "generating"
    responding = "responding"
    serving_fallback = "serving_fallback"
    serving_original = "serving_original"

    @property
    def terminal(self) -> bool:
        return self in (
            DeliveryState.responding,
            DeliveryState.serving_fallback,
            DeliveryState.serving_original,
        )
