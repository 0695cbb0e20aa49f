# imgpipe/domain/dataclasses/delivery.py
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from imgpipe.domain.enums.delivery_state import DeliveryState
from imgpipe.domain.enums.fallback_category import FallbackCategory


@dataclass(frozen=True)
class Delivery:
    """
    What the orchestrator hands back for every in-scope image request:
    a servable body (a file on disk or in-memory bytes) and its content type.
    `state` is the terminal state that produced it.
    """
    state: DeliveryState
    content_type: str
    path: Optional[Path] = None
    data: Optional[bytes] = None
    cache_key: Optional[str] = None
    category: Optional[FallbackCategory] = None

    def __post_init__(self):
        if not self.state.terminal:
            raise ValueError(f"delivery state must be terminal, got {self.state}")
        if self.path is None and self.data is None:
            raise ValueError("delivery needs a path or in-memory data")

    def body(self) -> bytes:
        if self.data is not None:
            return self.data
        return self.path.read_bytes()  # type: ignore[union-attr]


@dataclass
class OptimizedImage:
    """Result of generating the full responsive set for one source."""
    logical_path: str
    width: int
    height: int
    format: str
    original: Optional[str] = None                       # cache key of the full-size re-encode
    sizes: Dict[str, str] = field(default_factory=dict)  # breakpoint -> cache key
