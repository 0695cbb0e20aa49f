from __future__ import annotations
from pathlib import Path
from typing import Protocol
from imgpipe.domain.entities.source_asset import SourceAsset
from imgpipe.domain.enums.fallback_category import FallbackCategory

class SourceResolverPort(Protocol):
    def resolve(self, logical_path: str) -> SourceAsset: ...         # raises SourceMissing / PathTraversal
    def fallback_for(self, category: FallbackCategory) -> Path: ...  # raises FallbackUnavailable
