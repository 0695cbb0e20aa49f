from __future__ import annotations
from typing import List, Protocol, Sequence
from imgpipe.domain.entities.derivative_spec import DerivativeSpec
from imgpipe.domain.entities.source_asset import SourceAsset

class DerivativeGeneratorPort(Protocol):
    def generate(self, source: SourceAsset, spec: DerivativeSpec) -> bytes: ...    # raises GenerationFailed

    def generate_many(
        self,
        source: SourceAsset,
        specs: Sequence[DerivativeSpec],
    ) -> List[bytes]: ...
