from imgpipe.services.schemas.images import (
    OptimizeRequest,
    OptimizedImageRead,
    PipelineStatusRead,
    WorkerStatsRead,
)
__all__ = [
    "OptimizeRequest",
    "OptimizedImageRead",
    "PipelineStatusRead",
    "WorkerStatsRead",
]
