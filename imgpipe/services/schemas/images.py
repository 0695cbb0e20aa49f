# imgpipe/services/schemas/images.py
from __future__ import annotations

from typing import Dict, Optional
from pydantic import BaseModel, ConfigDict, Field


class OptimizeRequest(BaseModel):
    path: str = Field(..., min_length=1, examples=["/uploads/projects/villa-1.jpg"])


class OptimizedImageRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    logical_path: str
    width: int
    height: int
    format: str
    original: Optional[str] = None
    sizes: Dict[str, str] = Field(default_factory=dict)
    urls: Dict[str, str] = Field(default_factory=dict)


class WorkerStatsRead(BaseModel):
    max_workers: int
    submitted: int
    completed: int
    failed: int
    coalesced: int
    in_flight: int


class PipelineStatusRead(BaseModel):
    initialized: bool
    caching_enabled: bool
    workers: Optional[WorkerStatsRead] = None
