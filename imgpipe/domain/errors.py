# imgpipe/domain/errors.py
from __future__ import annotations

from typing import Optional


class PipelineError(Exception):
    """Base for every failure the image pipeline knows how to name."""

    def __init__(self, subject: str, message: Optional[str] = None) -> None:
        self.subject = subject
        self.message = message or self.__class__.__name__
        super().__init__(f"{self.message}: {subject}")


class SourceMissing(PipelineError):
    """The logical path has no readable backing file. Recovered by category fallback."""


class CacheMiss(PipelineError):
    """No entry stored under the key."""


class CacheCorrupt(PipelineError):
    """An entry exists but does not decode as an image. Already removed when raised."""


class GenerationFailed(PipelineError):
    """Decode, encode or timeout failure while producing a derivative."""


class CacheDirectoryUnavailable(PipelineError):
    """The cache root cannot be created or written to."""


class FallbackUnavailable(PipelineError):
    """Neither the source nor any fallback asset can be served. A configuration error."""


class PathTraversal(PipelineError, ValueError):
    """Logical path escapes the asset root. Rejected, never resolved via fallback."""
