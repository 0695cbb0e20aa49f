# imgpipe/domain/entities/source_asset.py
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from imgpipe.domain.enums.image_format import ImageFormat


@dataclass(frozen=True)
class SourceAsset:
    """
    A read-only original image under the asset root.
    `format` is sniffed from the file content, not the extension; it is None
    when the header could not be identified (generation will then fail and
    the original bytes are served untouched).
    """
    logical_path: str
    path: Path
    size_bytes: int
    mtime: float
    format: Optional[ImageFormat] = None
    width: Optional[int] = None
    height: Optional[int] = None

    def __post_init__(self):
        if not self.logical_path:
            raise ValueError("logical_path is required")
        if self.size_bytes < 0:
            raise ValueError("size_bytes must be >= 0")

    @property
    def stem(self) -> str:
        return self.path.stem

    @property
    def declared_format(self) -> Optional[ImageFormat]:
        """Format implied by the file name; used only to label the original when sniffing failed."""
        return ImageFormat.from_extension(self.path.suffix)
