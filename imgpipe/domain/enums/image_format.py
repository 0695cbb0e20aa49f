# imgpipe/domain/enums/image_format.py
from __future__ import annotations

from enum import StrEnum
from typing import Optional


class ImageFormat(StrEnum):
    JPEG = "jpeg"
    PNG = "png"
    GIF = "gif"
    WEBP = "webp"

    @property
    def extension(self) -> str:
        return "jpg" if self is ImageFormat.JPEG else self.value

    @property
    def mime_type(self) -> str:
        return f"image/{self.value}"

    @property
    def pillow_name(self) -> str:
        return self.value.upper()

    @property
    def supports_alpha(self) -> bool:
        return self in (ImageFormat.PNG, ImageFormat.WEBP, ImageFormat.GIF)

    @property
    def supports_animation(self) -> bool:
        return self in (ImageFormat.GIF, ImageFormat.WEBP)

    @classmethod
    def from_pillow(cls, name: Optional[str]) -> Optional["ImageFormat"]:
        """Map Pillow's `Image.format` ("JPEG", "MPO", ...) onto the supported set."""
        n = (name or "").strip().upper()
        if n == "MPO":  # multi-picture JPEGs from phone cameras
            n = "JPEG"
        try:
            return cls(n.lower())
        except ValueError:
            return None

    @classmethod
    def from_extension(cls, ext: Optional[str]) -> Optional["ImageFormat"]:
        e = (ext or "").strip().lstrip(".").lower()
        if e in ("jpg", "jpeg"):
            return cls.JPEG
        try:
            return cls(e)
        except ValueError:
            return None
