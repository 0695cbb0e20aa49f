# imgpipe/domain/policies/format_negotiation.py
from __future__ import annotations

from typing import Optional

from imgpipe.domain.enums.image_format import ImageFormat


def accepts_format(accept_header: Optional[str], fmt: ImageFormat) -> bool:
    """
    True when the Accept header lists the format's media type explicitly.
    Quality values and wildcards are ignored: "*/*" or "image/*" do not
    count as declared support.
    """
    if not accept_header:
        return False
    wanted = fmt.mime_type
    for part in accept_header.split(","):
        media = part.split(";", 1)[0].strip().lower()
        if media == wanted:
            return True
    return False


def negotiate(
    accept_header: Optional[str],
    source_format: ImageFormat,
    modern: ImageFormat = ImageFormat.WEBP,
) -> ImageFormat:
    """Binary decision: modern format if the client declares it, else the source's own format."""
    if accepts_format(accept_header, modern):
        return modern
    return source_format
