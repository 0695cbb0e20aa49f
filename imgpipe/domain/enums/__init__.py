from imgpipe.domain.enums.breakpoint import Breakpoint
from imgpipe.domain.enums.delivery_state import DeliveryState
from imgpipe.domain.enums.fallback_category import FallbackCategory
from imgpipe.domain.enums.image_format import ImageFormat
__all__ = [
    "Breakpoint",
    "DeliveryState",
    "FallbackCategory",
    "ImageFormat",
]
