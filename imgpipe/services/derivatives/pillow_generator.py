# imgpipe/services/derivatives/pillow_generator.py
from __future__ import annotations

from io import BytesIO
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Tuple

from PIL import Image, ImageOps, ImageSequence

from imgpipe.common.logging import get_logger
from imgpipe.domain.entities.derivative_spec import DerivativeSpec
from imgpipe.domain.entities.source_asset import SourceAsset
from imgpipe.domain.enums.image_format import ImageFormat
from imgpipe.domain.errors import GenerationFailed

logger = get_logger(__name__)

DEFAULT_MAX_SOURCE_BYTES = 10 * 1024 * 1024


def fit_inside(size: Tuple[int, int], width: Optional[int] = None, height: Optional[int] = None) -> Tuple[int, int]:
    """
    Largest (w, h) with the source aspect ratio that fits the requested box.
    Never enlarges: a box bigger than the source returns the source size.
    """
    src_w, src_h = size
    if src_w <= 0 or src_h <= 0:
        raise ValueError(f"invalid source size {size}")
    sx = width / src_w if width else None
    sy = height / src_h if height else None
    scales = [s for s in (sx, sy) if s is not None]
    if not scales or min(scales) >= 1.0:
        return src_w, src_h
    if sy is None or (sx is not None and sx <= sy):
        return width, max(1, round(src_h * width / src_w))  # type: ignore[return-value, operator]
    return max(1, round(src_w * height / src_h)), height  # type: ignore[return-value, operator]


def _has_alpha(im: Image.Image) -> bool:
    return im.mode in ("RGBA", "LA", "PA", "RGBa", "La") or (im.mode == "P" and "transparency" in im.info)


def _flatten(im: Image.Image, bg: Tuple[int, int, int] = (255, 255, 255)) -> Image.Image:
    rgba = im.convert("RGBA")
    out = Image.new("RGB", rgba.size, bg)
    out.paste(rgba, mask=rgba.getchannel("A"))
    return out


def _prepare_mode(im: Image.Image, fmt: ImageFormat) -> Image.Image:
    if fmt is ImageFormat.JPEG:
        if _has_alpha(im):
            return _flatten(im)
        return im if im.mode in ("RGB", "L", "CMYK") else im.convert("RGB")
    if fmt is ImageFormat.WEBP:
        if im.mode in ("RGB", "RGBA"):
            return im
        return im.convert("RGBA" if _has_alpha(im) else "RGB")
    if fmt is ImageFormat.PNG:
        return im.convert("RGB") if im.mode == "CMYK" else im
    return im  # GIF: Pillow quantizes on save


def _encoder_params(fmt: ImageFormat, spec: DerivativeSpec, src_info: Dict[str, Any]) -> Dict[str, Any]:
    # exif=b"" drops camera metadata; orientation is already baked into the pixels
    params: Dict[str, Any] = {}
    icc = src_info.get("icc_profile")
    if fmt is ImageFormat.JPEG:
        params.update(quality=spec.quality, optimize=True, progressive=True, exif=b"")
    elif fmt is ImageFormat.WEBP:
        params.update(quality=spec.quality, method=spec.effort, exif=b"")
    elif fmt is ImageFormat.PNG:
        params.update(optimize=True, exif=b"")
    elif fmt is ImageFormat.GIF:
        params.update(optimize=True)
    if icc and fmt is not ImageFormat.GIF:
        params["icc_profile"] = icc
    return params


class PillowDerivativeGenerator:
    """
    Aspect-preserving resize + re-encode with Pillow.

    Per derivative:
      1) auto-rotate from EXIF orientation
      2) fit inside the requested box (never enlarge)
      3) encode to the requested format at the requested quality/effort, metadata stripped
    Animated GIF/WEBP sources keep every frame when the target format can animate.
    """

    def __init__(
        self,
        *,
        max_source_bytes: int = DEFAULT_MAX_SOURCE_BYTES,
        allowed_formats: FrozenSet[ImageFormat] = frozenset(ImageFormat),
    ) -> None:
        self.max_source_bytes = max_source_bytes
        self.allowed_formats = allowed_formats

    # --- public -------------------------------------------------------------

    def generate(self, source: SourceAsset, spec: DerivativeSpec) -> bytes:
        return self.generate_many(source, [spec])[0]

    def generate_many(self, source: SourceAsset, specs: Sequence[DerivativeSpec]) -> List[bytes]:
        """Decode the source once and render one output per spec, in order."""
        self._validate(source)
        out: List[bytes] = []
        spec: Optional[DerivativeSpec] = None
        try:
            with Image.open(source.path) as im:
                im.load()
                base, frames = self._decoded(im)
                for spec in specs:
                    out.append(self._render(base, frames, im.info, spec))
        except GenerationFailed:
            raise
        except Exception as e:
            what = spec.describe() if spec is not None else "decode"
            raise GenerationFailed(source.logical_path, f"generation failed [{what}]: {e}") from e
        return out

    # --- internals ----------------------------------------------------------

    def _validate(self, source: SourceAsset) -> None:
        if source.size_bytes > self.max_source_bytes:
            raise GenerationFailed(
                source.logical_path,
                f"source is {source.size_bytes} bytes; limit is {self.max_source_bytes}",
            )
        if source.format is None or source.format not in self.allowed_formats:
            raise GenerationFailed(source.logical_path, f"unsupported source format: {source.format}")

    @staticmethod
    def _decoded(im: Image.Image) -> Tuple[Image.Image, List[Image.Image]]:
        """(oriented still, animation frames or [])"""
        frames: List[Image.Image] = []
        if getattr(im, "is_animated", False) and getattr(im, "n_frames", 1) > 1:
            frames = [f.convert("RGBA") for f in ImageSequence.Iterator(im)]
            im.seek(0)
        base = ImageOps.exif_transpose(im)
        if base.mode in ("1", "P"):
            base = base.convert("RGBA" if _has_alpha(base) else "RGB")
        return base, frames

    def _render(
        self,
        base: Image.Image,
        frames: List[Image.Image],
        src_info: Dict[str, Any],
        spec: DerivativeSpec,
    ) -> bytes:
        fmt = spec.format
        target = fit_inside(base.size, spec.width, spec.height)
        params = _encoder_params(fmt, spec, src_info)
        buf = BytesIO()

        if frames and fmt.supports_animation:
            resized = [f if f.size == target else f.resize(target, Image.Resampling.LANCZOS) for f in frames]
            resized = [_prepare_mode(f, fmt) for f in resized]
            params.update(
                save_all=True,
                append_images=resized[1:],
                duration=src_info.get("duration", 100),
                loop=src_info.get("loop", 0),
            )
            resized[0].save(buf, format=fmt.pillow_name, **params)
        else:
            img = base if base.size == target else base.resize(target, Image.Resampling.LANCZOS)
            img = _prepare_mode(img, fmt)
            img.save(buf, format=fmt.pillow_name, **params)

        data = buf.getvalue()
        logger.debug("Rendered %s -> %dx%d (%d bytes)", spec.describe(), target[0], target[1], len(data))
        return data
