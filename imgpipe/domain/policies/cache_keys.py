# imgpipe/domain/policies/cache_keys.py
from __future__ import annotations

from pathlib import PurePosixPath

from imgpipe.domain.entities.derivative_spec import DerivativeSpec


def derive_cache_key(source_path: str, spec: DerivativeSpec) -> str:
    """
    Domain policy for derivative file names inside the (flat) cache root:

        <source-stem>[-<breakpoint>].<format-extension>

    "hero.jpg" + md/webp -> "hero-md.webp"; the native-size re-encode carries
    no suffix ("hero.webp"). Only the base name participates, so the key is
    independent of where the source lives under the asset root.

    Leading dots are dropped (".hero.jpg" -> "hero-md.webp"): dot-prefixed
    names in the cache root are reserved for temp and probe files.
    """
    raw = PurePosixPath(str(source_path).replace("\\", "/")).stem
    if not raw:
        raise ValueError(f"cannot derive a cache key from {source_path!r}")
    stem = raw.lstrip(".") or "_"
    suffix = f"-{spec.breakpoint}" if spec.breakpoint else ""
    return f"{stem}{suffix}.{spec.format.extension}"
