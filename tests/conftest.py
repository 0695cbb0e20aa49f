# tests/conftest.py
from __future__ import annotations
import os
import tempfile
from pathlib import Path
from typing import Callable, List, Optional, Tuple

# Keep `imgpipe.services.api.app` (which builds an app at import time) away from ./public
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("PUBLIC_ROOT", tempfile.mkdtemp(prefix="imgpipe-test-"))

import pytest
from PIL import Image

from imgpipe.common.settings import FallbackConfig
from imgpipe.domain.entities.derivative_spec import DerivativeSpec
from imgpipe.domain.entities.source_asset import SourceAsset
from imgpipe.services.cache.disk_cache import DiskCacheStore
from imgpipe.services.delivery.pipeline import CachePipeline, PipelineOptions
from imgpipe.services.derivatives.pillow_generator import PillowDerivativeGenerator
from imgpipe.services.fallback.placeholders import generate_fallbacks
from imgpipe.services.resolver.source_resolver import LocalSourceResolver

ImageFactory = Callable[..., Path]


class CountingGenerator(PillowDerivativeGenerator):
    """Real Pillow generator that records every derivative it was asked for."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.calls: List[Tuple[str, DerivativeSpec]] = []

    def generate(self, source: SourceAsset, spec: DerivativeSpec) -> bytes:
        self.calls.append((source.logical_path, spec))
        return super().generate(source, spec)


@pytest.fixture()
def make_image(tmp_path) -> ImageFactory:
    """
    Write a solid-colour image and return its path:
        make_image(root, "images/hero.jpg", (1600, 900))
    """
    def _make(
        root: Path,
        rel: str,
        size: Tuple[int, int] = (200, 100),
        *,
        fmt: Optional[str] = None,
        mode: str = "RGB",
        color=(200, 40, 40),
        exif=None,
    ) -> Path:
        out = Path(root) / rel.lstrip("/")
        out.parent.mkdir(parents=True, exist_ok=True)
        im = Image.new(mode, size, color)
        params = {}
        if exif is not None:
            params["exif"] = exif
        im.save(out, format=fmt or Image.registered_extensions()[out.suffix.lower()], **params)
        return out

    return _make


@pytest.fixture()
def fallback_paths() -> dict:
    return FallbackConfig().paths()


@pytest.fixture()
def asset_root(tmp_path, fallback_paths) -> Path:
    root = tmp_path / "public"
    root.mkdir()
    generate_fallbacks(root, fallback_paths)
    return root


@pytest.fixture()
def cache_root(asset_root) -> Path:
    return asset_root / "cache"


@pytest.fixture()
def generator() -> CountingGenerator:
    return CountingGenerator()


@pytest.fixture()
def pipeline_factory(asset_root, cache_root, fallback_paths, generator):
    built: List[CachePipeline] = []

    def _build(*, store=None, gen=None, **option_overrides) -> CachePipeline:
        opts = dict(segment_categories=FallbackConfig().segment_categories, workers=2)
        opts.update(option_overrides)
        p = CachePipeline(
            resolver=LocalSourceResolver(asset_root, fallback_paths),
            store=store or DiskCacheStore(cache_root),
            generator=gen or generator,
            options=PipelineOptions(**opts),
        )
        built.append(p)
        return p

    yield _build
    for p in built:
        p.shutdown()


@pytest.fixture()
def pipeline(pipeline_factory) -> CachePipeline:
    p = pipeline_factory()
    p.initialize()
    return p
