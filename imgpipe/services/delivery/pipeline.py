# imgpipe/services/delivery/pipeline.py
from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, TypeVar

from imgpipe.common.concurrency.thread_manager import ThreadManager
from imgpipe.common.logging import get_logger
from imgpipe.common.settings import Settings
from imgpipe.domain.dataclasses.delivery import Delivery, OptimizedImage
from imgpipe.domain.entities.derivative_spec import DerivativeSpec
from imgpipe.domain.entities.source_asset import SourceAsset
from imgpipe.domain.enums.breakpoint import Breakpoint
from imgpipe.domain.enums.delivery_state import DeliveryState
from imgpipe.domain.enums.fallback_category import FallbackCategory
from imgpipe.domain.enums.image_format import ImageFormat
from imgpipe.domain.errors import (
    CacheCorrupt,
    CacheDirectoryUnavailable,
    CacheMiss,
    FallbackUnavailable,
    GenerationFailed,
    SourceMissing,
)
from imgpipe.domain.policies.breakpoints import DEFAULT_WIDTHS, breakpoint_widths, responsive_set, spec_for
from imgpipe.domain.policies.cache_keys import derive_cache_key
from imgpipe.domain.policies.delivery_flow import HIT, MISS, OK, PASSTHROUGH, FlowTrace, StateMachine, Step
from imgpipe.domain.policies.format_negotiation import negotiate
from imgpipe.domain.policies.image_paths import (
    SUPPORTED_EXTS,
    category_for_path,
    is_image_path,
    matches_prefix,
    mime_type_for,
)
from imgpipe.domain.ports.cache_store import CacheStorePort
from imgpipe.domain.ports.generator import DerivativeGeneratorPort
from imgpipe.domain.ports.source_resolver import SourceResolverPort
from imgpipe.services.cache.disk_cache import DiskCacheStore
from imgpipe.services.derivatives.pillow_generator import PillowDerivativeGenerator
from imgpipe.services.resolver.source_resolver import LocalSourceResolver

logger = get_logger(__name__)

V = TypeVar("V")


def _required(value: Optional[V], what: str) -> V:
    if value is None:
        raise RuntimeError(f"delivery flow reached this step without {what}")
    return value


@dataclass
class PipelineOptions:
    quality: int = 80
    effort: int = 4
    modern_format: ImageFormat = ImageFormat.WEBP
    widths: Dict[Breakpoint, int] = field(default_factory=lambda: dict(DEFAULT_WIDTHS))
    request_timeout_sec: float = 60.0
    upload_timeout_sec: float = 120.0
    workers: int = 4
    queue_maxsize: int = 64
    coalesce_inflight: bool = True
    image_prefixes: Tuple[str, ...] = ("/images", "/uploads")
    image_exts: Tuple[str, ...] = tuple(sorted(SUPPORTED_EXTS))
    segment_categories: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, cfg: Settings) -> "PipelineOptions":
        return cls(
            quality=cfg.imaging.quality,
            effort=cfg.imaging.effort,
            modern_format=ImageFormat(cfg.imaging.modern_format.lower()),
            widths=breakpoint_widths(cfg.imaging.breakpoints),
            request_timeout_sec=cfg.concurrency.request_timeout_sec,
            upload_timeout_sec=cfg.concurrency.upload_timeout_sec,
            workers=cfg.concurrency.generation_workers,
            queue_maxsize=cfg.concurrency.generation_queue_maxsize,
            coalesce_inflight=cfg.concurrency.coalesce_inflight,
            image_prefixes=tuple(cfg.image_prefixes),
            image_exts=tuple(cfg.image_exts),
            segment_categories=dict(cfg.fallbacks.segment_categories),
        )


@dataclass
class _Request:
    """Per-request scratch state threaded through the delivery flow."""
    logical_path: str
    accept: Optional[str]
    breakpoint: Optional[Breakpoint]
    category: FallbackCategory
    timeout: Optional[float]
    source: Optional[SourceAsset] = None
    spec: Optional[DerivativeSpec] = None
    content_type: Optional[str] = None
    key: Optional[str] = None
    data: Optional[bytes] = None
    path: Optional[Path] = None


class CachePipeline:
    """
    Derivative generation + on-disk caching + client-appropriate delivery.

    Lifecycle: construct, then initialize() once at startup (creates and probes
    the cache root, checks fallback assets, starts the worker pool), then
    deliver() from any number of request threads, then shutdown().

    deliver() never raises for an ordinary image request: a missing source is
    answered with the category fallback and a failed transformation with the
    untouched original. Only PathTraversal (bad request) and
    FallbackUnavailable (configuration) escape.
    """

    def __init__(
        self,
        *,
        resolver: SourceResolverPort,
        store: CacheStorePort,
        generator: DerivativeGeneratorPort,
        options: Optional[PipelineOptions] = None,
        pool: Optional[ThreadManager] = None,
    ) -> None:
        self.resolver = resolver
        self.store = store
        self.generator = generator
        self.options = options or PipelineOptions()
        self._pool = pool
        self._owns_pool = pool is None
        self._init_lock = threading.Lock()
        self._initialized = False
        self._caching_enabled = True
        self._flow: StateMachine[_Request, Delivery] = StateMachine(
            steps={
                DeliveryState.resolving: self._resolve,
                DeliveryState.negotiating: self._negotiate,
                DeliveryState.cache_lookup: self._lookup,
                DeliveryState.cache_hit: self._hit,
                DeliveryState.generating: self._generate,
            },
            terminals={
                DeliveryState.responding: self._respond,
                DeliveryState.serving_fallback: self._serve_fallback,
                DeliveryState.serving_original: self._serve_original,
            },
            on_step=self._log_step,
        )

    @classmethod
    def from_settings(cls, cfg: Settings) -> "CachePipeline":
        options = PipelineOptions.from_settings(cfg)
        return cls(
            resolver=LocalSourceResolver(cfg.asset_root, cfg.fallbacks.paths()),
            store=DiskCacheStore(cfg.cache_root),
            generator=PillowDerivativeGenerator(max_source_bytes=cfg.imaging.max_source_bytes),
            options=options,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def initialize(self) -> None:
        """One-time startup. Raises CacheDirectoryUnavailable / FallbackUnavailable."""
        with self._init_lock:
            if self._initialized:
                return
            self.store.prepare()
            verify = getattr(self.resolver, "verify_fallbacks", None)
            if callable(verify):
                verify()
            if self._pool is None or self._pool.closed:
                self._pool = ThreadManager(
                    name="imgpipe-gen",
                    max_workers=self.options.workers,
                    max_queue=self.options.queue_maxsize,
                )
                self._owns_pool = True
            self._caching_enabled = True
            self._initialized = True
            logger.info("Image pipeline initialized (workers=%s)", self._pool.max_workers)

    def shutdown(self) -> None:
        with self._init_lock:
            if not self._initialized:
                return
            if self._owns_pool and self._pool is not None:
                self._pool.shutdown(wait=True, cancel_futures=True)
            self._initialized = False
            logger.info("Image pipeline shut down")

    def __enter__(self) -> "CachePipeline":
        self.initialize()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def caching_enabled(self) -> bool:
        return self._caching_enabled

    def status(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "initialized": self._initialized,
            "caching_enabled": self._caching_enabled,
        }
        if self._pool is not None:
            st = self._pool.stats()
            out["workers"] = {
                "max_workers": self._pool.max_workers,
                "submitted": st.tasks_submitted,
                "completed": st.tasks_completed,
                "failed": st.tasks_failed,
                "coalesced": st.tasks_coalesced,
                "in_flight": st.in_flight,
            }
        return out

    # ------------------------------------------------------------------
    # Invocation surface
    # ------------------------------------------------------------------
    def handles(self, logical_path: str) -> bool:
        return matches_prefix(logical_path, self.options.image_prefixes) and is_image_path(
            logical_path, self.options.image_exts
        )

    def category_for(self, logical_path: str) -> FallbackCategory:
        return category_for_path(logical_path, self.options.segment_categories)

    def deliver(
        self,
        logical_path: str,
        accept: Optional[str] = None,
        breakpoint: Optional[Breakpoint] = None,
        *,
        category: Optional[FallbackCategory] = None,
        timeout: Optional[float] = None,
        trace: Optional[FlowTrace] = None,
    ) -> Delivery:
        """
        Serve the best variant of `logical_path` for a client whose Accept
        header is `accept`. `breakpoint` selects a responsive width; None
        means native size.
        """
        self._require_initialized()
        req = _Request(
            logical_path=logical_path,
            accept=accept,
            breakpoint=breakpoint,
            category=category or self.category_for(logical_path),
            timeout=self.options.request_timeout_sec if timeout is None else timeout,
        )
        return self._flow.run(req, trace=trace)

    def optimize(self, logical_path: str, *, timeout: Optional[float] = None) -> OptimizedImage:
        """
        Upload-time warmup: write the native-size modern-format re-encode and
        every breakpoint variant to the cache, decoding the source once.
        Unlike deliver(), failures raise (SourceMissing, GenerationFailed,
        CacheDirectoryUnavailable) so the uploader can report them.
        """
        self._require_initialized()
        if not self._caching_enabled:
            raise CacheDirectoryUnavailable(logical_path, "caching disabled for this session")
        source = self.resolver.resolve(logical_path)
        o = self.options
        specs = responsive_set(o.modern_format, o.widths, quality=o.quality, effort=o.effort)
        wait_for = o.upload_timeout_sec if timeout is None else timeout
        try:
            outputs = self._require_pool().run(self.generator.generate_many, source, specs, timeout=wait_for)
        except TimeoutError as e:
            logger.error("Optimize timed out after %ss for %s", wait_for, logical_path)
            raise GenerationFailed(logical_path, f"timed out after {wait_for}s") from e
        except GenerationFailed as e:
            logger.error("Optimize failed for %s: %s", logical_path, e.message)
            raise

        result = OptimizedImage(
            logical_path=logical_path,
            width=source.width or 0,
            height=source.height or 0,
            format=str(source.format),
        )
        for spec, data in zip(specs, outputs):
            key = derive_cache_key(source.logical_path, spec)
            self.store.write(key, data)
            if spec.breakpoint is None:
                result.original = key
            else:
                result.sizes[str(spec.breakpoint)] = key
        logger.info("Optimized %s into %d variants", logical_path, len(outputs))
        return result

    # ------------------------------------------------------------------
    # Flow steps
    # ------------------------------------------------------------------
    def _resolve(self, req: _Request) -> str:
        req.source = self.resolver.resolve(req.logical_path)
        return OK

    def _negotiate(self, req: _Request) -> str:
        src = _required(req.source, "a source")
        native = src.format or src.declared_format or self.options.modern_format
        fmt = negotiate(req.accept, native, self.options.modern_format)
        req.spec = spec_for(
            fmt, req.breakpoint, self.options.widths, quality=self.options.quality, effort=self.options.effort
        )
        req.content_type = fmt.mime_type
        if not req.spec.resizes and src.format is not None and fmt is src.format:
            req.path = src.path
            return PASSTHROUGH
        req.key = derive_cache_key(src.logical_path, req.spec)
        return OK

    def _lookup(self, req: _Request) -> str:
        key, src = _required(req.key, "a cache key"), _required(req.source, "a source")
        if not self._caching_enabled:
            return MISS
        entry = self.store.stat(key)
        if entry is None:
            return MISS
        if entry.is_older_than(src.mtime):
            logger.info("Cache entry %s is older than its source; regenerating", key)
            return MISS
        try:
            req.data = self.store.read(key)
        except CacheMiss:
            return MISS
        req.path = entry.path
        return HIT

    def _hit(self, req: _Request) -> str:
        logger.debug("Cache hit %s", req.key)
        return OK

    def _generate(self, req: _Request) -> str:
        src = _required(req.source, "a source")
        spec = _required(req.spec, "a derivative spec")
        key = _required(req.key, "a cache key")
        pool = self._require_pool()
        # one deadline covers waiting for a queue slot and the render itself
        deadline = None if req.timeout is None else time.monotonic() + req.timeout
        try:
            if self.options.coalesce_inflight:
                fut = pool.submit_once(
                    (str(src.path), spec), self._produce, src, spec, key, queue_timeout=req.timeout
                )
            else:
                fut = pool.submit(self._produce, src, spec, key, queue_timeout=req.timeout)
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            req.data, req.path = pool.wait(fut, timeout=remaining)
        except TimeoutError as e:
            raise GenerationFailed(src.logical_path, f"timed out after {req.timeout}s [{spec.describe()}]") from e
        return OK

    def _produce(self, src: SourceAsset, spec: DerivativeSpec, key: str) -> Tuple[bytes, Optional[Path]]:
        """Worker-thread body: render, then publish to the cache if caching is still on."""
        data = self.generator.generate(src, spec)
        if not self._caching_enabled:
            return data, None
        try:
            return data, self.store.write(key, data)
        except CacheDirectoryUnavailable as e:
            self._caching_enabled = False
            logger.error("%s; serving without cache for the rest of this session", e)
            return data, None

    # ------------------------------------------------------------------
    # Terminal states
    # ------------------------------------------------------------------
    def _respond(self, req: _Request) -> Delivery:
        return Delivery(
            state=DeliveryState.responding,
            content_type=req.content_type or mime_type_for(req.logical_path),
            path=req.path,
            data=req.data,
            cache_key=req.key,
        )

    def _serve_fallback(self, req: _Request) -> Delivery:
        try:
            p = self.resolver.fallback_for(req.category)
        except FallbackUnavailable:
            logger.critical("Source and fallback both unavailable for %s", req.logical_path)
            raise
        return Delivery(
            state=DeliveryState.serving_fallback,
            content_type=mime_type_for(p.name),
            path=p,
            category=req.category,
        )

    def _serve_original(self, req: _Request) -> Delivery:
        src = _required(req.source, "a source")
        ctype = src.format.mime_type if src.format else mime_type_for(src.path.name)
        return Delivery(state=DeliveryState.serving_original, content_type=ctype, path=src.path)

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _require_initialized(self) -> None:
        self._require_pool()

    def _require_pool(self) -> ThreadManager:
        if not self._initialized or self._pool is None:
            raise RuntimeError("CachePipeline.initialize() has not been called")
        return self._pool

    @staticmethod
    def _log_step(step: Step) -> None:
        err = step.error
        if err is None:
            return
        if isinstance(err, SourceMissing):
            logger.info("Source missing, serving fallback: %s", err.subject)
        elif isinstance(err, CacheCorrupt):
            logger.warning("Corrupt cache entry removed, regenerating: %s", err.subject)
        elif isinstance(err, GenerationFailed):
            logger.error("Generation failed for %s, serving original: %s", err.subject, err.message)
        else:
            logger.warning("%s -> %s on %s", step.state, step.target, err)

