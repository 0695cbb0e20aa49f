# imgpipe/services/api/routers/images.py
from __future__ import annotations

from http import HTTPStatus
from typing import Iterable, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Response

from imgpipe.common.logging import get_logger
from imgpipe.domain.dataclasses.delivery import Delivery
from imgpipe.domain.enums.delivery_state import DeliveryState
from imgpipe.domain.errors import (
    CacheDirectoryUnavailable,
    FallbackUnavailable,
    GenerationFailed,
    PathTraversal,
    SourceMissing,
)
from imgpipe.domain.policies.breakpoints import parse_breakpoint
from imgpipe.services.api.deps import get_pipeline
from imgpipe.services.delivery.pipeline import CachePipeline
from imgpipe.services.schemas.images import OptimizedImageRead, OptimizeRequest

logger = get_logger(__name__)

IMMUTABLE = "public, max-age=31536000, immutable"
FALLBACK_CACHE = "public, max-age=300"


def delivery_headers(d: Delivery) -> dict[str, str]:
    headers = {
        "Cache-Control": FALLBACK_CACHE if d.state is DeliveryState.serving_fallback else IMMUTABLE,
        "Vary": "Accept",
        "X-Image-Delivery": d.state.value,
    }
    if d.cache_key:
        headers["X-Cache-Key"] = d.cache_key
    return headers


def serve_image(
    pipeline: CachePipeline,
    logical_path: str,
    *,
    size: Optional[str],
    accept: Optional[str],
) -> Response:
    if not pipeline.handles(logical_path):
        raise HTTPException(status_code=HTTPStatus.NOT_FOUND, detail="Not an image path")
    try:
        bp = parse_breakpoint(size)
    except ValueError:
        raise HTTPException(status_code=HTTPStatus.UNPROCESSABLE_ENTITY, detail=f"Unknown size: {size}")
    try:
        d = pipeline.deliver(logical_path, accept, bp)
    except PathTraversal:
        logger.warning("Rejected image path outside the asset root: %s", logical_path)
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail="Invalid image path")
    except FallbackUnavailable:
        raise HTTPException(status_code=HTTPStatus.SERVICE_UNAVAILABLE, detail="Image unavailable")
    return Response(content=d.body(), media_type=d.content_type, headers=delivery_headers(d))


def _endpoint_for(pre: str):
    def _endpoint(
        path: str,
        size: Optional[str] = Query(None, description="Breakpoint label: sm|md|lg|xl"),
        accept: Optional[str] = Header(None),
        pipeline: CachePipeline = Depends(get_pipeline),
    ) -> Response:
        return serve_image(pipeline, f"{pre}/{path}", size=size, accept=accept)

    return _endpoint


def build_image_router(prefixes: Iterable[str]) -> APIRouter:
    """One GET route per configured image prefix, e.g. /images/{path} and /uploads/{path}."""
    router = APIRouter(tags=["images"])

    for prefix in prefixes:
        pre = "/" + prefix.strip("/")
        router.add_api_route(
            f"{pre}/{{path:path}}",
            _endpoint_for(pre),
            methods=["GET"],
            name=f"image{pre.replace('/', '_')}",
            response_class=Response,
        )
    return router


def build_optimize_router(api_prefix: str, cache_url_prefix: str) -> APIRouter:
    router = APIRouter(prefix=f"{api_prefix.rstrip('/')}/images", tags=["images"])
    base = "/" + cache_url_prefix.strip("/")

    @router.post("/optimize", response_model=OptimizedImageRead)
    def optimize_image(
        payload: OptimizeRequest,
        pipeline: CachePipeline = Depends(get_pipeline),
    ) -> OptimizedImageRead:
        try:
            result = pipeline.optimize(payload.path)
        except PathTraversal:
            raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail="Invalid image path")
        except SourceMissing:
            raise HTTPException(status_code=HTTPStatus.NOT_FOUND, detail="Source image not found")
        except GenerationFailed as e:
            raise HTTPException(status_code=HTTPStatus.UNPROCESSABLE_ENTITY, detail=e.message)
        except CacheDirectoryUnavailable:
            raise HTTPException(status_code=HTTPStatus.SERVICE_UNAVAILABLE, detail="Image cache unavailable")

        dto = OptimizedImageRead.model_validate(result)
        keys = dict(result.sizes)
        if result.original:
            keys["original"] = result.original
        dto.urls = {label: f"{base}/{key}" for label, key in keys.items()}
        return dto

    return router
