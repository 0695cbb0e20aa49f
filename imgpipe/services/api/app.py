# imgpipe/services/api/app.py
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles
from fastapi.middleware.cors import CORSMiddleware

from imgpipe.common.logging import get_logger
from imgpipe.common.settings import Settings, get_settings
from imgpipe.services.api.routers import health
from imgpipe.services.api.routers.images import build_image_router, build_optimize_router
from imgpipe.services.delivery.pipeline import CachePipeline


def create_app(pipeline: Optional[CachePipeline] = None, cfg: Optional[Settings] = None) -> FastAPI:
    cfg = cfg or get_settings()
    dev = cfg.app_env.lower() == "development"
    logger = get_logger(__name__, level=cfg.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        p = pipeline or CachePipeline.from_settings(cfg)
        p.initialize()  # CacheDirectoryUnavailable / FallbackUnavailable abort startup
        app.state.pipeline = p
        logger.info("Serving images under %s", ", ".join(cfg.image_prefixes))
        try:
            yield
        finally:
            p.shutdown()
            app.state.pipeline = None

    app = FastAPI(
        title="imgpipe",
        version="0.1.0",
        docs_url=f"{cfg.api.prefix}/docs",
        openapi_url=f"{cfg.api.prefix}/openapi.json",
        lifespan=lifespan,
    )

    allow_origins = ["*"] if dev else cfg.api.cors_allow_origins
    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_methods=cfg.api.cors_allow_methods,
        allow_headers=cfg.api.cors_allow_headers,
        allow_credentials=cfg.api.cors_allow_credentials,
        expose_headers=["X-Image-Delivery", "X-Cache-Key"],
    )

    # Routers
    app.include_router(health.router)
    app.include_router(build_optimize_router(cfg.api.prefix, cfg.cache_url_prefix))
    app.include_router(build_image_router(cfg.image_prefixes))

    # Warmed derivatives, by cache key
    app.mount(
        "/" + cfg.cache_url_prefix.strip("/"),
        StaticFiles(directory=str(cfg.cache_root), check_dir=False),
        name="image-cache",
    )
    return app


app = create_app()
