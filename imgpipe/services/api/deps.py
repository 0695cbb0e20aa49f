# imgpipe/services/api/deps.py
from __future__ import annotations

from fastapi import HTTPException, Request
from http import HTTPStatus

from imgpipe.services.delivery.pipeline import CachePipeline


def get_pipeline(request: Request) -> CachePipeline:
    """
    Provide the app's CachePipeline via DI. It is built and initialized once
    in the app lifespan; handlers never construct their own.
    """
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None or not pipeline.initialized:
        raise HTTPException(status_code=HTTPStatus.SERVICE_UNAVAILABLE, detail="Image pipeline not ready")
    return pipeline
