# imgpipe/services/api/routers/health.py
from __future__ import annotations
from fastapi import APIRouter, Request
from imgpipe.common.settings import get_settings
from imgpipe.services.schemas.images import PipelineStatusRead

router = APIRouter()

@router.get("/healthz")
def healthz(request: Request):
    s = get_settings()
    pipeline = getattr(request.app.state, "pipeline", None)
    status = pipeline.status() if pipeline is not None else {"initialized": False, "caching_enabled": False}
    return {
        "ok": bool(status.get("initialized")),
        "app": s.app_name,
        "env": s.app_env,
        "pipeline": PipelineStatusRead.model_validate(status),
    }
