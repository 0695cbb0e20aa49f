# tests/services/conftest.py
from __future__ import annotations
import pytest
from starlette.testclient import TestClient

from imgpipe.common.settings import Settings
from imgpipe.services.api.app import create_app


@pytest.fixture()
def api_settings(asset_root) -> Settings:
    return Settings(public_root=asset_root, app_env="test")


@pytest.fixture()
def api_client(pipeline_factory, api_settings):
    """
    A TestClient over an app whose lifespan initializes a pipeline rooted at the
    per-test asset tree (fallback placeholders already written).
    """
    p = pipeline_factory()
    app = create_app(pipeline=p, cfg=api_settings)
    with TestClient(app) as client:
        yield client
