# imgpipe/common/settings.py
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator, computed_field
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict
from imgpipe.common.strings.splitters import csv_to_list


def _to_bool(v: str | bool | int | None, default: bool = False) -> bool:
    if isinstance(v, bool):
        return v
    if v is None:
        return default
    s = str(v).strip().lower()
    return s in {"1", "true", "yes", "y", "on"}


class APIConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8000
    prefix: str = "/api"

    cors_allow_origins: List[str] = Field(default_factory=lambda: ["http://localhost:5173"])
    cors_allow_methods: List[str] = Field(default_factory=lambda: ["GET", "POST", "OPTIONS"])
    cors_allow_headers: List[str] = Field(default_factory=lambda: ["*"])
    cors_allow_credentials: bool = False

    @field_validator("cors_allow_origins", "cors_allow_methods", "cors_allow_headers", mode="before")
    @classmethod
    def _split_csv(cls, v):
        return csv_to_list(v)


class ImagingConfig(BaseModel):
    quality: int = Field(80, ge=1, le=100, description="Encoder quality on a 0-100 scale")
    effort: int = Field(4, ge=0, le=6, description="WebP compression effort (Pillow 'method')")
    max_source_bytes: int = Field(10 * 1024 * 1024, ge=1)
    modern_format: str = "webp"
    breakpoints: Dict[str, int] = Field(
        default_factory=lambda: {"sm": 320, "md": 640, "lg": 1024, "xl": 1920}
    )


class ConcurrencyConfig(BaseModel):
    generation_workers: int = Field(4, ge=1, le=64)
    generation_queue_maxsize: int = 64
    request_timeout_sec: float = 60.0
    upload_timeout_sec: float = 120.0
    coalesce_inflight: bool = True

    @field_validator("coalesce_inflight", mode="before")
    @classmethod
    def _boolify(cls, v):
        return _to_bool(v, default=True)


class FallbackConfig(BaseModel):
    # relative to the asset root
    image: str = "images/fallback/image-fallback.jpg"
    project: str = "images/fallback/project-fallback.jpg"
    team_member: str = "images/fallback/team-member-fallback.jpg"
    about: str = "images/fallback/about-fallback.jpg"

    # first matching path segment wins; anything else is "image"
    segment_categories: Dict[str, str] = Field(
        default_factory=lambda: {
            "projects": "project",
            "project": "project",
            "team": "team_member",
            "chi-siamo": "about",
            "about": "about",
        }
    )

    def paths(self) -> Dict[str, str]:
        return {
            "image": self.image,
            "project": self.project,
            "team_member": self.team_member,
            "about": self.about,
        }


class Settings(BaseSettings):
    # -------- App / Env --------
    app_name: str = "imgpipe"
    app_env: str = "development"  # development|test|staging|production
    log_level: str = "INFO"

    # -------- Paths & layout --------
    public_root: Path = Path("./public")
    cache_subdir: str = "cache"
    cache_root_override: Optional[Path] = Field(default=None, alias="CACHE_ROOT")
    cache_url_prefix: str = "/cache"

    # -------- Invocation surface --------
    image_prefixes: Annotated[List[str], NoDecode] = Field(default_factory=lambda: ["/images", "/uploads"])
    image_exts: Annotated[List[str], NoDecode] = Field(default_factory=lambda: ["jpg", "jpeg", "png", "gif", "webp"])

    @field_validator("image_prefixes", "image_exts", mode="before")
    @classmethod
    def _split_csv(cls, v):
        return csv_to_list(v)

    # -------- Sub-configs --------
    api: APIConfig = APIConfig()
    imaging: ImagingConfig = ImagingConfig()
    concurrency: ConcurrencyConfig = ConcurrencyConfig()
    fallbacks: FallbackConfig = FallbackConfig()

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # ===== Derived paths =====
    @computed_field  # type: ignore[misc]
    @property
    def asset_root(self) -> Path:
        return Path(self.public_root)

    @computed_field  # type: ignore[misc]
    @property
    def cache_root(self) -> Path:
        if self.cache_root_override:
            return Path(self.cache_root_override)
        return self.asset_root / self.cache_subdir


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Global settings accessor (cached). Use this everywhere you need config:
        from imgpipe.common.settings import get_settings
        cfg = get_settings()

    The cache root is deliberately left alone here; it is created and
    probed by CachePipeline.initialize().
    """
    s = Settings()  # pydantic_settings will read from .env automatically
    if s.app_env in ("development", "test"):
        s.asset_root.mkdir(parents=True, exist_ok=True)
    return s
