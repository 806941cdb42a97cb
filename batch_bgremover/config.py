"""
Configuration loader for the batch background-removal service.

Environment variables are centralized here to keep the rest of the code
focused on business logic and to make operational tuning clear.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ALGORITHMS = {"corner", "edge"}
STORAGE_BACKENDS = {"memory", "r2"}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Segmentation
    default_algorithm: str = Field("corner")
    brightness_threshold: float = Field(200.0)
    corner_margin_ratio: float = Field(0.1)
    edge_magnitude_threshold: float = Field(30.0)

    # Batch execution
    max_workers: int = Field(4)
    download_stagger_ms: int = Field(200)
    download_dir: Path = Field(Path("downloads"))
    max_upload_mb: float = Field(10.0)

    # Durable storage (memory for local runs, Cloudflare R2 / S3-compatible otherwise)
    storage_backend: str = Field("memory")
    storage_prefix: str = Field("background-removal")
    memory_storage_max_objects: int = Field(256)
    r2_endpoint: Optional[str] = Field(None)
    r2_access_key_id: Optional[str] = Field(None)
    r2_secret_access_key: Optional[str] = Field(None)
    r2_bucket_name: Optional[str] = Field(None)
    r2_public_base_url: Optional[str] = Field(None)

    # API
    request_timeout_seconds: int = Field(30)
    log_level: str = Field("INFO")

    # Debugging
    debug: bool = Field(False)
    debug_output_dir: Path = Field(Path("/tmp/bgremover_debug"))

    @field_validator("default_algorithm")
    @classmethod
    def validate_algorithm(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ALGORITHMS:
            raise ValueError("DEFAULT_ALGORITHM must be one of corner|edge")
        return v

    @field_validator("storage_backend")
    @classmethod
    def validate_storage_backend(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in STORAGE_BACKENDS:
            raise ValueError("STORAGE_BACKEND must be one of memory|r2")
        return v

    @field_validator("max_workers")
    @classmethod
    def validate_max_workers(cls, v: int) -> int:
        if v < 1:
            raise ValueError("MAX_WORKERS must be at least 1")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings to avoid reparsing env on every call."""
    return Settings()


def stagger_seconds(settings: Optional[Settings] = None) -> float:
    """
    Translate the download stagger into seconds.

    Browsers drop rapid-fire downloads, so batch exports are spaced out.
    """
    settings = settings or get_settings()
    return max(settings.download_stagger_ms, 0) / 1000.0
