"""
Application Configuration
Loads settings from environment variables.

The settings object is frozen once built and handed to every component
explicitly, so feature toggles are plain field reads.
"""

from pathlib import Path
from typing import List
from pydantic_settings import BaseSettings
from pydantic import field_validator
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    APP_NAME: str = "TaleFrame Illustration API"
    DEBUG: bool = False

    # Job mode - when disabled, only synchronous generation is exposed
    ASYNC_ILLUSTRATIONS: bool = True
    JOB_LIST_DEFAULT_LIMIT: int = 50
    JOB_HISTORY_LIMIT: int = 0  # 0 = keep every job for the process lifetime

    # Local asset storage
    STORAGE_ROOT: str = "."  # Working directory for relative locators
    UPLOADS_DIR: str = "uploads"  # Where uploaded character images live
    SAVE_GENERATED_IMAGES: bool = False
    GENERATED_IMAGE_DIR: str = "generated"  # Also the public URL prefix
    GENERATED_IMAGE_FORMAT: str = "png"

    # Retention ceilings - 0 means unlimited
    GENERATED_IMAGE_MAX_FILES: int = 0
    GENERATED_IMAGE_MAX_MB: float = 0

    # Tier 1: Gemini with character reference
    ENABLE_GEMINI_REFERENCE: bool = False
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL_CHARACTER: str = "gemini-2.5-flash-image"

    # Tier 2: same model family through Vertex AI (managed deployment)
    ENABLE_VERTEX_REFERENCE: bool = False
    VERTEX_PROJECT_ID: str = ""
    VERTEX_LOCATION: str = "us-central1"
    VERTEX_MODEL_CHARACTER: str = "gemini-2.5-flash-image"

    # Tier 3: text-only generation (no image input)
    ENABLE_TEXT_FALLBACK: bool = True
    OPENAI_API_KEY: str = ""
    OPENAI_IMAGE_MODEL: str = "dall-e-3"
    OPENAI_IMAGE_SIZE: str = "1024x1024"
    OPENAI_IMAGE_QUALITY: str = "standard"
    OPENAI_IMAGE_STYLE: str = "vivid"  # More vibrant colors for children's books

    # Timeouts (seconds)
    IMAGE_REQUEST_TIMEOUT: float = 120.0
    DOWNLOAD_TIMEOUT: float = 60.0

    # Character image analysis (descriptor cache)
    ENABLE_IMAGE_ANALYSIS: bool = False
    IMAGE_ANALYSIS_MODEL: str = "gemini-2.5-flash"
    IMAGE_ANALYSIS_MAX_BYTES: int = 5_000_000
    DESCRIPTOR_CACHE_MAX_ENTRIES: int = 0  # 0 = never evict

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    @field_validator('GEMINI_API_KEY', 'OPENAI_API_KEY', mode='before')
    @classmethod
    def strip_api_keys(cls, v):
        """Strip whitespace and newlines from API keys loaded from secrets."""
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator('GENERATED_IMAGE_FORMAT', mode='before')
    @classmethod
    def normalize_format(cls, v):
        if isinstance(v, str):
            return v.strip().lstrip(".").lower() or "png"
        return v

    @property
    def storage_root(self) -> Path:
        return Path(self.STORAGE_ROOT)

    @property
    def generated_path(self) -> Path:
        """Absolute directory generated images are written to."""
        return (self.storage_root / self.GENERATED_IMAGE_DIR).resolve()

    @property
    def uploads_path(self) -> Path:
        return (self.storage_root / self.UPLOADS_DIR).resolve()

    @property
    def retention_max_bytes(self) -> int:
        return int(self.GENERATED_IMAGE_MAX_MB * 1024 * 1024) if self.GENERATED_IMAGE_MAX_MB > 0 else 0

    @property
    def retention_enabled(self) -> bool:
        return self.SAVE_GENERATED_IMAGES and (
            self.GENERATED_IMAGE_MAX_FILES > 0 or self.retention_max_bytes > 0
        )

    class Config:
        env_file = ".env"
        case_sensitive = True
        frozen = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
