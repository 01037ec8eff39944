"""
Configuration and environment settings for the citation registry
"""

import os
from pydantic_settings import BaseSettings, SettingsConfigDict


class Config:
    """Base Flask configuration class"""
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'a-very-secret-key'

    # CORS settings
    CORS_ORIGINS = ['http://localhost:3000', 'http://localhost:5173', 'http://localhost:8080']

    # Citation payloads are small; uploads go to the storage collaborator
    MAX_CONTENT_LENGTH = 2 * 1024 * 1024


class RegistrySettings(BaseSettings):
    """Citation registry, proof viewer and storage adapter configuration"""

    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        case_sensitive=False
    )

    # Proof session
    proof_clear_delay_ms: int = int(os.getenv("PROOF_CLEAR_DELAY_MS", "300"))

    # Reference renderer
    preview_max_chars: int = int(os.getenv("PREVIEW_MAX_CHARS", "160"))

    # Proof viewer
    zoom_min: int = 50
    zoom_max: int = 200
    zoom_step: int = 25
    base_page_width: int = int(os.getenv("BASE_PAGE_WIDTH", "550"))
    scroll_delay_ms: int = int(os.getenv("SCROLL_DELAY_MS", "500"))

    # File resolvers
    http_timeout_seconds: float = float(os.getenv("HTTP_TIMEOUT_SECONDS", "30"))
    local_root: str = os.getenv("EVIDENCE_LOCAL_ROOT", "")
    supabase_url: str = os.getenv("SUPABASE_URL", "")
    supabase_service_key: str = os.getenv("SUPABASE_SERVICE_KEY", "")
    supabase_bucket: str = os.getenv("SUPABASE_BUCKET", "documents")
    s3_bucket: str = os.getenv("S3_UPLOAD_BUCKET", "")
    aws_region: str = os.getenv("AWS_DEFAULT_REGION", "us-east-1")

    # Content view store (0 disables the limit)
    max_views: int = int(os.getenv("MAX_VIEWS", "500"))
    view_idle_ttl_seconds: float = float(os.getenv("VIEW_IDLE_TTL_SECONDS", "3600"))

    # HTTP (comma-separated; empty keeps Config.CORS_ORIGINS)
    cors_origins: str = os.getenv("CORS_ORIGINS", "")

    @property
    def proof_clear_delay(self) -> float:
        """Deferred-clear delay in seconds."""
        return self.proof_clear_delay_ms / 1000.0


settings = RegistrySettings()
