from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: Optional[str] = None  # Required for storage writes and bucket setup

    # Avatar storage
    avatar_storage_backend: str = "supabase"  # supabase | s3
    avatar_bucket: str = "personalities"
    avatar_public_base_url: Optional[str] = None  # e.g. a CDN in front of the bucket
    avatar_max_dimension: int = 512
    avatar_webp_quality: int = 80
    avatar_max_upload_bytes: int = 5 * 1024 * 1024

    # AWS S3 (will read from uppercase env vars automatically)
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    aws_region: str = "us-east-1"
    s3_bucket_name: Optional[str] = None

    # App
    app_name: str = "reality-avatars-backend"
    debug: bool = False
    environment: str = "development"  # development | staging | production
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000,http://127.0.0.1:5173"
    rate_limit: str = "100/minute"  # slowapi format, e.g. "100/minute"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def get_cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def get_avatar_public_base_url(self) -> str:
        """Base URL that public avatar URLs are built on, without the bucket segment."""
        if self.avatar_public_base_url:
            return self.avatar_public_base_url.rstrip("/")
        if self.avatar_storage_backend == "s3":
            return f"https://s3.{self.aws_region}.amazonaws.com"
        return f"{self.supabase_url.rstrip('/')}/storage/v1/object/public"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",  # No prefix needed
        extra="ignore"
    )


settings = Settings()
