"""
Application configuration using Pydantic settings.

Configuration is loaded from environment variables with sensible defaults.
Using Pydantic's BaseSettings means we get:
- Type validation at startup (fail fast if config is wrong)
- Documentation of what's required vs optional
- Easy testing with different configurations

Which Google credentials are required depends on ENVIRONMENT; see
validate_required_fields().
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..core.credentials import CredentialConfig
from ..infrastructure.gcs.client import StorageConfig


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    For lists (like cors_origins), use comma-separated values in env.
    """

    # API Configuration
    api_title: str = "Upload Gateway API"
    api_version: str = "v1"
    environment: str = Field(
        default="development",
        description="Runtime environment. 'production' enables workload identity."
    )

    # Google Cloud Configuration
    google_cloud_project: Optional[str] = Field(
        default=None,
        description="Google Cloud project ID"
    )
    gcs_bucket_name: str = Field(
        default="bank-ai-documents",
        description="Bucket receiving uploads"
    )
    gcs_key_secret: Optional[str] = Field(
        default=None,
        description="Secret Manager secret holding service account JSON (non-production)"
    )
    gcs_keyfile_path: Optional[str] = Field(
        default=None,
        description="Path to service account key file, relative to the working directory (development)"
    )
    google_client_email: Optional[str] = Field(
        default=None,
        description="Service account email. Production fallback when ADC is unavailable."
    )
    google_private_key: Optional[str] = Field(
        default=None,
        description="Service account PEM key; escaped \\n sequences are accepted"
    )
    gcs_mock_mode: bool = Field(
        default=False,
        description="Use in-memory mock instead of real GCS. Enables local dev without credentials."
    )
    gcs_make_public: bool = Field(
        default=False,
        description="Grant public read on each uploaded object. Off by default; returned URLs may not be reachable."
    )
    gcs_request_timeout_seconds: float = Field(
        default=60.0,
        description="Deadline for each Cloud Storage call"
    )

    # Upload behavior
    max_upload_size_mb: int = Field(
        default=10,
        description="Maximum upload size in MB"
    )
    upload_not_found_as_404: bool = Field(
        default=False,
        description="Return 404 instead of 500 when download/delete target is missing"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins. Use * for development only."
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def max_upload_size_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    def credential_config(self) -> CredentialConfig:
        """Inputs for the credential resolver."""
        return CredentialConfig(
            project_id=self.google_cloud_project,
            secret_name=self.gcs_key_secret,
            keyfile_path=self.gcs_keyfile_path,
            client_email=self.google_client_email,
            private_key=self.google_private_key,
            timeout_seconds=self.gcs_request_timeout_seconds,
        )

    def storage_config(self) -> StorageConfig:
        """Inputs for the storage facade."""
        return StorageConfig(
            bucket_name=self.gcs_bucket_name,
            make_public=self.gcs_make_public,
            timeout_seconds=self.gcs_request_timeout_seconds,
        )

    def validate_required_fields(self) -> list[str]:
        """
        Validate that required fields are set for the selected credential path.

        Returns list of missing required fields. Production needs nothing
        up front because workload identity may be available; the fallback
        credentials are only checked if it is not.
        """
        missing = []

        if self.gcs_mock_mode or self.is_production:
            return missing

        if self.gcs_key_secret:
            if not self.google_cloud_project:
                missing.append("GOOGLE_CLOUD_PROJECT")
        elif not self.gcs_keyfile_path:
            missing.append("GCS_KEYFILE_PATH")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Using lru_cache means we only load settings once per process.
    For tests, you can call get_settings.cache_clear() to reset.
    """
    return Settings()
