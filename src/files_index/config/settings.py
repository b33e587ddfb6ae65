# src/files_index/config/settings.py
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from files_index.index.models import IndexConfig

VALID_DEPLOYMENT_MODES = ["local-dev", "aws-mock", "aws-prod"]

DEFAULT_SENSITIVE_METADATA_KEYS = [
    "UploadIP",
    "UploadAddress",
    "Channel",
    "ChannelName",
    "TgFileId",
    "TgChatId",
    "TgBotToken",
]


class Settings(BaseSettings):
    """
    Single source of truth for all application settings.

    Configuration precedence:
    1. Environment variables (highest priority)
    2. .env file (if exists)
    3. Default values in this class (lowest priority)

    Settings are loaded once per process entry point (app factory or CLI) and
    passed along explicitly:
        settings = Settings()
        app = create_app(settings)
        index_config = settings.index_config()
    """

    # Application Settings
    app_name: str = Field(
        default="files-index",
        description="Application name"
    )

    # Deployment Mode
    deployment_mode: str = Field(
        default="local-dev",
        description="Deployment mode: local-dev, aws-mock, or aws-prod"
    )

    # AWS Core Settings
    aws_region: str = Field(
        default="us-east-1",
        alias="AWS_DEFAULT_REGION"
    )

    aws_access_key_id: Optional[str] = Field(
        default=None,
        alias="AWS_ACCESS_KEY_ID"
    )

    aws_secret_access_key: Optional[str] = Field(
        default=None,
        alias="AWS_SECRET_ACCESS_KEY"
    )

    aws_endpoint_url: Optional[str] = Field(
        default=None,
        alias="AWS_ENDPOINT_URL"
    )

    # S3 Configuration
    s3_bucket_name: str = Field(
        default="files-index-storage",
        description="S3 bucket holding file records and index keys"
    )

    # Storage Configuration
    storage_dir: str = Field(
        default="storage",
        description="Local storage directory (local-dev mode)"
    )

    # Index maintenance
    scan_page_size: int = Field(
        default=1000,
        ge=1,
        description="Keys requested per store listing page"
    )

    page_pause_seconds: float = Field(
        default=0.01,
        ge=0,
        description="Cooperative pause between listing pages"
    )

    index_chunk_size: int = Field(
        default=5000,
        ge=1,
        description="Records stored per index chunk key"
    )

    lock_ttl_seconds: int = Field(
        default=300,
        ge=1,
        description="Expiry of the maintenance guard"
    )

    max_operations_per_merge: int = Field(
        default=10000,
        ge=1,
        description="Upper bound of log entries folded by one merge"
    )

    maintenance_workers: int = Field(
        default=1,
        ge=1,
        description="Worker threads running merge/rebuild tasks"
    )

    # Listing
    default_page_count: int = Field(
        default=50,
        ge=1,
        description="Page size used when count is missing or malformed"
    )

    sensitive_metadata_keys: List[str] = Field(
        default_factory=lambda: list(DEFAULT_SENSITIVE_METADATA_KEYS),
        description="Metadata keys stripped from list responses"
    )

    # Random file API
    random_enabled: bool = Field(
        default=False,
        description="Enable GET /v1/random"
    )

    random_allowed_dirs: str = Field(
        default="",
        description="Comma separated directories the random API may read; empty allows all"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )

    @field_validator("deployment_mode", mode="before")
    @classmethod
    def normalize_deployment_mode(cls, v):
        """Normalize deployment mode values for backwards compatibility."""
        if v:
            mode_mapping = {
                "local-mock": "local-dev",
                "local": "local-dev",
                "cloud": "aws-prod",
            }
            return mode_mapping.get(v, v)
        return v

    @field_validator("deployment_mode")
    @classmethod
    def validate_deployment_mode(cls, v):
        """Validate deployment mode is one of the allowed values."""
        if v not in VALID_DEPLOYMENT_MODES:
            raise ValueError(f"Invalid deployment_mode: {v}. Must be one of {VALID_DEPLOYMENT_MODES}")
        return v

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v):
        return v.upper()

    @property
    def uses_s3(self) -> bool:
        return self.deployment_mode in ["aws-mock", "aws-prod"]

    @property
    def allowed_random_dirs(self) -> List[str]:
        """
        Allowed directories for the random API, normalized without outer slashes.

        An empty setting yields [""], which allows every directory.
        """
        dirs = []
        for item in self.random_allowed_dirs.split(","):
            if not item.strip():
                continue
            item = item.strip().lstrip("/")
            while "//" in item:
                item = item.replace("//", "/")
            dirs.append(item.rstrip("/"))
        return dirs or [""]

    def index_config(self) -> IndexConfig:
        """Build the request-scoped index configuration value."""
        return IndexConfig(
            scan_page_size=self.scan_page_size,
            page_pause_seconds=self.page_pause_seconds,
            index_chunk_size=self.index_chunk_size,
            lock_ttl_seconds=self.lock_ttl_seconds,
            max_operations_per_merge=self.max_operations_per_merge,
            default_page_count=self.default_page_count,
        )

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


def get_settings() -> Settings:
    """
    Load settings from the environment.

    Entry points call this once and thread the result through; nothing caches it
    at module level.
    """
    return Settings()
