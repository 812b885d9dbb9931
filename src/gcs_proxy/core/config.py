"""Configuration management for the GCS proxy."""

import json
from typing import Annotated

import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from gcs_proxy.core.logging import get_logger


class Settings(BaseSettings):
    """Application settings with upstream and client configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    # Server configuration
    HOST: str = Field(default="127.0.0.1", description="Server host")
    PORT: int = Field(default=8080, description="Server port")

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: str = Field(default="json", description="Logging format: json or text")

    # Upstream bucket
    BUCKET_NAME: str = Field(default="", description="Bucket to serve objects from")
    BUCKET_ON_PATH: bool = Field(
        default=False,
        description="Bucket name is already part of the request path"
    )
    INDEX_FILENAME: str = Field(
        default="",
        description="File served when a directory-like path is not found (empty disables)"
    )
    PROXY_TIMEOUT: float = Field(default=5.0, gt=0, description="Per-request deadline in seconds")
    PROXY_ENDPOINT: str = Field(
        default="storage.googleapis.com",
        description="Upstream label used in request logs"
    )
    LOG_HEADERS: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        description="Request headers copied into request logs"
    )

    # Outbound HTTP client
    CONNECT_TIMEOUT: float = Field(default=5.0, gt=0, description="Upstream connect timeout in seconds")
    MAX_CONNECTIONS: int = Field(default=100, ge=1, description="Upstream connection pool size")
    MAX_KEEPALIVE_CONNECTIONS: int = Field(default=20, ge=0, description="Idle upstream connections kept open")
    FOLLOW_REDIRECTS: bool = Field(default=True, description="Follow upstream redirects")

    @field_validator('LOG_LEVEL')
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level"""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()

    @field_validator('LOG_FORMAT')
    @classmethod
    def validate_log_format(cls, v):
        """Validate log format"""
        valid_formats = ['json', 'text']
        if v.lower() not in valid_formats:
            raise ValueError(f"Log format must be one of {valid_formats}")
        return v.lower()

    @field_validator('LOG_HEADERS', mode='before')
    @classmethod
    def split_log_headers(cls, v):
        """Accept a comma separated list or a JSON array"""
        if isinstance(v, str):
            v = v.strip()
            if v.startswith('['):
                return json.loads(v)
            return [h.strip() for h in v.split(',') if h.strip()]
        return v

    @field_validator('INDEX_FILENAME')
    @classmethod
    def validate_index_filename(cls, v):
        """Index filename is a bare name appended to a directory path"""
        return v.strip().lstrip('/')

    @model_validator(mode='after')
    def validate_bucket(self):
        if not self.BUCKET_NAME and not self.BUCKET_ON_PATH:
            raise ValueError("BUCKET_NAME is required unless BUCKET_ON_PATH is enabled")
        return self

    def get_proxy_config(self) -> "ProxyConfig":
        """Create ProxyConfig from settings"""
        return ProxyConfig(
            bucket_name=self.BUCKET_NAME,
            bucket_on_path=self.BUCKET_ON_PATH,
            timeout=self.PROXY_TIMEOUT,
            index_filename=self.INDEX_FILENAME,
            log_headers=tuple(self.LOG_HEADERS),
            endpoint=self.PROXY_ENDPOINT,
        )


class ProxyConfig(BaseModel):
    """Resolved, read-only configuration shared by every proxied request."""

    model_config = ConfigDict(frozen=True)

    bucket_name: str = ""
    bucket_on_path: bool = False
    timeout: float = Field(default=5.0, gt=0)
    index_filename: str = ""
    log_headers: tuple[str, ...] = ()
    endpoint: str = "storage.googleapis.com"
    logger_name: str = "gcs_proxy.access"

    @property
    def logger(self) -> structlog.stdlib.BoundLogger:
        return get_logger(self.logger_name)


# Global settings instance, created on first use
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get application settings (for dependency injection)"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings

