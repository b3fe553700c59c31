"""
Configuration for Kinesis Console.

Uses pydantic-settings for environment variable loading. Every setting
can be overridden with a KINESIS_CONSOLE_ prefixed variable, e.g.
KINESIS_CONSOLE_ENDPOINT_URL=http://localhost:4566 for LocalStack.

Invariants:
    - All settings have sensible defaults for local development
    - Credentials are never read here; botocore's credential chain is used

How to change safely:
    - Add new settings with defaults that keep existing deployments working
"""

from __future__ import annotations

import logging
from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

DEFAULT_SNAPSHOT_LIMIT = 50


class StreamBackend(str, Enum):
    """Supported stream service backends."""

    KINESIS = "kinesis"
    MEMORY = "memory"


class Settings(BaseSettings):
    """Console configuration loaded from environment."""

    # Stream service
    backend: StreamBackend = Field(default=StreamBackend.KINESIS, description="kinesis or memory")
    region: str = Field(default="us-east-1", description="AWS region")
    endpoint_url: str | None = Field(default=None, description="Custom endpoint (LocalStack)")
    connect_timeout: float = Field(default=5.0, description="Connect timeout seconds")
    read_timeout: float = Field(default=30.0, description="Read timeout seconds")

    # Console settings
    host: str = Field(default="0.0.0.0", description="Console bind host")
    port: int = Field(default=8080, description="Console bind port")
    static_dir: str | None = Field(default=None, description="Built frontend directory")

    # CORS settings
    cors_origins: list[str] = Field(default=["*"], description="Allowed CORS origins")

    # Snapshot defaults
    default_snapshot_limit: int = Field(
        default=DEFAULT_SNAPSHOT_LIMIT,
        gt=0,
        description="Record budget when the caller gives none",
    )

    # In-memory backend
    memory_shard_count: int = Field(default=2, ge=0, description="Shards per in-memory stream")
    memory_streams: list[str] = Field(
        default_factory=list, description="Streams created at startup by the memory backend"
    )

    # Logging
    log_level: str = Field(default="INFO", description="DEBUG, INFO, WARNING, ERROR")
    log_format: str = Field(default="json", description="json or text")

    model_config = {"env_prefix": "KINESIS_CONSOLE_"}

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Console configuration loaded",
            extra={
                "backend": self.backend.value,
                "region": self.region,
                "endpoint": self.endpoint_url or "AWS",
                "bind": f"{self.host}:{self.port}",
                "default_snapshot_limit": self.default_snapshot_limit,
                "static_dir": self.static_dir,
                "log_level": self.log_level,
            },
        )
