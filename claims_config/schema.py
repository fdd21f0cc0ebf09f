"""
ClaimsConfig schema.

Frozen dataclasses the loader parses YAML into.  Every field has a default
so a configuration file only needs to name what it overrides.
"""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_MAX_ATTACHMENT_BYTES = 10 * 1024 * 1024


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings passed to ``init_engine_from_url``."""

    url: str = "sqlite:///claims.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30


@dataclass(frozen=True)
class DocumentsConfig:
    """Attachment storage settings."""

    root: str = "var/documents"
    max_bytes: int = DEFAULT_MAX_ATTACHMENT_BYTES


@dataclass(frozen=True)
class DashboardConfig:
    """Dashboard listing settings."""

    recent_claims_limit: int = 5


@dataclass(frozen=True)
class LoggingSettings:
    """Level for the claims_kernel logger hierarchy."""

    level: str = "INFO"


@dataclass(frozen=True)
class ClaimsConfig:
    """The complete runtime configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    documents: DocumentsConfig = field(default_factory=DocumentsConfig)
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    source: str | None = None
    checksum: str | None = None
