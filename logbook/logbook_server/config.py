"""
Configuration management for the logbook backup server.

All configuration is done via environment variables - no config files.
This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - The memory store backend needs no credentials
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep env var names stable; deployments set them directly
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)


class StoreBackend(Enum):
    """Supported store backends."""

    MEMORY = "memory"
    SUPABASE = "supabase"


@dataclass(frozen=True)
class StoreConfig:
    """Hosted backend (Supabase/PostgREST) configuration.

    Attributes:
        url: Project URL, e.g. https://<ref>.supabase.co
        api_key: API key sent as ``apikey`` and bearer token
        timeout_seconds: Total timeout per HTTP request
        invoices_table: Table holding invoices
        orders_table: Table holding production orders
        notes_table: Table holding notes
    """

    url: str | None = None
    api_key: str | None = None
    timeout_seconds: float = 30.0
    invoices_table: str = "notas_fiscais"
    orders_table: str = "ordens_producao"
    notes_table: str = "comentarios"

    @classmethod
    def from_env(cls) -> StoreConfig:
        """Load configuration from environment variables."""
        return cls(
            url=os.getenv("SUPABASE_URL"),
            api_key=os.getenv("SUPABASE_KEY"),
            timeout_seconds=float(os.getenv("STORE_TIMEOUT_SECONDS", "30")),
            invoices_table=os.getenv("INVOICES_TABLE", "notas_fiscais"),
            orders_table=os.getenv("ORDERS_TABLE", "ordens_producao"),
            notes_table=os.getenv("NOTES_TABLE", "comentarios"),
        )


@dataclass(frozen=True)
class SnapshotConfig:
    """Snapshot store configuration.

    Attributes:
        table: Table holding snapshot rows
        retention: Maximum number of snapshots kept
    """

    table: str = "backups"
    retention: int = 7

    @classmethod
    def from_env(cls) -> SnapshotConfig:
        """Load configuration from environment variables."""
        return cls(
            table=os.getenv("SNAPSHOT_TABLE", "backups"),
            retention=int(os.getenv("SNAPSHOT_RETENTION", "7")),
        )


@dataclass(frozen=True)
class SchedulerConfig:
    """Automatic backup scheduler configuration.

    Attributes:
        enabled: Whether the scheduler loop runs
        hour: Local hour of the daily backup
        minute: Local minute of the daily backup
        tick_seconds: Interval between ticks
        marker_path: File holding the last automatic backup date
    """

    enabled: bool = True
    hour: int = 17
    minute: int = 45
    tick_seconds: int = 60
    marker_path: str = "./data/last_auto_backup.json"

    @classmethod
    def from_env(cls) -> SchedulerConfig:
        """Load configuration from environment variables."""
        return cls(
            enabled=os.getenv("BACKUP_SCHEDULER_ENABLED", "true").lower() == "true",
            hour=int(os.getenv("BACKUP_HOUR", "17")),
            minute=int(os.getenv("BACKUP_MINUTE", "45")),
            tick_seconds=int(os.getenv("BACKUP_TICK_SECONDS", "60")),
            marker_path=os.getenv("BACKUP_MARKER_PATH", "./data/last_auto_backup.json"),
        )


@dataclass(frozen=True)
class HttpConfig:
    """HTTP server configuration."""

    enabled: bool = False
    host: str = "0.0.0.0"
    port: int = 8081
    cors_origins: tuple[str, ...] = ("*",)

    @classmethod
    def from_env(cls) -> HttpConfig:
        """Load configuration from environment variables."""
        origins = os.getenv("HTTP_CORS_ORIGINS", "*")
        return cls(
            enabled=os.getenv("HTTP_ENABLED", "false").lower() == "true",
            host=os.getenv("HTTP_HOST", "0.0.0.0"),
            port=int(os.getenv("HTTP_PORT", "8081")),
            cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class ServerConfig:
    """Complete server configuration.

    Attributes:
        store_backend: Which store backend to use
        store: Hosted backend configuration
        snapshot: Snapshot store configuration
        scheduler: Automatic backup scheduler configuration
        http: HTTP server configuration
        observability: Logging configuration
    """

    store_backend: StoreBackend = StoreBackend.MEMORY
    store: StoreConfig = field(default_factory=StoreConfig)
    snapshot: SnapshotConfig = field(default_factory=SnapshotConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If required configuration is missing or invalid.
        """
        backend_str = os.getenv("STORE_BACKEND", "memory").lower()
        try:
            store_backend = StoreBackend(backend_str)
        except ValueError:
            raise ValueError(
                f"Invalid STORE_BACKEND '{backend_str}'. Must be one of: memory, supabase"
            ) from None

        config = cls(
            store_backend=store_backend,
            store=StoreConfig.from_env(),
            snapshot=SnapshotConfig.from_env(),
            scheduler=SchedulerConfig.from_env(),
            http=HttpConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.store_backend == StoreBackend.SUPABASE:
            if not self.store.url:
                raise ValueError("SUPABASE_URL is required when STORE_BACKEND=supabase")
            if not self.store.api_key:
                raise ValueError("SUPABASE_KEY is required when STORE_BACKEND=supabase")

        if self.snapshot.retention < 1:
            raise ValueError("SNAPSHOT_RETENTION must be at least 1")

        if not 0 <= self.scheduler.hour <= 23:
            raise ValueError("BACKUP_HOUR must be between 0 and 23")
        if not 0 <= self.scheduler.minute <= 59:
            raise ValueError("BACKUP_MINUTE must be between 0 and 59")
        if self.scheduler.tick_seconds < 1:
            raise ValueError("BACKUP_TICK_SECONDS must be positive")

        if self.observability.log_format not in ("json", "text"):
            raise ValueError("LOG_FORMAT must be 'json' or 'text'")

        if self.store_backend == StoreBackend.MEMORY:
            logger.warning("Using in-memory store backend; data is lost on exit")

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Server configuration loaded",
            extra={
                "store_backend": self.store_backend.value,
                "store_url": self.store.url,
                "store_key_set": bool(self.store.api_key),
                "snapshot_table": self.snapshot.table,
                "snapshot_retention": self.snapshot.retention,
                "scheduler_enabled": self.scheduler.enabled,
                "backup_time": f"{self.scheduler.hour:02d}:{self.scheduler.minute:02d}",
                "http_enabled": self.http.enabled,
                "log_level": self.observability.log_level,
            },
        )
