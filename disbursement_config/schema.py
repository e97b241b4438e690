"""
Configuration schema (``disbursement_config.schema``).

Frozen dataclasses produced by the loader.  Nothing here reads files or
the environment.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class DatabaseConfig:
    url: str = "sqlite:///disbursement.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class ReferenceConfig:
    """Prefixes for the placeholder references recorded instead of ledger hashes."""

    external_reference_prefix: str = "mock-transaction-hash-"
    disbursement_reference_prefix: str = "milestone-tx-"


@dataclass(frozen=True)
class ApiConfig:
    title: str = "Disbursement API"
    cors_origins: tuple[str, ...] = ()


@dataclass(frozen=True)
class DisbursementConfig:
    """The complete runtime configuration."""

    config_id: str
    version: int
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    references: ReferenceConfig = field(default_factory=ReferenceConfig)
    api: ApiConfig = field(default_factory=ApiConfig)
    checksum: str = ""
