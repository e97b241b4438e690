"""
Configuration Loader (``disbursement_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen dataclasses
of ``disbursement_config.schema``, then applies environment overrides.
Runtime code should go through ``disbursement_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing ``config_id`` / ``version``  -> ``KeyError`` propagates.
* Wrongly typed values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from dataclasses import replace
from pathlib import Path
from typing import Any

import yaml

from disbursement_config.schema import (
    ApiConfig,
    DatabaseConfig,
    DisbursementConfig,
    LoggingConfig,
    ReferenceConfig,
)

ENV_DATABASE_URL = "DISBURSEMENT_DATABASE_URL"
ENV_LOG_LEVEL = "DISBURSEMENT_LOG_LEVEL"

_VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file; an empty file yields ``{}``."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _as_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ValueError(f"{key} must be a boolean, got {value!r}")


def _as_int(value: Any, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer, got {value!r}")
    return value


def parse_database(data: Mapping[str, Any]) -> DatabaseConfig:
    defaults = DatabaseConfig()
    return DatabaseConfig(
        url=str(data.get("url", defaults.url)),
        echo=_as_bool(data.get("echo", defaults.echo), "database.echo"),
        pool_size=_as_int(data.get("pool_size", defaults.pool_size), "database.pool_size"),
        max_overflow=_as_int(
            data.get("max_overflow", defaults.max_overflow), "database.max_overflow",
        ),
        pool_timeout=_as_int(
            data.get("pool_timeout", defaults.pool_timeout), "database.pool_timeout",
        ),
        pool_recycle=_as_int(
            data.get("pool_recycle", defaults.pool_recycle), "database.pool_recycle",
        ),
    )


def parse_logging(data: Mapping[str, Any]) -> LoggingConfig:
    level = str(data.get("level", LoggingConfig().level)).upper()
    if level not in _VALID_LOG_LEVELS:
        raise ValueError(f"logging.level must be one of {sorted(_VALID_LOG_LEVELS)}, got {level!r}")
    return LoggingConfig(level=level)


def parse_references(data: Mapping[str, Any]) -> ReferenceConfig:
    defaults = ReferenceConfig()
    return ReferenceConfig(
        external_reference_prefix=str(
            data.get("external_reference_prefix", defaults.external_reference_prefix)
        ),
        disbursement_reference_prefix=str(
            data.get("disbursement_reference_prefix", defaults.disbursement_reference_prefix)
        ),
    )


def parse_api(data: Mapping[str, Any]) -> ApiConfig:
    origins = data.get("cors_origins") or []
    if isinstance(origins, str):
        origins = [origins]
    return ApiConfig(
        title=str(data.get("title", ApiConfig().title)),
        cors_origins=tuple(str(o) for o in origins),
    )


def parse_config(data: Mapping[str, Any]) -> DisbursementConfig:
    """Build a ``DisbursementConfig`` from a parsed YAML mapping."""
    return DisbursementConfig(
        config_id=str(data["config_id"]),
        version=_as_int(data["version"], "version"),
        database=parse_database(data.get("database") or {}),
        logging=parse_logging(data.get("logging") or {}),
        references=parse_references(data.get("references") or {}),
        api=parse_api(data.get("api") or {}),
        checksum=compute_checksum(dict(data)),
    )


def apply_env_overrides(
    config: DisbursementConfig,
    environ: Mapping[str, str],
) -> DisbursementConfig:
    """Environment variables win over the file for the database URL and log level."""
    database_url = environ.get(ENV_DATABASE_URL)
    if database_url:
        config = replace(config, database=replace(config.database, url=database_url))

    log_level = environ.get(ENV_LOG_LEVEL)
    if log_level:
        config = replace(config, logging=parse_logging({"level": log_level}))

    return config


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of the source mapping."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
