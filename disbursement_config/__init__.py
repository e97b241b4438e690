"""
disbursement_config -- single public entrypoint for runtime configuration.

Responsibility:
    ``get_active_config()`` is the only way application code obtains
    configuration.  It reads one YAML file (``sets/default.yaml`` unless
    told otherwise), parses it into frozen dataclasses, and applies the
    ``DISBURSEMENT_DATABASE_URL`` and ``DISBURSEMENT_LOG_LEVEL``
    environment overrides.

Architecture position:
    Configuration layer.  The kernel never imports from here; the API
    layer reads the config and passes plain values into the kernel.

Failure modes:
    - ``FileNotFoundError`` -- the config file does not exist.
    - ``KeyError`` / ``ValueError`` -- required keys missing or mistyped.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from disbursement_config.loader import apply_env_overrides, load_yaml_file, parse_config
from disbursement_config.schema import (
    ApiConfig,
    DatabaseConfig,
    DisbursementConfig,
    LoggingConfig,
    ReferenceConfig,
)

_logger = logging.getLogger("disbursement_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> DisbursementConfig:
    """
    Load, parse and override the active configuration.

    Args:
        config_path: YAML file to read.  Defaults to ``sets/default.yaml``.
        environ: Environment mapping for overrides.  Defaults to ``os.environ``.
    """
    path = config_path or DEFAULT_CONFIG_PATH
    config = parse_config(load_yaml_file(path))
    config = apply_env_overrides(config, os.environ if environ is None else environ)

    _logger.info(
        "DISBURSEMENT_CONFIG_TRACE",
        extra={
            "trace_type": "DISBURSEMENT_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "database_dialect": config.database.url.split(":", 1)[0],
            "log_level": config.logging.level,
        },
    )
    return config


__all__ = [
    "ApiConfig",
    "DatabaseConfig",
    "DisbursementConfig",
    "LoggingConfig",
    "ReferenceConfig",
    "get_active_config",
]
