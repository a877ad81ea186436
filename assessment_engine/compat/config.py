#!/usr/bin/env python3
# CUI // SP-CTI
"""Engine configuration loader.

Reads ``args/engine_config.yaml`` (or the file named by
ASSESSMENT_CONFIG_PATH) and overlays it on built-in defaults. Scoring and
compliance policy constants are not configurable and live in code.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from assessment_engine.resilience.errors import ConfigurationError

logger = logging.getLogger("assessment_engine.compat.config")

# Project root: 3 levels up from assessment_engine/compat/config.py
BASE_DIR = Path(__file__).resolve().parent.parent.parent
CONFIG_PATH = BASE_DIR / "args" / "engine_config.yaml"

DEFAULT_CONFIG: Dict[str, Any] = {
    "compliance": {
        "frameworks": ["SOC2", "ISO27001", "HIPAA", "FRE901", "FRE902"],
    },
    "ledger": {
        "default_classification": "INTERNAL",
        "default_source_system": "Local",
        "mask_sensitive_data": True,
    },
    "database": {
        "path": "data/ledger.db",
    },
    "export": {
        "output_dir": "data/exports",
    },
    "logging": {
        "level": "INFO",
    },
}


def get_project_root() -> Path:
    """Return the repository root directory."""
    return BASE_DIR


def _merge(base: dict, overlay: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """Load engine config from YAML, falling back to defaults.

    Raises:
        ConfigurationError: If the file exists but is not a YAML mapping.
    """
    env_path = os.environ.get("ASSESSMENT_CONFIG_PATH")
    path = Path(config_path or env_path or CONFIG_PATH)
    if not path.exists():
        logger.debug("Config %s not found, using defaults", path)
        return copy.deepcopy(DEFAULT_CONFIG)

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {path}: {exc}", config_key=str(path))

    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Config {path} must be a mapping, got {type(data).__name__}",
            config_key=str(path),
        )
    return _merge(DEFAULT_CONFIG, data)


def get_setting(section: str, key: str, default: Any = None) -> Any:
    """Convenience accessor: ``get_setting("ledger", "default_classification")``."""
    return load_config().get(section, {}).get(key, default)
