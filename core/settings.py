# =============================================================================
# Settings & Logging Configuration
# =============================================================================
"""
Loads project settings from config.yaml and configures logging.

The file is optional: missing or unparsable files fall back to built-in
defaults so library code never depends on it being present.
"""

import copy
import os
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.yaml"

DEFAULT_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def default_settings() -> Dict[str, Any]:
    """Return default settings."""
    return {
        "logging": {
            "level": "INFO",
            "format": DEFAULT_LOG_FORMAT,
            "file": None,
        },
        "training": {
            "overfitting_threshold": 0.1,
            "early_stopping": {
                "monitor": "val_loss",
                "min_delta": 0.001,
            },
            "metrics_log_interval": 10,
            "default_preset": "neural-network",
        },
    }


def find_project_root() -> str:
    """Find the directory holding config.yaml, walking up from this file."""
    current = Path(__file__).parent
    while current != current.parent:
        if (current / CONFIG_FILENAME).exists():
            return str(current)
        current = current.parent

    # Fallback to current working directory
    return os.getcwd()


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_settings(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load settings from YAML, merged over the defaults.

    Args:
        config_path: Path to config.yaml (defaults to project root)

    Returns:
        Settings dictionary
    """
    config_path = config_path or os.path.join(find_project_root(), CONFIG_FILENAME)
    try:
        with open(config_path, 'r') as f:
            loaded = yaml.safe_load(f) or {}
        logger.debug(f"Loaded settings from {config_path}")
        return _deep_merge(default_settings(), loaded)
    except FileNotFoundError:
        logger.warning(f"Config file not found at {config_path}, using defaults")
        return default_settings()
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse config: {e}")
        return default_settings()


def configure_logging(settings: Optional[Dict[str, Any]] = None) -> None:
    """
    Configure root logging from the `logging` settings section.

    Only entry-point scripts should call this; library modules just
    create module-level loggers.
    """
    log_config = (settings or default_settings()).get("logging", {})

    handlers = [logging.StreamHandler()]
    if log_config.get("file"):
        handlers.append(logging.FileHandler(log_config["file"]))

    logging.basicConfig(
        level=getattr(logging, str(log_config.get("level", "INFO")).upper(), logging.INFO),
        format=log_config.get("format", DEFAULT_LOG_FORMAT),
        handlers=handlers
    )
