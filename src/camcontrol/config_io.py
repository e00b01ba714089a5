"""YAML configuration loading with environment overrides.

Settings are read once at startup from ``$CONFIG_DIR/camcontrol.yml``.

Resolution Order:
    1. Model defaults (match the reference deployment)
    2. YAML file, if present
    3. Environment variables (CAMERA_DEVICE, STREAM_URL, MQTT_BROKER, ...)

Recovery:
    Missing file        → defaults
    Malformed YAML      → logged, defaults
    Non-mapping content → logged, defaults
    Invalid values      → pydantic.ValidationError (fatal at startup)

Logging Strategy:
    DEBUG - Applied overrides
    INFO  - Config source
    WARN  - Invalid formats, ignored overrides
    ERROR - YAML parsing, I/O failures
"""
from __future__ import annotations

import io
import logging
import os
from pathlib import Path
from typing import Any, Final

import yaml

from .models.settings import Settings

logger = logging.getLogger(__name__)

# ============================================================================
# Constants
# ============================================================================

CONFIG_DIR: Final[Path] = Path(os.getenv("CONFIG_DIR", "/app/config"))
CONFIG_PATH: Final[Path] = CONFIG_DIR / "camcontrol.yml"

ENV_OVERRIDES: Final[dict[str, tuple[str, ...]]] = {
    "CAMERA_DEVICE": ("device",),
    "STREAM_URL": ("stream_url",),
    "CAPTURES_DIR": ("captures_dir",),
    "CHOWN_USER": ("chown_user",),
    "MQTT_BROKER": ("mqtt", "host"),
    "MQTT_PORT": ("mqtt", "port"),
    "MQTT_CLIENT_ID": ("mqtt", "client_id"),
    "MQTT_TLS": ("mqtt", "tls"),
}
"""Environment variable → settings key path."""

# ============================================================================
# File Loading
# ============================================================================

def _read_yaml(path: Path) -> dict[str, Any]:
    """Read the config document, recovering to {} on any format problem."""
    if not path.exists():
        logger.info(f"Config file not found, using defaults: {path}")
        return {}

    try:
        with io.open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        logger.error(f"YAML parsing error: {e}", exc_info=True)
        logger.warning("Ignoring corrupted config, using defaults")
        return {}
    except OSError as e:
        logger.error(f"Config load error: {e}", exc_info=True)
        return {}

    if not isinstance(data, dict):
        logger.warning("Invalid config format (expected mapping), using defaults")
        return {}

    logger.info(f"Config: loaded {path}")
    return data


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay environment variables onto the raw config mapping."""
    for env_name, key_path in ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value is None or value == "":
            continue

        target = data
        for key in key_path[:-1]:
            section = target.get(key)
            if not isinstance(section, dict):
                section = {}
                target[key] = section
            target = section
        target[key_path[-1]] = value
        logger.debug(f"Config override from {env_name}")

    return data


# ============================================================================
# Public API
# ============================================================================

def load_settings(path: str | Path | None = None) -> Settings:
    """Load validated settings.

    Args:
        path: Config file (default: $CONFIG_DIR/camcontrol.yml)

    Returns:
        Settings model

    Raises:
        pydantic.ValidationError: a configured value is invalid
    """
    config_path = Path(path) if path is not None else CONFIG_PATH
    data = _apply_env_overrides(_read_yaml(config_path))
    return Settings.model_validate(data)
