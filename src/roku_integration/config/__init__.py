"""Configuration loader for the Roku integration and its standalone host.

Loads settings from a YAML file with built-in defaults. Supports environment
variable overrides using the ROKU_ prefix with double-underscore nesting
(e.g., ROKU_ECP__TIMEOUT_SECONDS=2.5).
"""

from __future__ import annotations

import logging
import os
import pathlib
from typing import Any

import yaml
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Config sub-models
# ---------------------------------------------------------------------------

class HostConfig(BaseModel):
    name: str = "Roku Integration Host"
    data_dir: str = "./data"
    bind_host: str = "0.0.0.0"
    port: int = 8080


class EcpConfig(BaseModel):
    port: int = 8060
    timeout_seconds: float = 5.0
    user_agent: str = "Roku-Integration/1.0"


class PollingConfig(BaseModel):
    interval_ms: int = 750
    offline_after_failures: int = 3


class LoggingConfig(BaseModel):
    level: str = "info"


# ---------------------------------------------------------------------------
# Top-level settings
# ---------------------------------------------------------------------------

class Settings(BaseModel):
    host: HostConfig = Field(default_factory=HostConfig)
    ecp: EcpConfig = Field(default_factory=EcpConfig)
    polling: PollingConfig = Field(default_factory=PollingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# ---------------------------------------------------------------------------
# Extension runtime settings (stored by the host, edited via /settings)
# ---------------------------------------------------------------------------

DEFAULT_EXTENSION_SETTINGS: dict[str, Any] = {"log_level": "warn"}

_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def parse_log_level(value: str | None) -> int:
    """Map a user-facing level name to a ``logging`` level (default WARNING)."""
    if not value:
        return logging.WARNING
    return _LOG_LEVELS.get(str(value).lower(), logging.WARNING)


def apply_log_level(value: str | None) -> int:
    """Set the ``roku_integration`` logger to the given level name."""
    level = parse_log_level(value)
    logging.getLogger("roku_integration").setLevel(level)
    return level


# ---------------------------------------------------------------------------
# Deep merge helper
# ---------------------------------------------------------------------------

def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge *override* into *base*, returning a new dict."""
    merged = dict(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


# ---------------------------------------------------------------------------
# Environment variable overrides
# ---------------------------------------------------------------------------

_ENV_PREFIX = "ROKU_"


def _collect_env_overrides() -> dict[str, Any]:
    """Collect ROKU_* env vars and build a nested dict.

    Double-underscore separates nesting levels.
    Example: ROKU_POLLING__INTERVAL_MS=1000
    becomes  {"polling": {"interval_ms": 1000}}
    """
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(_ENV_PREFIX):
            continue
        parts = key[len(_ENV_PREFIX) :].lower().split("__")
        current = overrides
        for part in parts[:-1]:
            current = current.setdefault(part, {})
        # Attempt numeric coercion
        final_value: Any = value
        try:
            final_value = int(value)
        except ValueError:
            try:
                final_value = float(value)
            except ValueError:
                if value.lower() in ("true", "false"):
                    final_value = value.lower() == "true"
        current[parts[-1]] = final_value
    return overrides


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

_BUILTIN_DEFAULTS_PATH = pathlib.Path(__file__).resolve().parents[3] / "config" / "roku_defaults.yaml"


def load_settings(
    config_path: pathlib.Path | None = None,
) -> Settings:
    """Load settings with layered precedence: defaults < file < env vars.

    Parameters
    ----------
    config_path:
        Path to a YAML config file. If ``None`` the bundled defaults file is
        used; a missing file falls back to the model defaults.
    """
    base: dict[str, Any] = {}

    path = config_path if config_path is not None else _BUILTIN_DEFAULTS_PATH
    if path.exists():
        with open(path) as fh:
            file_data = yaml.safe_load(fh)
        if isinstance(file_data, dict):
            base = _deep_merge(base, file_data)

    env_overrides = _collect_env_overrides()
    if env_overrides:
        base = _deep_merge(base, env_overrides)

    return Settings(**base)
