"""
Configuration management and loading.

Handles YAML settings files and environment variable overrides.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import find_dotenv, load_dotenv

from subwatch.storage.db import DEFAULT_DB_PATH

ENV_DB_PATH = "SUBWATCH_DB_PATH"
ENV_LOG_LEVEL = "SUBWATCH_LOG_LEVEL"

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

_ALLOWED_SECTIONS = {
    "database": {"path"},
    "logging": {"level"},
    "demo": {"username"},
}


@dataclass(frozen=True)
class Settings:
    """Resolved application settings."""
    db_path: str = DEFAULT_DB_PATH
    log_level: str = "INFO"
    demo_username: str = "demo"

    def __post_init__(self):
        """Validate settings values."""
        if not self.db_path:
            raise ValueError("database path cannot be empty")
        if self.log_level not in VALID_LOG_LEVELS:
            raise ValueError(f"log level must be one of: {sorted(VALID_LOG_LEVELS)}")
        if not self.demo_username:
            raise ValueError("demo username cannot be empty")


def load_settings(path: Optional[str] = None) -> Settings:
    """Load settings from an optional YAML file plus the environment.

    Precedence, highest first: environment variables (including a .env
    file in the working directory), the YAML file, built-in defaults.

    Args:
        path: Optional path to a YAML settings file

    Returns:
        Validated Settings

    Raises:
        FileNotFoundError: If path is given but does not exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    load_dotenv(find_dotenv(usecwd=True))

    values: Dict[str, Any] = {}
    if path is not None:
        values.update(_read_yaml_settings(path))

    env_db_path = os.getenv(ENV_DB_PATH)
    if env_db_path:
        values["db_path"] = env_db_path
    env_log_level = os.getenv(ENV_LOG_LEVEL)
    if env_log_level:
        values["log_level"] = env_log_level.upper()

    return Settings(**values)


def _read_yaml_settings(path: str) -> Dict[str, Any]:
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Settings file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in settings file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a mapping")

    unknown_keys = set(raw_config.keys()) - set(_ALLOWED_SECTIONS)
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    for section, allowed in _ALLOWED_SECTIONS.items():
        data = raw_config.get(section)
        if data is None:
            continue
        if not isinstance(data, dict):
            raise ValueError(f"'{section}' must be a dictionary")
        unknown = set(data.keys()) - allowed
        if unknown:
            raise ValueError(f"Unknown {section} keys: {unknown}")

    values: Dict[str, Any] = {}
    database = raw_config.get("database") or {}
    if "path" in database:
        values["db_path"] = _require_string(database["path"], "database.path")

    logging_section = raw_config.get("logging") or {}
    if "level" in logging_section:
        level = _require_string(logging_section["level"], "logging.level").upper()
        if level not in VALID_LOG_LEVELS:
            raise ValueError(
                f"'logging.level' must be one of: {sorted(VALID_LOG_LEVELS)}"
            )
        values["log_level"] = level

    demo = raw_config.get("demo") or {}
    if "username" in demo:
        values["demo_username"] = _require_string(demo["username"], "demo.username")

    return values


def _require_string(value: Any, path: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"'{path}' must be a non-empty string")
    return value.strip()
