"""
Configuration loader: reads integrations.yml into a Settings model.

The file is optional; every field has a default. Its location is taken
from $INTEGRATIONS_CONFIG, falling back to ./integrations.yml.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from backend.app.integrations.domain.models import Platform
from backend.app.integrations.domain.package import DEFAULT_ARCHIVE_SUFFIX

logger = logging.getLogger("integrations.config")

CONFIG_FILE = "integrations.yml"
CONFIG_ENV = "INTEGRATIONS_CONFIG"


class ConfigError(Exception):
    """Raised when the configuration file is invalid or unreadable."""


class Settings(BaseModel):
    # where committed package archives live
    pkg_dir: Path = Path("data/integrations/pkg")
    # extracted copies, rebuilt on demand
    cache_dir: Path = Path("data/integrations/cache")

    install_url: str = "https://plugins.plakar.io"
    api_url: str = "https://api.plakar.io"
    user_agent: str = ""
    binary_needs_auth: bool = False
    token: Optional[str] = None
    request_timeout: float = 30.0

    archive_suffix: str = DEFAULT_ARCHIVE_SUFFIX
    platform: Platform = Field(default_factory=Platform.detect)

    log_dir: Path = Path("logs")
    log_level: str = "INFO"


def find_config_file() -> Optional[Path]:
    env = os.environ.get(CONFIG_ENV)
    if env:
        return Path(env)
    candidate = Path.cwd() / CONFIG_FILE
    return candidate if candidate.is_file() else None


def load_settings(path: Optional[Path] = None) -> Settings:
    """
    Load and validate the settings.

    Args:
        path: Explicit path to the YAML file. If None, it is looked up.

    Raises:
        ConfigError: If an explicit file is missing or the file is invalid.
    """
    if path is None:
        path = find_config_file()

    if path is None:
        logger.debug("No %s found, using defaults", CONFIG_FILE)
        return Settings()

    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading settings from %s", path)

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"Invalid config in {path}: expected a mapping")

    try:
        return Settings.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid config in {path}: {e}") from e
