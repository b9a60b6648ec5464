"""Configuration management utilities."""

import json
import logging
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from ..core.constants import CONFIG_FILE_NAME, WORKTREES_DIR_NAME, get_config_dir
from ..models.config import AppConfig

logger = logging.getLogger(__name__)


class ConfigManager:
    """Manages the user configuration file."""

    def __init__(self, data_dir: Optional[Path] = None):
        """Initialize config manager."""
        self.data_dir = data_dir or get_config_dir()
        self.config_file = self.data_dir / CONFIG_FILE_NAME

    @property
    def worktrees_dir(self) -> Path:
        return self.data_dir / WORKTREES_DIR_NAME

    def load_config(self) -> AppConfig:
        """Load configuration, falling back to defaults.

        A missing file is created with the defaults; an unreadable one is
        logged and left alone.
        """
        if not self.config_file.exists():
            config = AppConfig()
            try:
                self.save_config(config)
            except OSError as e:
                logger.warning(f"failed to save default config: {e}")
            return config

        try:
            data = json.loads(self.config_file.read_text())
            return AppConfig(**data)
        except (OSError, json.JSONDecodeError, ValidationError, TypeError) as e:
            logger.error(f"failed to parse config file {self.config_file}: {e}")
            return AppConfig()

    def save_config(self, config: AppConfig) -> None:
        """Save configuration."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.config_file.write_text(config.model_dump_json(indent=2))

    def set_value(self, key: str, value: Any) -> AppConfig:
        """Update a single setting and persist it.

        Raises:
            KeyError: If ``key`` is not a known setting
            ValidationError: If ``value`` is not valid for ``key``
        """
        config = self.load_config()
        if key not in AppConfig.model_fields:
            raise KeyError(key)
        updated = AppConfig(**{**config.model_dump(), key: value})
        self.save_config(updated)
        return updated
