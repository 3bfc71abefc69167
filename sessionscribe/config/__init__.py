"""Simple YAML configuration loader for SessionScribe."""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging

from pydantic import ValidationError

from ..errors import ConfigurationError
from .settings import PipelineSettings

logger = logging.getLogger(__name__)

__all__ = ["ScribeConfig", "PipelineSettings"]


class ScribeConfig:
    """SessionScribe configuration loader."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to YAML config file. If None, every setting
                        keeps its default value.
        """
        self.config_file = Path(config_path) if config_path else None

        if self.config_file is None:
            logger.info("No configuration file given, using defaults")
            self.config: Dict[str, Any] = {}
        else:
            if not self.config_file.exists():
                raise ConfigurationError(f"Configuration file not found: {self.config_file}")
            logger.info(f"Loading configuration from: {self.config_file}")
            self.config = self._load_config()

        self._settings: Optional[PipelineSettings] = None

    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file."""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Failed to read configuration: {e}") from e

        if config is None:
            config = {}
        if not isinstance(config, dict):
            raise ConfigurationError("Configuration root must be a mapping")

        self._resolve_paths(config)
        logger.info("Configuration loaded successfully")
        return config

    def _resolve_paths(self, config: Dict[str, Any]) -> None:
        """Resolve relative paths in configuration relative to config file location."""
        config_dir = self.config_file.parent

        storage = config.get('storage')
        if isinstance(storage, dict) and 'data_directory' in storage:
            data_dir = storage['data_directory']
            if not os.path.isabs(data_dir):
                storage['data_directory'] = str(config_dir / data_dir)

        logging_section = config.get('logging')
        if isinstance(logging_section, dict) and 'file_path' in logging_section:
            log_path = logging_section['file_path']
            if not os.path.isabs(log_path):
                logging_section['file_path'] = str(config_dir / log_path)

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'engine.model').

        Args:
            key_path: Dot-separated key path
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        value = self.config
        for key in key_path.split('.'):
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value

    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation.

        Invalidates the cached settings so the next access re-validates.
        """
        keys = key_path.split('.')
        config_dict = self.config
        for key in keys[:-1]:
            if key not in config_dict:
                config_dict[key] = {}
            config_dict = config_dict[key]
        config_dict[keys[-1]] = value
        self._settings = None
        logger.debug(f"Configuration key '{key_path}' set to: {value}")

    @property
    def settings(self) -> PipelineSettings:
        """Validated pipeline settings (the ``logging`` section is excluded)."""
        if self._settings is None:
            sections = {k: v for k, v in self.config.items() if k != 'logging'}
            try:
                self._settings = PipelineSettings.model_validate(sections)
            except ValidationError as e:
                raise ConfigurationError(f"Invalid configuration: {e}") from e
        return self._settings

    def get_data_directory(self) -> str:
        """Get data directory path."""
        return str(Path(self.settings.storage.data_directory).absolute())
