"""
Core configuration management class.
"""

import logging
import threading
from typing import Dict, Any, Optional, List

from .models import RunnerConfiguration
from .sources import ConfigurationSource
from .validation import ConfigurationValidator

logger = logging.getLogger(__name__)


class LivePluginConfiguration:
    """
    Main configuration class with hierarchical, priority-based merging of sources.

    Sources are loaded lowest priority first; later sources override earlier ones
    key by key.
    """

    def __init__(self, sources: Optional[List[ConfigurationSource]] = None):
        self._sources = list(sources or [])
        self._config_data: Dict[str, Any] = {}
        self._runner_config: Optional[RunnerConfiguration] = None
        self._config_lock = threading.RLock()

        if self._sources:
            self._load_configuration()

    def add_source(self, source: ConfigurationSource) -> None:
        """Add a configuration source and reload."""
        with self._config_lock:
            self._sources.append(source)
        self._load_configuration()

    def _load_configuration(self) -> None:
        """Load and merge configuration from all sources."""
        merged_config: Dict[str, Any] = {}

        for source in sorted(self._sources, key=lambda s: s.get_priority()):
            try:
                merged_config = self._deep_merge(merged_config, source.load())
            except Exception as e:
                logger.error(f"Failed to load configuration from source: {type(source).__name__}: {e}")
                raise

        for warning in ConfigurationValidator.validate_configuration(merged_config):
            logger.warning(warning)

        with self._config_lock:
            self._config_data = merged_config
            self._runner_config = RunnerConfiguration(**merged_config.get('runner', {}))

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries, with override taking precedence."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def get_runner_config(self) -> RunnerConfiguration:
        """Get runner configuration, defaults when nothing was loaded."""
        with self._config_lock:
            if self._runner_config is None:
                return RunnerConfiguration()
            return self._runner_config

    def reload_configuration(self) -> None:
        """Reload configuration from all sources."""
        self._load_configuration()

    def get_raw_config(self) -> Dict[str, Any]:
        """Get the raw merged configuration data."""
        with self._config_lock:
            return self._config_data.copy()
