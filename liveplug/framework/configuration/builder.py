"""
Configuration builder for creating LivePluginConfiguration instances.
"""

from typing import Any, Dict, List, Union
from pathlib import Path

from .core import LivePluginConfiguration
from .sources import (
    ConfigurationSource, YAMLConfigurationSource, EnvironmentConfigurationSource, DictConfigurationSource
)


class ConfigurationBuilder:
    """
    Builder for creating LivePluginConfiguration instances with multiple sources.
    """

    def __init__(self):
        self._sources: List[ConfigurationSource] = []

    def add_yaml_source(self, path: Union[str, Path], priority: int = 100) -> 'ConfigurationBuilder':
        """
        Add a YAML configuration source.

        Args:
            path: Path to the YAML configuration file
            priority: Priority of this source (higher = more important)
        """
        self._sources.append(YAMLConfigurationSource(path, priority))
        return self

    def add_environment_source(self, prefix: str = "LIVEPLUG_", priority: int = 200) -> 'ConfigurationBuilder':
        """
        Add environment variable configuration source.

        Args:
            prefix: Environment variable prefix (default: LIVEPLUG_)
            priority: Priority of this source (higher = more important)
        """
        self._sources.append(EnvironmentConfigurationSource(prefix, priority))
        return self

    def add_dict_source(self, data: Dict[str, Any], priority: int = 300) -> 'ConfigurationBuilder':
        """
        Add in-memory configuration, e.g. overrides given on the command line.

        Args:
            data: Configuration mapping, same shape as the YAML file
            priority: Priority of this source (higher = more important)
        """
        self._sources.append(DictConfigurationSource(data, priority))
        return self

    def add_source(self, source: ConfigurationSource) -> 'ConfigurationBuilder':
        """Add a custom configuration source."""
        self._sources.append(source)
        return self

    def add_defaults(self) -> 'ConfigurationBuilder':
        """Add default configuration sources (environment variables with LIVEPLUG_ prefix)."""
        return self.add_environment_source("LIVEPLUG_", 200)

    def build(self) -> LivePluginConfiguration:
        """Build the configuration instance with all added sources."""
        if not self._sources:
            self.add_defaults()

        return LivePluginConfiguration(self._sources.copy())
