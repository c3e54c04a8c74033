"""
Utility functions for common configuration patterns.
"""

from typing import Union
from pathlib import Path

from .builder import ConfigurationBuilder
from .core import LivePluginConfiguration


def load_configuration_from_file(file_path: Union[str, Path]) -> LivePluginConfiguration:
    """
    Load configuration from a YAML file with environment variable overrides.

    Args:
        file_path: Path to the YAML configuration file

    Returns:
        LivePluginConfiguration instance
    """
    return (ConfigurationBuilder()
            .add_yaml_source(file_path, 100)
            .add_environment_source("LIVEPLUG_", 200)
            .build())


def load_default_configuration() -> LivePluginConfiguration:
    """Load default configuration with environment variable support."""
    return ConfigurationBuilder().add_defaults().build()
