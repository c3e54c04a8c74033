"""
Configuration Management System

Type-safe configuration management with hierarchical configuration support,
YAML and environment variable sources, and validation.
"""

from .models import (
    LoggingConfiguration,
    HotReloadConfiguration,
    DependencyConfiguration,
    RunnerConfiguration
)

from .sources import (
    ConfigurationSource,
    YAMLConfigurationSource,
    EnvironmentConfigurationSource,
    DictConfigurationSource
)

from .validation import (
    ConfigurationValidator,
    ConfigurationValidationError
)

from .core import LivePluginConfiguration

from .builder import ConfigurationBuilder

from .utils import (
    load_configuration_from_file,
    load_default_configuration
)

__all__ = [
    # Models
    'LoggingConfiguration',
    'HotReloadConfiguration',
    'DependencyConfiguration',
    'RunnerConfiguration',

    # Sources
    'ConfigurationSource',
    'YAMLConfigurationSource',
    'EnvironmentConfigurationSource',
    'DictConfigurationSource',

    # Validation
    'ConfigurationValidator',
    'ConfigurationValidationError',

    # Core
    'LivePluginConfiguration',

    # Builder
    'ConfigurationBuilder',

    # Utilities
    'load_configuration_from_file',
    'load_default_configuration'
]
