"""
Framework Layer - Core liveplug framework services

This layer provides the plugin host facade, configuration management and
the plugin runner core.
"""

from .host import LivePluginHost
from .configuration import LivePluginConfiguration, ConfigurationBuilder
from .plugin_management import PluginExecutionCoordinator, ErrorReport, run_plugins

__all__ = [
    "LivePluginHost",
    "LivePluginConfiguration",
    "ConfigurationBuilder",
    "PluginExecutionCoordinator",
    "ErrorReport",
    "run_plugins",
]
