"""
Infrastructure Layer - Core technical services

This layer provides the exception hierarchy and observability services
shared by the framework layer.
"""

from .exceptions import (
    LivePluginException, ConfigurationError, PluginError, DiscoveryError,
    DependencyResolutionError, CompileError, LoadError, PluginRuntimeError
)
from .observability import PluginLogger, LogLevel, get_plugin_logger, configure_default_logging

__all__ = [
    "LivePluginException",
    "ConfigurationError",
    "PluginError",
    "DiscoveryError",
    "DependencyResolutionError",
    "CompileError",
    "LoadError",
    "PluginRuntimeError",
    "PluginLogger",
    "LogLevel",
    "get_plugin_logger",
    "configure_default_logging",
]
