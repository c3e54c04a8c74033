"""
Observability Framework - Logging

Structured logging for plugin code and host logging configuration.
"""

from .logging import (
    PluginLogger, LogLevel, LogFormatter, LogHandler, JSONLogFormatter, HumanReadableFormatter,
    ConsoleLogHandler, FileLogHandler, StdlibLogHandler, get_plugin_logger, plugin_context,
    configure_default_logging
)

__all__ = [
    "PluginLogger",
    "LogLevel",
    "LogFormatter",
    "LogHandler",
    "JSONLogFormatter",
    "HumanReadableFormatter",
    "ConsoleLogHandler",
    "FileLogHandler",
    "StdlibLogHandler",
    "get_plugin_logger",
    "plugin_context",
    "configure_default_logging",
]
