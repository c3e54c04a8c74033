"""
Structured Logging System for plugins

Provides the structured logger handed to plugin code as the ``logger`` host
binding, with plugin/run context variables and configurable formatters and
handlers. By default records are forwarded to the standard ``logging`` tree
under ``liveplug.plugins.<plugin-id>`` so they end up wherever the host logs.
"""

import json
import logging
import sys
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO, Union

# Context variables for run tracking
run_id_var: ContextVar[Optional[str]] = ContextVar('run_id', default=None)
plugin_id_var: ContextVar[Optional[str]] = ContextVar('plugin_id', default=None)

PLUGIN_LOGGER_PREFIX = "liveplug.plugins"


class LogLevel(Enum):
    """Log levels for plugin loggers"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    @property
    def stdlib_level(self) -> int:
        return getattr(logging, self.value)


_LEVEL_ORDER = {
    LogLevel.DEBUG: 0,
    LogLevel.INFO: 1,
    LogLevel.WARNING: 2,
    LogLevel.ERROR: 3,
    LogLevel.CRITICAL: 4
}


class LogFormatter(ABC):
    """Abstract base class for log formatters"""

    @abstractmethod
    def format(self, record: Dict[str, Any]) -> str:
        """Format a log record into a string"""
        pass


class JSONLogFormatter(LogFormatter):
    """JSON formatter for structured logging"""

    def format(self, record: Dict[str, Any]) -> str:
        return json.dumps(record, default=str, ensure_ascii=False)


class HumanReadableFormatter(LogFormatter):
    """Human-readable formatter for development/debugging"""

    def format(self, record: Dict[str, Any]) -> str:
        base_msg = f"[{record.get('timestamp', '')}] {record.get('level', '')} {record.get('logger', '')}: {record.get('message', '')}"

        if record.get('run_id'):
            base_msg += f" [run_id={record['run_id']}]"

        if record.get('extra'):
            extra_str = ', '.join(f"{k}={v}" for k, v in record['extra'].items())
            base_msg += f" [{extra_str}]"

        return base_msg


class LogHandler(ABC):
    """Abstract base class for log handlers"""

    def __init__(self, formatter: LogFormatter):
        self.formatter = formatter

    @abstractmethod
    def emit(self, record: Dict[str, Any]) -> None:
        """Emit a log record"""
        pass


class ConsoleLogHandler(LogHandler):
    """Console log handler that writes to a stream"""

    def __init__(self, formatter: LogFormatter, stream: TextIO = sys.stderr):
        super().__init__(formatter)
        self.stream = stream

    def emit(self, record: Dict[str, Any]) -> None:
        self.stream.write(self.formatter.format(record) + '\n')
        self.stream.flush()


class FileLogHandler(LogHandler):
    """File log handler that appends to a file"""

    def __init__(self, formatter: LogFormatter, file_path: Union[str, Path]):
        super().__init__(formatter)
        self.file_path = Path(file_path)
        self.file_path.parent.mkdir(parents=True, exist_ok=True)

    def emit(self, record: Dict[str, Any]) -> None:
        with open(self.file_path, 'a', encoding='utf-8') as f:
            f.write(self.formatter.format(record) + '\n')


class StdlibLogHandler(LogHandler):
    """Forwards plugin records to the standard logging module."""

    def __init__(self, formatter: Optional[LogFormatter] = None):
        super().__init__(formatter or HumanReadableFormatter())

    def emit(self, record: Dict[str, Any]) -> None:
        target = logging.getLogger(record['logger'])
        level = LogLevel(record['level']).stdlib_level
        target.log(level, record['message'], extra={'plugin_record': record})


class PluginLogger:
    """
    Structured logger given to plugin code.

    Features:
    - Structured records with plugin and run identifiers
    - Multiple output handlers (stdlib logging, console, file)
    - Handler failures never propagate into plugin code
    """

    def __init__(self, name: str, level: LogLevel = LogLevel.INFO, handlers: Optional[List[LogHandler]] = None):
        self.name = name
        self.level = level
        self.handlers: List[LogHandler] = list(handlers or [])

    def add_handler(self, handler: LogHandler) -> None:
        self.handlers.append(handler)

    def remove_handler(self, handler: LogHandler) -> None:
        if handler in self.handlers:
            self.handlers.remove(handler)

    def set_level(self, level: LogLevel) -> None:
        self.level = level

    def _should_log(self, level: LogLevel) -> bool:
        return _LEVEL_ORDER[level] >= _LEVEL_ORDER[self.level]

    def _create_log_record(self, level: LogLevel, message: str, extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        record = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': level.value,
            'logger': self.name,
            'message': str(message),
            'plugin_id': plugin_id_var.get(),
            'run_id': run_id_var.get(),
        }

        if extra:
            record['extra'] = extra

        # Remove None values to keep logs clean
        return {k: v for k, v in record.items() if v is not None}

    def _log(self, level: LogLevel, message: str, extra: Optional[Dict[str, Any]] = None) -> None:
        if not self._should_log(level):
            return

        record = self._create_log_record(level, message, extra)

        for handler in self.handlers:
            try:
                handler.emit(record)
            except Exception as e:
                sys.stderr.write(f"Plugin log handler failed: {e}\n")

    def debug(self, message: str, extra: Optional[Dict[str, Any]] = None) -> None:
        self._log(LogLevel.DEBUG, message, extra)

    def info(self, message: str, extra: Optional[Dict[str, Any]] = None) -> None:
        self._log(LogLevel.INFO, message, extra)

    def warning(self, message: str, extra: Optional[Dict[str, Any]] = None) -> None:
        self._log(LogLevel.WARNING, message, extra)

    def error(self, message: str, extra: Optional[Dict[str, Any]] = None, exc_info: Optional[BaseException] = None) -> None:
        """Log error message with optional exception info"""
        if exc_info:
            extra = dict(extra or {})
            extra['exception'] = {
                'type': type(exc_info).__name__,
                'message': str(exc_info),
            }
        self._log(LogLevel.ERROR, message, extra)

    def critical(self, message: str, extra: Optional[Dict[str, Any]] = None) -> None:
        self._log(LogLevel.CRITICAL, message, extra)


@contextmanager
def plugin_context(plugin_id: str, run_id: Optional[str] = None):
    """Context manager binding plugin/run identifiers to records logged inside it"""
    if run_id is None:
        run_id = uuid.uuid4().hex[:12]

    plugin_token = plugin_id_var.set(plugin_id)
    run_token = run_id_var.set(run_id)
    try:
        yield run_id
    finally:
        run_id_var.reset(run_token)
        plugin_id_var.reset(plugin_token)


# Default plugin logger settings, changed by configure_default_logging
_default_level = LogLevel.INFO
_default_handlers: List[LogHandler] = [StdlibLogHandler()]


def get_plugin_logger(plugin_id: str) -> PluginLogger:
    """Create a fresh logger for one plugin run with the default handlers."""
    return PluginLogger(f"{PLUGIN_LOGGER_PREFIX}.{plugin_id}", _default_level, _default_handlers)


def configure_default_logging(logging_config) -> None:
    """
    Configure host logging and plugin logger defaults.

    Args:
        logging_config: a LoggingConfiguration instance
    """
    global _default_level, _default_handlers

    level = LogLevel(logging_config.level)
    formatter = JSONLogFormatter() if logging_config.format == "json" else HumanReadableFormatter()

    root = logging.getLogger("liveplug")
    root.setLevel(level.stdlib_level)
    for handler in list(root.handlers):
        if getattr(handler, '_liveplug_default', False):
            root.removeHandler(handler)

    handlers: List[logging.Handler] = []
    if logging_config.output in ("console", "both"):
        handlers.append(logging.StreamHandler(sys.stderr))
    if logging_config.output in ("file", "both"):
        Path(logging_config.file_path).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(logging_config.file_path, encoding='utf-8'))

    for handler in handlers:
        handler.setFormatter(_StdlibFormatter(formatter))
        handler._liveplug_default = True
        root.addHandler(handler)

    _default_level = level
    _default_handlers = [StdlibLogHandler(formatter)]


class _StdlibFormatter(logging.Formatter):
    """Renders stdlib records with a LogFormatter, reusing plugin records as they are."""

    def __init__(self, formatter: LogFormatter):
        super().__init__()
        self.formatter = formatter

    def format(self, record: logging.LogRecord) -> str:
        plugin_record = getattr(record, 'plugin_record', None)
        if plugin_record is None:
            plugin_record = {
                'timestamp': datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
                'level': record.levelname,
                'logger': record.name,
                'message': record.getMessage(),
            }
            if record.exc_info:
                plugin_record['exception'] = self.formatException(record.exc_info)
        return self.formatter.format(plugin_record)
