"""
Structured Exception Hierarchy

Provides the exception hierarchy used inside the plugin runner. Every
plugin-scoped exception knows its pipeline phase and converts itself into an
ErrorRecord, which is the only form in which failures leave a stage.
"""

from typing import Dict, List, Any, Optional
import uuid
from datetime import datetime, timezone

from ..domain.models import ErrorPhase, ErrorRecord, LocationHint


class LivePluginException(Exception):
    """
    Base exception class for all liveplug-specific exceptions.

    Provides structured error information including error codes,
    context data, and correlation IDs for tracing.
    """

    def __init__(
        self,
        message: str,
        error_code: str,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
        correlation_id: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}
        self.cause = cause
        self.correlation_id = correlation_id or str(uuid.uuid4())
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "context": self.context,
            "correlation_id": self.correlation_id,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None
        }


class ConfigurationError(LivePluginException):
    """Raised when configuration-related errors occur."""

    def __init__(
        self,
        message: str,
        config_path: Optional[str] = None,
        validation_errors: Optional[List[Any]] = None,
        **kwargs
    ):
        context = kwargs.pop('context', {})
        if config_path:
            context['config_path'] = config_path
        if validation_errors:
            context['validation_errors'] = validation_errors

        super().__init__(
            message=message,
            error_code=kwargs.pop('error_code', "CONFIG_ERROR"),
            context=context,
            **kwargs
        )


class PluginError(LivePluginException):
    """
    Base class for failures scoped to a single plugin.

    Subclasses fix the pipeline phase and the taxonomy name reported to users.
    """

    phase = ErrorPhase.RUN
    error_type = "PluginError"
    default_error_code = "PLUGIN_ERROR"

    def __init__(
        self,
        message: str,
        plugin_id: str,
        location_hint: Optional[LocationHint] = None,
        **kwargs
    ):
        context = kwargs.pop('context', {})
        context['plugin_id'] = plugin_id
        if location_hint:
            context['location'] = str(location_hint)

        super().__init__(
            message=message,
            error_code=kwargs.pop('error_code', self.default_error_code),
            context=context,
            **kwargs
        )
        self.plugin_id = plugin_id
        self.location_hint = location_hint

    def to_record(self) -> ErrorRecord:
        """Convert to the record consumed by the error reporter."""
        return ErrorRecord(
            plugin_id=self.plugin_id,
            phase=self.phase,
            message=self.message,
            error_type=self.error_type,
            cause=self.cause,
            location_hint=self.location_hint,
        )


class DiscoveryError(PluginError):
    """Raised for a missing plugin folder or a folder without a recognised entry point."""

    phase = ErrorPhase.DISCOVERY
    error_type = "DiscoveryError"
    default_error_code = "DISCOVERY_ERROR"


class DependencyResolutionError(PluginError):
    """Raised when a declared dependency cannot be found or downloaded."""

    phase = ErrorPhase.COMPILE
    error_type = "DependencyResolutionError"
    default_error_code = "DEPENDENCY_RESOLUTION_ERROR"

    def __init__(self, message: str, plugin_id: str, coordinate: Optional[str] = None, **kwargs):
        context = kwargs.pop('context', {})
        if coordinate:
            context['coordinate'] = coordinate
        super().__init__(message, plugin_id, context=context, **kwargs)
        self.coordinate = coordinate


class CompileError(PluginError):
    """Raised when plugin sources fail to compile."""

    phase = ErrorPhase.COMPILE
    error_type = "CompileError"
    default_error_code = "COMPILE_ERROR"

    def __init__(self, message: str, plugin_id: str, diagnostics: Optional[List[str]] = None, **kwargs):
        context = kwargs.pop('context', {})
        if diagnostics:
            context['diagnostics'] = diagnostics
        super().__init__(message, plugin_id, context=context, **kwargs)
        self.diagnostics = diagnostics or []


class LoadError(PluginError):
    """Raised when the isolated import context or the entry point cannot be set up."""

    phase = ErrorPhase.LOAD
    error_type = "LoadError"
    default_error_code = "LOAD_ERROR"


class PluginRuntimeError(PluginError):
    """Raised for exceptions thrown by plugin code or by its cleanup actions."""

    phase = ErrorPhase.RUN
    error_type = "RuntimeError"
    default_error_code = "PLUGIN_RUNTIME_ERROR"
