"""
Core Domain Models

Defines the value objects shared by every stage of the plugin runner:
descriptors, classpath entries, error records, trigger events and the
host bindings handed to plugin code.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional


class Language(Enum):
    """Source languages a plugin can be written in, in selection priority order."""
    PYTHON_SCRIPT = "plugin.py"
    PYTHON_COMPILED = "plugin_main.py"

    @property
    def entry_file(self) -> str:
        """Canonical entry-point file name for this language."""
        return self.value


class ClasspathEntryKind(Enum):
    """Where a classpath entry comes from."""
    HOST = "host"
    SUPPORT = "support"
    PLUGIN_LIB = "plugin_lib"
    DEPENDENCY = "dependency"
    PLUGIN_OUTPUT = "plugin_output"


class ErrorPhase(Enum):
    """Pipeline phase an error was raised in."""
    DISCOVERY = "discovery"
    COMPILE = "compile"
    LOAD = "load"
    RUN = "run"


@dataclass(frozen=True)
class PluginDescriptor:
    """A discovered plugin. Rebuilt on every discovery pass."""
    plugin_id: str
    root_path: Path
    language: Language

    @property
    def entry_file(self) -> str:
        return self.language.entry_file


@dataclass(frozen=True)
class ClasspathEntry:
    """One import location on a plugin's classpath."""
    path: Path
    kind: ClasspathEntryKind

    @property
    def is_host(self) -> bool:
        return self.kind is ClasspathEntryKind.HOST


@dataclass(frozen=True)
class LocationHint:
    """Source location attached to an error when it can be derived."""
    file: str
    line: Optional[int] = None

    def __str__(self) -> str:
        if self.line is None:
            return self.file
        return f"{self.file}:{self.line}"


@dataclass(frozen=True)
class ErrorRecord:
    """A failure scoped to one plugin id."""
    plugin_id: str
    phase: ErrorPhase
    message: str
    error_type: str
    cause: Optional[BaseException] = None
    location_hint: Optional[LocationHint] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        """Convert record to a dictionary for logging/serialization."""
        return {
            "plugin_id": self.plugin_id,
            "phase": self.phase.value,
            "error_type": self.error_type,
            "message": self.message,
            "location": str(self.location_hint) if self.location_hint else None,
            "cause": repr(self.cause) if self.cause else None,
            "timestamp": self.timestamp.isoformat(),
        }


class TriggerSource(Enum):
    """What caused a batch of plugins to run."""
    STARTUP = "startup"
    ACTION = "action"
    WATCHER = "watcher"
    CLI = "cli"


@dataclass(frozen=True)
class TriggerEvent:
    """The event that triggered a run. Shared read-only by all plugins of a batch."""
    source: TriggerSource = TriggerSource.ACTION
    data: Mapping[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        object.__setattr__(self, 'data', MappingProxyType(dict(self.data)))

    @property
    def is_host_startup(self) -> bool:
        return self.source is TriggerSource.STARTUP


HOST_BINDINGS_VERSION = 1


@dataclass(frozen=True)
class HostBindings:
    """
    The complete contract between plugin code and the host.

    Plugins see these objects as top-level names (script plugins) or as the
    argument of ``main(bindings)`` (compiled plugins) and nothing else of the host.
    """
    event: TriggerEvent
    logger: Any
    registrar: Any
    plugin_path: Path
    plugin_id: str
    version: int = HOST_BINDINGS_VERSION

    @property
    def is_host_startup(self) -> bool:
        return self.event.is_host_startup

    def as_namespace(self) -> Dict[str, Any]:
        """Names injected into a plugin's top-level scope."""
        return {
            "event": self.event,
            "logger": self.logger,
            "registrar": self.registrar,
            "plugin_path": self.plugin_path,
            "plugin_id": self.plugin_id,
            "is_host_startup": self.is_host_startup,
            "bindings": self,
        }


CleanupAction = Callable[[], Any]
