"""
Domain Layer - Core domain models and interfaces

This layer contains the value objects and interfaces that define the
plugin runner domain model.
"""

from .models import (
    Language, ClasspathEntryKind, ErrorPhase, PluginDescriptor, ClasspathEntry,
    LocationHint, ErrorRecord, TriggerSource, TriggerEvent, HostBindings,
    HOST_BINDINGS_VERSION
)
from .interfaces import PluginRunner

__all__ = [
    "Language",
    "ClasspathEntryKind",
    "ErrorPhase",
    "PluginDescriptor",
    "ClasspathEntry",
    "LocationHint",
    "ErrorRecord",
    "TriggerSource",
    "TriggerEvent",
    "HostBindings",
    "HOST_BINDINGS_VERSION",
    "PluginRunner",
]
