"""
Core Domain Interfaces

Defines the contract every compile/execute pipeline implements so the
coordinator can treat all supported languages uniformly.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, List, Union

from .models import ClasspathEntry, ErrorRecord, HostBindings, Language, PluginDescriptor

if TYPE_CHECKING:
    from ..framework.plugin_management.execution_unit import ExecutionUnit


class PluginRunner(ABC):
    """
    Interface implemented once per supported plugin language.

    A runner turns plugin sources into an ExecutionUnit living in a fresh,
    isolated import context. Loading and starting are separate steps so the
    lifecycle manager can tear down the previous unit in between.
    """

    @property
    @abstractmethod
    def language(self) -> Language:
        """Language handled by this runner."""
        pass

    @property
    def entry_file(self) -> str:
        """Canonical entry-point file name looked up by the runner selector."""
        return self.language.entry_file

    @abstractmethod
    def load(
        self,
        descriptor: PluginDescriptor,
        classpath: List[ClasspathEntry],
        bindings: HostBindings
    ) -> "ExecutionUnit":
        """
        Compile the plugin and prepare an execution unit without running it.

        Raises:
            CompileError: if the sources cannot be compiled
            LoadError: if the isolated context cannot be created
        """
        pass

    @abstractmethod
    def run(
        self,
        descriptor: PluginDescriptor,
        classpath: List[ClasspathEntry],
        bindings: HostBindings
    ) -> Union["ExecutionUnit", ErrorRecord]:
        """
        Load and start the plugin.

        Returns:
            The started unit, or an ErrorRecord describing why it failed.
            Never raises for plugin-caused failures.
        """
        pass
