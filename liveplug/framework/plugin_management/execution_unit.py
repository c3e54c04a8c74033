"""
Execution Unit Module

The live instantiation of one plugin run, owned by the lifecycle manager.
"""

import logging
import os
import traceback
from pathlib import Path
from types import TracebackType
from typing import Any, Callable, List, Optional, Sequence

from ...domain.models import ErrorPhase, ErrorRecord, HostBindings, LocationHint, PluginDescriptor
from ...infrastructure.exceptions import CompileError, PluginError, PluginRuntimeError
from .isolation import IsolatedImportContext

logger = logging.getLogger(__name__)


def _is_under(file_name: str, roots: Sequence[Path]) -> bool:
    path = os.path.abspath(file_name)
    for root in roots:
        root_str = os.path.abspath(str(root))
        if path == root_str or path.startswith(root_str + os.sep):
            return True
    return False


def location_from_traceback(tb: Optional[TracebackType], roots: Sequence[Path]) -> Optional[LocationHint]:
    """Innermost traceback frame that belongs to the plugin, if any."""
    hint = None
    for frame, line in traceback.walk_tb(tb):
        file_name = frame.f_code.co_filename
        if _is_under(file_name, roots):
            hint = LocationHint(file_name, line)
    return hint


def location_from_syntax_error(error: SyntaxError) -> Optional[LocationHint]:
    if not error.filename:
        return None
    return LocationHint(error.filename, error.lineno)


def describe_exception(error: BaseException) -> str:
    text = str(error)
    return f"{type(error).__name__}: {text}" if text else type(error).__name__


class ExecutionUnit:
    """
    A loaded plugin ready to run, together with everything to tear it down.

    ``start`` runs the entry point once. ``teardown`` runs the registered
    cleanup actions and discards the import context.
    """

    def __init__(
        self,
        descriptor: PluginDescriptor,
        context: IsolatedImportContext,
        bindings: HostBindings,
        entry_point: Callable[[], Any],
        finalizers: Sequence[Callable[[], Any]] = ()
    ):
        self.descriptor = descriptor
        self.context = context
        self.bindings = bindings
        self._entry_point = entry_point
        self._finalizers = list(finalizers)
        self._source_roots = [descriptor.root_path]
        self._started = False
        self._torn_down = False

    @property
    def plugin_id(self) -> str:
        return self.descriptor.plugin_id

    @property
    def registrar(self):
        return self.bindings.registrar

    @property
    def started(self) -> bool:
        return self._started

    @property
    def torn_down(self) -> bool:
        return self._torn_down

    def start(self) -> None:
        """
        Run the plugin's entry point.

        Raises:
            CompileError: if a lazily imported plugin module has a syntax error
            LoadError: if the entry point cannot be found in the loaded code
            PluginRuntimeError: for anything else raised by plugin code
        """
        if self._started:
            raise RuntimeError(f"Execution unit of {self.plugin_id} was already started")
        self._started = True

        try:
            self._entry_point()
        except SyntaxError as e:
            raise CompileError(
                f"{type(e).__name__}: {e.msg}",
                self.plugin_id,
                location_hint=location_from_syntax_error(e),
                cause=e
            ) from e
        except PluginError:
            raise
        except (Exception, SystemExit) as e:
            raise PluginRuntimeError(
                describe_exception(e),
                self.plugin_id,
                location_hint=location_from_traceback(e.__traceback__, self._source_roots),
                cause=e
            ) from e

    def teardown(self) -> List[ErrorRecord]:
        """
        Run cleanup actions newest first, discard the import context, then
        release what the runner allocated for this unit.

        Returns:
            One Run-phase record per failed cleanup action. Calling this
            again returns an empty list.
        """
        if self._torn_down:
            return []
        self._torn_down = True

        records = []
        for action, error in self.registrar.run_all():
            name = getattr(action, '__qualname__', repr(action))
            logger.warning(
                f"Cleanup action {name} of {self.plugin_id} failed: {error}",
                extra={"plugin_id": self.plugin_id}
            )
            records.append(ErrorRecord(
                plugin_id=self.plugin_id,
                phase=ErrorPhase.RUN,
                message=f"Cleanup action {name} failed: {describe_exception(error)}",
                error_type=PluginRuntimeError.error_type,
                cause=error,
                location_hint=location_from_traceback(error.__traceback__, self._source_roots),
            ))

        self.context.discard()
        for finalizer in self._finalizers:
            try:
                finalizer()
            except Exception as e:
                logger.warning(f"Releasing resources of {self.plugin_id} failed: {e}", exc_info=True)
        return records

    def __repr__(self) -> str:
        return f"ExecutionUnit(plugin_id={self.plugin_id!r}, context={self.context.prefix!r})"
