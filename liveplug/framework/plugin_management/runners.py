"""
Plugin Runners Module

Compile/execute pipelines, one per supported plugin language. Each run gets
a fresh IsolatedImportContext; nothing is shared between two runs.
"""

import logging
import os
import py_compile
import shutil
import tempfile
import threading
import time
from pathlib import Path
from typing import List, Optional, Sequence, Set, Union

from ...domain.interfaces import PluginRunner
from ...domain.models import ClasspathEntry, ErrorRecord, HostBindings, Language, PluginDescriptor
from ...infrastructure.exceptions import CompileError, LoadError, PluginError
from .classpath import BUILD_PREFIX, LIB_FOLDER
from .execution_unit import ExecutionUnit, describe_exception, location_from_syntax_error
from .isolation import IsolatedImportContext
from .runner_selector import IGNORED_SOURCE_FOLDERS, find_entry_points

logger = logging.getLogger(__name__)

ENTRY_FUNCTION = "main"


def _source_roots(entry_folder: Path, root: Path) -> List[Path]:
    return [entry_folder] if entry_folder == root else [entry_folder, root]


class BasePluginRunner(PluginRunner):
    """Shared part of all pipelines: entry-point lookup and failure conversion."""

    def run(
        self,
        descriptor: PluginDescriptor,
        classpath: List[ClasspathEntry],
        bindings: HostBindings
    ) -> Union[ExecutionUnit, ErrorRecord]:
        try:
            unit = self.load(descriptor, classpath, bindings)
        except PluginError as e:
            return e.to_record()
        except Exception as e:
            logger.error(f"Unexpected failure loading {descriptor.plugin_id}: {e}", exc_info=True)
            return LoadError(describe_exception(e), descriptor.plugin_id, cause=e).to_record()

        try:
            unit.start()
        except PluginError as e:
            for record in unit.teardown():
                logger.warning(record.message, extra={"plugin_id": descriptor.plugin_id})
            return e.to_record()
        return unit

    def find_entry_point(self, descriptor: PluginDescriptor) -> Path:
        """
        Get the entry-point file of a plugin, shallowest first.

        Raises:
            LoadError: if the plugin folder has no entry point for this language
        """
        entry_points = find_entry_points(descriptor.root_path, self.entry_file)
        if not entry_points:
            raise LoadError(
                f"No {self.entry_file} found in {descriptor.root_path}",
                descriptor.plugin_id
            )
        if len(entry_points) > 1:
            logger.debug(
                f"Several {self.entry_file} files in {descriptor.plugin_id}, using {entry_points[0]}",
                extra={"plugin_id": descriptor.plugin_id}
            )
        return entry_points[0]


class ScriptPluginRunner(BasePluginRunner):
    """
    Runs ``plugin.py`` as a script.

    The source is compiled when loading, then executed at start in a fresh
    module whose globals hold the host bindings. Sibling modules and the
    classpath are importable through the run's isolated context.
    """

    @property
    def language(self) -> Language:
        return Language.PYTHON_SCRIPT

    def load(
        self,
        descriptor: PluginDescriptor,
        classpath: List[ClasspathEntry],
        bindings: HostBindings
    ) -> ExecutionUnit:
        entry = self.find_entry_point(descriptor)
        try:
            source = entry.read_bytes()
        except OSError as e:
            raise LoadError(f"Cannot read {entry}: {e}", descriptor.plugin_id, cause=e) from e

        try:
            code = compile(source, str(entry), 'exec', dont_inherit=True)
        except SyntaxError as e:
            raise CompileError(
                f"{type(e).__name__}: {e.msg}",
                descriptor.plugin_id,
                location_hint=location_from_syntax_error(e),
                diagnostics=[f"{entry}:{e.lineno}: {e.msg}"],
                cause=e
            ) from e
        except ValueError as e:
            raise CompileError(
                f"Cannot compile {entry}: {e}",
                descriptor.plugin_id,
                cause=e
            ) from e

        try:
            context = IsolatedImportContext(
                descriptor.plugin_id,
                _source_roots(entry.parent, descriptor.root_path),
                classpath
            )
            module = context.create_module(entry.stem, entry, bindings.as_namespace())
        except (OSError, ImportError) as e:
            raise LoadError(
                f"Failed to create import context: {e}",
                descriptor.plugin_id,
                cause=e
            ) from e

        logger.debug(
            f"Loaded script plugin {descriptor.plugin_id}",
            extra={"plugin_id": descriptor.plugin_id, "context": context.prefix}
        )
        return ExecutionUnit(descriptor, context, bindings, lambda: context.execute(code, module))


class CompiledPluginRunner(BasePluginRunner):
    """
    Compiles every module of a ``plugin_main.py`` plugin to bytecode, then
    calls ``main(bindings)`` of the entry module.

    Every load compiles into a fresh build folder under
    ``<compiled_path>/<plugin-id>/``, owned by the unit it produces and
    removed on its teardown. A live unit's bytecode is never touched by a
    later compile. Only the bytecode is importable by the plugin, not its
    sources.
    """

    def __init__(self, compiled_path: Union[str, Path]):
        self.compiled_path = Path(os.path.abspath(os.path.expanduser(str(compiled_path))))
        self._live_builds: Set[Path] = set()
        self._lock = threading.Lock()

    @property
    def language(self) -> Language:
        return Language.PYTHON_COMPILED

    def output_folder_for(self, plugin_id: str) -> Path:
        """Folder holding the build folders of one plugin."""
        return self.compiled_path / plugin_id

    def load(
        self,
        descriptor: PluginDescriptor,
        classpath: List[ClasspathEntry],
        bindings: HostBindings
    ) -> ExecutionUnit:
        entry = self.find_entry_point(descriptor)
        output = self._new_build_folder(descriptor)

        entry_relative = entry.relative_to(descriptor.root_path)
        entry_name = entry.stem
        try:
            self.compile(descriptor, output)
            context = IsolatedImportContext(
                descriptor.plugin_id,
                _source_roots(output / entry_relative.parent, output),
                classpath
            )
        except (OSError, ImportError) as e:
            self.release_build_folder(output)
            raise LoadError(
                f"Failed to create import context: {e}",
                descriptor.plugin_id,
                cause=e
            ) from e
        except BaseException:
            self.release_build_folder(output)
            raise

        with self._lock:
            self._live_builds.add(output)

        def entry_point():
            module = context.import_module(entry_name)
            main = getattr(module, ENTRY_FUNCTION, None)
            if not callable(main):
                raise LoadError(
                    f"{entry_relative} does not define a {ENTRY_FUNCTION}(bindings) function",
                    descriptor.plugin_id
                )
            main(bindings)

        logger.debug(
            f"Loaded compiled plugin {descriptor.plugin_id}",
            extra={"plugin_id": descriptor.plugin_id, "context": context.prefix, "output": str(output)}
        )
        return ExecutionUnit(
            descriptor, context, bindings, entry_point,
            finalizers=[lambda: self.release_build_folder(output)]
        )

    def release_build_folder(self, output: Path) -> None:
        """Delete a build folder once no unit imports from it."""
        with self._lock:
            self._live_builds.discard(output)
        shutil.rmtree(output, ignore_errors=True)

    def _new_build_folder(self, descriptor: PluginDescriptor) -> Path:
        plugin_output = self.output_folder_for(descriptor.plugin_id)
        try:
            plugin_output.mkdir(parents=True, exist_ok=True)
            self._remove_stale_builds(plugin_output)
            prefix = f"{BUILD_PREFIX}{time.time_ns():020d}-"
            return Path(tempfile.mkdtemp(prefix=prefix, dir=str(plugin_output)))
        except OSError as e:
            raise CompileError(
                f"Cannot prepare output folder in {plugin_output}: {e}",
                descriptor.plugin_id,
                cause=e
            ) from e

    def _remove_stale_builds(self, plugin_output: Path) -> None:
        # Builds left behind by an earlier process
        with self._lock:
            live = set(self._live_builds)
        for folder in plugin_output.iterdir():
            if folder.is_dir() and folder.name.startswith(BUILD_PREFIX) and folder not in live:
                shutil.rmtree(folder, ignore_errors=True)

    def compile(self, descriptor: PluginDescriptor, output: Path) -> List[Path]:
        """
        Compile all plugin sources into ``output``.

        Raises:
            CompileError: listing every diagnostic if any source fails
        """
        try:
            if output.exists():
                shutil.rmtree(output)
            output.mkdir(parents=True)
        except OSError as e:
            raise CompileError(
                f"Cannot prepare output folder {output}: {e}",
                descriptor.plugin_id,
                cause=e
            ) from e

        diagnostics = []
        first_error: Optional[BaseException] = None
        first_location = None
        compiled = []
        for source in self._collect_sources(descriptor.root_path):
            target = output / source.relative_to(descriptor.root_path).with_suffix('.pyc')
            try:
                py_compile.compile(str(source), cfile=str(target), dfile=str(source), doraise=True)
                compiled.append(target)
            except py_compile.PyCompileError as e:
                error = e.exc_value
                line = getattr(error, 'lineno', None)
                diagnostics.append(f"{source}:{line}: {e.exc_type_name}: {getattr(error, 'msg', error)}")
                if first_error is None:
                    first_error = e
                    first_location = location_from_syntax_error(error) if isinstance(error, SyntaxError) else None
            except OSError as e:
                diagnostics.append(f"{source}: {e}")
                if first_error is None:
                    first_error = e

        if diagnostics:
            raise CompileError(
                f"Compilation failed with {len(diagnostics)} error(s):\n" + "\n".join(diagnostics),
                descriptor.plugin_id,
                location_hint=first_location,
                diagnostics=diagnostics,
                cause=first_error
            )

        logger.debug(
            f"Compiled {len(compiled)} module(s) of {descriptor.plugin_id}",
            extra={"plugin_id": descriptor.plugin_id}
        )
        return compiled

    @staticmethod
    def _collect_sources(plugin_root: Path) -> List[Path]:
        sources = []
        for folder, subfolders, files in os.walk(plugin_root):
            folder_path = Path(folder)
            subfolders[:] = sorted(
                name for name in subfolders
                if not name.startswith('.')
                and name not in IGNORED_SOURCE_FOLDERS
                and not (folder_path == plugin_root and name == LIB_FOLDER)
            )
            sources.extend(folder_path / name for name in sorted(files) if name.endswith('.py'))
        return sources


def create_default_runners(compiled_path: Union[str, Path]) -> Sequence[PluginRunner]:
    """All runners in selection priority order."""
    return [ScriptPluginRunner(), CompiledPluginRunner(compiled_path)]
