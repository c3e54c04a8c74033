"""
Isolated Import Context Module

One IsolatedImportContext is created per plugin run. Modules found on the
context's search path are loaded privately to that context; every other
import is delegated to the host interpreter. Discarding the context drops
all of its modules at once so they can be garbage collected.
"""

import builtins
import importlib.util
import itertools
import logging
import os
import re
import sys
import threading
import zipimport
from importlib.machinery import ModuleSpec, SourceFileLoader, SourcelessFileLoader
from pathlib import Path
from types import CodeType, ModuleType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from ...domain.models import ClasspathEntry

logger = logging.getLogger(__name__)

_context_counter = itertools.count(1)


class FreshSourceLoader(SourceFileLoader):
    """Compiles the source on every load, never reading or writing __pycache__."""

    def get_code(self, fullname):
        source = self.get_data(self.path)
        return self.source_to_code(source, self.path)


# Package markers and module files, in lookup order
_PACKAGE_INIT_FILES = (("__init__.py", FreshSourceLoader), ("__init__.pyc", SourcelessFileLoader))
_MODULE_SUFFIXES = ((".py", FreshSourceLoader), (".pyc", SourcelessFileLoader))


def _normalize(path: Union[str, Path]) -> str:
    return os.path.normcase(os.path.abspath(str(path) or os.curdir))


def _host_search_path() -> set:
    return {_normalize(p) for p in sys.path if isinstance(p, str)}


def resolve_relative_name(name: str, package: str, level: int) -> str:
    """Resolve a relative module name to an absolute one."""
    bits = package.rsplit('.', level - 1)
    if len(bits) < level:
        raise ImportError("attempted relative import beyond top-level package")
    base = bits[0]
    return f"{base}.{name}" if name else base


class IsolatedImportContext:
    """
    A private arena of loaded modules with a single discard operation.

    Modules are registered in ``sys.modules`` only under a per-context prefix
    (``_liveplug_<id>_<n>.<name>``) so tooling that looks modules up by name
    keeps working, and two contexts never share a module object.

    The search path is the source roots followed by the classpath entries in
    reverse order: the last classpath entry wins a name clash. Host entries
    already on ``sys.path`` are left to the host's own import system; other
    host entries are searched last, before delegating to the host.
    """

    def __init__(
        self,
        name: str,
        source_roots: Sequence[Union[str, Path]],
        classpath: Sequence[ClasspathEntry] = ()
    ):
        self.name = name
        self.prefix = f"_liveplug_{re.sub(r'[^0-9A-Za-z_]', '_', name)}_{next(_context_counter)}"

        on_host_path = _host_search_path()
        search_path: List[str] = []
        candidates = [str(p) for p in source_roots]
        candidates += [
            str(entry.path) for entry in reversed(classpath)
            if not (entry.is_host and _normalize(entry.path) in on_host_path)
        ]
        for candidate in candidates:
            if candidate not in search_path:
                search_path.append(candidate)
        self.search_path = search_path

        self.modules: Dict[str, ModuleType] = {}
        self._sys_names: List[str] = []
        self._specs: Dict[str, ModuleSpec] = {}
        self._host_names: set = set()
        self._archives: Dict[str, Optional[zipimport.zipimporter]] = {}
        self._lock = threading.RLock()
        self._discarded = False

        self._host_import = builtins.__import__
        self.builtins: Dict[str, Any] = dict(builtins.__dict__)
        self.builtins['__import__'] = self._import

    @property
    def discarded(self) -> bool:
        return self._discarded

    def owns(self, module: ModuleType) -> bool:
        """Check whether a module object was loaded by this context."""
        return any(m is module for m in self.modules.values())

    # Public API

    def create_module(self, local_name: str, file_path: Union[str, Path], namespace: Mapping[str, Any]) -> ModuleType:
        """Create an empty top-level module in this context, pre-populated with ``namespace``."""
        with self._lock:
            self._check_not_discarded(local_name)
            sys_name = f"{self.prefix}.{local_name}"
            module = ModuleType(sys_name)
            module.__file__ = str(file_path)
            module.__package__ = self.prefix
            module.__builtins__ = self.builtins
            module.__dict__.update(namespace)
            self._register(local_name, module)
            return module

    def execute(self, code: CodeType, module: ModuleType) -> None:
        """Execute compiled code in a module created by this context."""
        exec(code, module.__dict__)

    def import_module(self, local_name: str) -> ModuleType:
        """Import a module by its plugin-local name."""
        return self._load(local_name)

    def discard(self) -> None:
        """Drop every module of this context. Later imports through it fail."""
        with self._lock:
            if self._discarded:
                return
            self._discarded = True
            for sys_name in self._sys_names:
                sys.modules.pop(sys_name, None)
            self._sys_names.clear()
            self.modules.clear()
            self._specs.clear()
            self._archives.clear()
        logger.debug(f"Import context {self.prefix} discarded")

    # Import machinery

    def _import(self, name, globals=None, locals=None, fromlist=(), level=0):
        """``__import__`` replacement installed in every module of this context."""
        if level > 0:
            package = self._local_package(globals)
            if package is None:
                return self._host_import(name, globals, locals, fromlist, level)
            if not package:
                raise ImportError("attempted relative import with no known parent package")
            local_name = resolve_relative_name(name, package, level)
            module = self._load(local_name)
            if fromlist:
                return self._handle_fromlist(module, local_name, fromlist)
            return module

        if not name:
            raise ValueError("Empty module name")

        top = name.partition('.')[0]
        if not self._provides(top):
            return self._host_import(name, globals, locals, fromlist, level)

        module = self._load(name)
        if fromlist:
            return self._handle_fromlist(module, name, fromlist)
        return self.modules[top]

    def _local_package(self, globals) -> Optional[str]:
        """Plugin-local package of the importing module, None if it is not ours."""
        if not globals:
            return None
        package = globals.get('__package__')
        if package is None:
            spec = globals.get('__spec__')
            package = spec.parent if spec is not None else None
        if package is None:
            return None
        if package == self.prefix:
            return ""
        if package.startswith(self.prefix + "."):
            return package[len(self.prefix) + 1:]
        return None

    def _handle_fromlist(self, module: ModuleType, local_name: str, fromlist) -> ModuleType:
        if not hasattr(module, '__path__'):
            return module
        for item in fromlist:
            if item == '*':
                names = [n for n in getattr(module, '__all__', ()) if n != '*']
                self._handle_fromlist(module, local_name, names)
            elif not hasattr(module, item):
                submodule = f"{local_name}.{item}"
                try:
                    self._load(submodule)
                except ModuleNotFoundError as e:
                    if e.name != submodule:
                        raise
        return module

    def _provides(self, top: str) -> bool:
        with self._lock:
            if top in self.modules or top in self._specs:
                return True
            if top in self._host_names:
                return False
            spec = self._find_spec(top, self.search_path)
            if spec is None:
                self._host_names.add(top)
                return False
            self._specs[top] = spec
            return True

    def _load(self, local_name: str) -> ModuleType:
        with self._lock:
            self._check_not_discarded(local_name)
            module = self.modules.get(local_name)
            if module is not None:
                return module

            parent_name, _, child = local_name.rpartition('.')
            if parent_name:
                parent = self._load(parent_name)
                if local_name in self.modules:
                    return self.modules[local_name]
                path_entries = getattr(parent, '__path__', None)
                if path_entries is None:
                    raise ModuleNotFoundError(
                        f"No module named '{local_name}'; '{parent_name}' is not a package",
                        name=local_name
                    )
                spec = self._find_spec(local_name, list(path_entries))
            else:
                spec = self._specs.pop(local_name, None) or self._find_spec(local_name, self.search_path)

            if spec is None:
                raise ModuleNotFoundError(f"No module named '{local_name}'", name=local_name)

            module = importlib.util.module_from_spec(spec)
            module.__builtins__ = self.builtins
            self._register(local_name, module)
            try:
                spec.loader.exec_module(module)
            except BaseException:
                self._unregister(local_name, spec.name)
                raise

            if parent_name:
                setattr(self.modules[parent_name], child, module)
            return module

    def _register(self, local_name: str, module: ModuleType) -> None:
        self.modules[local_name] = module
        sys.modules[module.__name__] = module
        self._sys_names.append(module.__name__)

    def _unregister(self, local_name: str, sys_name: str) -> None:
        self.modules.pop(local_name, None)
        sys.modules.pop(sys_name, None)
        if sys_name in self._sys_names:
            self._sys_names.remove(sys_name)

    def _check_not_discarded(self, local_name: str) -> None:
        if self._discarded:
            raise ImportError(f"Import context {self.prefix} was discarded", name=local_name)

    def _find_spec(self, local_name: str, path_entries: Sequence[str]) -> Optional[ModuleSpec]:
        sys_name = f"{self.prefix}.{local_name}"
        part = local_name.rpartition('.')[2]
        for entry in path_entries:
            if os.path.isdir(entry):
                spec = self._find_in_directory(sys_name, part, entry)
            else:
                spec = self._find_in_archive(sys_name, entry)
            if spec is not None:
                return spec
        return None

    @staticmethod
    def _find_in_directory(sys_name: str, part: str, directory: str) -> Optional[ModuleSpec]:
        base = os.path.join(directory, part)
        if os.path.isdir(base):
            for init_name, loader_class in _PACKAGE_INIT_FILES:
                init_path = os.path.join(base, init_name)
                if os.path.isfile(init_path):
                    return importlib.util.spec_from_file_location(
                        sys_name, init_path,
                        loader=loader_class(sys_name, init_path),
                        submodule_search_locations=[base]
                    )

        for suffix, loader_class in _MODULE_SUFFIXES:
            module_path = base + suffix
            if os.path.isfile(module_path):
                return importlib.util.spec_from_file_location(
                    sys_name, module_path, loader=loader_class(sys_name, module_path)
                )
        return None

    def _find_in_archive(self, sys_name: str, entry: str) -> Optional[ModuleSpec]:
        if entry not in self._archives:
            try:
                self._archives[entry] = zipimport.zipimporter(entry)
            except (zipimport.ZipImportError, OSError):
                self._archives[entry] = None

        importer = self._archives[entry]
        if importer is None:
            return None
        return importer.find_spec(sys_name)
