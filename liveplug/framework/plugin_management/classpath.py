"""
Classpath Assembler Module

Computes the ordered list of import locations for a plugin: host libraries,
the bundled runner support library, the plugin's lib/ folder and whatever
the entry-point source declares through directive comments.
"""

import glob
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple, Union

from ...domain.models import ClasspathEntry, ClasspathEntryKind, PluginDescriptor
from ...infrastructure.exceptions import DependencyResolutionError
from .dependency_resolver import DependencyResolver
from .runner_selector import find_entry_points

logger = logging.getLogger(__name__)

ADD_TO_CLASSPATH = "add-to-classpath"
ADD_DEPENDENCY = "add-dependency"
DEPENDS_ON_PLUGIN = "depends-on-plugin"

DIRECTIVE_PATTERN = re.compile(
    r'^\s*#\s*(?P<kind>add-to-classpath|add-dependency|depends-on-plugin)\s+(?P<value>\S.*?)\s*$'
)

LIB_FOLDER = "lib"
ARCHIVE_SUFFIXES = ('.zip', '.whl')

# Compiled output lives in <compiled_path>/<plugin-id>/build-<ns>-<random>/
BUILD_PREFIX = "build-"


def latest_build_folder(compiled_path: Union[str, Path], plugin_id: str) -> Optional[Path]:
    """Newest compiled output folder of a plugin, None if it was never compiled."""
    plugin_output = Path(compiled_path) / plugin_id
    if not plugin_output.is_dir():
        return None
    builds = sorted(
        folder for folder in plugin_output.iterdir()
        if folder.is_dir() and folder.name.startswith(BUILD_PREFIX)
    )
    return builds[-1] if builds else None


@dataclass
class Directives:
    """Directive comments found in an entry-point source, in source order."""
    entries: List[Tuple[str, str]] = field(default_factory=list)

    def values(self, kind: str) -> List[str]:
        return [value for entry_kind, value in self.entries if entry_kind == kind]

    @property
    def classpath(self) -> List[str]:
        return self.values(ADD_TO_CLASSPATH)

    @property
    def dependencies(self) -> List[str]:
        return self.values(ADD_DEPENDENCY)

    @property
    def plugins(self) -> List[str]:
        return self.values(DEPENDS_ON_PLUGIN)


def parse_directives(source: str) -> Directives:
    """Collect directive comments as (kind, value) pairs."""
    directives = Directives()
    for line in source.splitlines():
        match = DIRECTIVE_PATTERN.match(line)
        if match:
            directives.entries.append((match.group('kind'), match.group('value')))
    return directives


def normalize_path(path: Union[str, Path]) -> str:
    return os.path.normcase(os.path.abspath(str(path)))


def deduplicate(entries: Sequence[ClasspathEntry]) -> List[ClasspathEntry]:
    """Drop repeated paths, keeping the first occurrence and the original order."""
    seen = set()
    result = []
    for entry in entries:
        key = normalize_path(entry.path)
        if key in seen:
            continue
        seen.add(key)
        result.append(entry)
    return result


class ClasspathAssembler:
    """
    Builds a plugin's classpath.

    Order is host libraries, support library, plugin lib/, then declared
    entries in source order. Later entries shadow earlier ones at import time.
    """

    def __init__(
        self,
        host_library_paths: Sequence[Union[str, Path]],
        support_library_path: Union[str, Path],
        dependency_resolver: DependencyResolver,
        plugin_root_lookup: Optional[Callable[[str], Optional[Path]]] = None,
        compiled_path: Optional[Union[str, Path]] = None
    ):
        self.host_library_paths = [Path(p) for p in host_library_paths]
        self.support_library_path = Path(support_library_path)
        self.dependency_resolver = dependency_resolver
        self.plugin_root_lookup = plugin_root_lookup
        self.compiled_path = Path(compiled_path) if compiled_path else None

    def assemble_classpath(self, descriptor: PluginDescriptor) -> List[ClasspathEntry]:
        """
        Compute the ordered, deduplicated classpath of a plugin.

        Raises:
            DependencyResolutionError: if a declared entry cannot be resolved
        """
        entries = [ClasspathEntry(path, ClasspathEntryKind.HOST) for path in self.host_library_paths]

        if self.support_library_path.is_dir():
            entries.append(ClasspathEntry(self.support_library_path, ClasspathEntryKind.SUPPORT))

        entries.extend(self._plugin_lib_entries(descriptor.root_path))

        for kind, value in self._read_directives(descriptor).entries:
            if kind == ADD_TO_CLASSPATH:
                entries.extend(self._local_entries(value, descriptor))
            elif kind == ADD_DEPENDENCY:
                path = self.dependency_resolver.resolve(value, descriptor.plugin_id)
                entries.append(ClasspathEntry(path, ClasspathEntryKind.DEPENDENCY))
            else:
                entries.append(self._plugin_output_entry(value, descriptor))

        classpath = deduplicate(entries)
        logger.debug(
            f"Classpath assembled for {descriptor.plugin_id}",
            extra={"plugin_id": descriptor.plugin_id, "classpath": [str(e.path) for e in classpath]}
        )
        return classpath

    def _read_directives(self, descriptor: PluginDescriptor) -> Directives:
        entry_points = find_entry_points(descriptor.root_path, descriptor.entry_file)
        if not entry_points:
            return Directives()
        try:
            source = entry_points[0].read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as e:
            raise DependencyResolutionError(
                f"Cannot read {entry_points[0]} to look for dependencies",
                descriptor.plugin_id,
                cause=e
            ) from e
        return parse_directives(source)

    @staticmethod
    def _plugin_lib_entries(plugin_root: Path) -> List[ClasspathEntry]:
        lib = plugin_root / LIB_FOLDER
        if not lib.is_dir():
            return []
        entries = [ClasspathEntry(lib, ClasspathEntryKind.PLUGIN_LIB)]
        for archive in sorted(lib.iterdir()):
            if archive.is_file() and archive.suffix in ARCHIVE_SUFFIXES:
                entries.append(ClasspathEntry(archive, ClasspathEntryKind.PLUGIN_LIB))
        return entries

    @staticmethod
    def _local_entries(value: str, descriptor: PluginDescriptor) -> List[ClasspathEntry]:
        expanded = value.replace("$PLUGIN_PATH", str(descriptor.root_path))
        expanded = os.path.expanduser(os.path.expandvars(expanded))
        if not os.path.isabs(expanded):
            expanded = str(descriptor.root_path / expanded)

        matches = sorted(glob.glob(expanded)) if glob.has_magic(expanded) else [expanded]
        paths = [Path(p) for p in matches if os.path.exists(p)]
        if not paths:
            raise DependencyResolutionError(
                f"Couldn't find dependency '{value}'",
                descriptor.plugin_id,
                coordinate=value
            )
        return [ClasspathEntry(path, ClasspathEntryKind.DEPENDENCY) for path in paths]

    def _plugin_output_entry(self, other_id: str, descriptor: PluginDescriptor) -> ClasspathEntry:
        other_root = self.plugin_root_lookup(other_id) if self.plugin_root_lookup else None
        if other_root is None or other_id == descriptor.plugin_id:
            raise DependencyResolutionError(
                f"Couldn't find plugin '{other_id}' this plugin depends on",
                descriptor.plugin_id,
                coordinate=other_id
            )

        if self.compiled_path is not None:
            compiled = latest_build_folder(self.compiled_path, other_id)
            if compiled is not None:
                return ClasspathEntry(compiled, ClasspathEntryKind.PLUGIN_OUTPUT)
        return ClasspathEntry(other_root, ClasspathEntryKind.PLUGIN_OUTPUT)
