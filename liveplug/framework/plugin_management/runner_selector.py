"""
Runner Selector Module

Decides which language a plugin folder is written in by looking for each
language's entry-point file.
"""

import logging
from pathlib import Path
from typing import List, Optional, Sequence

from ...domain.interfaces import PluginRunner
from ...domain.models import Language

logger = logging.getLogger(__name__)

IGNORED_SOURCE_FOLDERS = {'__pycache__'}


def find_entry_points(plugin_root: Path, entry_file: str) -> List[Path]:
    """
    Find all files named ``entry_file`` under a plugin folder.

    Hidden folders and bytecode caches are skipped. Results are sorted
    shallowest first, then by path, so the first match is deterministic.
    """
    plugin_root = Path(plugin_root)
    if not plugin_root.is_dir():
        return []

    matches = []
    for candidate in plugin_root.rglob(entry_file):
        relative = candidate.relative_to(plugin_root)
        if any(part.startswith('.') or part in IGNORED_SOURCE_FOLDERS for part in relative.parts[:-1]):
            continue
        if candidate.is_file():
            matches.append(candidate)

    return sorted(matches, key=lambda p: (len(p.relative_to(plugin_root).parts), str(p)))


class RunnerSelector:
    """Selects a runner for a plugin root in fixed priority order."""

    def __init__(self, runners: Sequence[PluginRunner]):
        self._runners = list(runners)

    @property
    def runners(self) -> List[PluginRunner]:
        return list(self._runners)

    def select_runner(self, plugin_root: Path) -> Optional[Language]:
        """
        Get the language of a plugin folder.

        Returns:
            The first language in priority order whose entry point exists
            anywhere under the folder, or None for an unrunnable folder.
        """
        for runner in self._runners:
            if find_entry_points(plugin_root, runner.entry_file):
                return runner.language

        logger.debug(f"No entry point found in {plugin_root}")
        return None

    def runner_for(self, language: Language) -> PluginRunner:
        for runner in self._runners:
            if runner.language is language:
                return runner
        raise KeyError(f"No runner registered for {language.name}")

    def is_invalid_plugin_folder(self, plugin_root: Path) -> bool:
        return self.select_runner(plugin_root) is None

    def entry_file_names(self) -> List[str]:
        return [runner.entry_file for runner in self._runners]
