"""
Plugin Store Module

Resolves the plugins root folder into plugin ids and their root paths.
"""

import logging
import os
from pathlib import Path
from typing import Dict, Iterable, Optional, Set, Union

logger = logging.getLogger(__name__)

# Version-control and editor metadata folders that are never plugins
RESERVED_FOLDERS = {'.git', '.hg', '.svn', '.idea', '.vscode', '__pycache__'}

# When the plugins root is itself opened as a project, its build output is not a plugin
PROJECT_METADATA_FOLDERS = {'.idea', '.vscode'}
DEFAULT_OUTPUT_FOLDER = 'out'


class PluginStore:
    """Maps plugin ids (folder names) to plugin root folders."""

    def __init__(self, plugins_path: Union[str, Path]):
        self.plugins_path = Path(plugins_path).expanduser().absolute()

    def list_plugins(self) -> Dict[str, Path]:
        """
        List plugin folders under the plugins root.

        Returns:
            Mapping of plugin id to absolute plugin root, sorted by id.
            Empty if the plugins root does not exist.
        """
        if not self.plugins_path.is_dir():
            logger.debug(f"Plugins path does not exist: {self.plugins_path}")
            return {}

        contains_project_folder = any(
            (self.plugins_path / name).is_dir() for name in PROJECT_METADATA_FOLDERS
        )

        plugins = {}
        for item in sorted(self.plugins_path.iterdir(), key=lambda p: p.name):
            if not item.is_dir():
                continue
            if item.name in RESERVED_FOLDERS:
                continue
            if contains_project_folder and item.name == DEFAULT_OUTPUT_FOLDER:
                continue
            plugins[item.name] = item

        return plugins

    def resolve(self, plugin_id: str) -> Optional[Path]:
        """Get the root folder of a plugin, None if it is not discovered."""
        return self.list_plugins().get(plugin_id)

    def plugin_exists(self, plugin_id: str) -> bool:
        return plugin_id in self.list_plugins()

    def find_plugin_root_for(self, path: Union[str, Path]) -> Optional[Path]:
        """Find the plugin folder containing a file, None if it is outside the plugins root."""
        path = Path(path).absolute()
        try:
            relative = path.relative_to(self.plugins_path)
        except ValueError:
            # Compare normalised paths, case may differ on some file systems
            plugins_root = os.path.normcase(str(self.plugins_path)) + os.sep
            candidate = os.path.normcase(str(path))
            if not candidate.startswith(plugins_root):
                return None
            relative = Path(candidate[len(plugins_root):])

        if not relative.parts:
            return None
        plugin_id = relative.parts[0]
        return self.list_plugins().get(plugin_id)

    def find_plugin_roots_for(self, paths: Iterable[Union[str, Path]]) -> Set[Path]:
        """Plugin folders containing any of the given files."""
        roots = set()
        for path in paths:
            root = self.find_plugin_root_for(path)
            if root is not None:
                roots.add(root)
        return roots
