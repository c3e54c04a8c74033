"""
Dependency Resolver Module

Downloads declared plugin dependencies (``name==version`` coordinates) from a
package index into a process-wide, append-only cache.
"""

import hashlib
import io
import logging
import re
import shutil
import tempfile
import threading
import zipfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import httpx

from ...infrastructure.exceptions import DependencyResolutionError

logger = logging.getLogger(__name__)

COORDINATE_PATTERN = re.compile(
    r'^(?P<name>[A-Za-z0-9](?:[A-Za-z0-9._-]*[A-Za-z0-9])?)\s*==\s*(?P<version>[A-Za-z0-9][A-Za-z0-9.+!_-]*)$'
)

# One lock for the whole process, the cache folder is shared by every plugin
_cache_lock = threading.Lock()


def normalize_name(name: str) -> str:
    """Normalise a distribution name (PEP 503)."""
    return re.sub(r'[-_.]+', '-', name).lower()


def parse_coordinate(text: str, plugin_id: str = "") -> Tuple[str, str]:
    """
    Parse a ``name==version`` coordinate.

    Raises:
        DependencyResolutionError: if the coordinate is malformed
    """
    match = COORDINATE_PATTERN.match(text.strip())
    if not match:
        raise DependencyResolutionError(
            f"Malformed dependency coordinate '{text}', expected 'name==version'",
            plugin_id,
            coordinate=text
        )
    return match.group('name'), match.group('version')


class DependencyResolver:
    """
    Resolves dependency coordinates to folders on disk.

    Each coordinate maps to ``<cache>/<normalised-name>-<version>``. Populated
    entries are never modified, so concurrent readers need no locking.
    """

    def __init__(
        self,
        cache_path: Union[str, Path],
        index_url: str = "https://pypi.org/pypi",
        timeout: float = 30.0,
        allow_downloads: bool = True,
        transport: Optional[httpx.BaseTransport] = None
    ):
        self.cache_path = Path(cache_path).expanduser()
        self.index_url = index_url.rstrip('/')
        self.timeout = timeout
        self.allow_downloads = allow_downloads
        self._transport = transport

    def cache_folder_for(self, coordinate: str, plugin_id: str = "") -> Path:
        name, version = parse_coordinate(coordinate, plugin_id)
        return self.cache_path / f"{normalize_name(name)}-{version}"

    def resolve(self, coordinate: str, plugin_id: str = "") -> Path:
        """
        Get the folder holding the unpacked dependency, downloading it if needed.

        Raises:
            DependencyResolutionError: on malformed coordinates, network or index
                errors, missing pure-Python wheels or digest mismatches
        """
        name, version = parse_coordinate(coordinate, plugin_id)
        target = self.cache_path / f"{normalize_name(name)}-{version}"
        if target.is_dir():
            return target

        with _cache_lock:
            if target.is_dir():
                return target

            if not self.allow_downloads:
                raise DependencyResolutionError(
                    f"Dependency {coordinate} is not cached and downloads are disabled",
                    plugin_id,
                    coordinate=coordinate
                )

            logger.info(f"Downloading dependency {coordinate}", extra={"plugin_id": plugin_id})
            wheel = self._download_wheel(name, version, coordinate, plugin_id)
            self._install_into_cache(wheel, target, coordinate, plugin_id)
            logger.info(f"Dependency {coordinate} cached at {target}")

        return target

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout, transport=self._transport, follow_redirects=True)

    def _download_wheel(self, name: str, version: str, coordinate: str, plugin_id: str) -> bytes:
        url = f"{self.index_url}/{name}/{version}/json"
        try:
            with self._client() as client:
                response = client.get(url)
                response.raise_for_status()
                release = response.json()

                wheel_info = self._select_wheel(release.get('urls', []))
                if wheel_info is None:
                    raise DependencyResolutionError(
                        f"No pure-Python wheel published for {coordinate}",
                        plugin_id,
                        coordinate=coordinate
                    )

                wheel_response = client.get(wheel_info['url'])
                wheel_response.raise_for_status()
                data = wheel_response.content
        except httpx.HTTPStatusError as e:
            raise DependencyResolutionError(
                f"Package index returned {e.response.status_code} for {coordinate}",
                plugin_id,
                coordinate=coordinate,
                cause=e
            ) from e
        except httpx.HTTPError as e:
            raise DependencyResolutionError(
                f"Failed to download {coordinate}: {e}",
                plugin_id,
                coordinate=coordinate,
                cause=e
            ) from e
        except ValueError as e:
            raise DependencyResolutionError(
                f"Invalid package index response for {coordinate}",
                plugin_id,
                coordinate=coordinate,
                cause=e
            ) from e

        expected = wheel_info.get('digests', {}).get('sha256')
        if expected and hashlib.sha256(data).hexdigest() != expected:
            raise DependencyResolutionError(
                f"Digest mismatch for {wheel_info.get('filename', coordinate)}",
                plugin_id,
                coordinate=coordinate
            )
        return data

    @staticmethod
    def _select_wheel(files: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """Pick a pure-Python wheel, preferring py3-only tags."""
        wheels = [
            f for f in files
            if f.get('packagetype') == 'bdist_wheel' and f.get('filename', '').endswith('-none-any.whl')
        ]
        wheels.sort(key=lambda f: 0 if '-py3-none-any' in f['filename'] else 1)
        return wheels[0] if wheels else None

    def _install_into_cache(self, wheel: bytes, target: Path, coordinate: str, plugin_id: str) -> None:
        self.cache_path.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=f".{target.name}-", dir=self.cache_path))
        try:
            with zipfile.ZipFile(io.BytesIO(wheel)) as archive:
                for member in archive.namelist():
                    if member.startswith('/') or '..' in Path(member).parts:
                        raise DependencyResolutionError(
                            f"Unsafe path '{member}' in wheel for {coordinate}",
                            plugin_id,
                            coordinate=coordinate
                        )
                archive.extractall(staging)
            staging.replace(target)
        except zipfile.BadZipFile as e:
            raise DependencyResolutionError(
                f"Downloaded file for {coordinate} is not a valid wheel",
                plugin_id,
                coordinate=coordinate,
                cause=e
            ) from e
        finally:
            if staging.exists():
                shutil.rmtree(staging, ignore_errors=True)
