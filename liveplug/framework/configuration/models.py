"""
Configuration data models with validation.
"""

import sysconfig
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

LIVEPLUG_HOME = Path.home() / ".liveplug"
BUNDLED_SUPPORT_LIBRARY = Path(__file__).resolve().parent.parent.parent / "runner_support"


def default_host_library_paths() -> List[str]:
    """Library folders of the running interpreter."""
    paths = sysconfig.get_paths()
    return [paths["stdlib"], paths["purelib"]]


class LoggingConfiguration(BaseModel):
    """Logging system configuration with validation."""
    level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    format: str = Field(default="text", pattern="^(json|text)$")
    output: str = Field(default="console", pattern="^(console|file|both)$")
    file_path: Optional[str] = None

    @model_validator(mode='after')
    def validate_file_path(self):
        """Validate file path when file output is used."""
        if self.output in ('file', 'both') and not self.file_path:
            raise ValueError("file_path is required when output is 'file' or 'both'")
        return self


class HotReloadConfiguration(BaseModel):
    """Plugin file watcher configuration."""
    enabled: bool = False
    poll_interval: float = Field(default=2.0, gt=0, le=300)


class DependencyConfiguration(BaseModel):
    """Declared dependency download configuration."""
    cache_path: str = Field(default=str(LIVEPLUG_HOME / "dependency-cache"))
    index_url: str = "https://pypi.org/pypi"
    timeout: float = Field(default=30.0, gt=0, le=600)
    allow_downloads: bool = True

    @field_validator('index_url')
    @classmethod
    def validate_index_url(cls, v):
        """Only http(s) indexes are supported."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError(f"Invalid index URL: {v}")
        return v.rstrip('/')


class RunnerConfiguration(BaseModel):
    """Plugin runner configuration with nested validation."""
    plugins_path: str = Field(default=str(LIVEPLUG_HOME / "plugins"), min_length=1)
    compiled_path: str = Field(default=str(LIVEPLUG_HOME / "plugins-compiled"), min_length=1)
    host_library_paths: List[str] = Field(default_factory=default_host_library_paths)
    support_library_path: str = Field(default=str(BUNDLED_SUPPORT_LIBRARY))
    run_all_on_startup: bool = False
    hot_reload: HotReloadConfiguration = Field(default_factory=HotReloadConfiguration)
    dependencies: DependencyConfiguration = Field(default_factory=DependencyConfiguration)
    logging_config: LoggingConfiguration = Field(default_factory=LoggingConfiguration)

    @model_validator(mode='after')
    def validate_separate_paths(self):
        """Compiled output must not live inside the plugins folder."""
        plugins = Path(self.plugins_path).expanduser().resolve()
        compiled = Path(self.compiled_path).expanduser().resolve()
        if compiled == plugins or plugins in compiled.parents:
            raise ValueError("compiled_path must not be inside plugins_path")
        return self
