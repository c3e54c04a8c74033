"""
liveplug - run user plugins in a long-running Python host

Plugins are folders of Python sources that the host discovers, compiles,
runs in isolated import contexts and hot-reloads without restarting.
"""

__version__ = "1.0.0"

from .framework import LivePluginHost
from .domain.models import TriggerEvent, TriggerSource

__all__ = [
    "LivePluginHost",
    "TriggerEvent",
    "TriggerSource",
]
