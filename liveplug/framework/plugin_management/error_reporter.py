"""
Error Reporter Module

Collects the ErrorRecords of a batch and renders them grouped by plugin and
pipeline phase.
"""

import logging
import threading
from collections import OrderedDict
from typing import Dict, List, Optional

from ...domain.models import ErrorPhase, ErrorRecord
from ...infrastructure.exceptions import PluginError, PluginRuntimeError
from .execution_unit import describe_exception

logger = logging.getLogger(__name__)


class ErrorReport:
    """Immutable, aggregated view of the records of one batch."""

    def __init__(self, records: List[ErrorRecord]):
        self._records = list(records)
        self._by_plugin: "OrderedDict[str, List[ErrorRecord]]" = OrderedDict()
        for record in self._records:
            self._by_plugin.setdefault(record.plugin_id, []).append(record)

    @property
    def records(self) -> List[ErrorRecord]:
        return list(self._records)

    @property
    def is_empty(self) -> bool:
        return not self._records

    @property
    def plugin_ids(self) -> List[str]:
        """Plugin ids in order of their first failure."""
        return list(self._by_plugin)

    def records_for(self, plugin_id: str, phase: Optional[ErrorPhase] = None) -> List[ErrorRecord]:
        records = self._by_plugin.get(plugin_id, [])
        if phase is None:
            return list(records)
        return [r for r in records if r.phase is phase]

    def grouped(self) -> Dict[str, Dict[ErrorPhase, List[ErrorRecord]]]:
        """Records by plugin id, then by phase, both in first-appearance order."""
        result = OrderedDict()
        for plugin_id, records in self._by_plugin.items():
            phases = OrderedDict()
            for record in records:
                phases.setdefault(record.phase, []).append(record)
            result[plugin_id] = phases
        return result

    def render(self) -> str:
        if self.is_empty:
            return "No errors"

        lines = []
        for plugin_id, phases in self.grouped().items():
            lines.append(f"Plugin '{plugin_id}':")
            for phase, records in phases.items():
                lines.append(f"  {phase.value} errors:")
                for record in records:
                    location = f" ({record.location_hint})" if record.location_hint else ""
                    first, *rest = record.message.splitlines() or [""]
                    lines.append(f"    {record.error_type}: {first}{location}")
                    lines.extend(f"      {line}" for line in rest)
        return "\n".join(lines)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self):
        return iter(self._records)

    def __str__(self) -> str:
        return self.render()


class ErrorReporter:
    """Accumulates records until flushed. Safe to use from several threads."""

    def __init__(self):
        self._records: List[ErrorRecord] = []
        self._lock = threading.Lock()

    def report(self, record: ErrorRecord) -> None:
        with self._lock:
            self._records.append(record)
        logger.debug(
            f"{record.error_type} reported for {record.plugin_id}: {record.message}",
            extra={"plugin_id": record.plugin_id, "phase": record.phase.value}
        )

    def report_all(self, records: List[ErrorRecord]) -> None:
        for record in records:
            self.report(record)

    def report_exception(self, plugin_id: str, error: BaseException) -> None:
        """Record an exception, keeping the phase of plugin errors and treating anything else as a runtime failure."""
        if isinstance(error, PluginError):
            self.report(error.to_record())
        else:
            self.report(ErrorRecord(
                plugin_id=plugin_id,
                phase=ErrorPhase.RUN,
                message=describe_exception(error),
                error_type=PluginRuntimeError.error_type,
                cause=error,
            ))

    def flush(self) -> ErrorReport:
        """Get the report of everything recorded so far and start over."""
        with self._lock:
            records, self._records = self._records, []
        return ErrorReport(records)
