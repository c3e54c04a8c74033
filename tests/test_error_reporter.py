"""
Test Error Reporting

Tests for the exception hierarchy, ErrorReporter and ErrorReport.
"""

from liveplug.domain.models import ErrorPhase, ErrorRecord, LocationHint
from liveplug.framework.plugin_management import ErrorReporter
from liveplug.infrastructure.exceptions import CompileError, DependencyResolutionError, DiscoveryError


def record(plugin_id, phase=ErrorPhase.RUN, message="failed", error_type="RuntimeError", location=None):
    return ErrorRecord(plugin_id, phase, message, error_type, location_hint=location)


class TestPluginErrors:
    """Test conversion of plugin exceptions into records."""

    def test_phases_and_taxonomy(self):
        assert DiscoveryError("x", "p").to_record().phase is ErrorPhase.DISCOVERY
        assert DependencyResolutionError("x", "p").to_record().phase is ErrorPhase.COMPILE
        assert CompileError("x", "p").to_record().error_type == "CompileError"

    def test_to_record_keeps_location_and_cause(self):
        cause = SyntaxError("bad")
        error = CompileError("bad syntax", "p", location_hint=LocationHint("plugin.py", 3), cause=cause)

        converted = error.to_record()

        assert converted.plugin_id == "p"
        assert converted.cause is cause
        assert str(converted.location_hint) == "plugin.py:3"
        assert error.to_dict()["context"]["location"] == "plugin.py:3"


class TestErrorReporter:
    """Test collecting and rendering records."""

    def test_flush_returns_records_and_clears(self):
        reporter = ErrorReporter()
        reporter.report(record("a"))

        report = reporter.flush()

        assert len(report) == 1
        assert reporter.flush().is_empty

    def test_grouping_by_plugin_then_phase(self):
        """Plugins appear in order of their first failure."""
        reporter = ErrorReporter()
        reporter.report(record("b", ErrorPhase.COMPILE, error_type="CompileError"))
        reporter.report(record("a"))
        reporter.report(record("b", ErrorPhase.RUN))

        report = reporter.flush()

        assert report.plugin_ids == ["b", "a"]
        assert len(report.records_for("b")) == 2
        assert [r.error_type for r in report.records_for("b", ErrorPhase.COMPILE)] == ["CompileError"]
        assert list(report.grouped()["b"]) == [ErrorPhase.COMPILE, ErrorPhase.RUN]
        assert report.records_for("unknown") == []

    def test_report_exception(self):
        """Plugin errors keep their phase, anything else is a runtime failure."""
        reporter = ErrorReporter()
        reporter.report_exception("a", DiscoveryError("no entry point", "a"))
        reporter.report_exception("b", KeyError("oops"))

        report = reporter.flush()

        assert report.records_for("a")[0].error_type == "DiscoveryError"
        assert report.records_for("b")[0].error_type == "RuntimeError"
        assert report.records_for("b")[0].phase is ErrorPhase.RUN

    def test_render(self):
        """Rendering shows one heading per plugin and phase, with locations."""
        reporter = ErrorReporter()
        reporter.report(record("a", ErrorPhase.COMPILE, "Compilation failed:\nfirst\nsecond", "CompileError",
                               LocationHint("/plugins/a/plugin_main.py", 7)))

        text = reporter.flush().render()

        assert "Plugin 'a':" in text
        assert "compile errors:" in text
        assert "CompileError: Compilation failed: (/plugins/a/plugin_main.py:7)" in text
        assert "      first" in text

    def test_render_empty(self):
        assert ErrorReporter().flush().render() == "No errors"
