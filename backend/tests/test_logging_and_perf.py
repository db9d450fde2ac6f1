"""
test_logging_and_perf.py — Structured logging and in-process metrics.

No database, network, or external services are required.
"""

import json
import logging

from app.services.logging_config import JSONFormatter, OrderContextFormatter, setup_logging
from app.services.perf_monitor import PerformanceTracker, timed


def _record(**extra):
    record = logging.LogRecord(
        name="pharma-erp.costing",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg="profit margin updated",
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:

    def test_core_fields(self):
        entry = json.loads(JSONFormatter().format(_record()))
        assert entry["level"] == "INFO"
        assert entry["logger"] == "pharma-erp.costing"
        assert entry["message"] == "profit margin updated"
        assert "timestamp" in entry

    def test_extra_fields_copied(self):
        entry = json.loads(JSONFormatter().format(_record(order_id=42, profit_margin=35.0, request_id="r-1")))
        assert entry["order_id"] == 42
        assert entry["profit_margin"] == 35.0
        assert entry["request_id"] == "r-1"

    def test_unknown_extras_ignored(self):
        entry = json.loads(JSONFormatter().format(_record(something_else="x")))
        assert "something_else" not in entry

    def test_report_extras_copied(self):
        entry = json.loads(JSONFormatter().format(_record(total_orders=12, matched=3, page=2)))
        assert (entry["total_orders"], entry["matched"], entry["page"]) == (12, 3, 2)


class TestOrderContextFormatter:

    def test_order_context_appended(self):
        line = OrderContextFormatter().format(_record(order_id=42, request_id="r-1"))
        assert line.endswith("profit margin updated [order_id=42 request_id=r-1]")

    def test_no_context_no_suffix(self):
        line = OrderContextFormatter().format(_record())
        assert line.endswith("INFO: profit margin updated")


class TestSetupLogging:

    def test_text_mode_and_level(self):
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            setup_logging(level="debug", json_output=False)
            assert root.level == logging.DEBUG
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, OrderContextFormatter)

            setup_logging(level="nonsense", json_output=True)
            assert root.level == logging.INFO
            assert isinstance(root.handlers[0].formatter, JSONFormatter)
        finally:
            root.handlers = saved_handlers
            root.setLevel(saved_level)


class TestPerformanceTracker:

    def test_counts_and_average(self):
        t = PerformanceTracker()
        t.record_breakdown(2.0)
        t.record_breakdown(4.0)
        t.record_breakdown()
        t.record_margin_saved()
        t.record_margin_failure()
        t.record_margin_failure()
        assert t.get_metrics() == {
            "breakdowns_computed": 3,
            "avg_breakdown_duration_ms": 3.0,
            "margin_overrides_saved": 1,
            "margin_override_failures": 2,
        }

    def test_reset(self):
        t = PerformanceTracker()
        t.record_breakdown(1.0)
        t.reset()
        assert t.get_metrics()["breakdowns_computed"] == 0
        assert t.get_metrics()["avg_breakdown_duration_ms"] == 0.0

    def test_timed_preserves_result_and_logs(self, caplog):
        @timed
        def add(a, b):
            return a + b

        with caplog.at_level(logging.DEBUG, logger="pharma-erp.perf"):
            assert add(2, 3) == 5
        assert add.__name__ == "add"
        assert any(r.getMessage() == "function timed" for r in caplog.records)
