"""Unit tests for the structured log helpers"""

import json
import logging

from vendor_credit.infrastructure.observability.logging import (
    CustomJsonFormatter,
    log_cycle_opened,
    log_repayment,
    log_sweep_completed,
)


def test_sweep_completed_carries_counts(caplog):
    caplog.set_level(logging.INFO, logger="vendor_credit")

    log_sweep_completed("reminders", scanned=3, created=2, failures=[], cancelled=False, duration_ms=12.5)

    record = caplog.records[-1]
    assert record.levelno == logging.INFO
    assert record.sweep == "reminders"
    assert record.created_count == 2
    assert record.failure_count == 0


def test_sweep_completed_with_failures_is_a_warning(caplog):
    caplog.set_level(logging.INFO, logger="vendor_credit")
    failures = [{"entity_id": "cycle_1", "code": "RuntimeError", "message": "boom"}]

    log_sweep_completed("reminders", scanned=1, created=0, failures=failures, cancelled=False, duration_ms=3.0)

    record = caplog.records[-1]
    assert record.levelno == logging.WARNING
    assert record.failures == failures
    assert record.failure_count == 1


def test_cycle_and_repayment_logs(caplog):
    caplog.set_level(logging.INFO, logger="vendor_credit")

    log_cycle_opened("vendor_1", "cycle_1", 10_000_000, 40_000_000)
    log_repayment("vendor_1", "cycle_1", 1_000_000, 970_000, "discount_3", 9_000_000, "active", 4.2)

    opened, repaid = caplog.records[-2:]
    assert opened.step == "cycle_opened"
    assert opened.available_credit_cents == 40_000_000
    assert repaid.step == "repayment_applied"
    assert repaid.actual_paid_cents == 970_000


def test_json_formatter_adds_service_fields():
    record = logging.LogRecord("vendor_credit", logging.INFO, __file__, 1, "Sweep completed", None, None)
    record.created_count = 2

    payload = json.loads(CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s").format(record))

    assert payload["level"] == "INFO"
    assert payload["message"] == "Sweep completed"
    assert payload["created_count"] == 2
    assert "service" in payload
    assert "timestamp" in payload
