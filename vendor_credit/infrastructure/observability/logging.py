"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List
from pythonjsonlogger import jsonlogger

from vendor_credit.config import settings

logger = logging.getLogger("vendor_credit")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    root = logging.getLogger()
    root.setLevel(level)

    # Remove existing handlers
    root.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    root.addHandler(handler)


def log_cycle_opened(vendor_id: str, cycle_id: str, principal_cents: int, available_after_cents: int) -> None:
    logger.info(
        "Credit cycle opened",
        extra={
            "step": "cycle_opened",
            "vendor_id": vendor_id,
            "cycle_id": cycle_id,
            "principal_cents": principal_cents,
            "available_credit_cents": available_after_cents,
        },
    )


def log_repayment(
    vendor_id: str,
    cycle_id: str,
    principal_cents: int,
    actual_paid_cents: int,
    tier_id: str,
    outstanding_after_cents: int,
    cycle_status: str,
    duration_ms: float,
) -> None:
    """Log structured repayment outcome for analysis"""
    logger.info(
        "Repayment applied",
        extra={
            "step": "repayment_applied",
            "vendor_id": vendor_id,
            "cycle_id": cycle_id,
            "principal_cents": principal_cents,
            "actual_paid_cents": actual_paid_cents,
            "tier_id": tier_id,
            "outstanding_cents": outstanding_after_cents,
            "cycle_status": cycle_status,
            "duration_ms": duration_ms,
        },
    )


def log_sweep_completed(
    sweep: str,
    scanned: int,
    created: int,
    failures: List[Dict[str, Any]],
    cancelled: bool,
    duration_ms: float,
) -> None:
    level = logging.WARNING if failures else logging.INFO
    logger.log(
        level,
        "Sweep completed",
        extra={
            "step": "sweep_completed",
            "sweep": sweep,
            "scanned": scanned,
            "created_count": created,
            "failure_count": len(failures),
            "failures": failures,
            "cancelled": cancelled,
            "duration_ms": duration_ms,
        },
    )
