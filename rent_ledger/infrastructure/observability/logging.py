"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict
from pythonjsonlogger import jsonlogger


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = "rent-ledger"


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_commit(
    request_id: str,
    tenancy_id: str,
    upserted: int,
    deleted: int,
    new_overflow: float,
    duration_ms: float,
) -> None:
    """Log structured commit outcome for analysis"""
    logging.info(
        "Ledger edits committed",
        extra={
            "request_id": request_id,
            "tenancy_id": tenancy_id,
            "step": "commit_complete",
            "charges_upserted": upserted,
            "charges_deleted": deleted,
            "overflow_balance": new_overflow,
            "duration_ms": duration_ms,
        },
    )
