"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict
from pythonjsonlogger import jsonlogger

from bnpl_ledger.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


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


def log_purchase_created(
    actor_id: str,
    shop_id: str,
    purchase_id: str,
    purchase_number: str,
    purchase_type: str,
    total_cents: int,
    outstanding_cents: int,
) -> None:
    """Log structured sale outcome for analysis"""
    logging.info(
        "Purchase created",
        extra={
            "actor_id": actor_id,
            "shop_id": shop_id,
            "step": "purchase_created",
            "purchase_id": purchase_id,
            "purchase_number": purchase_number,
            "purchase_type": purchase_type,
            "total_cents": total_cents,
            "outstanding_cents": outstanding_cents,
        },
    )


def log_payment_event(
    event: str,
    actor_id: str,
    payment_id: str,
    purchase_id: str,
    amount_cents: int,
    outstanding_cents: int,
) -> None:
    """Log a payment leaving or entering the RECORDED state"""
    logging.info(
        f"Payment {event}",
        extra={
            "actor_id": actor_id,
            "step": f"payment_{event}",
            "payment_id": payment_id,
            "purchase_id": purchase_id,
            "amount_cents": amount_cents,
            "outstanding_cents": outstanding_cents,
        },
    )


def log_integrity_fault(kind: str, message: str, **context: Any) -> None:
    """Integrity faults are never clamped; they are logged loudly and the transaction aborts"""
    logging.critical(
        f"Integrity fault: {message}",
        extra={"step": "integrity_fault", "fault_kind": kind, **context},
    )
