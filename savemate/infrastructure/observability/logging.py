"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict
from pythonjsonlogger import jsonlogger

from savemate.config import settings


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


def _money(value: Decimal | None) -> str | None:
    # Decimal is not JSON serializable; keep exact digits as text
    return None if value is None else str(value)


def log_transaction_recorded(
    user_id: int,
    transaction_id: int | None,
    transaction_type: str,
    status: str,
    amount: Decimal,
    saving_amount: Decimal | None,
    total_saved: Decimal,
) -> None:
    """Log structured transaction outcome for analysis"""
    logging.info(
        "Transaction recorded",
        extra={
            "user_id": user_id,
            "transaction_id": transaction_id,
            "step": "transaction_recorded",
            "transaction_type": transaction_type,
            "status": status,
            "amount": _money(amount),
            "saving_amount": _money(saving_amount),
            "total_saved": _money(total_saved),
        },
    )


def log_allocation(user_id: int, total_amount: Decimal, allocated: Decimal, unallocated: Decimal, goal_count: int) -> None:
    """Log structured distributor outcome"""
    logging.info(
        "Savings distributed to goals",
        extra={
            "user_id": user_id,
            "step": "goal_allocation",
            "total_amount": _money(total_amount),
            "allocated": _money(allocated),
            "unallocated": _money(unallocated),
            "goal_count": goal_count,
        },
    )
