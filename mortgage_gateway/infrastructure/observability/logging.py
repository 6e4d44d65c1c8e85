"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict
from pythonjsonlogger import jsonlogger

from mortgage_gateway.domain.models import LoanEvent

SERVICE_NAME = "mortgage-gateway"


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = SERVICE_NAME


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


def log_loan_event(event: LoanEvent) -> None:
    """Log a lifecycle transition with its amounts and parties"""
    # Amounts can exceed JSON number precision
    fields = {key: str(value) if isinstance(value, int) else value for key, value in event.data.items()}
    logging.info(
        "Loan event",
        extra={
            "loan_id": event.loan_id,
            "event": event.name,
            "event_time": event.timestamp,
            **fields,
        },
    )
