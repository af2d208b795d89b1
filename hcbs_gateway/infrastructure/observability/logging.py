"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from pythonjsonlogger.json import JsonFormatter

from hcbs_gateway.config import settings


class CustomJsonFormatter(JsonFormatter):
    """JSON formatter stamping UTC timestamp, level and service name"""

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

    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_remittance_request(
    request_id: str,
    operation: str,
    data_format: str,
    outcome: str,
    duration_ms: float,
    claim_count: int = 0,
) -> None:
    """Log one parse/render request outcome for analysis"""
    logging.getLogger("hcbs_gateway.api").info(
        "Remittance request completed",
        extra={
            "request_id": request_id,
            "step": operation,
            "format": data_format,
            "outcome": outcome,
            "claim_count": claim_count,
            "duration_ms": duration_ms,
        },
    )
