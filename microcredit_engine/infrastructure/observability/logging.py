"""Structured JSON logging shared by the API process and the Celery workers"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger

from microcredit_engine.config import settings

# Libraries that log every statement or heartbeat at INFO
NOISY_LOGGERS = ("sqlalchemy.engine", "httpx", "httpcore", "celery.beat")


class EngineJsonFormatter(jsonlogger.JsonFormatter):
    """Adds UTC timestamp, level, service and the emitting component to every record"""

    def __init__(self, *args: Any, component: str = "api", **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.component = component

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name
        log_record["component"] = self.component


def setup_logging(level: Optional[str] = None, component: str = "api") -> None:
    """Send every record to stdout as one JSON object per line"""
    root = logging.getLogger()
    root.setLevel(level or settings.log_level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(EngineJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s", component=component))
    root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def log_credit_event(step: str, credit_id: Any, customer_id: str, **fields: Any) -> None:
    """Log a structured credit lifecycle event (request, disbursement, repayment, settlement, renewal)"""
    logging.getLogger("microcredit_engine.lifecycle").info(
        "Credit %s",
        step,
        extra={
            "step": step,
            "credit_id": str(credit_id) if credit_id else None,
            "customer_id": customer_id,
            **fields,
        },
    )


def log_pass_summary(name: str, business_date: Any, examined: int, processed: int, skipped: int, failed: int, duration_ms: float) -> None:
    """Log outcome of a scheduled pass for analysis"""
    logging.getLogger("microcredit_engine.passes").info(
        "Pass completed",
        extra={
            "step": "pass_complete",
            "pass_name": name,
            "business_date": str(business_date),
            "examined": examined,
            "processed": processed,
            "skipped": skipped,
            "failed": failed,
            "duration_ms": duration_ms,
        },
    )
