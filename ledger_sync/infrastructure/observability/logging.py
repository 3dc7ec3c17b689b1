"""Structured JSON logging for sync and ledger observability"""

import logging
import sys
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger

from ledger_sync.utils.date_utils import utc_now


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def __init__(self, *args, service_name: str = "ledger-sync", **kwargs):
        super().__init__(*args, **kwargs)
        self.service_name = service_name

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = utc_now().isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = self.service_name


def setup_logging(level: str = "INFO", service_name: str = "ledger-sync") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s",
        service_name=service_name,
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_mutation(
    mutation_type: str,
    customer_id: str,
    outcome: str,
    local_id: Optional[str] = None,
    duration_ms: Optional[float] = None,
) -> None:
    """Log structured mutation outcome (committed, queued, failed)"""
    logging.getLogger("ledger_sync.mutations").info(
        "Mutation %s",
        outcome,
        extra={
            "step": "mutation",
            "mutation_type": mutation_type,
            "customer_id": customer_id,
            "outcome": outcome,
            "local_id": local_id,
            "duration_ms": duration_ms,
        },
    )


def log_replay(committed: int, failed: int, remaining: int, halted: bool) -> None:
    """Log the outcome of one sync queue drain"""
    logging.getLogger("ledger_sync.sync").info(
        "Sync queue replay finished",
        extra={
            "step": "replay_complete",
            "committed": committed,
            "failed": failed,
            "remaining": remaining,
            "halted": halted,
        },
    )
