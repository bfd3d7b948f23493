"""One-JSON-object-per-line logging for the book backend.

Only whitelisted ``extra`` fields are emitted, so request payloads and cookies
never reach the log stream by accident.
"""

import json
import logging
import sys
from datetime import UTC, datetime

SERVICE_NAME = "bookgate"

STRUCTURED_FIELDS = (
    "request_id",
    "origin",
    "method",
    "path",
    "status_code",
    "latency_ms",
    "operation",
    "attempt",
    "retries_remaining",
    "wait_ms",
    "delay_s",
    "error_code",
    "model",
    "documents",
    "pattern_count",
)

# uvicorn's access lines duplicate request_completed; httpx logs every
# outbound URL at INFO.
QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore")


class JsonFormatter(logging.Formatter):
    def __init__(self, service: str = SERVICE_NAME):
        super().__init__()
        self._service = service

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "service": self._service,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            (name, value)
            for name in STRUCTURED_FIELDS
            if (value := getattr(record, name, None)) is not None
        )
        if record.exc_info and record.exc_info[0] is not None:
            payload["error_type"] = record.exc_info[0].__name__
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True, default=str)


def configure_logging(log_level: str) -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter())
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level.upper())
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
