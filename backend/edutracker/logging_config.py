"""
Structured JSON logging for the progress engine.

Every entry is one JSON object on stdout carrying a channel (http, db,
evaluation, reinforcement, attendance, discharge, sync), the request ID of
the HTTP request being served, business context and extra metadata.
Background sync work logs with an empty request ID.
"""

import logging
import json
import os
import uuid
from datetime import datetime, timezone
from contextvars import ContextVar

# ──────────────────────────────────────────────────────────────
# Request ID of the HTTP request being handled. Set by the
# request middleware and stamped on every entry logged while
# that request is served.
# ──────────────────────────────────────────────────────────────
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

LOGGER_PREFIX = "edutracker"

CHANNELS = ["http", "db", "evaluation", "reinforcement", "attendance", "discharge", "sync"]


class StructuredJsonFormatter(logging.Formatter):
    """
    Renders a LogRecord as a single JSON line:

    - timestamp: UTC time the record was created, millisecond precision
    - level / message / channel
    - context: request_id plus business identifiers (student_id, group_id, task_seq)
    - extra: measurements and details (duration_ms, attempts, summary)
    - exception: formatted traceback, only when one is attached
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry = {
            "timestamp": created.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "message": record.getMessage(),
            "channel": getattr(record, "channel", None) or record.name.rsplit(".", 1)[-1],
            "context": {
                "request_id": request_id_var.get(""),
                **(getattr(record, "context", None) or {})
            },
            "extra": getattr(record, "extra_data", None) or {}
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


def setup_logging(level: str = None) -> logging.Logger:
    """
    Install the JSON handler on the root logger and set channel levels.

    Args:
        level: Level name; defaults to the LOG_LEVEL environment variable
    """
    numeric_level = getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO)

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredJsonFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers = [handler]

    for channel in CHANNELS:
        logging.getLogger(f"{LOGGER_PREFIX}.{channel}").setLevel(numeric_level)

    # The request middleware already logs every request
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    return root_logger


def get_logger(channel: str) -> logging.Logger:
    """Logger for one channel, e.g. get_logger("sync")."""
    return logging.getLogger(f"{LOGGER_PREFIX}.{channel}")


def log_with_context(logger: logging.Logger, level: str, message: str,
                     context: dict = None, extra_data: dict = None):
    """
    Emit a structured entry. Used for every log line in the service.

    Args:
        logger: Channel logger from get_logger
        level: Level name (DEBUG, INFO, WARNING, ERROR)
        message: Human-readable message
        context: Identifiers of the records involved (student_id, group_id, ...)
        extra_data: Measurements and details (duration_ms, attempts, ...)
    """
    logger.log(
        getattr(logging, level.upper(), logging.INFO),
        message,
        extra={
            "context": context or {},
            "extra_data": extra_data or {},
            "channel": logger.name.rsplit(".", 1)[-1],
        }
    )


def generate_request_id() -> str:
    """New UUID4 string for the X-Request-ID header."""
    return str(uuid.uuid4())
