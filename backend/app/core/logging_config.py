"""
CollegeSync - Logging
Plain text lines in development, one JSON object per line in production.

Every record carries the request id and user id of the request that
produced it, read from context variables set by the middleware and the
auth dependency.
"""

import logging
import sys
import json
import traceback
import uuid
from datetime import datetime, timezone
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional
from contextvars import ContextVar

from app.core.config import settings


request_id_var: ContextVar[str] = ContextVar('request_id', default='')
user_id_var: ContextVar[str] = ContextVar('user_id', default='')

# LogRecord attributes that are not user supplied ``extra`` fields
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord('', logging.INFO, '', 0, '', None, None))
) | {'message', 'asctime', 'taskName'}

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024


def get_request_id() -> str:
    return request_id_var.get()


def set_request_id(request_id: str) -> None:
    request_id_var.set(request_id)


def get_user_id() -> str:
    return user_id_var.get()


def set_user_id(user_id: str) -> None:
    user_id_var.set(user_id)


def generate_request_id() -> str:
    """Short random id used when the caller sends no X-Request-ID"""
    return uuid.uuid4().hex[:12]


def _exception_payload(exc_info) -> Dict[str, Any]:
    exc_type, exc_value, _ = exc_info
    return {
        "type": exc_type.__name__ if exc_type else None,
        "message": str(exc_value) if exc_value else None,
        "traceback": traceback.format_exception(*exc_info) if exc_type else None,
    }


class JSONFormatter(logging.Formatter):
    """Structured output for log aggregation"""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        context = {"request_id": get_request_id(), "user_id": get_user_id()}
        payload.update({key: value for key, value in context.items() if value})

        if record.exc_info:
            payload["exception"] = _exception_payload(record.exc_info)

        payload.update(
            (key, value) for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and not key.startswith('_')
        )
        return json.dumps(payload, default=str)


class ContextualFormatter(logging.Formatter):
    """Text formatter exposing %(request_id)s and %(user_id)s"""

    def format(self, record: logging.LogRecord) -> str:
        record.request_id = get_request_id() or '-'
        record.user_id = get_user_id() or '-'
        return super().format(record)


class CollegeSyncLogger(logging.Logger):
    """Logger with helpers for the event types the API reports on"""

    def log_auth_event(self, event: str, success: bool, user_email: Optional[str] = None,
                       reason: Optional[str] = None, **kwargs) -> None:
        parts = [f"Auth {event}: {'success' if success else 'failed'}"]
        parts.extend(part for part in (user_email, reason) if part)
        self.log(
            logging.INFO if success else logging.WARNING,
            " - ".join(parts),
            extra={
                "event_type": "auth",
                "auth_event": event,
                "auth_success": success,
                "user_email": user_email,
                "failure_reason": reason,
                **kwargs,
            },
        )

    def log_error_with_context(self, error: Exception, context: Optional[str] = None,
                               **kwargs) -> None:
        """Error line with traceback; kwargs become structured fields"""
        self.error(
            f"Error in {context}: {type(error).__name__}: {error}",
            exc_info=True,
            extra={
                "event_type": "error",
                "error_type": type(error).__name__,
                "error_message": str(error),
                "error_context": context,
                **kwargs,
            },
        )


def _formatters(json_logs: bool):
    if json_logs:
        formatter = JSONFormatter()
        return formatter, formatter
    console = ContextualFormatter("%(levelname)-8s | %(message)s")
    file = ContextualFormatter(
        "%(asctime)s | %(levelname)-8s | [%(request_id)s] [%(user_id)s] | "
        "%(funcName)s:%(lineno)d | %(message)s"
    )
    return console, file


def setup_logging() -> CollegeSyncLogger:
    """Configure the ``collegesync`` logger from settings"""
    logging.setLoggerClass(CollegeSyncLogger)

    app_logger = logging.getLogger("collegesync")
    # getLogger may hand back a plain Logger created before setLoggerClass
    app_logger.__class__ = CollegeSyncLogger
    app_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    app_logger.handlers.clear()

    json_logs = settings.ENVIRONMENT == "production"
    console_formatter, file_formatter = _formatters(json_logs)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(console_formatter)
    app_logger.addHandler(console_handler)

    if settings.LOG_FILE:
        log_file = Path(settings.LOG_FILE)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=LOG_FILE_MAX_BYTES,
            backupCount=10 if json_logs else 5,
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(file_formatter)
        app_logger.addHandler(file_handler)

    for noisy in ("uvicorn.access", "sqlalchemy.engine", "aiosqlite", "aiosmtplib"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app_logger.debug(
        "Logging initialized",
        extra={"environment": settings.ENVIRONMENT, "json_logging": json_logs},
    )
    return app_logger


logger: CollegeSyncLogger = setup_logging()


__all__ = [
    'logger',
    'setup_logging',
    'get_request_id',
    'set_request_id',
    'get_user_id',
    'set_user_id',
    'generate_request_id',
    'CollegeSyncLogger',
    'JSONFormatter',
    'ContextualFormatter',
]
