"""Structured Logger with JSON Formatting.

Provides structured logging with JSON output for machine-readable logs.
Connection secrets never reach the log stream: any context key listed in
SENSITIVE_KEYS is dropped before serialization.
"""

import contextvars
import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

SENSITIVE_KEYS = frozenset({
    'password',
    'token',
    'connection_info',
    'connectionInfo',
    'encryption_key',
    'secret',
})

NO_REQUEST_ID = 'no-request-id'

# Propagates through awaits and asyncio.to_thread calls
_request_id: contextvars.ContextVar[str] = contextvars.ContextVar('request_id', default=NO_REQUEST_ID)


def get_request_id() -> str:
    """Request ID bound to the current context, or NO_REQUEST_ID."""
    return _request_id.get()


def bind_request_id(request_id: Optional[str] = None) -> str:
    """Bind a request ID to the current context, generating a UUID if none is given.

    The HTTP middleware passes the incoming X-Correlation-ID header; CLI
    commands call it without arguments.

    Returns:
        The bound request ID
    """
    request_id = request_id or str(uuid4())
    _request_id.set(request_id)
    return request_id


def reset_request_id() -> None:
    _request_id.set(NO_REQUEST_ID)


# Attributes present on every LogRecord; anything else came in through `extra`
_RESERVED_RECORD_ATTRS = frozenset(vars(logging.LogRecord('', 0, '', 0, '', None, None)).keys()) | {
    'message',
    'asctime',
    'taskName',
}


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')


def scrub(context: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of context without sensitive keys."""
    return {key: value for key, value in context.items() if key not in SENSITIVE_KEYS}


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON-formatted log string
        """
        log_data = {
            'timestamp': _utc_timestamp(),
            'level': record.levelname,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'request_id': get_request_id(),
        }

        # Everything passed through `extra=` (api_id, duration_ms, endpoint, ...)
        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_RECORD_ATTRS and not key.startswith('_')
        }
        log_data.update(scrub(extra))

        if record.exc_info:
            log_data['exception'] = {
                'type': record.exc_info[0].__name__ if record.exc_info[0] else None,
                'message': str(record.exc_info[1]) if record.exc_info[1] else None,
            }

        return json.dumps(log_data, default=str)


class StructuredLogger:
    """Structured logger with JSON formatting.

    Usage:
        logger = StructuredLogger(__name__)
        logger.info("API registered", api_id=api.id, table_name="users")
        logger.error("Query failed", exc_info=True, api_id=api.id)
    """

    def __init__(self, name: str):
        """Initialize structured logger.

        Args:
            name: Logger name (typically module name)
        """
        self.logger = logging.getLogger(name)

        log_level = os.getenv('LOG_LEVEL', 'INFO').upper()
        level = getattr(logging, log_level, logging.INFO)
        self.logger.setLevel(level)

        # Remove existing handlers to avoid duplicates
        self.logger.handlers.clear()

        handler = logging.StreamHandler()
        handler.setFormatter(JSONFormatter())
        self.logger.addHandler(handler)

        # Keep propagation on so pytest's caplog sees records; the root logger
        # has no handler of its own in the app process.
        self.logger.propagate = True

    def info(self, message: str, **extra: Any) -> None:
        """Log INFO level message.

        Args:
            message: Log message
            **extra: Additional context (api_id, duration_ms, etc.)
        """
        self.logger.info(message, extra=scrub(extra))

    def warning(self, message: str, exc_info: bool = False, **extra: Any) -> None:
        """Log WARNING level message."""
        self.logger.warning(message, exc_info=exc_info, extra=scrub(extra))

    def error(self, message: str, exc_info: bool = False, **extra: Any) -> None:
        """Log ERROR level message.

        Args:
            message: Log message
            exc_info: Include exception traceback
            **extra: Additional context
        """
        self.logger.error(message, exc_info=exc_info, extra=scrub(extra))

    def debug(self, message: str, **extra: Any) -> None:
        self.logger.debug(message, extra=scrub(extra))


def log_request(endpoint: str, method: str, status_code: int, duration_ms: float) -> None:
    """Log API request with performance metrics.

    Args:
        endpoint: API endpoint path
        method: HTTP method
        status_code: HTTP status code
        duration_ms: Request duration in milliseconds
    """
    log_data = {
        'timestamp': _utc_timestamp(),
        'level': 'INFO',
        'message': f'{method} {endpoint}',
        'request_id': get_request_id(),
        'endpoint': endpoint,
        'method': method,
        'status_code': status_code,
        'duration_ms': duration_ms,
    }
    print(json.dumps(log_data))


def log_event(event: str, level: str = 'INFO', context: Optional[Dict[str, Any]] = None) -> None:
    """Event-based logging without creating a logger instance.

    Sensitive keys are filtered and the correlation ID is attached.

    Args:
        event: Event name (e.g., "repository.api_created", "vulcan.endpoint_registered")
        level: Log level (INFO, WARNING, ERROR, DEBUG)
        context: Additional context dictionary

    Example:
        log_event("repository.api_deleted", context={"api_id": api_id})
    """
    log_entry = {
        'timestamp': _utc_timestamp(),
        'level': level.upper(),
        'event': event,
        'correlation_id': get_request_id(),
        **scrub(context or {}),
    }
    print(json.dumps(log_entry, default=str))


logger = StructuredLogger(__name__)
