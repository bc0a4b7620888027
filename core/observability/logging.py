"""
Structured Logging for Sync Passes and Approval Batches

Every log line emitted through `get_logger` carries the correlation fields
active at the call site:

- user_id: local user the work runs for
- sync_id: one synchronization pass
- batch_id: one approval batch
- transaction_type: DIA transaction category
- dia_record_id: canonical record identity, e.g. "invoice_100"
- action: approve / reject / analyze

Usage:
    from core.observability.logging import get_logger, with_correlation

    logger = get_logger(__name__)

    with with_correlation(user_id="u-1", sync_id="sync-123"):
        logger.info("Fetched invoice page", extra_fields={"rows": 500})
"""

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, fields, replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional


# =============================================================================
# Correlation Context
# =============================================================================

@dataclass(frozen=True)
class CorrelationContext:
    """Identifiers attached to every log line inside a `with_correlation` block."""
    user_id: Optional[str] = None
    sync_id: Optional[str] = None
    batch_id: Optional[str] = None
    transaction_type: Optional[str] = None
    dia_record_id: Optional[str] = None
    action: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        values = ((f.name, getattr(self, f.name)) for f in fields(self))
        return {name: value for name, value in values if value is not None}

    def merge(self, **kwargs) -> "CorrelationContext":
        return replace(self, **{k: v for k, v in kwargs.items() if v is not None})

    def label(self) -> str:
        """Short tag for human-readable lines: user/sync/batch/rec:id."""
        parts = [p for p in (self.user_id, self.sync_id, self.batch_id) if p]
        if self.dia_record_id:
            parts.append(f"rec:{self.dia_record_id}")
        return "/".join(parts) or "-"


_current: ContextVar[CorrelationContext] = ContextVar(
    "dia_correlation", default=CorrelationContext(),
)


def get_correlation_context() -> CorrelationContext:
    return _current.get()


@contextmanager
def with_correlation(**kwargs) -> Iterator[CorrelationContext]:
    """Layer correlation fields over the enclosing ones for the block.

    Nested blocks add to the outer context; leaving a block restores it.
    Works across `await` since the state lives in a ContextVar.
    """
    token = _current.set(_current.get().merge(**kwargs))
    try:
        yield _current.get()
    finally:
        _current.reset(token)


# =============================================================================
# Payload Redaction
# =============================================================================

REDACTED_KEYS = frozenset({"session_id", "password", "apikey", "api_key", "ws_sifre"})
REDACTED = "***"


def redact_payload(payload: Any) -> Any:
    """Copy a DIA request or response body with secrets masked at any depth.

    Empty secret values are left as they are. The login response carries the
    new session id in `msg`, so the session manager never logs that body.
    """
    if isinstance(payload, list):
        return [redact_payload(item) for item in payload]
    if not isinstance(payload, dict):
        return payload

    masked = {}
    for key, value in payload.items():
        if key in REDACTED_KEYS and value:
            masked[key] = REDACTED
        else:
            masked[key] = redact_payload(value)
    return masked


# =============================================================================
# Formatters
# =============================================================================

def _record_context(record: logging.LogRecord) -> CorrelationContext:
    # Records from third-party loggers have no snapshot; use the live context.
    return getattr(record, "correlation", None) or get_correlation_context()


def _record_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return getattr(record, "extra_fields", None) or {}


class StructuredFormatter(logging.Formatter):
    """
    One JSON object per line, for log shippers.

    {"timestamp": "2024-03-01T09:00:00.120000+00:00", "level": "INFO",
     "logger": "sync_engine.engine", "message": "Fetched invoice page",
     "user_id": "u-1", "sync_id": "sync-123", "rows": 500}
    """

    def format(self, record: logging.LogRecord) -> str:
        line: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_record_context(record).to_dict(),
            **_record_fields(record),
        }
        if record.exc_info:
            line["exception"] = self.formatException(record.exc_info)
        return json.dumps(line, ensure_ascii=False, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Console format for local runs.

    2024-03-01 09:00:00 WARNING approval_dispatcher.dispatcher [u-1/rec:invoice_100] DIA rejected update
    """

    default_time_format = "%Y-%m-%d %H:%M:%S"

    def format(self, record: logging.LogRecord) -> str:
        text = "{} {:<7} {} [{}] {}".format(
            self.formatTime(record),
            record.levelname,
            record.name,
            _record_context(record).label(),
            record.getMessage(),
        )
        extra = _record_fields(record)
        if extra:
            text = f"{text} {json.dumps(extra, ensure_ascii=False, default=str)}"
        if record.exc_info:
            text = f"{text}\n{self.formatException(record.exc_info)}"
        return text


# =============================================================================
# Logger
# =============================================================================

class CorrelatedLogger(logging.LoggerAdapter):
    """
    Adapter that snapshots the correlation context onto each record.

    Accepts `extra_fields={...}` on any logging call; those keys are merged
    into the formatted output next to the correlation fields.
    """

    def __init__(self, logger: logging.Logger):
        super().__init__(logger, {})

    @property
    def name(self) -> str:
        return self.logger.name

    def process(self, msg, kwargs):
        extra = dict(kwargs.get("extra") or {})
        extra["extra_fields"] = kwargs.pop("extra_fields", None) or {}
        extra["correlation"] = get_correlation_context()
        kwargs["extra"] = extra
        return msg, kwargs


# =============================================================================
# Setup
# =============================================================================

APP_LOGGERS = (
    "activities", "workflows", "api", "core", "connectors",
    "sync_engine", "approval_dispatcher", "notifications", "storage",
)

_adapters: Dict[str, CorrelatedLogger] = {}
_handler: Optional[logging.Handler] = None


def configure_logging(level: int = logging.INFO, json_format: bool = False) -> None:
    """
    Install the stdout handler on the root logger. Later calls are no-ops.

    Args:
        level: Level for the root logger and the application packages
        json_format: Emit JSON lines instead of the console format
    """
    global _handler
    if _handler is not None:
        return

    _handler = logging.StreamHandler(sys.stdout)
    _handler.setFormatter(StructuredFormatter() if json_format else HumanReadableFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.addHandler(_handler)
    for name in APP_LOGGERS:
        logging.getLogger(name).setLevel(level)

    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("temporalio").setLevel(max(level, logging.INFO))


def get_logger(name: str) -> CorrelatedLogger:
    """Return the shared adapter for `name`, configuring logging from settings on first use."""
    if _handler is None:
        from core.config import get_settings

        settings = get_settings()
        configure_logging(level=settings.log_level_value, json_format=settings.log_json)

    adapter = _adapters.get(name)
    if adapter is None:
        adapter = _adapters[name] = CorrelatedLogger(logging.getLogger(name))
    return adapter
