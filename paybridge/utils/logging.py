"""
JSON log lines for the bridge, one object per line on stderr.

A webhook delivery, the UISP POST it triggers and the mirror/refresh tasks it
spawns all carry the same correlation_id. The ID is also stored on the
webhook_logs row, so an audit entry can be matched to its log lines.
"""
import json
import logging
import re
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

correlation_id_ctx: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Record attributes promoted to top-level keys when passed via extra=
EXTRA_FIELDS = ("transaction_id", "client_id", "customer_id", "source", "error_code")

# webhook_logs.correlation_id is String(64)
_INBOUND_ID = re.compile(r"^[A-Za-z0-9._:-]{1,64}$")


def get_correlation_id() -> Optional[str]:
    return correlation_id_ctx.get()


def set_correlation_id(cid: str) -> None:
    correlation_id_ctx.set(cid)


def generate_correlation_id() -> str:
    return uuid.uuid4().hex


def bind_correlation_id(inbound: Optional[str] = None) -> str:
    """
    Use the caller's X-Correlation-ID when it is a short token, otherwise mint one.
    The chosen ID is set on the current context and returned.
    """
    cid = inbound.strip() if inbound else ""
    if not _INBOUND_ID.match(cid):
        cid = generate_correlation_id()
    set_correlation_id(cid)
    return cid


class StructuredJsonFormatter(logging.Formatter):
    """
    {"timestamp", "level", "env", "correlation_id", "module", "message", ...extras}
    """

    def __init__(self, app_env: Optional[str] = None):
        super().__init__()
        self.app_env = app_env

    def format(self, record: logging.LogRecord) -> str:
        emitted = datetime.fromtimestamp(record.created, tz=timezone.utc)
        log_entry = {
            "timestamp": emitted.strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "level": record.levelname,
            "correlation_id": get_correlation_id(),
            "module": record.name,
            "message": record.getMessage(),
        }
        if self.app_env:
            log_entry["env"] = self.app_env

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        for key in EXTRA_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                log_entry[key] = val

        return json.dumps(log_entry, default=str)


def configure_structured_logging(log_level: str = "INFO", app_env: Optional[str] = None) -> None:
    """Install the JSON formatter on the root logger. Safe to call again from create_app."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(StructuredJsonFormatter(app_env))
    root_logger.addHandler(stream_handler)

    # httpx logs every UISP/Splynx/Convex request URL at INFO
    for noisy in ("uvicorn.access", "sqlalchemy.engine", "httpcore", "httpx"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
