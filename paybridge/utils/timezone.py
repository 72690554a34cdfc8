"""
Timestamp helpers for Splynx input and UISP output.
Splynx sends "YYYY-MM-DD HH:MM:SS" or ISO-8601; UISP wants Y-m-d\\TH:i:sO at a fixed offset.
"""
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

logger = logging.getLogger(__name__)

UISP_DATETIME_FORMAT = "%Y-%m-%dT%H:%M:%S%z"
EPOCH_PATTERN = re.compile(r"^\d{9,}(\.\d+)?$")  # 8 digits would be an ISO basic date


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_source_timestamp(value: Union[str, int, float, datetime, None]) -> Optional[datetime]:
    """
    Parse a Splynx timestamp into an aware UTC datetime.
    Naive values are taken as UTC. Returns None for empty or unparseable input.
    """
    if value is None or value == "":
        return None

    if isinstance(value, str) and EPOCH_PATTERN.match(value.strip()):
        # Numeric epochs arrive as strings once the payload schema coerces them
        value = float(value.strip())

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        # Epoch seconds, or milliseconds from JS-style senders
        seconds = value / 1000 if value > 10_000_000_000 else value
        parsed = datetime.fromtimestamp(seconds, tz=timezone.utc)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.warning("Unparseable Splynx timestamp: %r", value)
            return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_uisp_datetime(value: Optional[datetime], utc_offset_hours: int) -> str:
    """
    Render a datetime in UISP wall-clock format with a fixed offset,
    e.g. 2025-12-14T23:48:29+03:00. Falls back to now when value is None.
    """
    moment = value or utc_now()
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    local = moment.astimezone(timezone(timedelta(hours=utc_offset_hours)))
    rendered = local.strftime(UISP_DATETIME_FORMAT)
    # UISP documents +03:00, strftime gives +0300
    return f"{rendered[:-2]}:{rendered[-2:]}"
