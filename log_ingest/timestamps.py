"""Timestamp derivation for sanitized log documents.

All instants are timezone-aware UTC datetimes; durations and epoch values are
milliseconds unless the field says otherwise.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from log_ingest.sanitizer import is_number, resolve_path

logger = logging.getLogger(__name__)

MILLIS_PER_SECOND = 1000

# Paths after the reserved prefix has been stripped.
CLUSTER_TIME_SECONDS_PATH = ("attr", "command", "clusterTime", "clusterTime", "timestamp", "t")
DURATION_MILLIS_PATH = ("attr", "durationMillis")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def from_epoch_millis(millis: float) -> Optional[datetime]:
    try:
        return _EPOCH + timedelta(milliseconds=millis)
    except (OverflowError, ValueError):
        return None


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse a log date value; ``None`` when it is not a valid instant.

    Accepts ISO-8601 strings (naive values are read as UTC), epoch
    milliseconds, and extended-JSON ``{"numberLong": "..."}`` wrappers.
    """
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.debug("Unparseable timestamp %r", value)
            return None
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    if is_number(value):
        return from_epoch_millis(value)
    if isinstance(value, dict) and "numberLong" in value:
        try:
            return from_epoch_millis(int(value["numberLong"]))
        except (TypeError, ValueError):
            return None
    return None


def derive_log_timestamp(doc: dict) -> Optional[datetime]:
    """Read ``t.date`` (originally ``t.$date``), or ``t`` when it is a bare string."""
    t = doc.get("t")
    if isinstance(t, dict) and t.get("date"):
        return parse_datetime(t["date"])
    if isinstance(t, str) and t:
        return parse_datetime(t)
    return None


def derive_query_start_time(doc: dict, log_timestamp: Optional[datetime]) -> Optional[datetime]:
    """First match wins: cluster time seconds, log time minus duration, log time."""
    seconds = resolve_path(doc, CLUSTER_TIME_SECONDS_PATH)
    if is_number(seconds) and seconds:
        start = from_epoch_millis(seconds * MILLIS_PER_SECOND)
        if start is not None:
            return start

    duration = resolve_path(doc, DURATION_MILLIS_PATH)
    if log_timestamp is not None and is_number(duration) and duration:
        try:
            return log_timestamp - timedelta(milliseconds=duration)
        except (OverflowError, ValueError):
            return log_timestamp

    return log_timestamp
