"""Timestamp helpers shared by the sync engine."""

import uuid
from datetime import datetime, timezone

from dateutil import parser as date_parser

from models.models import utcnow

__all__ = ["utcnow", "iso_now", "to_millis", "now_millis", "parse_timestamp", "new_id"]


def iso_now() -> str:
    """Current UTC time as an ISO-8601 string with a ``Z`` suffix."""
    return utcnow().isoformat(timespec="milliseconds") + "Z"


def to_millis(dt: datetime) -> int:
    """Epoch milliseconds for a naive-UTC or aware datetime."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def now_millis() -> int:
    return to_millis(utcnow())


def parse_timestamp(value) -> int:
    """
    Convert a client timestamp to epoch milliseconds.

    Accepts epoch milliseconds (int/float or numeric string) and ISO-8601
    strings. Missing or unparseable values map to 0, i.e. "beginning of time".
    """
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    text = str(value).strip()
    if text.lstrip("-").isdigit():
        return int(text)
    try:
        return to_millis(date_parser.isoparse(text))
    except (ValueError, OverflowError):
        pass
    try:
        return to_millis(date_parser.parse(text))
    except (ValueError, OverflowError):
        return 0


def new_id() -> str:
    return str(uuid.uuid4())
