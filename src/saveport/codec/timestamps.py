"""Timestamp normalization shared by the record and archive codecs.

Archives written by this package carry ISO-8601 UTC strings with millisecond
precision and a trailing ``"Z"`` (``"2026-10-17T13:03:00.104Z"``). Older
exports from the browser page used the JavaScript ``Date.toString()`` form
(``"Sat Oct 17 2026 13:03:00 GMT+0200 (Central European Summer Time)"``),
and stored records may carry epoch milliseconds; all three are accepted.
"""

from __future__ import annotations

from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any

from saveport.core.settings import get_logger

logger = get_logger(__name__)

_JS_DATE_FORMAT = "%a %b %d %Y %H:%M:%S GMT%z"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _parse_text(text: str) -> datetime | None:
    try:
        return _as_utc(datetime.fromisoformat(text))
    except ValueError:
        pass

    # Date.toString(): drop the parenthesised zone name
    head = text.split(" (", 1)[0].strip()
    try:
        return _as_utc(datetime.strptime(head, _JS_DATE_FORMAT))
    except ValueError:
        pass

    # Date.toUTCString() / RFC 2822
    try:
        return _as_utc(parsedate_to_datetime(text))
    except (TypeError, ValueError, IndexError):
        return None


def parse_timestamp(value: Any) -> datetime | None:
    """Return ``value`` as an aware UTC datetime, or ``None`` if unusable.

    Never raises: unparseable input is logged and reported as ``None`` so
    callers can substitute "now".
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return _as_utc(value)
    if isinstance(value, bool):
        logger.warning("Ignoring boolean timestamp %r", value)
        return None
    if isinstance(value, int | float):
        try:
            return datetime.fromtimestamp(value / 1000, tz=UTC)
        except (OverflowError, OSError, ValueError):
            logger.warning("Epoch timestamp out of range: %r", value)
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        parsed = _parse_text(text)
        if parsed is None:
            logger.warning("Unrecognized timestamp string: %r", value)
        return parsed

    logger.warning("Unsupported timestamp type: %s", type(value).__name__)
    return None


def format_timestamp(value: datetime) -> str:
    """Format ``value`` as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` in UTC."""
    utc = _as_utc(value)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


__all__ = ["format_timestamp", "parse_timestamp"]
