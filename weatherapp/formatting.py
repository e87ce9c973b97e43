"""
Pure mapping helpers: WMO weather codes and forecast date labels.

None of these functions raise on bad input; unknown codes map to "Unknown"
and unparseable timestamps are passed through unchanged.
"""
from __future__ import annotations

import logging
from datetime import datetime

from .const import UNKNOWN_CONDITION, UNKNOWN_EMOJI, WMO_CONDITIONS, WMO_EMOJI

_LOGGER = logging.getLogger(__name__)

DATE_INPUT_FORMAT = "%Y-%m-%d"
DATETIME_INPUT_FORMAT = "%Y-%m-%dT%H:%M"


def _is_code(code) -> bool:
    # bool is an int subclass but never a weather code
    return isinstance(code, int) and not isinstance(code, bool)


def condition_from_code(code) -> str:
    """Return the condition label for a WMO weather code."""
    return WMO_CONDITIONS.get(code, UNKNOWN_CONDITION) if _is_code(code) else UNKNOWN_CONDITION


def emoji_from_code(code) -> str:
    """Return the emoji glyph for a WMO weather code."""
    return WMO_EMOJI.get(code, UNKNOWN_EMOJI) if _is_code(code) else UNKNOWN_EMOJI


def format_date(value: str) -> str:
    """2024-01-15 → 'Mon, Jan 15' (weekday and month names follow the current locale)."""
    try:
        parsed = datetime.strptime(value, DATE_INPUT_FORMAT)
    except (TypeError, ValueError):
        _LOGGER.debug("Could not parse date %r, passing it through", value)
        return value
    return f"{parsed:%a, %b} {parsed.day}"


def format_date_time(value: str) -> str:
    """2024-01-15T14:00 → 'Jan 15, 14:00'."""
    try:
        parsed = datetime.strptime(value, DATETIME_INPUT_FORMAT)
    except (TypeError, ValueError):
        _LOGGER.debug("Could not parse timestamp %r, passing it through", value)
        return value
    return f"{parsed:%b} {parsed.day}, {parsed:%H:%M}"


def format_hour(value: str) -> str:
    """2024-01-15T14:00 → '14:00'."""
    try:
        parsed = datetime.strptime(value, DATETIME_INPUT_FORMAT)
    except (TypeError, ValueError):
        return value
    return f"{parsed:%H:%M}"
