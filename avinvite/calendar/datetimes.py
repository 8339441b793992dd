import logging
import re
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from avinvite.calendar.timezones import TIMEZONE_RULES
from avinvite.core.errors import ConfigError, FieldFormatError

logger = logging.getLogger(__name__)

ZONED = "zoned"
UTC = "utc"
DATE_MODES = (ZONED, UTC)

_ICS_LOCAL_FORMAT = "%Y%m%dT%H%M%S"
_ICS_UTC_FORMAT = "%Y%m%dT%H%M%SZ"

# Trailing "Z", "+10:00", "-0500" or "+10".
_TZ_SUFFIX_RE = re.compile(r"(?:[Zz]|[+-]\d{2}(?::?\d{2})?)$")


def strip_tz_suffix(value: str) -> str:
    """Drop a trailing UTC designator or numeric offset, keeping wall-clock text."""
    text = value.strip()
    # Only strip after the time part so a bare date like 2025-06-30 stays intact.
    if "T" not in text.upper() and " " not in text:
        return text
    return _TZ_SUFFIX_RE.sub("", text)


def parse_iso(value: Optional[str]) -> datetime:
    """Parse an ISO-8601-ish string, raising FieldFormatError on failure."""
    if value is None or not str(value).strip():
        raise FieldFormatError("" if value is None else str(value), "empty date/time")
    text = str(value).strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError as exc:
        raise FieldFormatError(str(value)) from exc


def format_utc_stamp(moment: Optional[datetime] = None) -> str:
    """Render an instant as a UTC iCalendar date-time (used for DTSTAMP)."""
    moment = moment or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime(_ICS_UTC_FORMAT)


class DateFormatter:
    """
    Formats start/end values for one calendar document.

    ``zoned`` mode keeps the wall-clock digits and tags them with ``tzid``;
    ``utc`` mode converts to an absolute UTC instant with a ``Z`` marker.
    """

    def __init__(self, mode: str = ZONED, tzid: str = "Australia/Hobart"):
        mode = (mode or ZONED).lower()
        if mode not in DATE_MODES:
            raise ConfigError(f"Unsupported CALENDAR_DATE_MODE: {mode} (expected one of {', '.join(DATE_MODES)})")
        if mode == ZONED and tzid not in TIMEZONE_RULES:
            raise ConfigError(f"Unsupported CALENDAR_TIMEZONE: {tzid}")
        self.mode = mode
        self.tzid = tzid
        try:
            self._zone = ZoneInfo(tzid)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ConfigError(f"Unknown timezone: {tzid}") from exc

    @property
    def is_zoned(self) -> bool:
        return self.mode == ZONED

    def property_params(self) -> str:
        """Parameter suffix for DTSTART/DTEND, e.g. ``;TZID=Australia/Hobart``."""
        return f";TZID={self.tzid}" if self.is_zoned else ""

    def format(self, value: Optional[str]) -> str:
        """
        Format a start/end value, returning "" when it cannot be parsed.

        Args:
            value: ISO-8601-ish date/time text from an event record

        Returns:
            iCalendar date-time text for the active mode, or "" on failure
        """
        try:
            if self.is_zoned:
                return self._format_zoned(value)
            return self._format_utc(value)
        except FieldFormatError as exc:
            logger.debug(f"Emitting empty date/time property: {exc}")
            return ""

    def _format_zoned(self, value: Optional[str]) -> str:
        if value is None:
            raise FieldFormatError("", "empty date/time")
        parsed = parse_iso(strip_tz_suffix(str(value)))
        return parsed.replace(tzinfo=None).strftime(_ICS_LOCAL_FORMAT)

    def _format_utc(self, value: Optional[str]) -> str:
        parsed = parse_iso(value)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=self._zone)
        return parsed.astimezone(timezone.utc).strftime(_ICS_UTC_FORMAT)
