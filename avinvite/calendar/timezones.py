from typing import Dict, List

from avinvite.core.errors import ConfigError


# Eastern Australia: AEDT ends first Sunday of April 03:00, starts first Sunday of October 02:00.
_AUSTRALIA_EAST_RULES = [
    "BEGIN:STANDARD",
    "DTSTART:19700405T030000",
    "RRULE:FREQ=YEARLY;BYMONTH=4;BYDAY=1SU",
    "TZOFFSETFROM:+1100",
    "TZOFFSETTO:+1000",
    "TZNAME:AEST",
    "END:STANDARD",
    "BEGIN:DAYLIGHT",
    "DTSTART:19701004T020000",
    "RRULE:FREQ=YEARLY;BYMONTH=10;BYDAY=1SU",
    "TZOFFSETFROM:+1000",
    "TZOFFSETTO:+1100",
    "TZNAME:AEDT",
    "END:DAYLIGHT",
]

_US_EASTERN_RULES = [
    "BEGIN:STANDARD",
    "DTSTART:19701101T020000",
    "RRULE:FREQ=YEARLY;BYMONTH=11;BYDAY=1SU",
    "TZOFFSETFROM:-0400",
    "TZOFFSETTO:-0500",
    "TZNAME:EST",
    "END:STANDARD",
    "BEGIN:DAYLIGHT",
    "DTSTART:19700308T020000",
    "RRULE:FREQ=YEARLY;BYMONTH=3;BYDAY=2SU",
    "TZOFFSETFROM:-0500",
    "TZOFFSETTO:-0400",
    "TZNAME:EDT",
    "END:DAYLIGHT",
]

TIMEZONE_RULES: Dict[str, List[str]] = {
    "Australia/Hobart": _AUSTRALIA_EAST_RULES,
    "Australia/Sydney": _AUSTRALIA_EAST_RULES,
    "Australia/Melbourne": _AUSTRALIA_EAST_RULES,
    "America/New_York": _US_EASTERN_RULES,
}


def supported_timezones() -> List[str]:
    return sorted(TIMEZONE_RULES)


def vtimezone_lines(tzid: str) -> List[str]:
    """Return the VTIMEZONE block for ``tzid`` as content lines."""
    rules = TIMEZONE_RULES.get(tzid)
    if rules is None:
        raise ConfigError(
            f"Unsupported CALENDAR_TIMEZONE: {tzid} (supported: {', '.join(supported_timezones())})"
        )
    return ["BEGIN:VTIMEZONE", f"TZID:{tzid}", *rules, "END:VTIMEZONE"]
