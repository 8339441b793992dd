import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence

from avinvite.calendar.attendees import attendee_line, resolve_attendees
from avinvite.calendar.datetimes import DateFormatter, format_utc_stamp
from avinvite.calendar.escaping import escape_text
from avinvite.calendar.timezones import vtimezone_lines
from avinvite.calendar.types import (
    AV_BRIEF_DESCRIPTION_KEY,
    AV_OTHER_KEY,
    AV_REQUEST_LOCATION_KEY,
    AV_REQUIREMENTS_KEY,
    Attendee,
    EventRecord,
)
from avinvite.core.config import AppConfig

CRLF = "\r\n"
REMINDER_TRIGGER = "-PT30M"
REMINDER_TEXT = "Reminder"
DESCRIPTION_LABEL = "Description:"

ALARM_LINES = [
    "BEGIN:VALARM",
    f"TRIGGER:{REMINDER_TRIGGER}",
    "ACTION:DISPLAY",
    f"DESCRIPTION:{REMINDER_TEXT}",
    "END:VALARM",
]


class VEventLines:
    """
    Collects the properties of one VEVENT and emits them in a fixed order.

    Properties may be set in any order; ``lines()`` always renders
    UID, DTSTAMP, DTSTART, DTEND, SUMMARY, LOCATION, DESCRIPTION,
    then attendees and the alarm.
    """

    PROPERTY_ORDER = ("UID", "DTSTAMP", "DTSTART", "DTEND", "SUMMARY", "LOCATION", "DESCRIPTION")

    def __init__(self) -> None:
        self._props: Dict[str, str] = {}
        self._attendees: List[str] = []

    def set(self, name: str, value: str, params: str = "") -> "VEventLines":
        if name not in self.PROPERTY_ORDER:
            raise KeyError(f"Unsupported VEVENT property: {name}")
        self._props[name] = f"{name}{params}:{value}"
        return self

    def add_attendee(self, line: str) -> "VEventLines":
        self._attendees.append(line)
        return self

    def lines(self) -> List[str]:
        missing = [name for name in self.PROPERTY_ORDER if name not in self._props]
        if missing:
            raise ValueError(f"VEVENT missing properties: {', '.join(missing)}")
        return [
            "BEGIN:VEVENT",
            *(self._props[name] for name in self.PROPERTY_ORDER),
            *self._attendees,
            *ALARM_LINES,
            "END:VEVENT",
        ]


def composite_description(event: EventRecord) -> str:
    """Join the AV annotations and free-text description, labels first, unescaped."""
    parts = [
        (AV_REQUEST_LOCATION_KEY, event.av_request_location),
        (AV_REQUIREMENTS_KEY, event.av_requirements),
        (AV_BRIEF_DESCRIPTION_KEY, event.av_brief_description),
        (AV_OTHER_KEY, event.av_other),
        (DESCRIPTION_LABEL, event.description),
    ]
    return "\n".join(f"{label} {value}" if value else label for label, value in parts)


def _new_uid_token() -> str:
    return uuid.uuid4().hex


class CalendarBuilder:
    """Builds one VCALENDAR document from a batch of event records."""

    def __init__(
        self,
        formatter: DateFormatter,
        fallback_attendees: Sequence[Attendee] = (),
        prodid: str = "-//Hutchins AV//AV Invite Mailer//EN",
        uid_domain: str = "hutchins.tas.edu.au",
        uid_factory: Optional[Callable[[], str]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.formatter = formatter
        self.fallback_attendees = list(fallback_attendees)
        self.prodid = prodid
        self.uid_domain = uid_domain
        self._uid_factory = uid_factory or _new_uid_token
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @classmethod
    def from_config(cls, config: AppConfig) -> "CalendarBuilder":
        return cls(
            formatter=DateFormatter(mode=config.date_mode, tzid=config.timezone),
            fallback_attendees=config.fallback_attendees,
            prodid=config.ics_prodid,
            uid_domain=config.uid_domain,
        )

    def header_lines(self) -> List[str]:
        lines = [
            "BEGIN:VCALENDAR",
            "VERSION:2.0",
            f"PRODID:{self.prodid}",
            "CALSCALE:GREGORIAN",
        ]
        if self.formatter.is_zoned:
            lines.extend(vtimezone_lines(self.formatter.tzid))
        return lines

    def event_lines(self, event: EventRecord, uid: str, stamp: str) -> List[str]:
        params = self.formatter.property_params()
        block = VEventLines()
        block.set("UID", uid)
        block.set("DTSTAMP", stamp)
        block.set("DTSTART", self.formatter.format(event.start), params)
        block.set("DTEND", self.formatter.format(event.end), params)
        block.set("SUMMARY", escape_text(event.title))
        block.set("LOCATION", escape_text(event.location))
        block.set("DESCRIPTION", escape_text(composite_description(event)))
        for attendee in resolve_attendees(event.attendees, self.fallback_attendees):
            block.add_attendee(attendee_line(attendee))
        return block.lines()

    def _unique_uid(self, seen: set) -> str:
        uid = f"{self._uid_factory()}@{self.uid_domain}"
        while uid in seen:
            uid = f"{_new_uid_token()}@{self.uid_domain}"
        seen.add(uid)
        return uid

    def build(self, events: Sequence[EventRecord]) -> str:
        """
        Render the full calendar document.

        Events keep their input order and are never merged, so N records
        produce exactly N VEVENT blocks. Lines are CRLF-terminated.
        """
        lines = self.header_lines()
        seen_uids: set = set()
        for event in events:
            stamp = format_utc_stamp(self._clock())
            lines.extend(self.event_lines(event, self._unique_uid(seen_uids), stamp))
        lines.append("END:VCALENDAR")
        return CRLF.join(lines) + CRLF


def build_calendar(events: Sequence[EventRecord], config: AppConfig) -> str:
    return CalendarBuilder.from_config(config).build(events)
