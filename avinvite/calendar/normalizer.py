import json
import logging
from typing import Any, Dict, List, Optional

from avinvite.calendar.attendees import usable_email
from avinvite.calendar.types import (
    AV_BRIEF_DESCRIPTION_KEY,
    AV_OTHER_KEY,
    AV_REQUEST_LOCATION_KEY,
    AV_REQUIREMENTS_KEY,
    DEFAULT_TITLE,
    Attendee,
    EventRecord,
)
from avinvite.core.errors import ExtractionParseError
from avinvite.core.models import NormalizeResult
from avinvite.observability.logger import log_warning

logger = logging.getLogger(__name__)

# Extraction key -> EventRecord field for the plain text fields.
_TEXT_FIELDS = {
    "start": "start",
    "end": "end",
    "location": "location",
    "description": "description",
    AV_REQUEST_LOCATION_KEY: "av_request_location",
    AV_REQUIREMENTS_KEY: "av_requirements",
    AV_BRIEF_DESCRIPTION_KEY: "av_brief_description",
    AV_OTHER_KEY: "av_other",
}


def parse_extraction_text(raw_text: str) -> List[Any]:
    """
    Decode extraction output that should hold a JSON array.

    Raises:
        ExtractionParseError: if the text is not JSON or not an array
    """
    try:
        data = json.loads(raw_text)
    except (TypeError, ValueError) as exc:
        raise ExtractionParseError(f"Extraction output is not valid JSON: {exc}", raw_text or "") from exc
    if not isinstance(data, list):
        raise ExtractionParseError(
            f"Extraction output is a JSON {type(data).__name__}, expected an array", raw_text
        )
    return data


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def _parse_attendees(raw_list: Any) -> Optional[List[Attendee]]:
    if not isinstance(raw_list, list):
        return None
    attendees: List[Attendee] = []
    for entry in raw_list:
        if not isinstance(entry, dict):
            logger.debug(f"Skipping non-object attendee entry: {entry!r}")
            continue
        email = usable_email(_as_text(entry.get("email")))
        if email is None:
            logger.debug(f"Skipping attendee without a usable email: {entry!r}")
            continue
        attendees.append(Attendee(name=_as_text(entry.get("name")) or "", email=email))
    return attendees


def normalize_event(raw: Any) -> EventRecord:
    """Build one EventRecord from an untrusted array element."""
    if not isinstance(raw, dict):
        return EventRecord()

    title = _as_text(raw.get("title"))
    fields: Dict[str, Any] = {"title": DEFAULT_TITLE if title is None else title}
    for key, field_name in _TEXT_FIELDS.items():
        fields[field_name] = _as_text(raw.get(key))
    fields["attendees"] = _parse_attendees(raw.get("attendees"))
    return EventRecord(**fields)


def normalize_events(raw_text: str) -> NormalizeResult:
    """
    Turn extraction output into validated event records.

    A parse failure discards the whole batch; individual elements are never
    rejected, so N array elements always yield N records in the same order.
    """
    try:
        items = parse_extraction_text(raw_text)
    except ExtractionParseError as exc:
        preview = (exc.raw_text or "")[:200]
        log_warning("Failed to parse extraction output", {"error": str(exc), "raw_preview": preview})
        return NormalizeResult(status="parse_error", error=str(exc))

    if not items:
        log_warning("No events extracted from email")
        return NormalizeResult(status="empty")

    events = [normalize_event(item) for item in items]
    return NormalizeResult(status="ok", events=events)
