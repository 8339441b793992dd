import logging
import re
from typing import Dict, List, Optional, Sequence

from email_validator import EmailNotValidError, validate_email

from avinvite.calendar.types import Attendee

logger = logging.getLogger(__name__)

_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")
# Characters that end an unquoted parameter value.
_PARAM_SPECIALS = (":", ";", ",")


def usable_email(value: Optional[str]) -> Optional[str]:
    """
    Return the trimmed address if it is safe to place after ``mailto:``.

    Syntax is checked with email-validator; deliverability and the
    special-use domain rule are not, so addresses like ``desk@av.local``
    are kept. Anything with whitespace or control characters is rejected.
    """
    if not value:
        return None
    email = value.strip()
    if not email or _CONTROL_RE.search(email) or any(ch.isspace() for ch in email):
        return None
    try:
        validate_email(email, check_deliverability=False, globally_deliverable=False)
    except EmailNotValidError:
        return None
    return email


def resolve_attendees(explicit: Optional[Sequence[Attendee]], fallback: Sequence[Attendee]) -> List[Attendee]:
    """
    Merge an event's attendees with the fallback set.

    Explicit attendees are inserted first, in order, keyed by lower-cased
    email; fallback attendees are added only when their key is unseen.
    The first entry for an address wins, so explicit names are kept.
    """
    merged: Dict[str, Attendee] = {}
    for attendee in list(explicit or []) + list(fallback):
        if usable_email(attendee.email) is None:
            logger.debug(f"Dropping attendee with unusable address: {attendee.email!r}")
            continue
        key = attendee.key
        if key in merged:
            continue
        merged[key] = attendee
    return list(merged.values())


def param_value(value: str) -> str:
    """Render a property parameter value, quoting it when it holds : ; or ,"""
    cleaned = _CONTROL_RE.sub("", value).replace('"', "")
    if any(ch in cleaned for ch in _PARAM_SPECIALS):
        return f'"{cleaned}"'
    return cleaned


def attendee_line(attendee: Attendee) -> str:
    """Render a non-blocking ATTENDEE property (no RSVP required)."""
    email = usable_email(attendee.email)
    if email is None:
        raise ValueError(f"Attendee address cannot be rendered: {attendee.email!r}")
    name = param_value(attendee.name or email)
    return (
        f"ATTENDEE;CN={name};ROLE=REQ-PARTICIPANT;PARTSTAT=NEEDS-ACTION;RSVP=FALSE"
        f":mailto:{email}"
    )
