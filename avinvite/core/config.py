import os
from email.utils import getaddresses
from typing import List, Optional

from pydantic import BaseModel, Field

from avinvite.calendar.attendees import usable_email
from avinvite.calendar.types import Attendee


DEFAULT_RECIPIENT = "storm.ellis@hutchins.tas.edu.au"
DEFAULT_FALLBACK_ATTENDEES = "Storm Ellis <storm.ellis@hutchins.tas.edu.au>"
DEFAULT_SUBJECT = "Extracted AV Events from Email - Calendar Invites"
DEFAULT_BODY = "Please find attached the calendar events extracted from the email."


def parse_attendee_list(raw: str) -> List[Attendee]:
    """Parse a ``Name <email>, Name <email>`` list into attendees."""
    attendees: List[Attendee] = []
    for name, email in getaddresses([raw or ""]):
        email = usable_email(email)
        if email is None:
            continue
        attendees.append(Attendee(name=name or email, email=email))
    return attendees


class AppConfig(BaseModel):
    mail_driver: str = "console"
    smtp_host: Optional[str] = None
    smtp_port: Optional[int] = None
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_use_tls: bool = True
    sendgrid_api_key: Optional[str] = None
    default_sender: str = "av-invites@hutchins.tas.edu.au"
    invite_recipient: str = DEFAULT_RECIPIENT
    invite_subject: str = DEFAULT_SUBJECT
    invite_body: str = DEFAULT_BODY
    fallback_attendees: List[Attendee] = Field(default_factory=lambda: parse_attendee_list(DEFAULT_FALLBACK_ATTENDEES))
    timezone: str = "Australia/Hobart"
    date_mode: str = "zoned"
    ics_prodid: str = "-//Hutchins AV//AV Invite Mailer//EN"
    uid_domain: str = "hutchins.tas.edu.au"
    attachment_filename: str = "events.ics"
    llm_enabled: bool = False
    openai_api_key: Optional[str] = None
    llm_model: str = "gpt-4o-mini"
    llm_timeout_ms: int = 30000
    llm_base_url: str = "https://api.openai.com/v1"
    api_key: Optional[str] = None


def load_config() -> AppConfig:
    smtp_port_str = os.getenv("SMTP_PORT")
    smtp_port = int(smtp_port_str) if smtp_port_str and smtp_port_str.isdigit() else None
    timeout_str = os.getenv("LLM_TIMEOUT_MS", "30000")
    return AppConfig(
        mail_driver=os.getenv("MAIL_DRIVER", "console").lower(),
        smtp_host=os.getenv("SMTP_HOST"),
        smtp_port=smtp_port,
        smtp_username=os.getenv("SMTP_USERNAME"),
        smtp_password=os.getenv("SMTP_PASSWORD"),
        smtp_use_tls=os.getenv("SMTP_USE_TLS", "true").lower() == "true",
        sendgrid_api_key=os.getenv("SENDGRID_API_KEY"),
        default_sender=os.getenv("DEFAULT_SENDER", "av-invites@hutchins.tas.edu.au"),
        invite_recipient=os.getenv("INVITE_RECIPIENT", DEFAULT_RECIPIENT),
        invite_subject=os.getenv("INVITE_SUBJECT", DEFAULT_SUBJECT),
        invite_body=os.getenv("INVITE_BODY", DEFAULT_BODY),
        fallback_attendees=parse_attendee_list(os.getenv("FALLBACK_ATTENDEES", DEFAULT_FALLBACK_ATTENDEES)),
        timezone=os.getenv("CALENDAR_TIMEZONE", "Australia/Hobart"),
        date_mode=os.getenv("CALENDAR_DATE_MODE", "zoned").lower(),
        ics_prodid=os.getenv("ICS_PRODID", "-//Hutchins AV//AV Invite Mailer//EN"),
        uid_domain=os.getenv("UID_DOMAIN", "hutchins.tas.edu.au"),
        attachment_filename=os.getenv("ATTACHMENT_FILENAME", "events.ics"),
        llm_enabled=os.getenv("LLM_ENABLED", "false").lower() == "true",
        openai_api_key=os.getenv("OPENAI_API_KEY"),
        llm_model=os.getenv("LLM_MODEL", "gpt-4o-mini"),
        llm_timeout_ms=int(timeout_str) if timeout_str.isdigit() else 30000,
        llm_base_url=os.getenv("LLM_BASE_URL", "https://api.openai.com/v1"),
        api_key=os.getenv("API_KEY"),
    )
