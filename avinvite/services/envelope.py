import uuid
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formatdate, make_msgid
from typing import Callable, Optional

from avinvite.core.models import DispatchResult, MailEnvelope
from avinvite.observability.logger import log_error
from avinvite.services.emailer import Emailer

BOUNDARY_PREFIX = "=_avinvite_"


def new_boundary() -> str:
    return f"{BOUNDARY_PREFIX}{uuid.uuid4().hex}"


def _pick_boundary(body_text: str, attachment_text: str, factory: Callable[[], str]) -> str:
    boundary = factory()
    while boundary in body_text or boundary in attachment_text:
        boundary = new_boundary()
    return boundary


def build_envelope(
    recipient: str,
    sender: str,
    subject: str,
    body_text: str,
    attachment_text: str,
    attachment_filename: str = "events.ics",
    boundary_factory: Optional[Callable[[], str]] = None,
) -> MailEnvelope:
    """
    Compose a multipart/mixed message: plain-text body plus the calendar file.

    Args:
        recipient: Destination address
        sender: From address
        subject: Message subject
        body_text: Plain-text body (part 1)
        attachment_text: Calendar document (part 2)
        attachment_filename: Attachment name, normally ending in .ics
        boundary_factory: Optional boundary source, defaults to a random token

    Returns:
        MailEnvelope carrying both the parts and the composed raw message
    """
    boundary = _pick_boundary(body_text, attachment_text, boundary_factory or new_boundary)

    message = MIMEMultipart("mixed", boundary=boundary)
    message["Subject"] = subject
    message["From"] = sender
    message["To"] = recipient
    message["Date"] = formatdate(localtime=False)
    message["Message-ID"] = make_msgid(domain=sender.rsplit("@", 1)[-1] if "@" in sender else None)

    message.attach(MIMEText(body_text, "plain", "utf-8"))

    calendar_part = MIMEText(attachment_text, "calendar", "utf-8")
    calendar_part.set_param("method", "PUBLISH")
    calendar_part.add_header("Content-Disposition", "attachment", filename=attachment_filename)
    message.attach(calendar_part)

    return MailEnvelope(
        recipient=recipient,
        sender=sender,
        subject=subject,
        body_text=body_text,
        attachment_text=attachment_text,
        attachment_filename=attachment_filename,
        boundary=boundary,
        raw=message.as_string(),
    )


def dispatch_envelope(envelope: MailEnvelope, emailer: Emailer) -> DispatchResult:
    """Hand the envelope to the transport once; failures are logged, never raised."""
    driver = getattr(emailer, "driver", "unknown")
    try:
        message_id = emailer.send(envelope)
    except Exception as exc:
        log_error(exc, {"stage": "dispatch", "driver": driver})
        return DispatchResult(sent=False, driver=driver, error=str(exc))
    return DispatchResult(sent=True, driver=driver, message_id=message_id)
