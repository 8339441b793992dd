from typing import Literal, Optional

from pydantic import BaseModel


class InboundEmailResponse(BaseModel):
    ok: bool = True
    status: Literal["sent", "send_failed", "no_events", "parse_error", "extraction_failed", "build_failed"]
    event_count: int = 0
    recipient: Optional[str] = None
    subject: Optional[str] = None
    message_id: Optional[str] = None
    driver: Literal["console", "smtp", "sendgrid"]
    error: Optional[str] = None
