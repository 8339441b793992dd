from typing import List, Literal, Optional

from pydantic import BaseModel

from avinvite.calendar.types import EventRecord


class NormalizeResult(BaseModel):
    status: Literal["ok", "empty", "parse_error"]
    events: List[EventRecord] = []
    error: Optional[str] = None

    @property
    def has_events(self) -> bool:
        return bool(self.events)


class MailEnvelope(BaseModel):
    recipient: str
    sender: str
    subject: str
    body_text: str
    attachment_text: str
    attachment_filename: str
    boundary: str
    raw: str  # full RFC 822 message as composed for the transport


class DispatchResult(BaseModel):
    sent: bool
    driver: str
    message_id: Optional[str] = None
    error: Optional[str] = None


class PipelineOutcome(BaseModel):
    status: Literal["sent", "send_failed", "no_events", "parse_error", "extraction_failed", "build_failed"]
    event_count: int = 0
    recipient: Optional[str] = None
    subject: Optional[str] = None
    driver: Optional[str] = None
    message_id: Optional[str] = None
    error: Optional[str] = None
    duration_ms: Optional[float] = None
