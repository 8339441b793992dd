from typing import Optional, Union

from avinvite.calendar.ics_builder import CalendarBuilder
from avinvite.calendar.normalizer import normalize_events
from avinvite.core.config import AppConfig
from avinvite.core.errors import AvInviteError
from avinvite.core.models import PipelineOutcome
from avinvite.inbound.parser import read_message_text
from avinvite.llm.service import ExtractionClient
from avinvite.observability.logger import log_error, log_event, log_info, timing
from avinvite.services.emailer import Emailer
from avinvite.services.envelope import build_envelope, dispatch_envelope


def _finish(outcome: PipelineOutcome, duration_ms: float) -> PipelineOutcome:
    outcome.duration_ms = round(duration_ms, 2)
    log_event(
        action=outcome.status,
        driver=outcome.driver or "none",
        subject=outcome.subject or "",
        recipient=outcome.recipient,
        event_count=outcome.event_count,
        message_id=outcome.message_id,
        duration_ms=outcome.duration_ms,
    )
    return outcome


def process_extraction(
    extraction_text: str,
    config: AppConfig,
    emailer: Emailer,
    builder: Optional[CalendarBuilder] = None,
) -> PipelineOutcome:
    """
    Run the deterministic half of the pipeline on extraction output.

    Normalize, build the calendar, assemble the envelope and send it once.
    Nothing is sent unless the calendar document was fully built.
    """
    with timing("process_extraction") as timer:
        result = normalize_events(extraction_text)
        if result.status == "parse_error":
            return _finish(PipelineOutcome(status="parse_error", error=result.error), timer.elapsed_ms())
        if not result.has_events:
            log_info("No calendar events to send", {"stage": "normalize", "normalize_status": result.status})
            return _finish(PipelineOutcome(status="no_events"), timer.elapsed_ms())

        try:
            calendar = (builder or CalendarBuilder.from_config(config)).build(result.events)
        except AvInviteError as exc:
            log_error(exc, {"stage": "build"})
            return _finish(
                PipelineOutcome(status="build_failed", event_count=len(result.events), error=str(exc)),
                timer.elapsed_ms(),
            )

        envelope = build_envelope(
            recipient=config.invite_recipient,
            sender=config.default_sender,
            subject=config.invite_subject,
            body_text=config.invite_body,
            attachment_text=calendar,
            attachment_filename=config.attachment_filename,
        )
        dispatch = dispatch_envelope(envelope, emailer)
        outcome = PipelineOutcome(
            status="sent" if dispatch.sent else "send_failed",
            event_count=len(result.events),
            recipient=envelope.recipient,
            subject=envelope.subject,
            driver=dispatch.driver,
            message_id=dispatch.message_id,
            error=dispatch.error,
        )
        return _finish(outcome, timer.elapsed_ms())


def process_inbound_email(
    raw_message: Union[bytes, str],
    config: AppConfig,
    extractor: ExtractionClient,
    emailer: Emailer,
) -> PipelineOutcome:
    """
    Handle one inbound message end to end.

    The extraction call completes before normalization starts; a failing
    extractor ends the run without sending anything.
    """
    with timing("process_inbound_email") as timer:
        email_text = read_message_text(raw_message)
        try:
            extraction_text = extractor.extract_events(email_text)
        except Exception as exc:
            log_error(exc, {"stage": "extraction"})
            return _finish(PipelineOutcome(status="extraction_failed", error=str(exc)), timer.elapsed_ms())

    return process_extraction(extraction_text, config, emailer)
