import json
import logging
from email import message_from_string
from email.message import EmailMessage
from unittest.mock import MagicMock

from avinvite.core.config import AppConfig
from avinvite.core.errors import ExtractionError, TransportError
from avinvite.llm.service import ExtractionClient, StubExtractionClient
from avinvite.pipeline.service import process_extraction, process_inbound_email

SOUNDCHECK = json.dumps([{
    "title": "Soundcheck",
    "start": "2025-06-30T08:00:00+10:00",
    "end": "2025-06-30T09:00:00+10:00",
    "attendees": [{"name": "A", "email": "a@x.com"}],
}])


class FixedExtractor(ExtractionClient):
    def __init__(self, output: str):
        self.output = output
        self.calls = []

    def extract_events(self, email_text: str) -> str:
        self.calls.append(email_text)
        return self.output


class FailingExtractor(ExtractionClient):
    def extract_events(self, email_text: str) -> str:
        raise ExtractionError("model unavailable")


def _emailer(driver="console"):
    emailer = MagicMock()
    emailer.driver = driver
    emailer.send.return_value = "MSG-1"
    return emailer


def _raw_email(body: str) -> bytes:
    msg = EmailMessage()
    msg["Subject"] = "Soundcheck booking"
    msg["From"] = "mmg@hutchins.tas.edu.au"
    msg.set_content(body)
    return msg.as_bytes()


class TestProcessExtraction:
    """Normalize, build, assemble and send."""

    def test_sends_one_calendar(self):
        emailer = _emailer()
        config = AppConfig()
        outcome = process_extraction(SOUNDCHECK, config, emailer)

        assert outcome.status == "sent"
        assert outcome.event_count == 1
        assert outcome.message_id == "MSG-1"
        assert outcome.recipient == config.invite_recipient
        assert outcome.duration_ms is not None

        envelope = emailer.send.call_args.args[0]
        assert envelope.subject == "Extracted AV Events from Email - Calendar Invites"
        assert envelope.attachment_filename == "events.ics"
        ics = envelope.attachment_text
        assert ics.count("BEGIN:VEVENT") == 1
        assert "SUMMARY:Soundcheck" in ics
        assert "mailto:a@x.com" in ics
        assert "mailto:storm.ellis@hutchins.tas.edu.au" in ics
        assert "TRIGGER:-PT30M" in ics

        attachment = message_from_string(envelope.raw).get_payload()[1]
        assert attachment.get_payload(decode=True).decode("utf-8") == ics

    def test_not_json_sends_nothing(self):
        emailer = _emailer()
        outcome = process_extraction("not json", AppConfig(), emailer)
        assert outcome.status == "parse_error"
        assert outcome.event_count == 0
        emailer.send.assert_not_called()

    def test_empty_batch_sends_nothing(self):
        emailer = _emailer()
        outcome = process_extraction("[]", AppConfig(), emailer)
        assert outcome.status == "no_events"
        assert outcome.error is None
        emailer.send.assert_not_called()

    def test_empty_batch_logged(self, caplog):
        with caplog.at_level(logging.INFO, logger="avinvite.observability.logger"):
            process_extraction("[]", AppConfig(), _emailer())
        messages = [json.loads(r.getMessage()) for r in caplog.records if r.name == "avinvite.observability.logger"]
        assert any(m.get("message") == "No calendar events to send" for m in messages)
        assert any(m.get("action") == "no_events" for m in messages)

    def test_transport_failure_reported_not_raised(self):
        emailer = _emailer(driver="smtp")
        emailer.send.side_effect = TransportError("smtp", "relay denied")
        outcome = process_extraction(SOUNDCHECK, AppConfig(), emailer)
        assert outcome.status == "send_failed"
        assert outcome.event_count == 1
        assert "relay denied" in outcome.error
        assert emailer.send.call_count == 1

    def test_build_failure_sends_nothing(self):
        emailer = _emailer()
        outcome = process_extraction(SOUNDCHECK, AppConfig(timezone="Europe/Paris", date_mode="zoned"), emailer)
        assert outcome.status == "build_failed"
        emailer.send.assert_not_called()

    def test_recipient_subject_body_come_from_config(self):
        emailer = _emailer()
        config = AppConfig(
            invite_recipient="desk@example.org",
            invite_subject="AV invites",
            invite_body="See attached.",
            attachment_filename="av.ics",
            fallback_attendees=[],
        )
        process_extraction(SOUNDCHECK, config, emailer)
        envelope = emailer.send.call_args.args[0]
        assert envelope.recipient == "desk@example.org"
        assert envelope.subject == "AV invites"
        assert envelope.body_text == "See attached."
        assert envelope.attachment_filename == "av.ics"
        assert "storm.ellis" not in envelope.attachment_text


class TestProcessInboundEmail:
    def test_extractor_receives_message_text(self):
        extractor = FixedExtractor(SOUNDCHECK)
        outcome = process_inbound_email(_raw_email("Please set up the lectern."), AppConfig(), extractor, _emailer())
        assert outcome.status == "sent"
        assert "Subject: Soundcheck booking" in extractor.calls[0]
        assert "Please set up the lectern." in extractor.calls[0]

    def test_extraction_failure_sends_nothing(self):
        emailer = _emailer()
        outcome = process_inbound_email(_raw_email("anything"), AppConfig(), FailingExtractor(), emailer)
        assert outcome.status == "extraction_failed"
        assert outcome.error == "model unavailable"
        emailer.send.assert_not_called()

    def test_malformed_extraction_sends_nothing(self):
        emailer = _emailer()
        outcome = process_inbound_email(_raw_email("anything"), AppConfig(), FixedExtractor("not json"), emailer)
        assert outcome.status == "parse_error"
        emailer.send.assert_not_called()

    def test_stub_extractor_end_to_end(self):
        emailer = _emailer()
        raw = _raw_email("Setup 2025-06-30T08:00:00+10:00 to 2025-06-30T09:00:00+10:00 in the Auditorium.")
        outcome = process_inbound_email(raw, AppConfig(), StubExtractionClient(), emailer)
        assert outcome.status == "sent"
        ics = emailer.send.call_args.args[0].attachment_text
        assert "SUMMARY:Soundcheck booking" in ics
        assert "DTSTART;TZID=Australia/Hobart:20250630T080000" in ics
