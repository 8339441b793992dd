import json
import logging
import os
from unittest.mock import patch

from fastapi.testclient import TestClient

from avinvite.core.models import PipelineOutcome
from avinvite.main import app
from avinvite.observability.logger import _sanitize_subject, init_sentry, log_event, timing
from avinvite.routes.health import get_last_run, update_last_run


class TestHealthEndpoints:
    """Test health check endpoints."""

    def setup_method(self):
        """Clear last run data before each test."""
        import avinvite.routes.health
        avinvite.routes.health._last_run = None

    def test_healthz_basic(self):
        client = TestClient(app)
        with patch.dict(os.environ, {"OBS_ENABLED": "false", "SENTRY_DSN": ""}):
            response = client.get("/healthz")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert "timestamp" in data
        assert data["observability"] == {"enabled": False, "sentry_configured": False}
        assert "last_run" not in data

    def test_healthz_with_last_run(self):
        client = TestClient(app)
        update_last_run(PipelineOutcome(status="sent", event_count=2, driver="console", message_id="m-1", duration_ms=12.5))

        data = client.get("/healthz").json()
        last_run = data["last_run"]
        assert last_run["action"] == "sent"
        assert last_run["driver"] == "console"
        assert last_run["event_count"] == 2
        assert last_run["message_id"] == "m-1"
        assert last_run["duration_ms"] == 12.5
        assert last_run["success"] is True

    def test_healthz_with_failure(self):
        client = TestClient(app)
        update_last_run(PipelineOutcome(status="send_failed", event_count=1, driver="smtp", error="relay denied"))

        last_run = client.get("/healthz").json()["last_run"]
        assert last_run["success"] is False
        assert last_run["error"] == "relay denied"

    def test_inbound_run_updates_last_run(self):
        client = TestClient(app)
        with patch.dict(os.environ, {"MAIL_DRIVER": "console", "LLM_ENABLED": "false", "API_KEY": ""}):
            client.post("/inbound/email", content=b"Subject: hi\n\nnothing to book")
        assert get_last_run()["action"] == "no_events"

    def test_readiness_ok(self):
        client = TestClient(app)
        with patch.dict(os.environ, {"MAIL_DRIVER": "console", "CALENDAR_TIMEZONE": "Australia/Hobart", "CALENDAR_DATE_MODE": "zoned"}):
            response = client.get("/healthz/ready")
        assert response.status_code == 200
        assert response.json()["checks"] == {"email_service": "ok", "calendar": "ok", "recipient": "ok"}

    def test_readiness_not_ready(self):
        client = TestClient(app)
        with patch.dict(os.environ, {"MAIL_DRIVER": "sendgrid", "SENDGRID_API_KEY": "", "CALENDAR_TIMEZONE": "Europe/Paris", "CALENDAR_DATE_MODE": "zoned"}):
            response = client.get("/healthz/ready")
        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "not_ready"
        assert data["checks"]["email_service"] != "ok"
        assert data["checks"]["calendar"] != "ok"

    def test_readiness_bad_recipient(self):
        client = TestClient(app)
        with patch.dict(os.environ, {"MAIL_DRIVER": "console", "INVITE_RECIPIENT": "storm ellis at hutchins"}):
            response = client.get("/healthz/ready")
        assert response.status_code == 503
        assert response.json()["checks"]["recipient"] != "ok"

    def test_readiness_accepts_local_domain_recipient(self):
        client = TestClient(app)
        with patch.dict(os.environ, {"MAIL_DRIVER": "console", "INVITE_RECIPIENT": "desk@av.local"}):
            response = client.get("/healthz/ready")
        assert response.json()["checks"]["recipient"] == "ok"

    def test_liveness(self):
        response = TestClient(app).get("/healthz/live")
        assert response.status_code == 200
        assert response.json()["status"] == "alive"


class TestStructuredLogging:
    def test_log_event_fields(self, caplog):
        with caplog.at_level(logging.INFO, logger="avinvite.observability.logger"):
            log_event(action="sent", driver="console", subject="AV invites", recipient="storm@hutchins.tas.edu.au",
                      event_count=3, message_id="m-1", duration_ms=1.234)
        entry = json.loads(caplog.records[-1].getMessage())
        assert entry["action"] == "sent"
        assert entry["recipient_domain"] == "hutchins.tas.edu.au"
        assert entry["event_count"] == 3
        assert entry["duration_ms"] == 1.23
        assert "storm@" not in caplog.records[-1].getMessage()

    def test_sanitize_subject(self):
        assert _sanitize_subject("Your password reset") == "[REDACTED]"
        assert _sanitize_subject("x" * 120).endswith("...")
        assert _sanitize_subject("AV invites") == "AV invites"

    def test_timing(self):
        with timing("op") as t:
            pass
        assert t.duration_ms is not None
        assert t.duration_ms >= 0

    def test_init_sentry_disabled(self):
        with patch.dict(os.environ, {"OBS_ENABLED": "false"}):
            assert init_sentry() is False

    def test_init_sentry_enabled(self):
        with patch.dict(os.environ, {"OBS_ENABLED": "true", "SENTRY_DSN": "https://test@sentry.io/123"}), \
                patch("avinvite.observability.logger.sentry_sdk") as sentry:
            assert init_sentry() is True
            sentry.init.assert_called_once()
