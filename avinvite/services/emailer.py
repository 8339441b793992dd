from __future__ import annotations

import base64
import smtplib
import time
from typing import Optional

import httpx

from avinvite.core.config import AppConfig
from avinvite.core.errors import ConfigError, TransportError
from avinvite.core.models import MailEnvelope


class Emailer:
    driver: str

    def send(self, envelope: MailEnvelope) -> Optional[str]:
        raise NotImplementedError


class ConsoleEmailer(Emailer):
    driver = "console"

    def send(self, envelope: MailEnvelope) -> Optional[str]:
        # Simulate a send. Avoid printing full attachments in logs.
        preview_len = min(len(envelope.attachment_text), 200)
        print(
            f"[console-email] from={envelope.sender} to={envelope.recipient} subject={envelope.subject} "
            f"attachment={envelope.attachment_filename} ics_preview={envelope.attachment_text[:preview_len]!r}..."
        )
        return f"MSG-LOCAL-{int(time.time()*1000)}"


class SmtpEmailer(Emailer):
    driver = "smtp"

    def __init__(self, host: str, port: int, username: str, password: str, use_tls: bool):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls

    def send(self, envelope: MailEnvelope) -> Optional[str]:
        try:
            server = smtplib.SMTP(self.host, self.port)
            try:
                if self.use_tls:
                    server.starttls()
                if self.username:
                    server.login(self.username, self.password)
                server.sendmail(envelope.sender, [envelope.recipient], envelope.raw)
            finally:
                server.quit()
        except (smtplib.SMTPException, OSError) as exc:
            raise TransportError(self.driver, str(exc)) from exc
        return None


class SendgridEmailer(Emailer):
    driver = "sendgrid"
    url = "https://api.sendgrid.com/v3/mail/send"

    def __init__(self, api_key: str):
        self.api_key = api_key

    def send(self, envelope: MailEnvelope) -> Optional[str]:
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        data = {
            "personalizations": [{"to": [{"email": envelope.recipient}]}],
            "from": {"email": envelope.sender},
            "subject": envelope.subject,
            "content": [{"type": "text/plain", "value": envelope.body_text}],
            "attachments": [
                {
                    "content": base64.b64encode(envelope.attachment_text.encode("utf-8")).decode("ascii"),
                    "type": "text/calendar",
                    "filename": envelope.attachment_filename,
                    "disposition": "attachment",
                }
            ],
        }
        try:
            with httpx.Client(timeout=15) as client:
                resp = client.post(self.url, headers=headers, json=data)
        except httpx.HTTPError as exc:
            raise TransportError(self.driver, str(exc)) from exc
        if resp.status_code in (200, 202):
            return resp.headers.get("X-Message-Id") or None
        raise TransportError(self.driver, f"{resp.status_code} {resp.text}")


def select_emailer(config: AppConfig) -> Emailer:
    driver = config.mail_driver.lower()
    if driver == "console":
        return ConsoleEmailer()
    if driver == "smtp":
        if not config.smtp_host or not config.smtp_port:
            raise ConfigError("SMTP configuration missing: SMTP_HOST/SMTP_PORT required")
        return SmtpEmailer(
            host=config.smtp_host,
            port=config.smtp_port,
            username=config.smtp_username or "",
            password=config.smtp_password or "",
            use_tls=config.smtp_use_tls,
        )
    if driver == "sendgrid":
        if not config.sendgrid_api_key:
            raise ConfigError("SENDGRID_API_KEY missing")
        return SendgridEmailer(api_key=config.sendgrid_api_key)
    raise ConfigError(f"Unsupported MAIL_DRIVER: {driver}")
