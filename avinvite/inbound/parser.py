import re
from email import message_from_bytes, policy
from email.message import Message
from typing import Union

_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"[ \t]+")


def _html_to_text(html: str) -> str:
    text = _TAG_RE.sub(" ", html)
    return _WS_RE.sub(" ", text).strip()


def _part_text(part: Message) -> str:
    payload = part.get_payload(decode=True)
    if payload is None:
        raw_payload = part.get_payload(decode=False)
        return raw_payload if isinstance(raw_payload, str) else ""
    charset = part.get_content_charset() or "utf-8"
    try:
        return payload.decode(charset, errors="replace")
    except LookupError:
        return payload.decode("utf-8", errors="replace")


def read_message_text(raw: Union[bytes, str]) -> str:
    """
    Reduce a raw RFC 822 message to the text handed to the extractor.

    Keeps Subject, From and Date headers followed by the plain-text body;
    falls back to stripped HTML when there is no text/plain part.
    Attachments are ignored.
    """
    data = raw.encode("utf-8", errors="replace") if isinstance(raw, str) else raw
    msg = message_from_bytes(data, policy=policy.default)

    text_body = ""
    html_body = ""
    for part in msg.walk():
        if part.get_content_maintype() == "multipart":
            continue
        disposition = (part.get_content_disposition() or "").lower()
        if disposition == "attachment" or part.get_filename():
            continue
        content_type = part.get_content_type()
        if content_type == "text/plain":
            text_body += _part_text(part)
        elif content_type == "text/html":
            html_body += _part_text(part)

    body = text_body or _html_to_text(html_body)
    if not body and not msg.keys():
        # Not a MIME message at all; hand over the bytes as text.
        return data.decode("utf-8", errors="replace")

    headers = []
    for name in ("Subject", "From", "Date"):
        value = msg.get(name)
        if value:
            headers.append(f"{name}: {value}")
    return "\n".join(headers + ["", body.strip()]).strip()
