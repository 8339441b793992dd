import json
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List

import httpx

from avinvite.core.config import AppConfig
from avinvite.core.errors import ExtractionError


EXTRACTION_PROMPT = """Extract all tasks, bookings, setup times, and AV support needs from this email.
Format your response as a JSON array of events. Each event must have:
- title (string)
- start (ISO datetime string)
- end (ISO datetime string)
- location (string, optional)
- description (string)
- AV Support request location: (string)
- AV Support requirements: (string)
- Brief description: (string)
- Other: (string)
- attendees: array of {{name, email}} (optional)

Example:
[
  {{
    "title": "Soundcheck for students",
    "start": "2025-06-30T08:00:00+10:00",
    "end": "2025-06-30T12:00:00+10:00",
    "location": "Auditorium",
    "description": "Soundcheck session for mid year performances.",
    "AV Support request location:": "Auditorium",
    "AV Support requirements:": "Lectern microphone, stage lighting",
    "Brief description:": "Soundcheck for students",
    "Other:": "",
    "attendees": [
      {{"name": "Matt Magnus", "email": "mmg@hutchins.tas.edu.au"}}
    ]
  }}
]

Respond with the JSON array only.

Now extract from this email text:

{email_text}
"""

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)
_ISO_RE = re.compile(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}(?::\d{2})?(?:Z|[+-]\d{2}:\d{2})?")


def build_extraction_prompt(email_text: str) -> str:
    return EXTRACTION_PROMPT.format(email_text=email_text)


def strip_code_fence(content: str) -> str:
    """Remove a surrounding markdown code fence, if the model added one."""
    text = content.strip()
    match = _FENCE_RE.match(text)
    return match.group(1) if match else text


class ExtractionClient(ABC):
    """Turns email text into best-effort JSON text describing events."""

    @abstractmethod
    def extract_events(self, email_text: str) -> str:
        """Return raw extraction output; it may not be valid JSON."""
        pass


class StubExtractionClient(ExtractionClient):
    """Deterministic extractor for tests and when the LLM is disabled."""

    def extract_events(self, email_text: str) -> str:
        stamps = _ISO_RE.findall(email_text or "")
        if not stamps:
            return "[]"

        title = self._subject_line(email_text) or "No Title"
        events: List[Dict[str, Any]] = []
        # Consecutive timestamps pair up as start/end.
        for i in range(0, len(stamps) - 1, 2):
            events.append({
                "title": title,
                "start": stamps[i],
                "end": stamps[i + 1],
                "description": "Extracted without a language model.",
            })
        if len(stamps) % 2:
            events.append({"title": title, "start": stamps[-1], "end": stamps[-1]})
        return json.dumps(events)

    def _subject_line(self, email_text: str) -> str:
        for line in email_text.splitlines():
            if line.lower().startswith("subject:"):
                return line.split(":", 1)[1].strip()
        return ""


class OpenAIExtractionClient(ExtractionClient):
    """OpenAI-compatible chat completions client."""

    def __init__(self, api_key: str, model: str = "gpt-4o-mini", timeout_ms: int = 30000,
                 base_url: str = "https://api.openai.com/v1"):
        self.api_key = api_key
        self.model = model
        self.timeout_seconds = timeout_ms / 1000.0
        self.base_url = base_url.rstrip("/")

    def extract_events(self, email_text: str) -> str:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

        data = {
            "model": self.model,
            "messages": [
                {"role": "user", "content": build_extraction_prompt(email_text)}
            ],
            "temperature": 0,
        }

        try:
            with httpx.Client(timeout=self.timeout_seconds) as client:
                response = client.post(
                    f"{self.base_url}/chat/completions",
                    headers=headers,
                    json=data
                )
        except httpx.TimeoutException as exc:
            raise ExtractionError(f"Extraction timeout after {self.timeout_seconds}s") from exc
        except httpx.HTTPError as exc:
            raise ExtractionError(f"Extraction request failed: {exc}") from exc

        if response.status_code != 200:
            raise ExtractionError(f"Extraction API error: {response.status_code} {response.text}")

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ExtractionError(f"Unexpected extraction response shape: {exc}") from exc
        return strip_code_fence(content or "")


def select_extraction_client(config: AppConfig) -> ExtractionClient:
    """Factory function to select the extraction client based on configuration."""
    if not config.llm_enabled:
        return StubExtractionClient()

    if not config.openai_api_key:
        # Fall back to stub if no API key
        return StubExtractionClient()

    return OpenAIExtractionClient(
        api_key=config.openai_api_key,
        model=config.llm_model,
        timeout_ms=config.llm_timeout_ms,
        base_url=config.llm_base_url,
    )
