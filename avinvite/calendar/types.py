from typing import List, Optional

from pydantic import BaseModel


DEFAULT_TITLE = "No Title"

# Keys used by the extraction prompt, trailing colon included.
AV_REQUEST_LOCATION_KEY = "AV Support request location:"
AV_REQUIREMENTS_KEY = "AV Support requirements:"
AV_BRIEF_DESCRIPTION_KEY = "Brief description:"
AV_OTHER_KEY = "Other:"


class Attendee(BaseModel):
    name: str = ""
    email: str

    @property
    def key(self) -> str:
        return self.email.strip().lower()


class EventRecord(BaseModel):
    title: str = DEFAULT_TITLE
    start: Optional[str] = None  # ISO string, timezone suffix optional
    end: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None
    av_request_location: Optional[str] = None
    av_requirements: Optional[str] = None
    av_brief_description: Optional[str] = None
    av_other: Optional[str] = None
    attendees: Optional[List[Attendee]] = None
