class AvInviteError(Exception):
    """Base class for pipeline errors."""


class ExtractionParseError(AvInviteError):
    """Extraction output did not decode to a JSON array."""

    def __init__(self, message: str, raw_text: str = ""):
        super().__init__(message)
        self.raw_text = raw_text


class ExtractionError(AvInviteError):
    """The extraction collaborator could not produce any output."""


class FieldFormatError(AvInviteError):
    """A single date/time field could not be parsed."""

    def __init__(self, value: str, reason: str = "unparseable date/time"):
        super().__init__(f"{reason}: {value!r}")
        self.value = value


class TransportError(AvInviteError):
    """The mail transport failed to deliver a message."""

    def __init__(self, driver: str, detail: str):
        super().__init__(f"{driver} transport failed: {detail}")
        self.driver = driver
        self.detail = detail


class ConfigError(AvInviteError):
    """Configuration values are missing or unsupported."""
