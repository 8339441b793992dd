from typing import Optional


def escape_text(value: Optional[str]) -> str:
    """
    Escape free text for an iCalendar TEXT property value.

    Order matters: backslashes first so the escapes added afterwards are
    not doubled. Only backslash, newline, semicolon and comma change.
    """
    if value is None:
        return ""
    return (
        value.replace("\\", "\\\\")
        .replace("\n", "\\n")
        .replace(";", "\\;")
        .replace(",", "\\,")
    )
