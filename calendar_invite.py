"""iCalendar invite for a completed registration."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional

from program_catalog import FULL_ATTENDANCE
from submission import registration_end, registration_start, resolve_location
from wizard_state import WizardState

PRODID = "-//IAML//Registration System//EN"
CONTACT_LINE = "For more information, visit https://iaml.com or contact info@iaml.com"


def _ics_date(value: date) -> str:
    return f"{value.year:04d}{value.month:02d}{value.day:02d}"


def _escape(text: str) -> str:
    return (
        text.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\n", "\\n")
    )


def build_ics(state: WizardState, now: Optional[datetime] = None) -> Optional[str]:
    """Return the VCALENDAR text, or ``None`` when the registration has no dates.

    ``DTEND`` is exclusive for all-day events, so it is the day after the last
    attended day.
    """
    start = registration_start(state)
    end = registration_end(state) or start
    if start is None:
        return None
    now = now or datetime.now(timezone.utc)

    description_lines = [f"Program: {state.program}", f"Format: {state.format}"]
    if state.attendance_type != FULL_ATTENDANCE:
        description_lines.append(f"Attendance: {state.attendance_type}")
    description_lines.extend([f"Registration Code: {state.registration_code}", "", CONTACT_LINE])

    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODID}",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
        "BEGIN:VEVENT",
        f"UID:{state.registration_code}-{int(now.timestamp())}@iaml.com",
        f"DTSTAMP:{now.astimezone(timezone.utc):%Y%m%dT%H%M%SZ}",
        f"DTSTART;VALUE=DATE:{_ics_date(start)}",
        f"DTEND;VALUE=DATE:{_ics_date(end + timedelta(days=1))}",
        f"SUMMARY:{_escape(state.program)}",
        f"DESCRIPTION:{_escape(chr(10).join(description_lines))}",
        f"LOCATION:{_escape(resolve_location(state))}",
        "STATUS:CONFIRMED",
        "SEQUENCE:0",
        "END:VEVENT",
        "END:VCALENDAR",
    ]
    return "\r\n".join(lines) + "\r\n"
