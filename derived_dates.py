"""Effective date ranges for partial-attendance registrations.

Session dates are calendar dates. A value such as ``"2025-03-10"`` (or the
``"2025-03-10T00:00:00.000Z"`` form Airtable sometimes returns) always means
10 March 2025; no timezone conversion is ever applied.
"""
from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, Optional, Tuple

from program_catalog import program_blocks

_ISO_DATE_RE = re.compile(r"^\s*(\d{4})-(\d{1,2})-(\d{1,2})")

START_FIELDS = ("Session Start Date", "Start Date")
END_FIELDS = ("Session End Date", "End Date")


def parse_local_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    match = _ISO_DATE_RE.match(str(value))
    if match:
        try:
            return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
        except ValueError:
            return None
    for fmt in ("%m/%d/%Y", "%b %d, %Y", "%B %d, %Y"):
        try:
            return datetime.strptime(str(value).strip(), fmt).date()
        except ValueError:
            continue
    return None


def iso_date(value: Optional[date]) -> Optional[str]:
    if value is None:
        return None
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


def _record_fields(record: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not isinstance(record, dict):
        return {}
    inner = record.get("fields")
    return inner if isinstance(inner, dict) else record


def _first_field(fields: Dict[str, Any], names: Iterable[str]) -> Any:
    for name in names:
        if fields.get(name):
            return fields[name]
    return None


def session_base_dates(record: Optional[Dict[str, Any]]) -> Tuple[Optional[date], Optional[date]]:
    fields = _record_fields(record)
    start = parse_local_date(_first_field(fields, START_FIELDS))
    end = parse_local_date(_first_field(fields, END_FIELDS))
    if start and not end:
        end = start
    return start, end


def compute_derived_dates(
    session_record: Optional[Dict[str, Any]],
    program: Optional[str],
    is_full: bool,
    selected_blocks: Iterable[str],
) -> Tuple[Optional[date], Optional[date]]:
    """Tightest date range covering the selected blocks (gaps included)."""
    base_start, base_end = session_base_dates(session_record)
    blocks = program_blocks(program)
    ranges = [blocks[b]["days"] for b in selected_blocks if b in blocks]
    if is_full or not blocks or not ranges or base_start is None:
        return base_start, base_end

    min_offset = min(r[0] for r in ranges)
    max_offset = max(r[1] for r in ranges)
    return base_start + timedelta(days=min_offset), base_start + timedelta(days=max_offset)


def format_date(value: Optional[date]) -> str:
    if value is None:
        return "—"
    return f"{value.strftime('%b')} {value.day}, {value.year}"


def format_date_range(start: Optional[date], end: Optional[date]) -> str:
    if start is None or end is None:
        return "—"
    first, last = format_date(start), format_date(end)
    return first if first == last else f"{first} - {last}"
