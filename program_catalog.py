"""Shared program catalog configuration.

This module centralizes the program, format and block metadata that the
registration wizard, the price endpoints and the submission builder all need
to agree on.
"""
from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Optional, Tuple

FORMATS = {
    "in-person": "In-Person",
    "virtual": "Virtual",
    "on-demand": "On-Demand",
}
FORMAT_CODES = {
    "In-Person": "IP",
    "Virtual": "VI",
    "On-Demand": "OD",
}
ON_DEMAND = "On-Demand"
IN_PERSON = "In-Person"
VIRTUAL = "Virtual"
FULL_ATTENDANCE = "Full"

# Block day offsets are inclusive and relative to the session start date.
PROGRAMS: Dict[str, Dict[str, Any]] = {
    "Certificate in Employee Relations Law": {
        "slug": "employee-relations-law",
        "code": "A",
        "duration": "4.5 days",
        "price": 2375,
        "blocks": {
            "Block 1": {"title": "Comprehensive Labor Relations", "price": 1375, "days": (0, 1)},
            "Block 2": {"title": "Discrimination Prevention & Defense", "price": 1375, "days": (2, 3)},
            "Block 3": {"title": "Special Issues in Employment Law", "price": 575, "days": (4, 4)},
        },
    },
    "Certificate in Employee Benefits Law": {
        "slug": "employee-benefits-law",
        "code": "B",
        "duration": "4.5 days",
        "price": 2375,
        "blocks": {
            "Block 1": {"title": "Welfare Benefits Plan Issues", "price": 1375, "days": (0, 1)},
            "Block 2": {"title": "Benefit Plan Claims, Appeals & Litigation", "price": 575, "days": (2, 2)},
            "Block 3": {"title": "Retirement Plans", "price": 975, "days": (3, 4)},
        },
    },
    "Certificate in Strategic HR Leadership": {
        "slug": "strategic-hr",
        "code": "C",
        "duration": "4.5 days",
        "price": 2375,
        "blocks": {
            "Block 1": {"title": "HR Law Fundamentals", "price": 1375, "days": (0, 1)},
            "Block 2": {"title": "Strategic HR Management", "price": 1575, "days": (2, 4)},
        },
    },
    "Advanced Certificate in Strategic Employment Law": {
        "slug": "strategic-employment-law",
        "duration": "2 days",
        "price": 1575,
    },
    "Certificate in Workplace Investigations": {
        "slug": "workplace-investigations",
        "duration": "2 days",
        "price": 1575,
    },
    "Advanced Certificate in Employee Benefits Law": {
        "slug": "advanced-benefits-law",
        "duration": "2 days",
        "price": 1575,
    },
}

_PROGRAM_BY_SLUG = {info["slug"]: name for name, info in PROGRAMS.items()}
_BLOCK_NUMBER_RE = re.compile(r"^(?:block[\s_-]*)?(\d+)$", re.IGNORECASE)


def _clean(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def resolve_format(value: Any) -> Optional[str]:
    """Map a format slug or display name to its canonical name."""
    raw = _clean(value)
    if not raw:
        return None
    lowered = raw.lower()
    if lowered in FORMATS:
        return FORMATS[lowered]
    for name in FORMATS.values():
        if name.lower() == lowered:
            return name
    return None


def resolve_program(value: Any) -> Optional[str]:
    """Map a program slug or display name to its canonical name."""
    raw = _clean(value)
    if not raw:
        return None
    if raw in PROGRAMS:
        return raw
    lowered = raw.lower()
    if lowered in _PROGRAM_BY_SLUG:
        return _PROGRAM_BY_SLUG[lowered]
    for name in PROGRAMS:
        if name.lower() == lowered:
            return name
    return None


def program_info(program: Optional[str]) -> Optional[Dict[str, Any]]:
    if not program:
        return None
    return PROGRAMS.get(program)


def program_price(program: Optional[str]) -> int:
    info = program_info(program)
    return int(info["price"]) if info else 0


def program_blocks(program: Optional[str]) -> Dict[str, Dict[str, Any]]:
    info = program_info(program)
    if not info:
        return {}
    return info.get("blocks") or {}


def supports_blocks(program: Optional[str]) -> bool:
    return bool(program_blocks(program))


def program_code(program: str) -> str:
    """One-letter code used in registration codes."""
    info = program_info(program) or {}
    code = info.get("code")
    if code:
        return code
    return program[:1].upper() if program else "X"


def block_number(block: str) -> str:
    return "".join(ch for ch in block if ch.isdigit())


def normalize_blocks(program: Optional[str], blocks: Iterable[Any]) -> Tuple[List[str], List[str]]:
    """Split a raw block selection into known block names (catalog order) and unknown entries.

    Accepts full names ("Block 2") as well as bare numbers ("2", "block-2").
    """
    known = program_blocks(program)
    selected = set()
    unknown: List[str] = []
    for raw in blocks:
        item = _clean(raw)
        if not item:
            continue
        match = _BLOCK_NUMBER_RE.match(item)
        name = f"Block {int(match.group(1))}" if match else item
        if name in known:
            selected.add(name)
        else:
            unknown.append(item)
    ordered = [name for name in known if name in selected]
    return ordered, unknown


def catalog_payload() -> List[Dict[str, Any]]:
    """Catalog rows for JSON responses."""
    rows = []
    for name, info in PROGRAMS.items():
        blocks = [
            {
                "name": block,
                "title": meta.get("title"),
                "price": meta["price"],
                "days": list(meta["days"]),
            }
            for block, meta in (info.get("blocks") or {}).items()
        ]
        rows.append(
            {
                "name": name,
                "slug": info["slug"],
                "code": program_code(name),
                "duration": info.get("duration"),
                "price": info["price"],
                "blocks": blocks,
            }
        )
    return rows


__all__ = [
    "FORMATS",
    "FORMAT_CODES",
    "ON_DEMAND",
    "IN_PERSON",
    "VIRTUAL",
    "FULL_ATTENDANCE",
    "PROGRAMS",
    "resolve_format",
    "resolve_program",
    "program_info",
    "program_price",
    "program_blocks",
    "supports_blocks",
    "program_code",
    "block_number",
    "normalize_blocks",
    "catalog_payload",
]
