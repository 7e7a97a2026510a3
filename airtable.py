"""Thin Airtable REST client shared by the proxy endpoints and the wizard."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import quote

import requests

from site_settings import AIRTABLE_API_URL, HTTP_TIMEOUT_SECONDS, require_setting

log = logging.getLogger(__name__)

FORWARDED_PARAMS = ("filterByFormula", "maxRecords", "view", "pageSize", "offset")
_SORT_RE = re.compile(r"^sort\[(\d+)\]\[(field|direction)\]$")


class AirtableError(Exception):
    """Airtable answered with a non-2xx status."""

    def __init__(self, status: int, message: str, details: Any = None):
        super().__init__(message)
        self.status = status
        self.message = message
        self.details = details


def escape_formula_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


def build_query(args: Mapping[str, Any]) -> List[Tuple[str, str]]:
    """Pick the Airtable list parameters out of an incoming query mapping.

    ``sort[n][field]`` / ``sort[n][direction]`` pairs keep their index; a
    direction without a field is dropped.
    """
    params: List[Tuple[str, str]] = []
    for key in FORWARDED_PARAMS:
        value = args.get(key)
        if value not in (None, ""):
            params.append((key, str(value)))

    sorts: Dict[int, Dict[str, str]] = {}
    for key in args.keys():
        match = _SORT_RE.match(key)
        if not match:
            continue
        sorts.setdefault(int(match.group(1)), {})[match.group(2)] = str(args.get(key))

    for index in sorted(sorts):
        pair = sorts[index]
        if not pair.get("field"):
            continue
        params.append((f"sort[{index}][field]", pair["field"]))
        if pair.get("direction"):
            params.append((f"sort[{index}][direction]", pair["direction"]))
    return params


def table_url(base_id: str, table: str, record_id: Optional[str] = None) -> str:
    url = f"{AIRTABLE_API_URL}/{base_id}/{quote(table, safe='')}"
    if record_id:
        url += f"/{quote(record_id, safe='')}"
    return url


def _decode(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return {"error": {"message": response.text or response.reason}}


def error_parts(data: Any, default: str) -> Tuple[str, Any]:
    """Return ``(message, details)`` from an Airtable error body."""
    details = data.get("error") if isinstance(data, dict) else None
    if isinstance(details, dict):
        return details.get("message") or details.get("type") or default, details
    if isinstance(details, str):
        return details, details
    return default, details


def airtable_request(
    method: str,
    table: str,
    api_key: str,
    *,
    record_id: Optional[str] = None,
    params: Optional[Sequence[Tuple[str, str]]] = None,
    body: Any = None,
) -> Tuple[int, Any]:
    """Send one request and return ``(status, decoded body)``.

    Network failures propagate as ``requests.RequestException``.
    """
    base_id = require_setting("AIRTABLE_BASE_ID")
    url = table_url(base_id, table, record_id)
    response = requests.request(
        method,
        url,
        headers={
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        },
        params=list(params or []),
        json=body,
        timeout=HTTP_TIMEOUT_SECONDS,
    )
    return response.status_code, _decode(response)


def _checked(status: int, data: Any, default: str) -> Dict[str, Any]:
    if status >= 400:
        message, details = error_parts(data, default)
        log.warning("Airtable request failed (%s): %s", status, message)
        raise AirtableError(status, message, details)
    return data if isinstance(data, dict) else {}


def list_records(table: str, api_key: str, **query: Any) -> List[Dict[str, Any]]:
    status, data = airtable_request("GET", table, api_key, params=build_query(query))
    return _checked(status, data, "Airtable request failed").get("records") or []


def get_record(table: str, record_id: str, api_key: str) -> Dict[str, Any]:
    status, data = airtable_request("GET", table, api_key, record_id=record_id)
    return _checked(status, data, "Airtable request failed")


def update_record(table: str, record_id: str, fields: Dict[str, Any], api_key: str) -> Dict[str, Any]:
    status, data = airtable_request("PATCH", table, api_key, record_id=record_id, body={"fields": fields})
    return _checked(status, data, "Airtable update failed")
