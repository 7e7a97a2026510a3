"""Airtable pass-through endpoints.

Browsers never see the Airtable API keys: each endpoint injects the key for
its table group and forwards the query verbatim. Upstream errors keep their
status code.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

import requests
from flask import Blueprint, jsonify, request

from airtable import airtable_request, build_query, error_parts, escape_formula_value
from cors import enable_cors
from site_settings import (
    AIRTABLE_COMPANIES_TABLE,
    AIRTABLE_COUPONS_TABLE,
    AIRTABLE_REGISTRATIONS_TABLE,
    ConfigurationError,
    require_setting,
)

log = logging.getLogger(__name__)

airtable_bp = enable_cors(Blueprint("airtable", __name__))

PROGRAMS_KEY = "AIRTABLE_PROGRAMS_API_KEY"
QUIZ_KEY = "AIRTABLE_QUIZ_API_KEY"
REGISTRATION_KEY = "AIRTABLE_REGISTRATION_API_KEY"

_ROUTING_KEYS = {"table", "recordId"}


def _proxy(
    method: str,
    table: str,
    key_setting: str,
    *,
    record_id: Optional[str] = None,
    params: Optional[Sequence[Tuple[str, str]]] = None,
    body: Any = None,
    success_status: int = 200,
    default_error: str = "Airtable request failed",
    raw_errors: bool = False,
):
    try:
        api_key = require_setting(key_setting)
        status, data = airtable_request(method, table, api_key, record_id=record_id, params=params, body=body)
    except ConfigurationError:
        log.error("Missing Airtable configuration")
        return jsonify({"error": "Server configuration error"}), 500
    except requests.RequestException as e:
        log.exception("Airtable proxy error (%s %s)", method, table)
        return jsonify({"error": "Internal server error", "message": str(e)}), 500

    if status >= 400:
        log.warning("Airtable %s %s answered %s", method, table, status)
        if raw_errors:
            return jsonify(data), status
        message, details = error_parts(data, default_error)
        return jsonify({"error": message, "details": details}), status
    return jsonify(data), success_status


def _request_args() -> Mapping[str, Any]:
    if request.method == "GET":
        return request.args
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _write_body(args: Mapping[str, Any]) -> Dict[str, Any]:
    if args.get("fields") is not None:
        return {"fields": args["fields"]}
    if args.get("records") is not None:
        return {"records": args["records"]}
    return {k: v for k, v in args.items() if k not in _ROUTING_KEYS}


@airtable_bp.get("/airtable-programs")
def airtable_programs():
    table = request.args.get("table")
    if not table:
        return jsonify({"error": "table parameter is required"}), 400
    return _proxy(
        "GET",
        table,
        PROGRAMS_KEY,
        record_id=request.args.get("recordId") or None,
        params=build_query(request.args),
    )


@airtable_bp.route("/airtable-quiz", methods=["GET", "POST", "PATCH"])
def airtable_quiz():
    args = _request_args()
    table = args.get("table")
    if not table:
        return jsonify({"error": "table parameter is required"}), 400

    record_id = args.get("recordId") or None
    if request.method == "POST":
        record_id = None
    if request.method == "GET":
        return _proxy("GET", table, QUIZ_KEY, record_id=record_id, params=build_query(args))
    return _proxy(request.method, table, QUIZ_KEY, record_id=record_id, body=_write_body(args))


@airtable_bp.route("/airtable-coupons", methods=["GET", "PATCH"])
def airtable_coupons():
    if request.method == "GET":
        code = (request.args.get("code") or "").strip()
        if not code:
            return jsonify({"error": "Coupon code parameter is required"}), 400
        formula = f"LOWER({{Coupon Code}})='{escape_formula_value(code.lower())}'"
        return _proxy(
            "GET",
            AIRTABLE_COUPONS_TABLE,
            REGISTRATION_KEY,
            params=[("filterByFormula", formula), ("maxRecords", "1")],
            default_error="Coupon validation failed",
        )

    body = request.get_json(silent=True) or {}
    record_id = body.get("recordId")
    times_used = body.get("timesUsed")
    if not record_id or times_used is None:
        return jsonify({"error": "recordId and timesUsed are required in request body"}), 400
    return _proxy(
        "PATCH",
        AIRTABLE_COUPONS_TABLE,
        REGISTRATION_KEY,
        record_id=record_id,
        body={"fields": {"Times Used": times_used}},
        default_error="Coupon update failed",
    )


@airtable_bp.route("/airtable-companies", methods=["GET", "POST"])
def airtable_companies():
    if request.method == "GET":
        formula = request.args.get("filterByFormula")
        if not formula:
            return jsonify({"error": "filterByFormula parameter is required for GET"}), 400
        params = [("filterByFormula", formula)]
        if request.args.get("maxRecords"):
            params.append(("maxRecords", request.args["maxRecords"]))
        return _proxy("GET", AIRTABLE_COMPANIES_TABLE, PROGRAMS_KEY, params=params, raw_errors=True)

    body = request.get_json(silent=True) or {}
    fields = body.get("fields")
    if not isinstance(fields, dict) or not fields.get("Company Name"):
        return jsonify({"error": "Missing required field: Company Name"}), 400
    return _proxy(
        "POST",
        AIRTABLE_COMPANIES_TABLE,
        PROGRAMS_KEY,
        body={"fields": fields},
        success_status=201,
        raw_errors=True,
    )


@airtable_bp.post("/airtable-registrations")
def airtable_registrations():
    body = request.get_json(silent=True) or {}
    fields = body.get("fields")
    if not isinstance(fields, dict):
        return jsonify({"error": "Missing fields object"}), 400
    if not fields.get("Contact") or not fields.get("Company") or not fields.get("Program Instance"):
        return jsonify({"error": "Missing required fields: Contact, Company, Program Instance"}), 400
    return _proxy(
        "POST",
        AIRTABLE_REGISTRATIONS_TABLE,
        PROGRAMS_KEY,
        body={"fields": fields},
        success_status=201,
        raw_errors=True,
    )
