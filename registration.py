# registration.py (Blueprint: register)
# Registration wizard JSON API. The wizard lives in the Flask session; every
# answer re-derives price, dates and the step list from scratch.

import logging
from typing import Any, Dict, List

import requests
from flask import Blueprint, Response, jsonify, request

from airtable import AirtableError, escape_formula_value, get_record, list_records
from calendar_invite import build_ics
from coupons import apply_coupon, refresh_coupon
from derived_dates import (
    compute_derived_dates,
    format_date_range,
    iso_date,
    parse_local_date,
    session_base_dates,
)
from pricing import compute_amount_due, format_currency, reprice
from program_catalog import (
    IN_PERSON,
    ON_DEMAND,
    normalize_blocks,
    resolve_format,
    resolve_program,
    supports_blocks,
)
from site_settings import AIRTABLE_SESSIONS_TABLE, ConfigurationError, require_setting
from steps import (
    BLOCKS,
    CONTACT,
    FORMAT,
    PAYMENT,
    PROGRAM,
    SESSION,
    blocks_step_applies,
    diff_steps,
    first_open_step,
    next_step,
    previous_step,
    resolve_url_params,
    step_indicator,
    steps_for_state,
)
from submission import (
    INVOICE,
    PAYMENT_METHODS,
    SubmissionError,
    resolve_location,
    submit_registration,
    validate_billing,
    validate_contact,
)
from wizard_state import (
    BILLING_FIELDS,
    CONTACT_FIELDS,
    WizardState,
    clear_state,
    load_state,
    save_state,
)

register_bp = Blueprint("register", __name__)

logger = logging.getLogger(__name__)

SESSION_LOAD_FAILED = "We couldn't load the selected session. Please choose a session below."
SESSION_MISMATCH = "This session is not offered for the selected program and format"
SESSIONS_LOAD_FAILED = "We couldn't load upcoming sessions. Please try again."
ALREADY_SUBMITTED = "This registration has already been submitted"
UPGRADE_NOTICE = "Your selected blocks cost as much as the full program, so you're registered for Full attendance."

_UPSTREAM_ERRORS = (AirtableError, ConfigurationError, requests.RequestException)


# ───────────────────────────────────────────────────────────────
# Helpers
# ───────────────────────────────────────────────────────────────
def _s(x):
    if x is None:
        return None
    x = str(x).strip()
    return x or None


def _bool(v, default=False):
    if v is None:
        return default
    if isinstance(v, bool):
        return v
    return str(v).strip().lower() in {"1", "true", "yes", "y", "on"}


def _body() -> Dict[str, Any]:
    if request.is_json:
        data = request.get_json(silent=True)
        return data if isinstance(data, dict) else {}
    return request.values.to_dict()


def _params() -> Dict[str, Any]:
    params = request.args.to_dict()
    if request.method == "POST":
        params.update(_body())
    return params


def _field_text(fields: Dict[str, Any], name: str) -> str:
    value = fields.get(name)
    if isinstance(value, (list, tuple)):
        value = value[0] if value else ""
    return str(value or "").strip()


def _summary(state: WizardState) -> Dict[str, Any]:
    start = parse_local_date(state.derived_start)
    end = parse_local_date(state.derived_end)
    return {
        "program": state.program,
        "format": state.format,
        "attendance_type": state.attendance_type if state.program else "",
        "dates": format_date_range(start, end),
        "location": resolve_location(state),
        "base_price": format_currency(state.base_price),
        "coupon_code": state.coupon_code,
        "discount": format_currency(state.coupon_discount),
        "amount_due": format_currency(state.amount_due),
    }


def _response(state: WizardState, status: int = 200, **extra):
    payload = {
        "ok": status < 400,
        "state": state.to_dict(),
        "steps": step_indicator(state),
        "current_step": state.current_step,
        "summary": _summary(state),
    }
    payload.update(extra)
    return jsonify(payload), status


def _conflict(state: WizardState):
    return _response(state, 409, error=ALREADY_SUBMITTED)


def recompute(state: WizardState) -> Dict[str, Any]:
    """Re-derive price, coupon, dates and steps after any answer changed."""
    old_steps = list(state.steps)
    notices: List[str] = []

    if state.format == ON_DEMAND and state.session_id:
        state.clear_session()
    if not blocks_step_applies(state.program or None, state.format or None):
        state.attendance_blocks = []

    quote = reprice(state)
    if quote.upgraded:
        notices.append(UPGRADE_NOTICE)
    dropped = refresh_coupon(state)
    if dropped:
        notices.append(dropped)

    start, end = compute_derived_dates(
        state.session_record, state.program or None, state.is_full, state.attendance_blocks
    )
    state.derived_start, state.derived_end = iso_date(start), iso_date(end)

    state.steps = steps_for_state(state)
    if state.current_step not in state.steps:
        state.current_step = first_open_step(state)
    return {"step_changes": diff_steps(old_steps, state.steps), "notices": notices}


def fetch_session(session_id: str) -> Dict[str, Any]:
    api_key = require_setting("AIRTABLE_PROGRAMS_API_KEY")
    return get_record(AIRTABLE_SESSIONS_TABLE, session_id, api_key)


def _apply_session(state: WizardState, record: Dict[str, Any]) -> None:
    fields = record.get("fields") or {}
    state.session_id = record.get("id") or state.session_id
    state.session_record = {"id": state.session_id, "fields": fields}
    state.city = _field_text(fields, "City")
    state.state_province = _field_text(fields, "State")
    state.venue_name = _field_text(fields, "Venue Name")


def session_matches(state: WizardState, record: Dict[str, Any]) -> bool:
    """False when the record names a different program or format than the wizard."""
    fields = record.get("fields") or {}
    program = _field_text(fields, "Program")
    if program and state.program and (resolve_program(program) or program) != state.program:
        return False
    format_name = _field_text(fields, "Format")
    if format_name and state.format and (resolve_format(format_name) or format_name) != state.format:
        return False
    return True


def _unpin(state: WizardState, *steps: str) -> None:
    state.prefilled = [s for s in state.prefilled if s not in steps]


def sessions_formula(program: str, format_name: str) -> str:
    return (
        "AND("
        f"{{Program}} = '{escape_formula_value(program)}', "
        f"{{Format}} = '{escape_formula_value(format_name)}', "
        "OR(IS_AFTER({End Date}, TODAY()), IS_SAME({End Date}, TODAY()))"
        ")"
    )


def load_sessions(program: str, format_name: str) -> List[Dict[str, Any]]:
    api_key = require_setting("AIRTABLE_PROGRAMS_API_KEY")
    records = list_records(
        AIRTABLE_SESSIONS_TABLE,
        api_key,
        filterByFormula=sessions_formula(program, format_name),
        **{"sort[0][field]": "Start Date", "sort[0][direction]": "asc"},
    )
    sessions = []
    for record in records:
        fields = record.get("fields") or {}
        start, end = session_base_dates(record)
        if format_name == ON_DEMAND:
            location = ""
        elif format_name == IN_PERSON:
            location = ", ".join(p for p in (_field_text(fields, "City"), _field_text(fields, "State")) if p)
        else:
            location = _field_text(fields, "Virtual Platform") or "Virtual"
        sessions.append({
            "id": record.get("id"),
            "start_date": iso_date(start),
            "end_date": iso_date(end),
            "dates": format_date_range(start, end),
            "location": location,
            "city": _field_text(fields, "City"),
            "state": _field_text(fields, "State"),
            "venue_name": _field_text(fields, "Venue Name"),
        })
    return sessions


# ───────────────────────────────────────────────────────────────
# Answer handlers: each returns a field -> message dict of errors
# ───────────────────────────────────────────────────────────────
def _answer_format(state: WizardState, data: Dict[str, Any]) -> Dict[str, str]:
    fmt = resolve_format(data.get("format"))
    if not fmt:
        return {"format": "Please select a format"}
    if fmt != state.format:
        state.format = fmt
        state.clear_session()
        state.attendance_blocks = []
        _unpin(state, SESSION, BLOCKS)
        if PROGRAM not in state.prefilled:
            state.program = ""
    return {}


def _answer_program(state: WizardState, data: Dict[str, Any]) -> Dict[str, str]:
    program = resolve_program(data.get("program"))
    if not program:
        return {"program": "Please select a program"}
    if program != state.program:
        state.program = program
        state.clear_session()
        state.attendance_blocks = []
        _unpin(state, SESSION, BLOCKS)
    return {}


def _answer_session(state: WizardState, data: Dict[str, Any]) -> Dict[str, str]:
    if state.format == ON_DEMAND:
        return {"session": "On-Demand programs have no scheduled sessions"}
    session_id = _s(data.get("session") or data.get("session_id"))
    if not session_id:
        return {"session": "Please select a session"}
    record = fetch_session(session_id)
    if not session_matches(state, record):
        return {"session": SESSION_MISMATCH}
    _apply_session(state, record)
    return {}


def _answer_blocks(state: WizardState, data: Dict[str, Any]) -> Dict[str, str]:
    if not supports_blocks(state.program or None) or state.format == ON_DEMAND:
        return {"blocks": "This program is only offered as a full registration"}
    if _bool(data.get("full")):
        state.attendance_blocks = []
        return {}
    raw = data.get("blocks")
    if isinstance(raw, str):
        raw = raw.split(",")
    selected, unknown = normalize_blocks(state.program, raw or [])
    if unknown:
        return {"blocks": f"Unknown block: {', '.join(unknown)}"}
    if not selected:
        return {"blocks": "Please select Full attendance or at least one block"}
    state.attendance_blocks = selected
    return {}


def _answer_contact(state: WizardState, data: Dict[str, Any]) -> Dict[str, str]:
    errors = validate_contact(data)
    if errors:
        return errors
    for name in CONTACT_FIELDS:
        setattr(state, name, _s(data.get(name)) or "")
    return {}


def _answer_payment(state: WizardState, data: Dict[str, Any]) -> Dict[str, str]:
    method = (_s(data.get("payment_method")) or "").lower()
    if method not in PAYMENT_METHODS:
        return {"payment_method": "Please select a payment method"}
    if method == INVOICE:
        errors = validate_billing(data)
        if errors:
            return errors
        for name in BILLING_FIELDS:
            setattr(state, name, _s(data.get(name)) or "")
    state.payment_method = method
    return {}


ANSWER_HANDLERS = {
    FORMAT: _answer_format,
    PROGRAM: _answer_program,
    SESSION: _answer_session,
    BLOCKS: _answer_blocks,
    CONTACT: _answer_contact,
    PAYMENT: _answer_payment,
}


# ───────────────────────────────────────────────────────────────
# Views
# ───────────────────────────────────────────────────────────────
@register_bp.get("/")
def page():
    state = load_state()
    if not state.steps:
        recompute(state)
        state.current_step = state.steps[0]
        save_state(state)
    return _response(state)


def _reopen_session(state: WizardState, status: int, error: str):
    _unpin(state, SESSION)
    changes = recompute(state)
    state.current_step = first_open_step(state)
    save_state(state)
    return _response(state, status, error=error, **changes)


@register_bp.route("/start", methods=["GET", "POST"])
def start():
    clear_state()
    state = WizardState()
    answers = resolve_url_params(_params())
    state.format = answers.get(FORMAT, "")
    state.program = answers.get(PROGRAM, "")
    if BLOCKS in answers:
        state.attendance_blocks = list(answers[BLOCKS])
    state.prefilled = [step for step in (FORMAT, PROGRAM, SESSION, BLOCKS) if step in answers]

    if SESSION in answers:
        try:
            record = fetch_session(answers[SESSION])
        except _UPSTREAM_ERRORS:
            logger.exception("Failed to load session %s", answers[SESSION])
            return _reopen_session(state, 502, SESSION_LOAD_FAILED)
        if not session_matches(state, record):
            logger.warning("Session %s does not match %s / %s", answers[SESSION], state.program, state.format)
            return _reopen_session(state, 400, SESSION_MISMATCH)
        _apply_session(state, record)

    changes = recompute(state)
    state.current_step = state.steps[0]
    save_state(state)
    return _response(state, **changes)


@register_bp.post("/answer")
def answer():
    state = load_state()
    if state.completed:
        return _conflict(state)
    if not state.steps:
        recompute(state)

    data = _body()
    step = _s(data.get("step"))
    handler = ANSWER_HANDLERS.get(step or "")
    if handler is None:
        return _response(state, 400, error="Unknown step", errors={"step": "Unknown step"})

    try:
        errors = handler(state, data)
    except _UPSTREAM_ERRORS:
        logger.exception("Failed to load session for answer")
        return _response(state, 502, error=SESSION_LOAD_FAILED)
    if errors:
        return _response(state, 400, error=next(iter(errors.values())), errors=errors)

    changes = recompute(state)
    if step in state.steps:
        state.current_step = next_step(state.steps, step)
    save_state(state)
    return _response(state, **changes)


@register_bp.post("/back")
def back():
    state = load_state()
    if state.completed:
        return _conflict(state)
    if not state.steps:
        recompute(state)
    state.current_step = previous_step(state.steps, state.current_step)
    save_state(state)
    return _response(state)


@register_bp.get("/sessions")
def sessions():
    state = load_state()
    if not state.program or not state.format:
        return jsonify({"ok": False, "error": "Please select a format and program first", "sessions": []}), 400
    if state.format == ON_DEMAND:
        return jsonify({"ok": True, "sessions": []}), 200
    try:
        rows = load_sessions(state.program, state.format)
    except _UPSTREAM_ERRORS:
        logger.exception("Failed to load sessions for %s (%s)", state.program, state.format)
        return jsonify({"ok": False, "error": SESSIONS_LOAD_FAILED, "sessions": []}), 502
    return jsonify({"ok": True, "sessions": rows}), 200


@register_bp.post("/coupon")
def coupon():
    state = load_state()
    if state.completed:
        return _conflict(state)
    result = apply_coupon(state, _body().get("code"))
    save_state(state)
    return _response(state, ok=result.ok, coupon=result.to_dict())


@register_bp.route("/price-preview", methods=["GET", "POST"])
def price_preview():
    data = _params()
    program = resolve_program(data.get("program"))
    if not program:
        return jsonify({"error": "Unknown program"}), 400

    raw_blocks = data.get("blocks") or []
    if isinstance(raw_blocks, str):
        raw_blocks = raw_blocks.split(",")
    selected, unknown = normalize_blocks(program, raw_blocks)
    if unknown:
        return jsonify({"error": f"Unknown block: {', '.join(unknown)}"}), 400

    quote = compute_amount_due(program, not selected, selected)
    preview = WizardState(
        program=program,
        attendance_blocks=[] if quote.is_full else selected,
        base_price=quote.amount,
        amount_due=quote.amount,
    )
    coupon_result = None
    code = _s(data.get("code"))
    if code:
        coupon_result = apply_coupon(preview, code).to_dict()

    return jsonify({
        "program": program,
        "attendance_type": preview.attendance_type,
        "is_full": quote.is_full,
        "upgraded": quote.upgraded,
        "base_price": preview.base_price,
        "discount": preview.coupon_discount,
        "amount_due": preview.amount_due,
        "amount_due_display": format_currency(preview.amount_due),
        "coupon": coupon_result,
    }), 200


@register_bp.post("/submit")
def submit():
    state = load_state()
    if state.completed:
        return _conflict(state)
    data = _body()
    try:
        payload = submit_registration(state, _s(data.get("payment_method_id")))
    except SubmissionError as e:
        save_state(state)
        return _response(state, e.status, error=e.message, errors=e.errors)
    save_state(state)
    return _response(state, registration_code=state.registration_code, registration=payload)


@register_bp.post("/reset")
def reset():
    clear_state()
    state = WizardState()
    recompute(state)
    state.current_step = state.steps[0]
    save_state(state)
    return _response(state)


@register_bp.get("/calendar.ics")
def calendar_ics():
    state = load_state()
    if not state.completed or state.format == ON_DEMAND:
        return jsonify({"error": "No calendar invite available"}), 404
    content = build_ics(state)
    if content is None:
        return jsonify({"error": "No calendar invite available"}), 404
    return Response(
        content,
        mimetype="text/calendar",
        headers={"Content-Disposition": f'attachment; filename="IAML-{state.registration_code}.ics"'},
    )
