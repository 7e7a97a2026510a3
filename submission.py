"""Registration submission: validation, registration codes, the CRM payload and
the charge-then-notify sequence."""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional

from coupons import record_coupon_use
from crm import CrmError, send_registration
from derived_dates import iso_date, parse_local_date, session_base_dates
from payments import PaymentError, charge_registration
from program_catalog import FORMAT_CODES, IN_PERSON, ON_DEMAND, VIRTUAL, block_number, program_code
from wizard_state import WizardState

log = logging.getLogger(__name__)

STRIPE = "stripe"
INVOICE = "invoice"
PAYMENT_METHODS = (STRIPE, INVOICE)
PAYMENT_METHOD_LABELS = {STRIPE: "Credit Card", INVOICE: "Invoice"}
PAYMENT_STATUS = {STRIPE: "Paid", INVOICE: "Pending Payment"}

VIRTUAL_LOCATION = "Virtual Classroom"
ON_DEMAND_LOCATION = "Online (Self-Paced)"

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_LETTERS_RE = re.compile(r"[^A-Za-z]")

CONTACT_RULES = (
    ("first_name", "First name is required"),
    ("last_name", "Last name is required"),
    ("email", "Valid email is required"),
    ("phone", "Phone number is required"),
)
BILLING_RULES = (
    ("billing_contact_name", "Billing contact name is required"),
    ("billing_contact_email", "Valid email is required"),
    ("billing_address", "Billing address is required"),
    ("billing_city", "City is required"),
    ("billing_state", "State is required"),
    ("billing_zip", "ZIP code is required"),
)
_EMAIL_FIELDS = {"email", "billing_contact_email"}


class SubmissionError(Exception):
    """Submission failed; ``message`` is safe to show, ``status`` maps to HTTP."""

    def __init__(self, message: str, status: int = 400, errors: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.errors = errors or {}


def _s(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _validate(data: Mapping[str, Any], rules) -> Dict[str, str]:
    errors: Dict[str, str] = {}
    for name, message in rules:
        value = _s(data.get(name))
        if not value or (name in _EMAIL_FIELDS and not _EMAIL_RE.match(value)):
            errors[name] = message
    return errors


def validate_contact(data: Mapping[str, Any]) -> Dict[str, str]:
    return _validate(data, CONTACT_RULES)


def validate_billing(data: Mapping[str, Any]) -> Dict[str, str]:
    return _validate(data, BILLING_RULES)


def registration_start(state: WizardState) -> Optional[date]:
    start = parse_local_date(state.derived_start)
    if start is None:
        start, _ = session_base_dates(state.session_record)
    return start


def registration_end(state: WizardState) -> Optional[date]:
    end = parse_local_date(state.derived_end)
    if end is None:
        _, end = session_base_dates(state.session_record)
    return end


def build_registration_code(state: WizardState, now: Optional[datetime] = None) -> str:
    """``IP-AF-DEN-0325``: format, program + attendance, city, month/year of the first day."""
    format_code = FORMAT_CODES.get(state.format, "XX")
    if state.is_full:
        attendance = "F"
    else:
        attendance = "".join(block_number(b) for b in state.attendance_blocks) or "F"
    city = _LETTERS_RE.sub("", state.city or "")[:3].upper() or "ONL"
    start = registration_start(state)
    if start is None:
        start = (now or datetime.now()).date()
    return f"{format_code}-{program_code(state.program)}{attendance}-{city}-{start:%m%y}"


def resolve_location(state: WizardState) -> str:
    if state.format == VIRTUAL:
        return VIRTUAL_LOCATION
    if state.format == ON_DEMAND:
        return ON_DEMAND_LOCATION
    if state.format == IN_PERSON:
        parts = [p for p in (state.venue_name, state.city, state.state_province) if p]
        return ", ".join(parts)
    return ""


def build_payload(state: WizardState, payment_status: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        "first_name": state.first_name,
        "last_name": state.last_name,
        "email": state.email,
        "phone": state.phone,
        "job_title": state.title,
        "company_name": state.company,
        "selected_program": state.program,
        "program_format": state.format,
        "session_start_date": iso_date(registration_start(state)),
        "session_end_date": iso_date(registration_end(state)),
        "attendance_type": state.attendance_type,
        "selected_blocks": ", ".join(state.attendance_blocks),
        "city": state.city,
        "state": state.state_province,
        "venue_name": state.venue_name,
        "location": resolve_location(state),
        "list_price": state.base_price,
        "coupon_code": state.coupon_code,
        "discount_amount": state.coupon_discount,
        "final_price": state.amount_due,
        "amount_due": state.amount_due,
        "payment_method": PAYMENT_METHOD_LABELS.get(state.payment_method, state.payment_method),
        "payment_status": payment_status,
        "registration_code": state.registration_code,
        "registration_date": now.isoformat(),
    }
    if state.payment_intent_id:
        payload["payment_intent_id"] = state.payment_intent_id
    if state.payment_method == INVOICE:
        payload.update({
            "billing_contact_name": state.billing_contact_name,
            "billing_contact_email": state.billing_contact_email,
            "billing_address": state.billing_address,
            "billing_city": state.billing_city,
            "billing_state": state.billing_state,
            "billing_zip": state.billing_zip,
            "billing_po_number": state.billing_po,
            "billing_notes": state.billing_notes,
        })
    return payload


def submission_errors(state: WizardState) -> Dict[str, str]:
    """Everything still missing before the wizard can be submitted."""
    errors: Dict[str, str] = {}
    if not state.format:
        errors["format"] = "Please select a format"
    if not state.program:
        errors["program"] = "Please select a program"
    if state.format != ON_DEMAND and not state.session_id:
        errors["session"] = "Please select a session"
    errors.update(validate_contact({name: getattr(state, name) for name, _ in CONTACT_RULES}))
    if state.payment_method not in PAYMENT_METHODS:
        errors["payment_method"] = "Please select a payment method"
    elif state.payment_method == INVOICE:
        errors.update(validate_billing({name: getattr(state, name) for name, _ in BILLING_RULES}))
    return errors


def _charge_metadata(state: WizardState) -> Dict[str, Any]:
    return {
        "registration_code": state.registration_code,
        "program": state.program,
        "format": state.format,
        "attendance_type": state.attendance_type,
        "coupon_code": state.coupon_code,
    }


def submit_registration(
    state: WizardState,
    payment_method_id: Optional[str] = None,
    charge: Optional[Callable[..., str]] = None,
    notify: Optional[Callable[[Dict[str, Any]], Any]] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Charge (card payments only) and then post the registration to the CRM.

    A declined card stops before the CRM is contacted. A successful charge is
    remembered on the state so a retry after a CRM failure does not charge
    twice.
    """
    charge = charge or charge_registration
    notify = notify or send_registration
    if state.completed:
        raise SubmissionError("This registration has already been submitted", 409)

    errors = submission_errors(state)
    if errors:
        raise SubmissionError("Please complete all required fields", 400, errors)

    state.registration_code = build_registration_code(state, now)

    if state.payment_method == STRIPE and state.amount_due > 0 and not state.payment_intent_id:
        try:
            state.payment_intent_id = charge(
                state.amount_due,
                state.email,
                f"{state.program} - {state.registration_code}",
                _charge_metadata(state),
                payment_method_id,
            )
        except PaymentError as e:
            log.warning("Payment failed for %s: %s", state.registration_code, e)
            raise SubmissionError(str(e), 402) from e

    payload = build_payload(state, PAYMENT_STATUS[state.payment_method], now)
    try:
        notify(payload)
    except CrmError as e:
        raise SubmissionError(str(e), 502) from e

    state.completed = True
    record_coupon_use(state)
    log.info(
        "Registration %s submitted (%s, %s, amount due %s)",
        state.registration_code,
        state.program,
        state.payment_method,
        state.amount_due,
    )
    return payload
