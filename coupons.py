"""Coupon validation: local rule table first, then the Airtable coupons table."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Dict, Optional, Tuple

import requests

from airtable import AirtableError, escape_formula_value, get_record, list_records, update_record
from derived_dates import parse_local_date
from pricing import apply_discount, format_currency, round_half_up
from site_settings import AIRTABLE_COUPONS_TABLE, ConfigurationError, require_setting
from wizard_state import WizardState

log = logging.getLogger(__name__)

FLAT = "flat"
PERCENT = "percent"

INVALID_CODE = "Invalid coupon code"
LOOKUP_FAILED = "Error validating coupon. Please try again."

BLOCK_CERTIFICATES = (
    "Certificate in Employee Relations Law",
    "Certificate in Employee Benefits Law",
    "Certificate in Strategic HR Leadership",
)


def _any_attendance(is_full: bool, block_count: int) -> bool:
    return True


def _full_only(is_full: bool, block_count: int) -> bool:
    return is_full


def _blocks_only(is_full: bool, block_count: int) -> bool:
    return not is_full and block_count >= 1


@dataclass(frozen=True)
class CouponRule:
    code: str
    kind: str
    amount: float
    programs: Tuple[str, ...] = ()
    eligible: Callable[[bool, int], bool] = _any_attendance
    ineligible_message: str = "This coupon is not valid for your selection"


STATIC_RULES: Dict[str, CouponRule] = {
    rule.code: rule
    for rule in (
        CouponRule(
            code="PP500",
            kind=FLAT,
            amount=500,
            programs=BLOCK_CERTIFICATES,
            eligible=_full_only,
            ineligible_message="This coupon is only valid for full program registrations",
        ),
        CouponRule(
            code="BLOCK10",
            kind=PERCENT,
            amount=10,
            eligible=_blocks_only,
            ineligible_message="This coupon is only valid for block registrations",
        ),
        CouponRule(code="ALUMNI300", kind=FLAT, amount=300),
    )
}


@dataclass
class CouponResult:
    ok: bool
    message: str
    discount: int = 0
    removed: bool = False
    code: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "message": self.message,
            "discount": self.discount,
            "removed": self.removed,
            "code": self.code,
        }


def normalize_code(code: Any) -> str:
    return str(code or "").strip().upper()


def compute_discount(kind: str, value: float, base_price: int) -> int:
    if kind == PERCENT:
        raw = round_half_up(Decimal(str(base_price or 0)) * Decimal(str(value or 0)) / 100)
    else:
        raw = float(value or 0)
    discount, _ = apply_discount(base_price, raw)
    return discount


def _rule_error(rule: CouponRule, state: WizardState) -> Optional[str]:
    if rule.programs and state.program not in rule.programs:
        return f"This coupon is not valid for {state.program}"
    if not rule.eligible(state.is_full, len(state.attendance_blocks)):
        return rule.ineligible_message
    return None


def _number(value: Any) -> float:
    if isinstance(value, (list, tuple)):
        value = value[0] if value else 0
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _is_active(fields: Dict[str, Any]) -> bool:
    if "Active?" in fields:
        return fields.get("Active?") is True or str(fields.get("Active?")).strip().lower() in {"true", "yes", "1"}
    return str(fields.get("Status") or "").strip().lower() == "active"


def remote_coupon_error(fields: Dict[str, Any], today: date) -> Optional[str]:
    """Reason a coupon record cannot be used today, or ``None``."""
    if not _is_active(fields):
        return "This coupon is no longer active"
    expires = parse_local_date(fields.get("Expiration Date"))
    if expires is not None and expires < today:
        return "This coupon has expired"
    max_uses = _number(fields.get("Max Uses"))
    if max_uses and _number(fields.get("Times Used")) >= max_uses:
        return "This coupon has reached its usage limit"
    return None


def remote_coupon_terms(fields: Dict[str, Any]) -> Tuple[str, float]:
    """Return ``(kind, value)`` for a coupon record.

    A positive ``Discount Percent`` wins; otherwise ``Discount Amount`` is read
    as dollars, or as a percentage when ``Discount Type`` says so.
    """
    percent = _number(fields.get("Discount Percent"))
    if percent > 0:
        return PERCENT, percent
    amount = _number(fields.get("Discount Amount"))
    if "percent" in str(fields.get("Discount Type") or "").lower():
        return PERCENT, amount
    return FLAT, amount


def find_remote_coupon(code: str) -> Optional[Dict[str, Any]]:
    api_key = require_setting("AIRTABLE_REGISTRATION_API_KEY")
    formula = f"LOWER({{Coupon Code}})='{escape_formula_value(code.lower())}'"
    records = list_records(AIRTABLE_COUPONS_TABLE, api_key, filterByFormula=formula, maxRecords=1)
    for record in records:
        fields = record.get("fields") or {}
        if normalize_code(fields.get("Coupon Code")) == normalize_code(code):
            return record
    return None


def _accept(state: WizardState, code: str, kind: str, value: float, source: str, record_id: str = "") -> CouponResult:
    state.coupon_code = code
    state.coupon_kind = kind
    state.coupon_value = value
    state.coupon_source = source
    state.coupon_record_id = record_id
    state.coupon_discount, state.amount_due = apply_discount(
        state.base_price, compute_discount(kind, value, state.base_price)
    )
    saved = f"{value:g}% off" if kind == PERCENT else format_currency(state.coupon_discount)
    return CouponResult(True, f"Coupon applied! You saved {saved}", state.coupon_discount, code=code)


def apply_coupon(
    state: WizardState,
    code: Any,
    lookup: Optional[Callable[[str], Optional[Dict[str, Any]]]] = None,
    today: Optional[date] = None,
) -> CouponResult:
    """Apply ``code`` to the wizard, or remove it if it is already applied.

    Failures never raise and never touch the state; the caller shows the
    message inline.
    """
    normalized = normalize_code(code)
    if not normalized:
        return CouponResult(False, "Please enter a coupon code")

    if state.coupon_code and normalized == state.coupon_code:
        state.clear_coupon()
        return CouponResult(True, "Coupon removed", 0, removed=True, code=normalized)

    if not state.program:
        return CouponResult(False, "Please select a program before applying a coupon")

    rule = STATIC_RULES.get(normalized)
    if rule:
        error = _rule_error(rule, state)
        if error:
            return CouponResult(False, error, code=normalized)
        return _accept(state, normalized, rule.kind, rule.amount, "static")

    lookup = lookup or find_remote_coupon
    try:
        record = lookup(normalized)
    except (AirtableError, ConfigurationError, requests.RequestException):
        log.exception("Coupon lookup failed for %s", normalized)
        return CouponResult(False, LOOKUP_FAILED, code=normalized)

    if not record:
        return CouponResult(False, INVALID_CODE, code=normalized)

    fields = record.get("fields") or {}
    error = remote_coupon_error(fields, today or date.today())
    if error:
        return CouponResult(False, error, code=normalized)

    kind, value = remote_coupon_terms(fields)
    return _accept(state, normalized, kind, value, "remote", record.get("id") or "")


def refresh_coupon(state: WizardState) -> Optional[str]:
    """Re-derive the discount after the base price or attendance changed.

    Returns a message when a local-rule coupon stops being eligible and is
    dropped.
    """
    if not state.coupon_code:
        state.coupon_discount, state.amount_due = apply_discount(state.base_price, 0)
        return None
    if not state.program:
        state.clear_coupon()
        return None
    rule = STATIC_RULES.get(state.coupon_code) if state.coupon_source == "static" else None
    if rule:
        error = _rule_error(rule, state)
        if error:
            code = state.coupon_code
            state.clear_coupon()
            return f"Coupon {code} removed: {error}"
    discount = compute_discount(state.coupon_kind, state.coupon_value, state.base_price)
    state.coupon_discount, state.amount_due = apply_discount(state.base_price, discount)
    return None


def record_coupon_use(state: WizardState) -> bool:
    """Increment ``Times Used`` on a remote coupon; failures are logged only."""
    if state.coupon_source != "remote" or not state.coupon_record_id:
        return False
    try:
        api_key = require_setting("AIRTABLE_REGISTRATION_API_KEY")
        record = get_record(AIRTABLE_COUPONS_TABLE, state.coupon_record_id, api_key)
        times_used = int(_number((record.get("fields") or {}).get("Times Used")))
        update_record(AIRTABLE_COUPONS_TABLE, state.coupon_record_id, {"Times Used": times_used + 1}, api_key)
        return True
    except (AirtableError, ConfigurationError, requests.RequestException):
        log.warning("Could not record coupon use for %s", state.coupon_code, exc_info=True)
        return False
