"""Session-scoped registration wizard state."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional

from flask import session

from program_catalog import FULL_ATTENDANCE

SESSION_KEY = "iaml_registration_state"

CONTACT_FIELDS = ("first_name", "last_name", "email", "phone", "title", "company")
BILLING_FIELDS = (
    "billing_contact_name",
    "billing_contact_email",
    "billing_address",
    "billing_city",
    "billing_state",
    "billing_zip",
    "billing_po",
    "billing_notes",
)


@dataclass
class WizardState:
    """Everything one visitor has answered so far, plus the values derived from it."""

    format: str = ""
    program: str = ""
    attendance_blocks: List[str] = field(default_factory=list)

    session_id: str = ""
    session_record: Optional[Dict[str, Any]] = None
    city: str = ""
    state_province: str = ""
    venue_name: str = ""

    base_price: int = 0
    coupon_code: str = ""
    coupon_kind: str = ""
    coupon_value: float = 0
    coupon_source: str = ""
    coupon_record_id: str = ""
    coupon_discount: int = 0
    amount_due: int = 0

    derived_start: Optional[str] = None
    derived_end: Optional[str] = None

    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    title: str = ""
    company: str = ""

    payment_method: str = ""
    billing_contact_name: str = ""
    billing_contact_email: str = ""
    billing_address: str = ""
    billing_city: str = ""
    billing_state: str = ""
    billing_zip: str = ""
    billing_po: str = ""
    billing_notes: str = ""

    # Answers pinned by URL parameters; the planner keeps those steps omitted.
    prefilled: List[str] = field(default_factory=list)
    steps: List[str] = field(default_factory=list)
    current_step: str = ""

    registration_code: str = ""
    payment_intent_id: str = ""
    completed: bool = False

    @property
    def is_full(self) -> bool:
        return not self.attendance_blocks

    @property
    def attendance_type(self) -> str:
        if self.is_full:
            return FULL_ATTENDANCE
        return ", ".join(self.attendance_blocks)

    def clear_coupon(self) -> None:
        self.coupon_code = ""
        self.coupon_kind = ""
        self.coupon_value = 0
        self.coupon_source = ""
        self.coupon_record_id = ""
        self.coupon_discount = 0
        self.amount_due = self.base_price

    def clear_session(self) -> None:
        self.session_id = ""
        self.session_record = None
        self.city = ""
        self.state_province = ""
        self.venue_name = ""
        self.derived_start = None
        self.derived_end = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["attendance_type"] = self.attendance_type
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "WizardState":
        if not isinstance(data, dict):
            return cls()
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


def load_state() -> WizardState:
    return WizardState.from_dict(session.get(SESSION_KEY))


def save_state(state: WizardState) -> None:
    data = state.to_dict()
    data.pop("attendance_type", None)
    session[SESSION_KEY] = data
    session.modified = True


def clear_state() -> None:
    session.pop(SESSION_KEY, None)
