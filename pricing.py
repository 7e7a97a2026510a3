"""Pricing rules for full-program and block registrations."""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, NamedTuple, Optional, Tuple, Union

from program_catalog import program_blocks, program_price
from wizard_state import WizardState


class PriceQuote(NamedTuple):
    amount: int
    is_full: bool
    upgraded: bool


def compute_amount_due(program: Optional[str], is_full: bool, selected_blocks: Iterable[str]) -> PriceQuote:
    """Price a selection.

    Buying blocks individually never costs more than the whole program: once
    the block total reaches the full price the selection is treated as Full.
    """
    full_price = program_price(program)
    blocks = program_blocks(program)
    selected = [b for b in selected_blocks if b]
    if not blocks or is_full or not selected:
        return PriceQuote(full_price, True, False)

    total = sum(int(blocks[b]["price"]) for b in selected if b in blocks)
    if total >= full_price:
        return PriceQuote(full_price, True, True)
    return PriceQuote(total, False, False)


def round_half_up(value: Union[int, float, Decimal]) -> int:
    """Round to whole dollars with halves going up, as the site displays them."""
    return int(Decimal(str(value or 0)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def apply_discount(base_price: int, discount: Union[float, Decimal]) -> Tuple[int, int]:
    """Clamp ``discount`` to ``[0, base_price]`` and return ``(discount, amount_due)``."""
    base = max(int(base_price or 0), 0)
    clamped = min(max(round_half_up(discount), 0), base)
    return clamped, max(0, base - clamped)


def reprice(state: WizardState) -> PriceQuote:
    """Refresh ``base_price`` and ``amount_due`` on the state.

    An auto-upgrade to Full clears the block selection.
    """
    quote = compute_amount_due(state.program or None, state.is_full, state.attendance_blocks)
    if quote.upgraded:
        state.attendance_blocks = []
    state.base_price = quote.amount
    state.coupon_discount, state.amount_due = apply_discount(state.base_price, state.coupon_discount)
    return quote


def _currency_symbol(currency: str | None) -> str:
    lookup = {"USD": "$", "EUR": "€", "GBP": "£", "CAD": "$"}
    if not currency:
        return ""
    return lookup.get(currency.upper(), currency.upper())


def format_currency(amount: float, currency: str = "USD") -> str:
    symbol = _currency_symbol(currency)
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{abs(amount):,.2f}"
