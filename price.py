# price.py
from flask import Blueprint, jsonify, request

from pricing import compute_amount_due, format_currency
from program_catalog import catalog_payload, normalize_blocks, resolve_program

price_bp = Blueprint("price", __name__)

CURRENCY = "USD"


def _programs_payload() -> list:
    """Catalog rows with display prices added."""
    rows = catalog_payload()
    for row in rows:
        row["price_display"] = format_currency(row["price"], CURRENCY)
        for block in row["blocks"]:
            block["price_display"] = format_currency(block["price"], CURRENCY)
    return rows


@price_bp.get("/api")       # <-- becomes /price/api
def price_api():
    return jsonify({
        "currency": CURRENCY,
        "programs": _programs_payload(),
    })


@price_bp.get("/quote")     # <-- becomes /price/quote
def price_quote():
    program = resolve_program(request.args.get("program"))
    if not program:
        return jsonify({"error": "Unknown program"}), 400

    raw = request.args.getlist("blocks")
    if len(raw) == 1:
        raw = raw[0].split(",")
    selected, unknown = normalize_blocks(program, raw)
    if unknown:
        return jsonify({"error": f"Unknown block: {', '.join(unknown)}"}), 400

    quote = compute_amount_due(program, not selected, selected)
    return jsonify({
        "program": program,
        "blocks": [] if quote.is_full else selected,
        "is_full": quote.is_full,
        "upgraded": quote.upgraded,
        "amount": quote.amount,
        "amount_display": format_currency(quote.amount, CURRENCY),
        "currency": CURRENCY,
    })
