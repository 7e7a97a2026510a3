"""Stripe payment intents: the /api/create-payment-intent endpoint and server-side card charges."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import stripe
from flask import Blueprint, jsonify, request

from cors import enable_cors
from site_settings import (
    STRIPE_CURRENCY,
    STRIPE_DESCRIPTION_DEFAULT,
    ConfigurationError,
    require_setting,
)

log = logging.getLogger(__name__)

payments_bp = enable_cors(Blueprint("payments", __name__))

MIN_AMOUNT_CENTS = 100
PAYMENT_SOURCE = "iaml_registration_page"


class PaymentError(Exception):
    """A payment could not be completed; the message is safe to show the user."""


def to_cents(amount: float) -> int:
    return int(round(float(amount) * 100))


def create_payment_intent(
    amount_cents: int,
    email: Optional[str] = None,
    description: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    payment_method_id: Optional[str] = None,
):
    """Create (and, given a payment method, confirm) a PaymentIntent."""
    api_key = require_setting("STRIPE_SECRET_KEY")
    params: Dict[str, Any] = {
        "amount": int(round(amount_cents)),
        "currency": STRIPE_CURRENCY,
        "description": description or STRIPE_DESCRIPTION_DEFAULT,
        "metadata": {**(metadata or {}), "source": PAYMENT_SOURCE},
        "api_key": api_key,
    }
    if email:
        params["receipt_email"] = email
    if payment_method_id:
        params["payment_method"] = payment_method_id
        params["confirm"] = True
        params["automatic_payment_methods"] = {"enabled": True, "allow_redirects": "never"}
    else:
        params["automatic_payment_methods"] = {"enabled": True}
    return stripe.PaymentIntent.create(**params)


def charge_registration(
    amount_due: float,
    email: str,
    description: str,
    metadata: Dict[str, Any],
    payment_method_id: Optional[str],
) -> str:
    """Charge the card and return the PaymentIntent id.

    Raises :class:`PaymentError` with the processor's message on any failure.
    """
    if not payment_method_id:
        raise PaymentError("Please enter your card details")
    try:
        intent = create_payment_intent(
            to_cents(amount_due),
            email=email,
            description=description,
            metadata=metadata,
            payment_method_id=payment_method_id,
        )
    except ConfigurationError:
        log.error("STRIPE_SECRET_KEY not configured")
        raise PaymentError("Payment system not configured")
    except stripe.CardError as e:
        raise PaymentError(e.user_message or str(e))
    except stripe.StripeError as e:
        log.exception("Stripe charge failed")
        raise PaymentError(e.user_message or "Payment processing failed")

    if intent.status != "succeeded":
        log.warning("PaymentIntent %s finished with status %s", intent.id, intent.status)
        raise PaymentError("Payment not completed")
    return intent.id


@payments_bp.post("/create-payment-intent")
def create_payment_intent_endpoint():
    body = request.get_json(silent=True) or {}
    amount = body.get("amount")
    if isinstance(amount, bool) or not isinstance(amount, (int, float)) or amount < MIN_AMOUNT_CENTS:
        return jsonify({"error": "Invalid amount"}), 400

    metadata = body.get("metadata") if isinstance(body.get("metadata"), dict) else {}
    try:
        intent = create_payment_intent(
            amount,
            email=body.get("email") or None,
            description=body.get("description") or None,
            metadata=metadata,
        )
    except ConfigurationError:
        log.error("STRIPE_SECRET_KEY not configured")
        return jsonify({"error": "Payment system not configured"}), 500
    except stripe.CardError as e:
        return jsonify({"error": e.user_message or str(e)}), 400
    except stripe.InvalidRequestError:
        log.exception("Stripe rejected the payment intent request")
        return jsonify({"error": "Invalid payment request"}), 400
    except stripe.StripeError:
        log.exception("Stripe error")
        return jsonify({"error": "Payment processing failed"}), 500

    return jsonify({"clientSecret": intent.client_secret, "paymentIntentId": intent.id}), 200
