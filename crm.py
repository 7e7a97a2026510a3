"""GoHighLevel webhook proxy."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Tuple

import requests
from flask import Blueprint, jsonify, request

from cors import enable_cors
from site_settings import HTTP_TIMEOUT_SECONDS, ConfigurationError, require_setting

log = logging.getLogger(__name__)

crm_bp = enable_cors(Blueprint("crm", __name__))

WEBHOOK_SETTINGS = {
    "registration": "GHL_REGISTRATION_WEBHOOK",
    "contact": "GHL_CONTACT_WEBHOOK",
}


class CrmError(Exception):
    def __init__(self, message: str, status: int = 502, details: Any = None):
        super().__init__(message)
        self.status = status
        self.details = details


def forward_to_webhook(kind: str, data: Dict[str, Any]) -> Tuple[int, Any]:
    """POST ``data`` to the webhook configured for ``kind``.

    GoHighLevel often answers with an empty or non-JSON body; those count as
    success whenever the status is 2xx.
    """
    url = require_setting(WEBHOOK_SETTINGS[kind])
    response = requests.post(url, json=data, timeout=HTTP_TIMEOUT_SECONDS)
    text = response.text or ""
    try:
        body = json.loads(text) if text else {"success": True}
    except ValueError:
        body = {"success": response.ok}
    return response.status_code, body


def send_registration(payload: Dict[str, Any]) -> Any:
    try:
        status, body = forward_to_webhook("registration", payload)
    except ConfigurationError:
        log.error("Missing GHL webhook configuration for type: registration")
        raise CrmError("Registration service is not configured", 500)
    except requests.RequestException as e:
        log.exception("GHL webhook request failed")
        raise CrmError("We couldn't reach the registration service. Please try again.") from e
    if status >= 400:
        log.error("GHL webhook answered %s: %s", status, body)
        raise CrmError("We couldn't record your registration. Please try again.", status, body)
    return body


@crm_bp.post("/ghl-webhook")
def ghl_webhook():
    body = request.get_json(silent=True) or {}
    kind = body.get("type")
    data = body.get("data")

    if not kind or not data:
        return jsonify({"error": 'Request body must include "type" and "data" fields'}), 400
    if kind not in WEBHOOK_SETTINGS:
        return jsonify({"error": 'type must be either "registration" or "contact"'}), 400

    try:
        status, upstream = forward_to_webhook(kind, data)
    except ConfigurationError:
        log.error("Missing GHL webhook configuration for type: %s", kind)
        return jsonify({"error": "Server configuration error"}), 500
    except requests.RequestException as e:
        log.exception("GHL webhook proxy error")
        return jsonify({"error": "Internal server error", "message": str(e)}), 500

    if 200 <= status < 300:
        return jsonify({"success": True, "data": upstream}), 200
    return jsonify({
        "success": False,
        "error": "GoHighLevel webhook failed",
        "details": upstream,
        "status": status,
    }), status
