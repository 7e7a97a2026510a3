"""CORS headers for the browser-facing /api endpoints."""
from __future__ import annotations

from flask import Blueprint, Response, request


def add_cors_headers(response: Response) -> Response:
    methods = set(request.url_rule.methods) if request.url_rule is not None else {"GET", "POST"}
    methods.discard("HEAD")
    methods.add("OPTIONS")
    response.headers["Access-Control-Allow-Origin"] = "*"
    response.headers["Access-Control-Allow-Methods"] = ", ".join(sorted(methods))
    response.headers["Access-Control-Allow-Headers"] = "Content-Type"
    return response


def enable_cors(bp: Blueprint) -> Blueprint:
    bp.after_request(add_cors_headers)
    return bp
