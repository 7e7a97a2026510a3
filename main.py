import os, logging
from flask import Flask, Response, jsonify, redirect, request
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from cors import add_cors_headers
from site_settings import SESSION_COOKIE_SECURE, setting

# ---------------- App & config ----------------
app = Flask(__name__)
app.secret_key = os.getenv("SECRET_KEY", "dev-secret-change-me")
app.config.update(
    SESSION_COOKIE_SECURE=SESSION_COOKIE_SECURE,
    SESSION_COOKIE_HTTPONLY=True,
    SESSION_COOKIE_SAMESITE="Lax",
)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(level=LOG_LEVEL)
log = logging.getLogger("iaml-registration")

CANONICAL_HOST = os.getenv("CANONICAL_HOST", "").strip().lower()

# -------------- Routes --------------
@app.get("/robots.txt")
def robots_txt() -> Response:
    return Response("User-agent: *\nDisallow: /api/\nDisallow: /register/\n", mimetype="text/plain")

@app.get("/healthz")
def healthz():
    missing = [
        name
        for name in ("AIRTABLE_BASE_ID", "AIRTABLE_PROGRAMS_API_KEY", "STRIPE_SECRET_KEY", "GHL_REGISTRATION_WEBHOOK")
        if not setting(name)
    ]
    if missing:
        log.warning("Health check: missing settings %s", ", ".join(missing))
    return "ok", 200

# JSON errors for the browser-facing API; routing errors never reach blueprint handlers.
@app.errorhandler(HTTPException)
def api_http_error(exc: HTTPException):
    if not (request.path.startswith("/api/") or request.path.startswith("/register/") or request.path.startswith("/price/")):
        return exc
    if exc.code == 405:
        message = "Method not allowed"
    elif exc.code == 404:
        message = "Not found"
    else:
        message = exc.description or exc.name
    response = jsonify({"error": message})
    response.status_code = exc.code or 500
    if request.path.startswith("/api/"):
        add_cors_headers(response)
    return response

# ---- Blueprints ----
from registration import register_bp
app.register_blueprint(register_bp, url_prefix="/register")

from price import price_bp
app.register_blueprint(price_bp, url_prefix="/price")

from airtable_proxy import airtable_bp
app.register_blueprint(airtable_bp, url_prefix="/api")

from payments import payments_bp
app.register_blueprint(payments_bp, url_prefix="/api")

from crm import crm_bp
app.register_blueprint(crm_bp, url_prefix="/api")

# Trust the hosting proxy so scheme/host are correct
app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)

@app.before_request
def force_canonical_host():
    host = request.host.lower()
    if CANONICAL_HOST and host != CANONICAL_HOST and f"www.{host}" == CANONICAL_HOST:
        return redirect(request.url.replace(f"://{host}", f"://{CANONICAL_HOST}", 1), 301)


# ---------------------------------------------------------------
if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.getenv("PORT", 8080)), debug=False)
