"""
Double-submit CSRF protection for the cookie-authenticated API.

Login sets a readable ``csrf_token`` cookie next to the HttpOnly session
cookie; every state-changing request of a logged-in user must echo it in
the ``X-CSRF-Token`` header.
"""
import secrets
from flask import request, jsonify, current_app, g

CSRF_COOKIE = "csrf_token"
CSRF_HEADER = "X-CSRF-Token"

UNSAFE_METHODS = ("POST", "PUT", "PATCH", "DELETE")

# no session exists yet when these are called
EXEMPT_PATHS = frozenset({"/auth/login", "/auth/register", "/health"})

def issue_csrf_token(resp):
    resp.set_cookie(
        CSRF_COOKIE,
        secrets.token_urlsafe(32),
        httponly=False,  # the client reads it to build the header
        secure=current_app.config.get("SESSION_COOKIE_SECURE", False),
        samesite=current_app.config.get("SESSION_COOKIE_SAMESITE", "Lax"),
        path="/",
    )
    return resp

def clear_csrf_token(resp):
    resp.delete_cookie(CSRF_COOKIE, path="/")
    return resp

def tokens_match(cookie_token, header_token) -> bool:
    if not cookie_token or not header_token:
        return False
    return secrets.compare_digest(cookie_token, header_token)

def csrf_protect():
    """``before_request`` hook. Anonymous writes carry no session to forge."""
    if request.method not in UNSAFE_METHODS or request.path in EXEMPT_PATHS:
        return None
    if getattr(g, "user", None) is None:
        return None

    if not tokens_match(request.cookies.get(CSRF_COOKIE), request.headers.get(CSRF_HEADER)):
        current_app.logger.warning("CSRF check failed for %s %s", request.method, request.path)
        return jsonify(error="CSRF validation failed", code="CSRF_FAILED"), 403
    return None
