from flask import Blueprint, request, jsonify, current_app, g
from sqlalchemy.orm.exc import StaleDataError

from models import db
from models.user import User
from security.password import hash_password, needs_rehash, verify_password
from security.session import create_session, revoke_session, revoke_all_sessions
from security.csrf import clear_csrf_token, issue_csrf_token
from security.password_policy import validate_password
from services.ledger import initial_points
from utils.audit import log_event
from utils.auth_context import login_required


auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _is_valid_email(email: str) -> bool:
    return isinstance(email, str) and "@" in email and len(email) <= 255


def _profile_dict(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "user_name": user.display_name,
        "bio": user.bio or "",
        "points": user.points,
        "created_at": user.created_at.isoformat(),
    }


@auth_bp.post("/register")
def register():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""

    if not _is_valid_email(email):
        return jsonify(error="Invalid email"), 400
    valid, errors = validate_password(password)
    if not valid:
        return jsonify(error="Password does not meet policy", details=errors), 400

    if User.query.filter_by(email=email).first():
        log_event("REGISTER_FAIL_EMAIL_EXISTS", metadata={"email": email})
        return jsonify(error="Email already registered"), 409

    # profile initialization is the only writer of points outside a booking
    user = User(
        email=email,
        password_hash=hash_password(password),
        user_name=email.split("@")[0],
        bio="",
        points=initial_points(),
    )
    db.session.add(user)
    db.session.commit()
    log_event("REGISTER_SUCCESS", user_id=user.id, metadata={"points": user.points})

    return jsonify(message="Registered successfully", id=user.id), 201


@auth_bp.post("/login")
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""

    user = User.query.filter_by(email=email).first()
    if not user or not verify_password(password, user.password_hash):
        log_event("LOGIN_FAIL", user_id=user.id if user else None, metadata={"email": email})
        return jsonify(error="Invalid credentials"), 401

    # upgrade hashes made under an older BCRYPT_ROUNDS while we hold the plaintext
    if needs_rehash(user.password_hash):
        user.password_hash = hash_password(password)
        db.session.commit()

    # Rotate: revoke any existing sessions for this user
    revoked_count = revoke_all_sessions(user.id)

    raw_token = create_session(user.id)
    cookie_name = current_app.config.get("AUTH_COOKIE_NAME", "skillswap_session")
    max_age = current_app.config.get("SESSION_LIFETIME_SECONDS", 8 * 60 * 60)

    resp = jsonify(message="Login OK", id=user.id)
    resp.set_cookie(
        cookie_name,
        raw_token,
        httponly=True,
        secure=current_app.config.get("SESSION_COOKIE_SECURE", False),
        samesite=current_app.config.get("SESSION_COOKIE_SAMESITE", "Lax"),
        max_age=max_age,
        path="/",
    )

    resp = issue_csrf_token(resp)

    log_event("LOGIN_SUCCESS", user_id=user.id, metadata={"revoked_sessions": revoked_count})
    return resp, 200


@auth_bp.get("/me")
@login_required
def me():
    return jsonify(_profile_dict(g.user)), 200


@auth_bp.post("/logout")
@login_required
def logout():
    cookie_name = current_app.config.get("AUTH_COOKIE_NAME", "skillswap_session")
    raw_token = request.cookies.get(cookie_name)

    revoke_session(raw_token)
    log_event("LOGOUT", user_id=g.user.id)

    resp = jsonify(message="Logged out")
    resp.delete_cookie(cookie_name, path="/")
    clear_csrf_token(resp)
    return resp, 200


@auth_bp.post("/logout_all")
@login_required
def logout_all():
    cookie_name = current_app.config.get("AUTH_COOKIE_NAME", "skillswap_session")

    count = revoke_all_sessions(g.user.id)
    log_event("LOGOUT_ALL", user_id=g.user.id, metadata={"revoked_sessions": count})

    resp = jsonify(message="Logged out everywhere", revoked_sessions=count)
    resp.delete_cookie(cookie_name, path="/")
    clear_csrf_token(resp)
    return resp, 200


@auth_bp.get("/profile")
@login_required
def get_profile():
    return jsonify(_profile_dict(g.user)), 200


@auth_bp.post("/profile")
@login_required
def update_profile():
    data = request.get_json(silent=True) or {}
    user_name = data.get("user_name")
    bio = data.get("bio")

    # points is not accepted here; it changes only through bookings
    if user_name is not None:
        if not isinstance(user_name, str) or not user_name.strip() or len(user_name.strip()) > 80:
            return jsonify(error="Invalid user_name"), 400
        g.user.user_name = user_name.strip()

    if bio is not None:
        if not isinstance(bio, str) or len(bio) > 2000:
            return jsonify(error="Invalid bio"), 400
        g.user.bio = bio.strip()

    try:
        db.session.commit()
    except StaleDataError:
        # the row changed under us (e.g. a booking moved points); nothing was written
        db.session.rollback()
        return jsonify(error="Profile changed concurrently, please retry", retryable=True), 409
    log_event("PROFILE_UPDATE", user_id=g.user.id)
    return jsonify(message="Profile updated", profile=_profile_dict(g.user)), 200
