from flask import Blueprint, request, jsonify, g

from services.booking_engine import BookingEngine
from services.booking_lifecycle import (
    booking_to_dict,
    cancel_booking as cancel_booking_service,
    complete_booking as complete_booking_service,
    list_bookings_for_user,
)
from services.chat import list_messages, message_to_dict, post_message
from services.errors import BookingError, BookingNotFound
from services.ledger import get_balance
from services.views import watch_balance, watch_bookings, watch_messages
from models import db
from models.booking import BOOKING_TRANSITIONS, Booking
from utils.audit import log_booking_failure, log_event
from utils.auth_context import current_user_id, login_required
from utils.sse import sse_response

booking_bp = Blueprint("booking", __name__)


def _int_or_none(value):
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


# ---------- STUDENTS: book slot (DOUBLE-BOOKING SAFE) ----------
@booking_bp.post("/bookings")
def create_booking():
    data = request.get_json(silent=True) or {}
    skill_id = _int_or_none(data.get("skill_id"))
    slot_id = _int_or_none(data.get("slot_id"))
    student_id = current_user_id()

    try:
        booking = BookingEngine().attempt_booking(student_id, slot_id, skill_id)
    except BookingError as err:
        log_booking_failure(err, user_id=student_id, metadata={"skill_id": skill_id, "slot_id": slot_id})
        raise

    log_event(
        "BOOKING_CREATE",
        user_id=student_id,
        entity="booking",
        entity_id=booking.id,
        metadata={"slot_id": slot_id, "skill_id": skill_id, "points": booking.skill_points_price},
    )
    return jsonify(booking_to_dict(booking)), 201


# ---------- both parties: history ----------
@booking_bp.get("/bookings/me")
@login_required
def my_bookings():
    role = request.args.get("role")  # student / instructor
    if role not in (None, "student", "instructor"):
        return jsonify(error="role must be student or instructor"), 400

    status = request.args.get("status")
    if status and status not in BOOKING_TRANSITIONS:
        return jsonify(error="Unknown status"), 400

    rows = list_bookings_for_user(g.user.id, role=role, status=status)
    return jsonify([booking_to_dict(b) for b in rows]), 200


@booking_bp.get("/bookings/me/stream")
@login_required
def stream_my_bookings():
    return sse_response(watch_bookings(g.user.id), event="bookings")


@booking_bp.get("/bookings/<int:booking_id>")
@login_required
def get_booking(booking_id: int):
    booking = db.session.get(Booking, booking_id)
    if booking is None or not booking.involves(g.user.id):
        raise BookingNotFound()
    return jsonify(booking_to_dict(booking)), 200


# ---------- lifecycle ----------
@booking_bp.post("/bookings/<int:booking_id>/complete")
@login_required
def complete_booking(booking_id: int):
    booking = complete_booking_service(booking_id, g.user.id)
    log_event("BOOKING_COMPLETE", user_id=g.user.id, entity="booking", entity_id=booking.id)
    return jsonify(booking_to_dict(booking)), 200


@booking_bp.post("/bookings/<int:booking_id>/cancel")
@login_required
def cancel_booking(booking_id: int):
    data = request.get_json(silent=True) or {}
    reason = data.get("reason")
    if reason is not None and not isinstance(reason, str):
        return jsonify(error="reason must be a string"), 400
    reason = (reason or "").strip()[:120] or None

    booking = cancel_booking_service(booking_id, g.user.id, reason=reason)
    log_event(
        "BOOKING_CANCEL",
        user_id=g.user.id,
        entity="booking",
        entity_id=booking.id,
        metadata={"reason": reason, "refunded_points": booking.refunded_points},
    )
    return jsonify(booking_to_dict(booking)), 200


# ---------- chat ----------
@booking_bp.get("/bookings/<int:booking_id>/messages")
@login_required
def get_messages(booking_id: int):
    return jsonify([message_to_dict(m) for m in list_messages(booking_id, g.user.id)]), 200


@booking_bp.post("/bookings/<int:booking_id>/messages")
@login_required
def send_message(booking_id: int):
    data = request.get_json(silent=True) or {}
    try:
        message = post_message(booking_id, g.user, data.get("text"))
    except ValueError as exc:
        return jsonify(error=str(exc)), 400
    return jsonify(message_to_dict(message)), 201


@booking_bp.get("/bookings/<int:booking_id>/messages/stream")
@login_required
def stream_messages(booking_id: int):
    # participant check up front; the stream itself cannot answer 404
    list_messages(booking_id, g.user.id)
    return sse_response(watch_messages(booking_id, g.user.id), event="messages")


# ---------- ledger ----------
@booking_bp.get("/me/balance")
@login_required
def my_balance():
    return jsonify(user_id=g.user.id, points=get_balance(g.user.id)), 200


@booking_bp.get("/me/balance/stream")
@login_required
def stream_my_balance():
    return sse_response(watch_balance(g.user.id), event="balance")
