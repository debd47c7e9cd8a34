"""
Status changes after a booking exists: confirmed -> completed / cancelled.

These are single-row writes, not part of the booking transaction. The
booking row is versioned, so when two parties act at once the second write
fails with InvalidStatusTransition instead of overwriting the first. The one
exception is a cancellation under the refund policy, which has to move
points and therefore goes through the same retrying transaction runner as
booking itself.
"""
from datetime import datetime

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.orm.exc import StaleDataError

from models import db
from models.booking import BOOKING_CANCELLED, BOOKING_COMPLETED, Booking
from models.user import User
from services.chat import delete_transcript
from services.errors import (
    ActorNotFound,
    BookingNotFinished,
    BookingNotFound,
    InvalidStatusTransition,
    NotBookingInstructor,
)
from services.ledger import transfer
from services.transaction import TransactionRunner
from utils.clock import utcnow


def _get_booking_for(booking_id: int, actor_id: int) -> Booking:
    booking = db.session.get(Booking, booking_id)
    if booking is None or not booking.involves(actor_id):
        raise BookingNotFound()
    return booking


def _check_transition(booking: Booking, new_status: str) -> None:
    if not booking.can_transition_to(new_status):
        raise InvalidStatusTransition(
            f"Booking is {booking.status} and cannot become {new_status}",
            status=booking.status,
        )


def _commit_status_change(booking: Booking, new_status: str) -> None:
    booking_id = booking.id
    try:
        db.session.commit()
    except StaleDataError:
        # another status change committed since we read the row
        db.session.rollback()
        current = db.session.get(Booking, booking_id)
        raise InvalidStatusTransition(
            f"Booking changed concurrently and cannot become {new_status}",
            status=current.status if current else None,
        )


def refund_on_cancel_enabled() -> bool:
    return bool(current_app.config.get("REFUND_ON_CANCEL", False))


def complete_booking(booking_id: int, actor_id: int, now: datetime = None) -> Booking:
    booking = _get_booking_for(booking_id, actor_id)
    _check_transition(booking, BOOKING_COMPLETED)

    now = now or utcnow()
    if now < booking.booking_end:
        raise BookingNotFinished()

    # staged before the status write so the query's autoflush has nothing to send
    delete_transcript(booking.id)
    booking.status = BOOKING_COMPLETED
    booking.completed_at = now
    _commit_status_change(booking, BOOKING_COMPLETED)
    return booking


def cancel_booking(booking_id: int, actor_id: int, reason: str = None, now: datetime = None,
                   runner: TransactionRunner = None) -> Booking:
    booking = _get_booking_for(booking_id, actor_id)
    if booking.instructor_id != actor_id:
        raise NotBookingInstructor()
    _check_transition(booking, BOOKING_CANCELLED)

    now = now or utcnow()
    if not refund_on_cancel_enabled():
        # points stay with the instructor; the slot stays booked
        booking.status = BOOKING_CANCELLED
        booking.cancelled_at = now
        booking.cancel_reason = reason
        _commit_status_change(booking, BOOKING_CANCELLED)
        return booking

    runner = runner or TransactionRunner.from_config()
    return runner.run(
        "cancel_booking_with_refund",
        lambda session: _cancel_with_refund(session, booking_id, reason, now),
        action="cancellation",
    )


def _cancel_with_refund(session, booking_id: int, reason: str, now: datetime) -> Booking:
    booking = session.get(Booking, booking_id, populate_existing=True)
    if booking is None:
        raise BookingNotFound()
    _check_transition(booking, BOOKING_CANCELLED)

    instructor = session.get(User, booking.instructor_id, populate_existing=True)
    student = session.get(User, booking.student_id, populate_existing=True)
    if instructor is None or student is None:
        raise ActorNotFound()

    transfer(instructor, student, booking.skill_points_price)

    booking.status = BOOKING_CANCELLED
    booking.cancelled_at = now
    booking.cancel_reason = reason
    booking.refunded_points = booking.skill_points_price
    session.flush()
    return booking


def list_bookings_for_user(user_id: int, role: str = None, status: str = None):
    q = Booking.query
    if role == "student":
        q = q.filter(Booking.student_id == user_id)
    elif role == "instructor":
        q = q.filter(Booking.instructor_id == user_id)
    else:
        q = q.filter(or_(Booking.student_id == user_id, Booking.instructor_id == user_id))

    if status:
        q = q.filter(Booking.status == status)

    return q.order_by(Booking.booking_start.asc(), Booking.id.asc()).all()


def booking_to_dict(booking: Booking) -> dict:
    return {
        "id": booking.id,
        "skill_id": booking.skill_id,
        "skill_title": booking.skill_title,
        "skill_points_price": booking.skill_points_price,
        "instructor_id": booking.instructor_id,
        "student_id": booking.student_id,
        "availability_slot_id": booking.availability_slot_id,
        "booking_start": booking.booking_start.isoformat(),
        "booking_end": booking.booking_end.isoformat(),
        "status": booking.status,
        "created_at": booking.created_at.isoformat(),
        "completed_at": booking.completed_at.isoformat() if booking.completed_at else None,
        "cancelled_at": booking.cancelled_at.isoformat() if booking.cancelled_at else None,
        "cancel_reason": booking.cancel_reason,
        "refunded_points": booking.refunded_points,
    }
