from datetime import timedelta

import pytest
from sqlalchemy import text
from sqlalchemy.orm import Session as OrmSession
from sqlalchemy.orm.exc import StaleDataError

from models import db
from models.availability_slot import SLOT_BOOKED
from models.booking import BOOKING_CANCELLED, BOOKING_COMPLETED, BOOKING_CONFIRMED, Booking
from models.chat_message import ChatMessage
from models.user import User
from services.booking_engine import BookingEngine
from services.booking_lifecycle import cancel_booking, complete_booking, list_bookings_for_user
from services.chat import list_messages, post_message
from services.errors import (
    BookingNotFinished,
    BookingNotFound,
    InsufficientBalance,
    InvalidStatusTransition,
    NotBookingInstructor,
    TransactionConflict,
)
from services.transaction import TransactionRunner


@pytest.fixture
def booked(make_user, make_skill, make_slot):
    instructor = make_user(points=50)
    student = make_user(points=30)
    skill = make_skill(instructor, points_price=20)
    slot = make_slot(skill)
    booking = BookingEngine().attempt_booking(student.id, slot.id, skill.id)
    return instructor, student, slot, booking


def test_complete_after_end_clears_chat(booked):
    instructor, student, _, booking = booked
    post_message(booking.id, student, "See you there")
    post_message(booking.id, instructor, "Bring your guitar")
    assert len(list_messages(booking.id, student.id)) == 2

    done = complete_booking(booking.id, student.id, now=booking.booking_end + timedelta(minutes=1))

    assert done.status == BOOKING_COMPLETED
    assert done.completed_at is not None
    assert ChatMessage.query.filter_by(booking_id=booking.id).count() == 0
    assert student.points == 10
    assert instructor.points == 70


def test_complete_before_end_is_rejected(booked):
    _, student, _, booking = booked

    with pytest.raises(BookingNotFinished):
        complete_booking(booking.id, student.id, now=booking.booking_end - timedelta(minutes=1))

    assert db.session.get(Booking, booking.id).status == BOOKING_CONFIRMED


def test_only_participants_see_a_booking(booked, make_user):
    _, _, _, booking = booked
    stranger = make_user()

    with pytest.raises(BookingNotFound):
        complete_booking(booking.id, stranger.id, now=booking.booking_end + timedelta(hours=1))
    with pytest.raises(BookingNotFound):
        post_message(booking.id, stranger, "hello?")


def test_cancel_by_instructor_keeps_points_by_default(booked):
    instructor, student, slot, booking = booked

    cancelled = cancel_booking(booking.id, instructor.id, reason="Sick")

    assert cancelled.status == BOOKING_CANCELLED
    assert cancelled.cancel_reason == "Sick"
    assert cancelled.refunded_points is None
    assert student.points == 10
    assert instructor.points == 70
    assert slot.status == SLOT_BOOKED


def test_student_cannot_cancel(booked):
    _, student, _, booking = booked

    with pytest.raises(NotBookingInstructor):
        cancel_booking(booking.id, student.id)


def test_terminal_states_do_not_move(booked):
    instructor, student, _, booking = booked
    cancel_booking(booking.id, instructor.id)

    with pytest.raises(InvalidStatusTransition):
        cancel_booking(booking.id, instructor.id)
    with pytest.raises(InvalidStatusTransition):
        complete_booking(booking.id, student.id, now=booking.booking_end + timedelta(hours=1))


def test_cancel_with_refund_policy(app, booked):
    app.config["REFUND_ON_CANCEL"] = True
    instructor, student, _, booking = booked

    cancelled = cancel_booking(booking.id, instructor.id, reason="Double booked")

    assert cancelled.status == BOOKING_CANCELLED
    assert cancelled.refunded_points == 20
    assert student.points == 30
    assert instructor.points == 50


def test_refund_needs_instructor_balance(app, booked):
    app.config["REFUND_ON_CANCEL"] = True
    instructor, student, _, booking = booked
    instructor.points = 5
    db.session.commit()

    with pytest.raises(InsufficientBalance):
        cancel_booking(booking.id, instructor.id)

    assert db.session.get(Booking, booking.id).status == BOOKING_CONFIRMED
    assert student.points == 10
    assert instructor.points == 5


def test_list_bookings_by_role_and_status(booked, make_user, make_skill, make_slot):
    instructor, student, _, first = booked
    other_skill = make_skill(student, title="Chess", category="Games")
    slot = make_slot(other_skill, hours_from_now=72)
    second = BookingEngine().attempt_booking(instructor.id, slot.id, other_skill.id)
    cancel_booking(second.id, student.id)

    assert [b.id for b in list_bookings_for_user(student.id)] == [first.id, second.id]
    assert [b.id for b in list_bookings_for_user(student.id, role="student")] == [first.id]
    assert [b.id for b in list_bookings_for_user(student.id, role="instructor")] == [second.id]
    assert [b.id for b in list_bookings_for_user(student.id, status=BOOKING_CANCELLED)] == [second.id]


def _refund_cancel_elsewhere(booking_id, instructor_id):
    other = OrmSession(db.engine)
    try:
        runner = TransactionRunner(session=other, backoff_seconds=0)
        cancel_booking(booking_id, instructor_id, reason="Venue closed", runner=runner)
    finally:
        other.close()


def test_complete_loses_to_refunded_cancel(app, booked):
    app.config["REFUND_ON_CANCEL"] = True
    instructor, student, _, booking = booked
    booking_id, instructor_id, student_id = booking.id, instructor.id, student.id
    end = booking.booking_end

    # the student's complete request has read the booking as confirmed ...
    assert db.session.get(Booking, booking_id).status == BOOKING_CONFIRMED
    # ... when the instructor's refunded cancel commits
    _refund_cancel_elsewhere(booking_id, instructor_id)

    with pytest.raises(InvalidStatusTransition) as excinfo:
        complete_booking(booking_id, student_id, now=end + timedelta(minutes=5))

    assert excinfo.value.to_dict()["status"] == BOOKING_CANCELLED
    final = db.session.get(Booking, booking_id)
    assert final.status == BOOKING_CANCELLED
    assert final.completed_at is None
    assert final.refunded_points == 20
    assert db.session.get(User, student_id).points == 30
    assert db.session.get(User, instructor_id).points == 50


def test_cancel_loses_to_concurrent_complete(app, booked):
    instructor, _, _, booking = booked
    booking_id, instructor_id = booking.id, instructor.id

    assert db.session.get(Booking, booking_id).status == BOOKING_CONFIRMED
    with db.engine.begin() as conn:
        conn.execute(
            text("UPDATE bookings SET status = 'completed', version_id = version_id + 1 WHERE id = :id"),
            {"id": booking_id},
        )

    with pytest.raises(InvalidStatusTransition):
        cancel_booking(booking_id, instructor_id)

    assert db.session.get(Booking, booking_id).status == BOOKING_COMPLETED


class _RecordingRunner(TransactionRunner):
    def run(self, op_name, work, retry_integrity_errors=False, action=None):
        self.action = action
        return super().run(op_name, work, retry_integrity_errors=retry_integrity_errors, action=action)


def test_refund_cancel_names_its_action(app, booked):
    app.config["REFUND_ON_CANCEL"] = True
    instructor, _, _, booking = booked
    runner = _RecordingRunner(backoff_seconds=0)

    cancel_booking(booking.id, instructor.id, runner=runner)

    assert runner.action == "cancellation"


def test_refund_cancel_conflict_says_cancellation(app, booked, monkeypatch):
    app.config["REFUND_ON_CANCEL"] = True
    instructor, _, _, booking = booked
    runner = TransactionRunner(max_attempts=1, backoff_seconds=0)

    def always_stale(session, *args):
        raise StaleDataError("bookings row changed")

    monkeypatch.setattr("services.booking_lifecycle._cancel_with_refund", always_stale)
    with pytest.raises(TransactionConflict) as excinfo:
        cancel_booking(booking.id, instructor.id, runner=runner)

    assert "cancellation" in excinfo.value.message
    assert "booking could not" not in excinfo.value.message
