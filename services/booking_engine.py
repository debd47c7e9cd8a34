"""
Booking transaction: turn (student, slot, skill) into a confirmed booking.

The checks that matter for correctness (slot still open, balance still
sufficient, both accounts still present) run inside the same transaction
that flips the slot and moves the points, against freshly read rows. Any
availability or balance the caller showed the user beforehand is only a hint.
"""
from dataclasses import dataclass

from models import db
from models.availability_slot import SLOT_BOOKED, AvailabilitySlot
from models.booking import BOOKING_CONFIRMED, Booking
from models.skill import Skill
from models.user import User
from services.errors import (
    ActorNotFound,
    NoSlotSelected,
    NotAuthenticated,
    SelfBookingForbidden,
    SkillNotFound,
    SlotUnavailable,
)
from services.ledger import transfer
from services.transaction import TransactionRunner
from utils.clock import utcnow


@dataclass(frozen=True)
class BookingRequest:
    student_id: int
    slot_id: int
    skill_id: int
    instructor_id: int
    price: int
    skill_title: str


class BookingEngine:
    def __init__(self, runner: TransactionRunner = None, clock=utcnow):
        self.runner = runner if runner is not None else TransactionRunner.from_config()
        self.clock = clock

    @property
    def session(self):
        return self.runner.session

    def prepare(self, student_id, slot_id, skill_id) -> BookingRequest:
        """Caller-side checks. Raises before any row is written."""
        if student_id is None:
            raise NotAuthenticated()

        skill = self.session.get(Skill, skill_id) if skill_id is not None else None
        if skill is None:
            raise SkillNotFound()

        if student_id == skill.instructor_id:
            raise SelfBookingForbidden()

        if slot_id is None:
            raise NoSlotSelected()

        return BookingRequest(
            student_id=student_id,
            slot_id=slot_id,
            skill_id=skill.id,
            instructor_id=skill.instructor_id,
            price=skill.points_price,
            skill_title=skill.title,
        )

    def attempt_booking(self, student_id, slot_id, skill_id) -> Booking:
        request = self.prepare(student_id, slot_id, skill_id)
        return self.runner.run(
            "attempt_booking",
            lambda session: self._book(session, request),
            retry_integrity_errors=True,
            action="booking",
        )

    # ---------- atomic section ----------

    def _load_user(self, session, user_id):
        return session.get(User, user_id, populate_existing=True)

    def _load_slot(self, session, slot_id):
        return session.get(AvailabilitySlot, slot_id, populate_existing=True)

    def _book(self, session, request: BookingRequest) -> Booking:
        student = self._load_user(session, request.student_id)
        instructor = self._load_user(session, request.instructor_id)
        slot = self._load_slot(session, request.slot_id)

        if student is None or instructor is None:
            raise ActorNotFound()
        if slot is None or slot.skill_id != request.skill_id or not slot.is_available:
            raise SlotUnavailable(slot_id=request.slot_id)

        transfer(student, instructor, request.price)
        slot.status = SLOT_BOOKED

        booking = Booking(
            skill_id=request.skill_id,
            skill_title=request.skill_title,
            skill_points_price=request.price,
            instructor_id=request.instructor_id,
            student_id=request.student_id,
            availability_slot_id=slot.id,
            booking_start=slot.start_time,
            booking_end=slot.end_time,
            status=BOOKING_CONFIRMED,
            created_at=self.clock(),
        )
        session.add(booking)
        session.flush()
        return booking


def attempt_booking(student_id, slot_id, skill_id) -> Booking:
    return BookingEngine().attempt_booking(student_id, slot_id, skill_id)
