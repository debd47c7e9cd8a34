from models.db import db
from utils.clock import utcnow

BOOKING_CONFIRMED = "confirmed"
BOOKING_COMPLETED = "completed"
BOOKING_CANCELLED = "cancelled"

# completed and cancelled are terminal
BOOKING_TRANSITIONS = {
    BOOKING_CONFIRMED: {BOOKING_COMPLETED, BOOKING_CANCELLED},
    BOOKING_COMPLETED: set(),
    BOOKING_CANCELLED: set(),
}

class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)

    skill_id = db.Column(db.Integer, db.ForeignKey("skills.id"), nullable=False, index=True)
    skill_title = db.Column(db.String(120), nullable=False)
    # price at booking time, never re-read from the skill
    skill_points_price = db.Column(db.Integer, nullable=False)

    instructor_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    student_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    availability_slot_id = db.Column(
        db.Integer, db.ForeignKey("availability_slots.id"), nullable=False, index=True
    )

    booking_start = db.Column(db.DateTime, nullable=False)
    booking_end = db.Column(db.DateTime, nullable=False)

    status = db.Column(db.String(20), nullable=False, default=BOOKING_CONFIRMED)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    completed_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancel_reason = db.Column(db.String(120), nullable=True)
    refunded_points = db.Column(db.Integer, nullable=True)
    version_id = db.Column(db.Integer, nullable=False)

    __table_args__ = (
        # Hard business-rule: only one booking can exist per slot (prevents double booking)
        db.UniqueConstraint("availability_slot_id", name="uq_booking_slot_once"),
    )

    # complete and cancel race; the loser sees StaleDataError instead of overwriting
    __mapper_args__ = {"version_id_col": version_id}

    def can_transition_to(self, new_status: str) -> bool:
        return new_status in BOOKING_TRANSITIONS.get(self.status, set())

    def involves(self, user_id) -> bool:
        return user_id is not None and user_id in (self.student_id, self.instructor_id)
