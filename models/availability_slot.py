from models.db import db
from utils.clock import utcnow

SLOT_AVAILABLE = "available"
SLOT_BOOKED = "booked"

class AvailabilitySlot(db.Model):
    __tablename__ = "availability_slots"

    id = db.Column(db.Integer, primary_key=True)

    skill_id = db.Column(db.Integer, db.ForeignKey("skills.id"), nullable=False, index=True)
    # copy of the skill owner
    instructor_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    start_time = db.Column(db.DateTime, nullable=False, index=True)
    end_time = db.Column(db.DateTime, nullable=False)

    # available -> booked, once, inside the booking transaction
    status = db.Column(db.String(20), nullable=False, default=SLOT_AVAILABLE)
    version_id = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        # Prevent duplicate windows for the same skill
        db.UniqueConstraint("skill_id", "start_time", "end_time", name="uq_skill_timeslot"),
        db.CheckConstraint("start_time < end_time", name="ck_slot_window_order"),
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_available(self) -> bool:
        return self.status == SLOT_AVAILABLE
