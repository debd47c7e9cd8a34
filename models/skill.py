from models.db import db
from utils.clock import utcnow

class Skill(db.Model):
    __tablename__ = "skills"

    id = db.Column(db.Integer, primary_key=True)
    instructor_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    title = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=False)
    category = db.Column(db.String(60), nullable=False, index=True)

    points_price = db.Column(db.Integer, nullable=False)
    duration_minutes = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    instructor = db.relationship("User", lazy="joined")

    __table_args__ = (
        db.CheckConstraint("points_price > 0", name="ck_skills_points_price_positive"),
        db.CheckConstraint("duration_minutes > 0", name="ck_skills_duration_positive"),
    )
