from models.db import db
from utils.clock import utcnow

class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    user_name = db.Column(db.String(80), nullable=True)
    bio = db.Column(db.Text, nullable=True)

    # ledger balance: written at signup, then only inside the booking/refund transaction
    points = db.Column(db.Integer, nullable=False, default=0)
    version_id = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        db.CheckConstraint("points >= 0", name="ck_users_points_non_negative"),
    )

    # UPDATE ... WHERE version_id = :seen, so concurrent writers surface as StaleDataError
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def display_name(self) -> str:
        if self.user_name and self.user_name.strip():
            return self.user_name.strip()
        return (self.email or "").split("@")[0] or "anonymous"
