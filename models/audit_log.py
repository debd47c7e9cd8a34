import json

from utils.clock import utcnow
from models.db import db

class AuditLog(db.Model):
    """Append-only trail of auth and marketplace events (BOOKING_CREATE, BOOKING_FAIL_<CODE>, ...)."""
    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)
    # null for anonymous attempts (e.g. an unauthenticated booking)
    user_id = db.Column(db.Integer, nullable=True, index=True)
    action = db.Column(db.String(80), nullable=False, index=True)
    entity = db.Column(db.String(80), nullable=True)   # skill / slot / booking
    entity_id = db.Column(db.String(80), nullable=True)

    ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    metadata_json = db.Column(db.Text, nullable=True)

    timestamp = db.Column(db.DateTime, default=utcnow, nullable=False)

    @property
    def details(self) -> dict:
        return json.loads(self.metadata_json) if self.metadata_json else {}
