from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Notification(db.Model):
    """Outbox row for a published event; clients poll these."""
    __tablename__ = "notifications"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    event = db.Column(db.String(64), nullable=False, index=True)
    payload = db.Column(db.JSON, nullable=False, default=dict)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event": self.event,
            "payload": self.payload,
            "created_at": to_utc_z(self.created_at),
        }
