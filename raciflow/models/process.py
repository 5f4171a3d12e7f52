"""
Process Model — one process snapshot.

The whole step sequence is stored as a single JSON document and saved as one
unit (last write wins); there is no per-step table.
"""

import uuid
from datetime import datetime, timezone

from raciflow.models import db

__all__ = ["Process"]


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


class Process(db.Model):
    __tablename__ = "processes"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    title = db.Column(db.String(120), nullable=False, default="Process steps")
    steps = db.Column(
        db.JSON, nullable=False, default=list,
        comment="Tagged-union step array: start, action/decision…, finish",
    )

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=_utcnow, onupdate=_utcnow,
    )

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "steps": list(self.steps or []),
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Process {self.id}: {self.title}>"
