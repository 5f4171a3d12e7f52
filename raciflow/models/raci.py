"""
RACI Models — manually declared matrix rows.

RaciAction = a row of a department's matrix that is not derived from any
process step.  RaciCell = the R / A / C / I value one role holds on it.
Unset cells are simply absent.
"""

import uuid
from datetime import datetime, timezone

from raciflow.models import db

__all__ = ["RaciAction", "RaciCell"]


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


class RaciAction(db.Model):
    __tablename__ = "raci_actions"
    __table_args__ = (
        db.Index("idx_raci_action_department", "department_id", "sort_order"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    department_id = db.Column(
        db.String(36),
        db.ForeignKey("departments.id", ondelete="CASCADE"),
        nullable=False,
    )
    name = db.Column(db.String(120), nullable=False)
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    cells = db.relationship(
        "RaciCell",
        backref="action",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def to_dict(self):
        return {"id": self.id, "departmentId": self.department_id, "name": self.name}

    def __repr__(self):
        return f"<RaciAction {self.id}: {self.name}>"


class RaciCell(db.Model):
    __tablename__ = "raci_cells"
    __table_args__ = (
        db.UniqueConstraint("action_id", "role_id", name="uq_raci_cell_action_role"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    action_id = db.Column(
        db.String(36),
        db.ForeignKey("raci_actions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role_id = db.Column(
        db.String(36),
        db.ForeignKey("roles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    value = db.Column(db.String(1), nullable=False, comment="R | A | C | I")

    def to_dict(self):
        return {"actionId": self.action_id, "roleId": self.role_id, "value": self.value}
