"""
Organization Models — departments and their roles.

Department (1) ──< Role (N).  Role order within a department is significant:
it is the column order of the department's RACI matrix.
"""

import uuid
from datetime import datetime, timezone

from raciflow.models import db
from raciflow.services.colors import DEFAULT_ENTITY_COLOR
from raciflow.services.entity_registry import DepartmentRecord, RoleRecord

__all__ = ["Department", "Role"]


# ── Helpers ──────────────────────────────────────────────────────────────────

def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class Department(db.Model):
    """Organizational unit; lane of the process diagram."""

    __tablename__ = "departments"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(120), nullable=False)
    color = db.Column(db.String(7), nullable=False, default=DEFAULT_ENTITY_COLOR)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=_utcnow, onupdate=_utcnow,
    )

    roles = db.relationship(
        "Role",
        backref="department",
        order_by="Role.sort_order, Role.created_at",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    raci_actions = db.relationship(
        "RaciAction",
        backref="department",
        order_by="RaciAction.sort_order, RaciAction.created_at",
        cascade="all, delete-orphan",
        lazy="select",
    )

    def to_record(self) -> DepartmentRecord:
        return DepartmentRecord(
            id=self.id,
            name=self.name,
            color=self.color,
            roles=tuple(r.to_record() for r in self.roles),
        )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "roles": [r.to_dict() for r in self.roles],
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Department {self.id}: {self.name}>"


class Role(db.Model):
    """Position within a department; column of the RACI matrix."""

    __tablename__ = "roles"
    __table_args__ = (
        db.Index("idx_role_department", "department_id", "sort_order"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    department_id = db.Column(
        db.String(36),
        db.ForeignKey("departments.id", ondelete="CASCADE"),
        nullable=False,
    )
    name = db.Column(db.String(120), nullable=False)
    color = db.Column(db.String(7), nullable=False, default=DEFAULT_ENTITY_COLOR)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=_utcnow, onupdate=_utcnow,
    )

    raci_cells = db.relationship(
        "RaciCell",
        backref="role",
        cascade="all, delete-orphan",
        lazy="select",
    )

    def to_record(self) -> RoleRecord:
        return RoleRecord(
            id=self.id,
            department_id=self.department_id,
            name=self.name,
            color=self.color,
        )

    def to_dict(self):
        return {
            "id": self.id,
            "departmentId": self.department_id,
            "name": self.name,
            "color": self.color,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Role {self.id}: {self.name}>"
