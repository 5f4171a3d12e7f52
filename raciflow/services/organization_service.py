"""
Organization Service — departments and roles persistence.

Business context:
    Departments and roles are edited two ways:
      - granular calls (create department, add role, rename, delete);
      - a whole-snapshot save from the editor, which may contain draft
        entities created during the session (e.g. by an AI proposal).
        Client-generated ids are kept as primary keys.

    Steps refer to drafts by name only.  After every change that can affect
    name resolution (create, rename, delete, snapshot save) each stored
    process is re-normalized against the new registry so draft names resolve
    and references to deleted entities are cleared.
"""

import logging

from sqlalchemy import func, select

from raciflow.core.exceptions import ConflictError, NotFoundError, ValidationError
from raciflow.models import db
from raciflow.models.organization import Department, Role
from raciflow.services.colors import ColorPalette, is_hex_color
from raciflow.services.entity_registry import (
    NAME_MAX_LENGTH,
    EntityRegistry,
    clean_text,
    normalize_entity_color,
    normalize_name_key,
)
from raciflow.services.graph_normalizer import validate_department_payload

logger = logging.getLogger(__name__)


# ── Queries ───────────────────────────────────────────────────────────────────


def list_departments() -> list[Department]:
    stmt = select(Department).order_by(Department.sort_order, Department.created_at)
    return list(db.session.execute(stmt).scalars().all())


def get_department(department_id: str) -> Department:
    department = db.session.get(Department, department_id)
    if department is None:
        raise NotFoundError(resource="Department", resource_id=department_id)
    return department


def load_registry() -> EntityRegistry:
    """Registry of every persisted department and role."""
    return EntityRegistry([d.to_record() for d in list_departments()])


def department_palette() -> ColorPalette:
    """Palette positioned after the colors already handed out."""
    count = db.session.execute(select(func.count(Department.id))).scalar_one()
    return ColorPalette(start=count)


# ── Validation helpers ────────────────────────────────────────────────────────


def _clean_name(value, field: str = "name") -> str:
    name = clean_text(value)
    if name is None:
        raise ValidationError(f"{field} is required", details={field: "Required"})
    if len(name) > NAME_MAX_LENGTH:
        raise ValidationError(
            f"{field} is too long",
            details={field: f"Must be at most {NAME_MAX_LENGTH} characters"},
        )
    return name


def _clean_color(value, default: str | None = None) -> str:
    if value is None or value == "":
        return normalize_entity_color(default)
    if not is_hex_color(value):
        raise ValidationError("Invalid color", details={"color": "Must be a hex color (#RRGGBB)"})
    return normalize_entity_color(value)


def _assert_department_name_free(name: str, exclude_id: str | None = None) -> None:
    key = normalize_name_key(name)
    for dept in list_departments():
        if dept.id != exclude_id and normalize_name_key(dept.name) == key:
            raise ConflictError(resource="Department", field="name", value=name)


def _assert_role_name_free(department: Department, name: str, exclude_id: str | None = None) -> None:
    key = normalize_name_key(name)
    for role in department.roles:
        if role.id != exclude_id and normalize_name_key(role.name) == key:
            raise ConflictError(resource="Role", field="name", value=name)


# ── Granular mutations ────────────────────────────────────────────────────────


def create_department(name, color=None) -> Department:
    """Create a department; without an explicit color the next palette color is used.

    Raises:
        ValidationError: Blank / too long name or invalid color.
        ConflictError: A department with the same name (case / accent
            insensitive) already exists.
    """
    clean = _clean_name(name)
    _assert_department_name_free(clean)
    resolved_color = _clean_color(color, default=department_palette().next())

    department = Department(
        name=clean,
        color=resolved_color,
        sort_order=len(list_departments()),
    )
    db.session.add(department)
    db.session.commit()

    logger.info("Department created", extra={"department_id": department.id})
    _refresh_processes()
    return department


def update_department(department_id: str, name=None, color=None) -> Department:
    department = get_department(department_id)
    renamed = False
    if name is not None:
        clean = _clean_name(name)
        _assert_department_name_free(clean, exclude_id=department.id)
        renamed = clean != department.name
        department.name = clean
    if color is not None:
        department.color = _clean_color(color)
    db.session.commit()

    logger.info("Department updated", extra={"department_id": department.id})
    if renamed:
        _refresh_processes()
    return department


def delete_department(department_id: str) -> None:
    department = get_department(department_id)
    db.session.delete(department)
    db.session.commit()

    logger.info("Department deleted", extra={"department_id": department_id})
    _refresh_processes()


def add_role(department_id: str, name, color=None) -> Role:
    """Append a role to a department (new last column of its matrix).

    Raises:
        NotFoundError: Unknown department.
        ConflictError: The department already has a role with that name.
    """
    department = get_department(department_id)
    clean = _clean_name(name)
    _assert_role_name_free(department, clean)

    role = Role(
        department_id=department.id,
        name=clean,
        color=_clean_color(color),
        sort_order=len(department.roles),
    )
    department.roles.append(role)
    db.session.commit()

    logger.info("Role created", extra={"department_id": department.id, "role_id": role.id})
    _refresh_processes()
    return role


def delete_role(role_id: str) -> None:
    role = db.session.get(Role, role_id)
    if role is None:
        raise NotFoundError(resource="Role", resource_id=role_id)
    department_id = role.department_id
    role.department.roles.remove(role)
    db.session.commit()

    logger.info("Role deleted", extra={"department_id": department_id, "role_id": role_id})
    _refresh_processes()


# ── Snapshot save ─────────────────────────────────────────────────────────────


def save_snapshot(payload) -> list[Department]:
    """Replace the stored organization with ``payload``.

    Departments and roles are upserted by id (draft ids become primary keys);
    departments and roles absent from the payload are deleted.  List order
    becomes ``sort_order``.

    Raises:
        ValidationError: See ``validate_department_payload``.
    """
    validate_department_payload(payload)

    existing = {d.id: d for d in list_departments()}
    kept_department_ids: set[str] = set()
    kept_role_ids: set[str] = set()
    created = 0

    for position, item in enumerate(payload):
        dept_id = clean_text(item["id"])
        department = existing.get(dept_id)
        if department is None:
            department = Department(id=dept_id)
            db.session.add(department)
            created += 1
        department.name = clean_text(item["name"])
        department.color = normalize_entity_color(item.get("color"))
        department.sort_order = position
        kept_department_ids.add(dept_id)

        current_roles = {r.id: r for r in department.roles}
        for role_position, role_item in enumerate(item.get("roles") or []):
            role_id = clean_text(role_item["id"])
            role = current_roles.get(role_id) or db.session.get(Role, role_id)
            if role is None:
                role = Role(id=role_id)
                created += 1
            if role not in department.roles:
                department.roles.append(role)
            role.name = clean_text(role_item["name"])
            role.color = normalize_entity_color(role_item.get("color"))
            role.sort_order = role_position
            kept_role_ids.add(role_id)

    db.session.flush()

    removed_roles = [
        r for r in db.session.execute(select(Role)).scalars().all()
        if r.id not in kept_role_ids
    ]
    for role in removed_roles:
        if role.department is not None and role in role.department.roles:
            role.department.roles.remove(role)
        else:
            db.session.delete(role)

    removed_departments = [d for d_id, d in existing.items() if d_id not in kept_department_ids]
    for department in removed_departments:
        db.session.delete(department)

    db.session.commit()
    logger.info(
        "Organization snapshot saved",
        extra={
            "department_count": len(kept_department_ids),
            "created_count": created,
            "removed_department_count": len(removed_departments),
            "removed_role_count": len(removed_roles),
        },
    )
    _refresh_processes()
    return list_departments()


def _refresh_processes() -> None:
    # local import: process_service imports this module
    from raciflow.services.process_service import renormalize_all_processes

    renormalize_all_processes(load_registry())
