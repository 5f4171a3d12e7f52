"""
RACI Matrix Service — department matrices, manual rows and exports.

Business context:
    The RACI matrix of a department has one column per role of that
    department.  Rows come from two sources:
      - aggregated: every process step assigned to one of the roles
        (decision → A, action → R), recomputed on each read;
      - manual: actions declared on the matrix itself, with one stored
        R / A / C / I value per (action, role).

    Matrix validation follows the RACI convention: each row needs at least
    one Responsible and exactly one Accountable.  Unlike process-derived rows,
    manual rows are not blocked when they break the rule; they are flagged.
"""

import logging

from sqlalchemy import select

from raciflow.core.exceptions import NotFoundError
from raciflow.models import db
from raciflow.models.organization import Department
from raciflow.models.raci import RaciAction, RaciCell
from raciflow.services import organization_service, process_service, raci_export
from raciflow.services.raci_aggregator import (
    DepartmentMatrixState,
    ManualAction,
    aggregate_department,
    build_department_view,
    build_role_action_summaries,
    matrix_rows,
    role_centric_view,
)
from raciflow.services.role_profile import build_role_profile

logger = logging.getLogger(__name__)

EXPORT_MIMETYPES = {
    "csv": "text/csv; charset=utf-8",
    "markdown": "text/markdown; charset=utf-8",
    "html": "text/html; charset=utf-8",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


# ── Role action feed ──────────────────────────────────────────────────────────


def get_role_action_summaries() -> list:
    """Per-role list of process steps assigned to it, over all processes."""
    registry = organization_service.load_registry()
    snapshots = process_service.process_snapshots(registry)
    return build_role_action_summaries(snapshots, registry)


def get_role_profile(role_id: str) -> dict:
    """Processes, steps and direct collaborators of one role.

    Raises:
        NotFoundError: Unknown role.
    """
    registry = organization_service.load_registry()
    snapshots = process_service.process_snapshots(registry)
    profile = build_role_profile(role_id, snapshots, registry)

    logger.info(
        "Role profile built",
        extra={"role_id": role_id, "process_count": len(profile.processes), "step_count": profile.step_count},
    )
    return profile.to_dict()


# ── Matrix state ──────────────────────────────────────────────────────────────


def _get_department(department_id: str) -> Department:
    return organization_service.get_department(department_id)


def _load_actions(department_id: str) -> list[RaciAction]:
    stmt = (
        select(RaciAction)
        .where(RaciAction.department_id == department_id)
        .order_by(RaciAction.sort_order, RaciAction.created_at)
    )
    return list(db.session.execute(stmt).scalars().all())


def load_matrix_state(department: Department) -> DepartmentMatrixState:
    """Manual rows of a department, covered for its current roles."""
    actions = _load_actions(department.id)
    state = DepartmentMatrixState(
        actions=[ManualAction(id=a.id, name=a.name) for a in actions],
        cells={a.id: {c.role_id: c.value for c in a.cells} for a in actions},
    )
    return state.ensure_coverage(department.roles)


def _department_inputs(department_id: str):
    department = _get_department(department_id)
    record = department.to_record()
    state = load_matrix_state(department)
    summaries = get_role_action_summaries()
    return record, state, summaries


def get_department_matrix(department_id: str) -> dict:
    """Full matrix view (aggregated + manual rows, summaries) of one department."""
    record, state, summaries = _department_inputs(department_id)
    return build_department_view(record, summaries, state)


def get_role_view(department_id: str, role_id: str) -> dict:
    record, state, summaries = _department_inputs(department_id)
    groups = aggregate_department(record, summaries)
    return role_centric_view(role_id, record, groups, state)


# ── Manual rows ───────────────────────────────────────────────────────────────


def add_manual_action(department_id: str, name) -> dict:
    """Append a manual row to a department's matrix.

    Raises:
        NotFoundError: Unknown department.
        ValidationError: Blank or too long name.
    """
    department = _get_department(department_id)
    state = load_matrix_state(department)
    manual = state.add_action(name)

    action = RaciAction(
        id=manual.id,
        department_id=department.id,
        name=manual.name,
        sort_order=len(state.actions) - 1,
    )
    db.session.add(action)
    db.session.commit()

    logger.info(
        "RACI action created",
        extra={"department_id": department.id, "action_id": action.id},
    )
    return action.to_dict()


def _get_action(department_id: str, action_id: str) -> RaciAction:
    action = db.session.get(RaciAction, action_id)
    if action is None or action.department_id != department_id:
        raise NotFoundError(resource="RACI action", resource_id=action_id)
    return action


def remove_manual_action(department_id: str, action_id: str) -> None:
    _get_department(department_id)
    action = _get_action(department_id, action_id)
    db.session.delete(action)
    db.session.commit()
    logger.info(
        "RACI action deleted",
        extra={"department_id": department_id, "action_id": action_id},
    )


def set_matrix_cell(department_id: str, action_id: str, role_id: str, value) -> dict:
    """Set or clear (empty value) one manual cell.

    Raises:
        NotFoundError: Unknown department or action.
        ValidationError: Role outside the department or value not R/A/C/I.
    """
    department = _get_department(department_id)
    _get_action(department_id, action_id)
    state = load_matrix_state(department)
    letter = state.set_cell(action_id, role_id, value)

    existing = db.session.execute(
        select(RaciCell).where(RaciCell.action_id == action_id, RaciCell.role_id == role_id)
    ).scalar_one_or_none()

    if not letter:
        if existing is not None:
            db.session.delete(existing)
            db.session.commit()
            logger.info(
                "RACI cell cleared",
                extra={"department_id": department_id, "action_id": action_id, "role_id": role_id},
            )
        return {"actionId": action_id, "roleId": role_id, "value": ""}

    if existing is not None:
        existing.value = letter
    else:
        db.session.add(RaciCell(action_id=action_id, role_id=role_id, value=letter))
    db.session.commit()

    logger.info(
        "RACI cell set",
        extra={"department_id": department_id, "action_id": action_id, "role_id": role_id},
    )
    return {"actionId": action_id, "roleId": role_id, "value": letter}


# ── Export ────────────────────────────────────────────────────────────────────


def export_department_matrix(department_id: str, fmt: str):
    """Render a department matrix.

    Returns:
        ``(content, mimetype, filename)``; ``content`` is ``str`` for text
        formats and a ``BytesIO`` for xlsx.
    """
    record, state, summaries = _department_inputs(department_id)
    groups = aggregate_department(record, summaries)
    rows = matrix_rows(record, groups, state)
    roles = record.roles

    if fmt == "csv":
        content = raci_export.export_csv(roles, rows)
    elif fmt == "markdown":
        content = raci_export.export_markdown(roles, rows)
    elif fmt == "html":
        content = raci_export.export_html(record.name, roles, rows)
    else:
        content = raci_export.export_xlsx(record.name, roles, rows)

    logger.info(
        "RACI matrix exported",
        extra={"department_id": department_id, "format": fmt, "row_count": len(rows)},
    )
    return content, EXPORT_MIMETYPES[fmt], raci_export.export_filename(record.name, fmt)
