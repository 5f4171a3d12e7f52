"""
Process Service — process snapshots, step editing and diagram rendering.

Business context:
    A process is saved as one unit ({title, steps}); concurrent edits are
    last-write-wins.  Every step list that enters storage goes through the
    normalizer against the current organization registry, so stored graphs
    never hold dangling branch targets or stale role / department ids.

    AI proposals are normalized against the registry (synthesizing draft
    departments / roles for unknown names) and returned without being saved.
"""

import logging

from sqlalchemy import select

from raciflow.core.exceptions import NotFoundError, ValidationError
from raciflow.models import db
from raciflow.models.process import Process
from raciflow.services import organization_service
from raciflow.services.diagram_compiler import BranchLabels, compile_flowchart
from raciflow.services.entity_registry import EntityRegistry
from raciflow.services.graph_normalizer import (
    DEFAULT_PROCESS_TITLE,
    normalize_proposal,
    normalize_steps,
    normalize_title,
)
from raciflow.services.process_graph import (
    add_step,
    assign_department,
    assign_role,
    create_default_steps,
    move_step,
    remove_step,
    rename_step,
    set_branch_target,
    steps_equal,
    steps_from_payload,
    steps_to_payload,
)
from raciflow.services.raci_aggregator import ProcessSnapshot

logger = logging.getLogger(__name__)


# ── Queries ───────────────────────────────────────────────────────────────────


def list_processes() -> list[Process]:
    stmt = select(Process).order_by(Process.updated_at.desc(), Process.id)
    return list(db.session.execute(stmt).scalars().all())


def get_process(process_id: str) -> Process:
    process = db.session.get(Process, process_id)
    if process is None:
        raise NotFoundError(resource="Process", resource_id=process_id)
    return process


def load_steps(process: Process, registry: EntityRegistry) -> list:
    """Parse and normalize a stored step document."""
    return normalize_steps(steps_from_payload(process.steps), registry)


def process_snapshots(registry: EntityRegistry) -> list[ProcessSnapshot]:
    """Every stored process as a normalized snapshot for RACI aggregation.

    Processes whose stored document can no longer be parsed are skipped and
    logged.
    """
    snapshots = []
    for process in list_processes():
        try:
            steps = load_steps(process, registry)
        except ValidationError as exc:
            logger.warning(
                "Skipping unreadable process: %s", exc,
                extra={"process_id": process.id},
            )
            continue
        snapshots.append(ProcessSnapshot(id=process.id, title=process.title, steps=steps))
    return snapshots


# ── Mutations ─────────────────────────────────────────────────────────────────


def create_process(title=None, default_title: str = DEFAULT_PROCESS_TITLE) -> Process:
    """Create a process holding only its ``start`` / ``finish`` anchors."""
    process = Process(
        title=normalize_title(title, default_title),
        steps=steps_to_payload(create_default_steps()),
    )
    db.session.add(process)
    db.session.commit()

    logger.info("Process created", extra={"process_id": process.id})
    return process


def save_process(process_id: str, title, steps_payload, default_title: str = DEFAULT_PROCESS_TITLE) -> Process:
    """Replace title and steps of a process (last write wins).

    Raises:
        NotFoundError: Unknown process.
        ValidationError: Malformed steps or missing anchors.
    """
    process = get_process(process_id)
    registry = organization_service.load_registry()
    steps = normalize_steps(steps_from_payload(steps_payload), registry)

    process.title = normalize_title(title, default_title)
    process.steps = steps_to_payload(steps)
    db.session.commit()

    logger.info(
        "Process saved",
        extra={"process_id": process.id, "step_count": len(steps)},
    )
    return process


def delete_process(process_id: str) -> None:
    process = get_process(process_id)
    db.session.delete(process)
    db.session.commit()
    logger.info("Process deleted", extra={"process_id": process_id})


def _apply_step_edit(process_id: str, edit) -> Process:
    process = get_process(process_id)
    registry = organization_service.load_registry()
    steps = load_steps(process, registry)
    updated = normalize_steps(edit(steps, registry), registry)
    if not steps_equal(steps, updated):
        process.steps = steps_to_payload(updated)
        db.session.commit()
    return process


def add_process_step(process_id: str, step_type, label=None, after_step_id=None) -> Process:
    process = _apply_step_edit(
        process_id,
        lambda steps, _registry: add_step(steps, step_type, label=label, after_step_id=after_step_id)[0],
    )
    logger.info("Process step added", extra={"process_id": process_id})
    return process


def remove_process_step(process_id: str, step_id: str) -> Process:
    """Remove a step; decisions that branched to it fall back to "next step"."""
    process = _apply_step_edit(process_id, lambda steps, _registry: remove_step(steps, step_id))
    logger.info("Process step removed", extra={"process_id": process_id, "step_id": step_id})
    return process


def move_process_step(process_id: str, step_id: str, to_index: int) -> Process:
    """Reorder a step between the anchors; out-of-range moves are ignored."""
    process = _apply_step_edit(process_id, lambda steps, _registry: move_step(steps, step_id, to_index))
    logger.info(
        "Process step moved",
        extra={"process_id": process_id, "step_id": step_id, "to_index": to_index},
    )
    return process


def update_process_step(process_id: str, step_id: str, changes: dict) -> Process:
    """Edit one step in place.

    ``changes`` may hold ``label``, ``departmentId``, ``roleId``,
    ``yesTargetId`` and ``noTargetId``; absent keys are left as they are.
    The department is applied before the role so that a role from another
    department wins.

    Raises:
        NotFoundError: Unknown process or step.
        ValidationError: Unknown department or role id.
    """
    def edit(steps, registry):
        if not any(s.id == step_id for s in steps):
            raise NotFoundError(resource="Step", resource_id=step_id)
        if "label" in changes:
            steps = rename_step(steps, step_id, changes["label"])
        if "departmentId" in changes:
            steps = assign_department(steps, step_id, changes["departmentId"], registry)
        if "roleId" in changes:
            steps = assign_role(steps, step_id, changes["roleId"], registry)
        if "yesTargetId" in changes:
            steps = set_branch_target(steps, step_id, "yes", changes["yesTargetId"])
        if "noTargetId" in changes:
            steps = set_branch_target(steps, step_id, "no", changes["noTargetId"])
        return steps

    process = _apply_step_edit(process_id, edit)
    logger.info("Process step updated", extra={"process_id": process_id, "step_id": step_id})
    return process


def renormalize_all_processes(registry: EntityRegistry) -> int:
    """Re-normalize every stored process against ``registry``.

    Returns:
        Number of processes whose stored steps changed.
    """
    changed = 0
    for process in list_processes():
        try:
            current = steps_from_payload(process.steps)
            updated = normalize_steps(current, registry)
        except ValidationError as exc:
            logger.warning(
                "Cannot re-normalize process: %s", exc,
                extra={"process_id": process.id},
            )
            continue
        payload = steps_to_payload(updated)
        if payload != process.steps:
            process.steps = payload
            changed += 1
    if changed:
        db.session.commit()
    logger.info("Processes re-normalized", extra={"changed_count": changed})
    return changed


# ── Proposal & diagram ────────────────────────────────────────────────────────


def propose(process_id: str, candidate, default_title: str = DEFAULT_PROCESS_TITLE) -> dict:
    """Normalize an externally authored ``{title, steps}`` candidate.

    Nothing is saved; the caller decides whether to keep the proposal.

    Returns:
        ``{"process": {...}, "departments": [...]}`` where departments include
        the drafts the proposal implies.
    """
    process = get_process(process_id)
    registry = organization_service.load_registry()
    palette = organization_service.department_palette()
    proposal = normalize_proposal(candidate, registry, palette=palette, default_title=default_title)

    logger.info(
        "Proposal prepared",
        extra={"process_id": process.id, "step_count": len(proposal.steps)},
    )
    return {
        "process": {
            "id": process.id,
            "title": proposal.title,
            "steps": steps_to_payload(proposal.steps),
            "updatedAt": process.updated_at.isoformat() if process.updated_at else None,
        },
        "departments": [_draft_payload(d) for d in proposal.registry.departments],
    }


def _draft_payload(department) -> dict:
    payload = department.to_dict()
    payload["isDraft"] = department.is_draft
    for role_payload, role in zip(payload["roles"], department.roles):
        role_payload["isDraft"] = role.is_draft
    return payload


def compile_process_diagram(
    process_id: str,
    direction: str,
    show_departments: bool,
    labels: BranchLabels,
) -> dict:
    process = get_process(process_id)
    registry = organization_service.load_registry()
    steps = load_steps(process, registry)
    return compile_flowchart(
        steps, registry,
        direction=direction, show_departments=show_departments, labels=labels,
    ).to_dict()


def compile_payload_diagram(payload: dict, direction: str, show_departments: bool, labels: BranchLabels) -> dict:
    """Compile an unsaved ``{steps, departments}`` editor payload.

    ``departments`` defaults to the stored organization when omitted.

    Raises:
        ValidationError: Malformed payload or missing anchors.
    """
    if "departments" in payload and payload["departments"] is not None:
        registry = EntityRegistry.from_payload(payload["departments"])
    else:
        registry = organization_service.load_registry()
    steps = normalize_steps(steps_from_payload(payload.get("steps")), registry)
    return compile_flowchart(
        steps, registry,
        direction=direction, show_departments=show_departments, labels=labels,
    ).to_dict()

