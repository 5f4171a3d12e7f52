"""
Graph Normalizer — repairs a step sequence after any mutation.

Policy: stale references heal to a safe default instead of failing.
    - Draft department / role names resolve to ids once the registry holds a
      matching saved entity (name match is case- and accent-insensitive).
      Ids of draft records are turned back into names, since drafts are only
      stored once the organization is saved.
    - Department / role ids unknown to the registry are cleared.
    - A role that belongs to another department than the step's is cleared;
      when the step has no department, it adopts the role's.
    - Decision targets that no longer name a step fall back to "next step".

The one defect that is reported instead of repaired is a missing or duplicated
``start`` / ``finish`` anchor (``GraphAnchorError``).

Proposals coming from outside the editor (AI rewrite, imports) pass through
``normalize_proposal`` which additionally synthesizes draft departments and
roles for names the registry does not know yet.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace

from raciflow.core.exceptions import ValidationError
from raciflow.services.colors import DEFAULT_ENTITY_COLOR, ColorPalette, is_hex_color
from raciflow.services.entity_registry import (
    NAME_MAX_LENGTH,
    DepartmentRecord,
    EntityRegistry,
    RoleRecord,
    clean_text,
    normalize_entity_color,
    normalize_name_key,
)
from raciflow.services.process_graph import (
    Step,
    StepType,
    ensure_anchors,
    steps_from_payload,
    steps_to_payload,
)

logger = logging.getLogger(__name__)

DEFAULT_PROCESS_TITLE = "Process steps"
TITLE_MAX_LENGTH = 120


# ── Single step ───────────────────────────────────────────────────────────────


def normalize_step(step: Step, registry: EntityRegistry, step_ids=None) -> Step:
    """Return ``step`` with every reference resolved or cleared.

    Args:
        step: Step to repair.
        registry: Departments / roles the references must resolve against.
        step_ids: Ids of the containing sequence.  Decision targets outside it
            are reset to ``None``; when omitted, targets are left as they are.

    Idempotent: ``normalize_step(normalize_step(s, r), r) == normalize_step(s, r)``.
    """
    if step.type in (StepType.START, StepType.FINISH):
        return Step(id=step.id, type=step.type, label=step.label)

    department_id = step.department_id
    draft_department = step.draft_department_name
    if department_id:
        record = registry.department(department_id)
        if record is None:
            department_id = None
        elif record.is_draft:
            department_id, draft_department = None, record.name
    if department_id is None and draft_department:
        match = registry.department_by_name(draft_department)
        if match is not None and not match.is_draft:
            department_id = match.id
    if department_id:
        draft_department = None

    role_id = step.role_id
    draft_role = step.draft_role_name
    if role_id:
        found = registry.role_with_department(role_id)
        if found is None:
            role_id = None
        else:
            role, owner = found
            if department_id is None and draft_department is None:
                if owner.is_draft:
                    draft_department = owner.name
                else:
                    department_id = owner.id
            if not _owned_by(owner, department_id, draft_department):
                role_id = None
            elif role.is_draft:
                role_id, draft_role = None, role.name
    if role_id is None and draft_role:
        match = _resolve_draft_role(registry, department_id, draft_department, draft_role)
        if match is not None:
            role_id = match.id
            department_id = match.department_id
    if role_id:
        draft_role = None

    yes_target = no_target = None
    if step.type == StepType.DECISION:
        yes_target, no_target = step.yes_target_id, step.no_target_id
        if step_ids is not None:
            yes_target = yes_target if yes_target in step_ids else None
            no_target = no_target if no_target in step_ids else None

    return replace(
        step,
        department_id=department_id,
        draft_department_name=draft_department,
        role_id=role_id,
        draft_role_name=draft_role,
        yes_target_id=yes_target,
        no_target_id=no_target,
    )


def _owned_by(department: DepartmentRecord, department_id, draft_department) -> bool:
    if department_id:
        return department.id == department_id
    return department.is_draft and normalize_name_key(department.name) == normalize_name_key(draft_department)


def _resolve_draft_role(registry, department_id, draft_department, draft_role) -> RoleRecord | None:
    # draft records have no stored id yet, so a draft name only ever resolves to a saved role
    if department_id:
        match = registry.role_by_name(department_id, draft_role)
        return match if match is not None and not match.is_draft else None
    if draft_department:
        return None
    candidates = [r for r in registry.roles_named(draft_role) if not r.is_draft]
    if len(candidates) == 1:
        return candidates[0]
    return None


def normalize_steps(steps, registry: EntityRegistry) -> list[Step]:
    """Anchor-check, pin ``start`` first and ``finish`` last, normalize every step."""
    ensure_anchors(steps)
    start = next(s for s in steps if s.type == StepType.START)
    finish = next(s for s in steps if s.type == StepType.FINISH)
    ordered = [start] + [s for s in steps if not s.is_anchor] + [finish]
    step_ids = {s.id for s in ordered}
    return [normalize_step(s, registry, step_ids) for s in ordered]


# ── Draft entities ────────────────────────────────────────────────────────────


def merge_draft_entities_from_steps(
    steps,
    departments,
    palette: ColorPalette | None = None,
) -> list[DepartmentRecord]:
    """Synthesize draft departments / roles implied by step draft names.

    Departments are matched by name key; roles by name key within their
    department.  New records get fresh uuid ids, ``is_draft=True`` and either
    the default color or ``palette.next()``.

    Returns:
        Every input department (roles possibly extended) followed by the new
        drafts, in first-seen order.
    """
    ordered: list[DepartmentRecord] = list(departments)
    by_key: dict[str, int] = {}
    by_id: dict[str, int] = {}
    for position, dept in enumerate(ordered):
        by_id.setdefault(dept.id, position)
        key = normalize_name_key(dept.name)
        if key:
            by_key.setdefault(key, position)

    def _next_color() -> str:
        return normalize_entity_color(palette.next()) if palette is not None else DEFAULT_ENTITY_COLOR

    for step in steps:
        if step.is_anchor:
            continue

        position = None
        if step.department_id and step.department_id in by_id:
            position = by_id[step.department_id]
        else:
            draft_name = clean_text(step.draft_department_name)
            key = normalize_name_key(draft_name)
            if key is None:
                continue
            position = by_key.get(key)
            if position is None:
                ordered.append(
                    DepartmentRecord(
                        id=str(uuid.uuid4()),
                        name=draft_name,
                        color=_next_color(),
                        is_draft=True,
                    )
                )
                position = len(ordered) - 1
                by_key[key] = position
                by_id[ordered[position].id] = position

        draft_role = clean_text(step.draft_role_name)
        role_key = normalize_name_key(draft_role)
        if role_key is None or step.role_id:
            continue
        department = ordered[position]
        if any(normalize_name_key(r.name) == role_key for r in department.roles):
            continue
        ordered[position] = department.with_role(
            RoleRecord(
                id=str(uuid.uuid4()),
                department_id=department.id,
                name=draft_role,
                color=_next_color(),
                is_draft=True,
            )
        )

    return ordered


# ── Proposal boundary ─────────────────────────────────────────────────────────


def normalize_title(value, default: str = DEFAULT_PROCESS_TITLE) -> str:
    title = clean_text(value)
    if title is None:
        return default
    return title[:TITLE_MAX_LENGTH]


@dataclass(frozen=True)
class NormalizedProposal:
    title: str
    steps: list
    registry: EntityRegistry

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "steps": steps_to_payload(self.steps),
            "departments": self.registry.to_payload(),
        }


def normalize_proposal(
    candidate,
    registry: EntityRegistry,
    palette: ColorPalette | None = None,
    default_title: str = DEFAULT_PROCESS_TITLE,
) -> NormalizedProposal:
    """Turn an untrusted ``{title, steps}`` candidate into trusted graph state.

    Raises:
        ValidationError: If the candidate is malformed or lacks its anchors.
    """
    if not isinstance(candidate, dict):
        raise ValidationError("Proposal must be an object", details={"proposal": "Must be an object"})

    steps = steps_from_payload(candidate.get("steps"))
    ensure_anchors(steps)
    merged = merge_draft_entities_from_steps(steps, registry.departments, palette)
    merged_registry = registry.with_departments(merged)
    normalized = normalize_steps(steps, merged_registry)

    logger.info(
        "Proposal normalized",
        extra={
            "step_count": len(normalized),
            "draft_department_count": len(merged_registry.draft_departments()),
        },
    )
    return NormalizedProposal(
        title=normalize_title(candidate.get("title"), default_title),
        steps=normalized,
        registry=merged_registry,
    )


# ── Save-time payload check ───────────────────────────────────────────────────


def validate_department_payload(departments) -> None:
    """Validate a departments snapshot before it is persisted.

    Checks names (non-blank, at most 120 characters), colors, unique
    department and role ids, role → department references within the same payload and
    unique role names per department.

    Raises:
        ValidationError: With field-level ``details`` for every problem found.
    """
    if not isinstance(departments, list):
        raise ValidationError("departments must be a list", details={"departments": "Must be a list"})

    errors: dict[str, str] = {}
    payload_ids = {
        clean_text(d.get("id"))
        for d in departments
        if isinstance(d, dict) and clean_text(d.get("id"))
    }
    seen_ids: set[str] = set()
    seen_role_ids: set[str] = set()

    for index, dept in enumerate(departments):
        prefix = f"departments[{index}]"
        if not isinstance(dept, dict):
            errors[prefix] = "Must be an object"
            continue

        dept_id = clean_text(dept.get("id"))
        if dept_id is None:
            errors[f"{prefix}.id"] = "Required"
        elif dept_id in seen_ids:
            errors[f"{prefix}.id"] = f"Duplicate department id '{dept_id}'"
        else:
            seen_ids.add(dept_id)

        _check_name(dept.get("name"), f"{prefix}.name", errors)
        if dept.get("color") is not None and not is_hex_color(dept.get("color")):
            errors[f"{prefix}.color"] = "Must be a hex color (#RRGGBB)"

        roles = dept.get("roles") or []
        if not isinstance(roles, list):
            errors[f"{prefix}.roles"] = "Must be a list"
            continue

        role_keys: set[str] = set()
        for r_index, role in enumerate(roles):
            r_prefix = f"{prefix}.roles[{r_index}]"
            if not isinstance(role, dict):
                errors[r_prefix] = "Must be an object"
                continue
            role_id = clean_text(role.get("id"))
            if role_id is None:
                errors[f"{r_prefix}.id"] = "Required"
            elif role_id in seen_role_ids:
                errors[f"{r_prefix}.id"] = f"Duplicate role id '{role_id}'"
            else:
                seen_role_ids.add(role_id)
            _check_name(role.get("name"), f"{r_prefix}.name", errors)
            if role.get("color") is not None and not is_hex_color(role.get("color")):
                errors[f"{r_prefix}.color"] = "Must be a hex color (#RRGGBB)"

            role_department = clean_text(role.get("departmentId"))
            if role_department is not None:
                if role_department not in payload_ids:
                    errors[f"{r_prefix}.departmentId"] = (
                        f"Department '{role_department}' is not part of this payload"
                    )
                elif role_department != dept_id:
                    errors[f"{r_prefix}.departmentId"] = "Must match the enclosing department"

            key = normalize_name_key(role.get("name"))
            if key is not None:
                if key in role_keys:
                    errors[f"{r_prefix}.name"] = "Role names must be unique within a department"
                role_keys.add(key)

    if errors:
        raise ValidationError("Invalid departments payload", details=errors)


def _check_name(value, field: str, errors: dict) -> None:
    name = clean_text(value)
    if name is None:
        errors[field] = "Required"
    elif len(name) > NAME_MAX_LENGTH:
        errors[field] = f"Must be at most {NAME_MAX_LENGTH} characters"
