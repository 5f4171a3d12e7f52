"""
Step Graph Model — the ordered step sequence of one process.

A process is a list of ``Step`` values between exactly one ``start`` and one
``finish`` anchor.  Order is the only source of "next": an action flows to the
step after it, and a decision whose ``yes_target_id`` / ``no_target_id`` is
``None`` falls through to the next step as well.

Every mutation here is pure: it takes a step list and returns a new one; the
input list and its steps are never modified.

Usage:
    steps = create_default_steps()
    steps, step = add_step(steps, StepType.ACTION, label="Check invoice")
    steps = move_step(steps, step.id, 1)
    steps = remove_step(steps, step.id)
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, replace
from enum import Enum

from raciflow.core.exceptions import GraphAnchorError, ValidationError
from raciflow.services.entity_registry import EntityRegistry, clean_text

logger = logging.getLogger(__name__)


class StepType(str, Enum):
    START = "start"
    FINISH = "finish"
    ACTION = "action"
    DECISION = "decision"


ANCHOR_TYPES = frozenset({StepType.START, StepType.FINISH})
ASSIGNABLE_TYPES = frozenset({StepType.ACTION, StepType.DECISION})

START_STEP_ID = "start"
FINISH_STEP_ID = "finish"
ANCHOR_STEP_IDS = frozenset({START_STEP_ID, FINISH_STEP_ID})

DEFAULT_STEP_LABELS: dict[StepType, str] = {
    StepType.START: "Start",
    StepType.FINISH: "Finish",
    StepType.ACTION: "Action",
    StepType.DECISION: "Decision",
}

BRANCHES = ("yes", "no")


@dataclass(frozen=True)
class Step:
    """One node of the process sequence (tagged on ``type``).

    Anchors only use ``id`` / ``label``; decisions additionally use the two
    branch targets.  At most one of ``department_id`` / ``draft_department_name``
    is set, same for the role pair.
    """
    id: str
    type: StepType
    label: str = ""
    department_id: str | None = None
    role_id: str | None = None
    draft_department_name: str | None = None
    draft_role_name: str | None = None
    yes_target_id: str | None = None
    no_target_id: str | None = None

    @property
    def is_anchor(self) -> bool:
        return self.type in ANCHOR_TYPES

    @property
    def is_decision(self) -> bool:
        return self.type == StepType.DECISION

    @property
    def display_label(self) -> str:
        return self.label.strip() or DEFAULT_STEP_LABELS[self.type]

    @classmethod
    def from_dict(cls, data) -> "Step":
        """Parse one camelCase step payload.

        Ids and names are trimmed (blank → ``None``); a set id wins over the
        matching draft name; fields that do not apply to the type are dropped.

        Raises:
            ValidationError: If the payload is not an object or has an unknown type.
        """
        if not isinstance(data, dict):
            raise ValidationError("Step must be an object", details={"step": "Must be an object"})
        raw_type = data.get("type")
        try:
            step_type = StepType(raw_type)
        except ValueError:
            raise ValidationError(
                f"Unknown step type '{raw_type}'",
                details={"type": f"Must be one of {', '.join(t.value for t in StepType)}"},
            ) from None

        label = data.get("label")
        label = label.strip() if isinstance(label, str) else ""

        if step_type == StepType.START:
            return cls(id=START_STEP_ID, type=step_type, label=label or DEFAULT_STEP_LABELS[step_type])
        if step_type == StepType.FINISH:
            return cls(id=FINISH_STEP_ID, type=step_type, label=label or DEFAULT_STEP_LABELS[step_type])

        department_id = clean_text(data.get("departmentId"))
        role_id = clean_text(data.get("roleId"))
        is_decision = step_type == StepType.DECISION
        return cls(
            id=clean_text(data.get("id")) or new_step_id(),
            type=step_type,
            label=label,
            department_id=department_id,
            role_id=role_id,
            draft_department_name=None if department_id else clean_text(data.get("draftDepartmentName")),
            draft_role_name=None if role_id else clean_text(data.get("draftRoleName")),
            yes_target_id=clean_text(data.get("yesTargetId")) if is_decision else None,
            no_target_id=clean_text(data.get("noTargetId")) if is_decision else None,
        )

    def to_dict(self) -> dict:
        result = {"id": self.id, "label": self.label, "type": self.type.value}
        if self.is_anchor:
            return result
        result.update({
            "departmentId": self.department_id,
            "roleId": self.role_id,
            "draftDepartmentName": self.draft_department_name,
            "draftRoleName": self.draft_role_name,
        })
        if self.is_decision:
            result["yesTargetId"] = self.yes_target_id
            result["noTargetId"] = self.no_target_id
        return result


def new_step_id() -> str:
    return str(uuid.uuid4())


# ── (De)serialization ─────────────────────────────────────────────────────────


def steps_from_payload(payload) -> list[Step]:
    """Parse a JSON ``steps`` array (or a string holding one).

    Raises:
        ValidationError: If the payload is not a list, a step is malformed,
            two steps share an id, or an action / decision uses an anchor id.
    """
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except ValueError:
            logger.warning("Unparseable steps payload", extra={"payload_length": len(payload)})
    if not isinstance(payload, list):
        raise ValidationError("steps must be a list", details={"steps": "Must be a list"})
    steps = [Step.from_dict(item) for item in payload]
    seen: set[str] = set()
    for step in steps:
        # repeated anchors are left to ensure_anchors
        if not step.is_anchor:
            if step.id in ANCHOR_STEP_IDS:
                raise ValidationError(
                    f"Step id '{step.id}' is reserved",
                    details={"steps": f"Only the {step.id} step may use the id '{step.id}'"},
                )
            if step.id in seen:
                raise ValidationError(
                    f"Duplicate step id '{step.id}'",
                    details={"steps": f"Step id '{step.id}' is used more than once"},
                )
        seen.add(step.id)
    return steps


def steps_to_payload(steps) -> list[dict]:
    return [s.to_dict() for s in steps]


def steps_equal(a, b) -> bool:
    """Dirty-check: True when both sequences serialize identically."""
    return steps_to_payload(a) == steps_to_payload(b)


def step_index(steps) -> dict[str, int]:
    """Map step id → position (first occurrence wins)."""
    index: dict[str, int] = {}
    for position, step in enumerate(steps):
        index.setdefault(step.id, position)
    return index


def flow_targets(steps) -> list[tuple[int | None, int | None]]:
    """Per step, the ``(yes, no)`` positions control flows to.

    Non-decisions flow to the next step on both.  A decision branch without a
    resolvable target falls through to the next step.  ``None`` past the end.
    """
    positions = step_index(steps)
    last = len(steps) - 1
    targets: list[tuple[int | None, int | None]] = []
    for index, step in enumerate(steps):
        next_index = index + 1 if index < last else None
        if step.type != StepType.DECISION:
            targets.append((next_index, next_index))
            continue
        yes_index = positions.get(step.yes_target_id, next_index) if step.yes_target_id else next_index
        no_index = positions.get(step.no_target_id, next_index) if step.no_target_id else next_index
        targets.append((yes_index, no_index))
    return targets


# ── Anchors ───────────────────────────────────────────────────────────────────


def create_default_steps(start_label: str = "Start", finish_label: str = "Finish") -> list[Step]:
    return [
        Step(id=START_STEP_ID, type=StepType.START, label=start_label),
        Step(id=FINISH_STEP_ID, type=StepType.FINISH, label=finish_label),
    ]


def ensure_anchors(steps) -> None:
    """Raise ``GraphAnchorError`` unless there is exactly one start and one finish."""
    for anchor in (StepType.START, StepType.FINISH):
        count = sum(1 for s in steps if s.type == anchor)
        if count != 1:
            raise GraphAnchorError(anchor.value, count)


# ── Mutations ─────────────────────────────────────────────────────────────────


def add_step(steps, step_type, label: str | None = None, after_step_id: str | None = None):
    """Insert a fresh action or decision.

    The new step goes right after ``after_step_id`` when that step exists and
    is not ``finish``; otherwise it is appended just before ``finish``.

    Returns:
        ``(new_steps, new_step)``

    Raises:
        ValidationError: If ``step_type`` is not ``action`` or ``decision``.
    """
    try:
        kind = StepType(step_type)
    except ValueError:
        kind = None
    if kind not in ASSIGNABLE_TYPES:
        raise ValidationError(
            f"Cannot add a step of type '{step_type}'",
            details={"type": "Must be action or decision"},
        )
    ensure_anchors(steps)

    step = Step(id=new_step_id(), type=kind, label=(label or "").strip())
    result = list(steps)

    finish_position = next(i for i, s in enumerate(result) if s.type == StepType.FINISH)
    position = finish_position
    if after_step_id:
        for i, s in enumerate(result):
            if s.id == after_step_id and s.type != StepType.FINISH:
                position = i + 1
                break
    result.insert(position, step)
    return result, step


def remove_step(steps, step_id: str) -> list[Step]:
    """Drop a step and clear every decision branch that pointed at it.

    Removing an anchor, or an id that is not present, returns an unchanged copy.
    """
    target = next((s for s in steps if s.id == step_id), None)
    if target is None or target.is_anchor:
        return list(steps)

    result = []
    for step in steps:
        if step.id == step_id:
            continue
        if step.is_decision and step_id in (step.yes_target_id, step.no_target_id):
            step = replace(
                step,
                yes_target_id=None if step.yes_target_id == step_id else step.yes_target_id,
                no_target_id=None if step.no_target_id == step_id else step.no_target_id,
            )
        result.append(step)
    return result


def move_step(steps, step_id: str, to_index: int) -> list[Step]:
    """Move a step strictly between the anchors.

    No-op when either the step's current position or ``to_index`` lies
    outside ``[1, len(steps) - 2]``.
    """
    result = list(steps)
    lower, upper = 1, len(result) - 2
    from_index = next((i for i, s in enumerate(result) if s.id == step_id), None)
    if from_index is None or not isinstance(to_index, int) or isinstance(to_index, bool):
        return result
    if not (lower <= from_index <= upper and lower <= to_index <= upper):
        return result
    if from_index == to_index:
        return result
    step = result.pop(from_index)
    result.insert(to_index, step)
    return result


def set_branch_target(steps, step_id: str, branch: str, target_id: str | None) -> list[Step]:
    """Point a decision's ``yes`` / ``no`` branch at another step (``None`` = next).

    Unknown targets and self-references fall back to ``None``.  Non-decision
    steps are left untouched.

    Raises:
        ValidationError: If ``branch`` is not ``yes`` or ``no``.
    """
    if branch not in BRANCHES:
        raise ValidationError(f"Unknown branch '{branch}'", details={"branch": "Must be yes or no"})
    ids = {s.id for s in steps}
    target = clean_text(target_id)
    if target not in ids or target == step_id:
        target = None

    field_name = "yes_target_id" if branch == "yes" else "no_target_id"
    return [
        replace(s, **{field_name: target}) if s.id == step_id and s.is_decision else s
        for s in steps
    ]


def assign_department(steps, step_id: str, department_id: str | None, registry: EntityRegistry) -> list[Step]:
    """Set (or clear, with ``None``) a step's department.

    The role is kept only when it belongs to the new department; draft names
    are cleared.

    Raises:
        ValidationError: If ``department_id`` is not in the registry.
    """
    department_id = clean_text(department_id)
    if department_id is not None and registry.department(department_id) is None:
        raise ValidationError(
            f"Unknown department '{department_id}'",
            details={"departmentId": "Department not found"},
        )

    result = []
    for step in steps:
        if step.id == step_id and not step.is_anchor:
            role = registry.role(step.role_id)
            keep_role = department_id is not None and role is not None and role.department_id == department_id
            step = replace(
                step,
                department_id=department_id,
                draft_department_name=None,
                role_id=step.role_id if keep_role else None,
                draft_role_name=None,
            )
        result.append(step)
    return result


def assign_role(steps, step_id: str, role_id: str | None, registry: EntityRegistry) -> list[Step]:
    """Set (or clear, with ``None``) a step's role; the role's department follows.

    Raises:
        ValidationError: If ``role_id`` is not in the registry.
    """
    role_id = clean_text(role_id)
    role = None
    if role_id is not None:
        role = registry.role(role_id)
        if role is None:
            raise ValidationError(f"Unknown role '{role_id}'", details={"roleId": "Role not found"})

    result = []
    for step in steps:
        if step.id == step_id and not step.is_anchor:
            if role is None:
                step = replace(step, role_id=None, draft_role_name=None)
            else:
                step = replace(
                    step,
                    role_id=role.id,
                    draft_role_name=None,
                    department_id=role.department_id,
                    draft_department_name=None,
                )
        result.append(step)
    return result


def rename_step(steps, step_id: str, label: str) -> list[Step]:
    return [
        replace(s, label=(label or "").strip()) if s.id == step_id else s
        for s in steps
    ]
