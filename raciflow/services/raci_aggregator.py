"""
RACI Aggregator — per-department responsibility matrices.

Business context:
    A department's RACI matrix has one column per role of the department and
    two kinds of rows:
      - aggregated rows, derived from process steps assigned to those roles
        (decisions make the role Accountable, actions make it Responsible);
        read-only, grouped by process;
      - manual rows, actions declared directly on the matrix with a
        hand-set R / A / C / I value per role.

    A row is flagged as an issue unless it has at least one Responsible and
    exactly one Accountable.

    Processes are ordered by title and steps by label, case- and
    accent-insensitively; that order is shared by the on-screen matrix and
    every export.

All functions are pure over the snapshots they receive.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field

from raciflow.core.exceptions import NotFoundError, ValidationError
from raciflow.services.entity_registry import (
    NAME_MAX_LENGTH,
    DepartmentRecord,
    EntityRegistry,
    clean_text,
    collation_key,
)
from raciflow.services.process_graph import StepType

RACI_LETTERS: tuple[str, ...] = ("R", "A", "C", "I")
VALID_RACI_VALUES: frozenset[str] = frozenset(RACI_LETTERS)

SOURCE_AGGREGATED = "aggregated"
SOURCE_MANUAL = "manual"


# ── Role action feed ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ProcessSnapshot:
    id: str
    title: str
    steps: list


@dataclass(frozen=True)
class RoleActionAssignment:
    process_id: str
    process_title: str
    step_id: str
    step_label: str
    responsibility: str

    def to_dict(self) -> dict:
        return {
            "processId": self.process_id,
            "processTitle": self.process_title,
            "stepId": self.step_id,
            "stepLabel": self.step_label,
            "responsibility": self.responsibility,
        }


@dataclass
class RoleActionSummary:
    role_id: str
    role_name: str
    department_id: str
    department_name: str
    role_color: str
    actions: list[RoleActionAssignment] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "roleId": self.role_id,
            "roleName": self.role_name,
            "departmentId": self.department_id,
            "departmentName": self.department_name,
            "roleColor": self.role_color,
            "actions": [a.to_dict() for a in self.actions],
        }


def responsibility_for(step_type: StepType) -> str:
    """Deciders are Accountable, doers are Responsible."""
    return "A" if step_type == StepType.DECISION else "R"


def build_role_action_summaries(processes, registry: EntityRegistry) -> list[RoleActionSummary]:
    """One summary per role of the registry with every step assigned to it.

    Only ``action`` / ``decision`` steps whose ``role_id`` is known to the
    registry contribute.  Actions are sorted by process title then step label;
    summaries by role name.
    """
    summaries: dict[str, RoleActionSummary] = {}
    for dept in registry.departments:
        for role in dept.roles:
            summaries.setdefault(
                role.id,
                RoleActionSummary(
                    role_id=role.id,
                    role_name=role.name,
                    department_id=dept.id,
                    department_name=dept.name,
                    role_color=role.color,
                ),
            )

    for process in processes:
        for step in process.steps:
            if step.type not in (StepType.ACTION, StepType.DECISION) or not step.role_id:
                continue
            summary = summaries.get(step.role_id)
            if summary is None:
                continue
            summary.actions.append(
                RoleActionAssignment(
                    process_id=process.id,
                    process_title=process.title,
                    step_id=step.id,
                    step_label=step.display_label,
                    responsibility=responsibility_for(step.type),
                )
            )

    for summary in summaries.values():
        summary.actions.sort(key=lambda a: (collation_key(a.process_title), collation_key(a.step_label)))
    return sorted(summaries.values(), key=lambda s: collation_key(s.role_name))


# ── Aggregation ───────────────────────────────────────────────────────────────


@dataclass
class AggregatedStep:
    id: str
    label: str
    process_id: str
    process_title: str
    responsibility: str
    assigned_role_ids: set[str] = field(default_factory=set)


@dataclass
class ProcessGroup:
    id: str
    title: str
    steps: list[AggregatedStep] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "steps": [
                {
                    "id": s.id,
                    "label": s.label,
                    "responsibility": s.responsibility,
                    "assignedRoleIds": sorted(s.assigned_role_ids),
                }
                for s in self.steps
            ],
        }


def aggregate_department(department: DepartmentRecord, summaries) -> list[ProcessGroup]:
    """Group the department's role assignments by (process, step).

    Roles of other departments are ignored.  When several roles converge on
    the same step, their ids are collected in ``assigned_role_ids``; the first
    responsibility seen for the step is kept.
    """
    by_role = {s.role_id: s for s in summaries}
    processes: dict[str, dict] = {}

    for role in department.roles:
        summary = by_role.get(role.id)
        if summary is None:
            continue
        for action in summary.actions:
            process = processes.get(action.process_id)
            if process is None:
                process = {"id": action.process_id, "title": action.process_title, "steps": {}}
                processes[action.process_id] = process
            aggregated = process["steps"].get(action.step_id)
            if aggregated is None:
                aggregated = AggregatedStep(
                    id=action.step_id,
                    label=action.step_label,
                    process_id=action.process_id,
                    process_title=action.process_title,
                    responsibility=action.responsibility,
                )
                process["steps"][action.step_id] = aggregated
            aggregated.assigned_role_ids.add(role.id)

    groups = [
        ProcessGroup(
            id=p["id"],
            title=p["title"],
            steps=sorted(p["steps"].values(), key=lambda s: collation_key(s.label)),
        )
        for p in processes.values()
    ]
    return sorted(groups, key=lambda g: collation_key(g.title))


# ── Manual matrix ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ManualAction:
    id: str
    name: str

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}


def normalize_raci_value(value) -> str:
    """``R`` / ``A`` / ``C`` / ``I`` (any case) or ``''`` for unset.

    Raises:
        ValidationError: For any other value.
    """
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError("RACI value must be a string", details={"value": "Must be R, A, C, I or empty"})
    letter = value.strip().upper()
    if letter and letter not in VALID_RACI_VALUES:
        raise ValidationError(
            f"Invalid RACI value '{value}'. Must be one of R, A, C, I.",
            details={"value": "Must be R, A, C, I or empty"},
        )
    return letter


@dataclass
class DepartmentMatrixState:
    """Manual actions of one department and their ``{action: {role: value}}`` cells."""
    actions: list[ManualAction] = field(default_factory=list)
    cells: dict[str, dict[str, str]] = field(default_factory=dict)

    def ensure_coverage(self, roles) -> "DepartmentMatrixState":
        """Give every action a cell per role (``''`` when missing); drop cells of removed roles."""
        role_ids = [r.id for r in roles]
        self.cells = {
            action.id: {rid: self.cells.get(action.id, {}).get(rid, "") for rid in role_ids}
            for action in self.actions
        }
        return self

    def add_action(self, name, action_id: str | None = None) -> ManualAction:
        label = clean_text(name)
        if label is None:
            raise ValidationError("Action name is required", details={"name": "Required"})
        if len(label) > NAME_MAX_LENGTH:
            raise ValidationError(
                "Action name is too long",
                details={"name": f"Must be at most {NAME_MAX_LENGTH} characters"},
            )
        action = ManualAction(id=action_id or str(uuid.uuid4()), name=label)
        self.actions.append(action)
        self.cells[action.id] = {}
        return action

    def remove_action(self, action_id: str) -> None:
        self.actions = [a for a in self.actions if a.id != action_id]
        self.cells.pop(action_id, None)

    def set_cell(self, action_id: str, role_id: str, value) -> str:
        """Set one cell; ``ensure_coverage`` must have run for the current roles.

        Raises:
            NotFoundError: If the action is unknown.
            ValidationError: If the role is not a column or the value is invalid.
        """
        letter = normalize_raci_value(value)
        row = self.cells.get(action_id)
        if row is None or not any(a.id == action_id for a in self.actions):
            raise NotFoundError(resource="RACI action", resource_id=action_id)
        if role_id not in row:
            raise ValidationError(
                f"Role '{role_id}' is not part of this department",
                details={"roleId": "Unknown role for this department"},
            )
        row[role_id] = letter
        return letter

    def to_dict(self) -> dict:
        return {
            "actions": [a.to_dict() for a in self.actions],
            "matrix": {action_id: dict(row) for action_id, row in self.cells.items()},
        }


# ── Counts & rows ─────────────────────────────────────────────────────────────


@dataclass
class RaciCounts:
    R: int = 0
    A: int = 0
    C: int = 0
    I: int = 0  # noqa: E741

    @property
    def has_issue(self) -> bool:
        return self.R == 0 or self.A != 1

    @property
    def label(self) -> str:
        return f"{self.R}R / {self.A}A / {self.C}C / {self.I}I"

    def add(self, letter: str, amount: int = 1) -> None:
        setattr(self, letter, getattr(self, letter) + amount)

    def to_dict(self) -> dict:
        return {
            "R": self.R,
            "A": self.A,
            "C": self.C,
            "I": self.I,
            "label": self.label,
            "hasIssue": self.has_issue,
        }


def aggregated_counts(step: AggregatedStep) -> RaciCounts:
    counts = RaciCounts()
    counts.add(step.responsibility, len(step.assigned_role_ids))
    return counts


def manual_counts(state: DepartmentMatrixState, action_id: str, roles) -> RaciCounts:
    counts = RaciCounts()
    row = state.cells.get(action_id, {})
    for role in roles:
        value = row.get(role.id)
        if value:
            counts.add(value)
    return counts


@dataclass
class MatrixRow:
    id: str
    label: str
    values: dict[str, str]
    counts: RaciCounts
    source: str
    process_id: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "values": dict(self.values),
            "summary": self.counts.to_dict(),
            "source": self.source,
            "processId": self.process_id,
        }


def _row_label(process_title: str, step_label: str) -> str:
    return f"{process_title} — {step_label}" if process_title else step_label


def matrix_rows(department: DepartmentRecord, groups, state: DepartmentMatrixState) -> list[MatrixRow]:
    """Aggregated rows (process order) followed by manual actions.

    ``values`` holds one entry per department role, in role order.
    """
    rows: list[MatrixRow] = []
    for group in groups:
        for step in group.steps:
            rows.append(
                MatrixRow(
                    id=step.id,
                    label=_row_label(group.title, step.label),
                    values={
                        role.id: step.responsibility if role.id in step.assigned_role_ids else ""
                        for role in department.roles
                    },
                    counts=aggregated_counts(step),
                    source=SOURCE_AGGREGATED,
                    process_id=group.id,
                )
            )

    for action in state.actions:
        row = state.cells.get(action.id, {})
        rows.append(
            MatrixRow(
                id=action.id,
                label=action.name,
                values={role.id: row.get(role.id, "") for role in department.roles},
                counts=manual_counts(state, action.id, department.roles),
                source=SOURCE_MANUAL,
            )
        )
    return rows


def role_summaries(department: DepartmentRecord, groups, state: DepartmentMatrixState) -> dict[str, RaciCounts]:
    """R / A / C / I tallies per role over aggregated and manual rows."""
    summaries = {role.id: RaciCounts() for role in department.roles}
    for group in groups:
        for step in group.steps:
            for role_id in step.assigned_role_ids:
                if role_id in summaries:
                    summaries[role_id].add(step.responsibility)
    for action in state.actions:
        row = state.cells.get(action.id, {})
        for role in department.roles:
            value = row.get(role.id)
            if value:
                summaries[role.id].add(value)
    return summaries


def role_centric_view(role_id: str, department: DepartmentRecord, groups, state: DepartmentMatrixState) -> dict:
    """One role's assignments grouped by letter.

    Raises:
        NotFoundError: If the role is not part of the department.
    """
    role = next((r for r in department.roles if r.id == role_id), None)
    if role is None:
        raise NotFoundError(resource="Role", resource_id=role_id)

    grouped: dict[str, list[dict]] = {letter: [] for letter in RACI_LETTERS}
    for group in groups:
        for step in group.steps:
            if role_id in step.assigned_role_ids:
                grouped[step.responsibility].append({
                    "id": f"{SOURCE_AGGREGATED}-{group.id}-{step.id}",
                    "title": step.label,
                    "context": group.title,
                    "source": SOURCE_AGGREGATED,
                })
    for action in state.actions:
        value = state.cells.get(action.id, {}).get(role_id)
        if value:
            grouped[value].append({
                "id": action.id,
                "title": action.name,
                "context": None,
                "source": SOURCE_MANUAL,
            })
    return {"roleId": role.id, "roleName": role.name, "assignments": grouped}


def build_department_view(department: DepartmentRecord, summaries, state: DepartmentMatrixState) -> dict:
    """JSON-ready matrix view for one department."""
    state.ensure_coverage(department.roles)
    groups = aggregate_department(department, summaries)
    rows = matrix_rows(department, groups, state)
    per_role = role_summaries(department, groups, state)
    aggregated_count = sum(len(g.steps) for g in groups)

    return {
        "department": department.to_dict(),
        "processes": [g.to_dict() for g in groups],
        "manual": state.to_dict(),
        "rows": [r.to_dict() for r in rows],
        "roleSummaries": {role_id: counts.to_dict() for role_id, counts in per_role.items()},
        "counts": {
            "aggregated": aggregated_count,
            "manual": len(state.actions),
            "total": aggregated_count + len(state.actions),
            "issues": sum(1 for r in rows if r.counts.has_issue),
        },
    }
