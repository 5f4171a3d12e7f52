"""
Role Profile — where one role takes part in the stored process graphs.

Business context:
    A role's profile is the factual basis of its job description: the
    process steps assigned to it, the roles handing work to it and taking
    work from it, and the roles / departments it works with directly.

    Neighbors follow the diagram's flow: an action hands over to the next
    step, a decision to its yes / no targets (next step when unset).

All functions are pure over the snapshots they receive.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from raciflow.core.exceptions import NotFoundError
from raciflow.services.entity_registry import DepartmentRecord, EntityRegistry, RoleRecord, collation_key
from raciflow.services.process_graph import ASSIGNABLE_TYPES, flow_targets


def _unique(values) -> list:
    """Distinct non-empty values, first occurrence order."""
    return list(dict.fromkeys(v for v in values if v))


@dataclass(frozen=True)
class ProfileStep:
    step_id: str
    type: str
    label: str
    department_id: str | None
    previous_role_ids: tuple[str, ...]
    next_role_ids: tuple[str, ...]

    def to_dict(self) -> dict:
        return {
            "stepId": self.step_id,
            "type": self.type,
            "label": self.label,
            "departmentId": self.department_id,
            "previousRoleIds": list(self.previous_role_ids),
            "nextRoleIds": list(self.next_role_ids),
        }


@dataclass(frozen=True)
class ProfileProcess:
    process_id: str
    process_title: str
    steps: tuple[ProfileStep, ...]

    def to_dict(self) -> dict:
        return {
            "processId": self.process_id,
            "processTitle": self.process_title,
            "steps": [s.to_dict() for s in self.steps],
        }


@dataclass
class RoleProfile:
    role: RoleRecord
    department: DepartmentRecord
    processes: list[ProfileProcess] = field(default_factory=list)
    direct_roles: list[RoleRecord] = field(default_factory=list)
    direct_departments: list[DepartmentRecord] = field(default_factory=list)

    @property
    def step_count(self) -> int:
        return sum(len(p.steps) for p in self.processes)

    def to_dict(self) -> dict:
        return {
            "role": {
                "id": self.role.id,
                "name": self.role.name,
                "departmentId": self.department.id,
                "departmentName": self.department.name,
            },
            "processes": [p.to_dict() for p in self.processes],
            "interactions": {
                "directRoles": [r.to_dict() for r in self.direct_roles],
                "directDepartments": [
                    {"id": d.id, "name": d.name, "color": d.color} for d in self.direct_departments
                ],
            },
        }


def _incoming(targets) -> dict[int, list[int]]:
    sources: dict[int, list[int]] = {}
    for source, pair in enumerate(targets):
        for target in dict.fromkeys(t for t in pair if t is not None):
            sources.setdefault(target, []).append(source)
    return sources


def build_role_profile(role_id: str, processes, registry: EntityRegistry) -> RoleProfile:
    """Walk every process and collect the steps assigned to ``role_id``.

    Processes are ordered by title (case / accent insensitive), steps keep
    their sequence order.  Processes without a step for the role are left
    out; a role that appears nowhere gets an empty profile.

    Raises:
        NotFoundError: If the role is not in the registry.
    """
    found = registry.role_with_department(role_id)
    if found is None:
        raise NotFoundError(resource="Role", resource_id=role_id)
    role, department = found
    profile = RoleProfile(role=role, department=department)

    direct_role_ids: list[str] = []
    direct_department_ids: list[str] = []

    for process in sorted(processes, key=lambda p: collation_key(p.title)):
        steps = list(process.steps)
        targets = flow_targets(steps)
        incoming = _incoming(targets)

        profile_steps = []
        for index, step in enumerate(steps):
            if step.type not in ASSIGNABLE_TYPES or step.role_id != role.id:
                continue
            previous = [steps[i] for i in incoming.get(index, [])]
            following = [steps[i] for i in dict.fromkeys(t for t in targets[index] if t is not None)]
            previous_roles = _unique(s.role_id for s in previous)
            next_roles = _unique(s.role_id for s in following)

            direct_role_ids.extend(
                r for r in previous_roles + next_roles
                if r != role.id and registry.role(r) is not None
            )
            direct_department_ids.extend(
                d for d in _unique([step.department_id, *(s.department_id for s in previous + following)])
                if registry.department(d) is not None
            )
            profile_steps.append(
                ProfileStep(
                    step_id=step.id,
                    type=step.type.value,
                    label=step.display_label,
                    department_id=step.department_id,
                    previous_role_ids=tuple(previous_roles),
                    next_role_ids=tuple(next_roles),
                )
            )

        if profile_steps:
            profile.processes.append(
                ProfileProcess(process_id=process.id, process_title=process.title, steps=tuple(profile_steps))
            )

    profile.direct_roles = [registry.role(r) for r in _unique(direct_role_ids)]
    profile.direct_departments = [registry.department(d) for d in _unique(direct_department_ids)]
    return profile
