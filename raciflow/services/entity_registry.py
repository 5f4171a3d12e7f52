"""
Entity Registry — immutable snapshot of departments and their roles.

A registry is what the process core resolves step references against.  Each
department / role is either *persisted* (stored in the database) or a *draft*
(created during the current editing session, e.g. implied by an AI proposal,
and not saved yet).  Both kinds resolve identically; the flag only matters to
the persistence boundary.

Lookups:
    department(id)                    — by id
    department_by_name(name)          — by normalized name key
    role(id) / role_with_department   — by id
    role_by_name(department_id, name) — by (department, normalized name key)

Name keys are trimmed, diacritic-stripped and case-folded so that
"Finance", " finance " and "FINANCÉ" all resolve to the same entity.

Usage:
    registry = EntityRegistry.from_payload(request_json["departments"])
    dept = registry.department_by_name("sales")
"""

from __future__ import annotations

import unicodedata
import uuid
from dataclasses import dataclass, field, replace

from raciflow.core.exceptions import ValidationError
from raciflow.services.colors import DEFAULT_ENTITY_COLOR, normalize_hex

NAME_MAX_LENGTH = 120


# ── Text helpers ──────────────────────────────────────────────────────────────


def clean_text(value) -> str | None:
    """Trim a string; blank strings and non-strings become ``None``."""
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


def normalize_name_key(value) -> str | None:
    """Comparison key for entity names (trim, strip diacritics, casefold)."""
    trimmed = clean_text(value)
    if trimmed is None:
        return None
    decomposed = unicodedata.normalize("NFKD", trimmed)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.casefold() or None


def collation_key(value) -> tuple[str, str]:
    """Sort key that orders text case- and accent-insensitively, ties broken on raw text."""
    text = value if isinstance(value, str) else ""
    return (normalize_name_key(text) or "", text)


def normalize_entity_color(value) -> str:
    """Stored entity colors are upper-case ``#RRGGBB``."""
    return normalize_hex(value, DEFAULT_ENTITY_COLOR).upper()


# ── Records ───────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RoleRecord:
    id: str
    department_id: str
    name: str
    color: str = DEFAULT_ENTITY_COLOR
    is_draft: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "departmentId": self.department_id,
            "name": self.name,
            "color": self.color,
        }


@dataclass(frozen=True)
class DepartmentRecord:
    id: str
    name: str
    color: str = DEFAULT_ENTITY_COLOR
    roles: tuple[RoleRecord, ...] = field(default_factory=tuple)
    is_draft: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "roles": [r.to_dict() for r in self.roles],
        }

    def with_role(self, role: RoleRecord) -> "DepartmentRecord":
        return replace(self, roles=self.roles + (role,))


# ── Registry ──────────────────────────────────────────────────────────────────


class EntityRegistry:
    """Read-only lookup maps over one departments snapshot.

    When two entities share a name key, the first one in snapshot order
    wins the name lookup.
    """

    def __init__(self, departments=()):
        self._departments: tuple[DepartmentRecord, ...] = tuple(departments)
        self._by_id: dict[str, DepartmentRecord] = {}
        self._by_key: dict[str, DepartmentRecord] = {}
        self._roles: dict[str, tuple[RoleRecord, DepartmentRecord]] = {}
        self._role_keys: dict[tuple[str, str], RoleRecord] = {}

        for dept in self._departments:
            self._by_id.setdefault(dept.id, dept)
            key = normalize_name_key(dept.name)
            if key:
                self._by_key.setdefault(key, dept)
            for role in dept.roles:
                self._roles.setdefault(role.id, (role, dept))
                role_key = normalize_name_key(role.name)
                if role_key:
                    self._role_keys.setdefault((dept.id, role_key), role)

    # ── Construction ──────────────────────────────────────────────────────

    @classmethod
    def from_payload(cls, departments, persisted_ids=None) -> "EntityRegistry":
        """Build a registry from camelCase department payloads.

        Args:
            departments: List of ``{id, name, color, roles: [...]}`` dicts.
            persisted_ids: Ids known to be stored.  When given, every entity
                whose id is not in it is flagged as a draft; when omitted,
                entities are drafts only if they carry ``"isDraft": true``
                or ``"status": "draft"``.

        Raises:
            ValidationError: If the payload is not a list of objects or a name
                is blank.
        """
        if departments is None:
            return cls()
        if not isinstance(departments, list):
            raise ValidationError("departments must be a list", details={"departments": "Must be a list"})

        def _is_draft(item: dict, entity_id: str) -> bool:
            if persisted_ids is not None:
                return entity_id not in persisted_ids
            return bool(item.get("isDraft")) or item.get("status") == "draft"

        records = []
        for index, item in enumerate(departments):
            if not isinstance(item, dict):
                raise ValidationError(
                    "Department payload must be an object",
                    details={f"departments[{index}]": "Must be an object"},
                )
            name = clean_text(item.get("name"))
            if name is None:
                raise ValidationError(
                    "Department name is required",
                    details={f"departments[{index}].name": "Required"},
                )
            dept_id = clean_text(item.get("id")) or str(uuid.uuid4())
            roles = []
            for r_index, role_item in enumerate(item.get("roles") or []):
                if not isinstance(role_item, dict):
                    raise ValidationError(
                        "Role payload must be an object",
                        details={f"departments[{index}].roles[{r_index}]": "Must be an object"},
                    )
                role_name = clean_text(role_item.get("name"))
                if role_name is None:
                    raise ValidationError(
                        "Role name is required",
                        details={f"departments[{index}].roles[{r_index}].name": "Required"},
                    )
                role_id = clean_text(role_item.get("id")) or str(uuid.uuid4())
                roles.append(
                    RoleRecord(
                        id=role_id,
                        department_id=dept_id,
                        name=role_name,
                        color=normalize_entity_color(role_item.get("color")),
                        is_draft=_is_draft(role_item, role_id),
                    )
                )
            records.append(
                DepartmentRecord(
                    id=dept_id,
                    name=name,
                    color=normalize_entity_color(item.get("color")),
                    roles=tuple(roles),
                    is_draft=_is_draft(item, dept_id),
                )
            )
        return cls(records)

    def with_departments(self, departments) -> "EntityRegistry":
        return EntityRegistry(departments)

    def to_payload(self) -> list[dict]:
        return [d.to_dict() for d in self._departments]

    # ── Lookups ───────────────────────────────────────────────────────────

    @property
    def departments(self) -> tuple[DepartmentRecord, ...]:
        return self._departments

    def __len__(self) -> int:
        return len(self._departments)

    def department(self, department_id) -> DepartmentRecord | None:
        if not department_id:
            return None
        return self._by_id.get(department_id)

    def department_by_name(self, name) -> DepartmentRecord | None:
        key = normalize_name_key(name)
        if key is None:
            return None
        return self._by_key.get(key)

    def role(self, role_id) -> RoleRecord | None:
        found = self.role_with_department(role_id)
        return found[0] if found else None

    def role_with_department(self, role_id) -> tuple[RoleRecord, DepartmentRecord] | None:
        if not role_id:
            return None
        return self._roles.get(role_id)

    def role_by_name(self, department_id, name) -> RoleRecord | None:
        key = normalize_name_key(name)
        if key is None or not department_id:
            return None
        return self._role_keys.get((department_id, key))

    def roles_named(self, name) -> list[RoleRecord]:
        """Every role, across all departments, whose name key matches."""
        key = normalize_name_key(name)
        if key is None:
            return []
        return [
            role
            for (_, role_key), role in self._role_keys.items()
            if role_key == key
        ]

    def draft_departments(self) -> list[DepartmentRecord]:
        return [d for d in self._departments if d.is_draft]
