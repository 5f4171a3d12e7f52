"""
Tests: EntityRegistry lookups and payload parsing.
"""

import pytest

from raciflow.core.exceptions import ValidationError
from raciflow.services.entity_registry import (
    DepartmentRecord,
    EntityRegistry,
    RoleRecord,
    clean_text,
    collation_key,
    normalize_entity_color,
    normalize_name_key,
)


def _registry():
    return EntityRegistry.from_payload([
        {
            "id": "d-fin",
            "name": "Finance",
            "color": "#0ea5e9",
            "roles": [{"id": "r-ctrl", "name": "Controller"}, {"id": "r-acc", "name": "Accountant"}],
        },
        {
            "id": "d-ops",
            "name": "Opérations",
            "roles": [{"id": "r-lead", "name": "Team Lead"}, {"id": "r-acc2", "name": "Accountant"}],
        },
    ])


# ── Helpers ───────────────────────────────────────────────────────────────────


def test_clean_text():
    assert clean_text("  a  ") == "a"
    assert clean_text("   ") is None
    assert clean_text(None) is None
    assert clean_text(5) is None


def test_normalize_name_key_is_case_and_accent_insensitive():
    assert normalize_name_key(" FINANCÉ ") == normalize_name_key("finance")
    assert normalize_name_key("") is None


def test_collation_key_orders_accents_with_base_letter():
    names = ["zeta", "Éclair", "alpha"]
    assert sorted(names, key=collation_key) == ["alpha", "Éclair", "zeta"]


def test_normalize_entity_color_uppercases_and_defaults():
    assert normalize_entity_color("#0ea5e9") == "#0EA5E9"
    assert normalize_entity_color(None) == "#C7D2FE"


# ── Lookups ───────────────────────────────────────────────────────────────────


def test_lookup_by_id_and_name():
    registry = _registry()
    assert registry.department("d-fin").name == "Finance"
    assert registry.department_by_name("operations").id == "d-ops"
    assert registry.department("missing") is None
    assert registry.department(None) is None


def test_role_lookups():
    registry = _registry()
    role, dept = registry.role_with_department("r-lead")
    assert role.name == "Team Lead"
    assert dept.id == "d-ops"
    assert registry.role("r-ctrl").department_id == "d-fin"
    assert registry.role_by_name("d-fin", "controller").id == "r-ctrl"
    assert registry.role_by_name("d-ops", "controller") is None


def test_roles_named_spans_departments():
    registry = _registry()
    ids = sorted(r.id for r in registry.roles_named("accountant"))
    assert ids == ["r-acc", "r-acc2"]
    assert registry.roles_named("  ") == []


def test_first_entity_wins_on_name_collision():
    registry = EntityRegistry([
        DepartmentRecord(id="a", name="Sales"),
        DepartmentRecord(id="b", name="SALES"),
    ])
    assert registry.department_by_name("sales").id == "a"
    assert len(registry) == 2


# ── Payload parsing ───────────────────────────────────────────────────────────


def test_from_payload_assigns_parent_department_to_roles():
    registry = EntityRegistry.from_payload([
        {"id": "d1", "name": "Legal", "roles": [{"id": "r1", "name": "Counsel", "departmentId": "other"}]},
    ])
    assert registry.role("r1").department_id == "d1"


def test_from_payload_generates_missing_ids():
    registry = EntityRegistry.from_payload([{"name": "Legal", "roles": [{"name": "Counsel"}]}])
    dept = registry.departments[0]
    assert dept.id
    assert dept.roles[0].id
    assert dept.roles[0].department_id == dept.id


def test_from_payload_draft_flags():
    registry = EntityRegistry.from_payload([
        {"id": "d1", "name": "Legal", "isDraft": True},
        {"id": "d2", "name": "HR", "status": "draft"},
        {"id": "d3", "name": "IT"},
    ])
    assert [d.id for d in registry.draft_departments()] == ["d1", "d2"]


def test_from_payload_persisted_ids_override_flags():
    registry = EntityRegistry.from_payload(
        [{"id": "d1", "name": "Legal", "isDraft": True}, {"id": "d2", "name": "HR"}],
        persisted_ids={"d1"},
    )
    assert [d.id for d in registry.draft_departments()] == ["d2"]


def test_from_payload_none_is_empty():
    assert len(EntityRegistry.from_payload(None)) == 0


@pytest.mark.parametrize("payload", [
    {"name": "not a list"},
    ["not an object"],
    [{"id": "d1", "name": "  "}],
    [{"id": "d1", "name": "Legal", "roles": [{"id": "r1", "name": ""}]}],
])
def test_from_payload_rejects_malformed(payload):
    with pytest.raises(ValidationError):
        EntityRegistry.from_payload(payload)


def test_to_payload_is_camel_case():
    registry = EntityRegistry([
        DepartmentRecord(
            id="d1", name="Legal", color="#112233",
            roles=(RoleRecord(id="r1", department_id="d1", name="Counsel", color="#445566"),),
        ),
    ])
    assert registry.to_payload() == [{
        "id": "d1",
        "name": "Legal",
        "color": "#112233",
        "roles": [{"id": "r1", "departmentId": "d1", "name": "Counsel", "color": "#445566"}],
    }]
