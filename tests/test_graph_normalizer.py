"""
Tests: graph normalization, draft entity synthesis and proposal handling.

Covers:
  - normalize_step idempotence over messy inputs
  - draft name resolution (case / diacritic insensitive)
  - stale id and dangling branch target repair
  - anchor pinning and GraphAnchorError
  - merge_draft_entities_from_steps / normalize_proposal
  - validate_department_payload
"""

import pytest

from raciflow.core.exceptions import GraphAnchorError, ValidationError
from raciflow.services.colors import ColorPalette
from raciflow.services.entity_registry import EntityRegistry
from raciflow.services.graph_normalizer import (
    DEFAULT_PROCESS_TITLE,
    merge_draft_entities_from_steps,
    normalize_proposal,
    normalize_step,
    normalize_steps,
    normalize_title,
    validate_department_payload,
)
from raciflow.services.process_graph import FINISH_STEP_ID, START_STEP_ID, Step, StepType


def _registry():
    return EntityRegistry.from_payload([
        {
            "id": "d-sales",
            "name": "Sales",
            "roles": [{"id": "r-mgr", "name": "Manager"}, {"id": "r-rep", "name": "Représentant"}],
        },
        {
            "id": "d-fin",
            "name": "Finance",
            "roles": [{"id": "r-ctrl", "name": "Controller"}, {"id": "r-fin-mgr", "name": "Manager"}],
        },
    ])


def _action(step_id="a1", **kwargs):
    return Step(id=step_id, type=StepType.ACTION, label="Act", **kwargs)


def _wrap(*middle):
    return [
        Step(id=START_STEP_ID, type=StepType.START, label="Start"),
        *middle,
        Step(id=FINISH_STEP_ID, type=StepType.FINISH, label="Finish"),
    ]


# ── normalize_step ────────────────────────────────────────────────────────────


MESSY_STEPS = [
    _action(department_id="gone", role_id="r-ctrl"),
    _action(draft_department_name=" SALES ", draft_role_name="representant"),
    _action(department_id="d-sales", role_id="r-ctrl"),
    _action(role_id="r-rep"),
    _action(draft_role_name="Manager"),
    _action(draft_role_name="Controller"),
    _action(draft_department_name="Legal", draft_role_name="Counsel"),
    _action(draft_department_name="Legal", role_id="r-mgr"),
    Step(id="d1", type=StepType.DECISION, label="?", yes_target_id="gone", no_target_id=FINISH_STEP_ID),
    Step(id=START_STEP_ID, type=StepType.START, label="Start", department_id="d-sales"),
]


@pytest.mark.parametrize("step", MESSY_STEPS)
def test_normalize_step_is_idempotent(step):
    registry = _registry()
    step_ids = {START_STEP_ID, FINISH_STEP_ID, "a1", "d1"}
    once = normalize_step(step, registry, step_ids)
    assert normalize_step(once, registry, step_ids) == once


def test_draft_names_resolve_case_and_accent_insensitively():
    step = normalize_step(
        _action(draft_department_name=" SALES ", draft_role_name="REPRESENTANT"),
        _registry(),
    )
    assert step.department_id == "d-sales"
    assert step.role_id == "r-rep"
    assert step.draft_department_name is None
    assert step.draft_role_name is None


def test_unknown_department_id_is_cleared_and_role_adopts_department():
    step = normalize_step(_action(department_id="gone", role_id="r-ctrl"), _registry())
    assert step.department_id == "d-fin"
    assert step.role_id == "r-ctrl"


def test_role_from_other_department_is_cleared():
    step = normalize_step(_action(department_id="d-sales", role_id="r-ctrl"), _registry())
    assert step.department_id == "d-sales"
    assert step.role_id is None


def test_unknown_role_id_is_cleared():
    step = normalize_step(_action(department_id="d-sales", role_id="gone"), _registry())
    assert step.role_id is None
    assert step.department_id == "d-sales"


def test_draft_role_without_department_resolves_only_when_unique():
    unique = normalize_step(_action(draft_role_name="controller"), _registry())
    assert unique.role_id == "r-ctrl"
    assert unique.department_id == "d-fin"

    ambiguous = normalize_step(_action(draft_role_name="Manager"), _registry())
    assert ambiguous.role_id is None
    assert ambiguous.draft_role_name == "Manager"


def test_unresolved_drafts_are_kept():
    step = normalize_step(_action(draft_department_name="Legal", draft_role_name="Counsel"), _registry())
    assert step.department_id is None
    assert step.draft_department_name == "Legal"
    assert step.draft_role_name == "Counsel"


def test_draft_record_ids_turn_back_into_names():
    steps = [_action(draft_department_name="Legal", draft_role_name="Counsel")]
    registry = EntityRegistry(merge_draft_entities_from_steps(steps, _registry().departments))
    legal = registry.department_by_name("Legal")

    step = normalize_step(_action(department_id=legal.id, role_id=legal.roles[0].id), registry)
    assert step.department_id is None and step.role_id is None
    assert step.draft_department_name == "Legal"
    assert step.draft_role_name == "Counsel"
    assert normalize_step(step, registry) == step


def test_draft_role_in_saved_department_stays_a_name():
    steps = [_action(department_id="d-sales", draft_role_name="Intern")]
    registry = EntityRegistry(merge_draft_entities_from_steps(steps, _registry().departments))

    step = normalize_step(steps[0], registry)
    assert step.department_id == "d-sales"
    assert step.role_id is None
    assert step.draft_role_name == "Intern"


def test_anchor_is_stripped_to_id_type_label():
    step = normalize_step(
        Step(id=START_STEP_ID, type=StepType.START, label="Go", department_id="d-sales", role_id="r-mgr"),
        _registry(),
    )
    assert step == Step(id=START_STEP_ID, type=StepType.START, label="Go")


def test_non_decision_carries_no_targets():
    step = normalize_step(_action(yes_target_id="x", no_target_id="y"), _registry())
    assert step.yes_target_id is None
    assert step.no_target_id is None


# ── normalize_steps ───────────────────────────────────────────────────────────


def test_dangling_targets_fall_back_to_next():
    steps = normalize_steps(
        _wrap(Step(id="d1", type=StepType.DECISION, label="?", yes_target_id="gone", no_target_id=FINISH_STEP_ID)),
        _registry(),
    )
    decision = steps[1]
    assert decision.yes_target_id is None
    assert decision.no_target_id == FINISH_STEP_ID


def test_anchors_are_pinned_to_the_ends():
    finish = Step(id=FINISH_STEP_ID, type=StepType.FINISH, label="Finish")
    start = Step(id=START_STEP_ID, type=StepType.START, label="Start")
    steps = normalize_steps([finish, _action("a1"), start, _action("a2")], _registry())
    assert [s.id for s in steps] == [START_STEP_ID, "a1", "a2", FINISH_STEP_ID]


def test_normalize_steps_is_idempotent():
    registry = _registry()
    once = normalize_steps(_wrap(*MESSY_STEPS[:-1]), registry)
    assert normalize_steps(once, registry) == once


def test_missing_anchor_is_reported():
    with pytest.raises(GraphAnchorError):
        normalize_steps([_action("a1")], _registry())


# ── Draft entities ────────────────────────────────────────────────────────────


def test_merge_creates_draft_department_and_role_with_palette_colors():
    palette = ColorPalette(colors=("#111111", "#222222"))
    steps = [
        _action("a1", draft_department_name="Legal", draft_role_name="Counsel"),
        _action("a2", draft_department_name=" legal ", draft_role_name="COUNSEL"),
    ]
    merged = merge_draft_entities_from_steps(steps, _registry().departments, palette)

    assert [d.name for d in merged] == ["Sales", "Finance", "Legal"]
    legal = merged[2]
    assert legal.is_draft
    assert legal.color == "#111111"
    assert [r.name for r in legal.roles] == ["Counsel"]
    assert legal.roles[0].is_draft
    assert legal.roles[0].department_id == legal.id
    assert legal.roles[0].color == "#222222"


def test_merge_adds_draft_role_to_existing_department():
    steps = [_action("a1", department_id="d-sales", draft_role_name="Intern")]
    merged = merge_draft_entities_from_steps(steps, _registry().departments)
    sales = merged[0]
    assert [r.name for r in sales.roles] == ["Manager", "Représentant", "Intern"]
    assert sales.roles[-1].color == "#C7D2FE"


def test_merge_skips_known_names():
    steps = [_action("a1", draft_department_name="finance", draft_role_name="controller")]
    merged = merge_draft_entities_from_steps(steps, _registry().departments)
    assert merged == list(_registry().departments)


def test_normalize_title():
    assert normalize_title("  Onboarding ") == "Onboarding"
    assert normalize_title("   ") == DEFAULT_PROCESS_TITLE
    assert normalize_title(None, "Untitled") == "Untitled"
    assert len(normalize_title("x" * 300)) == 120


def test_normalize_proposal_keeps_draft_names_on_steps():
    candidate = {
        "title": "",
        "steps": [
            {"type": "start"},
            {"id": "p1", "type": "action", "label": "Review", "draftDepartmentName": "Legal", "draftRoleName": "Counsel"},
            {"id": "p2", "type": "decision", "label": "OK?", "draftRoleName": "controller", "yesTargetId": "zzz"},
            {"type": "finish"},
        ],
    }
    proposal = normalize_proposal(candidate, _registry(), palette=ColorPalette())

    assert proposal.title == DEFAULT_PROCESS_TITLE
    legal = proposal.registry.department_by_name("legal")
    assert legal is not None and legal.is_draft

    assert legal.roles[0].name == "Counsel" and legal.roles[0].is_draft

    review = proposal.steps[1]
    assert review.department_id is None
    assert review.role_id is None
    assert review.draft_department_name == "Legal"
    assert review.draft_role_name == "Counsel"

    decision = proposal.steps[2]
    assert decision.role_id == "r-ctrl"
    assert decision.yes_target_id is None

    payload = proposal.to_dict()
    assert [d["name"] for d in payload["departments"]] == ["Sales", "Finance", "Legal"]


@pytest.mark.parametrize("candidate", [
    "not an object",
    {"steps": "nope"},
    {"steps": [{"type": "action"}]},
])
def test_normalize_proposal_rejects_malformed(candidate):
    with pytest.raises(ValidationError):
        normalize_proposal(candidate, _registry())


# ── Department payload validation ─────────────────────────────────────────────


def test_validate_department_payload_accepts_valid_snapshot():
    validate_department_payload([
        {"id": "d1", "name": "Sales", "color": "#0EA5E9", "roles": [
            {"id": "r1", "departmentId": "d1", "name": "Rep", "color": "#fff"},
        ]},
    ])


def test_validate_department_payload_collects_errors():
    with pytest.raises(ValidationError) as exc:
        validate_department_payload([
            {"id": "d1", "name": "  ", "color": "blue"},
            {"id": "d1", "name": "x" * 121, "roles": [
                {"id": "r1", "name": "Rep", "departmentId": "elsewhere"},
                {"id": "r2", "name": "REP"},
                {"name": "No id"},
            ]},
            {"id": "d3", "name": "Ops", "roles": [{"id": "r1", "name": "Lead", "departmentId": "d1"}]},
        ])
    details = exc.value.details
    assert details["departments[0].name"] == "Required"
    assert "departments[0].color" in details
    assert "Duplicate" in details["departments[1].id"]
    assert "departments[1].name" in details
    assert "departments[1].roles[0].departmentId" in details
    assert "departments[1].roles[1].name" in details
    assert details["departments[1].roles[2].id"] == "Required"
    assert "Duplicate" in details["departments[2].roles[0].id"]
    assert details["departments[2].roles[0].departmentId"] == "Must match the enclosing department"


def test_validate_department_payload_rejects_non_list():
    with pytest.raises(ValidationError):
        validate_department_payload({"id": "d1"})
