"""
Tests: Mermaid flowchart compilation.

Covers:
  - label escaping and wrapping
  - empty process, Sales scenario, step removal re-routing
  - decision branch collapse into a single combined edge
  - department lanes (order, direction, toggle) and node tints
  - determinism of definition and render id
"""

import pytest

from raciflow.core.exceptions import GraphAnchorError
from raciflow.services.diagram_compiler import (
    RENDER_ID_PREFIX,
    BranchLabels,
    compile_flowchart,
    escape_label,
    format_node_label,
    wrap_label,
)
from raciflow.services.entity_registry import EntityRegistry
from raciflow.services.graph_normalizer import normalize_steps
from raciflow.services.process_graph import (
    FINISH_STEP_ID,
    START_STEP_ID,
    Step,
    StepType,
    create_default_steps,
    remove_step,
)


def _registry():
    return EntityRegistry.from_payload([
        {"id": "d-sales", "name": "Sales", "color": "#0EA5E9", "roles": [
            {"id": "r-mgr", "name": "Manager", "color": "#F97316"},
        ]},
        {"id": "d-fin", "name": "Finance", "color": "#22C55E"},
    ])


def _start():
    return Step(id=START_STEP_ID, type=StepType.START, label="Start")


def _finish():
    return Step(id=FINISH_STEP_ID, type=StepType.FINISH, label="Finish")


def _sales_process():
    """start → A(Sales) → D(Sales: yes → finish, no → A) → finish."""
    return [
        _start(),
        Step(id="A", type=StepType.ACTION, label="Qualify lead", department_id="d-sales"),
        Step(
            id="D", type=StepType.DECISION, label="Qualified?", department_id="d-sales",
            yes_target_id=FINISH_STEP_ID, no_target_id="A",
        ),
        _finish(),
    ]


def _edges(definition: str) -> list[str]:
    return [line for line in definition.split("\n") if "-->" in line]


# ── Label formatting ──────────────────────────────────────────────────────────


def test_escape_label_encodes_mermaid_characters():
    assert escape_label('A & B "quoted" #1') == "A #amp; B #quot;quoted#quot; #35;1"
    assert escape_label("[x](y){z}|<>") == "#91;x#93;#40;y#41;#123;z#125;#124;#lt;#gt;"


def test_wrap_label_greedy_and_hard_split():
    assert wrap_label("Approve the quarterly budget") == ["Approve the", "quarterly budget"]
    assert wrap_label("abcdefghijklmnopqrstuvwxyz") == ["abcdefghijklmnopqr", "stuvwxyz"]
    assert wrap_label("   ") == []


def test_format_node_label_joins_lines_with_br():
    assert format_node_label("Approve the quarterly budget") == "Approve the<br/>quarterly budget"


# ── Scenarios ─────────────────────────────────────────────────────────────────


def test_empty_process_compiles_to_single_edge():
    diagram = compile_flowchart(create_default_steps(), EntityRegistry())
    assert diagram.definition == "\n".join([
        "flowchart TD",
        'S0(("Start"))',
        'S1(("Finish"))',
        "S0 --> S1",
        "style S0 fill:#f8fafc,stroke:#0f172a,color:#0f172a,stroke-width:2px;",
        "style S1 fill:#f8fafc,stroke:#0f172a,color:#0f172a,stroke-width:2px;",
    ])
    assert "subgraph" not in diagram.definition


def test_sales_scenario_four_edges_in_one_cluster():
    definition = compile_flowchart(_sales_process(), _registry()).definition

    assert _edges(definition) == [
        "S0 --> S1",
        "S1 --> S2",
        "S2 -->|Yes| S3",
        "S2 -->|No| S1",
    ]
    lines = definition.split("\n")
    assert sum(1 for line in lines if line.startswith("subgraph ")) == 1
    begin = lines.index('subgraph cluster_0["Sales"]')
    end = lines.index("end", begin)
    block = lines[begin:end]
    assert "  direction TB" in block
    assert '  S1["Qualify lead"]' in block
    assert '  S2{"Qualified?"}' in block


def test_removing_target_reroutes_no_branch_to_next_step():
    steps = remove_step(_sales_process(), "A")
    decision = next(s for s in steps if s.id == "D")
    assert decision.no_target_id is None

    definition = compile_flowchart(normalize_steps(steps, _registry()), _registry()).definition
    assert _edges(definition) == ["S0 --> S1", "S1 -->|Yes/No| S2"]


def test_decision_with_no_targets_collapses_to_combined_edge():
    steps = [_start(), Step(id="D", type=StepType.DECISION, label="?"), _finish()]
    assert _edges(compile_flowchart(steps, EntityRegistry()).definition) == [
        "S0 --> S1",
        "S1 -->|Yes/No| S2",
    ]


def test_explicit_target_equal_to_fallback_also_collapses():
    steps = [
        _start(),
        Step(id="D", type=StepType.DECISION, label="?", yes_target_id="A"),
        Step(id="A", type=StepType.ACTION, label="Next"),
        _finish(),
    ]
    edges = _edges(compile_flowchart(steps, EntityRegistry()).definition)
    assert "S1 -->|Yes/No| S2" in edges


def test_custom_branch_labels_are_escaped():
    steps = _sales_process()
    labels = BranchLabels(yes="Ja", no="Nein|x", both="Beide")
    edges = _edges(compile_flowchart(steps, _registry(), labels=labels).definition)
    assert "S2 -->|Ja| S3" in edges
    assert "S2 -->|Nein#124;x| S1" in edges


def test_branch_labels_from_mapping_defaults():
    labels = BranchLabels.from_mapping({"yes": "Oui", "no": ""})
    assert labels == BranchLabels(yes="Oui", no="No", both="Yes/No")
    assert BranchLabels.from_mapping(None) == BranchLabels()


# ── Lanes and styles ──────────────────────────────────────────────────────────


def test_clusters_follow_first_appearance_order():
    steps = [
        _start(),
        Step(id="a1", type=StepType.ACTION, label="Book", department_id="d-fin"),
        Step(id="a2", type=StepType.ACTION, label="Sell", department_id="d-sales"),
        Step(id="a3", type=StepType.ACTION, label="Pay", department_id="d-fin"),
        _finish(),
    ]
    lines = compile_flowchart(steps, _registry()).definition.split("\n")
    assert 'subgraph cluster_0["Finance"]' in lines
    assert 'subgraph cluster_1["Sales"]' in lines
    finance = lines[lines.index('subgraph cluster_0["Finance"]'):]
    assert finance[2:4] == ['  S1["Book"]', '  S3["Pay"]']
    assert any(line.startswith("style cluster_0 fill:#22c55e,") for line in lines)
    assert any(line.endswith("stroke-width:1.5px,stroke-dasharray:6 4;") for line in lines)


def test_lr_direction_applies_to_clusters():
    definition = compile_flowchart(_sales_process(), _registry(), direction="LR").definition
    assert definition.startswith("flowchart LR\n")
    assert "  direction LR" in definition


def test_invalid_direction_falls_back_to_td():
    assert compile_flowchart(_sales_process(), _registry(), direction="XX").definition.startswith("flowchart TD\n")


def test_hidden_departments_remove_lanes_and_department_tint():
    definition = compile_flowchart(_sales_process(), _registry(), show_departments=False).definition
    assert "subgraph" not in definition
    assert "style S1 fill:#ffffff,stroke:#0f172a,color:#0f172a,stroke-width:2px;" in definition


def test_department_and_role_tints():
    steps = [
        _start(),
        Step(id="a1", type=StepType.ACTION, label="Pitch", department_id="d-sales"),
        Step(id="a2", type=StepType.ACTION, label="Sign", department_id="d-sales", role_id="r-mgr"),
        _finish(),
    ]
    definition = compile_flowchart(steps, _registry()).definition
    assert "style S1 fill:#ffffff,stroke:#0ea5e9,color:#0f172a,stroke-width:2px;" in definition
    assert "style S2 fill:#f97316," in definition


def test_draft_department_name_groups_into_lane():
    steps = [
        _start(),
        Step(id="a1", type=StepType.ACTION, label="Pitch", draft_department_name="sales"),
        _finish(),
    ]
    assert 'subgraph cluster_0["Sales"]' in compile_flowchart(steps, _registry()).definition


def test_draft_role_name_takes_role_tint():
    steps = [
        _start(),
        Step(id="a1", type=StepType.ACTION, label="Sign", department_id="d-sales", draft_role_name="manager"),
        _finish(),
    ]
    assert "style S1 fill:#f97316," in compile_flowchart(steps, _registry()).definition


# ── Determinism ───────────────────────────────────────────────────────────────


def test_compile_is_deterministic():
    first = compile_flowchart(_sales_process(), _registry())
    second = compile_flowchart(_sales_process(), _registry())
    assert first == second
    assert first.render_id.startswith(RENDER_ID_PREFIX)
    assert first.to_dict() == {"definition": first.definition, "renderId": first.render_id}


def test_render_id_changes_with_content():
    steps = _sales_process()
    changed = [steps[0], Step(id="A", type=StepType.ACTION, label="Other", department_id="d-sales"), *steps[2:]]
    assert compile_flowchart(steps, _registry()).render_id != compile_flowchart(changed, _registry()).render_id


def test_missing_anchor_raises():
    with pytest.raises(GraphAnchorError):
        compile_flowchart([_start()], EntityRegistry())
