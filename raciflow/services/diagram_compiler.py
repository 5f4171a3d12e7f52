"""
Diagram Compiler — process steps → Mermaid flowchart definition.

The compiler only emits the symbolic description; layout and drawing are left
to the Mermaid renderer.  Output is a pure function of its inputs, so the same
``(steps, registry, direction, show_departments, labels)`` always yields the
same bytes and the same ``render_id``.

Definition layout:
    flowchart TD
    <ungrouped node declarations, step order>
    subgraph cluster_0["Sales"]        ← one block per department lane,
      direction TB                        in first-appearance order
      S1["…"]
    end
    style cluster_0 …
    <edges, step order>
    <one node style per node, declaration order>

Usage:
    diagram = compile_flowchart(steps, registry, direction="LR")
    diagram.definition, diagram.render_id
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass

from raciflow.services.colors import (
    DARK_TEXT_COLOR,
    DEFAULT_ENTITY_COLOR,
    LIGHT_TEXT_COLOR,
    lane_colors,
    normalize_hex,
    role_node_colors,
)
from raciflow.services.entity_registry import DepartmentRecord, EntityRegistry, RoleRecord
from raciflow.services.process_graph import StepType, ensure_anchors, flow_targets

DIRECTIONS = ("TD", "LR")
DEFAULT_DIRECTION = "TD"
LABEL_WIDTH = 18
RENDER_ID_PREFIX = "process-diagram-"

NEUTRAL_FILL = "#ffffff"
TERMINAL_FILL = LIGHT_TEXT_COLOR
NEUTRAL_STROKE = DARK_TEXT_COLOR

# '#' first: every other replacement introduces one.
_MERMAID_ENTITIES = (
    ("#", "#35;"),
    ("&", "#amp;"),
    ("<", "#lt;"),
    (">", "#gt;"),
    ('"', "#quot;"),
    ("[", "#91;"),
    ("]", "#93;"),
    ("(", "#40;"),
    (")", "#41;"),
    ("{", "#123;"),
    ("}", "#125;"),
    ("\\", "#92;"),
    ("|", "#124;"),
)


@dataclass(frozen=True)
class BranchLabels:
    """Edge labels for decision branches."""
    yes: str = "Yes"
    no: str = "No"
    both: str = "Yes/No"

    @classmethod
    def from_mapping(cls, data) -> "BranchLabels":
        data = data or {}
        defaults = cls()
        return cls(
            yes=data.get("yes") or defaults.yes,
            no=data.get("no") or defaults.no,
            both=data.get("both") or defaults.both,
        )


@dataclass(frozen=True)
class CompiledDiagram:
    definition: str
    render_id: str

    def to_dict(self) -> dict:
        return {"definition": self.definition, "renderId": self.render_id}


# ── Text formatting ───────────────────────────────────────────────────────────


def escape_label(text: str) -> str:
    """Replace Mermaid-significant characters with ``#code;`` entities."""
    out = text
    for char, entity in _MERMAID_ENTITIES:
        out = out.replace(char, entity)
    return out


def wrap_label(text: str, width: int = LABEL_WIDTH) -> list[str]:
    """Greedy word wrap; a word longer than ``width`` is split into chunks."""
    words = text.split()
    lines: list[str] = []
    current = ""
    for word in words:
        tentative = f"{current} {word}" if current else word
        if len(tentative) <= width:
            current = tentative
            continue
        if current:
            lines.append(current)
        if len(word) > width:
            chunks = [word[i:i + width] for i in range(0, len(word), width)]
            lines.extend(chunks[:-1])
            current = chunks[-1]
        else:
            current = word
    if current:
        lines.append(current)
    return lines


def format_node_label(text: str) -> str:
    return "<br/>".join(escape_label(line) for line in wrap_label(text))


def _node_declaration(node_id: str, step_type: StepType, label: str) -> str:
    if step_type == StepType.ACTION:
        return f'{node_id}["{label}"]'
    if step_type == StepType.DECISION:
        return f'{node_id}{{"{label}"}}'
    return f'{node_id}(("{label}"))'


def _edge(source: str, target_index: int, label: str | None = None) -> str:
    if label:
        return f"{source} -->|{escape_label(label)}| S{target_index}"
    return f"{source} --> S{target_index}"


def _style(target: str, fill: str, stroke: str, text: str) -> str:
    return f"style {target} fill:{fill},stroke:{stroke},color:{text},stroke-width:2px;"


def _cluster_style(cluster_id: str, color: str) -> str:
    lane = lane_colors(color, normalize_hex(DEFAULT_ENTITY_COLOR))
    return (
        f"style {cluster_id} fill:{lane.fill},stroke:{lane.stroke},color:{lane.text},"
        "stroke-width:1.5px,stroke-dasharray:6 4;"
    )


# ── Compilation ───────────────────────────────────────────────────────────────


def _resolve_department(step, registry: EntityRegistry) -> DepartmentRecord | None:
    if step.department_id:
        return registry.department(step.department_id)
    if step.draft_department_name:
        return registry.department_by_name(step.draft_department_name)
    return None


def _resolve_role(step, registry: EntityRegistry, department) -> RoleRecord | None:
    if step.role_id:
        return registry.role(step.role_id)
    if step.draft_role_name and department is not None:
        return registry.role_by_name(department.id, step.draft_role_name)
    return None


def compile_flowchart(
    steps,
    registry: EntityRegistry,
    direction: str = DEFAULT_DIRECTION,
    show_departments: bool = True,
    labels: BranchLabels = BranchLabels(),
) -> CompiledDiagram:
    """Compile a step sequence into a Mermaid flowchart.

    Args:
        steps: Normalized step sequence.
        registry: Departments / roles used for lanes and node colors.
        direction: ``TD`` or ``LR``; anything else falls back to ``TD``.
        show_departments: Group nodes into department lanes and tint them.
        labels: Decision edge labels.

    Raises:
        GraphAnchorError: If ``start`` or ``finish`` is missing or duplicated.
    """
    ensure_anchors(steps)
    direction = direction if direction in DIRECTIONS else DEFAULT_DIRECTION
    cluster_direction = "TB" if direction == "TD" else direction

    ungrouped: list[str] = []
    clusters: dict[str, dict] = {}
    node_styles: list[str] = []

    for index, step in enumerate(steps):
        node_id = f"S{index}"
        declaration = _node_declaration(node_id, step.type, format_node_label(step.display_label))

        lane = _resolve_department(step, registry)
        department = lane if show_departments else None
        role = _resolve_role(step, registry, lane)
        base_fill = TERMINAL_FILL if step.is_anchor else NEUTRAL_FILL

        if role is not None:
            tint = role_node_colors(role.color, normalize_hex(DEFAULT_ENTITY_COLOR))
            node_styles.append(_style(node_id, tint.fill, tint.stroke, tint.text))
        elif department is not None:
            stroke = normalize_hex(department.color, normalize_hex(DEFAULT_ENTITY_COLOR))
            node_styles.append(_style(node_id, base_fill, stroke, DARK_TEXT_COLOR))
        else:
            node_styles.append(_style(node_id, base_fill, NEUTRAL_STROKE, DARK_TEXT_COLOR))

        if department is None:
            ungrouped.append(declaration)
            continue
        cluster = clusters.get(department.id)
        if cluster is None:
            cluster = {"department": department, "nodes": []}
            clusters[department.id] = cluster
        cluster["nodes"].append(declaration)

    cluster_lines: list[str] = []
    for position, cluster in enumerate(clusters.values()):
        cluster_id = f"cluster_{position}"
        department = cluster["department"]
        cluster_lines.append(f'subgraph {cluster_id}["{escape_label(department.name)}"]')
        cluster_lines.append(f"  direction {cluster_direction}")
        cluster_lines.extend(f"  {node}" for node in cluster["nodes"])
        cluster_lines.append("end")
        cluster_lines.append(_cluster_style(cluster_id, department.color))

    edges = _build_edges(steps, labels)

    definition = "\n".join([f"flowchart {direction}", *ungrouped, *cluster_lines, *edges, *node_styles])
    return CompiledDiagram(definition=definition, render_id=render_id_for(definition))


def _build_edges(steps, labels: BranchLabels) -> list[str]:
    edges: list[str] = []

    for index, (yes_index, no_index) in enumerate(flow_targets(steps)):
        source = f"S{index}"

        if steps[index].type != StepType.DECISION:
            if yes_index is not None:
                edges.append(_edge(source, yes_index))
            continue

        if yes_index is not None and yes_index == no_index:
            edges.append(_edge(source, yes_index, labels.both))
            continue
        if yes_index is not None:
            edges.append(_edge(source, yes_index, labels.yes))
        if no_index is not None:
            edges.append(_edge(source, no_index, labels.no))

    return edges


def render_id_for(definition: str) -> str:
    """Content-addressed id for the render target."""
    digest = hashlib.sha1(definition.encode("utf-8")).hexdigest()
    return RENDER_ID_PREFIX + digest[:12]
