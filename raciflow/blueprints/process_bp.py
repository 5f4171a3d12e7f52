"""
Process Blueprint — process snapshots, step editing, proposals and diagrams.

Endpoints:
    GET    /api/v1/processes                                  — list (paginated)
    POST   /api/v1/processes                                  — create (anchors only)
    GET    /api/v1/processes/<process_id>                     — detail
    PUT    /api/v1/processes/<process_id>                     — save {title, steps}
    DELETE /api/v1/processes/<process_id>                     — delete
    POST   /api/v1/processes/<process_id>/steps               — add action / decision
    PATCH  /api/v1/processes/<process_id>/steps/<step_id>     — edit label / assignment / branches
    DELETE /api/v1/processes/<process_id>/steps/<step_id>     — remove step
    POST   /api/v1/processes/<process_id>/steps/<step_id>/move — reorder step
    POST   /api/v1/processes/<process_id>/proposal            — normalize an AI proposal (not saved)
    GET    /api/v1/processes/<process_id>/diagram             — Mermaid flowchart
    POST   /api/v1/diagram                                    — Mermaid flowchart of an unsaved payload

Layer contract:
    - No ORM calls here — all DB work delegated to process_service.
    - Diagram defaults (direction, branch labels) come from app config.
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from raciflow.blueprints import paginate_list, parse_bool_arg
from raciflow.services import process_service
from raciflow.services.diagram_compiler import DIRECTIONS, BranchLabels

logger = logging.getLogger(__name__)

process_bp = Blueprint("process", __name__, url_prefix="/api/v1")

STEP_FIELDS = ("label", "departmentId", "roleId", "yesTargetId", "noTargetId")


# ── Private helpers ───────────────────────────────────────────────────────────


def _default_title() -> str:
    return current_app.config["DEFAULT_PROCESS_TITLE"]


def _diagram_options(direction_raw, show_departments: bool):
    """Resolve diagram options.

    Returns (options, err_response).
    """
    direction = direction_raw or current_app.config["DIAGRAM_DEFAULT_DIRECTION"]
    if isinstance(direction, str):
        direction = direction.upper()
    if direction not in DIRECTIONS:
        return None, (
            jsonify({
                "error": f"Invalid direction '{direction_raw}'.",
                "valid_values": list(DIRECTIONS),
            }),
            400,
        )
    labels = BranchLabels.from_mapping(current_app.config.get("DIAGRAM_BRANCH_LABELS"))
    return {"direction": direction, "show_departments": show_departments, "labels": labels}, None


# ── Processes ─────────────────────────────────────────────────────────────────


@process_bp.route("/processes", methods=["GET"])
def list_processes():
    """Return processes, most recently updated first.

    Query params:
        limit (int, optional), offset (int, optional)
    """
    items, total = paginate_list(process_service.list_processes())
    return jsonify({"items": [p.to_dict() for p in items], "total": total}), 200


@process_bp.route("/processes", methods=["POST"])
def create_process():
    """Create a process holding only its start / finish steps.

    Body (JSON):
        title (str, optional): Defaults to DEFAULT_PROCESS_TITLE.
    """
    data = request.get_json(silent=True) or {}
    title = data.get("title")
    if title is not None and not isinstance(title, str):
        return jsonify({"error": "Validation failed", "details": {"title": "Must be a string."}}), 400

    process = process_service.create_process(title, default_title=_default_title())
    return jsonify(process.to_dict()), 201


@process_bp.route("/processes/<process_id>", methods=["GET"])
def get_process(process_id):
    process = process_service.get_process(process_id)
    return jsonify(process.to_dict()), 200


@process_bp.route("/processes/<process_id>", methods=["PUT"])
def save_process(process_id):
    """Replace title and steps (last write wins).

    Body (JSON):
        title (str, optional): Blank falls back to the default title.
        steps (list, required): Full step sequence including start / finish.

    Steps are normalized against the stored organization before saving.
    """
    data = request.get_json(silent=True) or {}

    errors: dict[str, str] = {}
    if "steps" not in data:
        errors["steps"] = "steps is required."
    title = data.get("title")
    if title is not None and not isinstance(title, str):
        errors["title"] = "Must be a string."
    if errors:
        return jsonify({"error": "Validation failed", "details": errors}), 400

    process = process_service.save_process(
        process_id, title, data["steps"], default_title=_default_title(),
    )
    return jsonify(process.to_dict()), 200


@process_bp.route("/processes/<process_id>", methods=["DELETE"])
def delete_process(process_id):
    process_service.delete_process(process_id)
    return jsonify({"deleted": True}), 200


# ── Steps ─────────────────────────────────────────────────────────────────────


@process_bp.route("/processes/<process_id>/steps", methods=["POST"])
def add_step(process_id):
    """Insert an action or decision.

    Body (JSON):
        type (str, required): action | decision.
        label (str, optional)
        afterStepId (str, optional): Insert after this step; default is
            just before finish.
    """
    data = request.get_json(silent=True) or {}

    errors: dict[str, str] = {}
    step_type = data.get("type")
    if step_type not in ("action", "decision"):
        errors["type"] = "Must be one of: action, decision."
    for field in ("label", "afterStepId"):
        value = data.get(field)
        if value is not None and not isinstance(value, str):
            errors[field] = "Must be a string."
    if errors:
        return jsonify({"error": "Validation failed", "details": errors}), 400

    process = process_service.add_process_step(
        process_id, step_type,
        label=data.get("label"), after_step_id=data.get("afterStepId"),
    )
    return jsonify(process.to_dict()), 201


@process_bp.route("/processes/<process_id>/steps/<step_id>", methods=["PATCH"])
def update_step(process_id, step_id):
    """Edit one step.

    Body (JSON, every key optional, null clears):
        label, departmentId, roleId, yesTargetId, noTargetId
    """
    data = request.get_json(silent=True) or {}

    errors: dict[str, str] = {}
    changes = {}
    for field in STEP_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if value is not None and not isinstance(value, str):
            errors[field] = "Must be a string or null."
        changes[field] = value
    if not changes and not errors:
        errors["body"] = f"At least one of {', '.join(STEP_FIELDS)} is required."
    if errors:
        return jsonify({"error": "Validation failed", "details": errors}), 400

    process = process_service.update_process_step(process_id, step_id, changes)
    return jsonify(process.to_dict()), 200


@process_bp.route("/processes/<process_id>/steps/<step_id>", methods=["DELETE"])
def remove_step(process_id, step_id):
    """Remove a step. Anchors and unknown ids are ignored."""
    process = process_service.remove_process_step(process_id, step_id)
    return jsonify(process.to_dict()), 200


@process_bp.route("/processes/<process_id>/steps/<step_id>/move", methods=["POST"])
def move_step(process_id, step_id):
    """Move a step to ``toIndex``; moves outside the anchors are ignored.

    Body (JSON):
        toIndex (int, required)
    """
    data = request.get_json(silent=True) or {}
    to_index = data.get("toIndex")
    if not isinstance(to_index, int) or isinstance(to_index, bool):
        return jsonify({"error": "Validation failed", "details": {"toIndex": "Must be an integer."}}), 400

    process = process_service.move_process_step(process_id, step_id, to_index)
    return jsonify(process.to_dict()), 200


# ── Proposal ──────────────────────────────────────────────────────────────────


@process_bp.route("/processes/<process_id>/proposal", methods=["POST"])
def propose(process_id):
    """Normalize an externally authored ``{title, steps}`` candidate.

    Unknown department / role names become draft entities in the returned
    ``departments`` list.  Nothing is persisted.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Validation failed", "details": {"body": "A JSON object is required."}}), 400

    result = process_service.propose(process_id, data, default_title=_default_title())
    return jsonify(result), 200


# ── Diagram ───────────────────────────────────────────────────────────────────


@process_bp.route("/processes/<process_id>/diagram", methods=["GET"])
def process_diagram(process_id):
    """Mermaid flowchart of a stored process.

    Query params:
        direction (str, optional): TD | LR.
        departments (bool, optional): Group nodes by department (default true).
    """
    options, err = _diagram_options(
        request.args.get("direction"), parse_bool_arg("departments", True),
    )
    if err:
        return err

    result = process_service.compile_process_diagram(process_id, **options)
    return jsonify(result), 200


@process_bp.route("/diagram", methods=["POST"])
def payload_diagram():
    """Mermaid flowchart of an unsaved editor payload.

    Body (JSON):
        steps (list, required)
        departments (list, optional): Defaults to the stored organization.
        direction (str, optional), showDepartments (bool, optional)
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or "steps" not in data:
        return jsonify({"error": "Validation failed", "details": {"steps": "steps is required."}}), 400

    show_departments = data.get("showDepartments", True)
    if not isinstance(show_departments, bool):
        return jsonify({
            "error": "Validation failed",
            "details": {"showDepartments": "Must be a boolean."},
        }), 400

    options, err = _diagram_options(data.get("direction"), show_departments)
    if err:
        return err

    result = process_service.compile_payload_diagram(data, **options)
    return jsonify(result), 200
