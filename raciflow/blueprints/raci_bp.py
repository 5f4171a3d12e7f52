"""
RACI Matrix Blueprint — role action feed, department matrices and exports.

Endpoints:
    GET    /api/v1/raci/role-actions                                      — per-role assigned steps
    GET    /api/v1/raci/roles/<role_id>/profile                           — role profile (processes, collaborators)
    GET    /api/v1/raci/departments/<department_id>                       — matrix view
    POST   /api/v1/raci/departments/<department_id>/actions               — add manual row
    DELETE /api/v1/raci/departments/<department_id>/actions/<action_id>   — remove manual row
    PUT    /api/v1/raci/departments/<department_id>/cells                 — set / clear a manual cell
    GET    /api/v1/raci/departments/<department_id>/roles/<role_id>       — role-centric view
    GET    /api/v1/raci/departments/<department_id>/export?format=...     — csv | markdown | html | xlsx

Layer contract:
    - No ORM calls here — all DB work delegated to raci_service.
    - No db.session.commit() here.
"""

import logging

from flask import Blueprint, Response, jsonify, request

from raciflow.services import raci_service
from raciflow.services.raci_aggregator import VALID_RACI_VALUES
from raciflow.services.raci_export import EXPORT_FORMATS

logger = logging.getLogger(__name__)

raci_bp = Blueprint("raci", __name__, url_prefix="/api/v1/raci")

# Empty string clears the cell
VALID_CELL_VALUES = VALID_RACI_VALUES | {""}


# ── Feed ──────────────────────────────────────────────────────────────────────


@raci_bp.route("/role-actions", methods=["GET"])
def role_actions():
    """Every role with the process steps assigned to it (all processes)."""
    summaries = raci_service.get_role_action_summaries()
    return jsonify([s.to_dict() for s in summaries]), 200


@raci_bp.route("/roles/<role_id>/profile", methods=["GET"])
def role_profile(role_id):
    """Processes and steps of one role, with the roles and departments it hands work to or from.

    Returns:
        {role, processes, interactions: {directRoles, directDepartments}}
    """
    result = raci_service.get_role_profile(role_id)
    return jsonify(result), 200


# ── Department matrix ─────────────────────────────────────────────────────────


@raci_bp.route("/departments/<department_id>", methods=["GET"])
def department_matrix(department_id):
    """Return the matrix of one department.

    Returns:
        {department, processes, manual, rows, roleSummaries, counts}
    """
    result = raci_service.get_department_matrix(department_id)
    return jsonify(result), 200


@raci_bp.route("/departments/<department_id>/roles/<role_id>", methods=["GET"])
def role_view(department_id, role_id):
    result = raci_service.get_role_view(department_id, role_id)
    return jsonify(result), 200


@raci_bp.route("/departments/<department_id>/actions", methods=["POST"])
def add_action(department_id):
    """Add a manual row.

    Body (JSON):
        name (str, required): Action name (max 120 chars).
    """
    data = request.get_json(silent=True) or {}
    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        return jsonify({"error": "Validation failed", "details": {"name": "Action name is required."}}), 400

    result = raci_service.add_manual_action(department_id, name)
    return jsonify(result), 201


@raci_bp.route("/departments/<department_id>/actions/<action_id>", methods=["DELETE"])
def remove_action(department_id, action_id):
    raci_service.remove_manual_action(department_id, action_id)
    return jsonify({"deleted": True}), 200


@raci_bp.route("/departments/<department_id>/cells", methods=["PUT"])
def set_cell(department_id):
    """Set or clear a single manual cell.

    Body (JSON):
        actionId (str, required): Target row.
        roleId (str, required): Target column; must belong to the department.
        value (str|null, required): "R", "A", "C", "I", or ""/null to clear.
    """
    data = request.get_json(silent=True) or {}

    errors: dict[str, str] = {}
    action_id = data.get("actionId")
    if not isinstance(action_id, str) or not action_id:
        errors["actionId"] = "actionId is required."
    role_id = data.get("roleId")
    if not isinstance(role_id, str) or not role_id:
        errors["roleId"] = "roleId is required."
    value = data.get("value")
    if value is not None and (not isinstance(value, str) or value.strip().upper() not in VALID_CELL_VALUES):
        errors["value"] = "Must be one of R, A, C, I, or empty."
    if errors:
        return jsonify({"error": "Validation failed", "details": errors}), 400

    result = raci_service.set_matrix_cell(department_id, action_id, role_id, value)
    return jsonify(result), 200


# ── Export ────────────────────────────────────────────────────────────────────


@raci_bp.route("/departments/<department_id>/export", methods=["GET"])
def export_matrix(department_id):
    """Download the department matrix.

    Query params:
        format (str, optional): csv | markdown | html | xlsx (default csv).
    """
    fmt = (request.args.get("format") or "csv").lower()
    if fmt not in EXPORT_FORMATS:
        return jsonify({
            "error": f"Invalid format '{fmt}'.",
            "valid_values": list(EXPORT_FORMATS),
        }), 400

    content, content_type, filename = raci_service.export_department_matrix(department_id, fmt)
    if fmt == "xlsx":
        content = content.getvalue()
    return Response(
        content,
        content_type=content_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
