"""
Organization Blueprint — departments and roles.

Endpoints:
    GET    /api/v1/departments                        — list with roles
    POST   /api/v1/departments                        — create department
    PUT    /api/v1/departments                        — save editor snapshot
    PATCH  /api/v1/departments/<department_id>        — rename / recolor
    DELETE /api/v1/departments/<department_id>        — delete (cascades roles)
    POST   /api/v1/departments/<department_id>/roles  — add role
    DELETE /api/v1/roles/<role_id>                    — delete role

Layer contract:
    - No ORM calls here — all DB work delegated to organization_service.
    - Service exceptions (NotFoundError / ValidationError / ConflictError)
      are mapped to JSON by the app-level error handlers.
"""

import logging

from flask import Blueprint, jsonify, request

from raciflow.services import organization_service

logger = logging.getLogger(__name__)

organization_bp = Blueprint("organization", __name__, url_prefix="/api/v1")


def _optional_str(data: dict, field: str, errors: dict) -> None:
    value = data.get(field)
    if value is not None and not isinstance(value, str):
        errors[field] = "Must be a string."


# ── Departments ───────────────────────────────────────────────────────────────


@organization_bp.route("/departments", methods=["GET"])
def list_departments():
    """Return every department with its ordered roles."""
    departments = organization_service.list_departments()
    return jsonify([d.to_dict() for d in departments]), 200


@organization_bp.route("/departments", methods=["POST"])
def create_department():
    """Create a department.

    Body (JSON):
        name (str, required): Department name (max 120 chars).
        color (str, optional): ``#RRGGBB``; defaults to the next palette color.
    """
    data = request.get_json(silent=True) or {}

    errors: dict[str, str] = {}
    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        errors["name"] = "Department name is required."
    _optional_str(data, "color", errors)
    if errors:
        return jsonify({"error": "Validation failed", "details": errors}), 400

    department = organization_service.create_department(name, color=data.get("color"))
    return jsonify(department.to_dict()), 201


@organization_bp.route("/departments", methods=["PUT"])
def save_departments():
    """Replace the organization with the editor snapshot.

    Body (JSON):
        departments (list, required): ``[{id, name, color, roles: [...]}]``;
            draft entities keep their client ids.
    """
    data = request.get_json(silent=True) or {}
    payload = data.get("departments")
    if not isinstance(payload, list):
        return jsonify({
            "error": "Validation failed",
            "details": {"departments": "A list of departments is required."},
        }), 400

    departments = organization_service.save_snapshot(payload)
    return jsonify([d.to_dict() for d in departments]), 200


@organization_bp.route("/departments/<department_id>", methods=["PATCH"])
def update_department(department_id):
    data = request.get_json(silent=True) or {}

    errors: dict[str, str] = {}
    _optional_str(data, "name", errors)
    _optional_str(data, "color", errors)
    if errors:
        return jsonify({"error": "Validation failed", "details": errors}), 400

    department = organization_service.update_department(
        department_id, name=data.get("name"), color=data.get("color"),
    )
    return jsonify(department.to_dict()), 200


@organization_bp.route("/departments/<department_id>", methods=["DELETE"])
def delete_department(department_id):
    organization_service.delete_department(department_id)
    return jsonify({"deleted": True}), 200


# ── Roles ─────────────────────────────────────────────────────────────────────


@organization_bp.route("/departments/<department_id>/roles", methods=["POST"])
def add_role(department_id):
    """Append a role to a department.

    Body (JSON):
        name (str, required): Role name, unique within the department.
        color (str, optional): ``#RRGGBB``.
    """
    data = request.get_json(silent=True) or {}

    errors: dict[str, str] = {}
    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        errors["name"] = "Role name is required."
    _optional_str(data, "color", errors)
    if errors:
        return jsonify({"error": "Validation failed", "details": errors}), 400

    role = organization_service.add_role(department_id, name, color=data.get("color"))
    return jsonify(role.to_dict()), 201


@organization_bp.route("/roles/<role_id>", methods=["DELETE"])
def delete_role(role_id):
    organization_service.delete_role(role_id)
    return jsonify({"deleted": True}), 200
