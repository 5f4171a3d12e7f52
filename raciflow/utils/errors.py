"""JSON error bodies returned by the app-level error handlers.

Every error response has the shape ``{"error": str, "code": str}`` plus an
optional ``details`` mapping of field path -> message, e.g.::

    {"error": "Duplicate role id 'r1'",
     "code": "ERR_VALIDATION_INVALID",
     "details": {"departments[1].roles[0].id": "Duplicate role id 'r1'"}}

Usage:
    from raciflow.utils.errors import E, api_error

    return api_error(E.NOT_FOUND, "Process id=42 not found")
    return api_error(E.GRAPH_ANCHOR, str(exc), details=exc.details)
"""

from __future__ import annotations

from flask import jsonify


class E:
    """Values of the ``code`` field."""

    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    GRAPH_ANCHOR = "ERR_GRAPH_ANCHOR"
    NOT_FOUND = "ERR_NOT_FOUND"
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    RATE_LIMITED = "ERR_RATE_LIMITED"
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


STATUS_BY_CODE: dict[str, int] = {
    E.VALIDATION_INVALID: 400,
    E.GRAPH_ANCHOR: 400,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.RATE_LIMITED: 429,
    E.DATABASE: 500,
    E.INTERNAL: 500,
}


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """Build a ``(response, status)`` pair usable as a view return value.

    ``status`` defaults to the one registered for ``code`` in
    ``STATUS_BY_CODE`` (400 for unregistered codes).  Empty ``details`` are
    left out of the body.
    """
    body: dict = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or STATUS_BY_CODE.get(code, 400)
