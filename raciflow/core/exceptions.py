"""
Exception hierarchy shared by the process core and the services.

The app factory registers one handler per type (see ``raciflow/__init__.py``):

    NotFoundError     -> 404 ERR_NOT_FOUND
    GraphAnchorError  -> 400 ERR_GRAPH_ANCHOR
    ValidationError   -> 400 ERR_VALIDATION_INVALID
    ConflictError     -> 409 ERR_CONFLICT_DUPLICATE

Usage:
    raise NotFoundError(resource="Process", resource_id=process_id)
    raise ValidationError("Invalid color", details={"color": "Must be a hex color (#RRGGBB)"})
"""


class NotFoundError(Exception):
    """A process, department, role, step or RACI action id that does not exist."""

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        where = f" id={resource_id}" if resource_id is not None else ""
        super().__init__(f"{resource}{where} not found")


class ValidationError(Exception):
    """Input that parses but cannot be accepted.

    Args:
        message: Summary for the ``error`` field.
        details: Field path -> message, returned as ``details``.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class GraphAnchorError(ValidationError):
    """A step sequence without exactly one ``start`` and one ``finish`` step.

    The only structural defect the normalizer does not repair.
    """

    def __init__(self, anchor: str, count: int) -> None:
        self.anchor = anchor
        self.count = count
        if count == 0:
            message = f"Process steps must contain a '{anchor}' step"
        else:
            message = f"Process steps must contain exactly one '{anchor}' step (found {count})"
        super().__init__(message, details={"steps": message})


class ConflictError(Exception):
    """A department or role name already taken (case / accent insensitive)."""

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} already exists")
