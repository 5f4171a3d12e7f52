"""
raciflow — Process & RACI Mapping Service
Blueprint registry.
"""

from flask import request


def paginate_list(items, default_limit=200, max_limit=1000):
    """Apply limit/offset pagination to an already loaded list.

    Query params:
        limit  — max items (default 200, capped at max_limit)
        offset — starting position (default 0)

    Returns:
        (items_list, total_count)
    """
    total = len(items)
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    limit = max(limit, 0)
    return items[offset:offset + limit], total


def parse_bool_arg(name: str, default: bool) -> bool:
    """Read a ``true|false|1|0|yes|no`` query parameter."""
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")
