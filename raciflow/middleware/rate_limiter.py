"""
Per-blueprint rate limits (Flask-Limiter).

The Limiter in raciflow/__init__.py carries no default limit; this module
attaches one limit string per blueprint group once the blueprints are
registered.  The health route lives on the app and stays unlimited.

Usage:
    from raciflow.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

# config key -> blueprints limited by it
LIMIT_GROUPS = {
    "RATELIMIT_WRITE": ("organization", "process"),  # snapshot saves, step edits, diagrams
    "RATELIMIT_READ": ("raci",),                     # matrix views and exports
}


def init_rate_limits(app, limiter):
    """Attach the configured limits; no-op when TESTING is set.

    Returns:
        Names of the blueprints that received a limit.
    """
    if app.config.get("TESTING"):
        logger.debug("Rate limiter disabled (TESTING=True)")
        return []

    limited = []
    for config_key, blueprint_names in LIMIT_GROUPS.items():
        limit = app.config[config_key]
        for name in blueprint_names:
            blueprint = app.blueprints.get(name)
            if blueprint is None:
                continue
            limiter.limit(limit)(blueprint)
            limited.append(name)

    logger.info(
        "Rate limits applied: write=%s read=%s",
        app.config["RATELIMIT_WRITE"], app.config["RATELIMIT_READ"],
        extra={"blueprints": ",".join(limited)},
    )
    return limited
