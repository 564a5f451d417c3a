"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in dacum/__init__.py with no default limits;
this module applies granular limits per route category.

Usage:
    from dacum.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

# blueprint name -> limit
BLUEPRINT_LIMITS = {
    # embedding / generation calls are expensive
    "compare": "20/minute",
    "catalog": "30/minute",
    "cluster": "30/minute",
    # panel editing traffic
    "cp": "120/minute",
    "session": "200/minute",
}


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints (per remote IP).

    Health checks are exempt. Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for bp_name, limit in BLUEPRINT_LIMITS.items():
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(limit)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured: %s",
                    ", ".join(f"{k}={v}" for k, v in BLUEPRINT_LIMITS.items()))
