"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in ventureplan/__init__.py with no default
limits; this module applies granular limits per route category.

Usage:
    from ventureplan.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

DOCUMENT_LIMIT = "10/minute"
MODULE_LIMIT = "120/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Document endpoints: 10/minute  (rendering and enrichment are expensive)
        - Module endpoints:   120/minute (step autosave while typing)
        - Health check:       exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("document_bp")
    if bp:
        limiter.limit(DOCUMENT_LIMIT)(bp)

    bp = app.blueprints.get("module_bp")
    if bp:
        limiter.limit(MODULE_LIMIT)(bp)

    bp = app.blueprints.get("health_bp")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured — documents: %s, modules: %s", DOCUMENT_LIMIT, MODULE_LIMIT,
    )
