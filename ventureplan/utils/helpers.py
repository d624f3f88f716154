"""Shared request helpers for blueprints.

current_actor:   X-User-Id header, "anonymous" when absent
get_json_body:   request JSON as a dict, never None
require_fields:  tuple-return validation (same pattern as get_or_404)
"""
import logging

from flask import request

from ventureplan.utils.errors import E, api_error

logger = logging.getLogger(__name__)

ANONYMOUS = "anonymous"


def current_actor():
    """Acting user id for audit fields. There is no authentication layer."""
    return (request.headers.get("X-User-Id") or "").strip() or ANONYMOUS


def get_json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def require_fields(data, *fields):
    """Return an error tuple for the first missing field, else None.

    Usage::

        err = require_fields(data, "content")
        if err:
            return err
    """
    for field in fields:
        if data.get(field) is None:
            return api_error(E.VALIDATION_REQUIRED, f"{field} is required")
    return None
