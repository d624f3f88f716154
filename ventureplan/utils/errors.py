"""Standardised API error responses.

Usage
-----
    from ventureplan.utils.errors import api_error, E, register_error_handlers

    return api_error(E.NOT_FOUND, "Module not found")
    return api_error(E.VALIDATION_REQUIRED, "content is required")

    register_error_handlers(module_bp)   # one handler per exception family
"""

from __future__ import annotations

import logging

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from ventureplan.core.exceptions import (
    ConfigurationError,
    DuplicateError,
    GenerationError,
    NotFoundError,
    ReferenceViolationError,
    ServiceError,
    ValidationError,
)

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants (ERR_ prefix)."""

    # Validation – HTTP 400 / 422
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    VALIDATION_STATE = "ERR_VALIDATION_STATE"

    # Configuration – HTTP 400
    CONFIGURATION = "ERR_CONFIGURATION"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    CONFLICT_REFERENCE = "ERR_CONFLICT_REFERENCE"

    # Server – HTTP 500
    GENERATION = "ERR_GENERATION"
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.VALIDATION_STATE: 422,
    E.CONFIGURATION: 400,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.CONFLICT_REFERENCE: 409,
    E.GENERATION: 500,
    E.DATABASE: 500,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload.

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def register_error_handlers(bp):
    """Attach the exception-family handlers to a blueprint."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_STATE, str(error), details=error.details)

    @bp.errorhandler(ConfigurationError)
    def _handle_configuration(error: ConfigurationError):
        return api_error(E.CONFIGURATION, str(error))

    @bp.errorhandler(ServiceError)
    def _handle_service(error: ServiceError):
        details = {"kind": error.kind, "operation": error.operation}
        if isinstance(error, DuplicateError):
            return api_error(E.CONFLICT_DUPLICATE, str(error), details=details)
        if isinstance(error, ReferenceViolationError):
            return api_error(E.CONFLICT_REFERENCE, str(error), details=details)
        return api_error(E.DATABASE, "Database error", details=details)

    @bp.errorhandler(GenerationError)
    def _handle_generation(error: GenerationError):
        return api_error(E.GENERATION, str(error), details={"error_kind": error.error_kind})

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return error
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")

    return bp
