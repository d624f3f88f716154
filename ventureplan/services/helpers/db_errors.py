"""Persistence error classification shared by the stores.

Every store wraps its database work in ``db_operation``. SQLAlchemy
failures are logged with the operation name and caller context, the
session is rolled back, and a typed ServiceError is raised with the
driver exception chained as its cause. Domain exceptions (NotFoundError,
ValidationError, ...) roll the session back and pass through untouched.

Usage:
    with db_operation("save_step_response", step_id=step_id):
        ...
        db.session.commit()
"""

from __future__ import annotations

import logging
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ventureplan.core.exceptions import (
    DatabaseError,
    DuplicateError,
    ReferenceViolationError,
    ServiceError,
)
from ventureplan.models import db

logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATE codes
_PG_UNIQUE_VIOLATION = "23505"
_PG_FOREIGN_KEY_VIOLATION = "23503"
_PG_UNDEFINED_TABLE = "42P01"
_PG_UNDEFINED_COLUMN = "42703"


def _sqlstate(exc: SQLAlchemyError) -> str | None:
    orig = getattr(exc, "orig", None)
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


def classify_db_error(exc: SQLAlchemyError, operation: str = "") -> ServiceError:
    """Map a SQLAlchemy exception onto the ServiceError taxonomy."""
    code = _sqlstate(exc)
    text = str(getattr(exc, "orig", exc)).lower()

    if isinstance(exc, IntegrityError):
        if code == _PG_UNIQUE_VIOLATION or "unique constraint" in text or "duplicate key" in text:
            return DuplicateError(
                "A record with these details already exists.",
                original_error=exc, operation=operation,
            )
        if code == _PG_FOREIGN_KEY_VIOLATION or "foreign key" in text:
            return ReferenceViolationError(
                "Referenced record does not exist.",
                original_error=exc, operation=operation,
            )
    if code == _PG_UNDEFINED_TABLE or "no such table" in text:
        return DatabaseError("Database table not found.", original_error=exc, operation=operation)
    if code == _PG_UNDEFINED_COLUMN or "no such column" in text:
        return DatabaseError("Database column not found.", original_error=exc, operation=operation)
    return DatabaseError(str(getattr(exc, "orig", exc)), original_error=exc, operation=operation)


@contextmanager
def db_operation(operation: str, **context):
    """Run a block of store work, classifying and re-raising DB failures."""
    try:
        yield
    except SQLAlchemyError as exc:
        db.session.rollback()
        err = classify_db_error(exc, operation)
        logger.error(
            "Database operation %s failed: %s (%s)",
            operation, err, err.kind,
            extra={"event_type": "db_error", **context},
        )
        raise err from exc
    except Exception:
        # domain errors: discard pending changes and propagate
        db.session.rollback()
        raise
