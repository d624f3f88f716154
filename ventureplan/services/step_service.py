"""Step store — module steps and their versioned responses.

Transaction policy: every write commits once, inside ``db_operation``.
Persistence failures are classified (DuplicateError, ReferenceViolationError,
DatabaseError) and re-raised; nothing is retried here.

Version writes are serialised per step: ``save_step_response`` locks the
parent step row (FOR UPDATE on PostgreSQL), demotes the previous latest row
and inserts max+1 in the same transaction. A writer that still slips past
the lock hits uq_step_responses_version / uq_step_responses_one_latest and
gets a DuplicateError.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.orm import selectinload

from ventureplan.core.exceptions import NotFoundError, ValidationError
from ventureplan.models import db
from ventureplan.models.module import STEP_STATUSES, ModuleStep, StepResponse
from ventureplan.services.helpers.db_errors import db_operation

logger = logging.getLogger(__name__)

_MUTABLE_STEP_FIELDS = ("title", "status", "order_index", "meta")


def _get_step_or_raise(step_id):
    step = db.session.get(ModuleStep, step_id)
    if step is None:
        raise NotFoundError(resource="ModuleStep", resource_id=step_id)
    return step


# ═══════════════════════════════════════════════════════════════════
# STEPS
# ═══════════════════════════════════════════════════════════════════


def get_steps(module_id):
    """All steps of a module, ordered by order_index."""
    with db_operation("get_steps", module_id=module_id):
        return (
            ModuleStep.query.filter_by(module_id=module_id)
            .order_by(ModuleStep.order_index)
            .all()
        )


def get_step(step_id):
    """A step with its responses loaded (newest version first)."""
    with db_operation("get_step", step_id=step_id):
        step = db.session.get(
            ModuleStep, step_id, options=[selectinload(ModuleStep.responses)]
        )
        if step is None:
            raise NotFoundError(resource="ModuleStep", resource_id=step_id)
        return step


def create_step(data):
    """Create a ``not_started`` step at the caller-supplied order_index."""
    for field in ("module_id", "step_type", "order_index"):
        if data.get(field) is None:
            raise ValidationError(f"{field} is required", details={"field": field})

    with db_operation("create_step", module_id=data["module_id"]):
        step = ModuleStep(
            module_id=data["module_id"],
            step_type=data["step_type"],
            title=data.get("title") or "",
            order_index=int(data["order_index"]),
            status="not_started",
            meta=data.get("metadata") or {},
        )
        db.session.add(step)
        db.session.commit()

    logger.info(
        "Step created: %s #%s", step.step_type, step.order_index,
        extra={"module_id": step.module_id, "step_id": step.id},
    )
    return step


def update_step(step_id, data):
    """Patch the mutable fields of a step."""
    if "status" in data and data["status"] not in STEP_STATUSES:
        raise ValidationError(
            f"Invalid step status: {data['status']}",
            details={"allowed": STEP_STATUSES},
        )

    with db_operation("update_step", step_id=step_id):
        step = _get_step_or_raise(step_id)
        for field in _MUTABLE_STEP_FIELDS:
            key = "metadata" if field == "meta" else field
            if key in data:
                setattr(step, field, data[key])
        db.session.commit()
        return step


def update_step_status(step_id, status, actor=None):
    """Set a step's status; ``completed`` stamps completed_at/completed_by."""
    if status not in STEP_STATUSES:
        raise ValidationError(
            f"Invalid step status: {status}",
            details={"allowed": STEP_STATUSES},
        )

    with db_operation("update_step_status", step_id=step_id):
        step = _get_step_or_raise(step_id)
        step.status = status
        if status == "completed":
            step.completed_at = datetime.now(timezone.utc)
            step.completed_by = actor
        else:
            step.completed_at = None
            step.completed_by = None
        db.session.commit()

    logger.info(
        "Step %s -> %s", step.step_type, status,
        extra={"step_id": step_id, "actor": actor},
    )
    return step


def delete_step(step_id):
    with db_operation("delete_step", step_id=step_id):
        step = _get_step_or_raise(step_id)
        db.session.delete(step)
        db.session.commit()
    logger.info("Step deleted", extra={"step_id": step_id})


# ═══════════════════════════════════════════════════════════════════
# RESPONSES
# ═══════════════════════════════════════════════════════════════════


def get_step_responses(step_id):
    """All response versions of a step, newest first."""
    with db_operation("get_step_responses", step_id=step_id):
        return (
            StepResponse.query.filter_by(step_id=step_id)
            .order_by(StepResponse.version.desc())
            .all()
        )


def get_latest_response(step_id):
    """The response flagged is_latest, or None."""
    with db_operation("get_latest_response", step_id=step_id):
        return (
            StepResponse.query.filter_by(step_id=step_id, is_latest=True)
            .order_by(StepResponse.version.desc())
            .first()
        )


def save_step_response(step_id, content, actor=None):
    """Append a new version of the step's response and make it the latest.

    Returns:
        The inserted StepResponse (version = previous max + 1).

    Raises:
        NotFoundError: the step does not exist.
        DuplicateError: a concurrent writer claimed the same version.
    """
    if content is None:
        raise ValidationError("content is required", details={"field": "content"})

    with db_operation("save_step_response", step_id=step_id):
        locked = db.session.execute(
            select(ModuleStep.id).where(ModuleStep.id == step_id).with_for_update()
        ).scalar_one_or_none()
        if locked is None:
            raise NotFoundError(resource="ModuleStep", resource_id=step_id)

        current_max = db.session.execute(
            select(func.max(StepResponse.version)).where(StepResponse.step_id == step_id)
        ).scalar()

        if current_max is not None:
            db.session.execute(
                update(StepResponse)
                .where(StepResponse.step_id == step_id, StepResponse.is_latest.is_(True))
                .values(is_latest=False)
                .execution_options(synchronize_session="fetch")
            )

        response = StepResponse(
            step_id=step_id,
            content=content,
            version=(current_max or 0) + 1,
            is_latest=True,
            created_by=actor,
        )
        db.session.add(response)
        db.session.commit()

    logger.info(
        "Step response saved v%d", response.version,
        extra={"step_id": step_id, "actor": actor, "version": response.version},
    )
    return response
