"""Module store — guided module instances and step advancement.

Transaction policy: every write commits once, inside ``db_operation``.

get_or_create_module inserts the module and its full step set in one
transaction. When a concurrent creator wins uq_modules_project_type the
transaction is rolled back and the winner's module is returned.

Navigation (enter / next / previous) is computed by services.progression
and applied here. Concurrent navigation calls are last-writer-wins.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from ventureplan.core.exceptions import NotFoundError, ValidationError
from ventureplan.models import db
from ventureplan.models.module import (
    MODULE_STATUSES,
    Module,
    ModuleStep,
    validate_module_transition,
)
from ventureplan.module_catalog import (
    get_module_config,
    get_previous_module,
    parse_module_type,
)
from ventureplan.services import progression
from ventureplan.services.helpers.db_errors import db_operation

logger = logging.getLogger(__name__)

_MUTABLE_MODULE_FIELDS = ("title", "status", "current_step_id", "meta")


def _utcnow():
    return datetime.now(timezone.utc)


def _with_steps():
    return selectinload(Module.steps).selectinload(ModuleStep.responses)


def _load_module(module_id):
    module = db.session.get(Module, module_id, options=[_with_steps()])
    if module is None:
        raise NotFoundError(resource="Module", resource_id=module_id)
    return module


@dataclass
class NavigationResult:
    """Outcome of enter / next / previous on a module."""

    module: Module
    outcome: str
    previous_module_type: str | None = None

    def to_dict(self):
        return {
            "module": self.module.to_dict(include_steps=True),
            "outcome": self.outcome,
            "previous_module_type": self.previous_module_type,
        }


# ═══════════════════════════════════════════════════════════════════
# READ
# ═══════════════════════════════════════════════════════════════════


def get_module(module_id):
    """Module with steps and responses, fetched eagerly."""
    with db_operation("get_module", module_id=module_id):
        return _load_module(module_id)


def get_modules_by_project(project_id):
    with db_operation("get_modules_by_project", project_id=project_id):
        return (
            Module.query.filter_by(project_id=project_id)
            .order_by(Module.created_at)
            .all()
        )


def get_module_by_type(project_id, module_type):
    """Module for (project, type) with steps and responses, or None."""
    mtype = parse_module_type(module_type)
    with db_operation("get_module_by_type", project_id=project_id, module_type=mtype.value):
        return (
            Module.query.options(_with_steps())
            .filter_by(project_id=project_id, type=mtype.value)
            .first()
        )


# ═══════════════════════════════════════════════════════════════════
# CREATE / UPDATE / DELETE
# ═══════════════════════════════════════════════════════════════════


def get_or_create_module(project_id, module_type, actor=None):
    """Return the (project, type) module, creating it with its steps if absent.

    Raises:
        ConfigurationError: module_type has no static configuration.
    """
    config = get_module_config(module_type)
    mtype = config.module_type.value

    existing = get_module_by_type(project_id, mtype)
    if existing is not None:
        return existing

    with db_operation("get_or_create_module", project_id=project_id, module_type=mtype):
        module = Module(
            project_id=project_id,
            type=mtype,
            title=config.title,
            status="draft",
            created_by=actor,
            last_activity_at=_utcnow(),
            meta={},
        )
        db.session.add(module)
        for index, step_def in enumerate(config.steps):
            module.steps.append(ModuleStep(
                step_type=step_def.step_type,
                title=step_def.title,
                order_index=index,
                status="not_started",
                meta={},
            ))
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            winner = get_module_by_type(project_id, mtype)
            if winner is None:
                raise
            logger.info(
                "Concurrent module creation, returning existing module",
                extra={"project_id": project_id, "module_type": mtype, "module_id": winner.id},
            )
            return winner

    logger.info(
        "Module created with %d steps", len(config.steps),
        extra={"project_id": project_id, "module_type": mtype, "module_id": module.id},
    )
    return get_module(module.id)


def update_module(module_id, data):
    """Patch allowed fields; always stamps last_activity_at.

    Status changes are checked against MODULE_TRANSITIONS.
    """
    new_status = data.get("status")
    if new_status is not None and new_status not in MODULE_STATUSES:
        raise ValidationError(
            f"Invalid module status: {new_status}",
            details={"allowed": MODULE_STATUSES},
        )

    with db_operation("update_module", module_id=module_id):
        module = _load_module(module_id)
        if new_status is not None and new_status != module.status:
            if not validate_module_transition(module.status, new_status):
                raise ValidationError(
                    f"Invalid status transition: {module.status} → {new_status}",
                    details={"from": module.status, "to": new_status},
                )
        for field in _MUTABLE_MODULE_FIELDS:
            key = "metadata" if field == "meta" else field
            if key in data:
                setattr(module, field, data[key])
        module.last_activity_at = _utcnow()
        db.session.commit()
        return module


def update_module_status(module_id, status):
    return update_module(module_id, {"status": status})


def delete_module(module_id):
    """Delete a module; its steps and responses go with it."""
    with db_operation("delete_module", module_id=module_id):
        module = _load_module(module_id)
        db.session.delete(module)
        db.session.commit()
    logger.info("Module deleted", extra={"module_id": module_id})


# ═══════════════════════════════════════════════════════════════════
# NAVIGATION
# ═══════════════════════════════════════════════════════════════════


def _ordered_step_ids(module):
    """Step ids in configured order, resolved through the step_type map."""
    config = get_module_config(module.type)
    by_type = module.step_ids_by_type()
    missing = [t for t in config.step_types if t not in by_type]
    if missing:
        raise ValidationError(
            f"Module {module.id} is missing configured steps",
            details={"missing_step_types": missing},
        )
    return [by_type[t] for t in config.step_types]


def _restore_missing_steps(module):
    """Insert configured steps absent from the module; returns their step types.

    Runs inside the caller's transaction and flushes so the new ids exist.
    """
    config = get_module_config(module.type)
    present = module.step_ids_by_type()
    restored = []
    for index, step_def in enumerate(config.steps):
        if step_def.step_type in present:
            continue
        module.steps.append(ModuleStep(
            step_type=step_def.step_type,
            title=step_def.title,
            order_index=index,
            status="not_started",
            meta={},
        ))
        restored.append(step_def.step_type)
    if restored:
        db.session.flush()
        logger.warning(
            "Restored %d missing steps", len(restored),
            extra={"module_id": module.id, "module_type": module.type},
        )
    return restored


def enter_module(module_id):
    """Point the module at its first step when it has no valid current step.

    Configured steps missing from the module are created first, so a
    module with a partial or empty step set can still be entered.

    A draft module moves to in_progress; a completed module stays completed.
    """
    with db_operation("enter_module", module_id=module_id):
        module = _load_module(module_id)
        _restore_missing_steps(module)
        step_ids = _ordered_step_ids(module)
        if module.current_step_id not in step_ids:
            module.current_step_id = step_ids[0]
        if module.status == "draft":
            module.status = "in_progress"
        module.last_activity_at = _utcnow()
        db.session.commit()

    logger.info(
        "Module entered", extra={"module_id": module_id, "step_id": module.current_step_id},
    )
    return NavigationResult(module=module, outcome=progression.ENTERED)


def advance_module(module_id, actor=None):
    """Complete the current step and move to the next one ("next").

    On the last step the module becomes completed and current_step_id is
    cleared. A module that is already completed reports outcome "updated".
    """
    with db_operation("advance_module", module_id=module_id):
        module = _load_module(module_id)
        step_ids = _ordered_step_ids(module)
        state = progression.state_for(module, step_ids)
        new_state, outcome = progression.next_state(state, len(step_ids))

        current = next(s for s in module.steps if s.id == step_ids[state.index])
        if current.status != "completed":
            current.status = "completed"
            current.completed_at = _utcnow()
            current.completed_by = actor

        if new_state.completed:
            if not validate_module_transition(module.status, "completed"):
                raise ValidationError(
                    f"Invalid status transition: {module.status} → completed",
                    details={"from": module.status, "to": "completed"},
                )
            if module.status == "completed":
                outcome = progression.UPDATED
            module.status = "completed"
            module.current_step_id = None
        else:
            module.current_step_id = step_ids[new_state.index]
            if module.status == "draft":
                module.status = "in_progress"
        module.last_activity_at = _utcnow()
        db.session.commit()

    logger.info(
        "Module advanced: %s", outcome,
        extra={"module_id": module_id, "step_id": module.current_step_id, "actor": actor},
    )
    return NavigationResult(module=module, outcome=outcome)


def retreat_module(module_id):
    """Move back one step ("previous") without touching completion status.

    On the first step nothing changes; the outcome tells the caller to
    navigate to the previous module instead.
    """
    with db_operation("retreat_module", module_id=module_id):
        module = _load_module(module_id)
        step_ids = _ordered_step_ids(module)
        state = progression.state_for(module, step_ids)
        new_state, outcome = progression.previous_state(state, len(step_ids))

        if outcome == progression.LEAVE_MODULE:
            prev = get_previous_module(module.type)
            return NavigationResult(
                module=module,
                outcome=outcome,
                previous_module_type=prev.module_type.value if prev else None,
            )

        module.current_step_id = step_ids[new_state.index]
        module.last_activity_at = _utcnow()
        db.session.commit()

    logger.info(
        "Module moved back", extra={"module_id": module_id, "step_id": module.current_step_id},
    )
    return NavigationResult(module=module, outcome=outcome)
