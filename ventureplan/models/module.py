"""
Venture Plan Workbench
Module Models — guided module workflow.

Domain models:
  - Module: one project-scoped instance of a guided module (vision-problem, ...)
  - ModuleStep: an ordered step of a module, one per configured step_type
  - StepResponse: append-only, versioned content entered for a step
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from ventureplan.models import db


__all__ = [
    "Module",
    "ModuleStep",
    "StepResponse",
    "MODULE_STATUSES",
    "STEP_STATUSES",
    "MODULE_TRANSITIONS",
    "validate_module_transition",
]


# ── Helpers ──────────────────────────────────────────────────────────────────

def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


# ═════════════════════════════════════════════════════════════════════════════
# Constants
# ═════════════════════════════════════════════════════════════════════════════

MODULE_STATUSES = ["draft", "in_progress", "completed", "archived"]
STEP_STATUSES = ["not_started", "in_progress", "completed"]

# completed -> completed is allowed: re-running the last step of a finished
# module records an update, the module stays completed.
MODULE_TRANSITIONS = {
    "draft":       ["in_progress", "completed", "archived"],
    "in_progress": ["completed", "archived"],
    "completed":   ["completed", "in_progress", "archived"],
    "archived":    ["in_progress"],
}


def validate_module_transition(old_status, new_status):
    """Return True if Module status transition is valid."""
    return new_status in MODULE_TRANSITIONS.get(old_status, [])


# ═════════════════════════════════════════════════════════════════════════════
# 1. Module
# ═════════════════════════════════════════════════════════════════════════════


class Module(db.Model):
    """
    A guided module instance, created lazily on first access and keyed by
    (project_id, type). Its step set mirrors the static configuration of
    its module type.
    """

    __tablename__ = "modules"
    __table_args__ = (
        db.UniqueConstraint("project_id", "type", name="uq_modules_project_type"),
        db.CheckConstraint(
            "status IN ('draft','in_progress','completed','archived')",
            name="ck_modules_status",
        ),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    project_id = db.Column(db.String(64), nullable=False, index=True)
    type = db.Column(
        db.String(40), nullable=False,
        comment="vision-problem | market-analysis | business-model | ...",
    )
    title = db.Column(db.String(200), nullable=False)
    status = db.Column(
        db.String(20), nullable=False, default="draft",
        comment="draft | in_progress | completed | archived",
    )
    current_step_id = db.Column(
        db.String(36), nullable=True,
        comment="module_steps.id of the step being edited; may be stale",
    )
    last_activity_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    meta = db.Column("metadata", db.JSON, default=dict)

    created_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    steps = db.relationship(
        "ModuleStep",
        back_populates="module",
        order_by="ModuleStep.order_index",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def step_ids_by_type(self) -> dict:
        """step_type -> database id, built from the loaded steps."""
        return {s.step_type: s.id for s in self.steps}

    def to_dict(self, include_steps=False, include_responses=False):
        d = {
            "id": self.id,
            "project_id": self.project_id,
            "type": self.type,
            "title": self.title,
            "status": self.status,
            "current_step_id": self.current_step_id,
            "last_activity_at": _iso(self.last_activity_at),
            "metadata": self.meta or {},
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_steps or include_responses:
            d["steps"] = [s.to_dict(include_responses=include_responses) for s in self.steps]
        return d

    def __repr__(self):
        return f"<Module {self.id}: {self.type} [{self.status}]>"


# ═════════════════════════════════════════════════════════════════════════════
# 2. ModuleStep
# ═════════════════════════════════════════════════════════════════════════════


class ModuleStep(db.Model):
    """One ordered step of a module. step_type matches the module catalog."""

    __tablename__ = "module_steps"
    __table_args__ = (
        db.UniqueConstraint("module_id", "step_type", name="uq_module_steps_type"),
        db.UniqueConstraint("module_id", "order_index", name="uq_module_steps_order"),
        db.CheckConstraint(
            "status IN ('not_started','in_progress','completed')",
            name="ck_module_steps_status",
        ),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    module_id = db.Column(
        db.String(36), db.ForeignKey("modules.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    step_type = db.Column(db.String(60), nullable=False)
    title = db.Column(db.String(200), nullable=False, default="")
    order_index = db.Column(db.Integer, nullable=False)
    status = db.Column(
        db.String(20), nullable=False, default="not_started",
        comment="not_started | in_progress | completed",
    )
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_by = db.Column(db.String(64), nullable=True)
    meta = db.Column("metadata", db.JSON, default=dict)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    module = db.relationship("Module", back_populates="steps")
    responses = db.relationship(
        "StepResponse",
        back_populates="step",
        order_by="StepResponse.version.desc()",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def latest_response(self):
        latest = [r for r in self.responses if r.is_latest]
        if not latest:
            return None
        return max(latest, key=lambda r: r.version)

    def to_dict(self, include_responses=False):
        d = {
            "id": self.id,
            "module_id": self.module_id,
            "step_type": self.step_type,
            "title": self.title,
            "order_index": self.order_index,
            "status": self.status,
            "completed_at": _iso(self.completed_at),
            "completed_by": self.completed_by,
            "metadata": self.meta or {},
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_responses:
            d["responses"] = [r.to_dict() for r in self.responses]
        return d

    def __repr__(self):
        return f"<ModuleStep {self.id}: {self.step_type} #{self.order_index} [{self.status}]>"


# ═════════════════════════════════════════════════════════════════════════════
# 3. StepResponse
# ═════════════════════════════════════════════════════════════════════════════


class StepResponse(db.Model):
    """
    Immutable version of the text entered for a step.

    (step_id, version) is unique and at most one row per step may carry
    is_latest — the partial index rejects a second "latest" row outright.
    """

    __tablename__ = "step_responses"
    __table_args__ = (
        db.UniqueConstraint("step_id", "version", name="uq_step_responses_version"),
        db.Index(
            "uq_step_responses_one_latest",
            "step_id",
            unique=True,
            postgresql_where=db.text("is_latest IS TRUE"),
            sqlite_where=db.text("is_latest = 1"),
        ),
        db.CheckConstraint("version >= 1", name="ck_step_responses_version"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    step_id = db.Column(
        db.String(36), db.ForeignKey("module_steps.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    content = db.Column(db.Text, nullable=False, default="")
    version = db.Column(db.Integer, nullable=False)
    is_latest = db.Column(db.Boolean, nullable=False, default=True)
    created_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    step = db.relationship("ModuleStep", back_populates="responses")

    def to_dict(self):
        return {
            "id": self.id,
            "step_id": self.step_id,
            "content": self.content,
            "version": self.version,
            "is_latest": self.is_latest,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<StepResponse {self.step_id} v{self.version}{' *' if self.is_latest else ''}>"
