"""
Venture Plan Workbench
Document Models — generated artifacts and their templates.

  - Document: one generated artifact (pdf | docx | md) for a project/module type
  - DocumentTemplate: versioned template source, keyed by module type
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from ventureplan.models import db


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════════════
# Constants
# ═════════════════════════════════════════════════════════════════════════════

DOCUMENT_FORMATS = ["pdf", "docx", "md"]
DOCUMENT_STATUSES = ["pending", "processing", "completed", "failed"]

DOCUMENT_TRANSITIONS = {
    "pending":    ["processing", "failed"],
    "processing": ["completed", "failed"],
    "completed":  [],
    "failed":     [],
}

CONTENT_TYPES = {
    "pdf": "application/pdf",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "md": "text/markdown",
}


def validate_document_transition(old_status, new_status):
    """Return True if Document status transition is valid."""
    return new_status in DOCUMENT_TRANSITIONS.get(old_status, [])


# ═════════════════════════════════════════════════════════════════════════════
# 1. Document
# ═════════════════════════════════════════════════════════════════════════════


class Document(db.Model):
    """
    Generated artifact. Created in 'processing'; ends 'completed' with a
    storage_path, or 'failed' with the error captured in metadata.
    """

    __tablename__ = "documents"
    __table_args__ = (
        db.UniqueConstraint("project_id", "module_type", "version", name="uq_documents_version"),
        db.Index("idx_documents_project_module", "project_id", "module_type", "created_at"),
        db.CheckConstraint("type IN ('pdf','docx','md')", name="ck_documents_type"),
        db.CheckConstraint(
            "status IN ('pending','processing','completed','failed')",
            name="ck_documents_status",
        ),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    project_id = db.Column(db.String(64), nullable=False)
    module_type = db.Column(db.String(40), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    type = db.Column(db.String(10), nullable=False, comment="pdf | docx | md")
    storage_path = db.Column(db.String(500), nullable=False, default="")
    version = db.Column(db.Integer, nullable=False, default=1)
    template_version = db.Column(db.Integer, nullable=True)
    status = db.Column(
        db.String(20), nullable=False, default="pending",
        comment="pending | processing | completed | failed",
    )
    meta = db.Column("metadata", db.JSON, default=dict)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    @property
    def error(self):
        return (self.meta or {}).get("error")

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "module_type": self.module_type,
            "name": self.name,
            "type": self.type,
            "storage_path": self.storage_path,
            "version": self.version,
            "template_version": self.template_version,
            "status": self.status,
            "error": self.error,
            "metadata": self.meta or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Document {self.id}: {self.name}.{self.type} [{self.status}]>"


# ═════════════════════════════════════════════════════════════════════════════
# 2. DocumentTemplate
# ═════════════════════════════════════════════════════════════════════════════


class DocumentTemplate(db.Model):
    """Versioned template for a module type; the highest version wins."""

    __tablename__ = "document_templates"
    __table_args__ = (
        db.UniqueConstraint("module_type", "version", name="uq_document_templates_version"),
    )

    id = db.Column(db.Integer, primary_key=True)
    module_type = db.Column(db.String(40), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    version = db.Column(db.Integer, nullable=False, default=1)
    template_path = db.Column(
        db.String(500), nullable=False,
        comment="Key in the templates bucket, e.g. vision-problem/v1/template.md",
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "module_type": self.module_type,
            "name": self.name,
            "description": self.description,
            "version": self.version,
            "template_path": self.template_path,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<DocumentTemplate {self.module_type} v{self.version}>"
