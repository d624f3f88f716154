"""Document store — generation pipeline, artifact lookup and template registry.

generate_document runs the whole pipeline for one artifact:

    1. insert Document (status=processing) with its raw inputs in metadata
    2. pick the highest-version DocumentTemplate for the module type
    3. download the template text from the templates bucket
    4. render it                       (Template Engine, time-bounded)
    5. convert to pdf / docx / md      (Template Engine, time-bounded)
    6. upload to documents/{project}/{module_type}/{document_id}.{format}
    7. mark completed with storage_path and template_version

A failure in 2-7 marks the document failed with metadata.error and
metadata.error_kind, commits that, and re-raises. The raised exception
carries ``document_id``.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from pathlib import Path

from flask import current_app
from sqlalchemy import func

from ventureplan.core.exceptions import (
    GenerationError,
    GenerationTimeoutError,
    NotFoundError,
    ServiceError,
    TemplateNotFoundError,
    ValidationError,
)
from ventureplan.models import db
from ventureplan.models.document import (
    CONTENT_TYPES,
    DOCUMENT_FORMATS,
    Document,
    DocumentTemplate,
    validate_document_transition,
)
from ventureplan.module_catalog import get_module_config, list_module_types, parse_module_type
from ventureplan.services.artifact_storage import get_storage
from ventureplan.services.helpers.db_errors import db_operation
from ventureplan.services.template_engine import TemplateEngine

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "document_templates"


def get_template_engine():
    engine = current_app.extensions.get("template_engine")
    if engine is None:
        engine = current_app.extensions["template_engine"] = TemplateEngine()
    return engine


def _bounded(fn, *args, operation="template_engine"):
    """Run a Template Engine call with TEMPLATE_ENGINE_TIMEOUT_SECONDS as its budget.

    Each call gets its own worker thread; a call that overruns is abandoned
    without holding up later generations.
    """
    timeout = current_app.config.get("TEMPLATE_ENGINE_TIMEOUT_SECONDS", 120)
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="template-engine")
    try:
        future = executor.submit(fn, *args)
        return future.result(timeout=timeout)
    except FutureTimeout:
        logger.warning("Template engine call abandoned after %ss: %s", timeout, operation)
        raise GenerationTimeoutError(f"{operation} exceeded {timeout}s")
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


def _error_kind(exc):
    if isinstance(exc, GenerationError):
        return exc.error_kind
    if isinstance(exc, TemplateNotFoundError):
        return "template_not_found"
    if isinstance(exc, ServiceError):
        return exc.kind
    if isinstance(exc, NotFoundError):
        return "not_found"
    return "unexpected"


def _next_document_version(project_id, module_type):
    current = db.session.query(func.max(Document.version)).filter_by(
        project_id=project_id, module_type=module_type,
    ).scalar()
    return (current or 0) + 1


# ═══════════════════════════════════════════════════════════════════
# GENERATION
# ═══════════════════════════════════════════════════════════════════


def generate_document(project_id, module_type, data, fmt="pdf", *,
                      step_responses=None, project_data=None, version=None, engine=None):
    """Render, convert and store one artifact.

    Args:
        data: Flattened template variables.
        fmt: pdf | docx | md.
        step_responses / project_data: Raw inputs recorded in metadata.
        version: Document version; defaults to the next one for
            (project, module_type).

    Returns:
        The completed Document.

    Raises:
        DuplicateError: another generation already took this version.
    """
    if fmt not in DOCUMENT_FORMATS:
        raise ValidationError(
            f"Unsupported document format: {fmt}", details={"allowed": DOCUMENT_FORMATS}
        )
    mtype = parse_module_type(module_type).value
    engine = engine or get_template_engine()
    storage = get_storage()
    cfg = current_app.config
    started = time.monotonic()

    # 1. processing record
    with db_operation("generate_document.create", project_id=project_id, module_type=mtype):
        doc_version = version or _next_document_version(project_id, mtype)
        document = Document(
            project_id=project_id,
            module_type=mtype,
            name=f"{mtype}-v{doc_version}",
            type=fmt,
            storage_path="",
            version=doc_version,
            status="processing",
            meta={
                "generated_from": {
                    "step_responses": dict(step_responses or {}),
                    "project_data": dict(project_data or {}),
                },
            },
        )
        db.session.add(document)
        db.session.commit()
    document_id = document.id
    log_extra = {"document_id": document_id, "project_id": project_id, "module_type": mtype}
    logger.info("Document generation started (%s)", fmt, extra=log_extra)

    uploaded_path = None
    try:
        # 2. template
        template = get_latest_template(mtype)

        # 3. template text
        template_text = storage.download(
            cfg["TEMPLATES_BUCKET"], template.template_path,
        ).decode("utf-8")

        # 4-5. render + convert
        rendered = _bounded(engine.process_template, template_text, data,
                            operation="process_template")
        content = _bounded(engine.convert, rendered, fmt, operation=f"convert_to_{fmt}")

        # 6. upload
        storage_path = f"documents/{project_id}/{mtype}/{document_id}.{fmt}"
        storage.upload(cfg["DOCUMENTS_BUCKET"], storage_path, content, CONTENT_TYPES[fmt])
        uploaded_path = storage_path

        # 7. completed
        with db_operation("generate_document.complete", **log_extra):
            document = db.session.get(Document, document_id)
            if not validate_document_transition(document.status, "completed"):
                raise ValidationError(
                    f"Invalid status transition: {document.status} → completed"
                )
            document.storage_path = storage_path
            document.template_version = template.version
            document.status = "completed"
            db.session.commit()
    except Exception as exc:
        if uploaded_path:
            storage.delete(cfg["DOCUMENTS_BUCKET"], uploaded_path)
        _mark_failed(document_id, exc)
        exc.document_id = document_id
        raise

    logger.info(
        "Document generated", extra={**log_extra, "duration_ms": int((time.monotonic() - started) * 1000)},
    )
    return document


def _mark_failed(document_id, exc):
    kind = _error_kind(exc)
    with db_operation("generate_document.fail", document_id=document_id):
        db.session.rollback()
        document = db.session.get(Document, document_id)
        if document is None or not validate_document_transition(document.status, "failed"):
            return
        meta = dict(document.meta or {})
        meta["error"] = str(exc) or exc.__class__.__name__
        meta["error_kind"] = kind
        document.meta = meta
        document.status = "failed"
        document.storage_path = ""
        db.session.commit()
    logger.error(
        "Document generation failed: %s", exc,
        extra={"document_id": document_id, "error_kind": kind},
    )


# ═══════════════════════════════════════════════════════════════════
# DOCUMENTS
# ═══════════════════════════════════════════════════════════════════


def get_documents(project_id, module_type):
    """Documents for (project, module type), newest first."""
    mtype = parse_module_type(module_type).value
    with db_operation("get_documents", project_id=project_id, module_type=mtype):
        return (
            Document.query.filter_by(project_id=project_id, module_type=mtype)
            .order_by(Document.created_at.desc(), Document.version.desc())
            .all()
        )


def get_document(document_id):
    with db_operation("get_document", document_id=document_id):
        document = db.session.get(Document, document_id)
        if document is None:
            raise NotFoundError(resource="Document", resource_id=document_id)
        return document


def get_document_url(document_id, expires_in=None):
    """Signed download URL for a completed document.

    Raises:
        NotFoundError: unknown document, or it has no stored artifact.
    """
    document = get_document(document_id)
    if document.status != "completed" or not document.storage_path:
        raise NotFoundError(
            resource="Document", resource_id=document_id, reason="no stored artifact",
        )
    expires_in = expires_in or current_app.config["SIGNED_URL_EXPIRY_SECONDS"]
    return get_storage().create_signed_url(
        current_app.config["DOCUMENTS_BUCKET"], document.storage_path, expires_in,
    )


def delete_document(document_id):
    """Delete the document row and its stored artifact."""
    document = get_document(document_id)
    if document.storage_path:
        get_storage().delete(current_app.config["DOCUMENTS_BUCKET"], document.storage_path)
    with db_operation("delete_document", document_id=document_id):
        db.session.delete(document)
        db.session.commit()
    logger.info("Document deleted", extra={"document_id": document_id})


# ═══════════════════════════════════════════════════════════════════
# TEMPLATES
# ═══════════════════════════════════════════════════════════════════


def get_latest_template(module_type):
    """Highest-version template for a module type.

    Raises:
        TemplateNotFoundError: no template registered.
    """
    mtype = parse_module_type(module_type).value
    with db_operation("get_latest_template", module_type=mtype):
        template = (
            DocumentTemplate.query.filter_by(module_type=mtype)
            .order_by(DocumentTemplate.version.desc())
            .first()
        )
    if template is None:
        raise TemplateNotFoundError(mtype)
    return template


def register_template(module_type, name, content, description="", version=None):
    """Upload template text and record it as the next (or given) version."""
    mtype = parse_module_type(module_type).value
    if isinstance(content, str):
        content = content.encode("utf-8")

    with db_operation("register_template", module_type=mtype):
        if version is None:
            current = db.session.query(func.max(DocumentTemplate.version)).filter_by(
                module_type=mtype,
            ).scalar()
            version = (current or 0) + 1
        template_path = f"{mtype}/v{version}/template.md"
        get_storage().upload(
            current_app.config["TEMPLATES_BUCKET"], template_path, content,
            CONTENT_TYPES["md"], upsert=True,
        )
        template = DocumentTemplate(
            module_type=mtype,
            name=name,
            description=description or "",
            version=version,
            template_path=template_path,
        )
        db.session.add(template)
        db.session.commit()

    logger.info("Template registered: %s v%d", mtype, version, extra={"module_type": mtype})
    return template


def seed_default_templates(templates_dir=DEFAULT_TEMPLATES_DIR):
    """Register the bundled template of every module type that has none yet.

    Returns:
        list of DocumentTemplate rows created.
    """
    created = []
    for definition in list_module_types():
        mtype = definition.module_type.value
        if DocumentTemplate.query.filter_by(module_type=mtype).first() is not None:
            continue
        source = Path(templates_dir) / f"{mtype}.md"
        if not source.is_file():
            logger.warning("No bundled template for %s", mtype, extra={"module_type": mtype})
            continue
        config = get_module_config(mtype)
        created.append(register_template(
            mtype,
            name=f"{config.title} Template",
            content=source.read_text(encoding="utf-8"),
            description=f"Default template for {config.title}",
            version=1,
        ))
    return created
