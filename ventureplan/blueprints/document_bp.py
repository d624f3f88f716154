"""
Document blueprint — generation workflow, generated documents, downloads.

Endpoints:
    POST   /api/v1/modules/<module_id>/documents                      run the workflow
    GET    /api/v1/projects/<project_id>/modules/<module_type>/documents
    GET    /api/v1/documents/<document_id>
    GET    /api/v1/documents/<document_id>/url
    DELETE /api/v1/documents/<document_id>
    GET    /api/v1/files/<token>                                      signed download

POST /modules/<id>/documents body:
    {
      "project_data": {...},
      "generation": {"format": "pdf" | "docx" | "md", "version": 2, "custom_data": {...}},
      "enrichment": {"include_market_data": true, ...},
      "custom_instructions": "...",
      "require_complete": false
    }
Returns the WorkflowResult; 201 when completed, 422 when the run failed.
"""

import logging

from flask import Blueprint, Response, jsonify, request

from ventureplan.services import document_service, module_service
from ventureplan.services.artifact_storage import get_storage
from ventureplan.services.document_workflow import (
    WorkflowOptions,
    run_for_module,
    validate_module_data,
)
from ventureplan.utils.errors import E, api_error, register_error_handlers
from ventureplan.utils.helpers import get_json_body

logger = logging.getLogger(__name__)

document_bp = Blueprint("document_bp", __name__, url_prefix="/api/v1")
register_error_handlers(document_bp)


@document_bp.route("/modules/<module_id>/documents", methods=["POST"])
def generate_module_document(module_id):
    data = get_json_body()
    project_data = data.get("project_data") or {}
    if not isinstance(project_data, dict):
        return api_error(E.VALIDATION_INVALID, "project_data must be an object")
    for key in ("generation", "enrichment"):
        if data.get(key) is not None and not isinstance(data[key], dict):
            return api_error(E.VALIDATION_INVALID, f"{key} must be an object")
    custom_data = (data.get("generation") or {}).get("custom_data")
    if custom_data is not None and not isinstance(custom_data, dict):
        return api_error(E.VALIDATION_INVALID, "generation.custom_data must be an object")
    options = WorkflowOptions.from_dict(data)

    if data.get("require_complete"):
        module = module_service.get_module(module_id)
        if not validate_module_data(module.steps, project_data):
            return api_error(
                E.VALIDATION_STATE, "Every step needs a response before generating",
            )

    result = run_for_module(module_id, project_data, options)
    status = 201 if result.status == "completed" else 422
    return jsonify(result.to_dict()), status


@document_bp.route("/projects/<project_id>/modules/<module_type>/documents", methods=["GET"])
def list_documents(project_id, module_type):
    documents = document_service.get_documents(project_id, module_type)
    return jsonify([d.to_dict() for d in documents]), 200


@document_bp.route("/documents/<document_id>", methods=["GET"])
def get_document(document_id):
    return jsonify(document_service.get_document(document_id).to_dict()), 200


@document_bp.route("/documents/<document_id>/url", methods=["GET"])
def get_document_url(document_id):
    expires_in = request.args.get("expires_in", type=int)
    if expires_in is not None and expires_in <= 0:
        return api_error(E.VALIDATION_INVALID, "expires_in must be positive")
    url = document_service.get_document_url(document_id, expires_in)
    return jsonify({"url": url}), 200


@document_bp.route("/documents/<document_id>", methods=["DELETE"])
def delete_document(document_id):
    document_service.delete_document(document_id)
    return "", 204


@document_bp.route("/files/<token>", methods=["GET"])
def download_file(token):
    """Serve an artifact behind a signed, expiring token."""
    storage = get_storage()
    bucket, path, content_type = storage.resolve_signed_token(token)
    payload = storage.download(bucket, path)
    filename = path.rsplit("/", 1)[-1]
    return Response(
        payload,
        mimetype=content_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
