"""
Module blueprint — guided modules, steps and versioned step responses.

Endpoints:
    GET    /api/v1/module-types
    GET    /api/v1/projects/<project_id>/modules
    GET    /api/v1/projects/<project_id>/modules/<module_type>      existing module or 404
    POST   /api/v1/projects/<project_id>/modules/<module_type>      get-or-create
    GET    /api/v1/modules/<module_id>
    PATCH  /api/v1/modules/<module_id>
    DELETE /api/v1/modules/<module_id>
    POST   /api/v1/modules/<module_id>/enter | next | previous
    GET    /api/v1/modules/<module_id>/steps
    GET    /api/v1/steps/<step_id>
    PATCH  /api/v1/steps/<step_id>/status
    GET    /api/v1/steps/<step_id>/responses
    POST   /api/v1/steps/<step_id>/responses

Layer contract: routes parse and validate input, call module_service /
step_service, serialise with to_dict(). Services own all commits.
"""

import logging

from flask import Blueprint, jsonify, request

from ventureplan.module_catalog import list_module_types
from ventureplan.services import module_service, step_service
from ventureplan.utils.errors import E, api_error, register_error_handlers
from ventureplan.utils.helpers import current_actor, get_json_body, require_fields

logger = logging.getLogger(__name__)

module_bp = Blueprint("module_bp", __name__, url_prefix="/api/v1")
register_error_handlers(module_bp)


def _include_responses():
    return request.args.get("include_responses", "true").lower() != "false"


# ═════════════════════════════════════════════════════════════════════════
# Catalog
# ═════════════════════════════════════════════════════════════════════════


@module_bp.route("/module-types", methods=["GET"])
def module_types():
    """Static module catalog, in guided order, with step definitions."""
    return jsonify([m.to_dict() for m in list_module_types()]), 200


# ═════════════════════════════════════════════════════════════════════════
# Modules
# ═════════════════════════════════════════════════════════════════════════


@module_bp.route("/projects/<project_id>/modules", methods=["GET"])
def list_project_modules(project_id):
    modules = module_service.get_modules_by_project(project_id)
    return jsonify([m.to_dict() for m in modules]), 200


@module_bp.route("/projects/<project_id>/modules/<module_type>", methods=["GET"])
def get_project_module(project_id, module_type):
    module = module_service.get_module_by_type(project_id, module_type)
    if module is None:
        return api_error(E.NOT_FOUND, f"No {module_type} module for project {project_id}")
    return jsonify(module.to_dict(include_steps=True, include_responses=_include_responses())), 200


@module_bp.route("/projects/<project_id>/modules/<module_type>", methods=["POST"])
def get_or_create_project_module(project_id, module_type):
    """Return the (project, type) module, creating it and its steps on first call."""
    existing = module_service.get_module_by_type(project_id, module_type)
    module = existing or module_service.get_or_create_module(
        project_id, module_type, actor=current_actor(),
    )
    status = 200 if existing else 201
    return jsonify(module.to_dict(include_steps=True, include_responses=True)), status


@module_bp.route("/modules/<module_id>", methods=["GET"])
def get_module(module_id):
    module = module_service.get_module(module_id)
    return jsonify(module.to_dict(include_steps=True, include_responses=_include_responses())), 200


@module_bp.route("/modules/<module_id>", methods=["PATCH"])
def update_module(module_id):
    """Patch title / status / current_step_id / metadata.

    Body: any subset of {title, status, current_step_id, metadata}
    """
    data = get_json_body()
    allowed = {"title", "status", "current_step_id", "metadata"}
    unknown = sorted(set(data) - allowed)
    if unknown:
        return api_error(
            E.VALIDATION_INVALID, "Unknown fields", details={"fields": unknown},
        )
    module = module_service.update_module(module_id, data)
    return jsonify(module.to_dict(include_steps=True)), 200


@module_bp.route("/modules/<module_id>", methods=["DELETE"])
def delete_module(module_id):
    module_service.delete_module(module_id)
    return "", 204


@module_bp.route("/modules/<module_id>/enter", methods=["POST"])
def enter_module(module_id):
    result = module_service.enter_module(module_id)
    return jsonify(result.to_dict()), 200


@module_bp.route("/modules/<module_id>/next", methods=["POST"])
def next_step(module_id):
    result = module_service.advance_module(module_id, actor=current_actor())
    return jsonify(result.to_dict()), 200


@module_bp.route("/modules/<module_id>/previous", methods=["POST"])
def previous_step(module_id):
    result = module_service.retreat_module(module_id)
    return jsonify(result.to_dict()), 200


# ═════════════════════════════════════════════════════════════════════════
# Steps & responses
# ═════════════════════════════════════════════════════════════════════════


@module_bp.route("/modules/<module_id>/steps", methods=["GET"])
def list_steps(module_id):
    module_service.get_module(module_id)
    steps = step_service.get_steps(module_id)
    return jsonify([s.to_dict() for s in steps]), 200


@module_bp.route("/steps/<step_id>", methods=["GET"])
def get_step(step_id):
    step = step_service.get_step(step_id)
    return jsonify(step.to_dict(include_responses=True)), 200


@module_bp.route("/steps/<step_id>/status", methods=["PATCH"])
def update_step_status(step_id):
    """Body: {status: not_started | in_progress | completed}"""
    data = get_json_body()
    err = require_fields(data, "status")
    if err:
        return err
    step = step_service.update_step_status(step_id, data["status"], actor=current_actor())
    return jsonify(step.to_dict()), 200


@module_bp.route("/steps/<step_id>/responses", methods=["GET"])
def list_responses(step_id):
    step_service.get_step(step_id)
    responses = step_service.get_step_responses(step_id)
    return jsonify([r.to_dict() for r in responses]), 200


@module_bp.route("/steps/<step_id>/responses", methods=["POST"])
def save_response(step_id):
    """Append a new response version. Body: {content}"""
    data = get_json_body()
    err = require_fields(data, "content")
    if err:
        return err
    if not isinstance(data["content"], str):
        return api_error(E.VALIDATION_INVALID, "content must be a string")
    response = step_service.save_step_response(step_id, data["content"], actor=current_actor())
    return jsonify(response.to_dict()), 201
