"""
Shared pytest fixtures for the Venture Plan Workbench test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB recreate + fresh artifact storage root (autouse)
    - client: Flask test client (function-scoped)
    - templates: bundled document templates registered for every module type
    - vision_module: a vision-problem module for project "proj-1"
"""

import pytest

from ventureplan import create_app
from ventureplan.models import db as _db


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db, tmp_path):
    """Per-test: open app context, point storage at tmp_path, recreate tables after."""
    app.config["STORAGE_ROOT"] = str(tmp_path / "storage")
    app.extensions.pop("artifact_storage", None)
    app.extensions.pop("template_engine", None)
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()
    app.extensions.pop("artifact_storage", None)
    app.extensions.pop("template_engine", None)


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def templates():
    """Register the bundled template of every module type."""
    from ventureplan.services.document_service import seed_default_templates
    return seed_default_templates()


@pytest.fixture()
def vision_module():
    """A freshly created vision-problem module (3 steps)."""
    from ventureplan.services import module_service
    return module_service.get_or_create_module("proj-1", "vision-problem", actor="founder")


def answer_all_steps(module, prefix="Answer"):
    """Save one response per step of ``module``; returns {step_type: content}."""
    from ventureplan.services import step_service
    answers = {}
    for step in module.steps:
        content = f"{prefix} for {step.step_type}"
        step_service.save_step_response(step.id, content, actor="founder")
        answers[step.step_type] = content
    return answers
