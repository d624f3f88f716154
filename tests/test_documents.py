"""
Venture Plan Workbench
Tests — document store, generator and workflow.

Covers:
    - Template registry (register, latest version, seeding)
    - generate_document success / failure isolation / timeout
    - Signed URLs and artifact storage
    - flatten_context + DocumentGenerator result boundary
    - DocumentWorkflow end to end (context -> enrichment -> artifact)
"""

import io
import threading
import time

import pytest
from docx import Document as DocxDocument

from ventureplan.ai.context_builder import ContextBuilder, EnrichmentOptions
from ventureplan.ai.enrichment import AIEnrichmentService
from ventureplan.ai.gateway import LLMGateway
from ventureplan.core.exceptions import (
    DuplicateError,
    GenerationTimeoutError,
    NotFoundError,
    TemplateNotFoundError,
    ValidationError,
)
from ventureplan.models.document import Document, DocumentTemplate
from ventureplan.services import document_service, module_service, step_service
from ventureplan.services.artifact_storage import get_storage
from ventureplan.services.document_generator import (
    DocumentGenerator,
    GenerationOptions,
    flatten_context,
    template_data,
)
from ventureplan.services.document_workflow import (
    DocumentWorkflow,
    WorkflowOptions,
    run_for_module,
    validate_module_data,
)
from ventureplan.services.template_engine import TemplateEngine

from conftest import answer_all_steps


class SlowEngine(TemplateEngine):
    def process_template(self, template_text, data):
        time.sleep(1.0)
        return super().process_template(template_text, data)


class HangingEngine(TemplateEngine):
    def __init__(self, release):
        super().__init__()
        self.release = release

    def process_template(self, template_text, data):
        self.release.wait(timeout=10)
        return super().process_template(template_text, data)


class BrokenEngine(TemplateEngine):
    def convert(self, text, fmt):
        raise RuntimeError("converter crashed")


def _vision_data(**extra):
    data = {
        "project_name": "Acme",
        "responses": {"vision": "A world without paperwork"},
        "generated_at": "2026-03-05T10:00:00+00:00",
    }
    data.update(extra)
    return data


def _download(document):
    storage = get_storage()
    return storage.download("documents", document.storage_path)


# ═════════════════════════════════════════════════════════════════════════════
# TEMPLATE REGISTRY
# ═════════════════════════════════════════════════════════════════════════════

class TestTemplates:
    def test_seed_registers_every_module_type_once(self, templates):
        assert len(templates) == 8
        assert document_service.seed_default_templates() == []
        assert DocumentTemplate.query.count() == 8

    def test_register_bumps_version_and_latest_wins(self, templates):
        template = document_service.register_template("vision-problem", "v2", "# {{ project_name }}")
        assert template.version == 2
        assert template.template_path == "vision-problem/v2/template.md"
        assert document_service.get_latest_template("vision-problem").id == template.id
        assert get_storage().download("templates", template.template_path) == b"# {{ project_name }}"

    def test_missing_template(self):
        with pytest.raises(TemplateNotFoundError):
            document_service.get_latest_template("pitch-deck")


# ═════════════════════════════════════════════════════════════════════════════
# DOCUMENT STORE
# ═════════════════════════════════════════════════════════════════════════════

class TestGenerateDocument:
    def test_markdown_document_completes(self, templates):
        document = document_service.generate_document(
            "proj-1", "vision-problem", _vision_data(), "md",
            step_responses={"s1": "A world without paperwork"},
            project_data={"project_name": "Acme"},
        )
        assert document.status == "completed"
        assert document.version == 1
        assert document.name == "vision-problem-v1"
        assert document.template_version == 1
        assert document.storage_path == f"documents/proj-1/vision-problem/{document.id}.md"
        assert document.meta["generated_from"]["project_data"] == {"project_name": "Acme"}
        body = _download(document).decode("utf-8")
        assert "A world without paperwork" in body
        assert "Acme" in body

    def test_versions_increment_per_module_type(self, templates):
        first = document_service.generate_document("proj-1", "vision-problem", _vision_data(), "md")
        second = document_service.generate_document("proj-1", "vision-problem", _vision_data(), "md")
        assert (first.version, second.version) == (1, 2)
        listed = document_service.get_documents("proj-1", "vision-problem")
        assert {d.id for d in listed} == {first.id, second.id}

    def test_taken_version_is_a_duplicate(self, templates):
        document_service.generate_document("proj-1", "vision-problem", _vision_data(), "md", version=3)
        with pytest.raises(DuplicateError):
            document_service.generate_document(
                "proj-1", "vision-problem", _vision_data(), "md", version=3,
            )
        assert Document.query.count() == 1

    def test_docx_document(self, templates):
        document = document_service.generate_document("proj-1", "vision-problem", _vision_data(), "docx")
        doc = DocxDocument(io.BytesIO(_download(document)))
        assert any("A world without paperwork" in p.text for p in doc.paragraphs)

    def test_unsupported_format_creates_nothing(self, templates):
        with pytest.raises(ValidationError):
            document_service.generate_document("proj-1", "vision-problem", _vision_data(), "odt")
        assert Document.query.count() == 0

    def test_missing_template_marks_failed(self):
        with pytest.raises(TemplateNotFoundError) as exc_info:
            document_service.generate_document("proj-1", "vision-problem", _vision_data(), "md")
        document = Document.query.one()
        assert exc_info.value.document_id == document.id
        assert document.status == "failed"
        assert document.meta["error_kind"] == "template_not_found"
        assert document.storage_path == ""

    def test_render_error_marks_failed(self, templates):
        document_service.register_template("vision-problem", "broken", "{{ undefined_value }}")
        with pytest.raises(Exception) as exc_info:
            document_service.generate_document("proj-1", "vision-problem", _vision_data(), "md")
        document = document_service.get_document(exc_info.value.document_id)
        assert document.status == "failed"
        assert document.meta["error_kind"] == "generation"
        assert "undefined_value" in document.error

    def test_converter_crash_marks_failed(self, templates):
        with pytest.raises(RuntimeError) as exc_info:
            document_service.generate_document(
                "proj-1", "vision-problem", _vision_data(), "md", engine=BrokenEngine(),
            )
        document = document_service.get_document(exc_info.value.document_id)
        assert document.status == "failed"
        assert document.meta["error_kind"] == "unexpected"

    def test_timeout_marks_failed(self, app, templates):
        app.config["TEMPLATE_ENGINE_TIMEOUT_SECONDS"] = 0.2
        try:
            with pytest.raises(GenerationTimeoutError) as exc_info:
                document_service.generate_document(
                    "proj-1", "vision-problem", _vision_data(), "md", engine=SlowEngine(),
                )
        finally:
            app.config["TEMPLATE_ENGINE_TIMEOUT_SECONDS"] = 10
        document = document_service.get_document(exc_info.value.document_id)
        assert document.status == "failed"
        assert document.meta["error_kind"] == "timeout"

    def test_timed_out_calls_do_not_block_later_generations(self, app, templates):
        release = threading.Event()
        app.config["TEMPLATE_ENGINE_TIMEOUT_SECONDS"] = 0.2
        try:
            for _ in range(5):
                with pytest.raises(GenerationTimeoutError):
                    document_service.generate_document(
                        "proj-1", "vision-problem", _vision_data(), "md",
                        engine=HangingEngine(release),
                    )
            app.config["TEMPLATE_ENGINE_TIMEOUT_SECONDS"] = 5
            document = document_service.generate_document(
                "proj-1", "vision-problem", _vision_data(), "md", engine=TemplateEngine(),
            )
        finally:
            release.set()
            app.config["TEMPLATE_ENGINE_TIMEOUT_SECONDS"] = 10
        assert document.status == "completed"
        assert "A world without paperwork" in _download(document).decode("utf-8")

    def test_failed_document_has_no_url(self):
        with pytest.raises(TemplateNotFoundError) as exc_info:
            document_service.generate_document("proj-1", "vision-problem", _vision_data(), "md")
        with pytest.raises(NotFoundError):
            document_service.get_document_url(exc_info.value.document_id)


class TestDocumentAccess:
    def test_signed_url_resolves_to_artifact(self, templates):
        document = document_service.generate_document("proj-1", "vision-problem", _vision_data(), "md")
        url = document_service.get_document_url(document.id)
        token = url.rsplit("/", 1)[-1]
        bucket, path, content_type = get_storage().resolve_signed_token(token)
        assert (bucket, path) == ("documents", document.storage_path)
        assert content_type == "text/markdown"

    def test_expired_or_tampered_token(self, templates):
        document = document_service.generate_document("proj-1", "vision-problem", _vision_data(), "md")
        storage = get_storage()
        expired = storage.create_signed_url("documents", document.storage_path, expires_in=-1)
        with pytest.raises(NotFoundError):
            storage.resolve_signed_token(expired.rsplit("/", 1)[-1])
        with pytest.raises(NotFoundError):
            storage.resolve_signed_token("not-a-token")

    def test_unknown_document(self):
        with pytest.raises(NotFoundError):
            document_service.get_document("missing")
        with pytest.raises(NotFoundError):
            document_service.get_document_url("missing")

    def test_delete_removes_artifact(self, templates):
        document = document_service.generate_document("proj-1", "vision-problem", _vision_data(), "md")
        path = document.storage_path
        document_service.delete_document(document.id)
        assert Document.query.count() == 0
        assert not get_storage().exists("documents", path)

    def test_storage_rejects_path_traversal(self):
        with pytest.raises(ValidationError):
            get_storage().upload("documents", "../escape.md", b"x")

    def test_storage_refuses_overwrite_without_upsert(self):
        storage = get_storage()
        storage.upload("documents", "a/b.md", b"1")
        with pytest.raises(ValidationError):
            storage.upload("documents", "a/b.md", b"2")
        storage.upload("documents", "a/b.md", b"2", upsert=True)
        assert storage.download("documents", "a/b.md") == b"2"


# ═════════════════════════════════════════════════════════════════════════════
# GENERATOR
# ═════════════════════════════════════════════════════════════════════════════

class TestFlattenContext:
    def test_namespaces_and_aliases(self):
        context = (
            ContextBuilder("p1", "market-analysis")
            .add_step_responses([{
                "id": "s1", "step_type": "target-market",
                "responses": [{"content": "Bakeries", "version": 1, "is_latest": True}],
            }])
            .add_project_data({"project_name": "Acme", "industry": "Food"})
            .add_market_research({"tam": "4B"})
            .add_market_research("Growing fast")
            .add_financial_data({"burn": "50k"})
            .add_competitor_data([{"name": "A"}, {"name": "B"}])
            .add_competitor_data("C")
            .get_context()
        )
        data = flatten_context(context, {"project_name": "Override"})
        assert data["target-market"] == "Bakeries"
        assert data["target_market"] == "Bakeries"
        assert data["industry"] == "Food"
        assert data["project_name"] == "Override"
        assert data["market_research"] == {"tam": "4B", "notes": ["Growing fast"]}
        assert data["financials"] == {"burn": "50k"}
        assert data["competitors"] == [{"name": "A"}, {"name": "B"}, "C"]

    def test_responses_and_project_data_only(self):
        context = (
            ContextBuilder("p1", "vision-problem")
            .add_step_responses([
                {"id": "s1", "step_type": "vision",
                 "responses": [{"content": "A", "version": 1, "is_latest": True}]},
                {"id": "s2", "step_type": "problem",
                 "responses": [{"content": "B", "version": 1, "is_latest": True}]},
            ])
            .add_project_data({"industry": "fintech"})
            .get_context()
        )
        assert flatten_context(context) == {"vision": "A", "problem": "B", "industry": "fintech"}

    def test_step_id_used_without_step_type(self):
        context = ContextBuilder("p1", "vision-problem").add_step_responses([{
            "id": "s9", "responses": [{"content": "x", "version": 1, "is_latest": True}],
        }]).get_context()
        assert flatten_context(context) == {"s9": "x"}

    def test_template_data_adds_responses_and_timestamp(self):
        context = ContextBuilder("p1", "market-analysis").add_step_responses([{
            "id": "s1", "step_type": "target-market",
            "responses": [{"content": "Bakeries", "version": 1, "is_latest": True}],
        }]).get_context()
        data = template_data(context)
        assert data["responses"] == {"target-market": "Bakeries"}
        assert data["target_market"] == "Bakeries"
        assert "generated_at" in data


class TestDocumentGenerator:
    def _context(self):
        return (
            ContextBuilder("proj-1", "vision-problem")
            .add_step_responses([{
                "id": "s1", "step_type": "vision",
                "responses": [{"content": "Paperless", "version": 1, "is_latest": True}],
            }])
            .add_project_data({"project_name": "Acme"})
            .get_context()
        )

    def test_success_returns_url(self, templates):
        result = DocumentGenerator("proj-1", "vision-problem").generate_document(
            self._context(), GenerationOptions(format="md"),
        )
        assert result.status == "completed"
        assert result.url.startswith("/api/v1/files/")
        document = document_service.get_document(result.document_id)
        assert document.meta["generated_from"]["step_responses"] == {"s1": "Paperless"}

    def test_failure_is_a_result_not_an_exception(self):
        result = DocumentGenerator("proj-1", "vision-problem").generate_document(
            self._context(), GenerationOptions(format="md"),
        )
        assert result.status == "failed"
        assert result.document_id is not None
        assert result.url is None
        assert result.error

    def test_explicit_version(self, templates):
        result = DocumentGenerator("proj-1", "vision-problem").generate_document(
            self._context(), GenerationOptions(format="md", version=7),
        )
        assert document_service.get_document(result.document_id).version == 7

    def test_options_validate_format(self):
        with pytest.raises(ValidationError):
            GenerationOptions(format="odt")
        assert GenerationOptions.from_dict(None).format == "pdf"


# ═════════════════════════════════════════════════════════════════════════════
# WORKFLOW
# ═════════════════════════════════════════════════════════════════════════════

class _FailingEnrichment:
    def enrich(self, sources, options):
        raise RuntimeError("LLM unavailable")


class TestWorkflow:
    def test_end_to_end_markdown_with_enrichment(self, templates, vision_module):
        answer_all_steps(vision_module, prefix="Founder answer")
        options = WorkflowOptions(
            enrichment=EnrichmentOptions(include_market_data=True),
            generation=GenerationOptions(format="md"),
        )
        result = run_for_module(vision_module.id, {"project_name": "Acme"}, options)
        assert result.status == "completed"
        assert result.context_built is True
        assert result.enriched is True
        assert result.processing_time_ms >= 0
        assert result.url

        document = document_service.get_document(result.document_id)
        body = _download(document).decode("utf-8")
        assert "Founder answer for vision" in body
        assert "Founder answer for solution" in body

    def test_vision_problem_scenario(self, templates, vision_module):
        module_id = vision_module.id
        module_service.enter_module(module_id)
        answers = {
            "vision": "Every bakery runs on one tablet",
            "problem": "Order books are still paper",
            "solution": "A point-of-sale built for bakers",
        }
        outcomes = []
        for step_type, text in answers.items():
            step_id = module_service.get_module(module_id).step_ids_by_type()[step_type]
            step_service.save_step_response(step_id, text, actor="founder")
            outcomes.append(module_service.advance_module(module_id, actor="founder").outcome)
        assert outcomes == ["advanced", "advanced", "completed"]

        module = module_service.get_module(module_id)
        assert module.status == "completed"
        assert validate_module_data(module.steps)

        result = run_for_module(
            module_id, {"project_name": "Crumb"},
            WorkflowOptions(generation=GenerationOptions(format="md")),
        )
        assert result.status == "completed"
        body = _download(document_service.get_document(result.document_id)).decode("utf-8")
        for text in answers.values():
            assert text in body
        assert "Crumb" in body

    def test_enrichment_failure_stops_before_generation(self, templates, vision_module):
        answer_all_steps(vision_module)
        workflow = DocumentWorkflow(
            "proj-1", "vision-problem", enrichment_service=_FailingEnrichment(),
        )
        result = workflow.execute(vision_module.steps, {}, WorkflowOptions(
            enrichment=EnrichmentOptions(include_market_data=True),
            generation=GenerationOptions(format="md"),
        ))
        assert result.status == "failed"
        assert result.context_built is True
        assert result.enriched is False
        assert result.document_id is None
        assert Document.query.count() == 0

    def test_missing_llm_key_fails_the_run(self, templates, vision_module, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        answer_all_steps(vision_module)
        service = AIEnrichmentService(gateway=LLMGateway(default_model="gemini-2.5-flash", max_retries=1))
        workflow = DocumentWorkflow("proj-1", "vision-problem", enrichment_service=service)
        result = workflow.execute(vision_module.steps, {}, WorkflowOptions(
            enrichment=EnrichmentOptions(include_market_data=True),
            generation=GenerationOptions(format="md"),
        ))
        assert result.status == "failed"
        assert result.enriched is False
        assert "not configured" in result.error
        assert Document.query.count() == 0

    def test_generation_failure_reports_document(self, vision_module):
        result = DocumentWorkflow("proj-1", "vision-problem").execute(
            vision_module.steps, {}, WorkflowOptions(generation=GenerationOptions(format="md")),
        )
        assert result.status == "failed"
        assert result.context_built is True
        assert result.document_id is not None
        assert document_service.get_document(result.document_id).status == "failed"

    def test_unknown_module(self):
        with pytest.raises(NotFoundError):
            run_for_module("missing")

    def test_validate_module_data(self, vision_module):
        assert validate_module_data([]) is False
        assert validate_module_data(vision_module.steps) is False
        answer_all_steps(vision_module)
        assert validate_module_data(vision_module.steps) is True

    def test_options_from_dict(self):
        options = WorkflowOptions.from_dict({
            "enrichment": {"include_financial_data": True},
            "generation": {"format": "docx", "version": 3},
            "custom_instructions": "Be brief",
        })
        assert options.enrichment.include_financial_data is True
        assert options.generation.format == "docx"
        assert options.generation.version == 3
        assert options.custom_instructions == "Be brief"
        assert WorkflowOptions.from_dict({}).enrichment is None
