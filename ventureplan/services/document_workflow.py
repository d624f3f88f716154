"""Document workflow — context build, optional enrichment, generation.

DocumentWorkflow.execute never raises. Whatever happens, the caller gets a
WorkflowResult saying how far the run got (context_built, enriched) and how
long it took (processing_time_ms).
"""

import logging
import time
from dataclasses import asdict, dataclass

from ventureplan.ai.context_builder import ContextBuilder, EnrichmentOptions, latest_response_of
from ventureplan.core.exceptions import EnrichmentError
from ventureplan.module_catalog import parse_module_type
from ventureplan.services import module_service
from ventureplan.services.document_generator import DocumentGenerator, GenerationOptions

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkflowOptions:
    enrichment: EnrichmentOptions | None = None
    generation: GenerationOptions | None = None
    custom_instructions: str | None = None

    @classmethod
    def from_dict(cls, data):
        data = data or {}
        enrichment = data.get("enrichment")
        return cls(
            enrichment=EnrichmentOptions.from_dict(enrichment) if enrichment else None,
            generation=GenerationOptions.from_dict(data.get("generation")),
            custom_instructions=data.get("custom_instructions"),
        )


@dataclass
class WorkflowResult:
    document_id: str | None
    status: str
    context_built: bool
    enriched: bool
    processing_time_ms: int
    url: str | None = None
    error: str | None = None

    def to_dict(self):
        return asdict(self)


def validate_module_data(steps, project_data=None) -> bool:
    """True when there is at least one step and every step has a latest response."""
    steps = list(steps or [])
    if not steps:
        return False
    return all(latest_response_of(step) is not None for step in steps)


class DocumentWorkflow:
    """Runs the generation pipeline for one (project, module type)."""

    def __init__(self, project_id, module_type, enrichment_service=None, engine=None):
        self.project_id = project_id
        self.module_type = parse_module_type(module_type).value
        self._enrichment_service = enrichment_service
        self._generator = DocumentGenerator(project_id, self.module_type, engine=engine)

    def execute(self, steps, project_data=None, options=None) -> WorkflowResult:
        started = time.monotonic()
        context_built = False
        enriched = False

        def elapsed():
            return int((time.monotonic() - started) * 1000)

        log_extra = {"project_id": self.project_id, "module_type": self.module_type}
        try:
            options = options or WorkflowOptions()
            builder = ContextBuilder(
                self.project_id, self.module_type,
                enrichment_service=self._enrichment_service,
            )
            builder.add_step_responses(steps).add_project_data(project_data or {})
            context_built = True

            if options.enrichment is not None:
                enrichment = options.enrichment
                if options.custom_instructions:
                    enrichment = EnrichmentOptions(
                        include_market_data=enrichment.include_market_data,
                        include_competitor_data=enrichment.include_competitor_data,
                        include_financial_data=enrichment.include_financial_data,
                        custom_instructions=options.custom_instructions,
                    )
                builder.enrich_context(enrichment)

            context = builder.get_context()
            enriched = context.enriched
            result = self._generator.generate_document(
                context, options.generation or GenerationOptions(format="pdf"),
            )
        except EnrichmentError as e:
            logger.warning("Workflow stopped at enrichment: %s", e, extra=log_extra)
            return WorkflowResult(
                document_id=None, status="failed",
                context_built=context_built, enriched=False,
                processing_time_ms=elapsed(), error=str(e) or "Enrichment failed",
            )
        except Exception as e:
            logger.exception("Document workflow failed", extra=log_extra)
            return WorkflowResult(
                document_id=getattr(e, "document_id", None), status="failed",
                context_built=context_built, enriched=enriched,
                processing_time_ms=elapsed(), error=str(e) or e.__class__.__name__,
            )

        logger.info(
            "Document workflow finished: %s", result.status,
            extra={**log_extra, "document_id": result.document_id, "duration_ms": elapsed()},
        )
        return WorkflowResult(
            document_id=result.document_id,
            status=result.status,
            context_built=context_built,
            enriched=enriched,
            processing_time_ms=elapsed(),
            url=result.url,
            error=result.error,
        )

    def get_documents(self):
        return self._generator.get_documents()

    def get_document_url(self, document_id):
        return self._generator.get_document_url(document_id)


def run_for_module(module_id, project_data=None, options=None, **workflow_kwargs):
    """Load a module and run the workflow on its steps.

    Raises:
        NotFoundError: unknown module (before any work starts).
    """
    module = module_service.get_module(module_id)
    workflow = DocumentWorkflow(module.project_id, module.type, **workflow_kwargs)
    return workflow.execute(module.steps, project_data, options)
