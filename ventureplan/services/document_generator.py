"""Document generator — turns a built Context into a stored artifact.

The generator is a result boundary: it never raises. Any failure in
flattening, rendering, storage or URL signing becomes
GenerationResult(status="failed", error=...), carrying the failed
document's id when one was created.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone

from ventureplan.core.exceptions import ValidationError
from ventureplan.models.document import DOCUMENT_FORMATS
from ventureplan.module_catalog import parse_module_type
from ventureplan.services import document_service

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationOptions:
    format: str = "pdf"
    version: int | None = None
    custom_data: dict | None = None

    def __post_init__(self):
        if self.format not in DOCUMENT_FORMATS:
            raise ValidationError(
                f"Unsupported document format: {self.format}",
                details={"allowed": DOCUMENT_FORMATS},
            )

    @classmethod
    def from_dict(cls, data):
        data = data or {}
        return cls(
            format=data.get("format", "pdf"),
            version=data.get("version"),
            custom_data=data.get("custom_data"),
        )


@dataclass
class GenerationResult:
    document_id: str | None
    status: str
    url: str | None = None
    error: str | None = None

    def to_dict(self):
        return asdict(self)


def _merge_namespace(target: dict, content):
    if isinstance(content, dict):
        target.update(content)
    elif content not in (None, ""):
        target.setdefault("notes", []).append(content)


def flatten_context(context, custom_data=None) -> dict:
    """Flatten context sources into template variables.

    module_response   -> {step_type: content} (step id when the type is missing);
                         hyphenated step types also get an underscore alias
    project_data      -> merged at top level
    market_research   -> "market_research" namespace
    financial_data    -> "financials" namespace
    competitor_data   -> appended to the "competitors" list

    Namespaces are only present when the context has sources of that type.
    """
    data: dict = {}
    responses: dict = {}
    market_research: dict = {}
    financials: dict = {}
    competitors: list = []

    for source in context.sources:
        if source.type == "module_response":
            key = _step_key(source)
            if key:
                responses[key] = source.content
        elif source.type == "project_data":
            data.update(source.content or {})
        elif source.type == "market_research":
            _merge_namespace(market_research, source.content)
        elif source.type == "financial_data":
            _merge_namespace(financials, source.content)
        elif source.type == "competitor_data":
            if isinstance(source.content, list):
                competitors.extend(source.content)
            elif source.content not in (None, ""):
                competitors.append(source.content)

    for key, content in responses.items():
        data[key] = content
        alias = key.replace("-", "_")
        if alias != key:
            data.setdefault(alias, content)
    if market_research:
        data["market_research"] = market_research
    if financials:
        data["financials"] = financials
    if competitors:
        data["competitors"] = competitors
    data.update(custom_data or {})
    return data


def _step_key(source):
    return source.metadata.get("step_type") or source.metadata.get("step_id")


def template_data(context, custom_data=None) -> dict:
    """flatten_context plus the values the bundled templates rely on.

    responses     -> {step_key: content}, also usable for step types that
                     are not valid identifiers ("target-market")
    generated_at  -> ISO timestamp of this render
    """
    data = flatten_context(context, custom_data)
    data.setdefault("responses", {
        _step_key(s): s.content for s in context.of_type("module_response") if _step_key(s)
    })
    data.setdefault("generated_at", datetime.now(timezone.utc).isoformat())
    return data


class DocumentGenerator:
    """Generates documents for one (project, module type)."""

    def __init__(self, project_id, module_type, engine=None):
        self.project_id = project_id
        self.module_type = parse_module_type(module_type).value
        self.engine = engine

    def generate_document(self, context, options=None) -> GenerationResult:
        document_id = None
        try:
            options = options or GenerationOptions()
            data = template_data(context, options.custom_data)
            step_responses = {
                s.metadata.get("step_id") or s.metadata.get("step_type"): s.content
                for s in context.of_type("module_response")
            }
            project_data = {}
            for source in context.of_type("project_data"):
                project_data.update(source.content or {})

            document = document_service.generate_document(
                self.project_id, self.module_type, data, options.format,
                step_responses=step_responses,
                project_data=project_data,
                version=options.version,
                engine=self.engine,
            )
            document_id = document.id

            url = None
            if document.status == "completed":
                url = document_service.get_document_url(document_id)
            return GenerationResult(document_id=document_id, status=document.status, url=url)
        except Exception as e:
            document_id = document_id or getattr(e, "document_id", None)
            logger.error(
                "Document generation failed: %s", e,
                extra={"project_id": self.project_id, "module_type": self.module_type,
                       "document_id": document_id},
            )
            return GenerationResult(
                document_id=document_id,
                status="failed",
                error=str(e) or e.__class__.__name__,
            )

    def get_documents(self):
        return document_service.get_documents(self.project_id, self.module_type)

    def get_document_url(self, document_id):
        return document_service.get_document_url(document_id)
