"""
Venture Plan Workbench
Context Builder — assembles the generation context for one module.

The context is an ordered list of typed sources. Step responses are reduced
to their latest version; project data, research and financial figures are
appended as-is. Optional AI enrichment appends further sources through an
enrichment collaborator (see ventureplan.ai.enrichment).

Usage:
    builder = ContextBuilder(project_id, "vision-problem")
    context = (
        builder.add_step_responses(module.steps)
        .add_project_data({"industry": "fintech"})
        .get_context()
    )
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any

from ventureplan.core.exceptions import EnrichmentError

logger = logging.getLogger(__name__)

SOURCE_TYPES = (
    "module_response",
    "project_data",
    "market_research",
    "competitor_data",
    "financial_data",
)


def _utcnow_iso():
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class ContextSource:
    type: str
    content: Any
    metadata: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self):
        if self.type not in SOURCE_TYPES:
            raise ValueError(f"Unknown context source type: {self.type!r}")
        if not isinstance(self.metadata, MappingProxyType):
            object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata or {})))

    def to_dict(self):
        return {"type": self.type, "content": self.content, "metadata": dict(self.metadata)}


@dataclass(frozen=True)
class Context:
    """Read-only snapshot returned by ContextBuilder.get_context()."""

    sources: tuple
    enriched: bool
    last_updated: str
    metadata: MappingProxyType

    def of_type(self, source_type):
        return [s for s in self.sources if s.type == source_type]

    def to_dict(self):
        return {
            "sources": [s.to_dict() for s in self.sources],
            "enriched": self.enriched,
            "last_updated": self.last_updated,
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True)
class EnrichmentOptions:
    include_market_data: bool = False
    include_competitor_data: bool = False
    include_financial_data: bool = False
    custom_instructions: str | None = None

    @classmethod
    def from_dict(cls, data):
        data = data or {}
        return cls(
            include_market_data=bool(data.get("include_market_data", False)),
            include_competitor_data=bool(data.get("include_competitor_data", False)),
            include_financial_data=bool(data.get("include_financial_data", False)),
            custom_instructions=data.get("custom_instructions"),
        )


# ── Step / response access (ORM rows or to_dict() output) ────────────────────

def _field(obj, name, default=None):
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def latest_response_of(step):
    """The is_latest response of a step (highest version wins), or None."""
    latest = [r for r in (_field(step, "responses") or []) if _field(r, "is_latest")]
    if not latest:
        return None
    return max(latest, key=lambda r: _field(r, "version") or 0)


def _iso(value):
    if isinstance(value, datetime):
        return value.isoformat()
    return value


# ── Builder ──────────────────────────────────────────────────────────────────

class ContextBuilder:
    """Mutable builder for a module's generation Context."""

    def __init__(self, project_id, module_type, enrichment_service=None):
        self.project_id = project_id
        self.module_type = module_type
        self._enrichment_service = enrichment_service
        self._sources: list[ContextSource] = []
        self._enriched = False
        self._last_updated = _utcnow_iso()
        self._metadata: dict = {"project_id": project_id, "module_type": module_type}

    def _touch(self):
        self._last_updated = _utcnow_iso()

    def _append(self, source_type, content, metadata):
        self._sources.append(ContextSource(source_type, content, metadata))
        self._touch()
        return self

    def add_step_responses(self, steps):
        """Add one module_response source per step that has a latest response."""
        for step in steps or []:
            response = latest_response_of(step)
            if response is None:
                continue
            self._sources.append(ContextSource(
                "module_response",
                _field(response, "content") or "",
                {
                    "step_id": _field(step, "id"),
                    "step_type": _field(step, "step_type"),
                    "version": _field(response, "version"),
                    "created_at": _iso(_field(response, "created_at")),
                },
            ))
        self._touch()
        return self

    def add_project_data(self, data):
        return self._append("project_data", dict(data or {}), {"timestamp": _utcnow_iso()})

    def add_market_research(self, content, **metadata):
        return self._append("market_research", content, metadata)

    def add_competitor_data(self, content, **metadata):
        return self._append("competitor_data", content, metadata)

    def add_financial_data(self, content, **metadata):
        return self._append("financial_data", content, metadata)

    def enrich_context(self, options: EnrichmentOptions | None = None):
        """Append AI-provided sources. No-op once the context is enriched.

        Raises:
            EnrichmentError: the enrichment collaborator failed; the context
                is left unenriched.
        """
        if self._enriched:
            return self
        options = options or EnrichmentOptions()

        service = self._enrichment_service
        if service is None:
            from ventureplan.ai.enrichment import AIEnrichmentService
            service = self._enrichment_service = AIEnrichmentService()

        try:
            added = service.enrich(tuple(self._sources), options)
        except EnrichmentError:
            raise
        except Exception as e:
            logger.warning(
                "Context enrichment failed: %s", e,
                extra={"project_id": self.project_id, "module_type": self.module_type},
            )
            raise EnrichmentError(str(e)) from e

        for source in added or []:
            if not isinstance(source, ContextSource):
                source = ContextSource(
                    source["type"], source.get("content"), source.get("metadata") or {}
                )
            self._sources.append(source)
        if options.custom_instructions:
            self._metadata["custom_instructions"] = options.custom_instructions
        self._enriched = True
        self._touch()
        logger.info(
            "Context enriched with %d sources", len(added or []),
            extra={"project_id": self.project_id, "module_type": self.module_type},
        )
        return self

    def get_context(self) -> Context:
        return Context(
            sources=tuple(self._sources),
            enriched=self._enriched,
            last_updated=self._last_updated,
            metadata=MappingProxyType(dict(self._metadata)),
        )
