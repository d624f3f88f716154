"""
AI enrichment of a generation context.

AIEnrichmentService asks the LLM gateway for market research, competitor
and financial sources derived from the module responses already in the
context. The model must answer with JSON:

    {"sources": [{"type": "market_research", "content": "...", "metadata": {...}}]}

Any gateway or parsing failure raises EnrichmentError.
"""

import json
import logging
import re

from flask import current_app, has_app_context

from ventureplan.ai.context_builder import ContextSource
from ventureplan.ai.gateway import LLMGateway
from ventureplan.core.exceptions import EnrichmentError

logger = logging.getLogger(__name__)

ENRICHABLE_TYPES = ("market_research", "competitor_data", "financial_data")

_FINANCIAL_TERMS = ("revenue", "profit", "margin", "cost", "growth", "funding")
_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.MULTILINE)

SYSTEM_PROMPT = (
    "You are a venture analyst. Given a founder's module answers, return "
    "concise supporting data as JSON of the form "
    '{"sources": [{"type": "...", "content": "...", "metadata": {}}]}. '
    "Allowed types: market_research, competitor_data, financial_data."
)


def extract_key_terms(sources, limit=25):
    """Distinct lower-cased words longer than 3 characters from module responses."""
    terms = []
    for source in sources:
        if source.type != "module_response":
            continue
        for word in str(source.content).split():
            word = word.strip(".,;:!?()\"'").lower()
            if len(word) > 3 and word not in terms:
                terms.append(word)
    return terms[:limit]


def extract_industry(sources):
    for source in sources:
        if source.type == "project_data" and isinstance(source.content, dict):
            return source.content.get("industry")
    return None


def extract_financial_metrics(sources):
    text = " ".join(
        str(s.content).lower() for s in sources if s.type == "module_response"
    )
    return [term for term in _FINANCIAL_TERMS if term in text]


class AIEnrichmentService:
    """Enrichment collaborator backed by LLMGateway."""

    def __init__(self, gateway=None, model=None):
        if gateway is None:
            max_retries = 3
            if has_app_context():
                model = model or current_app.config.get("LLM_DEFAULT_CHAT_MODEL")
                max_retries = current_app.config.get("LLM_MAX_RETRIES", 3)
            gateway = LLMGateway(default_model=model, max_retries=max_retries)
        self.gateway = gateway
        self.model = model

    def build_prompt(self, sources, options):
        requests = []
        if options.include_market_data:
            requests.append("market research for the target market")
        if options.include_competitor_data:
            requests.append("competitor data for the main competitors")
        if options.include_financial_data:
            metrics = extract_financial_metrics(sources)
            requests.append(
                "financial data" + (f" covering {', '.join(metrics)}" if metrics else "")
            )

        lines = [f"Provide {'; '.join(requests)}."]
        industry = extract_industry(sources)
        if industry:
            lines.append(f"Industry: {industry}")
        terms = extract_key_terms(sources)
        if terms:
            lines.append(f"Key terms: {', '.join(terms)}")
        lines.append("Founder answers:")
        for source in sources:
            if source.type == "module_response":
                lines.append(f"- {source.metadata.get('step_type')}: {source.content}")
        if options.custom_instructions:
            lines.append(f"Additional instructions: {options.custom_instructions}")
        return "\n".join(lines)

    def enrich(self, sources, options) -> list:
        """Return new ContextSource objects for the requested data kinds."""
        wanted = set()
        if options.include_market_data:
            wanted.add("market_research")
        if options.include_competitor_data:
            wanted.add("competitor_data")
        if options.include_financial_data:
            wanted.add("financial_data")
        if not wanted:
            return []

        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": self.build_prompt(sources, options)},
        ]
        try:
            result = self.gateway.chat(messages, self.model, purpose="context_enrichment")
        except RuntimeError as e:
            raise EnrichmentError(f"Enrichment call failed: {e}") from e

        return self._parse(result.get("content") or "", wanted)

    @staticmethod
    def _parse(content, wanted):
        try:
            payload = json.loads(_FENCE_RE.sub("", content.strip()))
        except json.JSONDecodeError as e:
            raise EnrichmentError(f"Enrichment response is not valid JSON: {e}") from e

        if not isinstance(payload, dict) or not isinstance(payload.get("sources"), list):
            raise EnrichmentError("Enrichment response has no 'sources' list")

        sources = []
        for item in payload["sources"]:
            if not isinstance(item, dict) or item.get("type") not in ENRICHABLE_TYPES:
                logger.debug("Skipping enrichment item: %r", item)
                continue
            if item["type"] not in wanted:
                continue
            metadata = dict(item.get("metadata") or {})
            metadata.setdefault("origin", "ai_enrichment")
            sources.append(ContextSource(item["type"], item.get("content"), metadata))
        return sources
