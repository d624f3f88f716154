"""
Venture Plan Workbench
LLM Gateway — provider-agnostic chat router used by context enrichment.

Features:
    - Multi-provider support (Anthropic Claude, OpenAI, Gemini, local stub)
    - Auto-retry with exponential backoff
    - A provider without an API key raises instead of answering

Usage:
    from ventureplan.ai.gateway import LLMGateway
    gw = LLMGateway()
    result = gw.chat([{"role": "user", "content": "Summarise the market"}])
"""

import json
import logging
import os
import time
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


# ── Provider Abstract Base ────────────────────────────────────────────────────

class LLMProvider(ABC):
    """Abstract interface for LLM providers."""

    @abstractmethod
    def chat(self, messages: list, model: str, **kwargs) -> dict:
        """
        Send a chat completion request.

        Args:
            messages: List of {"role": "...", "content": "..."} dicts.
            model: Model identifier string.
            **kwargs: temperature, max_tokens, etc.

        Returns:
            dict with keys: content, prompt_tokens, completion_tokens, model
        """
        ...


# ── Anthropic Provider ────────────────────────────────────────────────────────

class AnthropicProvider(LLMProvider):
    """Claude API (Anthropic) provider."""

    def __init__(self):
        self.api_key = os.getenv("ANTHROPIC_API_KEY", "")
        self._client = None

    def _get_client(self):
        if self._client is None:
            try:
                import anthropic
            except ImportError:
                raise RuntimeError("anthropic package not installed. Run: pip install anthropic")
            self._client = anthropic.Anthropic(api_key=self.api_key)
        return self._client

    def chat(self, messages: list, model: str = "claude-3-5-haiku-20241022", **kwargs) -> dict:
        client = self._get_client()

        # Separate system message
        system_msg = ""
        chat_messages = []
        for m in messages:
            if m["role"] == "system":
                system_msg = m["content"]
            else:
                chat_messages.append(m)

        params = {
            "model": model,
            "messages": chat_messages,
            "max_tokens": kwargs.get("max_tokens", 4096),
            "temperature": kwargs.get("temperature", 0.3),
        }
        if system_msg:
            params["system"] = system_msg

        response = client.messages.create(**params)

        return {
            "content": response.content[0].text,
            "prompt_tokens": response.usage.input_tokens,
            "completion_tokens": response.usage.output_tokens,
            "model": model,
        }


# ── OpenAI Provider ───────────────────────────────────────────────────────────

class OpenAIProvider(LLMProvider):
    """OpenAI GPT provider."""

    def __init__(self):
        self.api_key = os.getenv("OPENAI_API_KEY", "")
        self._client = None

    def _get_client(self):
        if self._client is None:
            try:
                import openai
            except ImportError:
                raise RuntimeError("openai package not installed. Run: pip install openai")
            self._client = openai.OpenAI(api_key=self.api_key)
        return self._client

    def chat(self, messages: list, model: str = "gpt-4o-mini", **kwargs) -> dict:
        client = self._get_client()
        response = client.chat.completions.create(
            model=model,
            messages=messages,
            max_tokens=kwargs.get("max_tokens", 4096),
            temperature=kwargs.get("temperature", 0.3),
        )
        choice = response.choices[0]
        return {
            "content": choice.message.content,
            "prompt_tokens": response.usage.prompt_tokens,
            "completion_tokens": response.usage.completion_tokens,
            "model": model,
        }


# ── Google Gemini Provider ───────────────────────────────────────────────────

class GeminiProvider(LLMProvider):
    """
    Google Gemini API provider.

    Environment:
        GEMINI_API_KEY — obtain at https://aistudio.google.com/apikey
    """

    def __init__(self):
        self.api_key = os.getenv("GEMINI_API_KEY", "")
        self._client = None

    def _get_client(self):
        if self._client is None:
            try:
                from google import genai
            except ImportError:
                raise RuntimeError(
                    "google-genai package not installed. Run: pip install google-genai"
                )
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def chat(self, messages: list, model: str = "gemini-2.5-flash", **kwargs) -> dict:
        client = self._get_client()
        from google.genai import types

        system_parts = []
        contents = []
        for m in messages:
            if m["role"] == "system":
                system_parts.append(m["content"])
            else:
                # Gemini uses "user" and "model" roles
                role = "model" if m["role"] == "assistant" else "user"
                contents.append(
                    types.Content(role=role, parts=[types.Part(text=m["content"])])
                )

        config = types.GenerateContentConfig(
            temperature=kwargs.get("temperature", 0.3),
            max_output_tokens=kwargs.get("max_tokens", 4096),
        )
        if system_parts:
            config.system_instruction = "\n\n".join(system_parts)

        response = client.models.generate_content(model=model, contents=contents, config=config)

        return {
            "content": response.text or "",
            "prompt_tokens": getattr(response.usage_metadata, "prompt_token_count", 0) or 0,
            "completion_tokens": getattr(response.usage_metadata, "candidates_token_count", 0) or 0,
            "model": model,
        }


# ── Local Stub Provider (for dev/test without API keys) ──────────────────────

class LocalStubProvider(LLMProvider):
    """
    Local stub that returns deterministic enrichment payloads.
    No API key required.
    """

    def chat(self, messages: list, model: str = "local-stub", **kwargs) -> dict:
        user_msg = ""
        for m in reversed(messages):
            if m["role"] == "user":
                user_msg = m["content"]
                break

        content = self._generate_stub_response(user_msg)
        return {
            "content": content,
            "prompt_tokens": len(user_msg.split()) * 2,  # rough estimate
            "completion_tokens": len(content.split()) * 2,
            "model": "local-stub",
        }

    @staticmethod
    def _generate_stub_response(user_msg: str) -> str:
        lower = user_msg.lower()
        sources = []

        if "market research" in lower:
            sources.append({
                "type": "market_research",
                "content": "Addressable market is growing at roughly 12% per year, "
                           "driven by digital adoption among small businesses.",
                "metadata": {"source": "local-stub", "confidence": 0.7},
            })
        if "competitor" in lower:
            sources.append({
                "type": "competitor_data",
                "content": "Two incumbents dominate the segment; neither offers a "
                           "self-service onboarding flow.",
                "metadata": {"source": "local-stub", "confidence": 0.65},
            })
        if "financial" in lower:
            sources.append({
                "type": "financial_data",
                "content": "Comparable ventures reach break-even within 30 months "
                           "at a 65% gross margin.",
                "metadata": {"source": "local-stub", "confidence": 0.6},
            })

        return json.dumps({"sources": sources})


# ── LLM Gateway (Main Interface) ─────────────────────────────────────────────

class LLMGateway:
    """
    Central gateway for all LLM calls.

    Features:
        - Provider routing based on model name
        - Auto-retry with exponential backoff
        - Local stub for the "local-stub" model (dev/test)

    Usage:
        gw = LLMGateway(default_model="claude-3-5-haiku-20241022")
        result = gw.chat(messages=[{"role": "user", "content": "..."}], purpose="enrichment")
    """

    # Model → provider mapping
    PROVIDER_MAP = {
        # Anthropic
        "claude-3-5-haiku-20241022": "anthropic",
        "claude-3-5-sonnet-20241022": "anthropic",
        # OpenAI
        "gpt-4o-mini": "openai",
        "gpt-4o": "openai",
        # Google Gemini
        "gemini-2.5-flash": "gemini",
        "gemini-2.5-pro": "gemini",
        # Local stub (dev/test)
        "local-stub": "local",
    }

    DEFAULT_CHAT_MODEL = os.getenv("LLM_DEFAULT_CHAT_MODEL", "gemini-2.5-flash")

    def __init__(self, default_model: str | None = None, max_retries: int = 3,
                 backoff_base: float = 1.0):
        self.default_model = default_model or self.DEFAULT_CHAT_MODEL
        self.max_retries = max(1, max_retries)
        self.backoff_base = backoff_base
        self._providers = {}
        self._init_providers()

    def _init_providers(self):
        """Initialize available providers based on environment."""
        # Always register local stub
        self._providers["local"] = LocalStubProvider()

        # Register real providers if API keys present
        if os.getenv("GEMINI_API_KEY"):
            self._providers["gemini"] = GeminiProvider()
        if os.getenv("ANTHROPIC_API_KEY"):
            self._providers["anthropic"] = AnthropicProvider()
        if os.getenv("OPENAI_API_KEY"):
            self._providers["openai"] = OpenAIProvider()

    def _get_provider(self, model: str) -> tuple[LLMProvider, str]:
        """
        Resolve model to provider. Returns (provider, provider_name).

        The local stub only answers for the "local-stub" model.

        Raises:
            RuntimeError: unknown model, or its provider has no API key.
        """
        provider_name = self.PROVIDER_MAP.get(model)
        if provider_name is None:
            raise RuntimeError(f"Unknown LLM model '{model}'")

        if provider_name not in self._providers:
            logger.error(
                "Provider '%s' not available for model '%s' (API key missing).",
                provider_name, model,
            )
            raise RuntimeError(f"LLM provider '{provider_name}' is not configured")
        return self._providers[provider_name], provider_name

    def chat(self, messages: list, model: str | None = None, *, purpose: str = "",
             **kwargs) -> dict:
        """
        Send a chat completion request with retry.

        Returns:
            dict: {content, prompt_tokens, completion_tokens, model, latency_ms, provider}

        Raises:
            RuntimeError: every attempt failed.
        """
        model = model or self.default_model
        provider, provider_name = self._get_provider(model)

        last_error = None
        for attempt in range(1, self.max_retries + 1):
            start_time = time.time()
            try:
                result = provider.chat(messages, model, **kwargs)
            except Exception as e:
                last_error = e
                logger.warning(
                    "LLM call attempt %d/%d failed: %s", attempt, self.max_retries, e,
                    extra={"purpose": purpose, "provider": provider_name},
                )
                if attempt < self.max_retries:
                    time.sleep(min(self.backoff_base * 2 ** (attempt - 1), 4))
                continue

            latency_ms = int((time.time() - start_time) * 1000)
            result["latency_ms"] = latency_ms
            result["provider"] = provider_name
            logger.info(
                "LLM call ok: %s/%s", provider_name, model,
                extra={"purpose": purpose, "duration_ms": latency_ms},
            )
            return result

        raise RuntimeError(
            f"LLM call failed after {self.max_retries} attempts: {last_error}"
        ) from last_error
