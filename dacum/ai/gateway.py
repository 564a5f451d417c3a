"""
DACUM Engine
LLM Gateway.

The engine depends on two external collaborators and nothing else from the
AI world:

    generate(prompt, system=None, purpose="") -> str     cluster titles,
                                                          generative clustering,
                                                          work-step seeds
    embed(texts, purpose="embedding") -> list[vector]    CU-to-catalog matching

``LLMGateway`` implements both over Gemini, OpenAI or Anthropic, chosen by
model name, and falls back to a deterministic local stub when the provider
for a model has no API key. Each call is retried with exponential backoff and
recorded in ``AIUsageLog``. Failures surface as ``GenerationUnavailable`` /
``EmbeddingUnavailable``; callers decide whether to fall back.

Usage:
    gw = LLMGateway(generation_enabled=app.config["AI_GENERATION_ENABLED"])
    text = gw.generate("Suggest a title for ...", purpose="cluster_title")
    vectors = gw.embed(["Record attendance", "Log attendance sheet"])
"""

import hashlib
import json
import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

from flask import current_app, has_app_context

from dacum.core.exceptions import EmbeddingUnavailable, GenerationUnavailable
from dacum.models import db
from dacum.models.ai import AIUsageLog

logger = logging.getLogger(__name__)

LOCAL = "local"

# model-name prefix -> provider
_ROUTES = (
    ("gemini", "gemini"),
    ("gpt-", "openai"),
    ("text-embedding-", "openai"),
    ("claude", "anthropic"),
)

# provider -> env var holding its key
_API_KEYS = {
    "gemini": "GEMINI_API_KEY",
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
}


@dataclass
class Completion:
    content: str
    prompt_tokens: int = 0
    completion_tokens: int = 0


def _word_tokens(*texts: str | None) -> int:
    """Rough token estimate for providers that report none."""
    return sum(len((t or "").split()) * 2 for t in texts)


# ── Providers ─────────────────────────────────────────────────────────────────

class LLMProvider(ABC):
    """One vendor API. Implementations raise whatever their SDK raises."""

    @abstractmethod
    def complete(self, system: str | None, prompt: str, model: str, **params) -> Completion:
        ...

    @abstractmethod
    def embed(self, texts: list[str], model: str) -> list[list[float]]:
        ...


class GeminiProvider(LLMProvider):
    """Google Gemini: chat and embeddings (``gemini-embedding-001``, 1536 dims)."""

    EMBED_DIMENSIONS = 1536

    def __init__(self, api_key: str):
        from google import genai
        from google.genai import types

        self._client = genai.Client(api_key=api_key)
        self._types = types

    def complete(self, system, prompt, model, **params):
        config = self._types.GenerateContentConfig(
            temperature=params.get("temperature", 0.2),
            max_output_tokens=params.get("max_tokens", 2048),
            system_instruction=system or None,
        )
        response = self._client.models.generate_content(model=model, contents=prompt, config=config)
        usage = response.usage_metadata
        return Completion(
            content=response.text or "",
            prompt_tokens=getattr(usage, "prompt_token_count", 0) or 0,
            completion_tokens=getattr(usage, "candidates_token_count", 0) or 0,
        )

    def embed(self, texts, model):
        result = self._client.models.embed_content(
            model=model,
            contents=texts,
            config=self._types.EmbedContentConfig(
                task_type="SEMANTIC_SIMILARITY",
                output_dimensionality=self.EMBED_DIMENSIONS,
            ),
        )
        return [e.values for e in result.embeddings]


class OpenAIProvider(LLMProvider):

    def __init__(self, api_key: str):
        import openai

        self._client = openai.OpenAI(api_key=api_key)

    def complete(self, system, prompt, model, **params):
        messages = [{"role": "system", "content": system}] if system else []
        messages.append({"role": "user", "content": prompt})
        response = self._client.chat.completions.create(
            model=model,
            messages=messages,
            max_tokens=params.get("max_tokens", 2048),
            temperature=params.get("temperature", 0.2),
        )
        return Completion(
            content=response.choices[0].message.content or "",
            prompt_tokens=response.usage.prompt_tokens,
            completion_tokens=response.usage.completion_tokens,
        )

    def embed(self, texts, model):
        response = self._client.embeddings.create(model=model, input=texts)
        return [item.embedding for item in response.data]


class AnthropicProvider(LLMProvider):
    """Claude. Generation only; embedding models route elsewhere."""

    def __init__(self, api_key: str):
        import anthropic

        self._client = anthropic.Anthropic(api_key=api_key)

    def complete(self, system, prompt, model, **params):
        request = {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": params.get("max_tokens", 2048),
            "temperature": params.get("temperature", 0.2),
        }
        if system:
            request["system"] = system
        response = self._client.messages.create(**request)
        return Completion(
            content="".join(block.text for block in response.content if hasattr(block, "text")),
            prompt_tokens=response.usage.input_tokens,
            completion_tokens=response.usage.output_tokens,
        )

    def embed(self, texts, model):
        raise NotImplementedError("Anthropic offers no embedding endpoint")


class LocalStubProvider(LLMProvider):
    """
    Stand-in used when no API key is configured.

    Completions are empty-but-valid JSON for each engine prompt, so every
    caller ends up on its heuristic path. Embeddings are derived from a
    SHA-512 of the text: equal texts give equal vectors, different texts give
    near-orthogonal ones.
    """

    DIMENSIONS = 1536

    def complete(self, system, prompt, model="local-stub", **params):
        lower = (prompt or "").lower()
        if "work_activities" in lower:
            content = json.dumps({"work_activities": []})
        elif "card_ids" in lower:
            content = json.dumps({"clusters": []})
        else:
            content = json.dumps({"title": ""})
        return Completion(content, _word_tokens(system, prompt), _word_tokens(content))

    def embed(self, texts, model="local-stub"):
        vectors = []
        for text in texts:
            digest = hashlib.sha512(text.encode("utf-8")).digest()
            vectors.append([(digest[i % len(digest)] - 128) / 256.0 for i in range(self.DIMENSIONS)])
        return vectors


_PROVIDER_CLASSES = {
    "gemini": GeminiProvider,
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
}


def providers_from_env() -> dict[str, LLMProvider]:
    """Instantiate every provider whose API key is set and whose SDK imports."""
    providers: dict[str, LLMProvider] = {}
    for name, env_var in _API_KEYS.items():
        key = os.getenv(env_var)
        if not key:
            continue
        try:
            providers[name] = _PROVIDER_CLASSES[name](key)
        except ImportError as exc:
            logger.warning("%s is set but the %s SDK is not installed (pip install dacum-platform[ai]): %s",
                           env_var, name, exc)
    return providers


# ── Gateway ───────────────────────────────────────────────────────────────────

class LLMGateway:
    """
    Args:
        generation_enabled: when False, ``generate`` always raises
            GenerationUnavailable and every caller takes its template path.
        chat_model / embed_model: model names; the prefix picks the provider.
        max_retries: attempts per call (minimum 1).
        providers: name -> LLMProvider. None reads API keys from the
            environment; ``{}`` means local stub only.
    """

    DEFAULT_CHAT_MODEL = "gemini-2.5-flash"
    DEFAULT_EMBED_MODEL = "gemini-embedding-001"

    def __init__(
        self,
        *,
        generation_enabled: bool = True,
        chat_model: str | None = None,
        embed_model: str | None = None,
        max_retries: int = 3,
        providers: dict | None = None,
    ):
        self.generation_enabled = generation_enabled
        self.chat_model = chat_model or self.DEFAULT_CHAT_MODEL
        self.embed_model = embed_model or self.DEFAULT_EMBED_MODEL
        self.max_retries = max(1, int(max_retries))
        self._providers = dict(providers_from_env() if providers is None else providers)
        self._providers.setdefault(LOCAL, LocalStubProvider())

    def has_real_provider(self) -> bool:
        return any(name != LOCAL for name in self._providers)

    def _resolve(self, model: str) -> tuple[str, LLMProvider]:
        name = next((p for prefix, p in _ROUTES if model.startswith(prefix)), LOCAL)
        if name not in self._providers:
            logger.warning("No %s provider configured; model %s served by the local stub", name, model)
            name = LOCAL
        return name, self._providers[name]

    def _attempt(self, call, *, provider: str, model: str, purpose: str):
        """Run *call* up to ``max_retries`` times. Returns ``(result, latency_ms)`` or raises the last error."""
        for attempt in range(1, self.max_retries + 1):
            started = time.perf_counter()
            try:
                return call(), int((time.perf_counter() - started) * 1000)
            except Exception as exc:
                logger.warning("%s call to %s/%s failed (attempt %d/%d): %s",
                               purpose or "LLM", provider, model, attempt, self.max_retries, exc)
                if attempt == self.max_retries:
                    self._log_usage(provider, model, purpose, success=False, error_message=str(exc))
                    raise
                time.sleep(min(2 ** (attempt - 1), 4))

    # ── Text generation ───────────────────────────────────────────────────

    def generate(self, prompt: str, system: str | None = None, purpose: str = "") -> str:
        """
        Raises:
            GenerationUnavailable: generation disabled or every attempt failed.
        """
        if not self.generation_enabled:
            raise GenerationUnavailable("Text generation is disabled", details={"purpose": purpose})

        name, provider = self._resolve(self.chat_model)
        try:
            completion, latency_ms = self._attempt(
                lambda: provider.complete(system, prompt, self.chat_model),
                provider=name, model=self.chat_model, purpose=purpose,
            )
        except Exception as exc:
            raise GenerationUnavailable(
                f"Text generation failed after {self.max_retries} attempt(s): {exc}",
                details={"purpose": purpose, "provider": name},
            ) from exc

        self._log_usage(name, self.chat_model, purpose, success=True, latency_ms=latency_ms,
                        prompt_tokens=completion.prompt_tokens,
                        completion_tokens=completion.completion_tokens)
        return completion.content or ""

    # ── Embeddings ────────────────────────────────────────────────────────

    def embed(self, texts: list[str], purpose: str = "embedding") -> list[list[float]]:
        """
        One vector per text, in order.

        Raises:
            EmbeddingUnavailable: every attempt failed or the provider returned
                the wrong number of vectors.
        """
        texts = list(texts)
        if not texts:
            return []

        name, provider = self._resolve(self.embed_model)
        try:
            vectors, latency_ms = self._attempt(
                lambda: provider.embed(texts, self.embed_model),
                provider=name, model=self.embed_model, purpose=purpose,
            )
        except Exception as exc:
            raise EmbeddingUnavailable(
                f"Embedding failed: {exc}",
                details={"provider": name, "model": self.embed_model},
            ) from exc

        if len(vectors) != len(texts):
            raise EmbeddingUnavailable(
                f"Embedding returned {len(vectors)} vectors for {len(texts)} texts",
                details={"provider": name, "model": self.embed_model},
            )
        self._log_usage(name, self.embed_model, purpose, success=True, latency_ms=latency_ms,
                        prompt_tokens=_word_tokens(*texts))
        return [list(v) for v in vectors]

    # ── Usage trail ───────────────────────────────────────────────────────

    @staticmethod
    def _log_usage(provider, model, purpose, *, success, latency_ms=0,
                   prompt_tokens=0, completion_tokens=0, error_message=None):
        """Write one AIUsageLog row. No-op outside an app context or without the SQL backend."""
        if not has_app_context() or current_app.config.get("STORE_BACKEND", "sql") != "sql":
            return
        try:
            db.session.add(AIUsageLog(
                provider=provider, model=model, purpose=purpose,
                prompt_tokens=prompt_tokens, completion_tokens=completion_tokens,
                latency_ms=latency_ms, success=success, error_message=error_message,
            ))
            db.session.commit()
        except Exception as exc:
            logger.error("Failed to record AI usage: %s", exc)
            db.session.rollback()
