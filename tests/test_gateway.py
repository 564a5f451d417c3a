"""
Tests: LLM Gateway, prompt registry and generation-output parsing.

Covers:
    - LocalStubProvider determinism
    - generate(): disabled flag, retry then GenerationUnavailable
    - embed(): provider failure → EmbeddingUnavailable
    - AIUsageLog persistence
    - PromptRegistry built-ins, override directory, rendering
    - parse_json_object fences / prose / garbage
"""

import json

import pytest

from dacum.ai.gateway import Completion, LLMGateway, LLMProvider, LocalStubProvider
from dacum.ai.output import parse_json_object
from dacum.ai.prompt_registry import PromptRegistry
from dacum.core.exceptions import EmbeddingUnavailable, GenerationUnavailable, MalformedExternalOutput
from dacum.models.ai import AIUsageLog


class FailingProvider(LLMProvider):
    def __init__(self):
        self.calls = 0

    def complete(self, system, prompt, model, **params):
        self.calls += 1
        raise ConnectionError("boom")

    def embed(self, texts, model):
        self.calls += 1
        raise ConnectionError("boom")


class EchoProvider(LLMProvider):
    def complete(self, system, prompt, model, **params):
        return Completion(json.dumps({"echo": prompt, "system": system}), prompt_tokens=3, completion_tokens=2)

    def embed(self, texts, model):
        return [[float(len(t)), 1.0] for t in texts]


# ═════════════════════════════════════════════════════════════════════════════
# Local stub
# ═════════════════════════════════════════════════════════════════════════════


class TestLocalStub:
    def test_embeddings_deterministic(self):
        stub = LocalStubProvider()
        a1, a2, b = stub.embed(["Record attendance", "Record attendance", "Service equipment"])
        assert a1 == a2
        assert a1 != b
        assert len(a1) == LocalStubProvider.DIMENSIONS

    def test_chat_answers_valid_json(self):
        stub = LocalStubProvider()
        out = stub.complete(None, 'Return {"title": "..."}')
        assert json.loads(out.content) == {"title": ""}

    def test_chat_answers_by_prompt_shape(self):
        stub = LocalStubProvider()
        assert json.loads(stub.complete(None, "list work_activities").content) == {"work_activities": []}
        assert json.loads(stub.complete(None, "group by card_ids").content) == {"clusters": []}


# ═════════════════════════════════════════════════════════════════════════════
# Gateway
# ═════════════════════════════════════════════════════════════════════════════


class TestGateway:
    def test_generate_disabled(self):
        gw = LLMGateway(generation_enabled=False, providers={})
        with pytest.raises(GenerationUnavailable):
            gw.generate("hello", purpose="cluster_title")

    def test_generate_routes_and_includes_system(self):
        gw = LLMGateway(chat_model="gpt-4o-mini", providers={"openai": EchoProvider()})
        out = json.loads(gw.generate("hi", system="be brief", purpose="test"))
        assert out == {"echo": "hi", "system": "be brief"}

    def test_unknown_provider_falls_back_to_stub(self):
        gw = LLMGateway(chat_model="gpt-4o-mini", providers={})
        assert not gw.has_real_provider()
        assert json.loads(gw.generate("x")) == {"title": ""}

    def test_retries_then_unavailable(self):
        failing = FailingProvider()
        gw = LLMGateway(chat_model="gpt-4o-mini", max_retries=1, providers={"openai": failing})
        with pytest.raises(GenerationUnavailable):
            gw.generate("x", purpose="ws_seed")
        assert failing.calls == 1

    def test_retry_backs_off_then_succeeds(self, monkeypatch):
        sleeps = []
        monkeypatch.setattr("dacum.ai.gateway.time.sleep", sleeps.append)

        class Flaky(EchoProvider):
            attempts = 0

            def complete(self, system, prompt, model, **params):
                Flaky.attempts += 1
                if Flaky.attempts < 3:
                    raise TimeoutError("slow")
                return super().complete(system, prompt, model, **params)

        gw = LLMGateway(chat_model="gpt-4o-mini", max_retries=3, providers={"openai": Flaky()})
        assert json.loads(gw.generate("hi"))["echo"] == "hi"
        assert sleeps == [1, 2]

    def test_embed_failure(self):
        gw = LLMGateway(embed_model="text-embedding-3-small", max_retries=1, providers={"openai": FailingProvider()})
        with pytest.raises(EmbeddingUnavailable) as exc:
            gw.embed(["a"])
        assert exc.value.details["provider"] == "openai"

    def test_embed_empty(self):
        assert LLMGateway(providers={}).embed([]) == []

    def test_usage_logged(self):
        gw = LLMGateway(embed_model="text-embedding-3-small", providers={"openai": EchoProvider()})
        gw.embed(["abc"], purpose="matching")
        row = AIUsageLog.query.filter_by(purpose="matching").one()
        assert row.provider == "openai"
        assert row.success is True

    def test_failure_logged(self):
        gw = LLMGateway(embed_model="text-embedding-3-small", max_retries=1, providers={"openai": FailingProvider()})
        with pytest.raises(EmbeddingUnavailable):
            gw.embed(["abc"], purpose="matching")
        row = AIUsageLog.query.filter_by(purpose="matching").one()
        assert row.success is False
        assert "boom" in row.error_message


# ═════════════════════════════════════════════════════════════════════════════
# Prompt registry
# ═════════════════════════════════════════════════════════════════════════════


class TestPromptRegistry:
    def test_builtins_loaded(self):
        names = {t["name"] for t in PromptRegistry().list_templates()}
        assert {"cluster_title", "cluster_cards", "ws_seed"} <= names

    def test_render_parts_substitutes(self):
        system, user = PromptRegistry().render_parts(
            "cluster_title", activities="- Record attendance", language_name="English",
        )
        assert "- Record attendance" in user
        assert "English" in user
        assert "{{" not in user

    def test_unknown_template(self):
        with pytest.raises(KeyError):
            PromptRegistry().render("nope")

    def test_override_directory(self, tmp_path):
        (tmp_path / "cluster_title.yaml").write_text(
            "name: cluster_title\nversion: v1\nsystem: S\nuser: 'Title for {{activities}}'\n",
            encoding="utf-8",
        )
        messages = PromptRegistry(str(tmp_path)).render("cluster_title", activities="x")
        assert messages == [{"role": "system", "content": "S"}, {"role": "user", "content": "Title for x"}]

    def test_latest_version_wins(self, tmp_path):
        (tmp_path / "ws_seed_v9.yaml").write_text(
            "name: ws_seed\nversion: v9\nuser: 'Steps for {{activity}}'\n",
            encoding="utf-8",
        )
        registry = PromptRegistry(str(tmp_path))
        template = registry.get("ws_seed")
        assert template.version == "v9"
        assert template.source == "override"
        assert template.variables == ["activity"]
        assert registry.render("ws_seed", activity="x") == [{"role": "user", "content": "Steps for x"}]

    def test_missing_override_directory_is_ignored(self, tmp_path):
        registry = PromptRegistry(str(tmp_path / "absent"))
        assert registry.get("ws_seed") is not None


# ═════════════════════════════════════════════════════════════════════════════
# Output parsing
# ═════════════════════════════════════════════════════════════════════════════


class TestParseJsonObject:
    def test_plain(self):
        assert parse_json_object('{"a": 1}') == {"a": 1}

    def test_fenced(self):
        assert parse_json_object('```json\n{"a": 1}\n```') == {"a": 1}

    def test_prose_around_object(self):
        assert parse_json_object('Sure! {"a": {"b": 2}} Hope that helps.') == {"a": {"b": 2}}

    @pytest.mark.parametrize("content", [None, "", "   ", "no json", "[1, 2]", '{"a": '])
    def test_malformed(self, content):
        with pytest.raises(MalformedExternalOutput):
            parse_json_object(content, purpose="test")
