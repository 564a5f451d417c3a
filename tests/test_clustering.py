"""
Tests: Clustering Engine.

Covers:
    - lexical grouping (greedy seed growth on Jaccard)
    - vector grouping (networkx connected components, max_clusters cap)
    - generative grouping with fallback to lexical
    - titles (generation, keyword heuristic, placeholder) and strength labels
    - membership invariants (each id at most once, unassigned = rest)
"""

import json
import random

import pytest

from dacum.ai.clustering import (
    ClusterOptions,
    ClusteringEngine,
    keyword_title,
    lexical_groups,
    vector_groups,
)
from dacum.ai.prompt_registry import PromptRegistry
from dacum.core.exceptions import GenerationUnavailable, ValidationError


def _items(*texts):
    return [{"id": i, "text": t} for i, t in enumerate(texts, 1)]


class FakeGenerator:
    """Returns queued responses by purpose; raises when the queue holds an exception."""

    def __init__(self, **responses):
        self.responses = responses
        self.calls = []

    def generate(self, prompt, system=None, purpose=""):
        self.calls.append(purpose)
        value = self.responses.get(purpose, "")
        if isinstance(value, Exception):
            raise value
        return value


# ═════════════════════════════════════════════════════════════════════════════
# Lexical
# ═════════════════════════════════════════════════════════════════════════════


class TestLexical:
    def test_documented_pair_clusters_at_quarter_threshold(self):
        result = ClusteringEngine().cluster(
            _items("Record attendance", "Log attendance sheet"),
            ClusterOptions(similarity_threshold=0.25, language="EN"),
        )
        assert len(result.clusters) == 1
        assert result.clusters[0].member_ids == [1, 2]
        assert result.unassigned == []
        assert result.mode == "lexical"

    def test_documented_pair_stays_apart_above_quarter(self):
        result = ClusteringEngine().cluster(
            _items("Record attendance", "Log attendance sheet"),
            ClusterOptions(similarity_threshold=0.3),
        )
        assert result.clusters == []
        assert result.unassigned == [1, 2]

    def test_small_group_releases_members(self):
        groups = lexical_groups(["alpha beta", "gamma delta", "alpha beta"], 0.5, 2)
        assert groups == [[0, 2]]

    def test_min_cluster_size_respected(self):
        groups = lexical_groups(["a b", "a b", "c d"], 0.5, 3)
        assert groups == []

    def test_empty_input(self):
        result = ClusteringEngine().cluster([], ClusterOptions())
        assert result.clusters == []
        assert result.unassigned == []

    def test_unknown_mode_rejected(self):
        with pytest.raises(ValidationError):
            ClusteringEngine().cluster(_items("x"), ClusterOptions(), mode="kmeans")


# ═════════════════════════════════════════════════════════════════════════════
# Vector
# ═════════════════════════════════════════════════════════════════════════════


class TestVector:
    def test_connected_components(self):
        vectors = [[1, 0], [0.99, 0.01], [0, 1], [0.01, 0.99], [-1, 0]]
        groups = vector_groups(vectors, 0.9, 2, 10)
        assert groups == [[0, 1], [2, 3]]

    def test_transitive_chain_forms_one_component(self):
        # a~b and b~c but not a~c: still one component
        vectors = [[1, 0], [0.8, 0.6], [0.28, 0.96]]
        groups = vector_groups(vectors, 0.75, 2, 10)
        assert groups == [[0, 1, 2]]

    def test_max_clusters_keeps_largest(self):
        vectors = [[1, 0], [1, 0], [1, 0], [0, 1], [0, 1]]
        groups = vector_groups(vectors, 0.9, 2, 1)
        assert groups == [[0, 1, 2]]

    def test_vector_count_must_match(self):
        with pytest.raises(ValidationError):
            ClusteringEngine().cluster(_items("a", "b"), ClusterOptions(), mode="vector", vectors=[[1, 0]])

    @pytest.mark.parametrize("vectors", [
        [1, 2],
        [[1, 0], "ab"],
        [[1, 0], [0, "x"]],
        [[1, 0], [True, False]],
        [[1, 0], []],
        [[1, 0], [1, 0, 0]],
        "not-a-list",
    ])
    def test_malformed_vectors_rejected(self, vectors):
        with pytest.raises(ValidationError):
            ClusteringEngine().cluster(_items("a", "b"), ClusterOptions(), mode="vector", vectors=vectors)

    def test_engine_vector_mode_strength(self):
        result = ClusteringEngine().cluster(
            _items("a", "b", "c", "d"),
            ClusterOptions(similarity_threshold=0.9, stable_min_size=3),
            mode="vector",
            vectors=[[1, 0], [1, 0], [1, 0], [0, 1]],
        )
        assert result.mode == "vector"
        assert len(result.clusters) == 1
        assert result.clusters[0].strength == "stable"
        assert result.unassigned == [4]


# ═════════════════════════════════════════════════════════════════════════════
# Generative
# ═════════════════════════════════════════════════════════════════════════════


class TestGenerative:
    TEXTS = ("Record attendance", "Log attendance sheet", "Prepare report",
             "Submit report", "Check equipment")

    def test_generation_partition_and_titles(self):
        gen = FakeGenerator(cluster_cards=json.dumps({"clusters": [
            {"title": "Attendance", "card_ids": [1, 2]},
            {"title": "Reporting", "card_ids": ["3", 4, 99]},
        ]}))
        result = ClusteringEngine(gen, PromptRegistry()).cluster(
            _items(*self.TEXTS), ClusterOptions(), mode="generative",
        )
        assert result.mode == "generative"
        assert result.fallback_reason is None
        assert [c.member_ids for c in result.clusters] == [[1, 2], [3, 4]]
        assert [c.suggested_title for c in result.clusters] == ["Attendance", "Reporting"]
        assert result.unassigned == [5]

    def test_duplicate_membership_first_writer_wins(self):
        gen = FakeGenerator(cluster_cards=json.dumps({"clusters": [
            {"title": "A", "card_ids": [1, 2]},
            {"title": "B", "card_ids": [2, 3]},
        ]}))
        result = ClusteringEngine(gen, PromptRegistry()).cluster(
            _items(*self.TEXTS), ClusterOptions(), mode="generative",
        )
        assert result.clusters[0].member_ids == [1, 2]
        assert result.clusters[1].member_ids == [3]
        all_ids = [m for c in result.clusters for m in c.member_ids]
        assert len(all_ids) == len(set(all_ids))

    def test_malformed_output_falls_back_to_lexical(self):
        gen = FakeGenerator(cluster_cards="not json at all")
        result = ClusteringEngine(gen, PromptRegistry()).cluster(
            _items(*self.TEXTS), ClusterOptions(similarity_threshold=0.25), mode="generative",
        )
        assert result.mode == "lexical"
        assert result.fallback_reason == "MALFORMED_EXTERNAL_OUTPUT"

    def test_unavailable_generation_falls_back(self):
        gen = FakeGenerator(cluster_cards=GenerationUnavailable("down"))
        result = ClusteringEngine(gen, PromptRegistry()).cluster(
            _items(*self.TEXTS), ClusterOptions(), mode="generative",
        )
        assert result.mode == "lexical"
        assert result.fallback_reason == "GENERATION_UNAVAILABLE"

    def test_too_few_cards_falls_back_without_calling(self):
        gen = FakeGenerator()
        result = ClusteringEngine(gen, PromptRegistry()).cluster(
            _items("a", "b"), ClusterOptions(), mode="generative",
        )
        assert result.mode == "lexical"
        assert "cluster_cards" not in gen.calls

    def test_no_generator_falls_back(self):
        result = ClusteringEngine().cluster(_items(*self.TEXTS), ClusterOptions(), mode="generative")
        assert result.fallback_reason == "GENERATION_UNAVAILABLE"


# ═════════════════════════════════════════════════════════════════════════════
# Titles & options
# ═════════════════════════════════════════════════════════════════════════════


class TestTitles:
    def test_keyword_title_top_tokens(self):
        title = keyword_title(["Record attendance", "Log attendance sheet"], language="EN")
        assert title == "attendance / record / log"

    def test_keyword_title_skips_stop_words(self):
        title = keyword_title(["the and of"], index=4, language="EN")
        assert title == "Cluster 4"

    def test_placeholder_in_malay(self):
        assert keyword_title([], index=2, language="MS") == "Kluster 2"

    def test_generated_title_used(self):
        gen = FakeGenerator(cluster_title='```json\n{"title": "Pengurusan Kehadiran"}\n```')
        engine = ClusteringEngine(gen, PromptRegistry())
        assert engine.suggest_title(["Rekod kehadiran"], language="MS") == "Pengurusan Kehadiran"

    def test_blank_generated_title_falls_back(self):
        gen = FakeGenerator(cluster_title='{"title": "  "}')
        engine = ClusteringEngine(gen, PromptRegistry())
        assert engine.suggest_title(["Record attendance"], language="EN") == "record / attendance"

    def test_every_cluster_has_a_title(self):
        result = ClusteringEngine().cluster(
            _items("a", "a"), ClusterOptions(similarity_threshold=0.5, language="EN"),
        )
        assert result.clusters[0].suggested_title == "Cluster 1"
        assert result.clusters[0].strength == "weak"


class TestOptions:
    def test_from_dict_fills_defaults(self):
        defaults = ClusterOptions(similarity_threshold=0.4, max_clusters=5)
        opts = ClusterOptions.from_dict({"min_cluster_size": "3", "language": "en"}, defaults)
        assert opts.similarity_threshold == 0.4
        assert opts.max_clusters == 5
        assert opts.min_cluster_size == 3
        assert opts.language == "EN"

    def test_from_dict_rejects_garbage(self):
        with pytest.raises(ValidationError):
            ClusterOptions.from_dict({"similarity_threshold": "high"})


# ═════════════════════════════════════════════════════════════════════════════
# Partition properties
# ═════════════════════════════════════════════════════════════════════════════

_WORDS = ("record", "attendance", "log", "sheet", "prepare", "report", "submit",
          "check", "equipment", "service", "inspect", "plan", "lesson", "budget")


def _random_items(rng, n):
    return _items(*(" ".join(rng.choice(_WORDS) for _ in range(rng.randint(1, 4))) for _ in range(n)))


def _random_vectors(rng, n, dim=4):
    return [[rng.uniform(-1, 1) for _ in range(dim)] for _ in range(n)]


class TestPartitionProperties:
    def test_lexical_run_is_repeatable(self):
        items = _items("Record attendance", "Log attendance sheet", "Prepare report",
                       "Submit report", "Check equipment", "Service equipment")
        options = ClusterOptions(similarity_threshold=0.25)
        first = ClusteringEngine().cluster(items, options)
        second = ClusteringEngine().cluster(items, options)
        assert [c.member_ids for c in first.clusters] == [c.member_ids for c in second.clusters]
        assert first.unassigned == second.unassigned

    def test_vector_run_is_repeatable(self):
        rng = random.Random(11)
        items = _random_items(rng, 12)
        vectors = _random_vectors(rng, 12)
        options = ClusterOptions(similarity_threshold=0.6)
        first = ClusteringEngine().cluster(items, options, mode="vector", vectors=vectors)
        second = ClusteringEngine().cluster(items, options, mode="vector", vectors=vectors)
        assert [c.member_ids for c in first.clusters] == [c.member_ids for c in second.clusters]
        assert first.unassigned == second.unassigned

    @pytest.mark.parametrize("seed", range(20))
    @pytest.mark.parametrize("mode", ["lexical", "vector"])
    def test_no_card_in_two_clusters(self, mode, seed):
        rng = random.Random(seed)
        n = rng.randint(0, 25)
        items = _random_items(rng, n)
        options = ClusterOptions(similarity_threshold=rng.choice([0.1, 0.25, 0.5, 0.8]))
        vectors = _random_vectors(rng, n) if mode == "vector" else None
        result = ClusteringEngine().cluster(items, options, mode=mode, vectors=vectors)

        members = [m for c in result.clusters for m in c.member_ids]
        assert len(members) == len(set(members))
        assert sorted(members + result.unassigned) == [it["id"] for it in items]
