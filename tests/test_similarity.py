"""
Tests: similarity primitives (tokenize, jaccard, cosine).
"""

import pytest

from dacum.ai.similarity import cosine, jaccard, tokenize


class TestTokenize:
    def test_lowercases_and_strips_punctuation(self):
        assert tokenize("Record attendance, daily!") == ["record", "attendance", "daily"]

    def test_underscore_is_a_separator(self):
        assert tokenize("check_list items") == ["check", "list", "items"]

    def test_empty_and_none(self):
        assert tokenize("") == []
        assert tokenize(None) == []

    def test_malay_text_kept_whole(self):
        assert tokenize("Rekod kehadiran pelajar.") == ["rekod", "kehadiran", "pelajar"]


class TestJaccard:
    def test_documented_pair_is_one_quarter(self):
        a = tokenize("Record attendance")
        b = tokenize("Log attendance sheet")
        assert jaccard(a, b) == pytest.approx(0.25)

    def test_identical_sets(self):
        assert jaccard(["a", "b"], ["b", "a"]) == 1.0

    def test_disjoint_sets(self):
        assert jaccard(["a"], ["b"]) == 0.0

    def test_both_empty_is_zero(self):
        assert jaccard([], []) == 0.0

    def test_duplicates_ignored(self):
        assert jaccard(["a", "a", "b"], ["a", "b"]) == 1.0


class TestCosine:
    def test_parallel_vectors(self):
        assert cosine([1.0, 2.0], [2.0, 4.0]) == pytest.approx(1.0)

    def test_orthogonal_vectors(self):
        assert cosine([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_opposite_vectors(self):
        assert cosine([1.0, 1.0], [-1.0, -1.0]) == pytest.approx(-1.0)

    def test_length_mismatch_is_zero(self):
        assert cosine([1.0, 2.0], [1.0]) == 0.0

    def test_zero_norm_is_zero(self):
        assert cosine([0.0, 0.0], [1.0, 1.0]) == 0.0

    def test_empty_is_zero(self):
        assert cosine([], []) == 0.0
