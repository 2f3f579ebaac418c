#!/usr/bin/env python3
"""
Scoring Formula Tests

Validates the relevance scoring formula components:
- 70% semantic similarity
- 30% keyword boost (0.05 per matched term, capped at 0.2)
- access boost (0.01 per access, capped at 0.1)
- temporal decay (floor 0.5 over 60 days if never accessed,
  floor 0.8 over 180 days otherwise)

These tests catch regressions if weights are accidentally changed.
"""

import pytest

from eclipse_core.search import decay_factor, score_memory


class TestScoringWeights:
    """Verify the 0.7 / 0.3 weight split."""

    def test_pure_semantic(self):
        result = score_memory(semantic=1.0, matched_terms=0, access_count=0, days_since_access=0)
        assert result.score == pytest.approx(0.7)

    def test_keyword_term(self):
        result = score_memory(semantic=0.0, matched_terms=2, access_count=0, days_since_access=0)
        assert result.keyword_boost == pytest.approx(0.1)
        assert result.score == pytest.approx(0.03)

    def test_full_formula(self):
        result = score_memory(semantic=0.5, matched_terms=1, access_count=3, days_since_access=0)
        # (0.35 + 0.015 + 0.03) × 1.0
        assert result.score == pytest.approx(0.395)


class TestCaps:

    def test_keyword_boost_capped(self):
        result = score_memory(semantic=0.0, matched_terms=10, access_count=0, days_since_access=0)
        assert result.keyword_boost == pytest.approx(0.2)

    def test_access_boost_capped(self):
        result = score_memory(semantic=0.0, matched_terms=0, access_count=500, days_since_access=0)
        assert result.access_boost == pytest.approx(0.1)


class TestDecay:

    def test_fresh_memory_has_no_decay(self):
        assert decay_factor(0, 0) == 1.0
        assert decay_factor(5, 0) == 1.0

    def test_never_accessed_decays_faster(self):
        assert decay_factor(0, 30) == pytest.approx(0.5)
        assert decay_factor(1, 30) == pytest.approx(1 - 30 / 180)

    def test_never_accessed_floor(self):
        assert decay_factor(0, 365) == 0.5

    def test_accessed_floor(self):
        assert decay_factor(3, 365) == 0.8

    def test_decay_multiplies_everything(self):
        fresh = score_memory(semantic=0.8, matched_terms=1, access_count=2, days_since_access=0)
        stale = score_memory(semantic=0.8, matched_terms=1, access_count=2, days_since_access=400)
        assert stale.score == pytest.approx(fresh.score * 0.8)

    def test_used_memory_beats_equally_similar_stale_one(self):
        used = score_memory(semantic=0.6, matched_terms=0, access_count=5, days_since_access=10)
        stale = score_memory(semantic=0.6, matched_terms=0, access_count=0, days_since_access=90)
        assert used.score > stale.score
