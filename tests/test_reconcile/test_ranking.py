"""Tests for confidence ranking."""

from subscan.reconcile.ranking import rank_candidates
from tests.conftest import make_candidate


def _names(candidates):
    return [c.name for c in candidates]


class TestRankCandidates:
    def test_confidence_descending(self):
        ranked = rank_candidates([
            make_candidate("A", "low"),
            make_candidate("B", "high"),
            make_candidate("C", "medium"),
        ])
        assert _names(ranked) == ["B", "C", "A"]

    def test_name_tie_break_case_insensitive(self):
        ranked = rank_candidates([
            make_candidate("spotify", "high"),
            make_candidate("Hulu", "high"),
            make_candidate("apple Music", "high"),
        ])
        assert _names(ranked) == ["apple Music", "Hulu", "spotify"]

    def test_stable_for_equal_keys(self):
        first = make_candidate("Netflix", "high", id="first")
        second = make_candidate("NETFLIX", "high", id="second")
        ranked = rank_candidates([first, second])
        assert [c.id for c in ranked] == ["first", "second"]

    def test_does_not_mutate_input(self):
        items = [make_candidate("B", "low"), make_candidate("A", "high")]
        rank_candidates(items)
        assert _names(items) == ["B", "A"]

    def test_empty(self):
        assert rank_candidates([]) == []

    def test_accepts_iterables(self):
        ranked = rank_candidates(c for c in [make_candidate("Z", "high")])
        assert _names(ranked) == ["Z"]
