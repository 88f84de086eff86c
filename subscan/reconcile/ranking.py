"""Confidence ranking for candidate lists."""

from __future__ import annotations

from typing import Iterable

from subscan.models import CandidateSubscription


def _rank_key(candidate: CandidateSubscription) -> tuple[int, str]:
    return (-candidate.confidence.score, candidate.name.lower())


def rank_candidates(
    candidates: Iterable[CandidateSubscription],
) -> list[CandidateSubscription]:
    """Order by confidence (high first), then name case-insensitively.

    sorted() is stable, so records with equal keys keep their input order.
    """
    return sorted(candidates, key=_rank_key)
