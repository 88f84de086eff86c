"""Reconciliation engine: merge purchase-history and email candidates.

Purchase history is platform-verified and is never dropped in favor of an
email-derived duplicate. Steps:
1. Seed the output with every purchase-history record, in input order
2. For each email record, drop it if its key matches any key seen so far,
   otherwise keep it and remember its key
3. Rank the combined output

Purchase-history records are not deduplicated against each other.
The engine is stateless and never mutates its inputs.
"""

from __future__ import annotations

import logging
from typing import Sequence

from subscan.models import CandidateSubscription
from subscan.reconcile.merchant_match import DEFAULT_RULES, MatchingRules
from subscan.reconcile.ranking import rank_candidates

logger = logging.getLogger(__name__)


def merge_candidates(
    purchase_history: Sequence[CandidateSubscription],
    email: Sequence[CandidateSubscription],
    rules: MatchingRules | None = None,
) -> list[CandidateSubscription]:
    """Merge two candidate lists into one deduplicated, ranked list.

    Args:
        purchase_history: Higher-trust records, all kept.
        email: Lower-trust records, kept only if no earlier key matches.
        rules: Matching thresholds. Defaults to the standard rules.

    Returns:
        Ranked list of records drawn from the two inputs.
    """
    rules = rules or DEFAULT_RULES

    merged: list[CandidateSubscription] = list(purchase_history)
    # (key, record) pairs so dropped duplicates can name what they matched
    seen: list[tuple[str, CandidateSubscription]] = [
        (rules.normalize(c.name), c) for c in purchase_history
    ]

    dropped = 0
    for candidate in email:
        key = rules.normalize(candidate.name)
        existing = _find_match(key, seen, rules)
        if existing is not None:
            dropped += 1
            logger.debug(
                "Dropping '%s' (%s): same merchant as '%s' (%s)",
                candidate.name, candidate.origin.value,
                existing.name, existing.origin.value,
            )
            continue
        merged.append(candidate)
        seen.append((key, candidate))

    if dropped:
        logger.info(
            "Merged %d + %d candidates into %d (%d duplicate(s) dropped)",
            len(purchase_history), len(email), len(merged), dropped,
        )

    return rank_candidates(merged)


def _find_match(
    key: str,
    seen: list[tuple[str, CandidateSubscription]],
    rules: MatchingRules,
) -> CandidateSubscription | None:
    for existing_key, existing in seen:
        if rules.matches(key, existing_key):
            return existing
    return None
