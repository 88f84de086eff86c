"""Merchant matching: decides whether two display names are one merchant.

Names are first reduced to a comparison key by normalize_merchant_name().
Keys are then compared by is_same_merchant(), first rule wins:
  1. Exact equality
  2. Containment in either direction
  3. Both keys short (<= 10 chars) and Levenshtein distance <= 2
  4. Otherwise no match

Containment deliberately favors collapsing near-duplicates over showing the
same merchant twice. Keys below min_key_length (empty keys by default) never
match anything, including each other.
"""

from __future__ import annotations

from dataclasses import dataclass

from rapidfuzz.distance import Levenshtein

# Marketing suffixes removed as plain substrings, so "NetflixPremium"
# and "Netflix Premium" reduce to the same key.
STRIPPED_TOKENS = ("premium", "plus", "pro", "subscription")

DEFAULT_SHORT_KEY_LENGTH = 10
DEFAULT_MAX_EDIT_DISTANCE = 2
DEFAULT_MIN_KEY_LENGTH = 1


@dataclass(frozen=True)
class MatchingRules:
    """Thresholds for merchant matching, overridable from scan.yaml."""
    stripped_tokens: tuple[str, ...] = STRIPPED_TOKENS
    short_key_length: int = DEFAULT_SHORT_KEY_LENGTH
    max_edit_distance: int = DEFAULT_MAX_EDIT_DISTANCE
    min_key_length: int = DEFAULT_MIN_KEY_LENGTH

    def normalize(self, name: str) -> str:
        return normalize_merchant_name(name, self.stripped_tokens)

    def matches(self, key_a: str, key_b: str) -> bool:
        if len(key_a) < self.min_key_length or len(key_b) < self.min_key_length:
            return False

        if key_a == key_b:
            return True

        if key_a in key_b or key_b in key_a:
            return True

        if len(key_a) <= self.short_key_length and len(key_b) <= self.short_key_length:
            distance = Levenshtein.distance(
                key_a, key_b, score_cutoff=self.max_edit_distance,
            )
            return distance <= self.max_edit_distance

        return False


DEFAULT_RULES = MatchingRules()


def normalize_merchant_name(
    name: str,
    stripped_tokens: tuple[str, ...] = STRIPPED_TOKENS,
) -> str:
    """Reduce a display name to its comparison key.

    - Lowercase
    - Remove marketing tokens (substring, not word-boundary)
    - Remove all spaces
    - Strip residual whitespace
    """
    key = name.lower()
    for token in stripped_tokens:
        key = key.replace(token, "")
    key = key.replace(" ", "")
    return key.strip()


def is_same_merchant(key_a: str, key_b: str) -> bool:
    """Return True if two normalized keys denote the same merchant."""
    return DEFAULT_RULES.matches(key_a, key_b)


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance (insert, delete, substitute) between two strings."""
    return Levenshtein.distance(a, b)
