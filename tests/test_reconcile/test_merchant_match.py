"""Tests for merchant name normalization and fuzzy matching."""

import pytest

from subscan.reconcile.merchant_match import (
    MatchingRules,
    is_same_merchant,
    levenshtein_distance,
    normalize_merchant_name,
)


class TestNormalize:
    def test_chatgpt_plus_variants(self):
        assert normalize_merchant_name("ChatGPT Plus") == "chatgpt"
        assert normalize_merchant_name("chatgptplus") == "chatgpt"

    def test_strips_premium_and_spaces(self):
        assert normalize_merchant_name("Netflix Premium") == "netflix"

    def test_concatenated_suffix(self):
        assert normalize_merchant_name("NetflixPremium") == "netflix"

    def test_subscription_token(self):
        assert normalize_merchant_name("Spotify Subscription") == "spotify"

    def test_substring_removal_inside_word(self):
        """Tokens are removed as substrings, not words: 'Proton' loses 'pro'."""
        assert normalize_merchant_name("Proton Mail") == "tonmail"

    def test_only_stripped_tokens_gives_empty_key(self):
        assert normalize_merchant_name("Premium Plus") == ""

    def test_trims_surrounding_whitespace(self):
        assert normalize_merchant_name("  Hulu\t") == "hulu"

    def test_custom_tokens(self):
        assert normalize_merchant_name("Disney Family", ("family",)) == "disney"


class TestLevenshtein:
    @pytest.mark.parametrize("a,b,expected", [
        ("hulu", "hulo", 1),
        ("kitten", "sitting", 3),
        ("", "abc", 3),
        ("abc", "", 3),
        ("same", "same", 0),
        ("flaw", "lawn", 2),
    ])
    def test_distance(self, a, b, expected):
        assert levenshtein_distance(a, b) == expected

    def test_symmetric(self):
        assert levenshtein_distance("spotify", "spotfy") == levenshtein_distance("spotfy", "spotify")


class TestIsSameMerchant:
    def test_exact(self):
        assert is_same_merchant("netflix", "netflix")

    def test_short_keys_within_distance(self):
        assert is_same_merchant("hulu", "hulo")

    def test_long_keys_containment(self):
        assert is_same_merchant("amazonprime", "amazonprimevideo")

    def test_containment_either_direction(self):
        assert is_same_merchant("disney", "disneyplusbundle")
        assert is_same_merchant("disneyplusbundle", "disney")

    def test_short_keys_too_far_apart(self):
        assert not is_same_merchant("hulu", "zoom")

    def test_long_keys_no_edit_distance(self):
        """Edit distance only applies when both keys are 10 chars or less."""
        assert not is_same_merchant("audiblecom", "audiblescom1")

    def test_one_long_key_skips_edit_distance(self):
        assert not is_same_merchant("spotify", "spotfiyfamilyplan")

    def test_empty_keys_never_match(self):
        assert not is_same_merchant("", "")
        assert not is_same_merchant("", "netflix")


class TestMatchingRules:
    def test_defaults_match_module_function(self):
        rules = MatchingRules()
        assert rules.matches("hulu", "hulo") == is_same_merchant("hulu", "hulo")

    def test_tighter_edit_distance(self):
        rules = MatchingRules(max_edit_distance=1)
        assert rules.matches("hulu", "hulo")
        assert not rules.matches("hulu", "halo")

    def test_edit_distance_cutoff(self):
        rules = MatchingRules(max_edit_distance=2)
        assert rules.matches("spotify", "spotfy")
        assert not rules.matches("hulu", "zoom")
        assert MatchingRules(max_edit_distance=0).matches("hulu", "hulu")
        assert not MatchingRules(max_edit_distance=0).matches("hulu", "hulo")

    def test_min_key_length(self):
        rules = MatchingRules(min_key_length=3)
        assert not rules.matches("tv", "tv")

    def test_normalize_uses_configured_tokens(self):
        rules = MatchingRules(stripped_tokens=("family",))
        assert rules.normalize("YouTube Premium Family") == "youtubepremium"
