"""Shared test fixtures."""

from pathlib import Path

# Test fixture config directory with synthetic data
FIXTURE_CONFIG_DIR = Path(__file__).parent / "fixtures" / "config"

# Candidate exports used by the JSON source and CLI tests
FIXTURE_CANDIDATES_DIR = Path(__file__).parent / "fixtures" / "candidates"


def make_candidate(name, confidence="medium", origin="email", **kwargs):
    """Build a CandidateSubscription with sensible defaults for tests."""
    from subscan.models import CandidateSubscription, Confidence, Origin

    origin = Origin(origin)
    if origin is Origin.EMAIL:
        kwargs.setdefault("sender", f"billing@{name.lower().replace(' ', '')}.com")
    kwargs.setdefault("merchant_id", name.lower())
    kwargs.setdefault("price", 9.99)
    return CandidateSubscription(
        name=name,
        confidence=Confidence(confidence),
        origin=origin,
        **kwargs,
    )
