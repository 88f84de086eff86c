"""Billing-cycle normalization to monthly-equivalent amounts."""

from __future__ import annotations

from typing import Iterable

from subscan.models import BillingCycle, CandidateSubscription

# ~52/12 weeks per month. Used for every weekly conversion.
WEEKS_PER_MONTH = 4.33


def monthly_equivalent(price: float, cycle: BillingCycle) -> float:
    """Convert a price charged once per cycle to a per-month amount.

    Unknown cycles are treated as monthly.
    """
    if cycle is BillingCycle.WEEKLY:
        return price * WEEKS_PER_MONTH
    if cycle is BillingCycle.QUARTERLY:
        return price / 3
    if cycle is BillingCycle.YEARLY:
        return price / 12
    return price


def yearly_equivalent(price: float, cycle: BillingCycle) -> float:
    return monthly_equivalent(price, cycle) * 12


def total_monthly(
    candidates: Iterable[CandidateSubscription],
    included_only: bool = False,
) -> float:
    """Sum monthly equivalents, optionally only over included candidates."""
    return sum(
        monthly_equivalent(c.price, c.billing_cycle)
        for c in candidates
        if c.included or not included_only
    )
