"""Dataclass models for candidate subscriptions and scan sessions.

CandidateSubscription is the unit the reconciliation engine operates on.
ScanProgress is ephemeral and lives for one scan; ScanSessionResult is the
immutable outcome of a completed scan.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from types import MappingProxyType
from typing import Mapping
from uuid import uuid4


def _new_id() -> str:
    return str(uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InvalidCandidateError(ValueError):
    """Raised when a producing source hands over a malformed record."""


class BillingCycle(enum.Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"
    UNKNOWN = "unknown"

    @property
    def approximate_days(self) -> int:
        """Approximate days between charges."""
        return _CYCLE_DAYS[self]

    @property
    def short_label(self) -> str:
        return _CYCLE_LABELS[self]


_CYCLE_DAYS = {
    BillingCycle.WEEKLY: 7,
    BillingCycle.MONTHLY: 30,
    BillingCycle.QUARTERLY: 90,
    BillingCycle.YEARLY: 365,
    BillingCycle.UNKNOWN: 0,
}

_CYCLE_LABELS = {
    BillingCycle.WEEKLY: "/wk",
    BillingCycle.MONTHLY: "/mo",
    BillingCycle.QUARTERLY: "/qtr",
    BillingCycle.YEARLY: "/yr",
    BillingCycle.UNKNOWN: "",
}


class Confidence(enum.Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def score(self) -> int:
        """Numeric rank used for sorting (high=3, medium=2, low=1)."""
        return _CONFIDENCE_SCORES[self]


_CONFIDENCE_SCORES = {
    Confidence.HIGH: 3,
    Confidence.MEDIUM: 2,
    Confidence.LOW: 1,
}


class Origin(enum.Enum):
    EMAIL = "email"
    PURCHASE_HISTORY = "purchase-history"
    MANUAL = "manual"


@dataclass
class CandidateSubscription:
    """A provisional, not-yet-confirmed recurring charge from one source.

    ``included`` is review-time UI state. It is not part of the serialized
    shape and is not compared by the engine.
    """
    merchant_id: str
    name: str
    price: float
    origin: Origin
    id: str = field(default_factory=_new_id)
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    confidence: Confidence = Confidence.MEDIUM
    next_billing_date: date | None = None
    last_charge_date: date | None = None
    evidence_count: int = 1
    sender: str = ""
    detected_at: datetime = field(default_factory=_now)
    product_id: str | None = None
    included: bool = True

    def validate(self) -> CandidateSubscription:
        """Check record invariants. Returns self so sources can chain it.

        Raises:
            InvalidCandidateError: If the record breaks an invariant.
        """
        if self.price < 0:
            raise InvalidCandidateError(
                f"Negative price {self.price} for '{self.name}'"
            )
        if self.origin is Origin.MANUAL and self.confidence is not Confidence.HIGH:
            raise InvalidCandidateError(
                f"Manual entry '{self.name}' must have high confidence"
            )
        if self.origin is Origin.EMAIL and not self.sender:
            raise InvalidCandidateError(
                f"Email candidate '{self.name}' has no sender"
            )
        if self.origin is not Origin.EMAIL and self.sender:
            raise InvalidCandidateError(
                f"Only email candidates carry a sender: '{self.name}'"
            )
        if self.product_id and self.origin is not Origin.PURCHASE_HISTORY:
            raise InvalidCandidateError(
                f"Only purchase-history candidates carry a product id: '{self.name}'"
            )
        return self

    @property
    def formatted_price(self) -> str:
        return f"${self.price:,.2f}"

    @property
    def price_with_cycle(self) -> str:
        return f"{self.formatted_price}{self.billing_cycle.short_label}"

    def to_dict(self) -> dict:
        """JSON-ready dict. Dates are ISO strings, enums their values."""
        return {
            "id": self.id,
            "merchant_id": self.merchant_id,
            "name": self.name,
            "price": self.price,
            "billing_cycle": self.billing_cycle.value,
            "confidence": self.confidence.value,
            "next_billing_date": _iso(self.next_billing_date),
            "last_charge_date": _iso(self.last_charge_date),
            "evidence_count": self.evidence_count,
            "origin": self.origin.value,
            "sender": self.sender,
            "detected_at": self.detected_at.isoformat(),
            "product_id": self.product_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> CandidateSubscription:
        """Build a record from its dict shape.

        Only ``name``, ``price`` and ``origin`` are required; ``merchant_id``
        falls back to the name.

        Raises:
            InvalidCandidateError: On missing keys or unknown enum values.
        """
        try:
            name = data["name"]
            kwargs = {
                "merchant_id": data.get("merchant_id") or name,
                "name": name,
                "price": float(data["price"]),
                "origin": Origin(data["origin"]),
                "billing_cycle": BillingCycle(data.get("billing_cycle", "monthly")),
                "confidence": Confidence(data.get("confidence", "medium")),
                "next_billing_date": _parse_date(data.get("next_billing_date")),
                "last_charge_date": _parse_date(data.get("last_charge_date")),
                "evidence_count": int(data.get("evidence_count", 1)),
                "sender": data.get("sender") or "",
                "product_id": data.get("product_id"),
            }
            if data.get("id"):
                kwargs["id"] = str(data["id"])
            if data.get("detected_at"):
                kwargs["detected_at"] = datetime.fromisoformat(data["detected_at"])
        except KeyError as e:
            raise InvalidCandidateError(f"Missing field {e} in candidate record") from e
        except (TypeError, ValueError) as e:
            raise InvalidCandidateError(f"Invalid candidate record: {e}") from e
        return cls(**kwargs)


def _iso(value: date | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_date(value: str | None) -> date | None:
    if not value:
        return None
    return date.fromisoformat(value)


# ── Scan progress ────────────────────────────────────────


class ScanPhase(enum.Enum):
    STARTING = "starting"
    SCANNING = "scanning"
    ANALYZING = "analyzing"
    COMPLETE = "complete"


class SourcePhase(enum.Enum):
    NOT_STARTED = "not_started"
    FETCHING = "fetching"
    ANALYZING = "analyzing"
    COMPLETE = "complete"
    FAILED = "failed"
    UNAVAILABLE = "unavailable"

    @property
    def is_terminal(self) -> bool:
        return self in (SourcePhase.COMPLETE, SourcePhase.FAILED, SourcePhase.UNAVAILABLE)


# Source keys used in ScanProgress.sources and ScanSessionResult.
PURCHASE_HISTORY = "purchase_history"
EMAIL = "email"
SOURCE_KEYS = (PURCHASE_HISTORY, EMAIL)


@dataclass(frozen=True)
class SourceProgress:
    phase: SourcePhase = SourcePhase.NOT_STARTED
    items_scanned: int = 0
    candidates_found: int = 0
    current_label: str | None = None


@dataclass(frozen=True)
class ScanProgress:
    """Snapshot of one scan's progress.

    Frozen: the live value is held by ProgressTracker and replaced
    wholesale on every update. ``sources`` is a read-only mapping so an
    observer cannot write into the tracker's state.
    """
    phase: ScanPhase = ScanPhase.STARTING
    sources: Mapping[str, SourceProgress] = field(
        default_factory=lambda: {key: SourceProgress() for key in SOURCE_KEYS}
    )

    def __post_init__(self):
        object.__setattr__(self, "sources", MappingProxyType(dict(self.sources)))

    def source(self, key: str) -> SourceProgress:
        return self.sources[key]

    @property
    def items_scanned(self) -> int:
        return sum(s.items_scanned for s in self.sources.values())

    @property
    def candidates_found(self) -> int:
        return sum(s.candidates_found for s in self.sources.values())


@dataclass(frozen=True)
class ScanSessionResult:
    """Outcome of one completed scan. Superseded, never mutated."""
    candidates: tuple[CandidateSubscription, ...]
    transactions_scanned: int
    emails_scanned: int
    duration_seconds: float
    error_message: str | None = None

    @property
    def items_scanned(self) -> int:
        return self.transactions_scanned + self.emails_scanned

    @property
    def high_confidence_count(self) -> int:
        return sum(1 for c in self.candidates if c.confidence is Confidence.HIGH)

    @property
    def medium_confidence_count(self) -> int:
        return sum(1 for c in self.candidates if c.confidence is Confidence.MEDIUM)

    @property
    def low_confidence_count(self) -> int:
        return sum(1 for c in self.candidates if c.confidence is Confidence.LOW)

    @property
    def maybe_count(self) -> int:
        """Candidates shown as "maybe" in review: medium or low confidence."""
        return self.medium_confidence_count + self.low_confidence_count
