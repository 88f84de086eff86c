"""Scan orchestration: lifecycle state machine over two concurrent sources.

States (linear):
  idle → scanning → review → complete

start_scan() runs the purchase-history and email sources concurrently and
joins on both before merging; the first to finish never short-circuits the
other. Starting a new scan cancels the one in flight; a generation counter
makes sure a superseded scan can neither write progress nor publish its
candidates. start_manual_entry() skips both sources and goes straight to
review with an empty candidate set.

Failure handling is best-effort: a failed or timed-out source contributes an
empty list and the scan still reaches review. Only purchase-history failures
produce a user-visible error message; email failures are logged.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from dataclasses import dataclass, replace
from typing import Callable

from subscan.config import ScanSettings, SourceSettings
from subscan.models import (
    EMAIL,
    PURCHASE_HISTORY,
    SOURCE_KEYS,
    BillingCycle,
    CandidateSubscription,
    Confidence,
    Origin,
    ScanPhase,
    ScanProgress,
    ScanSessionResult,
    SourcePhase,
)
from subscan.reconcile.billing import total_monthly
from subscan.reconcile.engine import merge_candidates
from subscan.scan.progress import ProgressCallback, ProgressReporter, ProgressTracker
from subscan.sources.base import ScanSource, SourceOutcome, SourceUnavailableError

logger = logging.getLogger(__name__)

PURCHASE_FAILURE_MESSAGE = (
    "We couldn't read your purchase history ({reason}). Please try scanning again."
)


class ScanState(enum.Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    REVIEW = "review"
    COMPLETE = "complete"


class InvalidTransitionError(Exception):
    """Raised when an operation is not allowed in the current state."""


class CandidateNotFoundError(KeyError):
    """Raised when a review operation names an unknown candidate id."""


@dataclass(frozen=True)
class ScanOptions:
    """Which sources to launch for one scan."""
    include_purchase_history: bool = True
    include_email: bool = True

    def includes(self, key: str) -> bool:
        if key == PURCHASE_HISTORY:
            return self.include_purchase_history
        return self.include_email


class ScanOrchestrator:
    """Own one scan session at a time and expose it to the UI layer.

    Args:
        purchase_source: Higher-trust source (platform purchase history).
        email_source: Lower-trust source (email-derived candidates).
        settings: Timeouts, enablement and matching thresholds.
        clock: Monotonic clock used for scan duration.
    """

    def __init__(
        self,
        purchase_source: ScanSource | None = None,
        email_source: ScanSource | None = None,
        settings: ScanSettings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.sources: dict[str, ScanSource | None] = {
            PURCHASE_HISTORY: purchase_source,
            EMAIL: email_source,
        }
        self.settings = settings or ScanSettings()
        self._clock = clock
        self._tracker = ProgressTracker()
        self._generation = 0
        self._state = ScanState.IDLE
        self._candidates: list[CandidateSubscription] = []
        self._result: ScanSessionResult | None = None
        self._error_message: str | None = None
        self._scan_task: asyncio.Task | None = None

    # ── Read-only surface ────────────────────────────────

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def progress(self) -> ScanProgress:
        return self._tracker.snapshot()

    @property
    def candidates(self) -> list[CandidateSubscription]:
        """Working candidate set, ranked at scan completion."""
        return list(self._candidates)

    @property
    def included_candidates(self) -> list[CandidateSubscription]:
        return [c for c in self._candidates if c.included]

    @property
    def result(self) -> ScanSessionResult | None:
        return self._result

    @property
    def error_message(self) -> str | None:
        return self._error_message

    @property
    def total_monthly_estimate(self) -> float:
        return total_monthly(self._candidates, included_only=True)

    def count_by_origin(self, origin: Origin) -> int:
        return sum(1 for c in self._candidates if c.origin is origin)

    def subscribe(self, callback: ProgressCallback) -> Callable[[], None]:
        """Observe progress updates. Returns an unsubscribe function."""
        return self._tracker.subscribe(callback)

    # ── Transitions ──────────────────────────────────────

    async def start_scan(self, options: ScanOptions | None = None) -> ScanSessionResult | None:
        """Run a full scan and move to review.

        Allowed from any state. A scan already in flight is cancelled.

        Returns:
            The session result, or None if a newer scan superseded this one.
        """
        options = options or ScanOptions()
        generation = self._begin(ScanState.SCANNING)

        active = self._active_sources(options)
        unavailable = {key for key in SOURCE_KEYS if key not in active}
        self._tracker.reset(generation, unavailable)
        logger.info(
            "Scan %d started (sources: %s)",
            generation, ", ".join(active) or "none",
        )

        task = asyncio.ensure_future(self._run_scan(generation, active))
        self._scan_task = task
        try:
            return await task
        except asyncio.CancelledError:
            if generation != self._generation:
                logger.info("Scan %d superseded by scan %d", generation, self._generation)
                return None
            # Cancelled by the caller: nothing is in flight any more
            idle = self._begin(ScanState.IDLE)
            self._settle_progress(idle)
            logger.info("Scan %d cancelled", generation)
            raise

    def start_manual_entry(self) -> None:
        """Skip scanning: go straight to review with no candidates."""
        generation = self._begin(ScanState.REVIEW)
        self._settle_progress(generation)
        logger.info("Manual entry started (scan %d)", generation)

    def toggle_inclusion(self, candidate_id: str) -> bool:
        """Flip a candidate's inclusion flag. Returns the new value."""
        self._require(ScanState.REVIEW, "toggle inclusion")
        index = self._index_of(candidate_id)
        candidate = self._candidates[index]
        self._candidates[index] = replace(candidate, included=not candidate.included)
        return self._candidates[index].included

    def add_manual_candidate(
        self,
        name: str,
        price: float,
        cycle: BillingCycle = BillingCycle.MONTHLY,
        merchant_id: str | None = None,
    ) -> CandidateSubscription:
        """Add a user-entered subscription. Manual entries are high confidence."""
        self._require(ScanState.REVIEW, "add a candidate")
        candidate = CandidateSubscription(
            merchant_id=merchant_id or name,
            name=name,
            price=price,
            origin=Origin.MANUAL,
            billing_cycle=cycle,
            confidence=Confidence.HIGH,
        ).validate()
        self._candidates.append(candidate)
        return candidate

    def remove_candidate(self, candidate_id: str) -> CandidateSubscription:
        self._require(ScanState.REVIEW, "remove a candidate")
        return self._candidates.pop(self._index_of(candidate_id))

    def update_candidate(
        self,
        candidate_id: str,
        name: str | None = None,
        price: float | None = None,
        cycle: BillingCycle | None = None,
    ) -> CandidateSubscription:
        """Edit name, price or cycle of a candidate under review."""
        self._require(ScanState.REVIEW, "update a candidate")
        index = self._index_of(candidate_id)
        changes = {}
        if name is not None:
            changes["name"] = name
        if price is not None:
            changes["price"] = price
        if cycle is not None:
            changes["billing_cycle"] = cycle
        updated = replace(self._candidates[index], **changes).validate()
        self._candidates[index] = updated
        return updated

    def confirm(self) -> list[CandidateSubscription]:
        """Finish review. Returns the included candidates for persistence."""
        self._require(ScanState.REVIEW, "confirm")
        confirmed = self.included_candidates
        self._state = ScanState.COMPLETE
        logger.info(
            "Confirmed %d of %d candidate(s)", len(confirmed), len(self._candidates),
        )
        return confirmed

    # ── Internals ────────────────────────────────────────

    def _begin(self, state: ScanState) -> int:
        """Invalidate whatever is in flight and enter a new session."""
        self._generation += 1
        if self._scan_task is not None and not self._scan_task.done():
            self._scan_task.cancel()
        self._scan_task = None
        self._state = state
        self._candidates = []
        self._result = None
        self._error_message = None
        return self._generation

    def _settle_progress(self, generation: int) -> None:
        """Show finished progress for a session where no source will run."""
        self._tracker.reset(generation, unavailable=set(SOURCE_KEYS))
        self._tracker.set_phase(generation, ScanPhase.COMPLETE)

    def _active_sources(self, options: ScanOptions) -> dict[str, ScanSource]:
        active: dict[str, ScanSource] = {}
        for key in SOURCE_KEYS:
            source = self.sources[key]
            if source is None or not options.includes(key):
                continue
            if not self._source_settings(key).enabled:
                logger.info("Source %s disabled in config", key)
                continue
            if not source.is_available():
                logger.info("Source %s unavailable, skipping", source.name)
                continue
            active[key] = source
        return active

    def _source_settings(self, key: str) -> SourceSettings:
        if key == PURCHASE_HISTORY:
            return self.settings.purchase_history
        return self.settings.email

    async def _run_scan(
        self, generation: int, active: dict[str, ScanSource],
    ) -> ScanSessionResult | None:
        started = self._clock()

        keys = list(active)
        outcomes = await asyncio.gather(
            *(self._run_source(generation, key, active[key]) for key in keys)
        )
        by_key = dict(zip(keys, outcomes))

        if generation != self._generation:
            return None

        self._tracker.set_phase(generation, ScanPhase.ANALYZING)

        purchase = by_key.get(PURCHASE_HISTORY)
        email = by_key.get(EMAIL)
        merged = merge_candidates(
            purchase.candidates if purchase else [],
            email.candidates if email else [],
            self.settings.matching,
        )

        error_message = None
        if purchase is not None and purchase.status == "failed":
            error_message = PURCHASE_FAILURE_MESSAGE.format(reason=purchase.error_message)

        result = ScanSessionResult(
            candidates=tuple(merged),
            transactions_scanned=purchase.items_scanned if purchase else 0,
            emails_scanned=email.items_scanned if email else 0,
            duration_seconds=self._clock() - started,
            error_message=error_message,
        )

        self._candidates = [replace(c, included=True) for c in merged]
        self._result = result
        self._error_message = error_message
        self._tracker.set_phase(generation, ScanPhase.COMPLETE)
        self._state = ScanState.REVIEW

        logger.info(
            "Scan %d complete: %d candidate(s) from %d item(s) in %.1fs",
            generation, len(merged), result.items_scanned, result.duration_seconds,
        )
        return result

    async def _run_source(
        self, generation: int, key: str, source: ScanSource,
    ) -> SourceOutcome:
        """Run one source to a terminal state. Never raises except on cancel."""
        reporter = self._tracker.reporter(generation, key)
        timeout = self._source_settings(key).timeout_seconds
        reporter.phase(SourcePhase.FETCHING)

        try:
            candidates = list(await asyncio.wait_for(source.scan(reporter), timeout))
        except SourceUnavailableError as e:
            logger.info("Source %s unavailable: %s", source.name, e)
            reporter.phase(SourcePhase.UNAVAILABLE)
            return SourceOutcome(key, "unavailable", error_message=str(e))
        except asyncio.TimeoutError:
            return self._source_failed(
                reporter, key, source, f"timed out after {timeout:g}s", exc_info=False,
            )
        except Exception as e:
            return self._source_failed(reporter, key, source, str(e) or type(e).__name__)

        items_scanned = self._tracker.snapshot().source(key).items_scanned
        reporter.found(len(candidates))
        reporter.examining(None)
        reporter.phase(SourcePhase.COMPLETE)
        logger.info(
            "Source %s found %d candidate(s) in %d item(s)",
            source.name, len(candidates), items_scanned,
        )
        return SourceOutcome(key, "success", candidates, items_scanned)

    def _source_failed(
        self,
        reporter: ProgressReporter,
        key: str,
        source: ScanSource,
        reason: str,
        exc_info: bool = True,
    ) -> SourceOutcome:
        reporter.examining(None)
        reporter.phase(SourcePhase.FAILED)
        items_scanned = self._tracker.snapshot().source(key).items_scanned
        if key == PURCHASE_HISTORY:
            logger.error("Source %s failed: %s", source.name, reason, exc_info=exc_info)
        else:
            # Email failures only mean fewer candidates; never surfaced
            logger.warning("Source %s failed: %s", source.name, reason, exc_info=exc_info)
        return SourceOutcome(key, "failed", items_scanned=items_scanned, error_message=reason)

    def _require(self, state: ScanState, action: str) -> None:
        if self._state is not state:
            raise InvalidTransitionError(
                f"Cannot {action} while {self._state.value}"
            )

    def _index_of(self, candidate_id: str) -> int:
        for i, candidate in enumerate(self._candidates):
            if candidate.id == candidate_id:
                return i
        raise CandidateNotFoundError(candidate_id)
