"""Scan progress tracking: one owner, many reporters.

ProgressTracker holds the live ScanProgress for the current scan. Sources
never touch it directly; they push updates through a ProgressReporter bound
to their source key and the scan generation that created it. The tracker
applies updates under a lock and drops any update whose generation is not
the current one, so a superseded scan cannot write into a newer scan's
progress. Observers read immutable snapshots.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import Callable

from subscan.models import ScanPhase, ScanProgress, SourcePhase, SourceProgress

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ScanProgress], None]


class ProgressTracker:
    """Single synchronized owner of the current scan's progress."""

    def __init__(self):
        self._lock = threading.Lock()
        self._generation = 0
        self._progress = ScanProgress()
        self._subscribers: list[ProgressCallback] = []

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def snapshot(self) -> ScanProgress:
        with self._lock:
            return self._progress

    def subscribe(self, callback: ProgressCallback) -> Callable[[], None]:
        """Register a callback for every applied update.

        Returns a function that removes the subscription.
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def reset(self, generation: int, unavailable: set[str] | frozenset[str] = frozenset()) -> None:
        """Start fresh progress for a new scan generation.

        Sources listed in ``unavailable`` are marked so the UI can omit them.
        """
        with self._lock:
            self._generation = generation
            sources = {
                key: SourceProgress(
                    phase=SourcePhase.UNAVAILABLE if key in unavailable
                    else SourcePhase.NOT_STARTED,
                )
                for key in self._progress.sources
            }
            self._progress = ScanProgress(phase=ScanPhase.STARTING, sources=sources)
        self._notify()

    def set_phase(self, generation: int, phase: ScanPhase) -> bool:
        """Set the overall phase. Returns False if the update was stale."""
        return self._apply(generation, lambda p: replace(p, phase=phase))

    def update_source(self, generation: int, key: str, **changes) -> bool:
        """Apply field changes to one source's progress.

        Returns False if the update was stale and dropped.
        """
        def _update(progress: ScanProgress) -> ScanProgress:
            sources = dict(progress.sources)
            sources[key] = replace(sources[key], **changes)
            phase = progress.phase
            if phase is ScanPhase.STARTING and changes.get("phase") is not None:
                phase = ScanPhase.SCANNING
            return replace(progress, phase=phase, sources=sources)

        return self._apply(generation, _update)

    def reporter(self, generation: int, key: str) -> ProgressReporter:
        return ProgressReporter(self, generation, key)

    def _apply(self, generation: int, fn: Callable[[ScanProgress], ScanProgress]) -> bool:
        with self._lock:
            if generation != self._generation:
                stale = True
            else:
                stale = False
                self._progress = fn(self._progress)
        if stale:
            logger.debug(
                "Dropped progress update from stale scan generation %d", generation
            )
            return False
        self._notify()
        return True

    def _notify(self) -> None:
        with self._lock:
            snapshot = self._progress
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(snapshot)
            except Exception:
                logger.exception("Progress subscriber failed")


class ProgressReporter:
    """Write handle for one source within one scan generation."""

    def __init__(self, tracker: ProgressTracker, generation: int, key: str):
        self._tracker = tracker
        self.generation = generation
        self.key = key

    def phase(self, phase: SourcePhase) -> None:
        self._tracker.update_source(self.generation, self.key, phase=phase)

    def scanned(self, count: int) -> None:
        self._tracker.update_source(self.generation, self.key, items_scanned=count)

    def found(self, count: int) -> None:
        self._tracker.update_source(self.generation, self.key, candidates_found=count)

    def examining(self, label: str | None) -> None:
        self._tracker.update_source(self.generation, self.key, current_label=label)
