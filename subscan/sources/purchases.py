"""Purchase-history source: wraps a platform transaction fetcher.

The fetcher itself (reading platform receipts and turning them into
candidates) lives outside this package. This adapter drives the progress
phases around it and validates what comes back.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable

from subscan.models import CandidateSubscription, Origin, SourcePhase
from subscan.scan.progress import ProgressReporter
from subscan.sources.base import ScanSource, SourceError

logger = logging.getLogger(__name__)

PurchaseFetcher = Callable[[], Any]


class PurchaseHistorySource(ScanSource):
    """Scan platform purchase history through an injected fetcher.

    Args:
        fetch: Sync or async callable returning a list of candidates.
            Sync fetchers run in a worker thread.
        available: Whether purchase-history access exists on this device.
    """

    name = "purchase_history"

    def __init__(self, fetch: PurchaseFetcher, available: bool = True):
        self.fetch = fetch
        self.available = available

    def is_available(self) -> bool:
        return self.available

    async def scan(self, reporter: ProgressReporter) -> list[CandidateSubscription]:
        reporter.phase(SourcePhase.FETCHING)
        if inspect.iscoroutinefunction(self.fetch):
            records = await self.fetch()
        else:
            records = await asyncio.to_thread(self.fetch)

        reporter.phase(SourcePhase.ANALYZING)
        records = list(records or [])
        reporter.scanned(len(records))

        candidates = []
        for record in records:
            if record.origin is not Origin.PURCHASE_HISTORY:
                raise SourceError(
                    f"Purchase fetcher returned a {record.origin.value} record: '{record.name}'"
                )
            candidates.append(record.validate())

        logger.debug("Purchase history returned %d candidate(s)", len(candidates))
        return candidates
