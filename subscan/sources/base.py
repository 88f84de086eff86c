"""Source collaborator boundary: shared interface and outcome types."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from subscan.models import CandidateSubscription

if TYPE_CHECKING:
    from subscan.scan.progress import ProgressReporter


class SourceError(Exception):
    """Raised by a source when its scan fails after starting."""


class SourceUnavailableError(SourceError):
    """Raised when a source's prerequisite is missing (e.g. no account).

    Treated as "skip this source", not as a failure.
    """


class ScanSource(ABC):
    """Abstract base for candidate-discovery sources.

    Implementations push progress through the reporter they are given and
    return validated candidates. They must not mutate the returned list
    after handing it over.
    """

    name: str = "source"

    def is_available(self) -> bool:
        """Return False to skip this source before the scan starts."""
        return True

    @abstractmethod
    async def scan(self, reporter: ProgressReporter) -> list[CandidateSubscription]:
        """Run the scan and return candidate records.

        Raises:
            SourceUnavailableError: If the prerequisite turns out missing.
            Exception: Any other error is treated as a source failure.
        """


@dataclass
class SourceOutcome:
    """Terminal result of one source within one scan."""
    source: str
    status: str  # "success", "failed", "unavailable"
    candidates: list[CandidateSubscription] = field(default_factory=list)
    items_scanned: int = 0
    error_message: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == "success"
