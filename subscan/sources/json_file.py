"""JSON file source: candidates exported by an external extractor."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

from subscan.models import CandidateSubscription, InvalidCandidateError, SourcePhase
from subscan.scan.progress import ProgressReporter
from subscan.sources.base import ScanSource, SourceError, SourceUnavailableError

logger = logging.getLogger(__name__)


def load_candidates(path: Path) -> list[CandidateSubscription]:
    """Read and validate a JSON list of candidate dicts.

    Accepts either a bare list or {"candidates": [...]}.

    Raises:
        SourceError: If the file is not valid JSON or a record is malformed.
    """
    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise SourceError(f"Invalid JSON in {path}: {e}") from e

    if isinstance(data, dict):
        data = data.get("candidates", [])
    if not isinstance(data, list):
        raise SourceError(f"Expected a list of candidates in {path}")

    candidates = []
    for i, record in enumerate(data):
        try:
            candidates.append(CandidateSubscription.from_dict(record).validate())
        except (InvalidCandidateError, AttributeError) as e:
            raise SourceError(f"Record {i} in {path.name}: {e}") from e
    return candidates


class JsonFileSource(ScanSource):
    """Serve candidates from a JSON file.

    A missing file means the source is unavailable, not failed.
    """

    def __init__(self, path: Path | str, name: str = "json"):
        self.path = Path(path)
        self.name = name

    def is_available(self) -> bool:
        return self.path.is_file()

    async def scan(self, reporter: ProgressReporter) -> list[CandidateSubscription]:
        if not self.path.is_file():
            raise SourceUnavailableError(f"No candidate file at {self.path}")

        reporter.phase(SourcePhase.FETCHING)
        reporter.examining(self.path.name)
        candidates = await asyncio.to_thread(load_candidates, self.path)

        reporter.phase(SourcePhase.ANALYZING)
        reporter.scanned(len(candidates))
        logger.debug("Loaded %d candidate(s) from %s", len(candidates), self.path)
        return candidates
