"""Gmail email-history source.

GmailClient wraps the Gmail API using domain-wide delegation.
Auth: service account impersonating a Google Workspace user.
Scope: gmail.readonly.

EmailScanSource lists subscription-looking messages, fetches their metadata
and hands them to an injected extractor that decides which senders are
subscriptions. Classification heuristics live in the extractor, not here.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable

from google.oauth2 import service_account
from googleapiclient.discovery import build

from subscan.config import GmailSettings
from subscan.models import CandidateSubscription, Origin, SourcePhase
from subscan.scan.progress import ProgressReporter
from subscan.sources.base import ScanSource, SourceError, SourceUnavailableError

logger = logging.getLogger(__name__)

GMAIL_SCOPE = ["https://www.googleapis.com/auth/gmail.readonly"]

# Gmail caps list() page size at 500
_PAGE_SIZE = 500

_METADATA_HEADERS = ["From", "Subject", "Date"]

_POSITIVE_KEYWORDS = (
    "subscription", "membership", "renewal", "auto-renewal",
    "recurring", "monthly plan", "annual plan", "yearly plan",
    "billing cycle", "next billing date",
    "invoice", "receipt",
)

# Excluded at query level to cut API calls
_NEGATIVE_KEYWORDS = (
    "shipped", "tracking", "delivery",
    "order confirmation", "your order",
)

MessageExtractor = Callable[[list[dict]], list[CandidateSubscription]]


def build_search_query(months_to_scan: int = 12, use_category_filter: bool = True) -> str:
    """Gmail search query for subscription receipts and renewals."""
    positive = " OR ".join(f'"{k}"' for k in _POSITIVE_KEYWORDS)
    negative = " ".join(f'-"{k}"' for k in _NEGATIVE_KEYWORDS)
    query = f"newer_than:{months_to_scan}m ({positive}) {negative}"
    if use_category_filter:
        query = f"(category:purchases OR category:updates) {query}"
    return query


class GmailClient:
    """Gmail API client using domain-wide delegation.

    Args:
        service_account_file: Path to service account JSON key file.
        target_user: Google Workspace email to impersonate.
    """

    def __init__(self, service_account_file: str, target_user: str):
        self.service_account_file = service_account_file
        self.target_user = target_user
        self._service = None

    @property
    def service(self):
        """Lazy-initialize the Gmail API service."""
        if self._service is None:
            credentials = service_account.Credentials.from_service_account_file(
                self.service_account_file,
                scopes=GMAIL_SCOPE,
            )
            delegated = credentials.with_subject(self.target_user)
            self._service = build("gmail", "v1", credentials=delegated)
        return self._service

    def search_messages(self, query: str, max_results: int) -> list[dict]:
        """List message ids matching query, following pagination.

        Returns:
            Up to max_results dicts with "id" and "threadId" keys.

        Raises:
            SourceError: If the API call fails.
        """
        messages: list[dict] = []
        page_token = None
        try:
            while len(messages) < max_results:
                response = (
                    self.service.users()
                    .messages()
                    .list(
                        userId="me",
                        q=query,
                        maxResults=min(_PAGE_SIZE, max_results - len(messages)),
                        pageToken=page_token,
                    )
                    .execute()
                )
                messages.extend(response.get("messages", []))
                page_token = response.get("nextPageToken")
                if not page_token:
                    break
        except Exception as e:
            raise SourceError(f"Gmail search failed: {e}") from e

        logger.info("Gmail search returned %d message(s)", len(messages))
        return messages[:max_results]

    def get_message_metadata(self, msg_id: str) -> dict | None:
        """Fetch sender, subject, date and snippet for one message.

        Returns:
            Dict with keys id, from, subject, date, snippet. None on error
            so one bad message doesn't fail the whole scan.
        """
        try:
            msg = (
                self.service.users()
                .messages()
                .get(
                    userId="me",
                    id=msg_id,
                    format="metadata",
                    metadataHeaders=_METADATA_HEADERS,
                )
                .execute()
            )
        except Exception:
            logger.exception("Failed to fetch message %s", msg_id)
            return None
        return _extract_metadata(msg)


def _extract_metadata(msg: dict) -> dict:
    """Flatten Gmail API headers into a simple dict."""
    headers = {
        h.get("name", "").lower(): h.get("value", "")
        for h in msg.get("payload", {}).get("headers", [])
    }
    return {
        "id": msg.get("id", ""),
        "from": headers.get("from", ""),
        "subject": headers.get("subject", ""),
        "date": headers.get("date", ""),
        "snippet": msg.get("snippet", ""),
    }


class EmailScanSource(ScanSource):
    """Scan email history for subscription candidates.

    Args:
        client: GmailClient (or anything with the same two methods).
        extractor: Turns message metadata into candidate records.
        settings: Query window and message cap.
    """

    name = "email"

    def __init__(
        self,
        client: GmailClient,
        extractor: MessageExtractor,
        settings: GmailSettings | None = None,
    ):
        self.client = client
        self.extractor = extractor
        self.settings = settings or GmailSettings()

    def is_available(self) -> bool:
        return bool(self.client.target_user) and Path(
            self.client.service_account_file
        ).is_file()

    async def scan(self, reporter: ProgressReporter) -> list[CandidateSubscription]:
        if not self.is_available():
            raise SourceUnavailableError("No Gmail account connected")

        query = build_search_query(
            self.settings.months_to_scan, self.settings.use_category_filter,
        )
        reporter.phase(SourcePhase.FETCHING)
        listed = await asyncio.to_thread(
            self.client.search_messages, query, self.settings.max_messages,
        )

        messages = []
        for i, item in enumerate(listed, start=1):
            metadata = await asyncio.to_thread(
                self.client.get_message_metadata, item["id"],
            )
            if metadata is not None:
                messages.append(metadata)
                reporter.examining(metadata["from"] or None)
            reporter.scanned(i)

        reporter.phase(SourcePhase.ANALYZING)
        reporter.examining(None)
        candidates = []
        for record in self.extractor(messages):
            if record.origin is not Origin.EMAIL:
                raise SourceError(
                    f"Email extractor returned a {record.origin.value} record: '{record.name}'"
                )
            candidates.append(record.validate())
        reporter.found(len(candidates))
        return candidates
