"""YAML configuration loader for subscan.

Loads scan.yaml from the config/ directory. Every key is optional; absent
keys fall back to the defaults in ScanSettings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from subscan.reconcile.merchant_match import MatchingRules

DEFAULT_PURCHASE_TIMEOUT = 30.0
DEFAULT_EMAIL_TIMEOUT = 120.0


@dataclass(frozen=True)
class SourceSettings:
    enabled: bool = True
    timeout_seconds: float = DEFAULT_EMAIL_TIMEOUT


@dataclass(frozen=True)
class GmailSettings:
    months_to_scan: int = 12
    max_messages: int = 500
    use_category_filter: bool = True


@dataclass(frozen=True)
class ScanSettings:
    """Everything the orchestrator and sources need from configuration."""
    purchase_history: SourceSettings = field(
        default_factory=lambda: SourceSettings(timeout_seconds=DEFAULT_PURCHASE_TIMEOUT)
    )
    email: SourceSettings = field(default_factory=SourceSettings)
    matching: MatchingRules = field(default_factory=MatchingRules)
    gmail: GmailSettings = field(default_factory=GmailSettings)


class Config:
    """Loads and provides access to scan.yaml."""

    def __init__(self, config_dir: Path | str = "config"):
        self.config_dir = Path(config_dir)
        if not self.config_dir.is_dir():
            raise FileNotFoundError(f"Config directory not found: {self.config_dir}")

        self._scan: dict | None = None
        self._settings: ScanSettings | None = None

    def _load(self, filename: str) -> dict:
        path = self.config_dir / filename
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in {path}: {e}") from e
        if data is None:
            raise ValueError(f"Empty config file: {path}")
        if not isinstance(data, dict):
            raise ValueError(f"Expected a mapping at top level of {path}")
        return data

    @property
    def scan(self) -> dict:
        """Raw scan.yaml contents."""
        if self._scan is None:
            self._scan = self._load("scan.yaml")
        return self._scan

    @property
    def sources(self) -> dict:
        return self.scan.get("sources", {}) or {}

    @property
    def settings(self) -> ScanSettings:
        """Typed settings built from scan.yaml, cached after first access."""
        if self._settings is None:
            self._settings = ScanSettings(
                purchase_history=_source_settings(
                    self.sources.get("purchase_history"), DEFAULT_PURCHASE_TIMEOUT,
                ),
                email=_source_settings(self.sources.get("email"), DEFAULT_EMAIL_TIMEOUT),
                matching=_matching_rules(self.scan.get("matching")),
                gmail=_gmail_settings(self.scan.get("gmail")),
            )
        return self._settings


def _source_settings(raw: dict | None, default_timeout: float) -> SourceSettings:
    raw = raw or {}
    timeout = float(raw.get("timeout_seconds", default_timeout))
    if timeout <= 0:
        raise ValueError(f"timeout_seconds must be positive, got {timeout}")
    return SourceSettings(
        enabled=bool(raw.get("enabled", True)),
        timeout_seconds=timeout,
    )


def _matching_rules(raw: dict | None) -> MatchingRules:
    raw = raw or {}
    defaults = MatchingRules()
    tokens = raw.get("stripped_tokens")
    return MatchingRules(
        stripped_tokens=(
            tuple(str(t).lower() for t in tokens) if tokens is not None
            else defaults.stripped_tokens
        ),
        short_key_length=int(raw.get("short_key_length", defaults.short_key_length)),
        max_edit_distance=int(raw.get("max_edit_distance", defaults.max_edit_distance)),
        min_key_length=int(raw.get("min_key_length", defaults.min_key_length)),
    )


def _gmail_settings(raw: dict | None) -> GmailSettings:
    raw = raw or {}
    defaults = GmailSettings()
    return GmailSettings(
        months_to_scan=int(raw.get("months_to_scan", defaults.months_to_scan)),
        max_messages=int(raw.get("max_messages", defaults.max_messages)),
        use_category_filter=bool(
            raw.get("use_category_filter", defaults.use_category_filter)
        ),
    )
