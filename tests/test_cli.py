"""Tests for subscan.cli: argument parsing and command handlers.

Command handlers run through main(argv=[...]) against the candidate
fixtures; SUBSCAN_CONFIG_DIR points at a missing directory so built-in
defaults apply unless a test says otherwise.
"""

from __future__ import annotations

import json
import subprocess
import sys
from pathlib import Path

import pytest

from subscan.cli import main
from tests.conftest import FIXTURE_CANDIDATES_DIR, FIXTURE_CONFIG_DIR

REPO_ROOT = Path(__file__).parent.parent
PURCHASES = str(FIXTURE_CANDIDATES_DIR / "purchases.json")
EMAILS = str(FIXTURE_CANDIDATES_DIR / "emails.json")


@pytest.fixture(autouse=True)
def _default_settings(monkeypatch, tmp_path):
    monkeypatch.setenv("SUBSCAN_CONFIG_DIR", str(tmp_path / "no-config"))


def _run(argv):
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    return exc_info.value.code


# ── Argument parsing tests (subprocess) ──────────────────


class TestCliHelp:
    def test_help_exits_zero(self):
        result = subprocess.run(
            [sys.executable, "-m", "subscan.cli", "--help"],
            capture_output=True, text=True, cwd=REPO_ROOT,
        )
        assert result.returncode == 0
        assert "Subscription detection and reconciliation" in result.stdout
        for cmd in ["scan", "match"]:
            assert cmd in result.stdout

    def test_no_args_prints_help(self, capsys):
        assert _run([]) == 0
        assert "usage:" in capsys.readouterr().out.lower()


# ── scan ─────────────────────────────────────────────────


class TestCmdScan:
    def test_requires_a_source(self, capsys):
        assert _run(["scan"]) == 1
        assert "--purchases" in capsys.readouterr().out

    def test_merged_table(self, capsys):
        assert _run(["scan", "--purchases", PURCHASES, "--emails", EMAILS]) == 0
        out = capsys.readouterr().out
        rows = [line for line in out.splitlines() if line.startswith(("high", "medium", "low"))]
        assert [row.split()[1] for row in rows] == ["Hulu", "iCloud+", "Netflix", "New"]
        assert "Netflix Premium" not in out
        assert "4 subscription(s) from 5 item(s)" in out
        assert "(3 likely, 1 maybe)" in out
        assert "Estimated spend: $36.97/mo, $443.64/yr" in out

    def test_json_output(self, capsys):
        assert _run(["scan", "--purchases", PURCHASES, "--emails", EMAILS, "--json"]) == 0
        records = json.loads(capsys.readouterr().out)
        assert [r["id"] for r in records] == ["em-hulu", "ph-icloud", "ph-netflix", "em-nyt"]
        assert "included" not in records[0]

    def test_missing_file_is_skipped(self, capsys, tmp_path):
        code = _run(["scan", "--purchases", str(tmp_path / "none.json"), "--emails", EMAILS])
        assert code == 0
        out = capsys.readouterr().out
        assert "3 subscription(s) from 3 item(s)" in out
        assert "Warning" not in out

    def test_bad_purchase_file_warns(self, capsys):
        code = _run([
            "scan",
            "--purchases", str(FIXTURE_CANDIDATES_DIR / "bad_price.json"),
            "--emails", EMAILS,
        ])
        assert code == 2
        out = capsys.readouterr().out
        assert "Warning: We couldn't read your purchase history" in out
        assert "3 subscription(s)" in out

    def test_bad_email_file_is_quiet(self, capsys):
        code = _run([
            "scan",
            "--purchases", PURCHASES,
            "--emails", str(FIXTURE_CANDIDATES_DIR / "bad_price.json"),
        ])
        assert code == 0
        out = capsys.readouterr().out
        assert "Warning" not in out
        assert "2 subscription(s)" in out

    def test_no_candidates(self, capsys, tmp_path):
        empty = tmp_path / "empty.json"
        empty.write_text("[]")
        assert _run(["scan", "--emails", str(empty)]) == 0
        assert "No subscriptions found." in capsys.readouterr().out

    def test_disabled_source_from_config(self, capsys, monkeypatch):
        # Fixture config disables the email source
        monkeypatch.setenv("SUBSCAN_CONFIG_DIR", str(FIXTURE_CONFIG_DIR))
        assert _run(["scan", "--purchases", PURCHASES, "--emails", EMAILS]) == 0
        assert "2 subscription(s) from 2 item(s)" in capsys.readouterr().out


# ── match ────────────────────────────────────────────────


class TestCmdMatch:
    def test_same_merchant(self, capsys):
        assert _run(["match", "Netflix", "Netflix Premium"]) == 0
        out = capsys.readouterr().out
        assert "'Netflix Premium' -> 'netflix'" in out
        assert "Same merchant" in out

    def test_typo_within_distance(self, capsys):
        assert _run(["match", "Spotify", "Spotfy"]) == 0

    def test_different_merchants(self, capsys):
        assert _run(["match", "Hulu", "Zoom"]) == 1
        assert "Different merchants" in capsys.readouterr().out

    def test_uses_configured_rules(self, capsys, monkeypatch):
        # Fixture config allows edit distance 1 only
        monkeypatch.setenv("SUBSCAN_CONFIG_DIR", str(FIXTURE_CONFIG_DIR))
        assert _run(["match", "Hulu", "Halo"]) == 1
