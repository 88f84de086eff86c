"""CLI entry point for subscan.

Commands:
    subscan scan [--purchases FILE] [--emails FILE] [--json]
                                     Merge candidate exports and list results
    subscan match NAME_A NAME_B      Check whether two names are one merchant
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

logger = logging.getLogger(__name__)


def _setup_logging() -> None:
    """Configure logging based on SUBSCAN_LOG_LEVEL env var."""
    level = os.environ.get("SUBSCAN_LOG_LEVEL", "WARNING").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _get_settings():
    """Load scan settings from the config directory, or use defaults."""
    from subscan.config import Config, ScanSettings

    config_dir = Path(os.environ.get("SUBSCAN_CONFIG_DIR", "config"))
    if not config_dir.is_dir():
        logger.info("No config directory at %s, using defaults", config_dir)
        return ScanSettings()
    return Config(config_dir=config_dir).settings


# ── Command handlers ─────────────────────────────────────


def cmd_scan(args: argparse.Namespace) -> int:
    """Run a scan over exported candidate files and print the ranked list."""
    from subscan.reconcile.billing import monthly_equivalent, total_monthly
    from subscan.scan.orchestrator import ScanOptions, ScanOrchestrator
    from subscan.sources.json_file import JsonFileSource

    if args.purchases is None and args.emails is None:
        print("Error: pass --purchases and/or --emails.")
        return 1

    orchestrator = ScanOrchestrator(
        purchase_source=(
            JsonFileSource(args.purchases, name="purchase_history")
            if args.purchases else None
        ),
        email_source=JsonFileSource(args.emails, name="email") if args.emails else None,
        settings=_get_settings(),
    )
    result = asyncio.run(orchestrator.start_scan(ScanOptions()))
    if result is None:
        print("Error: scan did not complete.")
        return 1

    if args.json:
        print(json.dumps([c.to_dict() for c in result.candidates], indent=2))
        return 0 if result.error_message is None else 2

    if result.error_message:
        print(f"Warning: {result.error_message}")

    if not result.candidates:
        print("No subscriptions found.")
        return 0

    print(f"{'Confidence':<11}{'Name':<32}{'Price':>14}{'Monthly':>11}  Source")
    print("-" * 80)
    for c in result.candidates:
        monthly = monthly_equivalent(c.price, c.billing_cycle)
        print(
            f"{c.confidence.value:<11}{c.name[:31]:<32}{c.price_with_cycle:>14}"
            f"{monthly:>11.2f}  {c.origin.value}"
        )

    monthly_total = total_monthly(result.candidates)
    print()
    print(
        f"{len(result.candidates)} subscription(s) from {result.items_scanned} "
        f"item(s) in {result.duration_seconds:.2f}s "
        f"({result.high_confidence_count} likely, "
        f"{result.maybe_count} maybe)"
    )
    print(f"Estimated spend: ${monthly_total:,.2f}/mo, ${monthly_total * 12:,.2f}/yr")
    return 0 if result.error_message is None else 2


def cmd_match(args: argparse.Namespace) -> int:
    """Show normalized keys and whether two names collapse to one merchant."""
    from subscan.reconcile.merchant_match import levenshtein_distance

    rules = _get_settings().matching
    key_a = rules.normalize(args.name_a)
    key_b = rules.normalize(args.name_b)
    same = rules.matches(key_a, key_b)

    print(f"{args.name_a!r} -> {key_a!r}")
    print(f"{args.name_b!r} -> {key_b!r}")
    print(f"Edit distance: {levenshtein_distance(key_a, key_b)}")
    print("Same merchant" if same else "Different merchants")
    return 0 if same else 1


# ── Main entry point ─────────────────────────────────────


_COMMANDS = {
    "scan": cmd_scan,
    "match": cmd_match,
}


def main(argv: list[str] | None = None):
    _setup_logging()

    parser = argparse.ArgumentParser(
        prog="subscan",
        description="Subscription detection and reconciliation",
    )
    subparsers = parser.add_subparsers(dest="command")

    # scan
    scan_p = subparsers.add_parser("scan", help="Merge and rank candidate exports")
    scan_p.add_argument("--purchases", type=Path, help="Purchase-history candidates (JSON)")
    scan_p.add_argument("--emails", type=Path, help="Email-derived candidates (JSON)")
    scan_p.add_argument("--json", action="store_true", help="Print results as JSON")

    # match
    match_p = subparsers.add_parser("match", help="Compare two merchant names")
    match_p.add_argument("name_a", help="First merchant name")
    match_p.add_argument("name_b", help="Second merchant name")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    handler = _COMMANDS.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}")
        sys.exit(1)

    sys.exit(handler(args))


if __name__ == "__main__":
    main()
