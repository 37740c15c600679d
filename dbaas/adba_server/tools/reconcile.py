"""
Reconcile CLI tool for ADBA.

Finds and repairs drift between catalog.db and the tenant files left behind
by a crash between the two halves of a create or delete:
- catalog rows whose tenant file is missing
- tenant files that have no catalog row

Usage:
    adba-reconcile --data-dir <path> [--dry-run] [--json]

Invariants:
    - Works offline; do not run while a server uses the same data directory
    - --dry-run never modifies anything
    - Exit code 0 when the directory was (or now is) consistent

How to change safely:
    - Keep the JSON output stable; scripts parse it
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from ..config import StorageConfig
from ..errors import StorageUnavailableError
from ..store import CatalogStore, ReconcileReport, TenantEngine

logger = logging.getLogger(__name__)


async def run_reconcile(data_dir: str, dry_run: bool = False) -> ReconcileReport:
    """Reconcile one data directory.

    Args:
        data_dir: Directory holding catalog.db and tenant files
        dry_run: Only report drift

    Raises:
        StorageUnavailableError: If the catalog cannot be opened
    """
    path = Path(data_dir).expanduser()
    if not (path / StorageConfig.catalog_filename).exists():
        raise StorageUnavailableError(f"No catalog found in {path}")

    engine = TenantEngine(CatalogStore(path / StorageConfig.catalog_filename), path)
    try:
        await engine.initialize()
        return await engine.reconcile(dry_run=dry_run)
    finally:
        await engine.close()


def format_report(report: ReconcileReport) -> str:
    if report.clean:
        return "Catalog and data directory are consistent"

    verb = "Would remove" if report.dry_run else "Removed"
    lines = []
    for name in report.orphan_rows:
        lines.append(f"{verb} catalog row without file: {name}")
    for filename in report.orphan_files:
        lines.append(f"{verb} file without catalog row: {filename}")
    return "\n".join(lines)


def main(argv: list[str] | None = None) -> int:
    """CLI entry point for the reconcile tool."""
    parser = argparse.ArgumentParser(
        description="Repair drift between the ADBA catalog and tenant database files"
    )
    parser.add_argument("--data-dir", required=True, help="ADBA data directory")
    parser.add_argument("--dry-run", action="store_true", help="Don't make changes")
    parser.add_argument("--json", action="store_true", help="Print the report as JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    try:
        report = asyncio.run(run_reconcile(args.data_dir, dry_run=args.dry_run))
    except StorageUnavailableError as e:
        print(f"Reconcile failed: {e.message}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(report.to_dict(), indent=2, sort_keys=True))
    else:
        print(format_report(report))

    if report.dry_run and not report.clean:
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
