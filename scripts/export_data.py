#!/usr/bin/env python3
"""Export every collection to a single JSON backup document.

Usage:
    uv run python scripts/export_data.py --output ./backups/
    uv run python scripts/export_data.py --output ./backups/ --backend memory

Writes sales-app-backup-YYYY-MM-DD.json containing all rows, the selected
deal identity, and the export timestamp.

Reads SUPABASE_URL / SUPABASE_KEY / STORE_BACKEND from environment or .env file.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

# Ensure project root is on sys.path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))

import structlog  # noqa: E402

from src.dealdesk.app import DealDeskApp  # noqa: E402
from src.dealdesk.config import Settings, StoreBackend  # noqa: E402
from src.dealdesk.logging import configure_structlog  # noqa: E402

logger = structlog.get_logger(__name__)


async def main_async(args: argparse.Namespace) -> int:
    overrides = {"STORE_BACKEND": StoreBackend(args.backend)} if args.backend else {}
    settings = Settings(**overrides)
    configure_structlog(settings)

    app = DealDeskApp.create(settings)
    try:
        await app.startup()
        empty = [c.value for c in app.cache.collections if not app.cache.read(c)]
        path = app.transfer.write_snapshot(args.output)
    finally:
        await app.close()

    snapshot_rows = sum(len(app.cache.read(c)) for c in app.cache.collections)
    logger.info("export.complete", path=str(path), rows=snapshot_rows, empty=empty)
    print(f"\nExport complete: {snapshot_rows} row(s) -> {path}")
    if empty:
        print(f"  empty collections: {', '.join(empty)}")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Export all deal desk data")
    parser.add_argument("--output", required=True, help="Directory for the backup file")
    parser.add_argument(
        "--backend",
        choices=[b.value for b in StoreBackend],
        help="Override STORE_BACKEND",
    )
    args = parser.parse_args()

    sys.exit(asyncio.run(main_async(args)))


if __name__ == "__main__":
    main()
