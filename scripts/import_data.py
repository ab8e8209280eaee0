#!/usr/bin/env python3
"""Replace all deal desk data with the contents of a backup document.

Usage:
    uv run python scripts/import_data.py --file ./backups/sales-app-backup-2026-02-10.json
    uv run python scripts/import_data.py --file ./backups/sales-app-backup-2026-02-10.json --yes

Safety check: prompts for confirmation before overwriting (bypass with --yes).
Each collection is cleared and reloaded; an interrupted import can leave a
collection empty, so keep the backup file until the import reports success.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from pathlib import Path

# Ensure project root is on sys.path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))

import structlog  # noqa: E402

from src.dealdesk.app import DealDeskApp  # noqa: E402
from src.dealdesk.config import Settings, StoreBackend  # noqa: E402
from src.dealdesk.errors import ImportDocumentError  # noqa: E402
from src.dealdesk.logging import configure_structlog  # noqa: E402
from src.dealdesk.transfer import load_snapshot  # noqa: E402

logger = structlog.get_logger(__name__)


def confirm_prompt() -> bool:
    answer = input("This will replace all current data. Are you sure you want to import? [y/N] ")
    return answer.strip().lower() in ("y", "yes")


async def main_async(args: argparse.Namespace) -> int:
    overrides = {"STORE_BACKEND": StoreBackend(args.backend)} if args.backend else {}
    settings = Settings(**overrides)
    configure_structlog(settings)

    try:
        snapshot = load_snapshot(Path(args.file).read_bytes())
    except (OSError, ImportDocumentError) as exc:
        logger.error("import.document_invalid", file=args.file, error=str(exc))
        print("Error importing data. Please make sure the file is valid.")
        return 1

    app = DealDeskApp.create(settings)
    try:
        await app.startup()
        confirm = (lambda: True) if args.yes else confirm_prompt
        result = await app.transfer.import_snapshot(snapshot, confirm)
    finally:
        await app.close()

    if not result.imported:
        print("Import cancelled.")
        return 1
    print(f"\nImport complete: {result.rows} row(s) across {result.collections} collection(s)")
    if result.failed:
        print(f"  FAILED: {', '.join(result.failed)}")
        return 1
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Import deal desk data from a backup file")
    parser.add_argument("--file", required=True, help="Backup JSON produced by export_data.py")
    parser.add_argument("--yes", action="store_true", help="Skip the confirmation prompt")
    parser.add_argument(
        "--backend",
        choices=[b.value for b in StoreBackend],
        help="Override STORE_BACKEND",
    )
    args = parser.parse_args()

    sys.exit(asyncio.run(main_async(args)))


if __name__ == "__main__":
    main()
