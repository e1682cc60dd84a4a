#!/usr/bin/env python3
"""CLI script to run a sync outside the HTTP server.

Usage:
    uv run python scripts/run_sync.py migrate
    uv run python scripts/run_sync.py mirror
    uv run python scripts/run_sync.py migrate --max-id 100 --fail-on-errors

Reads HUBSPOT_SOURCE_TOKEN, HUBSPOT_MIRROR_TOKEN and the other settings from
the environment or the project's .env file. Prints the run summary as JSON.
Exit code 1 when the run fails fatally (or, with --fail-on-errors, when any
record failed).
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

# Ensure project root is on sys.path so we can import src.crm_sync
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

# Load .env from project root
load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))


async def run(mode: str, max_id: int | None, fail_on_errors: bool) -> int:
    """Build the engine, run one sync, print its summary. Returns the exit code."""
    from src.crm_sync.api.middleware.logging import configure_structlog
    from src.crm_sync.config import get_settings
    from src.crm_sync.sync.errors import CatalogFetchError, SourceFetchError
    from src.crm_sync.sync.factory import build_sync_services

    settings = get_settings()
    if max_id is not None:
        settings = settings.model_copy(update={"CATALOG_MAX_ID": max_id})
    configure_structlog()

    services = build_sync_services(settings)
    try:
        if mode == "migrate":
            summary = await services.orchestrator.run_full_sync()
        else:
            summary = await services.mirror.run_mirror_sync()
    except (CatalogFetchError, SourceFetchError) as exc:
        print(f"Sync failed: {exc}", file=sys.stderr)
        return 1
    finally:
        await services.aclose()

    print(summary.model_dump_json(indent=2))
    failed = summary.contacts_failed + summary.companies_failed + summary.associations_failed
    return 1 if fail_on_errors and failed else 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Run a catalog migration or mirror sync")
    parser.add_argument("mode", choices=["migrate", "mirror"], help="Which sync to run")
    parser.add_argument("--max-id", type=int, default=None, help="Override CATALOG_MAX_ID")
    parser.add_argument(
        "--fail-on-errors",
        action="store_true",
        help="Exit non-zero when any record failed",
    )
    args = parser.parse_args()

    if args.max_id is not None and args.mode != "migrate":
        parser.error("--max-id only applies to migrate")

    sys.exit(asyncio.run(run(args.mode, args.max_id, args.fail_on_errors)))


if __name__ == "__main__":
    main()
