#!/usr/bin/env python
"""
Purge authentication data past its retention window.

Can be run via:
- Cron: 0 3 * * * cd /path/to/backend && python scripts/cleanup_auth_data.py
- Manual: python scripts/cleanup_auth_data.py --dry-run

Runs the same jobs as the in-process scheduler. Useful when ENABLE_SCHEDULER
is off because several workers share one database.
"""

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from loguru import logger  # noqa: E402

from repositories.database import session_scope  # noqa: E402
from services.retention_service import RetentionService  # noqa: E402


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Delete expired login attempts, tokens, MFA data and audit records"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Count what would be deleted, then roll back",
    )
    args = parser.parse_args(argv)

    with session_scope() as db:
        results = RetentionService.run_all_cleanup_jobs(db, dry_run=args.dry_run)

    prefix = "[DRY RUN] Would delete" if args.dry_run else "Deleted"
    for job, result in results.items():
        logger.info(f"{prefix} {job}: {result}")

    failed = [job for job, result in results.items() if result is None]
    if failed:
        logger.error(f"Retention jobs failed: {', '.join(failed)}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
