"""
Operator script: recompute the project storage counter from the object store.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from firebase_admin import initialize_app

from storage_quota.config import get_settings
from storage_quota.dependencies import get_quota_service
from storage_quota.errors import StorageQuotaError
from storage_quota.formatting import format_bytes

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Recalculate project storage usage")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only print the currently cached total",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    settings = get_settings()
    if settings.use_firebase:
        initialize_app()

    service = get_quota_service()
    cached = service.get_project_usage()
    logger.info("Cached project usage: %s (%d bytes)", format_bytes(cached), cached)
    if args.dry_run:
        return 0

    try:
        result = service.recalculate()
    except StorageQuotaError as exc:
        logger.error("Recalculation failed: %s", exc)
        return 1

    logger.info(
        "Recalculated: %s in %d files across %d users (drift %+d bytes)",
        format_bytes(result.total_bytes),
        result.total_files,
        result.user_count,
        result.total_bytes - cached,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
