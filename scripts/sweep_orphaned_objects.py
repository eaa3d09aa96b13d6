"""
Delete uploaded objects that no feedback record references.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from userfeedback.config import get_settings
from userfeedback.dependencies import build_services
from userfeedback.storage import delete_objects
from userfeedback.sweep import find_orphaned_paths, listing_prefix

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Orphaned upload sweeper")
    parser.add_argument(
        "--grace-seconds",
        type=int,
        default=86400,
        help="Leave upload batches younger than this alone",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only report what would be deleted",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )

    settings = get_settings()
    services = build_services(settings)
    feedback_dir = settings.oss.dir_feedback
    try:
        stored = services.storage.list_objects(listing_prefix(feedback_dir))
        referenced = services.store.list_file_paths()
        orphans = find_orphaned_paths(
            stored, referenced, feedback_dir, grace_seconds=args.grace_seconds
        )
        logger.info(
            "Found %d stored object(s), %d orphaned", len(stored), len(orphans)
        )
        if args.dry_run or not orphans:
            for path in orphans:
                logger.info("Orphaned: %s", path)
            return 0
        delete_objects(services.storage, orphans)
    finally:
        services.store.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
