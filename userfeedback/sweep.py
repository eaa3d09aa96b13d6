"""
Find stored objects that no feedback row references.

Deletion removes objects before rows, so an interrupted delete (or an upload
whose feedback was never submitted) leaves objects behind. Upload paths carry
their batch timestamp in milliseconds (`{dir}/{timestamp}/{name}`), which
lets the sweep skip batches that may still be in flight.
"""

from __future__ import annotations

import logging
import time
from typing import Iterable, Optional

logger = logging.getLogger(__name__)


def listing_prefix(feedback_dir: str) -> str:
    """Object-key prefix covering every upload batch; empty lists the whole bucket."""
    prefix = feedback_dir.strip("/")
    return f"{prefix}/" if prefix else ""


def batch_timestamp_ms(path: str, feedback_dir: str) -> Optional[int]:
    prefix = feedback_dir.strip("/")
    relative = path[len(prefix) + 1 :] if prefix else path
    folder = relative.split("/", 1)[0]
    return int(folder) if folder.isdigit() else None


def find_orphaned_paths(
    stored_paths: Iterable[str],
    referenced_paths: set[str],
    feedback_dir: str,
    grace_seconds: int = 86400,
    now: Optional[float] = None,
) -> list[str]:
    """
    Return stored paths that are unreferenced and older than the grace period.

    Paths without a recognisable batch timestamp are left alone.
    """
    now = time.time() if now is None else now
    cutoff_ms = int((now - grace_seconds) * 1000)
    orphans: list[str] = []
    for path in stored_paths:
        if path in referenced_paths:
            continue
        timestamp = batch_timestamp_ms(path, feedback_dir)
        if timestamp is None:
            logger.debug("Skipping %s: no batch timestamp", path)
            continue
        if timestamp > cutoff_ms:
            continue
        orphans.append(path)
    return orphans
