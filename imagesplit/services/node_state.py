"""
Node state transitions for split jobs.

Applies split outcomes to a job (rects, source size, output ports) and
migrates legacy node payloads that still embed cropped pixel data.
"""

import logging
from datetime import datetime
from typing import Any

from imagesplit.schemas.job import Job, JobStatus
from imagesplit.schemas.split import SplitRectModel
from imagesplit.splitting import SplitConfig, SplitResult, reconcile_output_count

logger = logging.getLogger(__name__)

RECT_KEYS = ("index", "x", "y", "width", "height")


def apply_split_result(job: Job, result: SplitResult, config: SplitConfig | None = None) -> Job:
    """
    Record a successful split on a job.

    Output ports grow to cover every rect but never shrink.

    Args:
        job: Job to update in place.
        result: Split result.
        config: Split configuration for the port bounds.

    Returns:
        The updated job.
    """
    job.status = JobStatus.COMPLETED
    job.updated_at = datetime.utcnow()
    job.rects = [SplitRectModel.from_rect(rect) for rect in result.rects]
    job.source_width = result.source_width
    job.source_height = result.source_height
    job.method = result.method
    job.output_count = reconcile_output_count(job.output_count, len(result.rects), config)
    job.error = None
    return job


def apply_split_failure(job: Job, error: str) -> Job:
    """
    Record a failed split on a job.

    A failed split never keeps stale geometry: rects and source size are
    cleared, output ports are left as they were.
    """
    job.status = JobStatus.FAILED
    job.updated_at = datetime.utcnow()
    job.rects = []
    job.source_width = None
    job.source_height = None
    job.method = None
    job.error = error
    return job


def migrate_legacy_node_data(data: dict[str, Any], max_output_count: int = 50) -> dict[str, Any]:
    """
    Convert a legacy node payload to geometry-only state.

    Older nodes persisted ``splitImages`` items carrying both the crop
    geometry and the cropped pixels (``imageData``), plus per-port
    ``image1..imageN`` copies. Only the geometry is kept, as ``splitRects``.
    Existing ``splitRects`` win over the legacy list.

    Args:
        data: Persisted node data.
        max_output_count: Highest port index that may carry a legacy image.

    Returns:
        A new dict without embedded pixel payloads.
    """
    migrated = {
        key: value
        for key, value in data.items()
        if key != "splitImages" and not _is_port_image_key(key, max_output_count)
    }

    rects = data.get("splitRects")
    if isinstance(rects, list) and rects:
        return migrated

    legacy = data.get("splitImages")
    if not isinstance(legacy, list) or not legacy:
        return migrated

    migrated["splitRects"] = [
        {key: item[key] for key in RECT_KEYS}
        for item in legacy
        if isinstance(item, dict) and all(key in item for key in RECT_KEYS)
    ]

    dropped = len(legacy) - len(migrated["splitRects"])
    if dropped:
        logger.warning(f"Dropped {dropped} legacy split items without geometry")

    return migrated


def _is_port_image_key(key: str, max_output_count: int) -> bool:
    """Match ``image1`` .. ``image{max_output_count}``."""
    if not key.startswith("image"):
        return False
    suffix = key[len("image"):]
    return suffix.isdigit() and 1 <= int(suffix) <= max_output_count
