"""
Capacity planning: decide between streaming and bulk processing.

The strategy is chosen once per run from local free space. A failed
measurement is treated as limited space, so the run streams.
"""

import logging
import shutil
from pathlib import Path
from typing import Optional

from imagenet_ingest.config import DEFAULT_SPACE_THRESHOLD, format_size
from imagenet_ingest.models import Strategy

logger = logging.getLogger(__name__)


def choose_strategy(
    free_bytes: Optional[int],
    threshold: int = DEFAULT_SPACE_THRESHOLD,
) -> Strategy:
    """Return BULK when free_bytes >= threshold, STREAMING otherwise.

    None (space unknown) maps to STREAMING.
    """
    if free_bytes is None:
        return Strategy.STREAMING
    if free_bytes >= threshold:
        return Strategy.BULK
    return Strategy.STREAMING


def measure_free_space(path) -> Optional[int]:
    """Free bytes on the filesystem holding path, or None if unreadable.

    Walks up to the nearest existing ancestor so the work directory does
    not need to exist yet.
    """
    probe = Path(path).expanduser().absolute()
    while not probe.exists() and probe != probe.parent:
        probe = probe.parent
    try:
        return shutil.disk_usage(probe).free
    except OSError as e:
        logger.warning("Could not check disk space at %s: %s", probe, e)
        return None


def plan_strategy(
    work_dir,
    threshold: int = DEFAULT_SPACE_THRESHOLD,
    override: Optional[int] = None,
) -> Strategy:
    """Measure (or take the override) and choose the run's strategy."""
    if override is not None:
        free_bytes = override
        logger.info("Available disk space (override): %s", format_size(free_bytes))
    else:
        free_bytes = measure_free_space(work_dir)
        if free_bytes is None:
            logger.warning("Disk space unknown, assuming limited space")
        else:
            logger.info("Available disk space: %s", format_size(free_bytes))

    strategy = choose_strategy(free_bytes, threshold)
    if strategy is Strategy.STREAMING:
        logger.info(
            "Limited disk space (< %s). Using streaming strategy", format_size(threshold)
        )
    else:
        logger.info("Sufficient disk space. Using bulk strategy")
    return strategy
