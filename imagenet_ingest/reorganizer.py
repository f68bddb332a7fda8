"""
Reorganization into the canonical train/ + val/ layout.

At most one canonical copy exists on disk at a time: any previous copy is
removed before the next is written. Sources are copied, never moved.
"""

import logging
import shutil
from pathlib import Path

from imagenet_ingest.errors import ReorganizeFailed
from imagenet_ingest.models import DatasetStructure
from imagenet_ingest.resolver import TRAIN_DIR, VAL_DIR

logger = logging.getLogger(__name__)


class Reorganizer:
    """Owns the single canonical directory at canonical_dir."""

    def __init__(self, canonical_dir: Path):
        self.canonical_dir = Path(canonical_dir)

    def reorganize(self, structure: DatasetStructure, member_name: str = "") -> Path:
        """Replace the canonical directory with a copy of structure.

        Raises:
            ReorganizeFailed: If removing the old copy or copying fails.
                Partial output is removed before raising.
        """
        member_name = member_name or str(structure.root_path)
        try:
            self.remove()
            self.canonical_dir.mkdir(parents=True)
            shutil.copytree(structure.training_subpath, self.canonical_dir / TRAIN_DIR)
            shutil.copytree(structure.validation_subpath, self.canonical_dir / VAL_DIR)
        except (OSError, shutil.Error) as e:
            shutil.rmtree(self.canonical_dir, ignore_errors=True)
            raise ReorganizeFailed(member_name, f"copy into {self.canonical_dir} failed: {e}") from e

        logger.info("Data organized for training at %s", self.canonical_dir)
        return self.canonical_dir

    def remove(self):
        """Delete the canonical directory if present."""
        if self.canonical_dir.exists():
            shutil.rmtree(self.canonical_dir)
            logger.debug("Removed previous canonical copy at %s", self.canonical_dir)
