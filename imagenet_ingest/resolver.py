"""
Structure resolution: locate and validate the train/val layout.

Archive extraction does not guarantee where the dataset lands, so a fixed,
ordered list of candidate directories is probed, most archive-specific
first. The first candidate whose train/ and val/ both pass the thresholds
wins; later candidates are never considered once one passes.

Thresholds:
    train/ needs more than 900 class directories (the full set is 1000)
    val/ needs more than 10,000 flat images OR more than 900 subdirectories
"""

import logging
import os
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from imagenet_ingest.errors import StructureNotFound
from imagenet_ingest.models import DatasetStructure

logger = logging.getLogger(__name__)

CANDIDATE_PATHS = (
    "ILSVRC/Data/CLS-LOC",
    "ILSVRC2012",
    "ILSVRC",
    "Data/CLS-LOC",
    "Data",
    ".",
)

TRAIN_DIR = "train"
VAL_DIR = "val"

# Case-sensitive: '.jpeg' and '.JPG' do not match.
IMAGE_EXTENSIONS = ('.JPEG', '.jpg', '.png')

MIN_TRAIN_CLASSES = 900
MIN_VAL_IMAGES = 10000
MIN_VAL_SUBDIRS = 900


def is_image(name: str) -> bool:
    return name.endswith(IMAGE_EXTENSIONS)


def _scan(path: Path) -> Tuple[List[str], int]:
    """Return (subdirectory names, flat image count) for path."""
    subdirs = []
    images = 0
    with os.scandir(path) as entries:
        for entry in entries:
            if entry.name.startswith('.'):
                continue
            if entry.is_dir():
                subdirs.append(entry.name)
            elif entry.is_file() and is_image(entry.name):
                images += 1
    return subdirs, images


def count_images(path: Path) -> int:
    """Count image files directly inside path."""
    return _scan(path)[1]


class StructureResolver:
    """Finds the first candidate directory holding a valid train/val split."""

    def __init__(
        self,
        candidates: Sequence[str] = CANDIDATE_PATHS,
        min_train_classes: int = MIN_TRAIN_CLASSES,
        min_val_images: int = MIN_VAL_IMAGES,
        min_val_subdirs: int = MIN_VAL_SUBDIRS,
    ):
        self.candidates = list(candidates)
        self.min_train_classes = min_train_classes
        self.min_val_images = min_val_images
        self.min_val_subdirs = min_val_subdirs

    def resolve(self, root: Path, member_name: str = "") -> DatasetStructure:
        """Return the first valid DatasetStructure under root.

        Raises:
            StructureNotFound: If no candidate passes both checks
        """
        root = Path(root)
        tried = []
        for candidate in self.candidates:
            structure, reason = self.evaluate(root, candidate)
            if structure is not None:
                logger.info(
                    "Valid structure at %s: %d classes, %d training samples, "
                    "%d validation samples",
                    candidate, structure.class_count,
                    structure.training_sample_count, structure.validation_sample_count,
                )
                return structure
            logger.debug("Candidate %s rejected: %s", candidate, reason)
            tried.append((candidate, reason))
        raise StructureNotFound(member_name or str(root), tried)

    def evaluate(self, root: Path, candidate: str) -> Tuple[Optional[DatasetStructure], str]:
        """Check one candidate. Returns (structure, '') or (None, reason)."""
        base = root / candidate
        if not base.is_dir():
            return None, "missing"
        train_path = base / TRAIN_DIR
        val_path = base / VAL_DIR
        if not train_path.is_dir() or not val_path.is_dir():
            return None, "no train/ and val/ pair"

        class_dirs, _ = _scan(train_path)
        logger.info("Checking %s: %d training classes", candidate, len(class_dirs))
        if len(class_dirs) <= self.min_train_classes:
            return None, (
                f"train has {len(class_dirs)} class dirs, "
                f"need more than {self.min_train_classes}"
            )

        val_subdirs, val_images = _scan(val_path)
        logger.info(
            "Checking %s: %d validation images, %d validation subdirs",
            candidate, val_images, len(val_subdirs),
        )
        if val_images <= self.min_val_images and len(val_subdirs) <= self.min_val_subdirs:
            return None, (
                f"val has {val_images} images and {len(val_subdirs)} subdirs, "
                f"need more than {self.min_val_images} images "
                f"or more than {self.min_val_subdirs} subdirs"
            )

        training_samples = sum(count_images(train_path / d) for d in class_dirs)
        validation_samples = val_images + sum(count_images(val_path / d) for d in val_subdirs)

        return DatasetStructure(
            root_path=base,
            training_subpath=train_path,
            validation_subpath=val_path,
            class_count=len(class_dirs),
            training_sample_count=training_samples,
            validation_sample_count=validation_samples,
        ), ""


def describe_tree(
    root: Path, max_depth: int = 3, max_files: int = 5, max_dirs: int = 10
) -> List[str]:
    """Indented listing of root for diagnosing unexpected layouts."""
    root = Path(root)
    lines = []

    def walk(path: Path, depth: int):
        try:
            entries = sorted(os.scandir(path), key=lambda e: e.name)
        except OSError as e:
            lines.append(f"{'  ' * depth}<unreadable: {e}>")
            return
        dirs = [e for e in entries if e.is_dir()]
        files = [e for e in entries if not e.is_dir()]
        for entry in dirs[:max_dirs]:
            lines.append(f"{'  ' * depth}{entry.name}/")
            if depth + 1 < max_depth:
                walk(Path(entry.path), depth + 1)
        if len(dirs) > max_dirs:
            lines.append(f"{'  ' * depth}... and {len(dirs) - max_dirs} more directories")
        for entry in files[:max_files]:
            lines.append(f"{'  ' * depth}{entry.name}")
        if len(files) > max_files:
            lines.append(f"{'  ' * depth}... and {len(files) - max_files} more files")

    walk(root, 0)
    return lines
