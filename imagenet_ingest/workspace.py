"""Scoped local directories that are always torn down."""

import logging
import shutil
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


class LocalWorkspace:
    """
    A directory owning every file created while processing one unit of work.

    Used as a context manager; the directory is removed recursively on
    exit whether or not the body raised.

    Example:
        >>> with LocalWorkspace(work_dir, label="train.zip") as ws:
        ...     archive = fetcher.fetch(member, ws.path)
    """

    def __init__(self, parent, label: str = "member"):
        self.parent = Path(parent)
        self.label = label
        self.path = None

    def __enter__(self) -> 'LocalWorkspace':
        self.parent.mkdir(parents=True, exist_ok=True)
        safe_label = "".join(c if c.isalnum() or c in '-_.' else '_' for c in self.label)
        self.path = Path(tempfile.mkdtemp(prefix=f"{safe_label}-", dir=self.parent))
        logger.debug("Workspace created: %s", self.path)
        return self

    def __exit__(self, exc_type, exc, tb):
        self.cleanup()
        return False

    def cleanup(self):
        if self.path is None:
            return
        shutil.rmtree(self.path, ignore_errors=True)
        if self.path.exists():
            logger.warning("Workspace %s could not be fully removed", self.path)
        else:
            logger.info("Cleaned up workspace for %s", self.label)
        self.path = None
