"""
Archive fetching and extraction.

fetch() downloads one member into a workspace with fail-and-skip
semantics: no retries, a FetchFailed on any transport error. Sizes are
compared against the listing as a soft check only.

extract() unpacks zip and tar members in place.
"""

import logging
import tarfile
import zipfile
from pathlib import Path
from typing import Optional

from imagenet_ingest.config import format_size
from imagenet_ingest.errors import ExtractFailed, FetchFailed
from imagenet_ingest.listing import RemoteListingSource
from imagenet_ingest.models import ArchiveMember, FetchResult

logger = logging.getLogger(__name__)

ZIP_SUFFIXES = ('.zip',)
TAR_SUFFIXES = ('.tar', '.tar.gz', '.tgz', '.tar.bz2', '.tar.xz')


class ArchiveFetcher:
    """Retrieves archive members from a RemoteListingSource."""

    def __init__(self, source: RemoteListingSource):
        self.source = source

    def fetch(self, member: ArchiveMember, dest_dir: Path) -> FetchResult:
        """Download member into dest_dir.

        Raises:
            FetchFailed: If the download fails or leaves no file behind
        """
        dest_dir = Path(dest_dir)
        logger.info("Downloading %s (%s declared)", member.name, format_size(member.declared_size))
        try:
            dest_dir.mkdir(parents=True, exist_ok=True)
            local_path = Path(self.source.download(member.name, dest_dir))
            measured = local_path.stat().st_size
        except Exception as e:
            raise FetchFailed(member.name, str(e)) from e

        result = FetchResult(member=member, local_path=local_path, measured_size=measured)
        if member.declared_size and not result.size_matches:
            logger.warning(
                "Size mismatch for %s: listed %d bytes, downloaded %d bytes",
                member.name, member.declared_size, measured,
            )
        logger.info("Downloaded %s (%s)", member.name, format_size(measured))
        return result


def is_archive(path: Path) -> bool:
    name = Path(path).name.lower()
    return name.endswith(ZIP_SUFFIXES) or name.endswith(TAR_SUFFIXES)


def extract(archive_path: Path, dest_dir: Path, member_name: Optional[str] = None) -> Path:
    """Extract a zip or tar archive into dest_dir.

    Raises:
        ExtractFailed: On corrupt archives, unsupported formats, or entries
            that would land outside dest_dir
    """
    archive_path = Path(archive_path)
    dest_dir = Path(dest_dir)
    member_name = member_name or archive_path.name
    name = archive_path.name.lower()

    logger.info("Extracting %s", archive_path.name)
    try:
        dest_dir.mkdir(parents=True, exist_ok=True)
        if name.endswith(ZIP_SUFFIXES):
            with zipfile.ZipFile(archive_path, 'r') as zf:
                _check_entries(zf.namelist(), dest_dir, member_name)
                zf.extractall(dest_dir)
        elif name.endswith(TAR_SUFFIXES):
            with tarfile.open(archive_path, 'r:*') as tar:
                entries = tar.getmembers()
                _check_entries([e.name for e in entries], dest_dir, member_name)
                for entry in entries:
                    if entry.issym() or entry.islnk():
                        raise ExtractFailed(member_name, f"link entry refused: {entry.name}")
                tar.extractall(dest_dir)
        else:
            raise ExtractFailed(member_name, f"unsupported archive type: {archive_path.name}")
    except ExtractFailed:
        raise
    except (zipfile.BadZipFile, tarfile.TarError, EOFError, OSError) as e:
        raise ExtractFailed(member_name, f"corrupt or unreadable archive: {e}") from e
    return dest_dir


def _check_entries(names, dest_dir: Path, member_name: str):
    root = dest_dir.resolve()
    for entry in names:
        target = (root / entry).resolve()
        if target != root and root not in target.parents:
            raise ExtractFailed(member_name, f"entry escapes extraction directory: {entry}")
