"""
Remote listing sources.

A source enumerates archive members (name, size) and downloads one named
member into a local directory. KaggleCompetitionSource is the production
source; tests provide their own.
"""

import logging
from pathlib import Path
from typing import List, Optional, Sequence

from imagenet_ingest.models import ArchiveMember

logger = logging.getLogger(__name__)

# The API default is 20 files per request
LIST_PAGE_SIZE = 200


class RemoteListingSource:
    """Interface the pipeline needs from a remote dataset repository."""

    name = "remote"

    def list_members(self) -> List[ArchiveMember]:
        raise NotImplementedError

    def download(self, member_name: str, dest_dir: Path) -> Path:
        """Download one member into dest_dir and return its local path."""
        raise NotImplementedError


class KaggleCompetitionSource(RemoteListingSource):
    """Lists and downloads the files of a Kaggle competition."""

    def __init__(self, competition: str, api=None, page_size: int = LIST_PAGE_SIZE):
        self.competition = competition
        self.page_size = page_size
        self.name = f"kaggle:{competition}"
        self._api = api

    @property
    def api(self):
        if self._api is None:
            self._api = self._setup_kaggle_api()
        return self._api

    @staticmethod
    def _setup_kaggle_api():
        # Importing the kaggle package authenticates immediately, so defer it.
        from kaggle.api.kaggle_api_extended import KaggleApi
        api = KaggleApi()
        api.authenticate()
        logger.info("Kaggle API authenticated")
        return api

    def list_members(self) -> List[ArchiveMember]:
        members = []
        page_token = None
        while True:
            response = self.api.competition_list_files(
                self.competition, page_token=page_token, page_size=self.page_size
            )
            files = getattr(response, 'files', response) or []
            for ref in files:
                members.append(ArchiveMember(name=str(ref.name), declared_size=_file_size(ref)))
            page_token = getattr(response, 'next_page_token', None)
            if not page_token:
                break
        logger.info("Found %d files in competition %s", len(members), self.competition)
        return members

    def download(self, member_name: str, dest_dir: Path) -> Path:
        dest_dir = Path(dest_dir)
        self.api.competition_download_file(
            self.competition, member_name, path=str(dest_dir), force=True, quiet=True
        )
        local_path = locate_download(dest_dir, member_name)
        if local_path is None:
            raise FileNotFoundError(f"{member_name} not found in {dest_dir} after download")
        return local_path


def _file_size(ref) -> int:
    for attr in ('total_bytes', 'totalBytes', 'size'):
        value = getattr(ref, attr, None)
        if isinstance(value, int):
            return value
        if isinstance(value, str) and value.isdigit():
            return int(value)
    return 0


def locate_download(dest_dir: Path, member_name: str) -> Optional[Path]:
    """Find a downloaded member, which may have been zipped by the service."""
    basename = member_name.rsplit('/', 1)[-1]
    for candidate in (dest_dir / basename, dest_dir / f"{basename}.zip"):
        if candidate.is_file():
            return candidate
    return None


def select_members(
    members: Sequence[ArchiveMember],
    keywords: Sequence[str],
    min_size: int,
) -> List[ArchiveMember]:
    """
    Pick the members worth processing.

    Keyword matches (case-insensitive) win; otherwise members larger than
    min_size; otherwise every member. Listing order is kept.
    """
    lowered = [k.lower() for k in keywords]
    selected = [m for m in members if any(k in m.name.lower() for k in lowered)]
    if selected:
        logger.info("Main data files by name: %s", [m.name for m in selected])
        return selected

    selected = [m for m in members if m.declared_size > min_size]
    if selected:
        logger.info("No keyword matches; using large files: %s", [m.name for m in selected])
        return selected

    return list(members)
