"""
Data model for the ingestion pipeline.

ArchiveMember identifies one unit of work from the remote listing.
DatasetStructure is only ever built by the resolver once thresholds pass.
UploadReport is returned by every sink invocation and never discarded.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from imagenet_ingest.errors import UploadPartialFailure


class Strategy(str, Enum):
    """How members are fetched relative to local disk capacity."""
    STREAMING = "streaming"
    BULK = "bulk"


class PipelineStage(str, Enum):
    """Orchestrator states, in the order a run moves through them."""
    LISTING = "listing"
    PLANNING = "planning"
    FETCHING = "fetching"
    EXTRACTING = "extracting"
    RESOLVING = "resolving"
    REORGANIZING = "reorganizing"
    UPLOADING = "uploading"
    CLEANUP = "cleanup"
    VERIFYING = "verifying"
    DONE = "done"


class RunOutcome(str, Enum):
    """Derived result of a run, recomputed at VERIFYING."""
    VERIFIED_SUCCESS = "verified_success"
    NO_DATA_PRODUCED = "no_data_produced"
    NO_MEMBERS_FOUND = "no_members_found"


@dataclass(frozen=True)
class ArchiveMember:
    """One named file within the remote dataset collection."""
    name: str
    declared_size: int = 0

    @property
    def basename(self) -> str:
        return self.name.rsplit('/', 1)[-1]


@dataclass(frozen=True)
class FetchResult:
    """Local copy of a fetched member and its measured size."""
    member: ArchiveMember
    local_path: Path
    measured_size: int

    @property
    def size_matches(self) -> bool:
        return self.measured_size == self.member.declared_size


@dataclass(frozen=True)
class DatasetStructure:
    """
    A validated train/val layout found inside an extraction.

    Attributes:
        root_path: Candidate directory the layout was found under
        training_subpath: Directory holding one subdirectory per class
        validation_subpath: Flat image pool or per-class subdirectories
        class_count: Class directories counted under training_subpath
        training_sample_count: Images inside the class directories
        validation_sample_count: Flat images plus images in subdirectories
    """
    root_path: Path
    training_subpath: Path
    validation_subpath: Path
    class_count: int
    training_sample_count: int
    validation_sample_count: int

    def to_dict(self) -> Dict:
        return {
            'root_path': str(self.root_path),
            'training_subpath': str(self.training_subpath),
            'validation_subpath': str(self.validation_subpath),
            'class_count': self.class_count,
            'training_sample_count': self.training_sample_count,
            'validation_sample_count': self.validation_sample_count,
        }


@dataclass
class UploadReport:
    """
    Outcome of one sink upload call.

    failures is the only record of what has to be retried by hand, so
    entries keep the local path and the stringified cause.
    """
    files_uploaded: int = 0
    bytes_uploaded: int = 0
    failures: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def files_attempted(self) -> int:
        return self.files_uploaded + len(self.failures)

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)

    def record_success(self, size: int):
        self.files_uploaded += 1
        self.bytes_uploaded += size

    def record_failure(self, path: str, cause: str):
        self.failures.append((path, cause))

    def merge(self, other: 'UploadReport') -> 'UploadReport':
        """Return a new report combining both."""
        return UploadReport(
            files_uploaded=self.files_uploaded + other.files_uploaded,
            bytes_uploaded=self.bytes_uploaded + other.bytes_uploaded,
            failures=list(self.failures) + list(other.failures),
        )

    def raise_for_failures(self):
        """Raise UploadPartialFailure when any file failed."""
        if self.failures:
            raise UploadPartialFailure(self)

    def to_dict(self) -> Dict:
        return {
            'files_uploaded': self.files_uploaded,
            'bytes_uploaded': self.bytes_uploaded,
            'failures': [{'path': p, 'cause': c} for p, c in self.failures],
        }


@dataclass
class PipelineState:
    """Counters that live for the duration of one orchestrator run."""
    members_total: int = 0
    members_processed: int = 0
    structures_found: int = 0
    strategy: Optional[Strategy] = None
    stage: PipelineStage = PipelineStage.LISTING
    raw_report: UploadReport = field(default_factory=UploadReport)
    canonical_report: UploadReport = field(default_factory=UploadReport)
    member_errors: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def canonical_upload_succeeded(self) -> bool:
        return self.canonical_report.files_uploaded > 0

    def record_error(self, member_name: str, error: Exception):
        self.member_errors.append((member_name, f"{type(error).__name__}: {error}"))
