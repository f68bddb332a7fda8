"""Exception classes for the ingestion pipeline."""

from typing import List, Optional, Tuple


class IngestError(Exception):
    """Base exception for all ingestion errors."""
    pass


class ConfigError(IngestError):
    """Configuration is incomplete or storage is not reachable.

    Raised before any member is processed. Fatal to the run.
    """
    pass


class NoMembersFound(IngestError):
    """The remote listing was empty or could not be obtained.

    The only error that terminates a run before VERIFYING.
    """
    pass


class MemberError(IngestError):
    """Failure local to one archive member. Never fatal to the run."""

    def __init__(self, member_name: str, message: str):
        self.member_name = member_name
        super().__init__(f"{member_name}: {message}")


class FetchFailed(MemberError):
    """Transport failure while downloading a member.

    The member is skipped; the next one is attempted.
    """
    pass


class ExtractFailed(MemberError):
    """Archive is corrupt, truncated, or tries to write outside the workspace."""
    pass


class StructureNotFound(MemberError):
    """No candidate path held a train/val layout meeting the thresholds.

    Expected for members holding labels, metadata, or partial shards.

    Attributes:
        tried: (candidate, reason) pair for every candidate evaluated
    """

    def __init__(self, member_name: str, tried: Optional[List[Tuple[str, str]]] = None):
        self.tried = list(tried or [])
        detail = "; ".join(f"{c} ({r})" for c, r in self.tried) or "no candidates"
        super().__init__(member_name, f"no valid dataset structure. Tried: {detail}")


class ReorganizeFailed(MemberError):
    """Copying into the canonical layout failed (e.g. disk exhausted)."""
    pass


class UploadPartialFailure(IngestError):
    """Some files failed within an otherwise completed upload.

    Uploaded files are kept. report.failures lists what must be retried.
    """

    def __init__(self, report):
        self.report = report
        super().__init__(
            f"{len(report.failures)} file(s) failed to upload, "
            f"{report.files_uploaded} succeeded"
        )
