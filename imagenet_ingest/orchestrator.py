"""
Pipeline orchestrator.

Drives LISTING -> PLANNING -> per member {FETCHING -> EXTRACTING ->
RESOLVING -> (REORGANIZING -> UPLOADING)? -> CLEANUP} -> VERIFYING -> DONE.

Processing is strictly sequential. Member-local failures are logged and
the run moves on; only an empty or unavailable listing stops it. CLEANUP
runs for every member on every exit path. Whether the run succeeded is
derived at VERIFYING from whether any canonical upload landed.
"""

import logging
import time
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from imagenet_ingest.capacity import plan_strategy
from imagenet_ingest.config import IngestConfig, format_size
from imagenet_ingest.errors import (
    MemberError,
    NoMembersFound,
    StructureNotFound,
    UploadPartialFailure,
)
from imagenet_ingest.fetcher import ArchiveFetcher, extract, is_archive
from imagenet_ingest.listing import RemoteListingSource, select_members
from imagenet_ingest.models import (
    ArchiveMember,
    FetchResult,
    PipelineStage,
    PipelineState,
    RunOutcome,
    Strategy,
)
from imagenet_ingest.reorganizer import Reorganizer
from imagenet_ingest.reporting import (
    COMPLETION_MARKER_KEY,
    DATASET_INFO_KEY,
    build_completion_marker,
    build_dataset_info,
    log_summary,
)
from imagenet_ingest.resolver import TRAIN_DIR, VAL_DIR, StructureResolver, describe_tree
from imagenet_ingest.sink import S3Sink
from imagenet_ingest.workspace import LocalWorkspace

logger = logging.getLogger(__name__)

RAW_PREFIX = "raw"
DOWNLOAD_DIR = "download"
EXTRACT_DIR = "extracted"


class PipelineOrchestrator:
    """
    Runs one ingestion pass from a remote listing into object storage.

    Args:
        config: Run configuration
        source: Remote listing source to enumerate and download from
        sink: Object storage sink for raw backups and canonical data
        resolver: Structure resolver (defaults to the standard candidates)
        on_complete: Called with the RunOutcome once DONE is reached
    """

    def __init__(
        self,
        config: IngestConfig,
        source: RemoteListingSource,
        sink: S3Sink,
        resolver: Optional[StructureResolver] = None,
        on_complete: Optional[Callable[[RunOutcome], None]] = None,
    ):
        self.config = config
        self.source = source
        self.sink = sink
        self.fetcher = ArchiveFetcher(source)
        self.resolver = resolver or StructureResolver()
        self.reorganizer = Reorganizer(Path(config.work_dir) / config.canonical_name)
        self.on_complete = on_complete
        self.state = PipelineState()

    @property
    def members_dir(self) -> Path:
        return Path(self.config.work_dir) / "members"

    def _enter(self, stage: PipelineStage, detail: str = ""):
        self.state.stage = stage
        logger.debug("State -> %s %s", stage.value.upper(), detail)

    # ------------------------------------------------------------------
    # LISTING / PLANNING
    # ------------------------------------------------------------------

    def list_members(self) -> List[ArchiveMember]:
        """
        Raises:
            NoMembersFound: If the listing fails or nothing is selected
        """
        self._enter(PipelineStage.LISTING)
        logger.info("Listing members of %s", self.source.name)
        try:
            members = self.source.list_members()
        except Exception as e:
            raise NoMembersFound(f"Could not list {self.source.name}: {e}") from e

        selected = select_members(members, self.config.member_keywords, self.config.min_member_size)
        if not selected:
            raise NoMembersFound(f"No archive members found in {self.source.name}")
        self.state.members_total = len(selected)
        return selected

    def plan(self) -> Tuple[List[ArchiveMember], Strategy]:
        """LISTING then PLANNING. The strategy is fixed for the whole run."""
        members = self.list_members()
        self._enter(PipelineStage.PLANNING)
        strategy = plan_strategy(
            self.config.work_dir,
            threshold=self.config.space_threshold,
            override=self.config.free_space_override,
        )
        self.state.strategy = strategy
        total = sum(m.declared_size for m in members)
        logger.info(
            "Plan: %d member(s), %s declared, %s strategy",
            len(members), format_size(total), strategy.value,
        )
        return members, strategy

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self) -> RunOutcome:
        """Process every member and verify.

        Raises:
            NoMembersFound: From LISTING; nothing else aborts the run
        """
        start = time.time()
        members, strategy = self.plan()

        if strategy is Strategy.STREAMING:
            for index, member in enumerate(members, 1):
                logger.info("Processing %d/%d: %s", index, len(members), member.name)
                self.process_member(member)
        else:
            self.process_batch(members)

        outcome = self.verify()
        self._enter(PipelineStage.DONE)
        log_summary(self.state, outcome, time.time() - start)
        self._signal_complete(outcome)
        return outcome

    def process_member(self, member: ArchiveMember):
        """Streaming unit: fetch, back up, extract, resolve, upload, clean up."""
        self.state.members_processed += 1
        with LocalWorkspace(self.members_dir, label=member.basename) as workspace:
            try:
                fetched = self._fetch(member, workspace.path / DOWNLOAD_DIR)
                if not is_archive(fetched.local_path):
                    logger.info("%s is not an archive, raw backup only", member.name)
                    return
                extracted = workspace.path / EXTRACT_DIR
                self._extract(fetched, extracted)
                # Archive no longer needed once unpacked
                fetched.local_path.unlink()
                self._resolve_and_upload(extracted, member.name)
            except MemberError as e:
                self._member_failed(member.name, e)
            except Exception as e:
                logger.exception("Unexpected error processing %s", member.name)
                self.state.record_error(member.name, e)
            finally:
                self._cleanup(member.name)

    def process_batch(self, members: List[ArchiveMember]):
        """Bulk unit: fetch everything, extract everything, then one pass."""
        with LocalWorkspace(self.members_dir, label="bulk") as workspace:
            extracted = workspace.path / EXTRACT_DIR
            try:
                fetched_all = []
                for index, member in enumerate(members):
                    self.state.members_processed += 1
                    # One directory per member so equal basenames never collide
                    dest_dir = workspace.path / DOWNLOAD_DIR / str(index)
                    try:
                        fetched_all.append(self._fetch(member, dest_dir))
                    except MemberError as e:
                        self._member_failed(member.name, e)

                unpacked = 0
                for fetched in fetched_all:
                    if not is_archive(fetched.local_path):
                        continue
                    try:
                        self._extract(fetched, extracted)
                        unpacked += 1
                    except MemberError as e:
                        self._member_failed(fetched.member.name, e)

                if unpacked:
                    self._resolve_and_upload(extracted, "batch")
                else:
                    logger.warning("No archives were extracted; nothing to resolve")
            except MemberError as e:
                self._member_failed("batch", e)
            except Exception as e:
                logger.exception("Unexpected error processing batch")
                self.state.record_error("batch", e)
            finally:
                self._cleanup("batch")

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _fetch(self, member: ArchiveMember, dest_dir: Path) -> FetchResult:
        self._enter(PipelineStage.FETCHING, member.name)
        fetched = self.fetcher.fetch(member, dest_dir)

        # Raw backup happens before extraction and never blocks it
        raw_key = f"{RAW_PREFIX}/{member.name.lstrip('/')}"
        logger.info("Uploading raw file %s", member.name)
        report = self.sink.upload(fetched.local_path, RAW_PREFIX, key=member.name)
        self.state.raw_report = self.state.raw_report.merge(report)
        if report.files_uploaded:
            logger.info("Raw file uploaded: %s", self.sink.uri(raw_key))
        else:
            logger.warning("Raw backup of %s failed; continuing", member.name)
        return fetched

    def _extract(self, fetched: FetchResult, dest_dir: Path):
        self._enter(PipelineStage.EXTRACTING, fetched.member.name)
        extract(fetched.local_path, dest_dir, fetched.member.name)

    def _resolve_and_upload(self, root: Path, label: str):
        self._enter(PipelineStage.RESOLVING, label)
        logger.info("Searching for ImageNet structure in %s", label)
        try:
            structure = self.resolver.resolve(root, label)
        except StructureNotFound:
            logger.info("Extracted layout of %s:", label)
            for line in describe_tree(root):
                logger.info("  %s", line)
            raise
        self.state.structures_found += 1

        self._enter(PipelineStage.REORGANIZING, label)
        canonical = self.reorganizer.reorganize(structure, label)

        self._enter(PipelineStage.UPLOADING, label)
        prefix = self.config.canonical_prefix
        for split in (TRAIN_DIR, VAL_DIR):
            logger.info("Uploading %s data", split)
            report = self.sink.upload(canonical / split, f"{prefix}/{split}")
            self.state.canonical_report = self.state.canonical_report.merge(report)
            try:
                report.raise_for_failures()
            except UploadPartialFailure as e:
                logger.warning("Partial upload of %s/%s: %s", label, split, e)
                self.state.record_error(label, e)

    def _member_failed(self, member_name: str, error: MemberError):
        if isinstance(error, StructureNotFound):
            logger.warning("No valid ImageNet structure found in %s", member_name)
            for candidate, reason in error.tried:
                logger.warning("  %s: %s", candidate, reason)
        else:
            logger.error("%s: %s", type(error).__name__, error)
        self.state.record_error(member_name, error)

    def _cleanup(self, label: str):
        self._enter(PipelineStage.CLEANUP, label)
        try:
            self.reorganizer.remove()
        except OSError as e:
            logger.error("Could not remove canonical copy after %s: %s", label, e)

    # ------------------------------------------------------------------
    # VERIFYING / DONE
    # ------------------------------------------------------------------

    def verify(self) -> RunOutcome:
        """Derive the outcome and write the marker documents (best effort)."""
        self._enter(PipelineStage.VERIFYING)
        if self.state.canonical_upload_succeeded:
            outcome = RunOutcome.VERIFIED_SUCCESS
            logger.info("Verified: canonical data at %s", self.config.canonical_uri)
        else:
            outcome = RunOutcome.NO_DATA_PRODUCED
            logger.error("No canonical data was uploaded during this run")

        self.sink.put_text(DATASET_INFO_KEY, build_dataset_info(self.config))
        self.sink.put_text(
            COMPLETION_MARKER_KEY,
            build_completion_marker(self.config, self.state, outcome),
        )
        return outcome

    def _signal_complete(self, outcome: RunOutcome):
        if self.on_complete is None:
            return
        try:
            self.on_complete(outcome)
        except Exception as e:
            logger.error("Completion hook failed: %s", e)
