"""
Tests for the data model, error types and end-of-run documents
"""

from datetime import datetime, timezone
from pathlib import Path

import pytest

from imagenet_ingest.config import IngestConfig
from imagenet_ingest.errors import (
    FetchFailed,
    IngestError,
    MemberError,
    StructureNotFound,
    UploadPartialFailure,
)
from imagenet_ingest.models import (
    ArchiveMember,
    FetchResult,
    PipelineState,
    RunOutcome,
    Strategy,
    UploadReport,
)
from imagenet_ingest.reporting import build_completion_marker, build_dataset_info


# =============================================================================
# Models
# =============================================================================

class TestUploadReport:

    def test_merge_returns_new_report(self):
        a = UploadReport(files_uploaded=2, bytes_uploaded=20, failures=[("x", "boom")])
        b = UploadReport(files_uploaded=1, bytes_uploaded=5)

        merged = a.merge(b)

        assert merged.files_uploaded == 3
        assert merged.bytes_uploaded == 25
        assert merged.failures == [("x", "boom")]
        assert merged.files_attempted == 4
        assert merged is not a
        assert a.files_uploaded == 2

    def test_record_and_raise(self):
        report = UploadReport()
        report.record_success(10)
        report.raise_for_failures()

        report.record_failure("/tmp/a.JPEG", "timeout")
        with pytest.raises(UploadPartialFailure, match="1 file\\(s\\) failed to upload, 1 succeeded"):
            report.raise_for_failures()

    def test_to_dict(self):
        report = UploadReport(files_uploaded=1, bytes_uploaded=3, failures=[("p", "c")])
        assert report.to_dict() == {
            'files_uploaded': 1,
            'bytes_uploaded': 3,
            'failures': [{'path': 'p', 'cause': 'c'}],
        }


class TestSmallModels:

    def test_member_basename(self):
        assert ArchiveMember("ILSVRC/ILSVRC.zip").basename == "ILSVRC.zip"
        assert ArchiveMember("labels.csv").basename == "labels.csv"

    def test_fetch_result_size_matches(self):
        member = ArchiveMember("a.zip", 100)
        assert FetchResult(member, Path("a.zip"), 100).size_matches
        assert not FetchResult(member, Path("a.zip"), 99).size_matches

    def test_pipeline_state_success_flag(self):
        state = PipelineState()
        assert not state.canonical_upload_succeeded
        state.raw_report = UploadReport(files_uploaded=5)
        assert not state.canonical_upload_succeeded
        state.canonical_report = UploadReport(files_uploaded=1)
        assert state.canonical_upload_succeeded

    def test_record_error(self):
        state = PipelineState()
        state.record_error("a.zip", FetchFailed("a.zip", "reset"))
        assert state.member_errors == [("a.zip", "FetchFailed: a.zip: reset")]


class TestErrors:

    def test_member_errors_share_base(self):
        error = StructureNotFound("labels.zip", [("ILSVRC", "missing"), (".", "no train/ and val/ pair")])
        assert isinstance(error, MemberError)
        assert isinstance(error, IngestError)
        assert str(error).startswith("labels.zip: no valid dataset structure")
        assert "ILSVRC (missing)" in str(error)

    def test_structure_not_found_without_candidates(self):
        assert "no candidates" in str(StructureNotFound("x"))


# =============================================================================
# Documents
# =============================================================================

NOW = datetime(2024, 3, 1, 12, 30, 0, tzinfo=timezone.utc)


class TestDocuments:

    @pytest.fixture
    def config(self, tmp_path):
        return IngestConfig(project="proj", competition="comp", work_dir=tmp_path)

    def test_completion_marker_success(self, config):
        state = PipelineState(members_total=2, members_processed=2, structures_found=1,
                              strategy=Strategy.STREAMING)
        state.canonical_report = UploadReport(files_uploaded=2000, bytes_uploaded=8000)
        state.record_error("labels.zip", StructureNotFound("labels.zip"))

        text = build_completion_marker(config, state, RunOutcome.VERIFIED_SUCCESS, now=NOW)

        assert "finished at 2024-03-01 12:30:00 UTC" in text
        assert "Status: VERIFIED SUCCESS" in text
        assert "Outcome: verified_success" in text
        assert "s3://proj-imagenet-data/processed/imagenet_organized/" in text
        assert "Members processed: 2/2" in text
        assert "Canonical files uploaded: 2000" in text
        assert "- labels.zip: StructureNotFound" in text

    def test_completion_marker_no_data(self, config):
        text = build_completion_marker(config, PipelineState(), RunOutcome.NO_DATA_PRODUCED, now=NOW)
        assert "Status: NO DATA PRODUCED" in text
        assert "VERIFIED SUCCESS" not in text
        assert "Strategy: unknown" in text

    def test_dataset_info(self, config):
        text = build_dataset_info(config, now=NOW)
        assert "Competition: comp" in text
        assert "s3://proj-imagenet-data/raw/" in text
        assert "s3://proj-imagenet-data/processed/imagenet_organized/" in text
