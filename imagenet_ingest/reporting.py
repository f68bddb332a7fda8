"""
Plain-text documents written to the bucket at the end of a run, and the
final log summary.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from imagenet_ingest.config import IngestConfig, format_size
from imagenet_ingest.models import PipelineState, RunOutcome

logger = logging.getLogger(__name__)

COMPLETION_MARKER_KEY = "processing_complete.txt"
DATASET_INFO_KEY = "dataset_info.txt"

# Reference values for a full ImageNet-1k copy. Not enforced.
EXPECTED_CLASSES = 1000
EXPECTED_TRAIN_SAMPLES = "~1.2M"
EXPECTED_VAL_SAMPLES = "~50K"


def _timestamp(now: Optional[datetime] = None) -> str:
    return (now or datetime.now(timezone.utc)).strftime('%Y-%m-%d %H:%M:%S %Z')


def build_completion_marker(
    config: IngestConfig,
    state: PipelineState,
    outcome: RunOutcome,
    now: Optional[datetime] = None,
) -> str:
    if outcome is RunOutcome.VERIFIED_SUCCESS:
        status = "VERIFIED SUCCESS: canonical data uploaded"
    else:
        status = "NO DATA PRODUCED: no valid dataset structure was uploaded"

    canonical = state.canonical_report
    lines = [
        f"ImageNet processing finished at {_timestamp(now)}",
        "",
        f"Status: {status}",
        f"Outcome: {outcome.value}",
        f"Source: {config.competition}",
        f"Strategy: {state.strategy.value if state.strategy else 'unknown'}",
        "",
        f"Processed data location: {config.canonical_uri}",
        "",
        f"Members processed: {state.members_processed}/{state.members_total}",
        f"Structures found: {state.structures_found}",
        f"Canonical files uploaded: {canonical.files_uploaded} ({format_size(canonical.bytes_uploaded)})",
        f"Canonical upload failures: {len(canonical.failures)}",
        f"Raw backups uploaded: {state.raw_report.files_uploaded}",
        "",
        "Directory structure:",
        f"- train/        # {EXPECTED_CLASSES} class directories with training images",
        "- val/          # Validation images",
        "",
        "Expected reference counts (not enforced):",
        f"- Classes: {EXPECTED_CLASSES}",
        f"- Training samples: {EXPECTED_TRAIN_SAMPLES} images",
        f"- Validation samples: {EXPECTED_VAL_SAMPLES} images",
    ]
    if state.member_errors:
        lines += ["", "Member errors:"]
        lines += [f"- {name}: {error}" for name, error in state.member_errors]
    lines += [
        "",
        "Usage for training:",
        f"aws s3 cp --recursive {config.canonical_uri} ~/data/{config.canonical_name}/",
        "",
    ]
    return "\n".join(lines)


def build_dataset_info(
    config: IngestConfig,
    now: Optional[datetime] = None,
) -> str:
    bucket_uri = f"s3://{config.bucket_name}"
    lines = [
        "ImageNet Dataset Information",
        "===========================",
        "",
        f"Competition: {config.competition}",
        f"Processed: {_timestamp(now)}",
        f"Project: {config.project or '-'}",
        f"Bucket: {bucket_uri}",
        "",
        "Directory Structure:",
        f"- {bucket_uri}/raw/          # Original archive files",
        f"- {bucket_uri}/processed/    # Processed and organized data",
        "",
        "Usage:",
        "To use this dataset for training, point your training script to:",
        config.canonical_uri,
        "",
        "The data is organized as:",
        "- train/class_name/image.JPEG",
        "- val/image.JPEG or val/class_name/image.JPEG",
        "",
        f"Classes: {EXPECTED_CLASSES} ImageNet classes",
        f"Training samples: {EXPECTED_TRAIN_SAMPLES} images",
        f"Validation samples: {EXPECTED_VAL_SAMPLES} images",
        "",
    ]
    return "\n".join(lines)


def log_summary(state: PipelineState, outcome: RunOutcome, elapsed: float):
    logger.info("=" * 70)
    logger.info("INGESTION COMPLETE: %s", outcome.value)
    logger.info("=" * 70)
    logger.info("  Members processed:   %d/%d", state.members_processed, state.members_total)
    logger.info("  Structures found:    %d", state.structures_found)
    logger.info(
        "  Raw backups:         %d files (%s)",
        state.raw_report.files_uploaded, format_size(state.raw_report.bytes_uploaded),
    )
    logger.info(
        "  Canonical uploads:   %d files (%s)",
        state.canonical_report.files_uploaded, format_size(state.canonical_report.bytes_uploaded),
    )
    failures = len(state.raw_report.failures) + len(state.canonical_report.failures)
    if failures:
        logger.warning("  Upload failures:     %d (retry manually)", failures)
    for name, error in state.member_errors:
        logger.warning("  %s: %s", name, error)
    logger.info("  Duration:            %.1f minutes", elapsed / 60)
    logger.info("=" * 70)
