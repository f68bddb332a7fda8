"""
Streaming ImageNet ingestion into object storage.

Fetches archive members from a remote listing, finds and validates the
train/val layout inside each extraction, reorganizes it into a canonical
train/ + val/ copy, and uploads raw and canonical data to a bucket.
"""

from imagenet_ingest.capacity import choose_strategy, plan_strategy
from imagenet_ingest.config import IngestConfig, load_config
from imagenet_ingest.errors import (
    ConfigError,
    ExtractFailed,
    FetchFailed,
    IngestError,
    NoMembersFound,
    ReorganizeFailed,
    StructureNotFound,
    UploadPartialFailure,
)
from imagenet_ingest.fetcher import ArchiveFetcher, extract
from imagenet_ingest.listing import KaggleCompetitionSource, RemoteListingSource
from imagenet_ingest.models import (
    ArchiveMember,
    DatasetStructure,
    PipelineState,
    RunOutcome,
    Strategy,
    UploadReport,
)
from imagenet_ingest.orchestrator import PipelineOrchestrator
from imagenet_ingest.reorganizer import Reorganizer
from imagenet_ingest.resolver import CANDIDATE_PATHS, StructureResolver
from imagenet_ingest.sink import S3Sink

__all__ = [
    # Pipeline
    "PipelineOrchestrator",
    "IngestConfig",
    "load_config",
    # Components
    "choose_strategy",
    "plan_strategy",
    "ArchiveFetcher",
    "extract",
    "RemoteListingSource",
    "KaggleCompetitionSource",
    "StructureResolver",
    "CANDIDATE_PATHS",
    "Reorganizer",
    "S3Sink",
    # Data model
    "ArchiveMember",
    "DatasetStructure",
    "PipelineState",
    "RunOutcome",
    "Strategy",
    "UploadReport",
    # Errors
    "IngestError",
    "ConfigError",
    "FetchFailed",
    "ExtractFailed",
    "StructureNotFound",
    "ReorganizeFailed",
    "UploadPartialFailure",
    "NoMembersFound",
]
