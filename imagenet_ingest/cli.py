"""
Command line entry point.

Exit codes:
    0  at least one canonical upload succeeded (or a dry run found members)
    1  the run completed but produced no canonical data
    3  no archive members were found
    4  configuration or storage access error
"""

import argparse
import logging
import shlex
import subprocess
import sys
from pathlib import Path
from typing import Optional, Sequence

from imagenet_ingest.config import format_size, load_config
from imagenet_ingest.errors import ConfigError, NoMembersFound
from imagenet_ingest.listing import KaggleCompetitionSource
from imagenet_ingest.models import RunOutcome
from imagenet_ingest.orchestrator import PipelineOrchestrator
from imagenet_ingest.sink import S3Sink

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_NO_DATA = 1
EXIT_NO_MEMBERS = 3
EXIT_CONFIG_ERROR = 4

LOG_FORMAT = "[%(asctime)s] %(levelname)s: %(message)s"


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        description="Stream an ImageNet archive source into object storage "
                    "as a canonical train/val layout"
    )

    # Storage identity
    parser.add_argument('--project', type=str, default=None,
                        help='Cloud project id (default bucket: <project>-imagenet-data)')
    parser.add_argument('--bucket', type=str, default=None,
                        help='Destination bucket name')
    parser.add_argument('--region', type=str, default=None,
                        help='Bucket region')
    parser.add_argument('--endpoint-url', type=str, default=None,
                        help='S3-compatible endpoint, e.g. https://storage.googleapis.com')

    # Source
    parser.add_argument('--competition', type=str, default=None,
                        help='Kaggle competition to ingest')

    # Local resources
    parser.add_argument('--work-dir', type=Path, default=None,
                        help='Local working directory (default: ~/imagenet_work)')
    parser.add_argument('--disk-space', type=str, default=None,
                        help='Assume this much free space instead of measuring (e.g. 150GB)')
    parser.add_argument('--workers', type=int, default=None,
                        help='Parallel per-file uploads')

    # Run control
    parser.add_argument('--config', type=Path, default=None,
                        help='YAML config file with an "ingest:" section')
    parser.add_argument('--env-file', type=str, default=None,
                        help='.env file to load (default: search from cwd)')
    parser.add_argument('--dry-run', action='store_true',
                        help='List members and plan only; no downloads or uploads')
    parser.add_argument('--no-progress', action='store_true',
                        help='Disable progress bars')
    parser.add_argument('--on-complete-cmd', type=str, default=None,
                        help='Command to run once the pipeline is done')

    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument('-v', '--verbose', action='store_true')
    verbosity.add_argument('-q', '--quiet', action='store_true')

    return parser.parse_args(argv)


def setup_logging(verbose: bool = False, quiet: bool = False):
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt='%H:%M:%S')


def run_command_hook(command: str):
    """Build an on_complete callback that runs command without a shell."""
    def hook(outcome: RunOutcome):
        logger.info("Running completion command: %s", command)
        subprocess.run(shlex.split(command), check=True)
    return hook


def _overrides(args: argparse.Namespace) -> dict:
    return {
        'project': args.project,
        'bucket': args.bucket,
        'region': args.region,
        'endpoint_url': args.endpoint_url,
        'competition': args.competition,
        'work_dir': args.work_dir,
        'free_space_override': args.disk_space,
        'upload_workers': args.workers,
        'dry_run': args.dry_run or None,
        'show_progress': False if args.no_progress else None,
        'on_complete_command': args.on_complete_cmd,
    }


def main(argv: Optional[Sequence[str]] = None, source=None, s3_client=None) -> int:
    args = parse_args(argv)
    setup_logging(args.verbose, args.quiet)

    try:
        config = load_config(args.config, overrides=_overrides(args), env_file=args.env_file)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return EXIT_CONFIG_ERROR

    logger.info("=" * 70)
    logger.info("IMAGENET INGESTION")
    logger.info("=" * 70)
    logger.info("  Source:     %s", config.competition)
    logger.info("  Bucket:     s3://%s/", config.bucket_name)
    logger.info("  Work dir:   %s", config.work_dir)
    if config.free_space_override is not None:
        logger.info("  Disk space: %s (override)", format_size(config.free_space_override))
    logger.info("  Dry run:    %s", config.dry_run)
    logger.info("=" * 70)

    source = source or KaggleCompetitionSource(config.competition)
    sink = S3Sink(
        config.bucket_name,
        s3_client=s3_client,
        region=config.region,
        endpoint_url=config.endpoint_url,
        workers=config.upload_workers,
        progress_interval=config.progress_interval,
        show_progress=config.show_progress,
    )
    on_complete = run_command_hook(config.on_complete_command) if config.on_complete_command else None
    orchestrator = PipelineOrchestrator(config, source, sink, on_complete=on_complete)

    try:
        if config.dry_run:
            members, strategy = orchestrator.plan()
            logger.info("DRY RUN: would process %d member(s) with %s strategy",
                        len(members), strategy.value)
            for member in members:
                logger.info("  %-60s %12s", member.name, format_size(member.declared_size))
            return EXIT_OK

        sink.ensure_bucket()
        outcome = orchestrator.run()
    except NoMembersFound as e:
        logger.error("%s", e)
        return EXIT_NO_MEMBERS
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return EXIT_CONFIG_ERROR

    if outcome is RunOutcome.VERIFIED_SUCCESS:
        logger.info("Processed data: %s", config.canonical_uri)
        return EXIT_OK
    return EXIT_NO_DATA


if __name__ == "__main__":
    sys.exit(main())
