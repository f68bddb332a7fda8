"""
Durable store sink: uploads files and trees to S3-compatible object storage.

Every per-file upload is independent. A failure is recorded in the
UploadReport and the walk continues, so one call transfers as many files
as it can. Re-uploading a key overwrites it, which makes reruns safe.

Works against AWS S3 or any S3-compatible endpoint (for Google Cloud
Storage use endpoint_url="https://storage.googleapis.com" with HMAC keys).
"""

import logging
import os
import posixpath
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

import boto3
from boto3.s3.transfer import TransferConfig
from botocore.exceptions import BotoCoreError, ClientError
from tqdm import tqdm

from imagenet_ingest.config import format_size
from imagenet_ingest.errors import ConfigError
from imagenet_ingest.models import UploadReport
from imagenet_ingest.resolver import is_image

logger = logging.getLogger(__name__)

# Multipart for large raw archives
TRANSFER_CONFIG = TransferConfig(
    multipart_threshold=100 * 1024 * 1024,  # 100MB
    max_concurrency=10,
    multipart_chunksize=100 * 1024 * 1024,
)


def create_s3_client(region: Optional[str] = None, endpoint_url: Optional[str] = None):
    kwargs = {}
    if region:
        kwargs['region_name'] = region
    if endpoint_url:
        kwargs['endpoint_url'] = endpoint_url
    return boto3.client('s3', **kwargs)


def iter_image_files(root: Path) -> Iterator[Path]:
    """Yield regular image files under root in a stable order."""
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for filename in sorted(filenames):
            path = Path(dirpath) / filename
            if is_image(filename) and path.is_file() and not path.is_symlink():
                yield path


class S3Sink:
    """Uploads local files or directory trees under a key prefix."""

    def __init__(
        self,
        bucket: str,
        s3_client=None,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        workers: int = 8,
        progress_interval: int = 1000,
        show_progress: bool = False,
    ):
        self.bucket = bucket
        self.region = region
        self.s3_client = s3_client or create_s3_client(region, endpoint_url)
        self.workers = max(1, workers)
        self.progress_interval = progress_interval
        self.show_progress = show_progress

    def uri(self, key: str = "") -> str:
        return f"s3://{self.bucket}/{key}"

    # ------------------------------------------------------------------
    # Bucket
    # ------------------------------------------------------------------

    def ensure_bucket(self) -> bool:
        """Make sure the bucket exists. Returns True if it was created.

        Raises:
            ConfigError: If the bucket is inaccessible or cannot be created
        """
        try:
            self.s3_client.head_bucket(Bucket=self.bucket)
            logger.info("Using existing bucket: %s", self.uri())
            return False
        except ClientError as e:
            code = e.response.get('Error', {}).get('Code', '')
            if code not in ('404', 'NoSuchBucket', 'NotFound'):
                raise ConfigError(f"Cannot access bucket '{self.bucket}': {e}") from e
        except BotoCoreError as e:
            raise ConfigError(f"Cannot reach object storage: {e}") from e

        try:
            params = {'Bucket': self.bucket}
            if self.region and self.region != 'us-east-1':
                params['CreateBucketConfiguration'] = {'LocationConstraint': self.region}
            self.s3_client.create_bucket(**params)
        except (ClientError, BotoCoreError) as e:
            raise ConfigError(f"Could not create bucket '{self.bucket}': {e}") from e
        logger.info("Created bucket: %s", self.uri())
        return True

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------

    def _upload_one(self, local_path: Path, key: str) -> Tuple[bool, int, str]:
        """Upload a single file. Returns (success, size, error)."""
        try:
            size = local_path.stat().st_size
            self.s3_client.upload_file(str(local_path), self.bucket, key, Config=TRANSFER_CONFIG)
            return True, size, ""
        except Exception as e:
            return False, 0, str(e)

    def upload(
        self, local_path: Path, remote_prefix: str, key: Optional[str] = None
    ) -> UploadReport:
        """
        Upload a file or tree under remote_prefix.

        A single file lands at <remote_prefix>/<key> regardless of its
        extension; key defaults to the file name. For a tree, only image
        files are uploaded, keeping their path relative to local_path.

        Returns:
            UploadReport, always, including when every file failed.
        """
        local_path = Path(local_path)
        prefix = remote_prefix.strip('/')

        if local_path.is_file():
            name = (key or local_path.name).lstrip('/')
            jobs = [(local_path, posixpath.join(prefix, name))]
        elif local_path.is_dir():
            jobs = [
                (path, posixpath.join(prefix, path.relative_to(local_path).as_posix()))
                for path in iter_image_files(local_path)
            ]
        else:
            report = UploadReport()
            report.record_failure(str(local_path), "path does not exist")
            logger.warning("Nothing to upload at %s", local_path)
            return report

        logger.info("Uploading %d file(s) to %s", len(jobs), self.uri(prefix + '/'))
        report = self._run_jobs(jobs)

        logger.info(
            "Upload complete: %d files (%s) to %s",
            report.files_uploaded, format_size(report.bytes_uploaded), self.uri(prefix + '/'),
        )
        if report.failures:
            logger.warning("%d file(s) failed to upload under %s", len(report.failures), prefix)
            for path, cause in report.failures[:10]:
                logger.warning("  - %s: %s", path, cause)
            if len(report.failures) > 10:
                logger.warning("  ... and %d more", len(report.failures) - 10)
        return report

    def _run_jobs(self, jobs: List[Tuple[Path, str]]) -> UploadReport:
        report = UploadReport()
        total = len(jobs)
        if not total:
            return report

        # Results are tallied on this thread only, so counts never go backwards.
        with ThreadPoolExecutor(max_workers=min(self.workers, total)) as executor:
            futures = {
                executor.submit(self._upload_one, path, key): path
                for path, key in jobs
            }
            with tqdm(total=total, desc="Uploading", unit="files",
                      disable=not self.show_progress) as pbar:
                for future in as_completed(futures):
                    path = futures[future]
                    success, size, error = future.result()
                    if success:
                        report.record_success(size)
                        if report.files_uploaded % self.progress_interval == 0:
                            logger.info(
                                "Progress: %d/%d files (%s)",
                                report.files_uploaded, total,
                                format_size(report.bytes_uploaded),
                            )
                    else:
                        report.record_failure(str(path), error)
                    pbar.update(1)
                    pbar.set_postfix_str(format_size(report.bytes_uploaded), refresh=False)
        return report

    def put_text(self, key: str, text: str) -> bool:
        """Write a small plain-text document. Returns False on failure."""
        try:
            self.s3_client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=text.encode('utf-8'),
                ContentType='text/plain; charset=utf-8',
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("Could not write %s: %s", self.uri(key), e)
            return False
        logger.info("Wrote %s", self.uri(key))
        return True
