"""
Shared fixtures for the ImageNet ingestion test suite

Provides:
- An in-memory S3 client (upload_file / put_object / head_bucket)
- A listing source serving archives built under tmp_path
- Builders for ImageNet-like directory trees and zip archives
"""

import os
import shutil
import sys
import threading
import zipfile
from pathlib import Path

import pytest
from botocore.exceptions import ClientError

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from imagenet_ingest.config import IngestConfig
from imagenet_ingest.listing import RemoteListingSource
from imagenet_ingest.models import ArchiveMember


# =============================================================================
# Tree Builders
# =============================================================================

def make_dirs(parent: Path, count: int, prefix: str = "n") -> Path:
    """Create count empty class directories named like ImageNet wnids."""
    parent.mkdir(parents=True, exist_ok=True)
    for i in range(count):
        (parent / f"{prefix}{i:08d}").mkdir()
    return parent


def touch_images(parent: Path, count: int, ext: str = ".JPEG", stem: str = "img") -> Path:
    parent.mkdir(parents=True, exist_ok=True)
    for i in range(count):
        (parent / f"{stem}_{i:06d}{ext}").write_bytes(b"x")
    return parent


def build_imagenet_tree(
    root: Path,
    classes: int = 1000,
    images_per_class: int = 1,
    val_flat: int = 0,
    val_class_dirs: int = 1000,
    marker: str = "",
) -> Path:
    """Create root/train/<class>/*.JPEG and root/val/... ; returns root."""
    train = root / "train"
    val = root / "val"
    train.mkdir(parents=True, exist_ok=True)
    val.mkdir(parents=True, exist_ok=True)
    for i in range(classes):
        class_dir = train / f"n{i:08d}"
        class_dir.mkdir()
        for j in range(images_per_class):
            (class_dir / f"{marker}n{i:08d}_{j}.JPEG").write_bytes(b"train")
    for i in range(val_class_dirs):
        class_dir = val / f"n{i:08d}"
        class_dir.mkdir()
        (class_dir / f"{marker}ILSVRC2012_val_{i:08d}.JPEG").write_bytes(b"val")
    touch_images(val, val_flat, stem=f"{marker}flat")
    return root


def make_zip(src_root: Path, zip_path: Path) -> Path:
    """Zip everything under src_root, keeping paths relative to it."""
    zip_path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(zip_path, "w") as zf:
        for path in sorted(src_root.rglob("*")):
            zf.write(path, path.relative_to(src_root).as_posix())
    return zip_path


# =============================================================================
# Fakes
# =============================================================================

class FakeS3Client:
    """Minimal in-memory stand-in for a boto3 S3 client."""

    def __init__(self, buckets=("test-bucket",), fail_keys=None):
        self.buckets = set(buckets)
        self.objects = {}
        self.upload_calls = []
        self.fail_keys = set(fail_keys or [])
        self._lock = threading.Lock()

    def head_bucket(self, Bucket):
        if Bucket not in self.buckets:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadBucket")
        return {}

    def create_bucket(self, Bucket, **kwargs):
        self.buckets.add(Bucket)
        return {}

    def upload_file(self, Filename, Bucket, Key, ExtraArgs=None, Callback=None, Config=None):
        with self._lock:
            self.upload_calls.append(Key)
        if Key in self.fail_keys:
            raise ClientError({"Error": {"Code": "500", "Message": "Internal Error"}}, "PutObject")
        with open(Filename, "rb") as f:
            data = f.read()
        with self._lock:
            self.objects[Key] = data

    def put_object(self, Bucket, Key, Body, **kwargs):
        with self._lock:
            self.objects[Key] = Body

    def keys(self, prefix=""):
        return sorted(k for k in self.objects if k.startswith(prefix))


class FakeListingSource(RemoteListingSource):
    """Serves prebuilt local files as remote archive members."""

    name = "fake"

    def __init__(self, files, fail=(), declared_sizes=None):
        self.files = {name: Path(path) for name, path in files.items()}
        self.fail = set(fail)
        self.declared_sizes = declared_sizes or {}
        self.downloads = []

    def list_members(self):
        return [
            ArchiveMember(name, self.declared_sizes.get(name, path.stat().st_size))
            for name, path in self.files.items()
        ]

    def download(self, member_name, dest_dir):
        self.downloads.append(member_name)
        if member_name in self.fail:
            raise ConnectionError("connection reset by peer")
        dest_dir = Path(dest_dir)
        dest_dir.mkdir(parents=True, exist_ok=True)
        target = dest_dir / member_name.rsplit("/", 1)[-1]
        shutil.copyfile(self.files[member_name], target)
        return target


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def fake_s3():
    return FakeS3Client()


@pytest.fixture
def work_dir(tmp_path):
    path = tmp_path / "work"
    path.mkdir()
    return path


@pytest.fixture
def ingest_config(work_dir):
    """Config with all-member selection and no progress bars"""
    return IngestConfig(
        bucket="test-bucket",
        competition="test-competition",
        work_dir=work_dir,
        member_keywords=[],
        min_member_size=0,
        upload_workers=2,
        show_progress=False,
    )


@pytest.fixture(scope="session")
def imagenet_zip(tmp_path_factory):
    """Zip holding ILSVRC/Data/CLS-LOC with 1000 train classes and 1000 val dirs"""
    base = tmp_path_factory.mktemp("imagenet_zip")
    build_imagenet_tree(base / "src" / "ILSVRC" / "Data" / "CLS-LOC")
    return make_zip(base / "src", base / "ILSVRC_Data.zip")


@pytest.fixture(scope="session")
def labels_zip(tmp_path_factory):
    """Zip with no recognizable structure (label files only)"""
    base = tmp_path_factory.mktemp("labels_zip")
    src = base / "src"
    src.mkdir()
    (src / "LOC_synset_mapping.txt").write_text("n01440764 tench\n")
    (src / "LOC_val_solution.csv").write_text("ImageId,PredictionString\n")
    return make_zip(src, base / "labels.zip")


CONFIG_ENV_VARS = ("PROJECT_ID", "BUCKET_NAME", "AWS_REGION", "S3_ENDPOINT_URL",
                   "KAGGLE_COMPETITION", "INGEST_WORK_DIR")


@pytest.fixture
def clean_env(monkeypatch):
    """Remove environment variables that feed the config layer"""
    for var in CONFIG_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    yield
    # load_dotenv writes os.environ directly
    for var in CONFIG_ENV_VARS:
        os.environ.pop(var, None)
