"""
Configuration for an ingestion run.

Values are layered, lowest precedence first:
1. Dataclass defaults
2. The ``ingest:`` section of a YAML file (config.yaml)
3. Environment variables (a .env file is loaded first)
4. Explicit overrides, usually CLI flags
"""

import os
import re
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from dotenv import load_dotenv

from imagenet_ingest.errors import ConfigError

DEFAULT_COMPETITION = "imagenet-object-localization-challenge"
DEFAULT_CANONICAL_NAME = "imagenet_organized"
DEFAULT_SPACE_THRESHOLD = 200 * 1024 ** 3
DEFAULT_MEMBER_KEYWORDS = [
    'ilsvrc2012_img_train',
    'ilsvrc2012_img_val',
    'ilsvrc2012_img_test',
]
DEFAULT_MIN_MEMBER_SIZE = 1024 ** 3

ENV_VARS = {
    'project': 'PROJECT_ID',
    'bucket': 'BUCKET_NAME',
    'region': 'AWS_REGION',
    'endpoint_url': 'S3_ENDPOINT_URL',
    'competition': 'KAGGLE_COMPETITION',
    'work_dir': 'INGEST_WORK_DIR',
}

_SIZE_UNITS = {
    '': 1,
    'B': 1,
    'K': 1024, 'KB': 1024,
    'M': 1024 ** 2, 'MB': 1024 ** 2,
    'G': 1024 ** 3, 'GB': 1024 ** 3,
    'T': 1024 ** 4, 'TB': 1024 ** 4,
}


def parse_size(value) -> int:
    """Parse '150GB', '500G', '1.5TB' or plain bytes into a byte count."""
    if isinstance(value, int):
        return value
    match = re.fullmatch(r'\s*([0-9]+(?:\.[0-9]+)?)\s*([A-Za-z]*)\s*', str(value))
    if not match or match.group(2).upper() not in _SIZE_UNITS:
        raise ConfigError(f"Unrecognised size: {value!r}")
    number, unit = match.groups()
    return int(float(number) * _SIZE_UNITS[unit.upper()])


def format_size(size_bytes: float) -> str:
    """Convert bytes to human-readable string."""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if abs(size_bytes) < 1024:
            return f"{size_bytes:.1f} {unit}"
        size_bytes /= 1024
    return f"{size_bytes:.1f} PB"


@dataclass
class IngestConfig:
    """
    Everything the orchestrator needs, passed in at construction.

    Attributes:
        project: Cloud project id, used to derive the default bucket name
        bucket: Object storage bucket receiving raw and processed data
        region: Bucket region
        endpoint_url: Alternative S3-compatible endpoint (None for AWS)
        competition: Remote dataset source identifier
        work_dir: Local directory owning every per-member workspace
        canonical_name: Name of the canonical layout under processed/
        free_space_override: Bytes to assume free instead of measuring
        space_threshold: Free space at or above which BULK is chosen
        upload_workers: Parallel per-file uploads within one upload call
        progress_interval: Successful uploads between progress log lines
        member_keywords: Substrings marking the main data members
        min_member_size: Size fallback when no keyword matches
        dry_run: List and plan only
        show_progress: Draw tqdm bars during uploads
        on_complete_command: Command run once the pipeline reaches DONE
    """
    project: Optional[str] = None
    bucket: Optional[str] = None
    region: Optional[str] = None
    endpoint_url: Optional[str] = None
    competition: str = DEFAULT_COMPETITION
    work_dir: Path = field(default_factory=lambda: Path.home() / "imagenet_work")
    canonical_name: str = DEFAULT_CANONICAL_NAME
    free_space_override: Optional[int] = None
    space_threshold: int = DEFAULT_SPACE_THRESHOLD
    upload_workers: int = 8
    progress_interval: int = 1000
    member_keywords: List[str] = field(default_factory=lambda: list(DEFAULT_MEMBER_KEYWORDS))
    min_member_size: int = DEFAULT_MIN_MEMBER_SIZE
    dry_run: bool = False
    show_progress: bool = True
    on_complete_command: Optional[str] = None

    def __post_init__(self):
        self.work_dir = Path(self.work_dir).expanduser()
        if self.free_space_override is not None:
            self.free_space_override = parse_size(self.free_space_override)
        self.space_threshold = parse_size(self.space_threshold)
        self.min_member_size = parse_size(self.min_member_size)

    @property
    def bucket_name(self) -> str:
        if self.bucket:
            return self.bucket
        if self.project:
            return f"{self.project}-imagenet-data"
        raise ConfigError(
            "No bucket configured. Set BUCKET_NAME or PROJECT_ID, "
            "or pass --bucket / --project"
        )

    @property
    def canonical_prefix(self) -> str:
        return f"processed/{self.canonical_name}"

    @property
    def canonical_uri(self) -> str:
        return f"s3://{self.bucket_name}/{self.canonical_prefix}/"

    def validate(self):
        """Raise ConfigError for settings the run cannot start with."""
        if not (self.bucket or self.project):
            raise ConfigError("Neither bucket nor project is configured")
        if not self.competition:
            raise ConfigError("No dataset source (competition) configured")
        if self.upload_workers < 1:
            raise ConfigError(f"upload_workers must be >= 1, got {self.upload_workers}")
        if self.progress_interval < 1:
            raise ConfigError(f"progress_interval must be >= 1, got {self.progress_interval}")

    def to_dict(self) -> Dict:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data['work_dir'] = str(self.work_dir)
        return data


def _load_yaml_section(config_path: Optional[Path]) -> Dict:
    """Read the ``ingest:`` section of a YAML config file."""
    if config_path is None:
        return {}
    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")
    try:
        with open(config_path, 'r') as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Could not parse {config_path}: {e}") from e
    section = data.get('ingest', {}) if isinstance(data, dict) else {}
    if not isinstance(section, dict):
        raise ConfigError(f"'ingest' section of {config_path} must be a mapping")
    return section


def _load_env() -> Dict:
    values = {}
    for name, env_var in ENV_VARS.items():
        value = os.getenv(env_var)
        if value:
            values[name] = value
    return values


def load_config(
    config_path: Optional[Path] = None,
    overrides: Optional[Dict] = None,
    env_file: Optional[str] = None,
) -> IngestConfig:
    """Build an IngestConfig from YAML, environment and overrides."""
    load_dotenv(env_file)

    known = {f.name for f in fields(IngestConfig)}
    values = {}
    for layer in (_load_yaml_section(config_path), _load_env(), overrides or {}):
        for key, value in layer.items():
            if key not in known:
                raise ConfigError(f"Unknown config key: {key}")
            if value is not None:
                values[key] = value

    config = replace(IngestConfig(), **values)
    config.validate()
    return config
