#!/usr/bin/env python3
"""
ImageNet Ingestion into Object Storage

Downloads the ImageNet competition files from Kaggle, finds the train/val
layout inside each archive, and uploads raw and organized copies to an
S3-compatible bucket. Chooses streaming (one file at a time) or bulk
processing from the free disk space.

Usage:
    # Full run, bucket derived from the project id
    python scripts/ingest_imagenet.py --project my-project

    # Preview members and strategy without downloading
    python scripts/ingest_imagenet.py --project my-project --dry-run

    # Force streaming on a small disk
    python scripts/ingest_imagenet.py --bucket my-bucket --disk-space 50GB

    # Write to Google Cloud Storage through its S3 endpoint
    python scripts/ingest_imagenet.py --bucket my-bucket \
        --endpoint-url https://storage.googleapis.com
"""

import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from imagenet_ingest.cli import main


if __name__ == "__main__":
    sys.exit(main())
