"""Minimal example demonstrating how to use *s3sitedeploy*.

Prerequisite:
    1. Export the required S3 credentials / endpoint variables OR create a .env file.
    2. Install the package in editable mode:  `pip install -e .[test]`

This script will
    • plan one deployment group per cache-control pattern
    • upload ./dist to the configured S3 bucket with those headers
    • print a summary of the transfers
"""
from __future__ import annotations

import os

from s3sitedeploy import SiteDeployer, plan_deployment, with_default_cache_control

# ---------------------------------------------------------------------------
# 1. Read configuration from environment
# ---------------------------------------------------------------------------
S3_ENDPOINT = os.getenv("S3_ENDPOINT")
S3_ACCESS_KEY_ID = os.getenv("S3_ACCESS_KEY_ID")
S3_SECRET_ACCESS_KEY = os.getenv("S3_SECRET_ACCESS_KEY")
S3_BUCKET = os.getenv("S3_BUCKET_NAME")
SITE_DIR = os.getenv("S3_CONTENT_PATH", "./dist")

if not S3_BUCKET:
    raise SystemExit("Please set S3_BUCKET_NAME (and S3_ENDPOINT / credentials for non-AWS stores)")

# ---------------------------------------------------------------------------
# 2. Initialise the deployer
# ---------------------------------------------------------------------------
deployer = SiteDeployer(
    bucket_name=S3_BUCKET,
    s3_endpoint=S3_ENDPOINT,
    aws_access_key_id=S3_ACCESS_KEY_ID,
    aws_secret_access_key=S3_SECRET_ACCESS_KEY,
)

# ---------------------------------------------------------------------------
# 3. Plan: long-lived caching for fingerprinted assets, no-cache for the rest
# ---------------------------------------------------------------------------
groups = plan_deployment(
    with_default_cache_control({
        "**/*.js": "public, max-age=31536000, immutable",
        "**/*.css": "public, max-age=31536000, immutable",
    }),
    prune_on_default=False,  # True deletes bucket objects missing from SITE_DIR
)
for group in groups:
    print(f"{group.id}: include={list(group.include)} exclude={list(group.exclude)} -> {group.cache_control}")

# ---------------------------------------------------------------------------
# 4. Deploy
# ---------------------------------------------------------------------------
report = deployer.deploy(SITE_DIR, groups)
print(f"{report.processed} objects processed, {report.failed} failed")
for error in report.errors:
    print("  ", error)
