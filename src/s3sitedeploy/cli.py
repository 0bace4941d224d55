"""``s3-site-deploy``: deploy ``S3_CONTENT_PATH`` to ``S3_BUCKET_NAME``.

Configuration comes from the environment or a ``.env`` file, see
:class:`s3sitedeploy.config.DeploySettings`.
"""
from __future__ import annotations

import sys

from botocore.exceptions import BotoCoreError, ClientError

from .config import DeploySettings
from .errors import ConfigurationError
from .logger import LoggedSiteDeployer


def main() -> int:
    try:
        settings = DeploySettings.from_env()
    except ConfigurationError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    try:
        deployer = LoggedSiteDeployer(
            bucket_name=settings.bucket_name,
            s3_endpoint=settings.s3_endpoint,
            aws_access_key_id=settings.aws_access_key_id,
            aws_secret_access_key=settings.aws_secret_access_key,
            region_name=settings.region_name,
            destination_prefix=settings.destination_prefix,
            verify_ssl=settings.verify_ssl,
            root_ca_path=settings.root_ca_path,
        )
    except (ClientError, BotoCoreError) as exc:
        print(f"ERROR: cannot reach bucket '{settings.bucket_name}': {exc}", file=sys.stderr)
        return 1

    print(f"Deploying '{settings.content_path}' to S3 bucket '{settings.bucket_name}' ...")
    try:
        report = deployer.deploy_site(
            settings.content_path,
            cache_control=settings.cache_control,
            prune=settings.force_remove,
            id_prefix=settings.app_name,
        )
    except ConfigurationError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    if not report.ok:
        print(f"ERROR: {report.failed} of {report.processed} transfers failed", file=sys.stderr)
        return 1

    print(f"Site successfully deployed ({report.processed} objects)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
