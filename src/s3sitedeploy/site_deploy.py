"""SiteDeployer: upload a static site to S3 one deployment group at a time.

Each :class:`~s3sitedeploy.planner.DeploymentGroup` is applied in planner
order. Files a group selects are uploaded with the group's ``Cache-Control``
header; the single ``prune`` group then deletes bucket objects that no longer
exist in the source tree. Individual upload/delete failures are collected in
the returned :class:`DeploymentReport` instead of aborting the run.
"""
from __future__ import annotations

import enum
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Sequence

import boto3
from boto3.exceptions import S3UploadFailedError
from boto3.s3.transfer import TransferConfig
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .errors import ConfigurationError, TransferError
from .metadata import DEFAULT_CONTENT_TYPES, ContentTypeTable
from .planner import DeploymentGroup, plan_deployment, with_default_cache_control

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

__all__ = ["SiteDeployer", "DeploymentReport", "FileOutcome", "OutcomeStatus"]

_TRANSFER_ERRORS = (ClientError, BotoCoreError, S3UploadFailedError, OSError)


class OutcomeStatus(str, enum.Enum):
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class FileOutcome:
    key: str
    operation: str  # "upload" | "delete" | "list"
    status: OutcomeStatus
    group_id: Optional[str] = None
    error: Optional[TransferError] = None


@dataclass
class DeploymentReport:
    """Per-file results of one deployment, in execution order."""

    bucket: str
    outcomes: list[FileOutcome] = field(default_factory=list)
    cancelled: bool = False

    @property
    def processed(self) -> int:
        return sum(1 for o in self.outcomes if o.status is not OutcomeStatus.CANCELLED)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status is OutcomeStatus.FAILED)

    @property
    def errors(self) -> list[TransferError]:
        return [o.error for o in self.outcomes if o.error is not None]

    @property
    def ok(self) -> bool:
        return not self.cancelled and self.failed == 0

    def keys(self, operation: str, status: OutcomeStatus = OutcomeStatus.SUCCESS) -> list[str]:
        return [o.key for o in self.outcomes if o.operation == operation and o.status is status]


class SiteDeployer:
    """Deploy a local directory to an S3-compatible bucket.

    Pass ``s3_client`` to reuse an existing client; otherwise one is built
    from the connection arguments. ``root_ca_path`` points at a custom CA
    bundle for HTTPS endpoints with self-signed certificates, and
    ``destination_prefix`` places every object under a key prefix.
    """

    def __init__(
        self,
        bucket_name: str,
        s3_endpoint: Optional[str] = None,
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        region_name: str = "us-east-1",
        destination_prefix: str = "",
        use_ssl: bool = True,
        verify_ssl: bool = True,
        root_ca_path: Optional[str] = None,
        s3_client: Any = None,
        content_types: ContentTypeTable = DEFAULT_CONTENT_TYPES,
        max_workers: int = 8,
        chunk_size: int = 8 * 1024 * 1024,
    ) -> None:
        self.bucket_name = bucket_name
        self.s3_endpoint = s3_endpoint
        self.destination_prefix = destination_prefix.strip("/") + "/" if destination_prefix.strip("/") else ""
        self.content_types = content_types
        self.max_workers = max_workers
        self.transfer_config = TransferConfig(
            multipart_threshold=chunk_size,
            multipart_chunksize=chunk_size,
            max_concurrency=10,
            use_threads=True,
        )

        if s3_client is None:
            session = boto3.Session(
                aws_access_key_id=aws_access_key_id,
                aws_secret_access_key=aws_secret_access_key,
                region_name=region_name,
            )
            # A custom root CA bundle replaces the default SSL verification
            _verify_param = root_ca_path if root_ca_path else verify_ssl
            client_config = Config(signature_version="s3v4")
            if s3_endpoint:
                # path-style addressing for custom endpoints
                client_config = client_config.merge(Config(s3={"addressing_style": "path"}))
            s3_client = session.client(
                "s3",
                endpoint_url=s3_endpoint,
                use_ssl=use_ssl,
                verify=_verify_param,
                config=client_config,
            )
        self.s3_client = s3_client

        try:
            self.s3_client.head_bucket(Bucket=bucket_name)
            logger.info("S3 bucket '%s' reachable", bucket_name)
        except ClientError as exc:
            logger.error("Bucket access failed: %s", exc)
            raise

    # ───────────────────────────── Internal helpers ────────────────────────────
    def _get_s3_key(self, relative_path: str) -> str:
        return f"{self.destination_prefix}{relative_path}"

    def _get_relative_path(self, s3_key: str) -> str:
        return s3_key[len(self.destination_prefix):]

    def _upload_file(self, local_file: Path, relative_path: str, group: DeploymentGroup) -> FileOutcome:
        s3_key = self._get_s3_key(relative_path)
        extra_args = {"CacheControl": group.cache_control}
        content_type = self.content_types.lookup(relative_path)
        if content_type:
            extra_args["ContentType"] = content_type
        try:
            self.s3_client.upload_file(
                str(local_file), self.bucket_name, s3_key,
                ExtraArgs=extra_args, Config=self.transfer_config,
            )
        except _TRANSFER_ERRORS as exc:
            logger.error("Upload failed for %s: %s", s3_key, exc)
            return FileOutcome(s3_key, "upload", OutcomeStatus.FAILED, group.id, TransferError(s3_key, "upload", exc))
        logger.debug("Uploaded %s (%s)", s3_key, group.cache_control)
        return FileOutcome(s3_key, "upload", OutcomeStatus.SUCCESS, group.id)

    def _delete_object(self, s3_key: str, group: DeploymentGroup) -> FileOutcome:
        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=s3_key)
        except (ClientError, BotoCoreError) as exc:
            logger.error("Failed to delete %s from S3: %s", s3_key, exc)
            return FileOutcome(s3_key, "delete", OutcomeStatus.FAILED, group.id, TransferError(s3_key, "delete", exc))
        logger.info("Pruned %s", s3_key)
        return FileOutcome(s3_key, "delete", OutcomeStatus.SUCCESS, group.id)

    def _run_parallel(
        self,
        operation: str,
        keys: Sequence[str],
        task: Callable[[str], FileOutcome],
        group: DeploymentGroup,
        should_stop: Callable[[], bool],
    ) -> list[FileOutcome]:
        """Run *task* for every key on a thread pool, results in *keys* order.

        Once *should_stop* turns true, work that has not started yet is
        cancelled and reported as ``CANCELLED``; running calls complete.
        """
        def guarded(key: str) -> FileOutcome:
            if should_stop():
                return FileOutcome(self._get_s3_key(key), operation, OutcomeStatus.CANCELLED, group.id)
            return task(key)

        outcomes: list[FileOutcome] = []
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = [(key, pool.submit(guarded, key)) for key in keys]
            stopping = False
            for key, future in futures:
                if future.cancelled():
                    outcomes.append(FileOutcome(self._get_s3_key(key), operation, OutcomeStatus.CANCELLED, group.id))
                    continue
                outcomes.append(future.result())
                if not stopping and should_stop():
                    stopping = True
                    for _, pending in futures:
                        pending.cancel()
        return outcomes

    @staticmethod
    def _stop_condition(cancel_event: Optional[threading.Event], deadline: Optional[float]) -> Callable[[], bool]:
        def should_stop() -> bool:
            if cancel_event is not None and cancel_event.is_set():
                return True
            return deadline is not None and time.monotonic() >= deadline
        return should_stop

    # ───────────────────────────────── Public API ──────────────────────────────
    def collect_source_files(self, source_root: str | Path) -> list[str]:
        """Return every regular file below *source_root* as a sorted relative POSIX path."""
        root = Path(source_root)
        if not root.is_dir():
            raise ConfigurationError(f"Source path is not a directory: {root}")
        return sorted(p.relative_to(root).as_posix() for p in root.rglob("*") if p.is_file())

    def list_destination_keys(self) -> list[str]:
        """List every object key under the destination prefix."""
        paginator = self.s3_client.get_paginator("list_objects_v2")
        keys: list[str] = []
        for page in paginator.paginate(Bucket=self.bucket_name, Prefix=self.destination_prefix):
            for obj in page.get("Contents", []):
                keys.append(obj["Key"])
        return keys

    def deploy_group(
        self,
        source_root: str | Path,
        group: DeploymentGroup,
        source_files: Optional[Sequence[str]] = None,
        *,
        cancel_event: Optional[threading.Event] = None,
        deadline: Optional[float] = None,
    ) -> list[FileOutcome]:
        """Upload the files *group* selects, then prune if the group asks for it.

        Pruning waits until every upload of the group has finished, so an
        object is never deleted while its replacement is still in flight.
        """
        root = Path(source_root)
        if source_files is None:
            source_files = self.collect_source_files(root)
        should_stop = self._stop_condition(cancel_event, deadline)

        selected = [rel for rel in source_files if group.selects(rel)]
        logger.info("Group %s: uploading %d files (Cache-Control: %s)", group.id, len(selected), group.cache_control)
        outcomes = self._run_parallel(
            "upload", selected,
            lambda rel: self._upload_file(root / rel, rel, group),
            group, should_stop,
        )

        if not group.prune or should_stop():
            return outcomes

        try:
            existing = self.list_destination_keys()
        except (ClientError, BotoCoreError) as exc:
            logger.error("Listing %s for pruning failed: %s", self.bucket_name, exc)
            prefix = self.destination_prefix or "/"
            outcomes.append(FileOutcome(prefix, "list", OutcomeStatus.FAILED, group.id, TransferError(prefix, "list", exc)))
            return outcomes

        present = set(source_files)
        stale = []
        for s3_key in existing:
            rel = self._get_relative_path(s3_key)
            if rel not in present and group.selects(rel):
                stale.append(rel)
        logger.info("Group %s: pruning %d stale objects", group.id, len(stale))
        outcomes.extend(
            self._run_parallel(
                "delete", stale,
                lambda rel: self._delete_object(self._get_s3_key(rel), group),
                group, should_stop,
            )
        )
        return outcomes

    def deploy(
        self,
        source_root: str | Path,
        groups: Sequence[DeploymentGroup],
        *,
        cancel_event: Optional[threading.Event] = None,
        deadline: Optional[float] = None,
    ) -> DeploymentReport:
        """Apply *groups* one after another and collect every per-file outcome."""
        pruning = [g for g in groups if g.prune]
        if len(pruning) > 1:
            raise ConfigurationError(f"Only one group may prune, got {[g.id for g in pruning]}")
        if pruning and not pruning[0].is_default:
            raise ConfigurationError(f"Only the default group may prune, not {pruning[0].id}")

        source_files = self.collect_source_files(source_root)
        should_stop = self._stop_condition(cancel_event, deadline)
        report = DeploymentReport(bucket=self.bucket_name)
        logger.info("Deploying %d source files to bucket '%s' in %d groups", len(source_files), self.bucket_name, len(groups))

        for group in groups:
            if should_stop():
                report.cancelled = True
                break
            report.outcomes.extend(
                self.deploy_group(source_root, group, source_files, cancel_event=cancel_event, deadline=deadline)
            )
        if should_stop() or any(o.status is OutcomeStatus.CANCELLED for o in report.outcomes):
            report.cancelled = True

        logger.info("Processed %d objects, %d failed", report.processed, report.failed)
        if report.failed:
            logger.warning("Failed to transfer %d objects. Check logs above.", report.failed)
        if report.cancelled:
            logger.warning("Deployment to '%s' was cancelled before completion", self.bucket_name)
        return report

    def deploy_site(
        self,
        source_root: str | Path,
        cache_control: Optional[Mapping[str, str]] = None,
        prune: bool = False,
        id_prefix: str = "site",
        **kwargs: Any,
    ) -> DeploymentReport:
        """Plan groups for *cache_control* (default rule filled in) and deploy them."""
        groups = plan_deployment(with_default_cache_control(cache_control), prune, id_prefix)
        return self.deploy(source_root, groups, **kwargs)
