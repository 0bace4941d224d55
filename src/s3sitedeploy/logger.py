"""Logging utilities for SiteDeployer.

Contains `DeployLogger` for structured operation records and
`LoggedSiteDeployer`, a thin subclass that plugs timing and a summary record
into every deployment.
"""
from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from time import perf_counter
from typing import Optional, Sequence

from .planner import DeploymentGroup
from .site_deploy import DeploymentReport, SiteDeployer

__all__ = ["DeployLogger", "LoggedSiteDeployer"]

_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class DeployLogger:
    """Write deployment operations to stdout and, optionally, a log file."""

    def __init__(self, log_file: Optional[str] = None, name: str = "SiteDeploy") -> None:
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)
        if not self.logger.handlers:
            handlers: list[logging.Handler] = [logging.StreamHandler()]
            if log_file:
                handlers.append(logging.FileHandler(log_file))
            for handler in handlers:
                handler.setFormatter(logging.Formatter(_FORMAT))
                self.logger.addHandler(handler)

    def log_operation(self, operation: str, subject: str, success: bool, details: str | None = None) -> None:
        status = "SUCCESS" if success else "FAILED"
        msg = f"[{datetime.now().isoformat()}] {operation} - {subject} - {status}"
        if details:
            msg += f" - {details}"
        (self.logger.info if success else self.logger.error)(msg)


class LoggedSiteDeployer(SiteDeployer):
    """SiteDeployer subclass that records each deployment via DeployLogger."""

    def __init__(self, *args, log_file: Optional[str] = None, **kwargs):  # noqa: ANN002, ANN003
        super().__init__(*args, **kwargs)
        self._logger = DeployLogger(log_file)

    # Override a single public entry-point -> rest of the functionality untouched.
    def deploy(self, source_root: str | Path, groups: Sequence[DeploymentGroup], **kwargs) -> DeploymentReport:  # type: ignore[override]
        start = perf_counter()
        report = super().deploy(source_root, groups, **kwargs)
        duration = perf_counter() - start
        details = f"{report.processed} processed, {report.failed} failed, {duration:.2f}s"
        if report.cancelled:
            details += ", cancelled"
        self._logger.log_operation("DEPLOY", f"{source_root} -> s3://{self.bucket_name}", report.ok, details)
        for error in report.errors:
            self._logger.log_operation(error.operation.upper(), error.key, False, str(error.cause))
        return report
