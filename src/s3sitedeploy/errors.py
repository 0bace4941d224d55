"""Exception types raised by s3sitedeploy.

``ConfigurationError`` is fatal and propagates to the caller. The remaining
errors are carried inside outcome values (``FileOutcome``/``RewriteOutcome``)
and are only logged at the outermost boundary.
"""
from __future__ import annotations

__all__ = [
    "SiteDeployError",
    "ConfigurationError",
    "TransferError",
    "MalformedEventError",
    "MetadataRewriteError",
]


class SiteDeployError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(SiteDeployError):
    """Planner or settings input is invalid; fix the configuration and retry."""


class TransferError(SiteDeployError):
    """A single upload or delete against the bucket failed."""

    def __init__(self, key: str, operation: str, cause: BaseException) -> None:
        super().__init__(f"{operation} failed for {key}: {cause}")
        self.key = key
        self.operation = operation
        self.cause = cause


class MalformedEventError(SiteDeployError):
    """The object-created notification does not carry a bucket and key."""


class MetadataRewriteError(SiteDeployError):
    """The metadata-only copy of an object failed."""

    def __init__(self, key: str, cause: BaseException) -> None:
        # Rendered the way the error log line expects: "Error: <detail>"
        super().__init__(f"Error: {cause}")
        self.key = key
        self.cause = cause
