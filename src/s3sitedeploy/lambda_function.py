"""AWS Lambda entry point for the metadata normaliser.

Configure the function handler as ``s3sitedeploy.lambda_function.lambda_handler``
and subscribe it to the bucket's ``s3:ObjectCreated:Put`` notifications.

Failures never leave this module: a rewrite error is logged and the
invocation completes, so S3 does not retry a best-effort metadata fix.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Optional

import boto3

from .errors import MalformedEventError
from .metadata import DEFAULT_CONTENT_TYPES, ContentTypeTable, MetadataNormalizer, RewriteState

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

__all__ = ["lambda_handler", "handle_event", "get_normalizer"]

# Stop issuing the copy when less than this is left of the invocation.
_DEADLINE_MARGIN_S = 0.5

_normalizer: Optional[MetadataNormalizer] = None


def get_normalizer(content_types: ContentTypeTable = DEFAULT_CONTENT_TYPES) -> MetadataNormalizer:
    """Return the process-wide normaliser, creating the S3 client on first use."""
    global _normalizer
    if _normalizer is None:
        _normalizer = MetadataNormalizer(boto3.client("s3"), content_types)
    return _normalizer


def _deadline_from(context: Any) -> Optional[float]:
    remaining = getattr(context, "get_remaining_time_in_millis", None)
    if remaining is None:
        return None
    return time.monotonic() + remaining() / 1000.0 - _DEADLINE_MARGIN_S


def handle_event(normalizer: MetadataNormalizer, event: Any, deadline: Optional[float] = None) -> None:
    """Run *normalizer* on *event* and turn the outcome into log records."""
    try:
        outcome = normalizer.normalize(event, deadline=deadline)
    except MalformedEventError as exc:
        logger.error("Malformed S3 event, nothing to update: %s", exc)
        return

    if outcome.state is RewriteState.REWRITTEN:
        logger.info("Updated metadata for object: %s", outcome.request.key)
    elif outcome.state is RewriteState.FAILED:
        logger.error("Error updating metadata: %s", outcome.error)
    elif outcome.state is RewriteState.CANCELLED:
        logger.warning("Cancelled metadata update for object: %s (deadline reached)", outcome.request.key)


def lambda_handler(event: Any, context: Any = None) -> None:
    handle_event(get_normalizer(), event, _deadline_from(context))
