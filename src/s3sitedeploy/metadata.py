"""Content-Type normalisation for freshly uploaded objects.

One invocation handles one object-created notification:

    received -> evaluated -> skipped | rewritten | failed

Objects whose extension is in the :class:`ContentTypeTable` get a same-key,
metadata-only ``copy_object`` with ``MetadataDirective="REPLACE"``. Running
it twice leaves the object in the same state.

Only ``Records[0]`` of a notification is processed. S3 delivers one record
per ``ObjectCreated:Put`` notification; anything beyond the first record is
logged and ignored.
"""
from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass
from pathlib import PurePosixPath
from types import MappingProxyType
from typing import Any, Mapping, Optional
from urllib.parse import quote, unquote_plus

from .errors import MalformedEventError, MetadataRewriteError

logger = logging.getLogger(__name__)

__all__ = [
    "ContentTypeTable",
    "DEFAULT_CONTENT_TYPES",
    "MetadataRewriteRequest",
    "MetadataNormalizer",
    "RewriteOutcome",
    "RewriteState",
    "parse_event",
]

# encodeURIComponent leaves these unescaped as well
_COPY_SOURCE_SAFE = "!'()*"


class ContentTypeTable:
    """Read-only ``extension -> Content-Type`` mapping.

    Extensions are stored lower case with their leading dot, so ``"HTML"``,
    ``".html"`` and ``".HTML"`` all refer to the same entry.
    """

    def __init__(self, mapping: Mapping[str, str]) -> None:
        normalised = {}
        for ext, content_type in mapping.items():
            ext = ext.lower()
            if not ext.startswith("."):
                ext = "." + ext
            normalised[ext] = content_type
        self._mapping = MappingProxyType(normalised)

    def lookup(self, key: str) -> Optional[str]:
        """Return the Content-Type for *key*'s extension, or None."""
        suffix = PurePosixPath(key).suffix.lower()
        if not suffix:
            return None
        return self._mapping.get(suffix)

    def as_dict(self) -> dict[str, str]:
        return dict(self._mapping)

    def __contains__(self, ext: object) -> bool:
        return ext in self._mapping

    def __len__(self) -> int:
        return len(self._mapping)

    def __repr__(self) -> str:
        return f"ContentTypeTable({dict(self._mapping)!r})"


DEFAULT_CONTENT_TYPES = ContentTypeTable({".html": "text/html;charset=utf-8"})


@dataclass(frozen=True)
class MetadataRewriteRequest:
    bucket: str
    key: str

    @property
    def copy_source(self) -> str:
        return quote(f"{self.bucket}/{self.key}", safe=_COPY_SOURCE_SAFE)

    def copy_params(self, content_type: str) -> dict[str, Any]:
        return {
            "Bucket": self.bucket,
            "CopySource": self.copy_source,
            "Key": self.key,
            "MetadataDirective": "REPLACE",
            "Metadata": {"Content-Type": content_type},
        }


class RewriteState(str, enum.Enum):
    SKIPPED = "skipped"
    REWRITTEN = "rewritten"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class RewriteOutcome:
    state: RewriteState
    request: MetadataRewriteRequest
    content_type: Optional[str] = None
    error: Optional[MetadataRewriteError] = None


def parse_event(event: Any) -> MetadataRewriteRequest:
    """Extract bucket and key from the first record of an S3 notification.

    Raises :class:`MalformedEventError` if the event has no records or the
    first record lacks a bucket name or object key.
    """
    try:
        records = event["Records"]
    except (KeyError, TypeError) as exc:
        raise MalformedEventError(f"Event has no Records: {exc!r}") from exc
    if not isinstance(records, list) or not records:
        raise MalformedEventError("Event contains no records")
    if len(records) > 1:
        logger.warning("Event carries %d records; only the first is processed", len(records))

    try:
        s3 = records[0]["s3"]
        bucket = s3["bucket"]["name"]
        raw_key = s3["object"]["key"]
    except (KeyError, TypeError) as exc:
        raise MalformedEventError(f"Record is missing bucket or key: {exc!r}") from exc
    if not bucket or not raw_key:
        raise MalformedEventError("Record has an empty bucket name or object key")

    # Keys in S3 notifications are URL encoded ("my+page.html")
    return MetadataRewriteRequest(bucket=str(bucket), key=unquote_plus(str(raw_key)))


class MetadataNormalizer:
    """Set the Content-Type metadata of uploaded objects with a known extension."""

    def __init__(self, s3_client: Any, content_types: ContentTypeTable = DEFAULT_CONTENT_TYPES) -> None:
        self.s3_client = s3_client
        self.content_types = content_types

    def rewrite(self, request: MetadataRewriteRequest, *, deadline: Optional[float] = None) -> RewriteOutcome:
        content_type = self.content_types.lookup(request.key)
        if content_type is None:
            logger.debug("No content type mapped for %s, skipping", request.key)
            return RewriteOutcome(RewriteState.SKIPPED, request)

        if deadline is not None and time.monotonic() >= deadline:
            return RewriteOutcome(RewriteState.CANCELLED, request, content_type)

        try:
            self.s3_client.copy_object(**request.copy_params(content_type))
        except Exception as exc:  # any store failure is reported, never raised
            return RewriteOutcome(
                RewriteState.FAILED,
                request,
                content_type,
                error=MetadataRewriteError(request.key, exc),
            )
        return RewriteOutcome(RewriteState.REWRITTEN, request, content_type)

    def normalize(self, event: Any, *, deadline: Optional[float] = None) -> RewriteOutcome:
        """Parse *event* and rewrite the object's metadata if its extension is mapped.

        :class:`MalformedEventError` propagates; every other failure is
        returned as a ``FAILED`` outcome.
        """
        return self.rewrite(parse_event(event), deadline=deadline)
