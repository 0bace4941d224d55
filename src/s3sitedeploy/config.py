"""Deployment settings read from the environment (and an optional ``.env`` file)."""
from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from dotenv import find_dotenv, load_dotenv

from .errors import ConfigurationError

__all__ = ["DeploySettings", "parse_bool"]

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def parse_bool(name: str, value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {value!r}")


def _parse_cache_control(raw: Optional[str]) -> dict[str, str]:
    if not raw:
        return {}
    try:
        rules = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"S3_CACHE_CONTROL is not valid JSON: {exc}") from exc
    if not isinstance(rules, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in rules.items()
    ):
        raise ConfigurationError("S3_CACHE_CONTROL must be a JSON object of glob -> Cache-Control strings")
    return rules


@dataclass
class DeploySettings:
    """Everything needed to deploy one site to one bucket."""

    bucket_name: str
    content_path: str
    cache_control: dict[str, str] = field(default_factory=dict)
    force_remove: bool = False
    destination_prefix: str = ""
    app_name: str = "site"
    s3_endpoint: Optional[str] = None
    region_name: str = "us-east-1"
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    verify_ssl: bool = True
    root_ca_path: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, dotenv: bool = True) -> "DeploySettings":
        """Build settings from *environ* (``os.environ`` by default).

        ``S3_BUCKET_NAME`` and ``S3_CONTENT_PATH`` are required. When reading
        ``os.environ`` a ``.env`` file in the working directory is loaded
        first; variables already set take precedence.
        """
        if environ is None:
            if dotenv:
                load_dotenv(find_dotenv(usecwd=True))
            environ = os.environ

        bucket = environ.get("S3_BUCKET_NAME")
        content_path = environ.get("S3_CONTENT_PATH")
        missing = [name for name, value in (("S3_BUCKET_NAME", bucket), ("S3_CONTENT_PATH", content_path)) if not value]
        if missing:
            raise ConfigurationError(f"Missing required settings: {', '.join(missing)}")

        return cls(
            bucket_name=bucket,
            content_path=content_path,
            cache_control=_parse_cache_control(environ.get("S3_CACHE_CONTROL")),
            force_remove=parse_bool("S3_FORCE_REMOVE", environ.get("S3_FORCE_REMOVE")),
            destination_prefix=environ.get("S3_DESTINATION_PREFIX", ""),
            app_name=environ.get("APP_NAME") or "site",
            s3_endpoint=environ.get("S3_ENDPOINT") or None,
            region_name=environ.get("S3_REGION", "us-east-1"),
            aws_access_key_id=environ.get("S3_ACCESS_KEY_ID") or None,
            aws_secret_access_key=environ.get("S3_SECRET_ACCESS_KEY") or None,
            verify_ssl=parse_bool("S3_VERIFY_SSL", environ.get("S3_VERIFY_SSL"), default=True),
            root_ca_path=environ.get("S3_ROOT_CA_PATH") or None,
        )
