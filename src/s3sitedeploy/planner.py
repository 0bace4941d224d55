"""Deployment partition planner.

Turns a ``glob -> Cache-Control`` mapping into the ordered list of deployment
groups the :class:`~s3sitedeploy.site_deploy.SiteDeployer` executes. Two modes:

* the default ``"*"`` rule: include everything except the files claimed by a
  specific pattern (and optionally prune the bucket),
* every other rule: exclude everything, then include the pattern.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

from .errors import ConfigurationError
from .globmatch import DEFAULT_PATTERN, is_selected

__all__ = [
    "DEFAULT_CACHE_CONTROL",
    "DeploymentGroup",
    "with_default_cache_control",
    "plan_deployment",
]

DEFAULT_CACHE_CONTROL = "public, no-cache"


@dataclass(frozen=True)
class DeploymentGroup:
    id: str
    include: tuple[str, ...]
    exclude: tuple[str, ...]
    cache_control: str
    prune: bool = False

    @property
    def is_default(self) -> bool:
        return not self.include

    def selects(self, path: str) -> bool:
        return is_selected(path, self.include, self.exclude)


def with_default_cache_control(
    object_caching: Optional[Mapping[str, str]] = None,
    default: str = DEFAULT_CACHE_CONTROL,
) -> dict[str, str]:
    """Return *object_caching* with the ``"*"`` rule filled in if it is missing."""
    rules = {DEFAULT_PATTERN: default}
    rules.update(object_caching or {})
    return rules


def plan_deployment(
    patterns: Mapping[str, str],
    prune_on_default: bool = False,
    id_prefix: str = "site",
) -> list[DeploymentGroup]:
    """Partition the deployment into one group per glob pattern.

    The default group comes first so that specific patterns, uploaded later,
    win for any file both would touch. Remaining groups follow in sorted
    pattern order, which keeps the plan identical for identical input.

    Raises :class:`ConfigurationError` if *patterns* is empty or has no
    ``"*"`` entry.
    """
    if not patterns:
        raise ConfigurationError("No cache-control patterns given")
    if DEFAULT_PATTERN not in patterns:
        raise ConfigurationError(
            f"Cache-control patterns must contain the default {DEFAULT_PATTERN!r} entry"
        )

    specific = sorted(p for p in patterns if p != DEFAULT_PATTERN)
    groups = [
        DeploymentGroup(
            id=f"{id_prefix}-bucket-deployment-{DEFAULT_PATTERN}",
            include=(),
            exclude=tuple(specific),
            cache_control=patterns[DEFAULT_PATTERN],
            prune=bool(prune_on_default),
        )
    ]
    for glob in specific:
        groups.append(
            DeploymentGroup(
                id=f"{id_prefix}-bucket-deployment-{glob}",
                include=(glob,),
                exclude=(DEFAULT_PATTERN,),
                cache_control=patterns[glob],
            )
        )
    return groups
