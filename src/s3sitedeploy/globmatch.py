"""Glob matching over source-relative object paths.

Paths are POSIX style (``assets/app.js``) and relative to the source root.
Nothing in here touches the filesystem, so the planner and the deployer's
file selection can be exercised with plain strings.

Supported syntax:

* ``*``   any run of characters inside a single path segment
* ``?``   exactly one character inside a path segment
* ``[..]`` a character class (``[!..]`` / ``[^..]`` negates)
* ``**``  any number of whole segments (``**/*.css``, ``assets/**``)
"""
from __future__ import annotations

import re
from functools import lru_cache
from typing import Iterable

__all__ = ["DEFAULT_PATTERN", "compile_glob", "match_path", "matches_any", "is_selected"]

#: Reserved catch-all pattern owning the default cache-control value.
DEFAULT_PATTERN = "*"


def _normalise(pattern: str) -> str:
    while pattern.startswith("./"):
        pattern = pattern[2:]
    return pattern.lstrip("/")


@lru_cache(maxsize=256)
def compile_glob(pattern: str) -> "re.Pattern[str]":
    """Translate *pattern* into an anchored regular expression."""
    pat = _normalise(pattern)
    n = len(pat)
    out: list[str] = []
    i = 0
    while i < n:
        c = pat[i]
        if c == "*":
            if pat.startswith("**", i):
                i += 2
                if i < n and pat[i] == "/":
                    out.append("(?:.*/)?")
                    i += 1
                else:
                    out.append(".*")
                continue
            out.append("[^/]*")
        elif c == "?":
            out.append("[^/]")
        elif c == "[":
            j = i + 1
            if j < n and pat[j] in "!^":
                j += 1
            if j < n and pat[j] == "]":
                j += 1
            while j < n and pat[j] != "]":
                j += 1
            if j >= n:
                out.append(re.escape(c))
            else:
                stuff = pat[i + 1:j].replace("\\", "\\\\")
                if stuff[0] in "!^":
                    stuff = "^" + stuff[1:]
                out.append(f"(?!/)[{stuff}]")
                i = j
        else:
            out.append(re.escape(c))
        i += 1
    return re.compile("".join(out), re.DOTALL)


def match_path(path: str, pattern: str) -> bool:
    """Return True if the relative *path* matches the glob *pattern*."""
    return compile_glob(pattern).fullmatch(path.lstrip("/")) is not None


def matches_any(path: str, patterns: Iterable[str]) -> bool:
    return any(match_path(path, p) for p in patterns)


def is_selected(path: str, include: Iterable[str], exclude: Iterable[str]) -> bool:
    """Decide whether a deployment group with these rules picks *path*.

    An empty *include* means "everything", reduced by *exclude*. With a
    non-empty *include* only matching paths are picked; a catch-all ``"*"``
    in *exclude* is the exclude-everything-then-include idiom and does not
    veto an include match, any other matching exclude pattern does.
    """
    include = tuple(include)
    exclude = tuple(exclude)
    if not include:
        return not matches_any(path, exclude)
    if not matches_any(path, include):
        return False
    return not matches_any(path, (p for p in exclude if p != DEFAULT_PATTERN))
