"""Trusted-root containment checks for user supplied path references.

Verdicts are reported, never raised: a disallowed path produces a
`PathVerdict` with `allowed=False` and a reason, and the caller decides how to
respond. Paths are normalized lexically (`.`/`..` folding); symlinks are not
followed.
"""

from __future__ import annotations

import os
import re
from pathlib import Path

from research_relay.types import BatchVerdict, PathVerdict

# `@src/auth.py`, `@./config.json`
AT_PATH_PATTERN = re.compile(r"@([\w./-]+)")

REASON_TRAVERSAL = "Path contains parent directory traversal (..)"
REASON_OUTSIDE = "Path is outside project root"
REASON_MISSING = "Path does not exist"


def normalize_root(root: str | Path) -> str:
    return os.path.normpath(os.path.abspath(os.fspath(root)))


def is_within_root(absolute_path: str, root: str) -> bool:
    """True when `absolute_path` equals `root` or lies underneath it."""
    path = os.path.normpath(absolute_path)
    normalized_root = os.path.normpath(root)
    root_with_sep = normalized_root if normalized_root.endswith(os.sep) else normalized_root + os.sep
    return path == normalized_root or path.startswith(root_with_sep)


def validate_path(raw: str, root: str | Path) -> PathVerdict:
    normalized_root = normalize_root(root)
    if os.path.isabs(raw):
        candidate = raw
    else:
        candidate = os.path.join(normalized_root, raw)
    resolved = os.path.normpath(candidate)

    allowed = is_within_root(resolved, normalized_root)
    if not allowed:
        reason = REASON_TRAVERSAL if ".." in raw else REASON_OUTSIDE
        return PathVerdict(input=raw, resolved=resolved, exists=False, allowed=False, reason=reason)

    try:
        os.stat(resolved)
    except OSError:
        return PathVerdict(
            input=raw, resolved=resolved, exists=False, allowed=True, reason=REASON_MISSING
        )
    return PathVerdict(input=raw, resolved=resolved, exists=True, allowed=True)


def extract_path_references(text: str) -> list[str]:
    return AT_PATH_PATTERN.findall(text)


def validate_prompt_paths(text: str, root: str | Path) -> BatchVerdict:
    results = [validate_path(reference, root) for reference in extract_path_references(text)]
    invalid = [verdict for verdict in results if not verdict.allowed]
    return BatchVerdict(all_valid=not invalid, results=results, invalid=invalid)


class PathGuard:
    """Binds the trusted root once for the lifetime of the process."""

    def __init__(self, root: str | Path) -> None:
        self.root = normalize_root(root)

    def validate(self, raw: str) -> PathVerdict:
        return validate_path(raw, self.root)

    def validate_many(self, paths: list[str]) -> list[PathVerdict]:
        return [validate_path(raw, self.root) for raw in paths]

    def validate_batch(self, text: str) -> BatchVerdict:
        return validate_prompt_paths(text, self.root)
