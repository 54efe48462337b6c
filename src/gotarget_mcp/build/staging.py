"""Post-build resource staging.

Copy rule syntax: ``<globSource>[:<destination>]``.

- A literal source naming a file is copied to the destination file, or to
  the output directory under the same name when no destination is given.
- Anything else is a tree copy: every matched file (directories are expanded)
  is copied to its path relative to the source's non-wildcard directory
  prefix, under the destination directory or the output directory.

Copies overwrite, so applying a rule twice yields the same tree.
"""

from __future__ import annotations

import glob
import logging
import os
import re
import shutil

from ..targets import paths
from .state import StagingError

logger = logging.getLogger(__name__)

_DRIVE_PREFIX = re.compile(r"^[A-Za-z]:[\\/]")


def parse_copy_rule(rule: str) -> tuple[str, str | None]:
    """Split a rule into source and optional destination.

    A leading Windows drive letter (``C:\\``) is not taken as the separator.
    """
    start = 2 if _DRIVE_PREFIX.match(rule) else 0
    index = rule.find(":", start)
    if index < 0:
        return rule, None
    source, destination = rule[:index], rule[index + 1:]
    return source, destination or None


def wildcard_base(pattern: str) -> str:
    """Directory prefix of a glob pattern that contains no wildcard."""
    if not glob.has_magic(pattern):
        return pattern
    head = pattern
    while glob.has_magic(head):
        head = os.path.dirname(head)
    return head


def _copy_file(source: str, destination: str) -> None:
    parent = os.path.dirname(destination)
    if parent:
        os.makedirs(parent, exist_ok=True)
    shutil.copy2(source, destination)
    logger.debug(f"Copied {source} -> {destination}")


def _expand(source: str, matches: list[str]) -> list[str]:
    """Files to copy for a source, deduplicated.

    A literal directory source yields every file below it. Wildcard matches
    that are directories are skipped; use ``**`` to reach nested files.
    """
    files: list[str] = []
    seen: set[str] = set()

    def add(path: str) -> None:
        normalized = os.path.normpath(path)
        if normalized not in seen:
            seen.add(normalized)
            files.append(normalized)

    if not glob.has_magic(source) and os.path.isdir(source):
        for dirpath, dirnames, filenames in os.walk(source):
            dirnames.sort()
            for name in sorted(filenames):
                add(os.path.join(dirpath, name))
        return files

    for match in sorted(matches):
        if os.path.isfile(match):
            add(match)
    return files


def apply_copy_rule(rule: str, workspace_root: str, exe_dir: str) -> list[str]:
    """Apply one copy rule.

    Returns:
        Destination paths written

    Raises:
        StagingError: If any copy fails
    """
    raw_source, raw_destination = parse_copy_rule(rule)
    source = paths.resolve_source(raw_source, workspace_root)
    matches = glob.glob(source, recursive=True)
    if not matches:
        logger.warning(f"Copy rule '{rule}' matched nothing: {source}")
        return []

    written: list[str] = []
    try:
        if not glob.has_magic(source) and os.path.isfile(source):
            if raw_destination:
                destination = paths.resolve_destination(raw_destination, exe_dir)
            else:
                destination = os.path.join(exe_dir, os.path.basename(source))
            _copy_file(source, destination)
            written.append(destination)
            return written

        destination_dir = paths.resolve_destination(raw_destination, exe_dir)
        base = os.path.normpath(wildcard_base(source))
        for file in _expand(source, matches):
            relative = os.path.relpath(file, base)
            target_path = os.path.join(destination_dir, relative)
            _copy_file(file, target_path)
            written.append(target_path)
    except (OSError, shutil.Error) as e:
        raise StagingError(f"copy '{rule}' failed: {e}") from e

    return written


def stage_outputs(rules: tuple[str, ...] | list[str], workspace_root: str, exe_dir: str) -> list[str]:
    """Apply copy rules in order; the first failure aborts the rest.

    Raises:
        StagingError: If a rule fails
    """
    written: list[str] = []
    for rule in rules:
        written.extend(apply_copy_rule(rule, workspace_root, exe_dir))
    return written
