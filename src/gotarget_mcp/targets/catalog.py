"""Target catalog - loads descriptors from the workspace configuration.

The configuration document maps ``name -> key -> raw record``. Records may
name a base with ``extends``; the base must be a key resolved earlier in the
same name group. The loaded set is rebuilt from scratch whenever the
backing file changes.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterable
from typing import Any

from ..errors import TargetConfigError
from .descriptor import Target, construct

logger = logging.getLogger(__name__)

PROJECT_LIST_KEYS = ("projectList", "gotarget.projectList")


def resolve_group(name: str, records: dict[str, Any]) -> list[Target]:
    """Resolve one name group in declaration order.

    Args:
        name: Logical program group
        records: Raw records keyed by variant key

    Returns:
        Resolved descriptors, skipping records that fail validation
    """
    resolved: dict[str, Target] = {}
    result: list[Target] = []

    for key, raw in records.items():
        if key.startswith("$"):
            continue
        try:
            if not isinstance(raw, dict):
                raise TargetConfigError("record must be an object")

            base: Target | None = None
            base_key = raw.get("extends")
            if base_key is not None:
                base = resolved.get(base_key)
                if base is None:
                    raise TargetConfigError(
                        f"'extends' refers to '{base_key}', which is not declared "
                        f"earlier in '{name}'"
                    )

            target = construct(name, key, base, raw)
        except TargetConfigError as e:
            logger.error(f"Skipping target {name}.{key}: {e}")
            continue

        resolved[key] = target
        result.append(target)

    return result


def load_targets(project_list: dict[str, Any]) -> list[Target]:
    """Resolve all groups, keeping the first descriptor seen for each ID."""
    targets: list[Target] = []
    seen: set[str] = set()

    for name, records in project_list.items():
        if name.startswith("$"):
            continue
        if not isinstance(records, dict):
            logger.error(f"Skipping target group '{name}': must be an object")
            continue
        for target in resolve_group(name, records):
            if target.id in seen:
                logger.warning(f"Duplicate target ID {target.id}, keeping the first one")
                continue
            seen.add(target.id)
            targets.append(target)

    return targets


def extract_project_list(document: dict[str, Any]) -> dict[str, Any]:
    """Find the target table in a settings-style document."""
    for key in PROJECT_LIST_KEYS:
        value = document.get(key)
        if isinstance(value, dict):
            return value
    return {}


class TargetCatalog:
    """Holds the descriptors of one configuration snapshot.

    Usage:
        catalog = TargetCatalog("/path/to/.vscode/settings.json")
        for target in catalog.targets:
            print(target.id)
    """

    def __init__(self, config_path: str | None):
        self._config_path = os.path.abspath(config_path) if config_path else None
        self._targets: list[Target] = []
        self._mtime: float | None = None
        self._loaded = False

    @property
    def config_path(self) -> str | None:
        """Path of the backing configuration file."""
        return self._config_path

    @property
    def targets(self) -> list[Target]:
        """Current descriptors, reloaded if the backing file changed."""
        if not self._loaded or self._file_changed():
            self.reload()
        return list(self._targets)

    @property
    def ids(self) -> list[str]:
        """IDs of the current descriptors, in load order."""
        return [t.id for t in self.targets]

    def _current_mtime(self) -> float | None:
        if not self._config_path:
            return None
        try:
            return os.path.getmtime(self._config_path)
        except OSError:
            return None

    def _file_changed(self) -> bool:
        return self._current_mtime() != self._mtime

    def reload(self) -> int:
        """Discard the current set and load it again from disk.

        Returns:
            Number of descriptors loaded
        """
        self._targets.clear()
        self._loaded = True
        self._mtime = self._current_mtime()

        if self._mtime is None:
            if self._config_path:
                logger.warning(f"Target configuration not found: {self._config_path}")
            return 0

        try:
            with open(self._config_path, encoding="utf-8") as f:
                document = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read target configuration {self._config_path}: {e}")
            return 0

        if not isinstance(document, dict):
            logger.error(f"Target configuration must be a JSON object: {self._config_path}")
            return 0

        self._targets.extend(load_targets(extract_project_list(document)))
        logger.info(f"Loaded {len(self._targets)} target(s) from {self._config_path}")
        return len(self._targets)

    def get(self, target_id: str) -> Target | None:
        """Look up a descriptor by ID."""
        for target in self.targets:
            if target.id == target_id:
                return target
        return None

    def resolve(self, target_ids: Iterable[str]) -> list[Target]:
        """Map IDs to descriptors, preserving order.

        Raises:
            TargetConfigError: If any ID is unknown
        """
        target_ids = list(target_ids)
        by_id = {t.id: t for t in self.targets}
        missing = [tid for tid in target_ids if tid not in by_id]
        if missing:
            raise TargetConfigError(f"Unknown target(s): {', '.join(missing)}")
        return [by_id[tid] for tid in target_ids]
