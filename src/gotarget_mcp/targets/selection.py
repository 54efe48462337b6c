"""Target selection - match filters and persisted per-action choices.

Selections are remembered per workspace and action in a small JSON file:

    {"/path/to/workspace": {"build": [{"label": "app.linux_amd64"}]}}
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterable

from ..utils.platform import host_arch, host_os
from .paths import DEBUG, RELEASE

logger = logging.getLogger(__name__)

ACTIONS = ("build", "start", "stop", "debug")


def default_matches(action: str) -> list[str]:
    """Match tokens that narrow the candidate list for an action."""
    if action == "build":
        return [RELEASE]
    if action == "start":
        return [RELEASE, host_arch(), host_os()]
    if action in ("stop", "debug"):
        return [DEBUG, host_arch(), host_os()]
    raise ValueError(f"Unknown action: {action}")


def filter_ids(ids: Iterable[str], matches: Iterable[str] | None) -> list[str]:
    """Keep IDs where every match token equals one ``.``-separated segment."""
    tokens = list(matches or [])
    result = []
    for target_id in ids:
        segments = target_id.split(".")
        if all(token in segments for token in tokens):
            result.append(target_id)
    return result


class SelectionStore:
    """Persisted target choices keyed by workspace and action."""

    def __init__(self, path: str):
        self._path = path

    @property
    def path(self) -> str:
        return self._path

    def _read(self) -> dict:
        if not os.path.isfile(self._path):
            return {}
        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable selection file {self._path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def load(self, workspace: str, action: str, available: Iterable[str]) -> list[str]:
        """Remembered IDs for an action, restricted to the available ones.

        Falls back to every available ID when nothing was saved.
        """
        available = list(available)
        project = self._read().get(workspace)
        entries = project.get(action) if isinstance(project, dict) else None
        if not isinstance(entries, list):
            return available

        result = []
        for entry in entries:
            label = entry.get("label") if isinstance(entry, dict) else None
            if label in available and label not in result:
                result.append(label)
        return result

    def save(self, workspace: str, action: str, target_ids: Iterable[str]) -> None:
        """Remember the chosen IDs for an action."""
        data = self._read()
        project = data.get(workspace)
        if not isinstance(project, dict):
            project = {}
            data[workspace] = project
        project[action] = [{"label": tid} for tid in target_ids]

        directory = os.path.dirname(self._path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self._path, "w", encoding="utf-8") as f:
            json.dump(data, f)
