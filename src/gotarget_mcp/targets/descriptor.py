"""Target descriptor - one buildable/runnable program variant.

A descriptor is immutable once constructed. Inheritance is a single
field-by-field merge: every field present on the raw record overwrites the
value copied from the base descriptor. ``name`` and ``key`` always come from
the constructor arguments.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any

from ..errors import TargetConfigError

logger = logging.getLogger(__name__)

# Raw configuration key -> descriptor attribute
RAW_FIELDS: dict[str, str] = {
    "os": "os",
    "arch": "arch",
    "scriptPath": "script_path",
    "buildArgs": "build_args",
    "buildPath": "build_path",
    "buildCopy": "build_copy",
    "startArgs": "start_args",
    "startDelay": "start_delay",
    "stopDelay": "stop_delay",
    "stopPort": "stop_port",
    "dlvFlags": "dlv_flags",
}

# Keys consumed by the loader, not by the descriptor itself
LOADER_KEYS = frozenset({"extends"})

_SEQUENCE_FIELDS = frozenset({"build_args", "build_copy", "start_args", "dlv_flags"})
_DELAY_FIELDS = frozenset({"start_delay", "stop_delay"})


@dataclass(frozen=True)
class Target:
    """Build/run configuration of one program variant."""

    name: str
    key: str
    os: str | None = None
    arch: str | None = None
    script_path: str | None = None
    build_args: tuple[str, ...] = ()
    build_path: str | None = None
    build_copy: tuple[str, ...] = ()
    start_args: tuple[str, ...] = ()
    start_delay: float | None = None
    stop_delay: float | None = None
    stop_port: str | None = None
    dlv_flags: tuple[str, ...] = ()

    @property
    def id(self) -> str:
        """Full identifier in the form ``name.key``."""
        return f"{self.name}.{self.key}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {"id": self.id, "name": self.name, "key": self.key}
        for raw_key, attr in RAW_FIELDS.items():
            value = getattr(self, attr)
            if attr in _SEQUENCE_FIELDS:
                value = list(value)
            result[raw_key] = value
        return result


def _coerce(raw_key: str, attr: str, value: Any) -> Any:
    """Validate and normalize one raw field value."""
    if value is None:
        return () if attr in _SEQUENCE_FIELDS else None

    if attr in _SEQUENCE_FIELDS:
        if isinstance(value, str) or not isinstance(value, (list, tuple)):
            raise TargetConfigError(f"'{raw_key}' must be a list of strings")
        return tuple(str(item) for item in value)

    if attr in _DELAY_FIELDS:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TargetConfigError(f"'{raw_key}' must be a number of seconds")
        if value < 0:
            raise TargetConfigError(f"'{raw_key}' must not be negative")
        return float(value)

    if not isinstance(value, str):
        raise TargetConfigError(f"'{raw_key}' must be a string")
    return value


def construct(
    name: str,
    key: str,
    base: Target | None,
    raw: dict[str, Any],
) -> Target:
    """Create a descriptor from an optional base and a raw override record.

    Args:
        name: Logical program group
        key: Variant key within the group
        base: Previously constructed descriptor to inherit from
        raw: Raw configuration record (camelCase keys)

    Returns:
        New immutable descriptor

    Raises:
        TargetConfigError: If a present field has the wrong type
    """
    overrides: dict[str, Any] = {}
    for raw_key, value in raw.items():
        attr = RAW_FIELDS.get(raw_key)
        if attr is None:
            if raw_key not in LOADER_KEYS:
                logger.debug(f"Ignoring unknown field '{raw_key}' on {name}.{key}")
            continue
        overrides[attr] = _coerce(raw_key, attr, value)

    if base is not None:
        return replace(base, name=name, key=key, **overrides)
    return Target(name=name, key=key, **overrides)
