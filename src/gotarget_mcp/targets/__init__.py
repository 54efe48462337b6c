"""Target descriptors, configuration loading and path layout."""

from .catalog import TargetCatalog, load_targets
from .descriptor import Target, construct
from .selection import SelectionStore, default_matches, filter_ids

__all__ = [
    "Target",
    "TargetCatalog",
    "SelectionStore",
    "construct",
    "default_matches",
    "filter_ids",
    "load_targets",
]
