"""
Installation manifests.

Each scope keeps a JSON manifest recording installed agents and their
enabled/disabled state.
"""

from agentry.manifest.store import ManifestStore
from agentry.manifest.types import (
    EffectiveState,
    Manifest,
    ManifestEntry,
    utc_now,
)

__all__ = [
    "EffectiveState",
    "Manifest",
    "ManifestEntry",
    "ManifestStore",
    "utc_now",
]
