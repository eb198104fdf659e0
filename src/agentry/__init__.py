"""
Agentry - agent template registry

Installs, enables/disables and syncs markdown agent templates between a
user-level directory and a project-level directory.
"""

import importlib.metadata as _metadata

# Version is defined in pyproject.toml - read it and parse into tuple (primary representation)
_raw_version = _metadata.version("agentry")
__version_info__: tuple[int, int, int] = tuple(int(x) for x in _raw_version.split(".")[:3])  # type: ignore[assignment]
__version__: str = ".".join(str(x) for x in __version_info__)
__author__ = "Agentry Contributors"

from agentry.config import Settings  # noqa: E402
from agentry.registry import AgentRegistry  # noqa: E402

__all__ = ["__version__", "__version_info__", "AgentRegistry", "Settings"]
