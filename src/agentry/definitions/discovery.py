"""
Definition discovery from definition directories.

Definitions are ``<identifier>.md`` files directly inside a directory.
Directories are scanned in the order given; when the same identifier is
found twice the later directory wins.

Typical sources (lowest to highest priority):
1. The catalog bundled with the package (install/update source)
2. ~/.agentry/definitions/ - User scope
3. <project>/.agentry/definitions/ - Project scope
"""

from __future__ import annotations

import dataclasses as _dataclasses
import logging as _logging
import pathlib as _pathlib
import typing as _typing

import agentry.constants as constants
import agentry.definitions.definition as definition_module
import agentry.errors as errors

_logger = _logging.getLogger(__name__)


@_dataclasses.dataclass(frozen=True)
class SearchPath:
    """A directory to scan and the scope its definitions belong to."""

    path: _pathlib.Path
    scope: str | None = None


def iter_definition_files(directory: _pathlib.Path) -> list[_pathlib.Path]:
    """List definition files in a directory, sorted by name."""
    if not directory.is_dir():
        return []
    return sorted(
        p
        for p in directory.iterdir()
        if p.is_file() and p.suffix == constants.DEFINITION_SUFFIX
    )


class DefinitionDiscovery:
    """
    Discovers definitions from a list of directories.

    Each pass re-reads every file; nothing is cached between passes.
    """

    def __init__(self, search_paths: list[SearchPath]) -> None:
        """
        Initialize definition discovery.

        Args:
            search_paths: Directories to scan, lowest priority first.
        """
        self._search_paths = list(search_paths)

    def discover(self) -> dict[str, definition_module.Definition]:
        """
        Discover all definitions from search paths.

        Later directories override earlier ones (by identifier). Files that
        cannot be parsed are logged and skipped.

        Returns:
            Dict mapping identifier to Definition.
        """
        definitions: dict[str, definition_module.Definition] = {}
        for item in self.discover_all(include_errors=True):
            if isinstance(item, tuple):
                path, error = item
                _logger.warning("Skipping %s: %s", path, error)
                continue
            definitions[item.identifier] = item
        return definitions

    def discover_all(
        self,
        *,
        include_errors: bool = False,
    ) -> _typing.Iterator[
        definition_module.Definition | tuple[_pathlib.Path, Exception]
    ]:
        """
        Discover all definitions, optionally including errors.

        Unlike discover(), duplicates across directories are all yielded.

        Args:
            include_errors: If True, yield (path, exception) for failures.

        Yields:
            Definition instances, or (path, exception) tuples if include_errors.
        """
        for search_path in self._search_paths:
            for path in iter_definition_files(search_path.path):
                try:
                    yield definition_module.load_definition(path, scope=search_path.scope)
                except (FileNotFoundError, errors.MalformedDefinitionError) as e:
                    if include_errors:
                        yield (path, e)
