"""
Storage locations for the two installation scopes.

Layout (per scope):
    <base>/.agentry/definitions/<identifier>.md
    <base>/.agentry/sub-commands/<name>.md
    <base>/.agentry-agents.json            (manifest, sibling of the root)

The user scope base is the home directory; the project scope base is the
project directory (current working directory by default).

Resolution is pure: nothing is created on disk until ensure() is called.
"""

from __future__ import annotations

import enum as _enum
import pathlib as _pathlib
import typing as _typing

import agentry.constants as constants
import agentry.errors as errors

if _typing.TYPE_CHECKING:
    import agentry.config.settings as _settings


class Scope(str, _enum.Enum):
    """Installation scope."""

    USER = "user"
    PROJECT = "project"

    @classmethod
    def from_flag(cls, project: bool) -> Scope:
        """Map a --project style flag to a scope."""
        return cls.PROJECT if project else cls.USER

    def __str__(self) -> str:
        return self.value


class PathKind(str, _enum.Enum):
    """Logical kinds of storage location."""

    ROOT = "root"
    DEFINITIONS = "definitions"
    SUB_COMMANDS = "sub-commands"
    MANIFEST = "manifest"


class StorageLocator:
    """
    Resolves scopes and path kinds into concrete paths.

    Holds only the two base directories; every call with the same
    arguments returns the same path.
    """

    def __init__(
        self,
        user_base: _pathlib.Path,
        project_base: _pathlib.Path,
        dir_name: str = constants.DEFAULT_DIR_NAME,
    ) -> None:
        self._bases = {
            Scope.USER: user_base.expanduser().absolute(),
            Scope.PROJECT: project_base.expanduser().absolute(),
        }
        self._dir_name = dir_name

    @classmethod
    def from_settings(cls, settings: _settings.Settings) -> StorageLocator:
        """Build a locator from loaded settings."""
        return cls(
            user_base=settings.home_dir,
            project_base=settings.project_dir,
            dir_name=settings.dir_name,
        )

    def base(self, scope: Scope) -> _pathlib.Path:
        """Base directory (home or project) for a scope."""
        return self._bases[Scope(scope)]

    def resolve(self, scope: Scope, kind: PathKind) -> _pathlib.Path:
        """
        Resolve a scope and kind to an absolute path.

        Args:
            scope: User or project scope.
            kind: Which location to resolve.

        Returns:
            Absolute path. Directories are not created.
        """
        base = self.base(scope)
        root = base / self._dir_name
        kind = PathKind(kind)
        if kind is PathKind.ROOT:
            return root
        if kind is PathKind.DEFINITIONS:
            return root / constants.DEFINITIONS_DIR_NAME
        if kind is PathKind.SUB_COMMANDS:
            return root / constants.SUB_COMMANDS_DIR_NAME
        return base / f"{self._dir_name}{constants.MANIFEST_SUFFIX}"

    def _file_in(self, scope: Scope, kind: PathKind, name: str) -> _pathlib.Path:
        directory = self.resolve(scope, kind)
        path = directory / (name + constants.DEFINITION_SUFFIX)
        if not name or path.parent != directory:
            raise errors.InvalidIdentifierError(
                f"Name '{name}' does not resolve inside {directory}"
            )
        return path

    def definition_path(self, scope: Scope, identifier: str) -> _pathlib.Path:
        """
        Path of the definition file for an identifier.

        Raises:
            InvalidIdentifierError: If the name would leave the directory.
        """
        return self._file_in(scope, PathKind.DEFINITIONS, identifier)

    def sub_command_path(self, scope: Scope, name: str) -> _pathlib.Path:
        """
        Path of a companion command file.

        Raises:
            InvalidIdentifierError: If the name would leave the directory.
        """
        return self._file_in(scope, PathKind.SUB_COMMANDS, name)

    def ensure(self, scope: Scope, kind: PathKind) -> _pathlib.Path:
        """
        Resolve a location and create it (or its parent, for the manifest).

        Returns:
            The resolved path.
        """
        path = self.resolve(scope, kind)
        if PathKind(kind) is PathKind.MANIFEST:
            path.parent.mkdir(parents=True, exist_ok=True)
        else:
            path.mkdir(parents=True, exist_ok=True)
        return path

    def to_dict(self) -> dict[str, _typing.Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            scope.value: {
                kind.value: str(self.resolve(scope, kind)) for kind in PathKind
            }
            for scope in Scope
        }
