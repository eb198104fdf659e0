"""
Content materializer: filesystem side effects for definition payloads.

Two write paths exist and are kept apart:
- copy_as_is writes the definition's raw content unchanged (install,
  update, sync force-copy)
- regenerate writes a canonical file rebuilt from the parsed fields plus
  the original body (normalize)

The materializer never touches a manifest. Write failures surface as
MaterializationError before the caller has saved anything.
"""

from __future__ import annotations

import logging as _logging
import os as _os
import pathlib as _pathlib
import shutil as _shutil

import agentry.config.paths as paths
import agentry.constants as constants
import agentry.definitions.definition as definition_module
import agentry.errors as errors

_logger = _logging.getLogger(__name__)


class Materializer:
    """Writes definitions and companion commands into a scope."""

    def __init__(self, locator: paths.StorageLocator) -> None:
        self._locator = locator

    @property
    def locator(self) -> paths.StorageLocator:
        return self._locator

    def _write(
        self,
        identifier: str,
        scope: paths.Scope,
        kind: paths.PathKind,
        target: _pathlib.Path,
        content: str,
    ) -> _pathlib.Path:
        try:
            self._locator.ensure(scope, kind)
            target.write_text(content, encoding="utf-8", newline="")
        except OSError as e:
            raise errors.MaterializationError(identifier, e.strerror or str(e)) from e
        _logger.debug("Wrote %s", target)
        return target

    def copy_as_is(
        self,
        definition: definition_module.Definition,
        scope: paths.Scope,
    ) -> _pathlib.Path:
        """
        Write the definition's raw content into a scope.

        Returns:
            Path written.

        Raises:
            MaterializationError: If the file cannot be written.
        """
        target = self._locator.definition_path(scope, definition.identifier)
        return self._write(
            definition.identifier,
            scope,
            paths.PathKind.DEFINITIONS,
            target,
            definition.raw_content,
        )

    def regenerate(
        self,
        definition: definition_module.Definition,
        scope: paths.Scope,
    ) -> _pathlib.Path:
        """
        Write a canonical file rebuilt from the definition's fields.

        Returns:
            Path written.

        Raises:
            MaterializationError: If the file cannot be written.
        """
        target = self._locator.definition_path(scope, definition.identifier)
        return self._write(
            definition.identifier,
            scope,
            paths.PathKind.DEFINITIONS,
            target,
            definition_module.render_canonical(definition),
        )

    def copy_sub_command(
        self,
        source: _pathlib.Path,
        scope: paths.Scope,
    ) -> _pathlib.Path:
        """
        Copy a companion command file into a scope, keeping its name.

        Raises:
            MaterializationError: If the copy fails.
        """
        target = self._locator.sub_command_path(scope, source.stem)
        if source.resolve() == target.resolve():
            return target
        try:
            self._locator.ensure(scope, paths.PathKind.SUB_COMMANDS)
            _shutil.copyfile(source, target)
        except OSError as e:
            raise errors.MaterializationError(source.stem, e.strerror or str(e)) from e
        _logger.debug("Copied command %s to %s", source.stem, target)
        return target

    def read_installed(self, scope: paths.Scope, identifier: str) -> str | None:
        """Current content of an installed definition, or None if absent."""
        path = self._locator.definition_path(scope, identifier)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise errors.MaterializationError(identifier, str(e)) from e

    def backup(self, path: _pathlib.Path) -> _pathlib.Path:
        """
        Move a file aside with the backup suffix.

        An older backup is replaced.

        Raises:
            MaterializationError: If the rename fails.
        """
        target = path.with_name(path.name + constants.BACKUP_SUFFIX)
        try:
            _os.replace(path, target)
        except OSError as e:
            raise errors.MaterializationError(path.stem, e.strerror or str(e)) from e
        _logger.info("Backed up %s to %s", path, target)
        return target

    def backup_definition(self, scope: paths.Scope, identifier: str) -> _pathlib.Path:
        """Back up the installed definition file of an identifier."""
        return self.backup(self._locator.definition_path(scope, identifier))

    def _remove(self, path: _pathlib.Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            _logger.warning("Could not remove %s: %s", path, e)
            return False
        _logger.debug("Removed %s", path)
        return True

    def remove_definition(self, scope: paths.Scope, identifier: str) -> bool:
        """
        Delete an installed definition file. Missing files are fine.

        Returns:
            True if a file was deleted.
        """
        return self._remove(self._locator.definition_path(scope, identifier))

    def remove_sub_command(self, scope: paths.Scope, name: str) -> bool:
        """
        Delete a companion command file. Missing files are fine.

        Names that would resolve outside the scope's command directory
        are refused and logged.

        Returns:
            True if a file was deleted.
        """
        try:
            path = self._locator.sub_command_path(scope, name)
        except errors.InvalidIdentifierError as e:
            _logger.warning("Not removing command: %s", e)
            return False
        return self._remove(path)
