"""
Manifest persistence.

A missing manifest file is a first run and loads as an empty manifest.
A present file that cannot be read or parsed raises ManifestError.

Saves are atomic: the document is written to a temporary file in the same
directory and moved over the target with ``os.replace``.
"""

from __future__ import annotations

import json as _json
import logging as _logging
import os as _os
import pathlib as _pathlib
import tempfile as _tempfile

import pydantic as _pydantic

import agentry.config.paths as paths
import agentry.errors as errors
import agentry.manifest.types as types

_logger = _logging.getLogger(__name__)


class ManifestStore:
    """Loads and saves the per-scope manifests."""

    def __init__(self, locator: paths.StorageLocator) -> None:
        self._locator = locator

    def path(self, scope: paths.Scope) -> _pathlib.Path:
        """Path of the manifest file for a scope."""
        return self._locator.resolve(scope, paths.PathKind.MANIFEST)

    def load(self, scope: paths.Scope) -> types.Manifest:
        """
        Load the manifest for a scope.

        Returns:
            The stored manifest, or a fresh empty one if the file is absent.

        Raises:
            ManifestError: If the file exists but is unreadable or invalid.
        """
        path = self.path(scope)
        if not path.exists():
            _logger.debug("No manifest at %s, starting empty", path)
            return types.Manifest()

        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise errors.ManifestError(f"Cannot read manifest {path}: {e}") from e

        if not content.strip():
            return types.Manifest()

        try:
            data = _json.loads(content)
        except _json.JSONDecodeError as e:
            raise errors.ManifestError(f"Corrupt manifest {path}: {e}") from e

        if not isinstance(data, dict):
            raise errors.ManifestError(f"Corrupt manifest {path}: expected a JSON object")

        try:
            return types.Manifest.model_validate(data)
        except _pydantic.ValidationError as e:
            raise errors.ManifestError(f"Invalid manifest {path}: {e}") from e

    def save(self, scope: paths.Scope, manifest: types.Manifest) -> _pathlib.Path:
        """
        Write the manifest for a scope atomically.

        Returns:
            Path written.

        Raises:
            ManifestError: If the file cannot be written.
        """
        try:
            path = self._locator.ensure(scope, paths.PathKind.MANIFEST)
        except OSError as e:
            raise errors.ManifestError(f"Cannot create manifest directory: {e}") from e

        content = _json.dumps(manifest.to_json_dict(), indent=2) + "\n"

        temp_name: str | None = None
        try:
            fd, temp_name = _tempfile.mkstemp(
                prefix=f".{path.name}.",
                suffix=".tmp",
                dir=path.parent,
            )
            with _os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            _os.replace(temp_name, path)
        except OSError as e:
            if temp_name is not None:
                _pathlib.Path(temp_name).unlink(missing_ok=True)
            raise errors.ManifestError(f"Cannot write manifest {path}: {e}") from e

        _logger.debug("Saved %s manifest to %s", scope, path)
        return path

    def check_external_change(
        self,
        scope: paths.Scope,
        loaded: types.Manifest,
    ) -> bool:
        """
        Re-read the manifest and compare it with the copy loaded earlier.

        Logs a warning when another process changed the file; the next save
        still overwrites it.

        Returns:
            True if the file on disk no longer matches ``loaded``.
        """
        try:
            current = self.load(scope)
        except errors.ManifestError as e:
            _logger.warning("%s manifest became unreadable since load: %s", scope, e)
            return True

        if current != loaded:
            _logger.warning(
                "%s manifest at %s changed since it was loaded; overwriting",
                scope,
                self.path(scope),
            )
            return True
        return False
