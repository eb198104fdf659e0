"""
Tests for manifest persistence.
"""

import json as _json
import logging as _logging

import pytest as _pytest

import agentry.config as config
import agentry.errors as errors
import agentry.manifest.store as store
import agentry.manifest.types as types


@_pytest.fixture
def manifest_store(locator: config.StorageLocator) -> store.ManifestStore:
    return store.ManifestStore(locator)


class TestLoad:
    """Tests for ManifestStore.load()."""

    def test_missing_file_is_empty(self, manifest_store: store.ManifestStore) -> None:
        """A first run has no manifest and gets an empty one."""
        manifest = manifest_store.load(config.Scope.USER)
        assert manifest == types.Manifest()
        assert not manifest_store.path(config.Scope.USER).exists()

    def test_empty_file_is_empty(self, manifest_store: store.ManifestStore) -> None:
        """A blank file is treated like a missing one."""
        path = manifest_store.path(config.Scope.USER)
        path.write_text("  \n")
        assert manifest_store.load(config.Scope.USER) == types.Manifest()

    def test_corrupt_file_raises(self, manifest_store: store.ManifestStore) -> None:
        """Invalid JSON is not silently discarded."""
        path = manifest_store.path(config.Scope.PROJECT)
        path.write_text("{not json")
        with _pytest.raises(errors.ManifestError, match="Corrupt manifest"):
            manifest_store.load(config.Scope.PROJECT)

    def test_non_object_raises(self, manifest_store: store.ManifestStore) -> None:
        """A JSON array is not a manifest."""
        manifest_store.path(config.Scope.USER).write_text("[]")
        with _pytest.raises(errors.ManifestError):
            manifest_store.load(config.Scope.USER)

    def test_invalid_shape_raises(self, manifest_store: store.ManifestStore) -> None:
        """Wrong field types are reported."""
        manifest_store.path(config.Scope.USER).write_text(
            _json.dumps({"enabledAgents": "alpha"})
        )
        with _pytest.raises(errors.ManifestError, match="Invalid manifest"):
            manifest_store.load(config.Scope.USER)


class TestSave:
    """Tests for ManifestStore.save()."""

    def test_round_trip_preserves_unknown_fields(
        self,
        manifest_store: store.ManifestStore,
    ) -> None:
        """Loading and saving keeps fields this tool does not know."""
        document = {
            "installedAgents": {
                "alpha": {
                    "version": "1.0.0",
                    "installedAt": "2024-01-01T12:00:00Z",
                    "scope": "user",
                    "source": "legacy",
                }
            },
            "enabledAgents": ["alpha"],
            "disabledAgents": [],
            "version": "1.0.0",
            "note": "hand edited",
        }
        path = manifest_store.path(config.Scope.USER)
        path.write_text(_json.dumps(document))

        loaded = manifest_store.load(config.Scope.USER)
        manifest_store.save(config.Scope.USER, loaded)

        assert _json.loads(path.read_text()) == document
        assert manifest_store.load(config.Scope.USER) == loaded

    def test_creates_parent_directory(
        self,
        tmp_path,
    ) -> None:
        """The scope base is created when missing."""
        locator = config.StorageLocator(tmp_path / "new-home", tmp_path / "new-project")
        manifest_store = store.ManifestStore(locator)
        path = manifest_store.save(config.Scope.USER, types.Manifest())
        assert path.is_file()
        assert path.name == ".agentry-agents.json"

    def test_no_temporary_files_left(self, manifest_store: store.ManifestStore) -> None:
        """The temporary file is moved over the target."""
        path = manifest_store.save(config.Scope.PROJECT, types.Manifest())
        assert [p.name for p in path.parent.iterdir() if p.name.endswith(".tmp")] == []

    def test_temp_file_failure_raises_manifest_error(
        self,
        manifest_store: store.ManifestStore,
        monkeypatch: _pytest.MonkeyPatch,
    ) -> None:
        """A failure creating the temporary file is reported as ManifestError."""

        def _fail(*args, **kwargs):
            raise PermissionError(13, "Permission denied")

        monkeypatch.setattr(store._tempfile, "mkstemp", _fail)
        with _pytest.raises(errors.ManifestError, match="Permission denied"):
            manifest_store.save(config.Scope.USER, types.Manifest())

    def test_written_as_indented_json(self, manifest_store: store.ManifestStore) -> None:
        """The file is pretty-printed with camelCase keys."""
        manifest = types.Manifest()
        manifest.add_entry("alpha", types.ManifestEntry())
        path = manifest_store.save(config.Scope.USER, manifest)
        text = path.read_text()
        assert text.startswith('{\n  "installedAgents"')
        assert text.endswith("\n")

    def test_scopes_are_separate(self, manifest_store: store.ManifestStore) -> None:
        """Saving one scope does not touch the other."""
        manifest = types.Manifest()
        manifest.add_entry("alpha", types.ManifestEntry())
        manifest_store.save(config.Scope.USER, manifest)
        assert manifest_store.load(config.Scope.PROJECT) == types.Manifest()


class TestCheckExternalChange:
    """Tests for ManifestStore.check_external_change()."""

    def test_unchanged(self, manifest_store: store.ManifestStore) -> None:
        """No change returns False."""
        loaded = manifest_store.load(config.Scope.USER)
        assert not manifest_store.check_external_change(config.Scope.USER, loaded)

    def test_changed_warns(
        self,
        manifest_store: store.ManifestStore,
        caplog: _pytest.LogCaptureFixture,
    ) -> None:
        """A concurrent write is detected and logged."""
        loaded = manifest_store.load(config.Scope.USER)

        other = types.Manifest()
        other.add_entry("beta", types.ManifestEntry())
        manifest_store.save(config.Scope.USER, other)

        with caplog.at_level(_logging.WARNING, logger="agentry.manifest.store"):
            assert manifest_store.check_external_change(config.Scope.USER, loaded)
        assert any("changed since it was loaded" in r.getMessage() for r in caplog.records)
