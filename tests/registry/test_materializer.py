"""Tests for the content materializer."""

import pathlib as _pathlib
import unittest.mock as _mock

import pytest as _pytest

import agentry.config as config
import agentry.definitions.definition as definition
import agentry.errors as errors
import agentry.registry.materializer as materializer


@_pytest.fixture
def mat(locator: config.StorageLocator) -> materializer.Materializer:
    return materializer.Materializer(locator)


@_pytest.fixture
def alpha() -> definition.Definition:
    return definition.parse_definition(
        "---\nname: alpha\ndescription: First\ntools: Read\n---\n\nBody stays.\n"
    ).unwrap()


class TestWrites:
    """Tests for copy_as_is() and regenerate()."""

    def test_copy_as_is_keeps_bytes(
        self,
        mat: materializer.Materializer,
        alpha: definition.Definition,
        locator: config.StorageLocator,
    ) -> None:
        """The raw content is written byte for byte."""
        path = mat.copy_as_is(alpha, config.Scope.USER)
        assert path == locator.definition_path(config.Scope.USER, "alpha")
        assert path.read_bytes() == alpha.raw_content.encode("utf-8")

    def test_regenerate_writes_canonical(
        self,
        mat: materializer.Materializer,
        alpha: definition.Definition,
    ) -> None:
        """Regenerated files hold the canonical rendering."""
        path = mat.regenerate(alpha, config.Scope.PROJECT)
        assert path.read_text(encoding="utf-8") == definition.render_canonical(alpha)

    def test_write_failure_raises(
        self,
        mat: materializer.Materializer,
        alpha: definition.Definition,
    ) -> None:
        """OS errors surface as MaterializationError."""
        with _mock.patch.object(
            _pathlib.Path,
            "write_text",
            side_effect=PermissionError(13, "Permission denied"),
        ):
            with _pytest.raises(errors.MaterializationError, match="Permission denied"):
                mat.copy_as_is(alpha, config.Scope.USER)

    def test_read_installed(
        self,
        mat: materializer.Materializer,
        alpha: definition.Definition,
    ) -> None:
        """Installed content can be read back; absent files give None."""
        assert mat.read_installed(config.Scope.USER, "alpha") is None
        mat.copy_as_is(alpha, config.Scope.USER)
        assert mat.read_installed(config.Scope.USER, "alpha") is not None


class TestSubCommands:
    """Tests for companion command handling."""

    def test_copy_sub_command(
        self,
        mat: materializer.Materializer,
        tmp_path: _pathlib.Path,
        locator: config.StorageLocator,
    ) -> None:
        """The command is copied under its own name."""
        source = tmp_path / "debug.md"
        source.write_text("Debug $ARGUMENTS\n")
        target = mat.copy_sub_command(source, config.Scope.PROJECT)
        assert target == locator.sub_command_path(config.Scope.PROJECT, "debug")
        assert target.read_text() == "Debug $ARGUMENTS\n"

    def test_copy_onto_itself_is_noop(
        self,
        mat: materializer.Materializer,
        locator: config.StorageLocator,
    ) -> None:
        """Copying a file onto itself leaves it intact."""
        target = locator.sub_command_path(config.Scope.USER, "debug")
        target.parent.mkdir(parents=True)
        target.write_text("same")
        assert mat.copy_sub_command(target, config.Scope.USER) == target
        assert target.read_text() == "same"

    def test_remove_missing_is_fine(self, mat: materializer.Materializer) -> None:
        """Removing an absent file reports False without raising."""
        assert not mat.remove_sub_command(config.Scope.USER, "nope")
        assert not mat.remove_definition(config.Scope.USER, "nope")


class TestBackup:
    """Tests for backup()."""

    def test_backup_moves_file(
        self,
        mat: materializer.Materializer,
        alpha: definition.Definition,
    ) -> None:
        """The installed file is moved aside with a .backup suffix."""
        path = mat.copy_as_is(alpha, config.Scope.USER)
        saved = mat.backup_definition(config.Scope.USER, "alpha")
        assert saved.name == "alpha.md.backup"
        assert saved.is_file()
        assert not path.exists()

    def test_backup_replaces_older_backup(
        self,
        mat: materializer.Materializer,
        tmp_path: _pathlib.Path,
    ) -> None:
        """An existing backup is overwritten."""
        path = tmp_path / "alpha.md"
        (tmp_path / "alpha.md.backup").write_text("old")
        path.write_text("new")
        assert mat.backup(path).read_text() == "new"

    def test_backup_missing_raises(
        self,
        mat: materializer.Materializer,
        tmp_path: _pathlib.Path,
    ) -> None:
        """A missing file cannot be backed up."""
        with _pytest.raises(errors.MaterializationError):
            mat.backup(tmp_path / "missing.md")
