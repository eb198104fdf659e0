"""
Tests for the Manifest model.

Tests verify that:
- is_enabled follows the explicit lists, then entry presence
- Mutations keep enabledAgents and disabledAgents disjoint
- The camelCase JSON shape is produced and accepted
"""

import datetime as _datetime
import random as _random

import pytest as _pytest

import agentry.config.paths as paths
import agentry.manifest.types as types

T1 = _datetime.datetime(2024, 1, 1, 12, 0, tzinfo=_datetime.timezone.utc)


def _entry(**kwargs) -> types.ManifestEntry:
    return types.ManifestEntry(installed_at=T1, **kwargs)


class TestIsEnabled:
    """Tests for Manifest.is_enabled()."""

    def test_unknown_identifier(self) -> None:
        """An identifier with no entry is not enabled."""
        assert not types.Manifest().is_enabled("alpha")

    def test_entry_without_override_is_enabled(self) -> None:
        """Install implies enabled."""
        manifest = types.Manifest(installed_agents={"alpha": _entry()})
        assert manifest.is_enabled("alpha")

    def test_explicit_lists_win(self) -> None:
        """Explicit enabled/disabled membership decides."""
        manifest = types.Manifest(
            installed_agents={"alpha": _entry(), "beta": _entry()},
            disabled_agents=["beta"],
        )
        assert manifest.is_enabled("alpha")
        assert not manifest.is_enabled("beta")


class TestMutations:
    """Tests for add_entry/remove_entry/set_enabled."""

    def test_add_entry_enabled(self) -> None:
        """add_entry records the entry and its state."""
        manifest = types.Manifest()
        manifest.add_entry("alpha", _entry())
        assert manifest.has_entry("alpha")
        assert manifest.enabled_agents == ["alpha"]

    def test_add_entry_disabled(self) -> None:
        """add_entry can record a disabled entry."""
        manifest = types.Manifest()
        manifest.add_entry("alpha", _entry(), enabled=False)
        assert manifest.disabled_agents == ["alpha"]
        assert not manifest.is_enabled("alpha")

    def test_set_enabled_moves_between_lists(self) -> None:
        """Enabling removes from disabled and vice versa."""
        manifest = types.Manifest()
        manifest.add_entry("alpha", _entry())
        manifest.set_enabled("alpha", False)
        assert manifest.enabled_agents == []
        assert manifest.disabled_agents == ["alpha"]
        manifest.set_enabled("alpha", True)
        assert manifest.enabled_agents == ["alpha"]
        assert manifest.disabled_agents == []

    def test_remove_entry_clears_lists(self) -> None:
        """Removal drops the entry and every list membership."""
        manifest = types.Manifest()
        manifest.add_entry("alpha", _entry(), enabled=False)
        assert manifest.remove_entry("alpha")
        assert manifest.installed_agents == {}
        assert manifest.disabled_agents == []
        assert not manifest.remove_entry("alpha")

    def test_mutual_exclusion_under_random_toggles(self) -> None:
        """No identifier is ever in both lists."""
        rng = _random.Random(7)
        names = ["a", "b", "c", "d"]
        manifest = types.Manifest()
        for name in names:
            manifest.add_entry(name, _entry())

        for _ in range(200):
            manifest.set_enabled(rng.choice(names), rng.random() < 0.5)
            overlap = set(manifest.enabled_agents) & set(manifest.disabled_agents)
            assert overlap == set()
            assert len(manifest.enabled_agents) == len(set(manifest.enabled_agents))

    def test_clone_is_independent(self) -> None:
        """Changing a clone leaves the original alone."""
        original = types.Manifest()
        original.add_entry("alpha", _entry())
        copy = original.clone()
        copy.set_enabled("alpha", False)
        copy.installed_agents["alpha"].version = "9.9.9"
        assert original.enabled_agents == ["alpha"]
        assert original.installed_agents["alpha"].version == "1.0.0"


class TestSerialization:
    """Tests for the on-disk JSON shape."""

    def test_camel_case_keys(self) -> None:
        """Keys follow the file format."""
        manifest = types.Manifest()
        manifest.add_entry(
            "alpha",
            _entry(version="1.2.0", scope=paths.Scope.PROJECT),
        )
        data = manifest.to_json_dict()
        assert data["installedAgents"]["alpha"] == {
            "version": "1.2.0",
            "installedAt": "2024-01-01T12:00:00Z",
            "scope": "project",
        }
        assert data["enabledAgents"] == ["alpha"]
        assert data["disabledAgents"] == []
        assert data["version"] == "1.0.0"
        assert "lastSync" not in data

    def test_accepts_file_shape(self) -> None:
        """A document written by another tool loads."""
        manifest = types.Manifest.model_validate(
            {
                "installedAgents": {
                    "alpha": {
                        "version": "1.0.0",
                        "installedAt": "2024-01-01T12:00:00.000Z",
                        "updatedAt": "2024-02-01T12:00:00.000Z",
                        "scope": "user",
                        "source": "legacy",
                    }
                },
                "enabledAgents": ["alpha"],
                "disabledAgents": [],
            }
        )
        entry = manifest.installed_agents["alpha"]
        assert entry.installed_at == T1
        assert entry.updated_at is not None
        assert entry.model_extra == {"source": "legacy"}

    def test_overlapping_lists_read_as_disabled(self) -> None:
        """A file listing an identifier in both lists is repaired on load."""
        manifest = types.Manifest.model_validate(
            {
                "installedAgents": {"alpha": {"installedAt": "2024-01-01T12:00:00Z"}},
                "enabledAgents": ["alpha", "alpha"],
                "disabledAgents": ["alpha"],
            }
        )
        assert manifest.enabled_agents == []
        assert manifest.disabled_agents == ["alpha"]

    def test_unknown_scope_rejected(self) -> None:
        """Scope must be user or project."""
        with _pytest.raises(ValueError):
            types.ManifestEntry(scope="global")


class TestEffectiveState:
    """Tests for the read-time merge of both manifests."""

    def test_scopes_of_user_first(self) -> None:
        """scopes_of lists user before project."""
        user = types.Manifest()
        project = types.Manifest()
        user.add_entry("alpha", _entry())
        project.add_entry("alpha", _entry(scope=paths.Scope.PROJECT))
        project.add_entry("beta", _entry(scope=paths.Scope.PROJECT))
        state = types.EffectiveState(user=user, project=project)

        assert state.scopes_of("alpha") == [paths.Scope.USER, paths.Scope.PROJECT]
        assert state.scopes_of("beta") == [paths.Scope.PROJECT]
        assert state.identifiers() == ["alpha", "beta"]
        assert not state.is_registered("gamma")

    def test_enabled_in_any_scope(self) -> None:
        """An agent disabled in one scope but enabled in the other is enabled."""
        user = types.Manifest()
        project = types.Manifest()
        user.add_entry("alpha", _entry(), enabled=False)
        project.add_entry("alpha", _entry(scope=paths.Scope.PROJECT))
        state = types.EffectiveState(user=user, project=project)
        assert state.is_enabled("alpha")
