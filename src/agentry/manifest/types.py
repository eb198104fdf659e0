"""
Manifest data model.

One manifest exists per scope. On disk it is a JSON document:

    {
      "installedAgents": {"<id>": {"version": ..., "installedAt": ..., "updatedAt": ..., "scope": ...}},
      "enabledAgents": ["<id>", ...],
      "disabledAgents": ["<id>", ...],
      "version": "1.0.0",
      "lastSync": "..."
    }

An identifier never appears in both ``enabledAgents`` and
``disabledAgents``; every mutation below keeps it that way.
"""

from __future__ import annotations

import datetime as _datetime
import typing as _typing

import pydantic as _pydantic

import agentry.config.paths as paths
import agentry.constants as constants


def utc_now() -> _datetime.datetime:
    """Current time as an aware UTC datetime."""
    return _datetime.datetime.now(_datetime.timezone.utc)


class ManifestEntry(_pydantic.BaseModel):
    """Record of one installed definition within one scope."""

    model_config = _pydantic.ConfigDict(
        extra="allow",
        populate_by_name=True,
    )

    version: str = _pydantic.Field(
        default=constants.DEFAULT_DEFINITION_VERSION,
        description="Definition version captured at install/update time",
    )

    installed_at: _datetime.datetime = _pydantic.Field(
        default_factory=utc_now,
        alias="installedAt",
        description="When the definition was first installed",
    )

    updated_at: _datetime.datetime | None = _pydantic.Field(
        default=None,
        alias="updatedAt",
        description="When the definition was last updated",
    )

    scope: paths.Scope = _pydantic.Field(
        default=paths.Scope.USER,
        description="Scope the definition was installed into",
    )


class Manifest(_pydantic.BaseModel):
    """
    Installation state of one scope.

    The mutating helpers change this instance in place; the reconciler
    works on copies (see ``clone``) so its inputs are never touched.
    """

    model_config = _pydantic.ConfigDict(
        extra="allow",
        populate_by_name=True,
    )

    installed_agents: dict[str, ManifestEntry] = _pydantic.Field(
        default_factory=dict,
        alias="installedAgents",
    )

    enabled_agents: list[str] = _pydantic.Field(
        default_factory=list,
        alias="enabledAgents",
    )

    disabled_agents: list[str] = _pydantic.Field(
        default_factory=list,
        alias="disabledAgents",
    )

    version: str = _pydantic.Field(
        default=constants.MANIFEST_SCHEMA_VERSION,
        description="Manifest schema version",
    )

    last_sync: _datetime.datetime | None = _pydantic.Field(
        default=None,
        alias="lastSync",
    )

    @_pydantic.field_validator("enabled_agents", "disabled_agents", mode="after")
    @classmethod
    def _dedupe(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))

    @_pydantic.model_validator(mode="after")
    def _exclusive(self) -> Manifest:
        # A file listing an identifier in both lists is read as disabled
        enabled = [i for i in self.enabled_agents if i not in self.disabled_agents]
        if enabled != self.enabled_agents:
            self.enabled_agents = enabled
        return self

    def clone(self) -> Manifest:
        """Deep copy for copy-on-write operations."""
        return self.model_copy(deep=True)

    def has_entry(self, identifier: str) -> bool:
        return identifier in self.installed_agents

    def get_entry(self, identifier: str) -> ManifestEntry | None:
        return self.installed_agents.get(identifier)

    def identifiers(self) -> list[str]:
        """Installed identifiers in insertion order."""
        return list(self.installed_agents)

    def is_enabled(self, identifier: str) -> bool:
        """
        Whether an identifier is enabled.

        Explicit lists win; otherwise an installed entry counts as enabled.
        """
        if identifier in self.enabled_agents:
            return True
        if identifier in self.disabled_agents:
            return False
        return identifier in self.installed_agents

    def set_enabled(self, identifier: str, value: bool) -> None:
        """Move an identifier to the enabled or disabled list."""
        source, target = (
            (self.disabled_agents, self.enabled_agents)
            if value
            else (self.enabled_agents, self.disabled_agents)
        )
        while identifier in source:
            source.remove(identifier)
        if identifier not in target:
            target.append(identifier)

    def add_entry(
        self,
        identifier: str,
        entry: ManifestEntry,
        *,
        enabled: bool = True,
    ) -> None:
        """Add or overwrite an entry and set its enabled state."""
        self.installed_agents[identifier] = entry
        self.set_enabled(identifier, enabled)

    def remove_entry(self, identifier: str) -> bool:
        """
        Remove an entry and its list memberships.

        Returns:
            True if an entry was removed.
        """
        existed = self.installed_agents.pop(identifier, None) is not None
        for listing in (self.enabled_agents, self.disabled_agents):
            while identifier in listing:
                listing.remove(identifier)
        return existed

    def to_json_dict(self) -> dict[str, _typing.Any]:
        """Serialize with camelCase keys and ISO 8601 timestamps."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class EffectiveState(_typing.NamedTuple):
    """Read-time merge of the user and project manifests."""

    user: Manifest
    project: Manifest

    def manifest(self, scope: paths.Scope) -> Manifest:
        return self.project if paths.Scope(scope) is paths.Scope.PROJECT else self.user

    def scopes_of(self, identifier: str) -> list[paths.Scope]:
        """Scopes whose manifest has an entry, user first."""
        return [
            scope
            for scope in (paths.Scope.USER, paths.Scope.PROJECT)
            if self.manifest(scope).has_entry(identifier)
        ]

    def is_registered(self, identifier: str) -> bool:
        return bool(self.scopes_of(identifier))

    def is_enabled(self, identifier: str) -> bool:
        """Enabled if enabled in any scope that has it installed."""
        return any(
            self.manifest(scope).is_enabled(identifier)
            for scope in self.scopes_of(identifier)
        )

    def identifiers(self) -> list[str]:
        """All installed identifiers, user scope first, without duplicates."""
        return list(
            dict.fromkeys([*self.user.identifiers(), *self.project.identifiers()])
        )
