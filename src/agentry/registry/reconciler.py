"""
Registry reconciler: the install/update/enable/disable/remove/sync
transitions.

Every operation takes an explicit Manifest (or the pair of manifests for
sync) and returns a new one; inputs are never mutated. File writes go
through the Materializer before the new manifest is returned, so a failed
write leaves nothing for the caller to save.
"""

from __future__ import annotations

import dataclasses as _dataclasses
import datetime as _datetime
import enum as _enum
import logging as _logging
import pathlib as _pathlib
import typing as _typing

import agentry.config.paths as paths
import agentry.definitions.definition as definition_module
import agentry.definitions.matching as matching
import agentry.errors as errors
import agentry.manifest.types as types
import agentry.registry.batch as batch
import agentry.registry.materializer as materializer_module

_logger = _logging.getLogger(__name__)


@_dataclasses.dataclass(frozen=True)
class Transition:
    """Result of a single-identifier operation."""

    manifest: types.Manifest
    """Manifest after the operation (a new object)."""

    changed: bool = True
    """False when the operation turned out to be a no-op."""

    written: tuple[_pathlib.Path, ...] = ()
    """Files written, definition first."""

    backup: _pathlib.Path | None = None
    """Backup of a customized file, if one was made."""

    removed: tuple[_pathlib.Path, ...] = ()
    """Files deleted."""


class SyncMode(str, _enum.Enum):
    """How sync picks unregistered definitions."""

    AUTO = "auto"
    SELECTIVE = "selective"


@_dataclasses.dataclass(frozen=True)
class SyncResult:
    """Outcome of a sync pass."""

    state: types.EffectiveState
    registered: list[str]
    already_registered: list[str]
    skipped: list[str]
    unknown_selected: list[str] = _dataclasses.field(default_factory=list)
    orphaned_sub_commands: list[_pathlib.Path] = _dataclasses.field(default_factory=list)

    @property
    def candidates(self) -> list[str]:
        """Unregistered identifiers this pass could have registered."""
        return [*self.registered, *self.skipped]

    def to_dict(self) -> dict[str, _typing.Any]:
        return {
            "registered": list(self.registered),
            "already_registered": list(self.already_registered),
            "skipped": list(self.skipped),
            "unknown_selected": list(self.unknown_selected),
            "orphaned_sub_commands": [str(p) for p in self.orphaned_sub_commands],
        }


def _now(now: _datetime.datetime | None) -> _datetime.datetime:
    return now if now is not None else types.utc_now()


def _copy_companion(
    materializer: materializer_module.Materializer,
    companion: _pathlib.Path | None,
    scope: paths.Scope,
    identifier: str,
) -> list[_pathlib.Path]:
    """Copy a companion command; failures are logged, not raised."""
    if companion is None:
        return []
    try:
        return [materializer.copy_sub_command(companion, scope)]
    except errors.MaterializationError as e:
        _logger.warning("Companion command for %s not copied: %s", identifier, e)
        return []


# =============================================================================
# Install / Update
# =============================================================================


def install(
    manifest: types.Manifest,
    identifier: str,
    definition: definition_module.Definition | None,
    scope: paths.Scope,
    materializer: materializer_module.Materializer,
    companion: _pathlib.Path | None = None,
    *,
    force: bool = False,
    enabled: bool = True,
    now: _datetime.datetime | None = None,
) -> Transition:
    """
    Install a definition into a scope.

    Args:
        manifest: Manifest of the target scope.
        identifier: Requested identifier.
        definition: Source definition, None if it could not be found.
        scope: Target scope.
        materializer: Writes the files.
        companion: Companion command file to copy alongside, if any.
        force: Reinstall over an existing entry.
        enabled: Enabled state recorded for the new entry.
        now: Timestamp to record.

    Returns:
        Transition with the new manifest.

    Raises:
        InvalidIdentifierError: If the identifier is not a safe name.
        DefinitionNotFoundError: If ``definition`` is None.
        AlreadyInstalledError: If an entry exists and ``force`` is False.
        MaterializationError: If the definition cannot be written.
    """
    definition_module.validate_identifier(identifier)
    if definition is None:
        raise errors.DefinitionNotFoundError(identifier)

    existing = manifest.get_entry(identifier)
    if existing is not None and not force:
        raise errors.AlreadyInstalledError(identifier, str(scope))

    written = [materializer.copy_as_is(definition, scope)]
    written.extend(_copy_companion(materializer, companion, scope, identifier))

    timestamp = _now(now)
    if existing is not None:
        entry = existing.model_copy(
            update={
                "version": definition.version,
                "updated_at": timestamp,
                "scope": paths.Scope(scope),
            }
        )
    else:
        entry = types.ManifestEntry(
            version=definition.version,
            installed_at=timestamp,
            scope=paths.Scope(scope),
        )

    new = manifest.clone()
    new.add_entry(identifier, entry, enabled=enabled)
    _logger.debug("Installed %s into %s scope", identifier, scope)
    return Transition(manifest=new, written=tuple(written))


def update(
    manifest: types.Manifest,
    identifier: str,
    definition: definition_module.Definition | None,
    scope: paths.Scope,
    materializer: materializer_module.Materializer,
    companion: _pathlib.Path | None = None,
    *,
    force: bool = False,
    preserve_custom: bool = False,
    now: _datetime.datetime | None = None,
) -> Transition:
    """
    Refresh an installed definition from its source.

    Keeps ``installed_at`` and the enabled state, sets ``updated_at``.
    Without ``force`` an entry whose version and content already match
    the source is left alone (``changed`` is False).

    With ``preserve_custom`` an installed file that differs from the source
    is moved to ``<file>.backup`` before being overwritten. This is a
    backup, not a merge.

    Raises:
        NotInstalledError: If the scope has no entry.
        DefinitionNotFoundError: If ``definition`` is None.
        MaterializationError: If a file cannot be written.
    """
    entry = manifest.get_entry(identifier)
    if entry is None:
        raise errors.NotInstalledError(identifier, str(scope))
    if definition is None:
        raise errors.DefinitionNotFoundError(identifier)

    current = materializer.read_installed(scope, identifier)
    if (
        not force
        and entry.version == definition.version
        and current == definition.raw_content
    ):
        return Transition(manifest=manifest.clone(), changed=False)

    backup = None
    if preserve_custom and current is not None and current != definition.raw_content:
        backup = materializer.backup_definition(scope, identifier)

    written = [materializer.copy_as_is(definition, scope)]
    written.extend(_copy_companion(materializer, companion, scope, identifier))

    new = manifest.clone()
    new.installed_agents[identifier] = entry.model_copy(
        update={"version": definition.version, "updated_at": _now(now)}
    )
    _logger.debug("Updated %s in %s scope", identifier, scope)
    return Transition(manifest=new, written=tuple(written), backup=backup)


# =============================================================================
# Enable / Disable / Remove
# =============================================================================


def _set_state(manifest: types.Manifest, identifier: str, value: bool) -> types.Manifest:
    if not manifest.has_entry(identifier):
        raise errors.NotInstalledError(identifier)
    if manifest.is_enabled(identifier) == value:
        raise errors.AlreadyInStateError(identifier, "enabled" if value else "disabled")
    new = manifest.clone()
    new.set_enabled(identifier, value)
    return new


def enable(manifest: types.Manifest, identifier: str) -> types.Manifest:
    """
    Mark an installed identifier enabled.

    Raises:
        NotInstalledError: If there is no entry.
        AlreadyInStateError: If it is already enabled.
    """
    return _set_state(manifest, identifier, True)


def disable(manifest: types.Manifest, identifier: str) -> types.Manifest:
    """
    Mark an installed identifier disabled.

    Raises:
        NotInstalledError: If there is no entry.
        AlreadyInStateError: If it is already disabled.
    """
    return _set_state(manifest, identifier, False)


def remove(
    manifest: types.Manifest,
    identifier: str,
    scope: paths.Scope,
    materializer: materializer_module.Materializer,
    sub_commands: _typing.Iterable[str] = (),
) -> Transition:
    """
    Uninstall an identifier from a scope.

    File deletion is best-effort; the entry and its list memberships are
    always dropped. Every companion command in ``sub_commands`` is deleted
    from the scope as well.

    Raises:
        NotInstalledError: If there is no entry.
    """
    if not manifest.has_entry(identifier):
        raise errors.NotInstalledError(identifier, str(scope))

    removed: list[_pathlib.Path] = []
    locator = materializer.locator
    if materializer.remove_definition(scope, identifier):
        removed.append(locator.definition_path(scope, identifier))
    for name in sub_commands:
        if materializer.remove_sub_command(scope, name):
            removed.append(locator.sub_command_path(scope, name))

    new = manifest.clone()
    new.remove_entry(identifier)
    return Transition(manifest=new, removed=tuple(removed))


# =============================================================================
# Normalize
# =============================================================================


def normalize(
    manifest: types.Manifest,
    definition: definition_module.Definition,
    scope: paths.Scope,
    materializer: materializer_module.Materializer,
    *,
    backup: bool = True,
    now: _datetime.datetime | None = None,
) -> Transition:
    """
    Rewrite an installed definition in canonical form.

    Files already in canonical form are left alone.

    Raises:
        NotInstalledError: If the scope has no entry.
        MaterializationError: If the file cannot be written.
    """
    identifier = definition.identifier
    entry = manifest.get_entry(identifier)
    if entry is None:
        raise errors.NotInstalledError(identifier, str(scope))

    if definition_module.render_canonical(definition) == definition.raw_content:
        return Transition(manifest=manifest.clone(), changed=False)

    saved = materializer.backup_definition(scope, identifier) if backup else None
    path = materializer.regenerate(definition, scope)

    new = manifest.clone()
    new.installed_agents[identifier] = entry.model_copy(
        update={"version": definition.version, "updated_at": _now(now)}
    )
    return Transition(manifest=new, written=(path,), backup=saved)


# =============================================================================
# Sync
# =============================================================================


def find_orphaned_sub_commands(
    sub_command_files: _typing.Iterable[_pathlib.Path],
    registered_definitions: _typing.Iterable[definition_module.Definition],
    matcher: matching.CompanionMatcher,
) -> list[_pathlib.Path]:
    """
    Command files no registered definition would pair with.

    Diagnostic only; nothing is changed.
    """
    claimed: set[str] = set()
    for definition in registered_definitions:
        claimed.update(matcher.candidates(definition))
    return [p for p in sub_command_files if p.stem not in claimed]


def sync(
    state: types.EffectiveState,
    discovered: _typing.Iterable[definition_module.Definition],
    mode: SyncMode = SyncMode.AUTO,
    selected: _typing.Iterable[str] | None = None,
    scope: paths.Scope | None = None,
    *,
    enabled: bool = True,
    now: _datetime.datetime | None = None,
    sub_command_files: _typing.Iterable[_pathlib.Path] = (),
    matcher: matching.CompanionMatcher | None = None,
) -> SyncResult:
    """
    Register definitions found on disk that neither manifest knows.

    Each new entry goes into the manifest of the scope where its file was
    found. In selective mode only ``selected`` identifiers are registered;
    unselected candidates are reported as skipped and selected names that
    are not candidates as unknown.

    Args:
        state: Current user and project manifests.
        discovered: Definitions found in the scope directories.
        mode: AUTO or SELECTIVE.
        selected: Identifiers to register in SELECTIVE mode.
        scope: Only consider definitions found in this scope.
        enabled: Enabled state recorded for new entries.
        now: Timestamp for new entries and ``last_sync``.
        sub_command_files: Command files to check for orphans.
        matcher: Matcher used for the orphan check.

    Returns:
        SyncResult carrying the new manifests.
    """
    timestamp = _now(now)
    registered_defs: list[definition_module.Definition] = []
    candidates: dict[str, definition_module.Definition] = {}

    for definition in discovered:
        if definition.scope is None:
            continue
        if state.is_registered(definition.identifier):
            registered_defs.append(definition)
            continue
        if scope is not None and definition.scope != paths.Scope(scope).value:
            continue
        # First location wins (user before project)
        candidates.setdefault(definition.identifier, definition)

    if mode is SyncMode.SELECTIVE:
        wanted = list(dict.fromkeys(selected or ()))
        unknown = [name for name in wanted if name not in candidates]
        chosen = [name for name in candidates if name in wanted]
    else:
        unknown = []
        chosen = list(candidates)

    user = state.user.clone()
    project = state.project.clone()
    new_state = types.EffectiveState(user=user, project=project)

    for name in chosen:
        definition = candidates[name]
        target_scope = paths.Scope(definition.scope)
        target = new_state.manifest(target_scope)
        target.add_entry(
            name,
            types.ManifestEntry(
                version=definition.version,
                installed_at=timestamp,
                scope=target_scope,
            ),
            enabled=enabled,
        )
        target.last_sync = timestamp
        registered_defs.append(definition)
        _logger.debug("Registered %s in %s scope", name, target_scope)

    orphaned: list[_pathlib.Path] = []
    if matcher is not None:
        orphaned = find_orphaned_sub_commands(sub_command_files, registered_defs, matcher)

    return SyncResult(
        state=new_state,
        registered=chosen,
        already_registered=list(
            dict.fromkeys(
                d.identifier for d in registered_defs if d.identifier not in chosen
            )
        ),
        skipped=[name for name in candidates if name not in chosen],
        unknown_selected=unknown,
        orphaned_sub_commands=orphaned,
    )


def force_copy(
    state: types.EffectiveState,
    discovered: _typing.Iterable[definition_module.Definition],
    materializer: materializer_module.Materializer,
    matcher: matching.CompanionMatcher,
    companion_dirs: _typing.Sequence[_pathlib.Path] = (),
) -> batch.BatchResult:
    """
    Copy every registered definition into the project scope, overwriting.

    Sources found in the user scope are preferred. Each item is attempted
    even if an earlier one failed.
    """
    result = batch.BatchResult()
    sources: dict[str, definition_module.Definition] = {}
    for definition in discovered:
        if not state.is_registered(definition.identifier):
            continue
        current = sources.get(definition.identifier)
        if current is None or (
            current.scope != paths.Scope.USER.value
            and definition.scope == paths.Scope.USER.value
        ):
            sources[definition.identifier] = definition

    locator = materializer.locator
    for identifier, definition in sources.items():
        target = locator.definition_path(paths.Scope.PROJECT, identifier)
        if definition.path is not None and definition.path.resolve() == target.resolve():
            result.skipped(identifier, "already in project scope")
            continue
        try:
            materializer.copy_as_is(definition, paths.Scope.PROJECT)
            companion = matcher.find(definition, companion_dirs)
            if companion is not None:
                materializer.copy_sub_command(companion, paths.Scope.PROJECT)
        except (errors.AgentryError, OSError) as e:
            result.failed(identifier, str(e))
            continue
        result.succeeded(identifier, str(target))

    return result
