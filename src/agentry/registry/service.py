"""
Agent registry: the load / reconcile / save shell around the reconciler.

Each command-level method loads the manifests it needs, applies one
reconciler operation and saves the result. Batch methods run item by item
and return a BatchResult; a failing item is recorded and the loop goes on.
"""

from __future__ import annotations

import dataclasses as _dataclasses
import datetime as _datetime
import logging as _logging
import pathlib as _pathlib
import typing as _typing

import agentry.config.paths as paths
import agentry.config.settings as settings_module
import agentry.definitions.definition as definition_module
import agentry.definitions.discovery as discovery
import agentry.definitions.matching as matching
import agentry.errors as errors
import agentry.manifest.store as store_module
import agentry.manifest.types as types
import agentry.registry.batch as batch
import agentry.registry.materializer as materializer_module
import agentry.registry.reconciler as reconciler

_logger = _logging.getLogger(__name__)


@_dataclasses.dataclass
class AgentListing:
    """One row of ``list`` output."""

    identifier: str
    description: str
    version: str | None
    available: bool
    installed_scopes: list[str]
    enabled: bool
    registered: bool = True

    @property
    def installed(self) -> bool:
        return bool(self.installed_scopes)

    @property
    def status(self) -> str:
        if not self.registered:
            return "unregistered"
        if not self.installed:
            return "available"
        return "enabled" if self.enabled else "disabled"

    def to_dict(self) -> dict[str, _typing.Any]:
        return {
            "name": self.identifier,
            "description": self.description,
            "version": self.version,
            "status": self.status,
            "available": self.available,
            "installed": self.installed,
            "scopes": list(self.installed_scopes),
            "enabled": self.enabled,
        }


@_dataclasses.dataclass
class ValidationReport:
    """Parse result of one definition file."""

    path: _pathlib.Path
    source: str
    status: definition_module.ParseStatus
    identifier: str | None = None
    messages: list[str] = _dataclasses.field(default_factory=list)

    def passed(self, strict: bool = False) -> bool:
        if self.status is definition_module.ParseStatus.ERROR:
            return False
        if strict and self.messages:
            return False
        return True

    def to_dict(self) -> dict[str, _typing.Any]:
        return {
            "path": str(self.path),
            "source": self.source,
            "name": self.identifier,
            "status": self.status.value,
            "messages": list(self.messages),
        }


@_dataclasses.dataclass
class SyncReport:
    """Result of ``sync`` plus the optional force-copy batch."""

    result: reconciler.SyncResult
    copied: batch.BatchResult | None = None


class AgentRegistry:
    """
    Command-level operations over both scopes.

    The catalog (bundled with the package unless configured otherwise) is
    the source for install and update. The scope directories are scanned
    by sync, validate and list.
    """

    def __init__(
        self,
        settings: settings_module.Settings | None = None,
        *,
        matcher: matching.CompanionMatcher | None = None,
        materializer: materializer_module.Materializer | None = None,
    ) -> None:
        """
        Initialize the registry.

        Args:
            settings: Loaded settings (defaults to Settings()).
            matcher: Companion matcher (defaults to the standard heuristics).
            materializer: File writer (defaults to one over the locator).
        """
        self._settings = settings or settings_module.Settings()
        self._locator = paths.StorageLocator.from_settings(self._settings)
        self._store = store_module.ManifestStore(self._locator)
        self._materializer = materializer or materializer_module.Materializer(self._locator)
        self._matcher = matcher or matching.CompanionMatcher()
        self._catalog = discovery.DefinitionDiscovery(
            [discovery.SearchPath(self._settings.catalog_definitions_dir)]
        )
        self._scopes = discovery.DefinitionDiscovery(
            [
                discovery.SearchPath(
                    self._locator.resolve(scope, paths.PathKind.DEFINITIONS),
                    scope.value,
                )
                for scope in (paths.Scope.USER, paths.Scope.PROJECT)
            ]
        )

    @property
    def settings(self) -> settings_module.Settings:
        return self._settings

    @property
    def locator(self) -> paths.StorageLocator:
        return self._locator

    @property
    def store(self) -> store_module.ManifestStore:
        return self._store

    # =========================================================================
    # Loading helpers
    # =========================================================================

    def load_state(self) -> types.EffectiveState:
        """Load both manifests."""
        return types.EffectiveState(
            user=self._store.load(paths.Scope.USER),
            project=self._store.load(paths.Scope.PROJECT),
        )

    def catalog(self) -> dict[str, definition_module.Definition]:
        """Definitions available for install."""
        return self._catalog.discover()

    def discover_installed(self) -> list[definition_module.Definition]:
        """Definitions present in the scope directories (user first)."""
        return [
            item
            for item in self._scopes.discover_all(include_errors=True)
            if isinstance(item, definition_module.Definition)
        ]

    def companion_dirs(self) -> list[_pathlib.Path]:
        """Directories searched for companion commands, in order."""
        return [
            self._settings.catalog_sub_commands_dir,
            self._locator.resolve(paths.Scope.USER, paths.PathKind.SUB_COMMANDS),
        ]

    def sub_command_files(self) -> list[_pathlib.Path]:
        """Command files present in both scopes."""
        files: list[_pathlib.Path] = []
        for scope in (paths.Scope.USER, paths.Scope.PROJECT):
            files.extend(
                discovery.iter_definition_files(
                    self._locator.resolve(scope, paths.PathKind.SUB_COMMANDS)
                )
            )
        return files

    def _find_companion(
        self,
        definition: definition_module.Definition | None,
    ) -> _pathlib.Path | None:
        if definition is None:
            return None
        return self._matcher.find(definition, self.companion_dirs())

    def _installed_scope(
        self,
        identifier: str,
        project: bool,
        state: types.EffectiveState,
    ) -> paths.Scope:
        """Explicit --project wins; otherwise the scope that has the entry, user first."""
        if project:
            return paths.Scope.PROJECT
        scopes = state.scopes_of(identifier)
        if not scopes:
            raise errors.NotInstalledError(identifier)
        return scopes[0]

    def _commit(
        self,
        scope: paths.Scope,
        loaded: types.Manifest,
        updated: types.Manifest,
    ) -> None:
        self._store.check_external_change(scope, loaded)
        self._store.save(scope, updated)

    # =========================================================================
    # Install / Update
    # =========================================================================

    def install(
        self,
        identifier: str,
        *,
        project: bool = False,
        force: bool = False,
    ) -> reconciler.Transition:
        """
        Install one definition from the catalog.

        Raises:
            DefinitionNotFoundError, AlreadyInstalledError,
            MaterializationError, ManifestError
        """
        definition_module.validate_identifier(identifier)
        scope = paths.Scope.from_flag(project)
        manifest = self._store.load(scope)
        definition = self.catalog().get(identifier)

        transition = reconciler.install(
            manifest,
            identifier,
            definition,
            scope,
            self._materializer,
            self._find_companion(definition),
            force=force,
            enabled=self._settings.auto_enable_on_install,
        )
        self._commit(scope, manifest, transition.manifest)
        _logger.info("Installed %s (%s scope)", identifier, scope)
        return transition

    def install_many(
        self,
        identifiers: _typing.Iterable[str],
        *,
        project: bool = False,
        force: bool = False,
    ) -> batch.BatchResult:
        """
        Install several definitions, one at a time.

        The manifest is saved after every successful item, so it reflects
        exactly the items that succeeded.
        """
        result = batch.BatchResult()
        for identifier in identifiers:
            try:
                transition = self.install(identifier, project=project, force=force)
            except errors.AlreadyInstalledError as e:
                result.skipped(identifier, str(e))
            except (errors.AgentryError, OSError) as e:
                result.failed(identifier, str(e))
            else:
                result.succeeded(identifier, str(transition.written[0]))
        return result

    def install_all(
        self,
        *,
        project: bool = False,
        force: bool = False,
    ) -> batch.BatchResult:
        """Install every catalog definition."""
        return self.install_many(sorted(self.catalog()), project=project, force=force)

    def update(
        self,
        identifier: str,
        *,
        project: bool = False,
        force: bool = False,
        preserve_custom: bool = False,
    ) -> tuple[paths.Scope, reconciler.Transition]:
        """
        Update one installed definition from the catalog.

        Returns:
            Tuple of (scope updated, transition).

        Raises:
            NotInstalledError, DefinitionNotFoundError,
            MaterializationError, ManifestError
        """
        state = self.load_state()
        scope = self._installed_scope(identifier, project, state)
        manifest = state.manifest(scope)
        definition = self.catalog().get(identifier)

        transition = reconciler.update(
            manifest,
            identifier,
            definition,
            scope,
            self._materializer,
            self._find_companion(definition),
            force=force,
            preserve_custom=preserve_custom,
        )
        if transition.changed:
            self._commit(scope, manifest, transition.manifest)
        return scope, transition

    def update_all(
        self,
        *,
        project: bool = False,
        force: bool = False,
        preserve_custom: bool = False,
    ) -> batch.BatchResult:
        """
        Update every installed definition that has a catalog source.

        Without ``project`` both scopes are covered. Entries with no
        catalog counterpart (registered by sync) are skipped.
        """
        result = batch.BatchResult()
        scopes = [paths.Scope.PROJECT] if project else list(paths.Scope)
        catalog = self.catalog()

        for scope in scopes:
            for identifier in self._store.load(scope).identifiers():
                definition = catalog.get(identifier)
                if definition is None:
                    result.skipped(identifier, f"{scope}: not in catalog")
                    continue
                manifest = self._store.load(scope)
                try:
                    transition = reconciler.update(
                        manifest,
                        identifier,
                        definition,
                        scope,
                        self._materializer,
                        self._find_companion(definition),
                        force=force,
                        preserve_custom=preserve_custom,
                    )
                    if transition.changed:
                        self._commit(scope, manifest, transition.manifest)
                except (errors.AgentryError, OSError) as e:
                    result.failed(identifier, f"{scope}: {e}")
                    continue
                if not transition.changed:
                    result.skipped(identifier, f"{scope}: up to date")
                elif transition.backup is not None:
                    result.succeeded(identifier, f"{scope}: backup at {transition.backup}")
                else:
                    result.succeeded(identifier, f"{scope}: {definition.version}")
        return result

    # =========================================================================
    # Enable / Disable / Remove
    # =========================================================================

    def _toggle(self, identifier: str, project: bool, value: bool) -> paths.Scope:
        state = self.load_state()
        scope = self._installed_scope(identifier, project, state)
        manifest = state.manifest(scope)
        if not manifest.has_entry(identifier):
            raise errors.NotInstalledError(identifier, str(scope))
        op = reconciler.enable if value else reconciler.disable
        self._commit(scope, manifest, op(manifest, identifier))
        return scope

    def enable(self, identifier: str, *, project: bool = False) -> paths.Scope:
        """
        Enable an installed agent in the scope that has it.

        Raises:
            NotInstalledError, AlreadyInStateError, ManifestError
        """
        return self._toggle(identifier, project, True)

    def disable(self, identifier: str, *, project: bool = False) -> paths.Scope:
        """
        Disable an installed agent in the scope that has it.

        Raises:
            NotInstalledError, AlreadyInStateError, ManifestError
        """
        return self._toggle(identifier, project, False)

    def _declared_sub_commands(
        self,
        scope: paths.Scope,
        identifier: str,
    ) -> list[str]:
        """Companions named by the installed file, falling back to the catalog."""
        path = self._locator.definition_path(scope, identifier)
        if path.exists():
            try:
                return definition_module.load_definition(path, scope.value).sub_commands
            except errors.MalformedDefinitionError as e:
                _logger.debug("Cannot read %s: %s", path, e)
        definition = self.catalog().get(identifier)
        return definition.sub_commands if definition else []

    def remove(
        self,
        identifier: str,
        *,
        project: bool = False,
    ) -> tuple[paths.Scope, reconciler.Transition]:
        """
        Uninstall an agent from the scope that has it.

        Raises:
            NotInstalledError, ManifestError
        """
        state = self.load_state()
        scope = self._installed_scope(identifier, project, state)
        manifest = state.manifest(scope)
        transition = reconciler.remove(
            manifest,
            identifier,
            scope,
            self._materializer,
            self._declared_sub_commands(scope, identifier),
        )
        self._commit(scope, manifest, transition.manifest)
        return scope, transition

    # =========================================================================
    # Sync / Normalize
    # =========================================================================

    def sync(
        self,
        *,
        mode: reconciler.SyncMode = reconciler.SyncMode.AUTO,
        selected: _typing.Iterable[str] | None = None,
        project_only: bool = False,
        force_copy: bool = False,
        check_commands: bool = False,
        dry_run: bool = False,
    ) -> SyncReport:
        """
        Register unregistered definitions found in the scope directories.

        Args:
            mode: AUTO registers every candidate; SELECTIVE only ``selected``.
            selected: Identifiers for SELECTIVE mode.
            project_only: Only consider definitions in the project scope.
            force_copy: Afterwards copy every registered definition into
                the project scope.
            check_commands: Report orphaned companion command files.
            dry_run: Compute the result without saving or copying.
        """
        state = self.load_state()
        discovered = self.discover_installed()
        result = reconciler.sync(
            state,
            discovered,
            mode,
            selected=selected,
            scope=paths.Scope.PROJECT if project_only else None,
            enabled=self._settings.auto_enable_on_install,
            sub_command_files=self.sub_command_files() if check_commands else (),
            matcher=self._matcher if check_commands else None,
        )
        if dry_run:
            return SyncReport(result=result)

        for scope in paths.Scope:
            if result.state.manifest(scope) != state.manifest(scope):
                self._commit(scope, state.manifest(scope), result.state.manifest(scope))

        copied = None
        if force_copy:
            copied = reconciler.force_copy(
                result.state,
                discovered,
                self._materializer,
                self._matcher,
                [
                    self._locator.resolve(paths.Scope.USER, paths.PathKind.SUB_COMMANDS),
                    self._settings.catalog_sub_commands_dir,
                ],
            )
        return SyncReport(result=result, copied=copied)

    def auto_sync_due(self, now: _datetime.datetime | None = None) -> bool:
        """
        Whether auto-sync should run before a command.

        True when auto-sync is on and a scope's definitions directory was
        modified after that scope's last sync. A scope synced less than
        ``auto_sync_interval`` seconds ago is not checked.
        """
        if not self._settings.auto_sync:
            return False
        now = now or _datetime.datetime.now(_datetime.timezone.utc)
        interval = _datetime.timedelta(seconds=self._settings.auto_sync_interval)
        state = self.load_state()
        for scope in paths.Scope:
            directory = self._locator.resolve(scope, paths.PathKind.DEFINITIONS)
            if not directory.is_dir():
                continue
            last_sync = state.manifest(scope).last_sync
            if last_sync is None:
                return True
            if now - last_sync < interval:
                continue
            modified = _datetime.datetime.fromtimestamp(
                directory.stat().st_mtime, _datetime.timezone.utc
            )
            if modified > last_sync:
                _logger.debug("%s modified after last sync", directory)
                return True
        return False

    def auto_sync(self, now: _datetime.datetime | None = None) -> SyncReport | None:
        """
        Run an automatic sync if one is due.

        Every scope with a definitions directory has its ``last_sync``
        stamped, even when nothing new was registered.

        Returns:
            The sync report, or None if no sync was due.
        """
        now = now or _datetime.datetime.now(_datetime.timezone.utc)
        if not self.auto_sync_due(now):
            return None

        state = self.load_state()
        result = reconciler.sync(
            state,
            self.discover_installed(),
            enabled=self._settings.auto_enable_on_install,
            now=now,
        )
        for scope in paths.Scope:
            updated = result.state.manifest(scope)
            if self._locator.resolve(scope, paths.PathKind.DEFINITIONS).is_dir():
                updated.last_sync = now
            if updated != state.manifest(scope):
                self._commit(scope, state.manifest(scope), updated)
        _logger.info("Auto-sync registered %d agents", len(result.registered))
        return SyncReport(result=result)

    def normalize(
        self,
        identifier: str | None = None,
        *,
        project: bool = False,
        backup: bool = True,
    ) -> batch.BatchResult:
        """
        Rewrite installed definitions in canonical form.

        With an identifier only that agent (in the scope that has it) is
        rewritten; otherwise every entry of the selected scope(s).
        """
        state = self.load_state()
        if identifier is not None:
            targets = [(self._installed_scope(identifier, project, state), identifier)]
        else:
            scopes = [paths.Scope.PROJECT] if project else list(paths.Scope)
            targets = [
                (scope, name)
                for scope in scopes
                for name in state.manifest(scope).identifiers()
            ]

        result = batch.BatchResult()
        for scope, name in targets:
            path = self._locator.definition_path(scope, name)
            try:
                definition = definition_module.load_definition(path, scope.value)
                manifest = self._store.load(scope)
                transition = reconciler.normalize(
                    manifest,
                    definition,
                    scope,
                    self._materializer,
                    backup=backup,
                )
                if transition.changed:
                    self._commit(scope, manifest, transition.manifest)
            except (errors.AgentryError, OSError) as e:
                result.failed(name, f"{scope}: {e}")
                continue
            if transition.changed:
                result.succeeded(name, f"{scope}: {path}")
            else:
                result.skipped(name, f"{scope}: already canonical")
        return result

    # =========================================================================
    # Read-only views
    # =========================================================================

    def validate(self, identifier: str | None = None) -> list[ValidationReport]:
        """
        Parse definition files from the catalog and both scopes.

        Args:
            identifier: Only report files for this identifier (by file stem).

        Returns:
            One report per file.
        """
        sources = [
            ("catalog", self._settings.catalog_definitions_dir),
            *(
                (scope.value, self._locator.resolve(scope, paths.PathKind.DEFINITIONS))
                for scope in paths.Scope
            ),
        ]
        reports: list[ValidationReport] = []
        for source, directory in sources:
            for path in discovery.iter_definition_files(directory):
                if identifier is not None and path.stem != identifier:
                    continue
                reports.append(self._validate_file(path, source))
        return reports

    def _validate_file(self, path: _pathlib.Path, source: str) -> ValidationReport:
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            return ValidationReport(
                path=path,
                source=source,
                status=definition_module.ParseStatus.ERROR,
                messages=[str(e)],
            )

        parsed = definition_module.parse_definition(content, fallback_name=path.stem, path=path)
        if parsed.definition is None:
            return ValidationReport(
                path=path,
                source=source,
                status=parsed.status,
                messages=[parsed.error or "malformed"],
            )

        definition = parsed.definition
        messages = list(parsed.warnings)
        if not definition.description:
            messages.append("missing description")
        if definition.identifier != path.stem:
            messages.append(f"name '{definition.identifier}' does not match file name")
        return ValidationReport(
            path=path,
            source=source,
            status=parsed.status,
            identifier=definition.identifier,
            messages=messages,
        )

    def listing(
        self,
        *,
        installed: bool = False,
        available: bool = False,
        include_unregistered: bool = False,
    ) -> list[AgentListing]:
        """
        Merge the catalog and both manifests into listing rows.

        Args:
            installed: Only installed agents.
            available: Only catalog agents not installed anywhere.
            include_unregistered: Also show files in the scope directories
                that no manifest knows about.
        """
        state = self.load_state()
        catalog = self.catalog()
        on_disk: dict[str, definition_module.Definition] = {}
        for definition in self.discover_installed():
            on_disk.setdefault(definition.identifier, definition)

        rows: dict[str, AgentListing] = {}
        for identifier, definition in catalog.items():
            rows[identifier] = AgentListing(
                identifier=identifier,
                description=definition.description,
                version=definition.version,
                available=True,
                installed_scopes=[],
                enabled=False,
            )

        for identifier in state.identifiers():
            scopes = state.scopes_of(identifier)
            entry = state.manifest(scopes[0]).get_entry(identifier)
            source = on_disk.get(identifier) or catalog.get(identifier)
            rows[identifier] = AgentListing(
                identifier=identifier,
                description=source.description if source else "",
                version=entry.version if entry else None,
                available=identifier in catalog,
                installed_scopes=[s.value for s in scopes],
                enabled=state.is_enabled(identifier),
            )

        if include_unregistered:
            for identifier, definition in on_disk.items():
                if identifier not in rows or not rows[identifier].installed:
                    rows[identifier] = AgentListing(
                        identifier=identifier,
                        description=definition.description,
                        version=definition.version,
                        available=identifier in catalog,
                        installed_scopes=[],
                        enabled=False,
                        registered=False,
                    )

        result = sorted(rows.values(), key=lambda r: r.identifier)
        if installed:
            result = [r for r in result if r.installed]
        elif available:
            result = [r for r in result if r.available and not r.installed]
        return result

    def info(self, identifier: str) -> dict[str, _typing.Any]:
        """
        Details about one agent from the catalog and both manifests.

        Raises:
            DefinitionNotFoundError: If the agent is neither in the catalog
                nor installed.
        """
        state = self.load_state()
        scopes = state.scopes_of(identifier)
        definition = None
        for scope in scopes:
            path = self._locator.definition_path(scope, identifier)
            if path.exists():
                definition = definition_module.load_definition(path, scope.value)
                break
        if definition is None:
            definition = self.catalog().get(identifier)
        if definition is None and not scopes:
            raise errors.DefinitionNotFoundError(identifier)

        data: dict[str, _typing.Any] = definition.to_dict() if definition else {"name": identifier}
        data["installed"] = {
            scope.value: state.manifest(scope)
            .get_entry(identifier)
            .model_dump(mode="json", by_alias=True, exclude_none=True)
            for scope in scopes
        }
        data["enabled"] = state.is_enabled(identifier)
        data["companion"] = (
            str(companion) if (companion := self._find_companion(definition)) else None
        )
        return data
