"""
Main CLI entry point for Agentry.

Provides the command-line interface using Click. Every command builds an
AgentRegistry from the loaded settings, runs one registry operation and
prints per-item lines followed by a summary.
"""

import json as _json
import logging as _logging
import typing as _typing

import click as _click
import rich.console as _rich_console
import rich.logging as _rich_logging
import rich.table as _rich_table

import agentry
import agentry.config as config
import agentry.errors as errors
import agentry.registry as registry_module

# Custom Click context settings for better help formatting
CONTEXT_SETTINGS: dict[str, _typing.Any] = {
    "help_option_names": ["-h", "--help"],
    "max_content_width": 100,
}

_LOG_FORMAT = "%(message)s"

_NO_AUTO_SYNC = frozenset({"config", "paths", "sync-processes", "validate"})
"""Commands that never trigger auto-sync."""

_logger = _logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    """Send package logs to stderr through rich; DEBUG when verbose."""
    logger = _logging.getLogger("agentry")
    for handler in list(logger.handlers):
        if isinstance(handler, _rich_logging.RichHandler):
            logger.removeHandler(handler)
    handler = _rich_logging.RichHandler(
        console=_rich_console.Console(stderr=True),
        show_time=False,
        show_path=verbose,
    )
    handler.setFormatter(_logging.Formatter(_LOG_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(_logging.DEBUG if verbose else _logging.WARNING)


def _get_registry(ctx: _click.Context) -> registry_module.AgentRegistry:
    settings: config.Settings = ctx.obj["settings"]
    return registry_module.AgentRegistry(settings)


def _print_summary(identifier: str, status: registry_module.Status) -> None:
    """Print the tally line for a single-agent command."""
    result = registry_module.BatchResult()
    result.outcomes.append(registry_module.ItemOutcome(identifier, status))
    _click.echo(f"Summary: {result.summary()}")


def _report_error(error: errors.AgentryError, identifier: str | None = None) -> None:
    """
    Print an error to stderr; exit 1 unless it is benign.

    With an identifier the single-agent tally is printed as well.
    """
    if error.benign:
        _click.echo(f"Warning: {error}", err=True)
        if identifier is not None:
            _print_summary(identifier, registry_module.Status.SKIPPED)
        return
    _click.echo(f"Error: {error}", err=True)
    if identifier is not None:
        _print_summary(identifier, registry_module.Status.FAILED)
    raise SystemExit(1) from None


def _print_batch(result: registry_module.BatchResult, json_output: bool) -> None:
    """Print per-item lines and the tally; exit 1 if any item failed."""
    if json_output:
        _click.echo(_json.dumps(result.to_dict(), indent=2))
    else:
        for outcome in result.outcomes:
            if outcome.status is registry_module.Status.SUCCEEDED:
                _click.echo(f"✓ {outcome.identifier}: {outcome.message}")
            elif outcome.status is registry_module.Status.SKIPPED:
                _click.echo(f"- {outcome.identifier}: {outcome.message}")
            else:
                _click.echo(f"✗ {outcome.identifier}: {outcome.message}", err=True)
        _click.echo()
        _click.echo(f"Summary: {result.summary()}")

    if result.has_failures:
        raise SystemExit(1)


def _run_auto_sync(settings: config.Settings) -> None:
    """Register hand-copied agents first when auto-sync is on."""
    if not settings.auto_sync:
        return
    try:
        report = registry_module.AgentRegistry(settings).auto_sync()
    except errors.AgentryError as e:
        _logger.warning("Auto-sync failed: %s", e)
        return
    if report is not None and report.result.registered:
        _click.echo(
            f"Auto-sync registered: {', '.join(report.result.registered)}",
            err=True,
        )


@_click.group(context_settings=CONTEXT_SETTINGS)
@_click.version_option(agentry.__version__, "-v", "--version", prog_name="agentry")
@_click.option(
    "--verbose",
    is_flag=True,
    help="Enable debug logging",
)
@_click.pass_context
def cli(ctx: _click.Context, verbose: bool) -> None:
    """
    Agentry - manage markdown agent templates.

    Agents are installed from the catalog into the user scope (~/.agentry)
    or, with --project, into the project scope (./.agentry).

    \b
    Examples:
        agentry list                        # Catalog and installed agents
        agentry install code-reviewer       # Install into the user scope
        agentry install --all --project     # Install everything into the project
        agentry disable code-reviewer       # Keep installed, mark disabled
        agentry sync-processes --all        # Register agents added by hand
    """
    # Load settings from environment, then override with CLI args
    settings = config.Settings()
    if verbose:
        settings.verbose = verbose

    _configure_logging(settings.verbose)

    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings

    if ctx.invoked_subcommand not in _NO_AUTO_SYNC:
        _run_auto_sync(settings)


# =============================================================================
# Install / List
# =============================================================================


@cli.command()
@_click.argument("identifiers", nargs=-1)
@_click.option("-p", "--project", is_flag=True, help="Install into the project scope")
@_click.option("-f", "--force", is_flag=True, help="Reinstall agents that are already installed")
@_click.option("-a", "--all", "install_all", is_flag=True, help="Install every catalog agent")
@_click.option("--json", "json_output", is_flag=True, help="JSON output")
@_click.pass_context
def install(
    ctx: _click.Context,
    identifiers: tuple[str, ...],
    project: bool,
    force: bool,
    install_all: bool,
    json_output: bool,
) -> None:
    """Install agents from the catalog."""
    if not identifiers and not install_all:
        _click.echo("Error: Specify agent names or use --all", err=True)
        raise SystemExit(1)

    registry = _get_registry(ctx)
    if install_all:
        result = registry.install_all(project=project, force=force)
    else:
        result = registry.install_many(identifiers, project=project, force=force)
    _print_batch(result, json_output)


@cli.command(name="list")
@_click.option("-i", "--installed", is_flag=True, help="Show only installed agents")
@_click.option("-a", "--available", is_flag=True, help="Show only agents not yet installed")
@_click.option(
    "--all",
    "show_all",
    is_flag=True,
    help="Also show unregistered agent files found in the scope directories",
)
@_click.option("--json", "json_output", is_flag=True, help="JSON output")
@_click.pass_context
def list_cmd(
    ctx: _click.Context,
    installed: bool,
    available: bool,
    show_all: bool,
    json_output: bool,
) -> None:
    """List catalog and installed agents."""
    registry = _get_registry(ctx)
    try:
        rows = registry.listing(
            installed=installed,
            available=available,
            include_unregistered=show_all,
        )
    except errors.AgentryError as e:
        _report_error(e)
        return

    if json_output:
        _click.echo(_json.dumps([r.to_dict() for r in rows], indent=2))
        return

    if not rows:
        if installed:
            _click.echo("No agents installed yet.")
            _click.echo('Use "agentry install" to install agents.')
        elif available:
            _click.echo("No new agents available.")
        else:
            _click.echo("No agents found.")
        return

    table = _rich_table.Table(show_lines=False)
    table.add_column("Agent", style="bold", no_wrap=True)
    table.add_column("Status", no_wrap=True)
    table.add_column("Scope", no_wrap=True)
    table.add_column("Version", no_wrap=True)
    table.add_column("Description", overflow="fold")

    status_styles = {
        "enabled": "[green]enabled[/green]",
        "disabled": "[yellow]disabled[/yellow]",
        "available": "[dim]available[/dim]",
        "unregistered": "[magenta]unregistered[/magenta]",
    }
    for row in rows:
        table.add_row(
            row.identifier,
            status_styles[row.status],
            ", ".join(row.installed_scopes) or "-",
            row.version or "-",
            row.description or "-",
        )

    console = _rich_console.Console()
    console.print(table)

    if not installed and not available:
        installed_count = len([r for r in rows if r.installed])
        enabled_count = len([r for r in rows if r.installed and r.enabled])
        _click.echo()
        _click.echo(f"Total: {len(rows)} agents")
        _click.echo(f"Installed: {installed_count} ({enabled_count} enabled)")
        _click.echo(f"Available: {len([r for r in rows if not r.installed])}")


@cli.command()
@_click.argument("identifier")
@_click.option("--json", "json_output", is_flag=True, help="JSON output")
@_click.pass_context
def info(ctx: _click.Context, identifier: str, json_output: bool) -> None:
    """Show details for one agent."""
    registry = _get_registry(ctx)
    try:
        data = registry.info(identifier)
    except errors.AgentryError as e:
        if json_output:
            _click.echo(_json.dumps({"error": str(e)}))
            raise SystemExit(1) from None
        _report_error(e)
        return

    if json_output:
        _click.echo(_json.dumps(data, indent=2))
        return

    _click.echo(f"Agent: {data['name']}")
    _click.echo(f"  Description: {data.get('description') or '(none)'}")
    _click.echo(f"  Version: {data.get('version') or '-'}")
    _click.echo(f"  Tools: {', '.join(data.get('tools') or []) or '(none)'}")
    if data.get("tags"):
        _click.echo(f"  Tags: {', '.join(data['tags'])}")
    if data.get("author"):
        _click.echo(f"  Author: {data['author']}")
    _click.echo(f"  Command: {data.get('command') or '(none)'}")
    _click.echo(f"  Companion file: {data.get('companion') or '(none)'}")
    _click.echo()
    if data["installed"]:
        _click.echo(f"Installed ({'enabled' if data['enabled'] else 'disabled'}):")
        for scope, entry in data["installed"].items():
            updated = f", updated {entry['updatedAt']}" if entry.get("updatedAt") else ""
            _click.echo(
                f"  {scope}: version {entry['version']}, installed {entry['installedAt']}{updated}"
            )
    else:
        _click.echo("Not installed.")


# =============================================================================
# Enable / Disable / Remove
# =============================================================================


@cli.command()
@_click.argument("identifier")
@_click.option("-p", "--project", is_flag=True, help="Enable in the project scope")
@_click.pass_context
def enable(ctx: _click.Context, identifier: str, project: bool) -> None:
    """Enable an installed agent."""
    registry = _get_registry(ctx)
    try:
        scope = registry.enable(identifier, project=project)
    except errors.AgentryError as e:
        _report_error(e, identifier)
        return
    _click.echo(f"Enabled '{identifier}' in {scope} scope.")
    _print_summary(identifier, registry_module.Status.SUCCEEDED)


@cli.command()
@_click.argument("identifier")
@_click.option("-p", "--project", is_flag=True, help="Disable in the project scope")
@_click.pass_context
def disable(ctx: _click.Context, identifier: str, project: bool) -> None:
    """Disable an installed agent without removing it."""
    registry = _get_registry(ctx)
    try:
        scope = registry.disable(identifier, project=project)
    except errors.AgentryError as e:
        _report_error(e, identifier)
        return
    _click.echo(f"Disabled '{identifier}' in {scope} scope.")
    _print_summary(identifier, registry_module.Status.SUCCEEDED)


@cli.command()
@_click.argument("identifier")
@_click.option("-p", "--project", is_flag=True, help="Remove from the project scope")
@_click.pass_context
def remove(ctx: _click.Context, identifier: str, project: bool) -> None:
    """Uninstall an agent and its declared companion commands."""
    registry = _get_registry(ctx)
    try:
        scope, transition = registry.remove(identifier, project=project)
    except errors.AgentryError as e:
        _report_error(e, identifier)
        return
    for path in transition.removed:
        _click.echo(f"  deleted {path}")
    _click.echo(f"Removed '{identifier}' from {scope} scope.")
    _print_summary(identifier, registry_module.Status.SUCCEEDED)


cli.add_command(remove, name="uninstall")


# =============================================================================
# Update / Normalize
# =============================================================================


@cli.command()
@_click.argument("identifier", required=False)
@_click.option("-a", "--all", "update_all", is_flag=True, help="Update every installed agent")
@_click.option("-p", "--project", is_flag=True, help="Update agents in the project scope")
@_click.option("-f", "--force", is_flag=True, help="Update even when already up to date")
@_click.option(
    "--preserve-custom",
    is_flag=True,
    help="Back up locally modified files (.backup) before overwriting",
)
@_click.option("--json", "json_output", is_flag=True, help="JSON output")
@_click.pass_context
def update(
    ctx: _click.Context,
    identifier: str | None,
    update_all: bool,
    project: bool,
    force: bool,
    preserve_custom: bool,
    json_output: bool,
) -> None:
    """Update installed agents from the catalog."""
    registry = _get_registry(ctx)

    if update_all:
        result = registry.update_all(
            project=project,
            force=force,
            preserve_custom=preserve_custom,
        )
        _print_batch(result, json_output)
        return

    if identifier is None:
        _click.echo("Error: Specify an agent name or use --all", err=True)
        raise SystemExit(1)

    try:
        scope, transition = registry.update(
            identifier,
            project=project,
            force=force,
            preserve_custom=preserve_custom,
        )
    except errors.AgentryError as e:
        _report_error(e, identifier)
        return

    if not transition.changed:
        _click.echo(f"'{identifier}' is already up to date in {scope} scope.")
        _print_summary(identifier, registry_module.Status.SKIPPED)
        return
    if transition.backup is not None:
        _click.echo(f"Local changes saved to {transition.backup}")
    version = transition.manifest.installed_agents[identifier].version
    _click.echo(f"Updated '{identifier}' in {scope} scope to version {version}.")
    _print_summary(identifier, registry_module.Status.SUCCEEDED)


@cli.command()
@_click.argument("identifier", required=False)
@_click.option("-a", "--all", "normalize_all", is_flag=True, help="Normalize every installed agent")
@_click.option("-p", "--project", is_flag=True, help="Only the project scope")
@_click.option("--no-backup", is_flag=True, help="Do not keep a .backup of rewritten files")
@_click.option("--json", "json_output", is_flag=True, help="JSON output")
@_click.pass_context
def normalize(
    ctx: _click.Context,
    identifier: str | None,
    normalize_all: bool,
    project: bool,
    no_backup: bool,
    json_output: bool,
) -> None:
    """Rewrite installed agents with a single canonical metadata block."""
    if identifier is None and not normalize_all:
        _click.echo("Error: Specify an agent name or use --all", err=True)
        raise SystemExit(1)

    registry = _get_registry(ctx)
    try:
        result = registry.normalize(
            None if normalize_all else identifier,
            project=project,
            backup=not no_backup,
        )
    except errors.AgentryError as e:
        _report_error(e)
        return
    _print_batch(result, json_output)


# =============================================================================
# Sync
# =============================================================================


@cli.command(name="sync-processes")
@_click.option("-a", "--all", "sync_all", is_flag=True, help="Register every unregistered agent")
@_click.option(
    "-s",
    "--select",
    "selected",
    multiple=True,
    help="Register only this agent (repeatable)",
)
@_click.option(
    "-f",
    "--force-copy",
    is_flag=True,
    help="Copy every registered agent into the project scope, overwriting",
)
@_click.option("-p", "--project", is_flag=True, help="Only consider agents in the project scope")
@_click.option("-c", "--commands", "check_commands", is_flag=True, help="Report orphaned commands")
@_click.option("--json", "json_output", is_flag=True, help="JSON output")
@_click.pass_context
def sync_processes(
    ctx: _click.Context,
    sync_all: bool,
    selected: tuple[str, ...],
    force_copy: bool,
    project: bool,
    check_commands: bool,
    json_output: bool,
) -> None:
    """Register agent files that were added to the scope directories by hand."""
    registry = _get_registry(ctx)
    mode = registry_module.SyncMode.AUTO
    listed_only = False

    try:
        if selected:
            mode = registry_module.SyncMode.SELECTIVE
        elif not sync_all:
            preview = registry.sync(project_only=project, dry_run=True)
            if len(preview.result.candidates) > 1:
                # Ambiguous without an explicit choice: list, register nothing
                mode = registry_module.SyncMode.SELECTIVE
                listed_only = True

        report = registry.sync(
            mode=mode,
            selected=selected,
            project_only=project,
            force_copy=force_copy,
            check_commands=check_commands,
        )
    except errors.AgentryError as e:
        _report_error(e)
        return

    result = report.result
    if json_output:
        data = result.to_dict()
        if report.copied is not None:
            data["force_copy"] = report.copied.to_dict()
        _click.echo(_json.dumps(data, indent=2))
        if report.copied is not None and report.copied.has_failures:
            raise SystemExit(1)
        return

    if listed_only:
        _click.echo(f"Found {len(result.skipped)} unregistered agents:")
        for name in result.skipped:
            _click.echo(f"  {name}")
        _click.echo("Use --all to register all of them or --select NAME to pick.")
    else:
        for name in result.registered:
            _click.echo(f"✓ registered {name}")
        for name in result.skipped:
            _click.echo(f"- left unregistered {name}")
    for name in result.unknown_selected:
        _click.echo(f"Warning: '{name}' is not an unregistered agent", err=True)

    if check_commands:
        if result.orphaned_sub_commands:
            _click.echo("Orphaned commands (no matching agent):")
            for path in result.orphaned_sub_commands:
                _click.echo(f"  {path}")
        else:
            _click.echo("No orphaned commands.")

    _click.echo()
    _click.echo(
        f"Summary: {len(result.registered)} registered, "
        f"{len(result.already_registered)} already registered, "
        f"{len(result.skipped)} skipped"
    )

    if report.copied is not None:
        _click.echo()
        _click.echo("Force copy to project scope:")
        _print_batch(report.copied, json_output=False)


# =============================================================================
# Validate / Paths
# =============================================================================


@cli.command()
@_click.argument("identifier", required=False)
@_click.option("--strict", is_flag=True, help="Treat warnings as failures")
@_click.option("--json", "json_output", is_flag=True, help="JSON output")
@_click.pass_context
def validate(
    ctx: _click.Context,
    identifier: str | None,
    strict: bool,
    json_output: bool,
) -> None:
    """Check agent files in the catalog and both scopes."""
    registry = _get_registry(ctx)
    reports = registry.validate(identifier)

    if identifier is not None and not reports:
        _report_error(errors.DefinitionNotFoundError(identifier))
        return

    if json_output:
        _click.echo(_json.dumps([r.to_dict() for r in reports], indent=2))
    else:
        for report in reports:
            label = f"[{report.source}] {report.path}"
            if report.status.value == "error":
                _click.echo(f"✗ {label}: {'; '.join(report.messages)}", err=True)
            elif report.messages:
                _click.echo(f"⚠ {label}: {'; '.join(report.messages)}")
            else:
                _click.echo(f"✓ {label}")
        valid = len([r for r in reports if r.passed() and not r.messages])
        warned = len([r for r in reports if r.passed() and r.messages])
        invalid = len([r for r in reports if not r.passed()])
        _click.echo()
        _click.echo(f"Summary: {valid} valid, {warned} with warnings, {invalid} invalid")

    if any(not r.passed(strict) for r in reports):
        raise SystemExit(1)


@cli.command()
@_click.option("--json", "json_output", is_flag=True, help="JSON output")
@_click.pass_context
def paths(ctx: _click.Context, json_output: bool) -> None:
    """Show where agents, commands and manifests are stored."""
    settings: config.Settings = ctx.obj["settings"]
    locator = config.StorageLocator.from_settings(settings)
    data = {
        **locator.to_dict(),
        "catalog": str(settings.catalog_dir),
        "config_files": [
            str(config.get_user_config_path()),
            str(config.get_project_config_path(settings.project_dir)),
        ],
    }

    if json_output:
        _click.echo(_json.dumps(data, indent=2))
        return

    for scope in config.Scope:
        _click.echo(f"{scope.value.capitalize()} scope:")
        for kind, path in data[scope.value].items():
            _click.echo(f"  {kind:<13} {path}")
        _click.echo()
    _click.echo(f"Catalog: {data['catalog']}")
    _click.echo("Config files:")
    for path in data["config_files"]:
        _click.echo(f"  {path}")


# =============================================================================
# Config
# =============================================================================


@cli.group("config")
def config_group() -> None:
    """Show or change settings stored in the user config file."""
    pass


@config_group.command("autosync")
@_click.argument("value", required=False, type=_click.Choice(["on", "off"]))
@_click.pass_context
def config_autosync(ctx: _click.Context, value: str | None) -> None:
    """
    Show or set auto-sync.

    With auto-sync on, agents copied into a scope by hand are registered
    before other commands run.

    \b
    Examples:
        agentry config autosync         # Show the current value
        agentry config autosync on      # Turn it on
    """
    settings: config.Settings = ctx.obj["settings"]
    if value is None:
        _click.echo(f"Auto-sync is {'enabled' if settings.auto_sync else 'disabled'}.")
        return

    enabled = value == "on"
    try:
        path = config.save_user_setting("auto_sync", enabled)
    except errors.AgentryError as e:
        _report_error(e)
        return
    _click.echo(f"Auto-sync {'enabled' if enabled else 'disabled'} ({path}).")


def main() -> None:
    """Main entry point with correct program name."""
    cli(prog_name="agentry")


if __name__ == "__main__":
    main()
