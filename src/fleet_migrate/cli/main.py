"""Main CLI entry point for the fleet migration tool."""

import asyncio
import sys
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .. import __version__
from ..config.config import Config
from ..migration.engine import MigrationEngine
from ..migration.exceptions import DiscoveryError, SkipRegistryError
from ..migration.skip import SkipRegistry
from ..models.outcome import OutcomeStatus, RunReport
from ..utils.logging import setup_logging

console = Console()

DEFAULT_CONFIG_PATHS = ['config.yaml', 'config.yml', '.fleet-migrate.yaml']


@click.group()
@click.version_option(version=__version__, prog_name='fleet-migrate')
@click.option(
    '--config',
    '-c',
    type=click.Path(exists=True),
    help='Path to configuration file',
)
@click.option(
    '--verbose',
    '-v',
    is_flag=True,
    help='Enable verbose logging',
)
@click.pass_context
def cli(ctx: click.Context, config: Optional[str], verbose: bool) -> None:
    """Fleet Migration Tool - apply one change to every repository of an organization as pull requests."""
    ctx.ensure_object(dict)

    if config:
        ctx.obj['config_path'] = config
    ctx.obj['verbose'] = verbose

    setup_logging('DEBUG' if verbose else 'INFO')


@cli.command()
@click.option(
    '--output',
    '-o',
    default='config.yaml',
    help='Output configuration file path',
)
def init(output: str) -> None:
    """Initialize a new configuration file."""
    console.print(
        Panel.fit(
            '[bold green]Fleet Migration Tool[/bold green]\n'
            'Initializing configuration...',
            border_style='green',
        )
    )

    try:
        Config.create_template(output)

        console.print(f'[green]✓[/green] Configuration template created at: {output}')
        console.print(
            f'[yellow]Please edit {output} and export GITHUB_TOKEN before running[/yellow]'
        )

    except OSError as e:
        console.print(f'[red]✗[/red] Failed to create configuration: {e}')
        sys.exit(1)


@cli.command()
@click.option('--dry-run', is_flag=True, help='Check applicability without changing anything')
@click.option('--handler', 'handler_path', help='Handler class as package.module:ClassName')
@click.option(
    '--repo',
    'repositories',
    multiple=True,
    help='Only process this repository (repeatable)',
)
@click.option('--report', 'report_file', help='Write the run report as JSON to this path')
@click.pass_context
def run(
    ctx: click.Context,
    dry_run: bool,
    handler_path: Optional[str],
    repositories: Tuple[str, ...],
    report_file: Optional[str],
) -> None:
    """Apply the configured handler across the organization."""
    console.print(
        Panel.fit(
            '[bold blue]Fleet Migration Tool[/bold blue]\n'
            'Starting migration run...',
            border_style='blue',
        )
    )

    if dry_run:
        console.print('[yellow]Running in dry-run mode - no changes will be made[/yellow]')

    try:
        config = _load_config(ctx)
        _setup_logging_with_config(ctx, config)

        if dry_run:
            config.migration.dry_run = True
        if handler_path:
            config.handler.path = handler_path
        if repositories:
            config.migration.repositories = list(repositories)
        if report_file:
            config.migration.report_file = report_file

        report = _run_migration(config)

    except DiscoveryError as e:
        console.print(f'[red]✗[/red] Repository discovery failed: {e}')
        if e.report is not None:
            _display_run_summary(e.report)
        sys.exit(1)
    except Exception as e:
        console.print(f'[red]✗[/red] Migration failed: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)

    _display_run_summary(report)
    if not report.succeeded:
        sys.exit(1)


@cli.command()
@click.pass_context
def validate(ctx: click.Context) -> None:
    """Validate configuration, handler and API connectivity."""
    console.print(
        Panel.fit(
            '[bold cyan]Fleet Migration Tool[/bold cyan]\nValidating setup...',
            border_style='cyan',
        )
    )

    try:
        config = _load_config(ctx)

        engine = MigrationEngine(config)
        console.print(f'[green]✓[/green] Handler loaded: {engine.handler!r}')

        try:
            engine.test_connectivity()
        finally:
            engine.client.close()

        console.print('[green]✓[/green] Connectivity validation passed')
        console.print('[green]✓[/green] Configuration validation completed')

    except Exception as e:
        console.print(f'[red]✗[/red] Validation failed: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the effective configuration."""
    console.print(
        Panel.fit(
            '[bold magenta]Fleet Migration Tool[/bold magenta]\nConfiguration Status',
            border_style='magenta',
        )
    )

    try:
        config = _load_config(ctx)

        table = Table(title='Migration Configuration')
        table.add_column('Setting', style='cyan')
        table.add_column('Value', style='green')

        table.add_row('API URL', config.github.api_url)
        table.add_row('Organization', config.github.organization)
        table.add_row('Workspace', str(config.workspace.root))
        table.add_row('Skip File', str(config.workspace.skip_file))
        table.add_row(
            'Skip Patterns', ', '.join(config.workspace.skip_patterns) or '-'
        )
        table.add_row('Marker File', config.workspace.marker_file or '-')
        table.add_row('Handler', config.handler.path or '-')
        table.add_row('Dry Run', '✓' if config.migration.dry_run else '✗')

        console.print(table)

    except Exception as e:
        console.print(f'[red]✗[/red] Failed to load status: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)


@cli.group()
def skip() -> None:
    """Manage the persisted skip file."""


@skip.command('add')
@click.argument('names', nargs=-1, required=True)
@click.option('--file', 'skip_file', default=None, help='Skip file (defaults to configuration)')
@click.pass_context
def skip_add(ctx: click.Context, names: Tuple[str, ...], skip_file: Optional[str]) -> None:
    """Permanently exclude repositories from future runs."""
    registry = SkipRegistry(_skip_file(ctx, skip_file)).load()

    try:
        for name in names:
            if registry.append(name):
                console.print(f'[green]✓[/green] {name} added to {registry.skip_file}')
            else:
                console.print(f'[yellow]{name} is already skipped[/yellow]')
    except SkipRegistryError as e:
        console.print(f'[red]✗[/red] {e}')
        sys.exit(1)


@skip.command('list')
@click.option('--file', 'skip_file', default=None, help='Skip file (defaults to configuration)')
@click.pass_context
def skip_list(ctx: click.Context, skip_file: Optional[str]) -> None:
    """List repositories in the skip file."""
    registry = SkipRegistry(_skip_file(ctx, skip_file)).load()

    for name in sorted(registry.names):
        console.print(name)
    console.print(f'[blue]{len(registry.names)} repositories skipped[/blue]')


def _skip_file(ctx: click.Context, skip_file: Optional[str]) -> str:
    """Skip file from the option, the configuration, or the default name."""
    if skip_file:
        return skip_file
    try:
        return _load_config(ctx).workspace.skip_file
    except Exception:
        return 'repos.skip'


def _load_config(ctx: click.Context) -> Config:
    """Load configuration from file or environment."""
    config_path = ctx.obj.get('config_path')

    if config_path:
        if not Path(config_path).exists():
            raise FileNotFoundError(f'Configuration file not found: {config_path}')
        return Config.from_file(config_path)

    for path in DEFAULT_CONFIG_PATHS:
        if Path(path).exists():
            return Config.from_file(path)

    try:
        return Config.from_env()
    except ValueError as e:
        raise FileNotFoundError(
            'No configuration found. Use --config to specify a file or run '
            f'"fleet-migrate init" to create one ({e})'
        )


def _setup_logging_with_config(ctx: click.Context, config: Config) -> None:
    """Setup logging with configuration from config file."""
    verbose = ctx.obj.get('verbose', False)

    log_level = 'DEBUG' if verbose else config.logging.level
    setup_logging(
        level=log_level, log_file=config.logging.file, log_format=config.logging.format
    )


def _run_migration(config: Config) -> RunReport:
    """Build the engine and run it to completion."""
    engine = MigrationEngine(config)
    return asyncio.run(engine.migrate())


def _display_run_summary(report: RunReport) -> None:
    """Display run summary and every failed repository."""
    counts = report.counts()

    title = 'Dry Run Summary' if report.dry_run else 'Migration Summary'
    table = Table(title=title)
    table.add_column('Total', style='blue')
    table.add_column('Succeeded', style='green')
    table.add_column('No-op', style='white')
    table.add_column('Skipped', style='yellow')
    table.add_column('Failed', style='red')
    table.add_row(
        str(counts['total']),
        str(counts[OutcomeStatus.SUCCEEDED.value]),
        str(counts[OutcomeStatus.NO_OP.value]),
        str(counts[OutcomeStatus.SKIPPED.value]),
        str(counts[OutcomeStatus.FAILED.value]),
    )
    console.print(table)

    if report.completed_at:
        duration = report.completed_at - report.started_at
        console.print(f'\n[blue]Duration:[/blue] {duration}')

    if report.dry_run:
        pending = [o for o in report.outcomes if o.reason == 'would apply']
        if pending:
            console.print(f'\n[yellow]Would change ({len(pending)}):[/yellow]')
            for outcome in pending:
                console.print(f'  • {outcome.repository}')

    warnings = [(o.repository, w) for o in report.outcomes for w in o.warnings]
    if warnings:
        console.print(f'\n[yellow]Warnings ({len(warnings)}):[/yellow]')
        for repository, warning in warnings:
            console.print(f'  • {repository}: {warning}')

    if report.aborted:
        console.print(f'\n[red]Run aborted:[/red] {report.aborted}')

    if report.failed:
        failures = Table(title=f'Failed Repositories ({len(report.failed)})')
        failures.add_column('Repository', style='cyan')
        failures.add_column('Stage', style='magenta')
        failures.add_column('Branch Pushed', style='yellow')
        failures.add_column('Reason', style='red')
        for outcome in report.failed:
            failures.add_row(
                outcome.repository,
                outcome.stage or '-',
                '✓' if outcome.branch_pushed else '✗',
                outcome.reason or '-',
            )
        console.print(failures)


def main() -> None:
    """Main entry point for the CLI application."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print('\n[red]Migration interrupted by user[/red]')
        sys.exit(1)


if __name__ == '__main__':
    main()
