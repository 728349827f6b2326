"""
Command Line Interface for the container hardening tool.

Provides commands to back up, deploy, validate, roll back, runtime-test and
vulnerability-scan service Dockerfiles, and to generate security reports.
"""

import sys
from functools import wraps
from typing import Optional

import click
from rich.markup import escape
from rich.table import Table

from . import __version__
from .core.exceptions import HardeningError
from .core.models import Command, Outcome
from .core.orchestrator import LifecycleOrchestrator
from .utils.console import console, echo_raw, log_error, log_success, setup_logging


CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}

OUTCOME_COLORS = {
    "success": "green",
    "warning": "yellow",
    "failed": "red",
    "skipped": "dim",
    "dry_run": "blue",
}


def lifecycle_options(func):
    """Options shared by every lifecycle command."""
    @click.option('--service', '-s', 'service', metavar="NAME",
                  help="Process a single service instead of the whole registry")
    @click.option('--dry-run', '-d', is_flag=True,
                  help="Show what would be done without executing")
    @click.option('--verbose', '-v', is_flag=True, help="Enable verbose output")
    @wraps(func)
    def wrapper(*args, **kwargs):
        return func(*args, **kwargs)
    return wrapper


@click.group(context_settings=CONTEXT_SETTINGS, invoke_without_command=True)
@click.version_option(version=__version__)
@click.option('--config', '-c', type=click.Path(dir_okay=False),
              help="Path to configuration file")
@click.option('--service', '-s', 'service', metavar="NAME",
              help="Process a single service (also accepted after the command)")
@click.option('--dry-run', '-d', is_flag=True,
              help="Show what would be done without executing")
@click.option('--verbose', '-v', is_flag=True,
              help="Enable verbose output")
@click.pass_context
def cli(ctx, config: Optional[str], service: Optional[str], dry_run: bool, verbose: bool):
    """
    Container Hardening Tool

    Deploys and verifies security-hardened Dockerfiles for a fleet of
    microservices: backups, deployment, compliance validation, rollback,
    runtime tests and vulnerability scans.
    """
    ctx.ensure_object(dict)
    ctx.obj['config'] = config
    ctx.obj['service'] = service
    ctx.obj['dry_run'] = dry_run
    ctx.obj['verbose'] = verbose

    if ctx.invoked_subcommand is None:
        log_error("No command specified")
        click.echo(ctx.get_help())
        ctx.exit(1)


def _get_tool(ctx, verbose: bool) -> LifecycleOrchestrator:
    setup_logging(verbose)
    echo = echo_raw if verbose else None
    try:
        return LifecycleOrchestrator(config_path=ctx.obj.get('config'), echo=echo)
    except HardeningError as e:
        console.print(f"[red]Failed to initialize hardening tool: {escape(str(e))}[/red]")
        sys.exit(1)


def _run(ctx, command: Command, service: Optional[str], dry_run: bool,
         verbose: bool, **kwargs) -> None:
    # options given before the command name apply too
    service = service or ctx.obj.get('service')
    dry_run = dry_run or ctx.obj.get('dry_run', False)
    verbose = verbose or ctx.obj.get('verbose', False)

    tool = _get_tool(ctx, verbose)
    try:
        record = tool.execute(command, service_name=service, dry_run=dry_run, **kwargs)
    except HardeningError as e:
        log_error(str(e))
        sys.exit(1)

    _display_record(record, verbose)

    if record.failed:
        log_error("Security deployment process completed with failures")
        sys.exit(1)
    log_success("Security deployment process completed!")


@cli.command()
@lifecycle_options
@click.pass_context
def backup(ctx, service, dry_run, verbose):
    """Create backups of existing Dockerfiles."""
    _run(ctx, Command.BACKUP, service, dry_run, verbose)


@cli.command()
@lifecycle_options
@click.pass_context
def deploy(ctx, service, dry_run, verbose):
    """Deploy security-hardened Dockerfiles."""
    _run(ctx, Command.DEPLOY, service, dry_run, verbose)


@cli.command()
@lifecycle_options
@click.pass_context
def validate(ctx, service, dry_run, verbose):
    """Validate deployed Dockerfiles against the security checklist."""
    _run(ctx, Command.VALIDATE, service, dry_run, verbose)


@cli.command()
@lifecycle_options
@click.pass_context
def rollback(ctx, service, dry_run, verbose):
    """Rollback to the most recent Dockerfile backups."""
    _run(ctx, Command.ROLLBACK, service, dry_run, verbose)


@cli.command()
@lifecycle_options
@click.pass_context
def test(ctx, service, dry_run, verbose):
    """Run runtime security tests on built images."""
    _run(ctx, Command.TEST, service, dry_run, verbose)


@cli.command()
@lifecycle_options
@click.option('--format', 'report_format', type=click.Choice(['markdown', 'json']),
              default='markdown', help="Report format")
@click.pass_context
def scan(ctx, service, dry_run, verbose, report_format):
    """Run vulnerability scans and write a report."""
    _run(ctx, Command.SCAN, service, dry_run, verbose, report_format=report_format)


@cli.command(name='all')
@lifecycle_options
@click.option('--format', 'report_format', type=click.Choice(['markdown', 'json']),
              default='markdown', help="Report format")
@click.pass_context
def all_steps(ctx, service, dry_run, verbose, report_format):
    """Run backup, deploy, validate, and scan."""
    _run(ctx, Command.ALL, service, dry_run, verbose, report_format=report_format)


@cli.command()
@lifecycle_options
@click.option('--format', 'report_format', type=click.Choice(['markdown', 'json']),
              default='markdown', help="Report format")
@click.option('--no-scan', is_flag=True, help="Skip vulnerability scanning")
@click.pass_context
def report(ctx, service, dry_run, verbose, report_format, no_scan):
    """Generate a security analysis report for the current Dockerfiles."""
    _run(ctx, Command.REPORT, service, dry_run, verbose,
         report_format=report_format, include_scan=not no_scan)


@cli.command()
@click.pass_context
def services(ctx):
    """List managed services and their Dockerfile state."""
    tool = _get_tool(ctx, verbose=ctx.obj.get('verbose', False))

    table = Table(title="Managed Services")
    table.add_column("Service", style="bold")
    table.add_column("Dockerfile")
    table.add_column("Hardened")
    table.add_column("Backups", justify="right")
    table.add_column("Latest Backup", style="dim")

    for entry in tool.describe_services():
        table.add_row(
            escape(entry["name"]),
            "[green]present[/green]" if entry["active_exists"] else "[red]missing[/red]",
            "[green]yes[/green]" if entry["hardened_exists"] else "[yellow]no[/yellow]",
            str(entry["backups"]),
            entry["latest_backup"].strftime("%Y-%m-%d %H:%M:%S") if entry["latest_backup"] else "-",
        )

    console.print(table)


def _display_record(record, verbose: bool) -> None:
    """Display per-service step outcomes."""
    mode_text = "DRY RUN - " if record.dry_run else ""
    table = Table(title=f"{mode_text}{record.command.value.title()} Results")
    table.add_column("Service", style="bold")
    table.add_column("Step")
    table.add_column("Outcome")
    if verbose:
        table.add_column("Details", max_width=60)

    for step in record.steps:
        color = OUTCOME_COLORS.get(step.outcome.value, "white")
        row = [
            escape(step.service),
            step.step.value,
            f"[{color}]{step.outcome.value.upper()}[/{color}]",
        ]
        if verbose:
            row.append(escape(step.message))
        table.add_row(*row)

    console.print(table)

    failed = sum(1 for s in record.steps if s.outcome == Outcome.FAILED)
    warnings = sum(1 for s in record.steps if s.outcome == Outcome.WARNING)
    if failed or warnings:
        console.print(f"Failed steps: [red]{failed}[/red]  Warnings: [yellow]{warnings}[/yellow]")


def main():
    """Main CLI entry point."""
    cli()


if __name__ == "__main__":
    main()
