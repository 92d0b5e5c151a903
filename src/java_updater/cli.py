"""Typer-powered command line interface for ``java-updater``.

Running ``java-updater`` without a subcommand updates every configured
installation. ``java-updater config show`` prints the resolved targets.
"""
from __future__ import annotations

import textwrap
from dataclasses import dataclass
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import AppConfig, ConfigError, load_config
from .display import DisplayConfig, Reporter
from .exit_codes import ExitCode
from .http import HttpClient
from .installation import InstallationTarget, RunContext
from .logging import StructuredLogger, configure_logging
from .notify import Notifier
from .package import Provisioner
from .providers import Vendor, create_provider
from .scheduler import Scheduler

console = Console()
err_console = Console(stderr=True)

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config",
    "-c",
    dir_okay=False,
    metavar="FILE",
    help="Path to the YAML config file (default: java-updater.yml).",
)

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Keep local Java runtime installations up to date.

        Without a subcommand every installation listed in the config file is
        checked against its vendor and updated when a newer build exists.
        """
    ).strip(),
)
config_app = typer.Typer(help="Inspect the configuration.")
app.add_typer(config_app, name="config")


@dataclass(slots=True)
class CliState:
    """Options collected by the root callback."""

    config_file: Path | None
    quiet: bool
    no_color: bool


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the java-updater version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        "-n",
        help="Query vendors and report, but change nothing.",
    ),
    threads: int | None = typer.Option(
        None,
        "--threads",
        "-t",
        min=1,
        help="Number of installations processed in parallel.",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Suppress unnecessary information.",
    ),
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase log verbosity (repeat for more).",
    ),
    no_color: bool = typer.Option(
        False,
        "--no-color",
        help="Disable coloured output.",
    ),
) -> None:
    """Entry point callback invoked for every CLI execution."""
    if version:
        console.print(f"java-updater {__version__}")
        raise typer.Exit(code=ExitCode.OK)

    configure_logging(verbose, console=Console(stderr=True, no_color=no_color))
    state = CliState(config_file=config_file, quiet=quiet, no_color=no_color)
    ctx.obj = state

    if ctx.invoked_subcommand is None:
        raise typer.Exit(code=_run_update(state, dry_run=dry_run, threads=threads))


def _load(state: CliState, threads: int | None = None) -> AppConfig:
    overrides = {"settings": {"threads": threads}} if threads is not None else None
    try:
        return load_config(state.config_file, overrides=overrides)
    except ConfigError as exc:
        err_console.print(f"[red]{escape(str(exc))}[/red]", soft_wrap=True)
        raise typer.Exit(code=ExitCode.VALIDATION) from exc


def _targets(config: AppConfig) -> list[InstallationTarget]:
    return [InstallationTarget.from_config(item, config.basedir) for item in config.installations]


def _run_update(state: CliState, *, dry_run: bool, threads: int | None) -> int:
    config = _load(state, threads)
    if not state.quiet:
        console.print(f"Using configuration from {escape(str(config.config_file))}.", soft_wrap=True)
    settings = config.settings
    http = HttpClient(timeout=settings.http_timeout, retries=settings.http_retries)
    reporter = Reporter(
        Console(no_color=state.no_color, highlight=False),
        Console(stderr=True, no_color=state.no_color, highlight=False),
        DisplayConfig(quiet=state.quiet),
    )
    context = RunContext(
        provisioner=Provisioner(http),
        reporter=reporter,
        providers={vendor: create_provider(vendor, http) for vendor in Vendor},
        notifier=Notifier(),
        logger=StructuredLogger(settings.logs_dir),
        dry_run=dry_run,
    )
    Scheduler(context, workers=settings.threads).run(_targets(config))
    return ExitCode.OK


@config_app.command("show")
def config_show(
    ctx: typer.Context,
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Emit the resolved installations as JSON instead of a table.",
    ),
) -> None:
    """Display the installations with their directories resolved."""
    state = ctx.obj if isinstance(ctx.obj, CliState) else CliState(None, False, False)
    config = _load(state)
    targets = _targets(config)

    if json_output:
        console.print_json(
            data={
                "config_file": str(config.config_file),
                "settings": config.settings.to_dict(),
                "installations": [target.describe() for target in targets],
            }
        )
        return

    table = Table(show_header=True, header_style="bold magenta")
    for column in ("Vendor", "Type", "Version", "Arch", "Enabled", "Directory"):
        table.add_column(column, style="bold" if column == "Vendor" else None)
    for target in targets:
        table.add_row(
            target.vendor_id,
            target.package_type,
            target.version,
            target.arch,
            "yes" if target.enabled else "no",
            str(target.directory),
        )
    console.print(f"Config file: {escape(str(config.config_file))}", soft_wrap=True)
    console.print(table)


def main() -> None:
    """Console script entry point."""
    app()
