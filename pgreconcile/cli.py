"""
Command line entry point: reconcile the local host.

    pgreconcile --spec postgresql.yml apply
    pgreconcile --version 16 plan create
    pgreconcile --version 16 show-profile
"""

from typing import Any, Dict, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from pgreconcile.core.config import settings
from pgreconcile.core.errors import ConfigurationError, ExecutionError, PgReconcileError
from pgreconcile.core.logging import configure_logging
from pgreconcile.reconciler import prepare_local_run
from pgreconcile.spec import load_spec_file

app = typer.Typer(
    name="pgreconcile",
    help="Idempotently install, initialize and start a PostgreSQL server",
    add_completion=False,
)
console = Console()
err_console = Console(stderr=True)

ACTION_HELP = "install (packages only), create (directory, initdb, service, password) or all"


def collect_values(
    spec_file: Optional[str],
    version: Optional[str] = None,
    port: Optional[int] = None,
    data_directory: Optional[str] = None,
    setup_repo: Optional[bool] = None,
    password: Optional[str] = None,
    no_password: bool = False,
    initdb_locale: Optional[str] = None,
    cookbook: Optional[str] = None,
) -> Dict[str, Any]:
    """Spec file values overlaid with the options given on the command line."""
    values = load_spec_file(spec_file) if spec_file else {}
    overrides = {
        "version": version,
        "port": port,
        "data_directory": data_directory,
        "setup_repo": setup_repo,
        "password": password,
        "initdb_locale": initdb_locale,
        "cookbook": cookbook,
    }
    values.update({key: value for key, value in overrides.items() if value is not None})
    if no_password:
        if password is not None:
            raise ConfigurationError("--password and --no-password are mutually exclusive")
        values["password"] = None
    return values


def _fail(error: PgReconcileError) -> None:
    err_console.print(f"[bold red]Error:[/bold red] {error}")
    if isinstance(error, ExecutionError) and error.output:
        err_console.print(Panel(error.output, title="command output", border_style="red"))
    raise typer.Exit(code=2 if isinstance(error, ConfigurationError) else 1)


def _reconciler(ctx: typer.Context):
    return prepare_local_run(ctx.obj["values"], settings=settings)


@app.callback()
def main(
    ctx: typer.Context,
    spec_file: Optional[str] = typer.Option(None, "--spec", "-s", help="YAML file with the server spec"),
    version: Optional[str] = typer.Option(None, "--version", help="PostgreSQL version, e.g. 16 or 9.6"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Listening port"),
    data_directory: Optional[str] = typer.Option(None, "--data-directory", "-D", help="Absolute data directory"),
    no_setup_repo: bool = typer.Option(False, "--no-setup-repo", help="Do not configure the PGDG repository"),
    password: Optional[str] = typer.Option(
        None, "--password", envvar="PGRECONCILE_PASSWORD", help="Literal password, or 'generate'"
    ),
    no_password: bool = typer.Option(False, "--no-password", help="Do not manage the password"),
    initdb_locale: Optional[str] = typer.Option(None, "--locale", help="Locale passed to initdb"),
    cookbook: Optional[str] = typer.Option(None, "--templates", help="Directory with templates overriding the builtin ones"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING or ERROR"),
    json_logs: bool = typer.Option(False, "--json", help="Log in JSON instead of console format"),
):
    configure_logging(log_level=log_level, use_json=json_logs or None)
    try:
        values = collect_values(
            spec_file,
            version=version,
            port=port,
            data_directory=data_directory,
            setup_repo=False if no_setup_repo else None,
            password=password,
            no_password=no_password,
            initdb_locale=initdb_locale,
            cookbook=cookbook,
        )
    except PgReconcileError as e:
        _fail(e)
    ctx.obj = {"values": values}


@app.command()
def apply(ctx: typer.Context, action: str = typer.Argument("all", help=ACTION_HELP)):
    """Reconcile the host. Safe to run repeatedly."""
    try:
        state = _reconciler(ctx).run(action)
    except PgReconcileError as e:
        _fail(e)

    table = Table(title=f"pgreconcile {action}")
    table.add_column("Step", style="cyan")
    table.add_column("Result")
    for result in state.results:
        if result.skipped:
            table.add_row(result.step, f"[dim]skipped ({result.reason})[/dim]")
        elif result.changed:
            table.add_row(result.step, "[yellow]changed[/yellow]")
        else:
            table.add_row(result.step, "[green]ok[/green]")
    console.print(table)


@app.command()
def plan(ctx: typer.Context, action: str = typer.Argument("all", help=ACTION_HELP)):
    """Evaluate each step's guard without changing the host."""
    try:
        planned = _reconciler(ctx).plan(action)
    except PgReconcileError as e:
        _fail(e)

    table = Table(title=f"pgreconcile plan {action}")
    table.add_column("Step", style="cyan")
    table.add_column("Runs")
    table.add_column("Reason", style="dim")
    for item in planned:
        if item.ensures:
            runs = "[cyan]ensures[/cyan]"
        else:
            runs = {True: "[yellow]yes[/yellow]", False: "[green]no[/green]", None: "[red]unknown[/red]"}[item.will_run]
        table.add_row(item.step, runs, item.reason or "")
    console.print(table)


@app.command("show-profile")
def show_profile(ctx: typer.Context):
    """Show the ServerSpec and the platform profile derived for this host."""
    try:
        reconciler = _reconciler(ctx)
    except PgReconcileError as e:
        _fail(e)

    table = Table(title="Server spec", show_header=False)
    for key, value in reconciler.spec.model_dump().items():
        if key == "password" and value is not None and not reconciler.spec.generate_password:
            value = "********"
        table.add_row(key, str(value))
    console.print(table)

    profile = reconciler.profile
    table = Table(title="Platform profile", show_header=False)
    table.add_row("family", profile.family)
    table.add_row("codename", str(profile.codename))
    table.add_row("service", profile.service_name)
    table.add_row("packages", f"{profile.client_package}, {profile.server_package}")
    table.add_row("initdb", " ".join(profile.initdb_command) if profile.initdb_supported else "(package managed)")
    console.print(table)


if __name__ == "__main__":
    app()
