"""mfabridge CLI - drive second-factor flows from the terminal.

Inspect configuration and tokens, and run a complete login against the
configured MFA server with the terminal acting as the login page.
"""

import json
import os
from dataclasses import asdict
from typing import Annotated

import click
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

import mfabridge
from mfabridge import console as mb_console
from mfabridge.cli.login_commands import login
from mfabridge.config import get_settings
from mfabridge.exceptions import ConfigurationError, ServerError
from mfabridge.logging import configure_logging, get_logger
from mfabridge.server.privacyidea import PrivacyIDEAClient

# Configure logging early using env vars directly; flags in main_callback()
# may reconfigure later.
configure_logging(
    level=os.environ.get("MFABRIDGE_LOG_LEVEL", "WARNING"),
    json_output=os.environ.get("MFABRIDGE_LOG_FORMAT", "console") == "json",
)

LOG = get_logger(__name__)

app = typer.Typer(
    name="mfabridge",
    help="""
    🔐 mfabridge - second-factor authentication bridge

    \b
    Quick start:
      mfabridge config             Show current configuration
      mfabridge tokens <user>      List a user's tokens
      mfabridge login <user>       Run a second-factor login
    """,
    no_args_is_help=True,
    rich_markup_mode="rich",
    context_settings={"help_option_names": ["-h", "--help"]},
)
console = Console()

app.command("login")(login)


@app.callback(invoke_without_command=True)
def main_callback(
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose",
            "-v",
            count=True,
            help="Increase verbosity (-v for info, -vv for debug)",
        ),
    ] = 0,
    log_format: Annotated[
        str | None,
        typer.Option(
            "--log-format",
            click_type=click.Choice(["console", "json"]),
            help="Log output format: console (human-readable) or json (structured)",
        ),
    ] = None,
) -> None:
    """mfabridge - second-factor authentication bridge."""
    settings = get_settings()
    json_output = (log_format or settings.log_format) == "json"

    if verbose >= 2:
        configure_logging(level="DEBUG", json_output=json_output)
    elif verbose >= 1:
        configure_logging(level="INFO", json_output=json_output)
    elif log_format is not None:
        configure_logging(level=settings.log_level, json_output=json_output)


@app.command("version")
def version() -> None:
    """Show mfabridge version and configured server."""
    settings = get_settings()
    console.print(
        Panel(
            f"[bold cyan]mfabridge[/bold cyan] v{mfabridge.__version__}\n\n"
            f"[dim]Server:[/dim] {settings.server_url or '(not configured)'}",
            title="Second-factor authentication bridge",
            border_style="cyan",
        )
    )


@app.command("config")
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", "-j", help="Output as JSON for scripting"),
    ] = False,
) -> None:
    """Show current mfabridge configuration (secrets masked)."""
    settings = get_settings()

    if json_output:
        console.print(settings.model_dump_json(indent=2))
        return

    account = settings.service_account_name or "[dim](none)[/dim]"
    enrollment = f"yes ({settings.enrolling_token_type})" if settings.enroll_token else "no"
    if settings.service_account_password:
        account = f"{account} [dim](password set)[/dim]"

    info = f"""
[dim]Server URL:[/dim]         {settings.server_url or "[dim](not configured)[/dim]"}
[dim]Verify SSL:[/dim]         {"yes" if settings.verify_ssl else "[red]no[/red]"}
[dim]Realm:[/dim]              {settings.realm or "[dim](default)[/dim]"}
[dim]Service account:[/dim]    {account}
[dim]Trigger challenges:[/dim] {"yes" if settings.trigger_challenge else "no"}
[dim]Enroll tokens:[/dim]      {enrollment}
[dim]Excluded groups:[/dim]    {", ".join(settings.excluded_groups) or "[dim](none)[/dim]"}
[dim]Polling schedule:[/dim]   {", ".join(f"{i}s" for i in settings.polling_intervals)}
[dim]Server logging:[/dim]     {"on" if settings.do_log else "off"}
[dim]Log level:[/dim]          {settings.log_level}
[dim]Log format:[/dim]         {settings.log_format}"""

    console.print(Panel(info.strip(), title="⚙ Configuration", border_style="cyan"))


@app.command("tokens")
def tokens(
    username: Annotated[str, typer.Argument(help="User whose tokens to list")],
    json_output: Annotated[
        bool,
        typer.Option("--json", "-j", help="Output as JSON for scripting"),
    ] = False,
) -> None:
    """List the tokens enrolled for a user."""
    try:
        with PrivacyIDEAClient.from_settings(get_settings()) as client:
            token_infos = client.get_token_info(username)
    except (ServerError, ConfigurationError) as exc:
        LOG.error("token_listing_failed", username=username, error=str(exc))
        mb_console.error(str(exc))
        raise typer.Exit(1) from None

    if json_output:
        console.print(json.dumps([asdict(t) for t in token_infos], indent=2))
        return

    if not token_infos:
        console.print(
            Panel(
                f"[dim]{username} has no tokens.[/dim]",
                title="No Tokens",
                border_style="yellow",
            )
        )
        return

    table = Table(
        title=f"Tokens of {username}",
        title_style="bold",
        header_style="bold cyan",
        border_style="dim",
    )
    table.add_column("Serial", style="cyan", no_wrap=True)
    table.add_column("Type", style="white")
    table.add_column("Status", justify="center")
    table.add_column("Description", style="dim")

    for token in token_infos:
        status_display = "[green]● active[/green]" if token.active else "[red]○ disabled[/red]"
        table.add_row(
            token.serial,
            token.token_type,
            status_display,
            token.description or "[dim]—[/dim]",
        )

    console.print(table)
    console.print(f"\n[dim]{len(token_infos)} token(s)[/dim]")


if __name__ == "__main__":
    app()
