"""Centralized terminal output for mfabridge.

The terminal login host renders challenge pages here instead of HTML.
Key principle: stderr for status and prompts, stdout for data.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.panel import Panel

if TYPE_CHECKING:
    from mfabridge.flow.forms import PresentationState

# stderr console for status messages and challenge pages
err_console = Console(stderr=True)

# stdout console for data output (JSON, tables)
out_console = Console()


def success(message: str, *, console: Console | None = None) -> None:
    """Print a success message (green checkmark) to stderr."""
    c = console or err_console
    c.print(f"[green]  ✓ {message}[/green]")


def error(message: str, *, console: Console | None = None) -> None:
    """Print an error message (red X) to stderr."""
    c = console or err_console
    c.print(f"[red]  ✗ {message}[/red]")


def info(message: str, *, console: Console | None = None) -> None:
    """Print an info message (dim) to stderr."""
    c = console or err_console
    c.print(f"[dim]  {message}[/dim]")


def render_challenge(
    presentation: PresentationState,
    failure: str | None = None,
    *,
    console: Console | None = None,
) -> None:
    """Render a challenge page as a panel.

    The active input's prompt is shown first; the other available input is
    listed as an alternative the user can switch to.
    """
    c = console or err_console
    lines: list[str] = []
    if failure:
        lines.append(f"[red]{failure}[/red]\n")

    if presentation.token_type == "push":
        lines.append(f"[bold]{presentation.push_message}[/bold]")
        lines.append(f"[dim]Checking again in {presentation.polling_interval}s[/dim]")
        if presentation.otp_token_present:
            lines.append("[dim]Type 'otp' to enter a code instead[/dim]")
    else:
        lines.append(f"[bold]{presentation.otp_message}[/bold]")
        if presentation.push_token_present:
            lines.append("[dim]Type 'push' to confirm on your device instead[/dim]")

    if presentation.token_enrollment_qr:
        lines.append("\n[yellow]A new token was enrolled. Scan the QR code:[/yellow]")
        lines.append(f"[dim]{presentation.token_enrollment_qr[:80]}...[/dim]")

    lines.append("[dim]Type 'cancel' to abort[/dim]")
    c.print(Panel("\n".join(lines), title="🔐 Second factor", border_style="cyan"))
