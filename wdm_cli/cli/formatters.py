"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from wdm_cli.models.stats import UpdateStats
from wdm_cli.utils.formatting import format_duration, format_size


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "VersionNotFoundError": [
            "• Check the requested version against the range listed above.",
            "• Pass a shorter prefix (e.g. `2.4`) to pick the newest match.",
        ],
        "TransferError": [
            "• Check your internet connection or proxy settings.",
            "• Behind a TLS-terminating proxy, try `--proxy` or `--ignore-ssl`.",
            "• Please try again in a few minutes.",
        ],
        "ParseError": [
            "• The catalog could not be read; the service may be unavailable.",
            "• A proxy may be returning an error page instead of the catalog.",
        ],
        "ProcessSpawnError": [
            "• Make sure Java is installed and on your PATH.",
            "• Run `wdm update --standalone` to download the server jar.",
            "• Check `selenium-server.log` in the output directory.",
        ],
        "ReadinessTimeoutError": [
            "• The server may need longer to start; raise `--readiness-timeout`.",
            "• Another process may already be using the port; try `--port`.",
        ],
        "StopError": [
            "• The process may belong to another user.",
            "• Stop it manually using the pid in `selenium-server.pid.json`.",
        ],
        "ConfigurationError": [
            "• Fix the value reported above in your config file.",
            "• Run `wdm init --force` to rewrite it with defaults.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    suggestion_text = Text("\n".join(suggestions))

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(suggestion_text)

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the current configuration, hiding proxy credentials."""
    console = Console()
    content = ""
    for key, value in config_data.items():
        if key == "proxy" and value and "@" in str(value):
            value = "[hidden]"
        content += f"{key} = {value}\n"

    console.print(
        Panel(
            content.strip(),
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_status_table(report: str):
    """Displays the installed versions per provider."""
    console = Console()
    if not report:
        console.print("[dim]Nothing downloaded yet.[/dim]")
        return

    table = Table(title="Installed Artifacts")
    table.add_column("Provider", style="cyan")
    table.add_column("Versions", style="green")
    for line in report.splitlines():
        name, _, versions = line.partition(": ")
        table.add_row(name, versions)
    console.print(table)


def print_update_summary(stats: UpdateStats, report: str):
    """Displays the per-provider report and a summary of the update session."""
    console = Console()

    for line in report.splitlines():
        if line.endswith("already current"):
            console.print(f"[yellow]○[/yellow] {line}")
        elif ": failed (" in line:
            console.print(f"[red]✗[/red] {line}")
        else:
            console.print(f"[green]✓[/green] {line}")

    stats_table = Table(show_header=False, box=None, padding=(0, 2))
    stats_table.add_column(style="bold cyan", justify="right", width=18)
    stats_table.add_column(style="white", justify="left")

    stats_table.add_row(
        "✓ Updated:", f"[bold green]{len(stats.downloaded)}[/bold green]"
    )
    if stats.already_current:
        stats_table.add_row(
            "○ Already current:", f"[yellow]{len(stats.already_current)}[/yellow]"
        )
    if stats.failed:
        stats_table.add_row("✗ Failed:", f"[bold red]{len(stats.failed)}[/bold red]")

    stats_table.add_row("", "")  # Spacer
    stats_table.add_row(
        "Transferred:", f"[cyan]{format_size(stats.bytes_transferred)}[/cyan]"
    )
    stats_table.add_row(
        "Time Elapsed:", f"[blue]{format_duration(stats.elapsed)}[/blue]"
    )

    if stats.failed:
        title = "[bold]Update Finished With Errors[/bold]"
        border_color = "red"
    else:
        title = "[bold]Update Complete![/bold]"
        border_color = "green"

    console.print()
    console.print(
        Panel(
            stats_table,
            title=title,
            border_style=border_color,
            box=box.DOUBLE,
            expand=False,
            padding=(1, 2),
        )
    )
