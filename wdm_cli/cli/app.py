"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from wdm_cli import __version__
from wdm_cli.core import commands
from wdm_cli.models.stats import UpdateStats
from wdm_cli.storage.config_manager import ConfigManager, default_config_path
from wdm_cli.utils.structured_logger import create_structured_logger

from .formatters import print_config, print_status_table, print_update_summary

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("wdm_cli")

app = typer.Typer(
    name="wdm",
    help=(
        "Downloads and manages WebDriver binaries and the Selenium server."
        " Use 'wdm <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)

CONFIG_FILE = default_config_path()


def _settings(**cli_options):
    """Loads the INI defaults with the given CLI flags on top."""
    return ConfigManager(CONFIG_FILE).load_settings(cli_options)


def _events(ctx: typer.Context):
    return ctx.obj or (None, None, None)


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    log_dir: Path | None = typer.Option(  # noqa: B008
        None,
        "--log-dir",
        help="Also write structured JSON lines logs to this directory.",
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
):
    """WebDriver Manager CLI"""
    if version:
        console.print(f"[bold]wdm-cli[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "INFO"
    if verbose >= 2:
        log_level = "DEBUG"
    logging.getLogger("wdm_cli").setLevel(log_level)

    base, transfer_events, server_events = create_structured_logger(
        log_dir, enable_json=log_dir is not None
    )
    base.set_session_context(command=ctx.invoked_subcommand)
    ctx.obj = (base, transfer_events, server_events)
    ctx.call_on_close(base.close)

    if show_config:
        settings = _settings()
        print_config(CONFIG_FILE, settings.model_dump())
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    out_dir: str | None = typer.Option(None, "--out-dir", help="Download directory."),
    proxy: str | None = typer.Option(None, "--proxy", help="Proxy URL for all requests."),
    ignore_ssl: bool = typer.Option(
        False, "--ignore-ssl", help="Skip TLS certificate verification."
    ),
    port: int | None = typer.Option(None, "--port", help="Default server port."),
    readiness_timeout: float | None = typer.Option(
        None, "--readiness-timeout", help="Seconds to wait for the server."
    ),
    java: str | None = typer.Option(None, "--java", help="Java executable."),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing file without asking."
    ),
):
    """Write a configuration file with default settings."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    ConfigManager(CONFIG_FILE).save_new_config(
        {
            "out_dir": out_dir,
            "proxy": proxy,
            "ignore_ssl": ignore_ssl,
            "port": port,
            "readiness_timeout": readiness_timeout,
            "java": java,
        }
    )
    console.print(f"[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")


def _build_options(
    *,
    chrome: bool,
    gecko: bool,
    ie: bool,
    standalone: bool,
    appium: bool,
    default_all: bool,
    include_appium: bool = False,
    versions: dict[str, str | None] | None = None,
    out_dir: str | None = None,
    proxy: str | None = None,
    ignore_ssl: bool | None = None,
    **server_kwargs,
) -> commands.Options:
    settings = _settings(out_dir=out_dir, proxy=proxy, ignore_ssl=ignore_ssl)
    common = {
        "versions": versions,
        "out_dir": settings.out_dir,
        "proxy": settings.proxy,
        "ignore_ssl": settings.ignore_ssl,
        "java": settings.java,
        "port": server_kwargs.pop("port", None) or settings.port,
        "readiness_timeout": server_kwargs.pop("readiness_timeout", None)
        or settings.readiness_timeout,
        **server_kwargs,
    }
    if default_all and not any((chrome, gecko, ie, standalone, appium)):
        options = commands.construct_all_providers(**common)
        if include_appium:
            options.providers.append(
                commands.ProviderOptions(
                    kind="appium", version=(versions or {}).get("appium")
                )
            )
    else:
        options = commands.construct_providers(
            chrome=chrome,
            gecko=gecko,
            ie=ie,
            standalone=standalone,
            appium=appium,
            **common,
        )
    return options


@app.command()
def update(
    ctx: typer.Context,
    chrome: bool = typer.Option(False, "--chrome", help="Update ChromeDriver."),
    gecko: bool = typer.Option(False, "--gecko", help="Update GeckoDriver."),
    ie: bool = typer.Option(False, "--ie", help="Update IEDriverServer."),
    standalone: bool = typer.Option(
        False, "--standalone", help="Update the Selenium standalone server."
    ),
    appium: bool = typer.Option(
        False, "--appium", help="Pin an Appium version in appium/package.json."
    ),
    versions_chrome: str | None = typer.Option(None, "--versions-chrome"),
    versions_gecko: str | None = typer.Option(None, "--versions-gecko"),
    versions_ie: str | None = typer.Option(None, "--versions-ie"),
    versions_standalone: str | None = typer.Option(None, "--versions-standalone"),
    versions_appium: str | None = typer.Option(None, "--versions-appium"),
    out_dir: str | None = typer.Option(None, "--out-dir", help="Download directory."),
    proxy: str | None = typer.Option(None, "--proxy", help="Proxy URL for all requests."),
    ignore_ssl: bool | None = typer.Option(
        None, "--ignore-ssl/--verify-ssl", help="Skip TLS certificate verification."
    ),
):
    """
    Download the selected binaries. Without a selection, the drivers and the
    server are updated.
    """
    options = _build_options(
        chrome=chrome,
        gecko=gecko,
        ie=ie,
        standalone=standalone,
        appium=appium,
        default_all=True,
        versions={
            "chrome": versions_chrome,
            "gecko": versions_gecko,
            "ie": versions_ie,
            "standalone": versions_standalone,
            "appium": versions_appium,
        },
        out_dir=out_dir,
        proxy=proxy,
        ignore_ssl=ignore_ssl,
    )
    _, transfer_events, _ = _events(ctx)
    stats = UpdateStats()
    console.print(f"[bold cyan]Updating into[/bold cyan] [dim]{options.out_dir}[/dim]")
    report = asyncio.run(commands.update(options, transfer_events, stats))
    print_update_summary(stats, report)
    if stats.failed:
        raise typer.Exit(code=1)


@app.command()
def status(
    chrome: bool = typer.Option(False, "--chrome"),
    gecko: bool = typer.Option(False, "--gecko"),
    ie: bool = typer.Option(False, "--ie"),
    standalone: bool = typer.Option(False, "--standalone"),
    appium: bool = typer.Option(False, "--appium"),
    out_dir: str | None = typer.Option(None, "--out-dir", help="Download directory."),
):
    """List the versions downloaded for each provider."""
    options = _build_options(
        chrome=chrome,
        gecko=gecko,
        ie=ie,
        standalone=standalone,
        appium=appium,
        default_all=True,
        include_appium=True,
        out_dir=out_dir,
    )
    print_status_table(commands.status(options))


@app.command()
def clean(
    chrome: bool = typer.Option(False, "--chrome"),
    gecko: bool = typer.Option(False, "--gecko"),
    ie: bool = typer.Option(False, "--ie"),
    standalone: bool = typer.Option(False, "--standalone"),
    appium: bool = typer.Option(False, "--appium"),
    out_dir: str | None = typer.Option(None, "--out-dir", help="Download directory."),
):
    """Remove downloaded files and their metadata."""
    options = _build_options(
        chrome=chrome,
        gecko=gecko,
        ie=ie,
        standalone=standalone,
        appium=appium,
        default_all=True,
        include_appium=True,
        out_dir=out_dir,
    )
    removed = commands.clean(options)
    if not removed:
        console.print("[dim]Nothing to remove.[/dim]")
        return
    for name in removed.splitlines():
        console.print(f"[red]-[/red] {name}")
    console.print(f"[green]✓ Removed {len(removed.splitlines())} files.[/green]")


@app.command()
def start(
    ctx: typer.Context,
    versions_standalone: str | None = typer.Option(
        None, "--versions-standalone", help="Server version to run (default: last)."
    ),
    port: int | None = typer.Option(None, "--port", help="Port to listen on."),
    standalone_node: bool = typer.Option(
        False, "--standalone-node", help="Run as a grid node instead of standalone."
    ),
    hub: str | None = typer.Option(None, "--hub", help="Hub registration URL for a node."),
    detach: bool = typer.Option(
        False, "--detach", help="Return once the server is ready, leaving it running."
    ),
    chrome_logs: str | None = typer.Option(
        None, "--chrome-logs", help="File that ChromeDriver should log to."
    ),
    readiness_timeout: float | None = typer.Option(
        None, "--readiness-timeout", help="Seconds to wait for the server."
    ),
    out_dir: str | None = typer.Option(None, "--out-dir", help="Download directory."),
):
    """Start the Selenium server with the downloaded drivers."""
    options = _build_options(
        chrome=False,
        gecko=False,
        ie=False,
        standalone=True,
        appium=False,
        default_all=False,
        versions={"standalone": versions_standalone},
        out_dir=out_dir,
        port=port,
        readiness_timeout=readiness_timeout,
        standalone_node=standalone_node,
        detach=detach,
        hub=hub,
        chrome_logs=chrome_logs,
    )
    _, _, server_events = _events(ctx)
    code = asyncio.run(commands.start(options, events=server_events))
    if detach:
        console.print(
            f"[bold green]✓ Server running on port {options.server.port}.[/bold green] "
            "Stop it with [cyan]wdm shutdown[/cyan]."
        )
    raise typer.Exit(code=code)


@app.command()
def shutdown(
    ctx: typer.Context,
    out_dir: str | None = typer.Option(None, "--out-dir", help="Download directory."),
):
    """Stop a server started with --detach."""
    options = _build_options(
        chrome=False,
        gecko=False,
        ie=False,
        standalone=False,
        appium=False,
        default_all=False,
        out_dir=out_dir,
    )
    _, _, server_events = _events(ctx)
    if asyncio.run(commands.shutdown(options, server_events)):
        console.print("[green]✓ Server stopped.[/green]")
    else:
        console.print("[yellow]No detached server is recorded.[/yellow]")
