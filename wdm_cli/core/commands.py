"""
The entry points behind the CLI commands: update, status, clean, start and
shutdown. Each takes an ``Options`` object and returns plain text (or an exit
code) so it can be used without the CLI.
"""

import asyncio
import logging
import os
import platform
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from wdm_cli.exceptions import ProcessSpawnError, WdmCliError
from wdm_cli.models.config import (
    DEFAULT_OUT_DIR,
    DEFAULT_PORT,
    ProviderConfig,
    ProxyEnvironment,
    ServerConfig,
)
from wdm_cli.models.stats import UpdateStats
from wdm_cli.providers import (
    ChromeDriver,
    GeckoDriver,
    IEDriver,
    Provider,
    ProviderKind,
    SeleniumServer,
    create_provider,
)
from wdm_cli.providers.selenium_server import SERVER_LOG
from wdm_cli.server.command import build_server_command
from wdm_cli.server.controller import ServerController, ServerProcessHandle
from wdm_cli.storage.sidecar import (
    clear_server_record,
    read_server_record,
    read_sidecar,
    write_server_record,
)
from wdm_cli.utils.formatting import format_size
from wdm_cli.utils.structured_logger import ServerLogger, TransferLogger

log = logging.getLogger(__name__)

# Driver providers whose binaries are handed to the server, by property kind
_SERVER_DRIVERS = {"chrome": ChromeDriver, "gecko": GeckoDriver, "ie": IEDriver}


class ProviderOptions(BaseModel):
    """One provider to act on and the version requested for it."""

    kind: ProviderKind
    version: str | None = None
    catalog_url: str | None = None


class ServerOptions(BaseModel):
    """How the Selenium server is updated and run."""

    version: str | None = None
    port: int = DEFAULT_PORT
    run_as_node: bool = False
    run_as_detach: bool = False
    hub: str | None = None
    chrome_logs: str | None = None
    readiness_timeout: float = 60.0
    java: str = "java"
    catalog_url: str | None = None


class Options(BaseModel):
    """Everything a command needs; built by the CLI or by ``construct_*``."""

    providers: list[ProviderOptions] = Field(default_factory=list)
    server: ServerOptions | None = None
    out_dir: str = DEFAULT_OUT_DIR
    proxy: str | None = None
    ignore_ssl: bool = False
    os_type: str = Field(default_factory=platform.system)
    os_arch: str = Field(default_factory=platform.machine)
    environment: ProxyEnvironment = Field(default_factory=ProxyEnvironment.from_environ)

    @field_validator("out_dir")
    @classmethod
    def validate_out_dir(cls, v: str) -> str:
        return os.path.expanduser(v)

    def provider_config(self) -> ProviderConfig:
        return ProviderConfig(
            out_dir=self.out_dir,
            proxy=self.proxy,
            ignore_ssl=self.ignore_ssl,
            os_type=self.os_type,
            os_arch=self.os_arch,
            environment=self.environment,
        )

    def server_config(self, port: int | None = None) -> ServerConfig:
        server = self.server or ServerOptions()
        log_file = None
        if server.run_as_detach:
            log_file = str(Path(self.out_dir) / SERVER_LOG)
        return ServerConfig(
            port=port or server.port,
            run_as_node=server.run_as_node,
            detach=server.run_as_detach,
            readiness_timeout=server.readiness_timeout,
            hub=server.hub,
            chrome_logs=server.chrome_logs,
            log_file=log_file,
        )


def _server_options(
    version: str | None, run_as_node: bool, detach: bool, **server_kwargs
) -> ServerOptions:
    return ServerOptions(
        version=version,
        run_as_node=run_as_node,
        run_as_detach=detach,
        **{k: v for k, v in server_kwargs.items() if v is not None},
    )


def construct_providers(
    *,
    chrome: bool = False,
    gecko: bool = False,
    ie: bool = False,
    standalone: bool = False,
    appium: bool = False,
    versions: dict[str, str | None] | None = None,
    out_dir: str | None = None,
    proxy: str | None = None,
    ignore_ssl: bool = False,
    standalone_node: bool = False,
    detach: bool = False,
    **server_kwargs,
) -> Options:
    """
    Builds options for the selected providers only.

    Args:
        chrome, gecko, ie, standalone, appium: Which providers to include.
        versions: Requested versions keyed by ``chrome``, ``gecko``, ``ie``,
            ``standalone`` and ``appium``.
        server_kwargs: Extra ServerOptions fields (``port``, ``hub``,
            ``chrome_logs``, ``readiness_timeout``, ``java``).
    """
    versions = versions or {}
    selected = [
        (chrome, ProviderKind.CHROMEDRIVER, "chrome"),
        (gecko, ProviderKind.GECKODRIVER, "gecko"),
        (ie, ProviderKind.IEDRIVER, "ie"),
        (appium, ProviderKind.APPIUM, "appium"),
    ]
    options = Options(
        providers=[
            ProviderOptions(kind=kind, version=versions.get(key))
            for wanted, kind, key in selected
            if wanted
        ],
        proxy=proxy,
        ignore_ssl=ignore_ssl,
        **({"out_dir": out_dir} if out_dir else {}),
    )
    if standalone:
        options.server = _server_options(
            versions.get("standalone"), standalone_node, detach, **server_kwargs
        )
    return options


def construct_all_providers(
    *,
    versions: dict[str, str | None] | None = None,
    out_dir: str | None = None,
    proxy: str | None = None,
    ignore_ssl: bool = False,
    standalone_node: bool = False,
    detach: bool = False,
    **server_kwargs,
) -> Options:
    """Builds options for every driver provider plus the server."""
    return construct_providers(
        chrome=True,
        gecko=True,
        ie=True,
        standalone=True,
        versions=versions,
        out_dir=out_dir,
        proxy=proxy,
        ignore_ssl=ignore_ssl,
        standalone_node=standalone_node,
        detach=detach,
        **server_kwargs,
    )


def _targets(
    options: Options, events: TransferLogger | None = None
) -> list[tuple[Provider, str | None]]:
    config = options.provider_config()
    targets = [
        (create_provider(p.kind, config, events, p.catalog_url), p.version)
        for p in options.providers
    ]
    if options.server:
        server = options.server
        targets.append(
            (SeleniumServer(config, events, server.catalog_url), server.version)
        )
    return targets


async def _update_one(
    provider: Provider, version: str | None, stats: UpdateStats
) -> str:
    try:
        result = await provider.acquire(version)
    except (WdmCliError, OSError) as e:
        log.error(f"[red]Failed to update {provider.name}:[/red] {e}")
        await stats.record_failure(provider.name)
        return f"{provider.name}: failed ({e})"

    await stats.record(
        provider.name,
        already_current=result.already_current,
        bytes_transferred=result.bytes_transferred,
    )
    label = f"{provider.name} {result.entry.raw_version}"
    if result.already_current:
        return f"{label}: already current"
    if result.bytes_transferred == 0:
        return f"{label}: wrote {result.record.filename}"
    return (
        f"{label}: downloaded {result.record.filename} "
        f"({format_size(result.bytes_transferred)})"
    )


async def update(
    options: Options,
    events: TransferLogger | None = None,
    stats: UpdateStats | None = None,
) -> str:
    """
    Updates every selected provider concurrently.

    A failing provider is reported on its own line and never aborts the others.

    Returns:
        One line per provider, in the order the providers were given.
    """
    targets = _targets(options, events)
    if not targets:
        return ""
    stats = stats or UpdateStats()
    await asyncio.to_thread(Path(options.out_dir).mkdir, parents=True, exist_ok=True)
    lines = await asyncio.gather(
        *(_update_one(provider, version, stats) for provider, version in targets)
    )
    return "\n".join(lines)


def status(options: Options) -> str:
    """
    Lists the versions present locally per provider, the last acquired one
    marked. Returns an empty string when nothing is installed.
    """
    lines = []
    for provider, _ in _targets(options):
        versions = provider.installed_versions()
        if not versions:
            continue
        last = provider.last_version()
        shown = [
            f"{version} (last)" if version == last else version
            for version in reversed(versions)
        ]
        lines.append(f"{provider.name}: {', '.join(shown)}")
    return "\n".join(lines)


def clean(options: Options) -> str:
    """
    Removes the selected providers' files. Returns the removed file names,
    one per line, or an empty string when there was nothing to remove.
    """
    removed = []
    for provider, _ in _targets(options):
        for path in provider.clean():
            removed.append(path.relative_to(provider.out_dir).as_posix())
    return "\n".join(removed)


def _local_drivers(config: ProviderConfig) -> dict[str, Path]:
    drivers = {}
    for kind, provider_cls in _SERVER_DRIVERS.items():
        provider = provider_cls(config)
        sidecar = read_sidecar(provider.out_dir, provider.name)
        if not sidecar or not sidecar.get("last"):
            continue
        path = provider.out_dir / sidecar["last"]
        if path.is_file():
            drivers[kind] = path
    return drivers


async def start(
    options: Options,
    controller: ServerController | None = None,
    events: ServerLogger | None = None,
) -> int:
    """
    Starts the Selenium server with every locally available driver.

    Returns:
        0 once ready when detached; otherwise the server's exit code.

    Raises:
        ProcessSpawnError: If no server jar is present or the process fails to start.
        ReadinessTimeoutError: If the server never became ready.
    """
    server = options.server or ServerOptions()
    config = options.provider_config()
    selenium = SeleniumServer(config)
    jar = selenium.jar_path(server.version)
    if jar is None:
        wanted = server.version or "any version"
        raise ProcessSpawnError(
            f"No Selenium server jar ({wanted}) in {config.out_dir}. "
            "Run 'wdm update --standalone' first."
        )

    server_config = options.server_config()
    command = build_server_command(
        server.java, jar, server_config, _local_drivers(config)
    )
    controller = controller or ServerController(events)

    if server_config.detach:
        await asyncio.to_thread(Path(config.out_dir).mkdir, parents=True, exist_ok=True)
        code = await controller.start(command, server_config)
        record = write_server_record(Path(config.out_dir), controller.handle.to_dict())
        log.info(f"Server detached; pid recorded in {record}.")
        return code

    try:
        return await controller.start(command, server_config)
    except asyncio.CancelledError:
        await controller.stop()
        raise


async def shutdown(options: Options, events: ServerLogger | None = None) -> bool:
    """
    Stops a detached server recorded in the output directory.

    Returns:
        True if a recorded server was stopped, False if none was recorded.

    Raises:
        StopError: If the recorded server could not be stopped.
    """
    out_dir = Path(options.out_dir)
    record = read_server_record(out_dir)
    if record is None:
        return False
    try:
        handle = ServerProcessHandle.from_dict(record)
    except (KeyError, TypeError, ValueError) as e:
        log.warning(f"Discarding unreadable server record: {e}")
        clear_server_record(out_dir)
        return False

    controller = ServerController.from_handle(
        handle, options.server_config(port=handle.port), events
    )
    stopped = await controller.stop()
    clear_server_record(out_dir)
    return stopped
