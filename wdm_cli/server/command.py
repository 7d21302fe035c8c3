"""
Builds the java command line for the Selenium standalone server.
"""

from collections.abc import Mapping
from pathlib import Path

from wdm_cli.models.config import DEFAULT_HUB, ServerConfig, ServerRole

# Driver kind -> system property read by the server
DRIVER_PROPERTIES = {
    "chrome": "webdriver.chrome.driver",
    "gecko": "webdriver.gecko.driver",
    "ie": "webdriver.ie.driver",
}


def build_server_command(
    java: str,
    jar: Path,
    config: ServerConfig,
    drivers: Mapping[str, Path] | None = None,
) -> list[str]:
    """
    Assembles the argument vector that starts the server.

    Args:
        java: The java executable.
        jar: The standalone server jar.
        config: Port, role, hub and chrome log settings.
        drivers: Downloaded driver executables keyed by ``chrome``, ``gecko`` or ``ie``.

    Returns:
        The argument vector, starting with ``java``.

    Raises:
        ValueError: If a driver key is unknown.
    """
    command = [java]
    for kind, path in (drivers or {}).items():
        if kind not in DRIVER_PROPERTIES:
            raise ValueError(f"Unknown driver kind '{kind}'.")
        command.append(f"-D{DRIVER_PROPERTIES[kind]}={Path(path).resolve()}")
    if config.chrome_logs:
        command.append(f"-Dwebdriver.chrome.logfile={Path(config.chrome_logs).resolve()}")

    command.extend(["-jar", str(jar), "-port", str(config.port)])

    if config.role == ServerRole.NODE:
        command.extend(["-role", "node", "-hub", config.hub or DEFAULT_HUB])
    return command
