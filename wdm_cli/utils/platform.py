"""
Normalizes operating system and architecture names into the families used by
driver catalogs.
"""

from wdm_cli.exceptions import ConfigurationError

WINDOWS = "windows"
MAC = "mac"
LINUX = "linux"


def os_family(os_type: str) -> str:
    """
    Maps ``platform.system()`` style names ("Linux", "Darwin", "Windows",
    "Windows_NT") to one of ``linux``, ``mac`` or ``windows``.

    Raises:
        ConfigurationError: If the operating system is not supported.
    """
    name = os_type.strip().lower()
    if name.startswith(("win", "cygwin", "msys")):
        return WINDOWS
    if name in ("darwin", "mac", "macos", "osx"):
        return MAC
    if name.startswith("linux"):
        return LINUX
    raise ConfigurationError(f"Unsupported operating system: {os_type}")


def is_64bit(os_arch: str) -> bool:
    arch = os_arch.strip().lower()
    return arch.endswith("64") or arch in ("x64", "arm64")


def is_arm(os_arch: str) -> bool:
    arch = os_arch.strip().lower()
    return arch.startswith(("arm", "aarch"))


def executable_name(name: str, os_type: str) -> str:
    """Appends ``.exe`` on Windows."""
    return f"{name}.exe" if os_family(os_type) == WINDOWS else name
