"""
IEDriverServer, listed in the Selenium release bucket. Windows only at runtime,
but the archive can be fetched from any OS.
"""

from wdm_cli.catalog.parser import FilenamePattern
from wdm_cli.models.catalog import CatalogEntry
from wdm_cli.utils.platform import is_64bit

from .base import Provider

PLATFORMS = ("Win32", "x64")


class IEDriver(Provider):
    name = "iedriver"
    artifact_prefix = "IEDriverServer"
    default_catalog_url = "https://selenium-release.storage.googleapis.com/"

    def filename_pattern(self) -> FilenamePattern:
        return FilenamePattern("{dir}/IEDriverServer_{platform}_{version}.zip", PLATFORMS)

    def platform_filter(self) -> str | None:
        return "x64" if is_64bit(self.config.os_arch) else "Win32"

    def archive_member(self) -> str:
        return "IEDriverServer.exe"

    def executable_name(self, entry: CatalogEntry) -> str | None:
        return f"{self.artifact_prefix}_{entry.raw_version}.exe"
