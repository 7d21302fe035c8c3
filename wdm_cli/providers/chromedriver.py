"""
ChromeDriver, listed in the chromedriver storage bucket.
"""

from wdm_cli.catalog.parser import FilenamePattern
from wdm_cli.models.catalog import CatalogEntry
from wdm_cli.utils.platform import LINUX, MAC, executable_name, is_64bit, is_arm

from .base import Provider

PLATFORMS = ("linux32", "linux64", "mac32", "mac64", "mac64_m1", "mac_arm64", "win32")


class ChromeDriver(Provider):
    name = "chromedriver"
    artifact_prefix = "chromedriver"
    default_catalog_url = "https://chromedriver.storage.googleapis.com/"

    def filename_pattern(self) -> FilenamePattern:
        return FilenamePattern("{version}/chromedriver_{platform}.zip", PLATFORMS)

    def platform_filter(self) -> str | tuple[str, ...] | None:
        family = self.os_family
        arch = self.config.os_arch
        if family == LINUX:
            return "linux64" if is_64bit(arch) else "linux32"
        if family == MAC:
            if is_arm(arch):
                # Renamed from mac64_m1 to mac_arm64 with ChromeDriver 106
                return ("mac_arm64", "mac64_m1")
            return "mac64"
        return "win32"

    def executable_name(self, entry: CatalogEntry) -> str | None:
        return executable_name(
            f"{self.artifact_prefix}_{entry.raw_version}", self.config.os_type
        )
