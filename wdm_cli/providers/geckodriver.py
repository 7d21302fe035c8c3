"""
GeckoDriver, published as GitHub release assets of mozilla/geckodriver.
"""

from wdm_cli.catalog.parser import FilenamePattern, parse_release_json
from wdm_cli.models.catalog import CatalogEntry
from wdm_cli.utils.platform import (
    LINUX,
    MAC,
    WINDOWS,
    executable_name,
    is_64bit,
    is_arm,
)

from .base import Provider

PLATFORMS = (
    "linux32",
    "linux64",
    "linux-aarch64",
    "macos",
    "macos-aarch64",
    "win32",
    "win64",
    "win-aarch64",
)


class GeckoDriver(Provider):
    name = "geckodriver"
    artifact_prefix = "geckodriver"
    default_catalog_url = "https://api.github.com/repos/mozilla/geckodriver/releases"
    snapshot_suffix = ".json"

    def filename_pattern(self) -> FilenamePattern:
        # Windows builds ship as zip, everything else as tar.gz
        extension = "zip" if self.os_family == WINDOWS else "tar.gz"
        return FilenamePattern(
            f"geckodriver-v{{version}}-{{platform}}.{extension}", PLATFORMS
        )

    def platform_filter(self) -> str | None:
        family = self.os_family
        arch = self.config.os_arch
        if family == LINUX:
            if is_arm(arch):
                return "linux-aarch64"
            return "linux64" if is_64bit(arch) else "linux32"
        if family == MAC:
            return "macos-aarch64" if is_arm(arch) else "macos"
        if is_arm(arch):
            return "win-aarch64"
        return "win64" if is_64bit(arch) else "win32"

    def request_headers(self) -> dict[str, str]:
        headers = {"Accept": "application/vnd.github+json"}
        token = self.config.environment.github_token
        if token:
            headers["Authorization"] = f"token {token}"
        return headers

    def parse_catalog(self, payload: str) -> list[CatalogEntry]:
        return parse_release_json(payload, self.filename_pattern())

    def executable_name(self, entry: CatalogEntry) -> str | None:
        return executable_name(
            f"{self.artifact_prefix}_{entry.raw_version}", self.config.os_type
        )
