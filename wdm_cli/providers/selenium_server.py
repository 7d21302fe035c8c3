"""
The Selenium standalone server jar, listed in the Selenium release bucket.
"""

import re
from pathlib import Path

from wdm_cli.catalog.parser import FilenamePattern
from wdm_cli.storage.sidecar import read_sidecar

from .base import Provider

# Output of a detached server, written next to the jar
SERVER_LOG = "selenium-server.log"


class SeleniumServer(Provider):
    name = "selenium-server"
    artifact_prefix = "selenium-server-standalone"
    artifact_separator = "-"
    default_catalog_url = "https://selenium-release.storage.googleapis.com/"

    def filename_pattern(self) -> FilenamePattern:
        return FilenamePattern("{dir}/selenium-server-standalone-{version}.jar")

    def platform_filter(self) -> str | None:
        return None

    def local_file_regex(self) -> re.Pattern:
        """Also claims the detached server's log file."""
        owned = super().local_file_regex().pattern
        return re.compile(f"{owned}|^{re.escape(SERVER_LOG)}$")

    def jar_path(self, version: str | None = None) -> Path | None:
        """
        Locates a downloaded jar.

        Args:
            version: A specific version, or None for the last one acquired
                (falling back to the greatest one on disk).

        Returns:
            The jar path, or None if it is not present.
        """
        if version is None:
            sidecar = read_sidecar(self.out_dir, self.name)
            if sidecar and sidecar.get("last"):
                last = self.out_dir / sidecar["last"]
                if last.is_file():
                    return last
            installed = self.installed_versions()
            if not installed:
                return None
            version = installed[-1]
        jar = self.out_dir / f"{self.artifact_prefix}-{version}.jar"
        return jar if jar.is_file() else None
