"""
Appium is installed by npm, so this provider only resolves a version from the
registry and pins it in ``appium/package.json`` for an external install step.
"""

import asyncio
import json
import logging
import os
import re
from pathlib import Path

from wdm_cli.catalog.parser import FilenamePattern, parse_registry_json
from wdm_cli.catalog.selector import select_entry
from wdm_cli.models.catalog import AcquireResult, BinaryRecord, CatalogEntry
from wdm_cli.net.transfer import create_session
from wdm_cli.storage.local_files import list_matching, remove_files
from wdm_cli.storage.sidecar import SIDECAR_SUFFIX, read_sidecar, write_sidecar

from .base import Provider

log = logging.getLogger(__name__)

MANIFEST_DIR = "appium"
MANIFEST_NAME = "package.json"


class Appium(Provider):
    name = "appium"
    artifact_prefix = "appium"
    default_catalog_url = "https://registry.npmjs.org/appium"
    snapshot_suffix = ".json"

    def filename_pattern(self) -> FilenamePattern:
        return FilenamePattern("{version}")

    def platform_filter(self) -> str | None:
        return None

    def parse_catalog(self, payload: str) -> list[CatalogEntry]:
        return parse_registry_json(payload, self.filename_pattern())

    @property
    def manifest_path(self) -> Path:
        return self.out_dir / MANIFEST_DIR / MANIFEST_NAME

    def write_manifest(self, version: str) -> Path:
        """Writes a package.json whose only dependency is appium pinned to ``version``."""
        manifest = {
            "name": "appium-install",
            "private": True,
            "dependencies": {"appium": version},
        }
        path = self.manifest_path
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(manifest, f, indent=2)
            f.write("\n")
        os.replace(tmp, path)
        return path

    async def acquire(self, version: str | None = None) -> AcquireResult:
        """Resolves the version and pins it in the manifest; no binary is transferred."""
        async with create_session() as session:
            entries, snapshot = await self.fetch_catalog(session)
        entry = select_entry(entries, version, self.platform_filter())

        already_current = (
            self.last_version() == entry.raw_version and self.manifest_path.is_file()
        )
        manifest = await asyncio.to_thread(self.write_manifest, entry.raw_version)
        log.debug(f"Pinned appium {entry.raw_version} in {manifest}.")

        record = await asyncio.to_thread(BinaryRecord.from_path, manifest, entry.raw_version)
        await asyncio.to_thread(
            write_sidecar,
            self.out_dir,
            self.name,
            entry,
            manifest,
            snapshot,
            self.snapshot_suffix,
            self.catalog_url,
        )
        return AcquireResult(
            entry=entry,
            record=record,
            already_current=already_current,
            bytes_transferred=0,
        )

    def local_file_regex(self) -> re.Pattern:
        names = "|".join(
            re.escape(f"{self.name}{suffix}")
            for suffix in (SIDECAR_SUFFIX, self.snapshot_suffix)
        )
        return re.compile(f"^(?:{names})$")

    def local_files(self) -> list[Path]:
        files = list_matching(self.out_dir, self.local_file_regex())
        if self.manifest_path.is_file():
            files.append(self.manifest_path)
        return files

    def installed_versions(self) -> list[str]:
        sidecar = read_sidecar(self.out_dir, self.name)
        if sidecar and sidecar.get("version") and self.manifest_path.is_file():
            return [sidecar["version"]]
        return []

    def clean(self) -> list[Path]:
        removed = remove_files(self.local_files())
        try:
            self.manifest_path.parent.rmdir()
        except OSError:
            # Missing, or holds node_modules from an install
            pass
        return removed
