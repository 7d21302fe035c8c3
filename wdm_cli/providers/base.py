"""
The provider abstraction shared by every downloadable artifact.

A provider knows where its catalog lives, how catalog keys are named, which
platform token applies to the current machine and which local files belong to
it. Resolution and acquisition are implemented once here on top of the
catalog parser, the version selector and the transfer layer.
"""

import asyncio
import logging
import os
import re
import stat
import tarfile
import zipfile
from abc import ABC, abstractmethod
from pathlib import Path

import aiohttp

from wdm_cli.catalog.parser import FilenamePattern, parse_bucket_xml
from wdm_cli.catalog.selector import select_entry
from wdm_cli.exceptions import TransferError
from wdm_cli.models.catalog import AcquireResult, BinaryRecord, CatalogEntry
from wdm_cli.models.config import ProviderConfig
from wdm_cli.models.version import SemanticVersion
from wdm_cli.net.proxy import HttpOptions
from wdm_cli.net.transfer import create_session, request_binary, request_body
from wdm_cli.storage.local_files import list_matching, remove_files
from wdm_cli.storage.sidecar import SIDECAR_SUFFIX, read_sidecar, write_sidecar
from wdm_cli.utils.platform import os_family
from wdm_cli.utils.structured_logger import TransferLogger

log = logging.getLogger(__name__)


class Provider(ABC):
    """
    Base class of the closed set of artifact providers.

    Subclasses set ``name`` (the file stem used for sidecars), ``artifact_prefix``
    (the stem of downloaded files) and ``default_catalog_url``, and implement
    ``filename_pattern`` and ``platform_filter``.
    """

    name: str = ""
    artifact_prefix: str = ""
    artifact_separator: str = "_"
    default_catalog_url: str = ""
    snapshot_suffix: str = ".xml"

    def __init__(
        self,
        config: ProviderConfig | None = None,
        events: TransferLogger | None = None,
        catalog_url: str | None = None,
    ):
        self.config = config or ProviderConfig()
        self.events = events
        self.catalog_url = catalog_url or self.default_catalog_url

    @property
    def out_dir(self) -> Path:
        return Path(self.config.out_dir)

    @property
    def os_family(self) -> str:
        return os_family(self.config.os_type)

    @abstractmethod
    def filename_pattern(self) -> FilenamePattern:
        """The template catalog keys must match to belong to this provider."""

    @abstractmethod
    def platform_filter(self) -> str | tuple[str, ...] | None:
        """
        The platform token for the configured OS, several tokens in order of
        preference, or None if not platform bound.
        """

    def request_headers(self) -> dict[str, str]:
        return {}

    def http_options(self) -> HttpOptions:
        return HttpOptions(
            proxy=self.config.proxy,
            ignore_ssl=self.config.ignore_ssl,
            headers=self.request_headers(),
            environment=self.config.environment,
        )

    def parse_catalog(self, payload: str) -> list[CatalogEntry]:
        return parse_bucket_xml(payload, self.filename_pattern(), self.catalog_url)

    async def fetch_catalog(
        self, session: aiohttp.ClientSession
    ) -> tuple[list[CatalogEntry], str]:
        """
        Downloads and parses the catalog.

        Returns:
            The parsed entries and the raw payload, kept as the catalog snapshot.
        """
        payload = await request_body(session, self.catalog_url, self.http_options())
        entries = self.parse_catalog(payload)
        if self.events:
            self.events.catalog_fetched(self.name, self.catalog_url, len(entries))
        return entries, payload

    async def resolve_version(
        self,
        version: str | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> CatalogEntry:
        """
        Resolves a version request against the remote catalog without
        transferring the artifact itself.

        Raises:
            ParseError: If the catalog cannot be parsed.
            VersionNotFoundError: If nothing in the catalog satisfies the request.
            TransferError: If the catalog cannot be fetched.
        """
        if session is None:
            async with create_session() as own_session:
                return await self.resolve_version(version, own_session)
        entries, _ = await self.fetch_catalog(session)
        return select_entry(entries, version, self.platform_filter())

    def artifact_name(self, entry: CatalogEntry) -> str:
        """The local file name of the downloaded artifact."""
        stem = f"{self.artifact_prefix}{self.artifact_separator}{entry.raw_version}"
        return stem + self._artifact_suffix(entry)

    def _artifact_suffix(self, entry: CatalogEntry) -> str:
        filename = entry.filename
        for suffix in (".tar.gz", ".zip", ".jar", ".exe"):
            if filename.endswith(suffix):
                return suffix
        return ""

    def executable_name(self, entry: CatalogEntry) -> str | None:
        """
        The local name of the executable unpacked from an archive, or None when
        the downloaded artifact is used as is.
        """
        return None

    def archive_member(self) -> str:
        """The file name of the executable inside the archive."""
        suffix = ".exe" if self.os_family == "windows" else ""
        return f"{self.artifact_prefix}{suffix}"

    async def install_artifact(
        self, entry: CatalogEntry, downloaded: Path, refreshed: bool
    ) -> Path:
        """
        Unpacks the executable when the artifact is an archive.

        Args:
            entry: The acquired catalog entry.
            downloaded: The downloaded artifact.
            refreshed: True when new bytes were just written to ``downloaded``.

        Returns:
            The path recorded in the sidecar as the provider's binary.
        """
        target = self.executable_name(entry)
        if target is None:
            return downloaded
        executable = downloaded.parent / target
        if refreshed or not executable.exists():
            await asyncio.to_thread(
                _extract_member, downloaded, self.archive_member(), executable
            )
            log.debug(f"Unpacked {executable.name} from {downloaded.name}.")
        return executable

    async def acquire(self, version: str | None = None) -> AcquireResult:
        """
        Resolves a version and makes sure its artifact is present locally.

        Re-running with the same version transfers nothing when the local file
        already has the size the server declares.

        Raises:
            ParseError, VersionNotFoundError, TransferError: see resolve_version
                and request_binary.
        """
        async with create_session() as session:
            entries, snapshot = await self.fetch_catalog(session)
            entry = select_entry(entries, version, self.platform_filter())
            destination = self.out_dir / self.artifact_name(entry)
            result = await request_binary(
                session,
                entry.url,
                destination,
                self.http_options(),
                expected_size=entry.size or None,
                events=self.events,
            )

        binary = await self.install_artifact(entry, result.path, not result.already_current)
        record = await asyncio.to_thread(BinaryRecord.from_path, binary, entry.raw_version)
        await asyncio.to_thread(
            write_sidecar,
            self.out_dir,
            self.name,
            entry,
            binary,
            snapshot,
            self.snapshot_suffix,
            self.catalog_url,
        )
        return AcquireResult(
            entry=entry,
            record=record,
            already_current=result.already_current,
            bytes_transferred=result.bytes_transferred,
        )

    def local_version_regex(self) -> re.Pattern:
        """
        Matches the provider's versioned artifacts, capturing the version.
        In-flight ``.part`` and ``.tmp`` files never match.
        """
        prefix = re.escape(self.artifact_prefix + self.artifact_separator)
        return re.compile(
            r"^(?!.*\.(?:part|tmp)$)"
            rf"{prefix}(?P<version>v?\d[0-9A-Za-z.\-]*?)"
            r"(?:\.tar\.gz|\.zip|\.jar|\.exe)?$"
        )

    def local_file_regex(self) -> re.Pattern:
        """Matches every file the provider owns: artifacts, sidecar and snapshot."""
        metadata = "|".join(
            re.escape(f"{self.name}{suffix}")
            for suffix in (SIDECAR_SUFFIX, self.snapshot_suffix)
        )
        return re.compile(f"{self.local_version_regex().pattern}|^(?:{metadata})$")

    def local_files(self) -> list[Path]:
        return list_matching(self.out_dir, self.local_file_regex())

    def installed_versions(self) -> list[str]:
        """The distinct versions present on disk, ascending."""
        regex = self.local_version_regex()
        found: dict[str, SemanticVersion] = {}
        for path in list_matching(self.out_dir, regex):
            raw = regex.match(path.name).group("version")
            try:
                found[raw] = SemanticVersion.parse(raw)
            except ValueError:
                continue
        return sorted(found, key=found.__getitem__)

    def last_version(self) -> str | None:
        """The version recorded by the most recent acquisition, if any."""
        sidecar = read_sidecar(self.out_dir, self.name)
        return sidecar.get("version") if sidecar else None

    def clean(self) -> list[Path]:
        """Removes every local file owned by the provider."""
        return remove_files(self.local_files())

    def __repr__(self) -> str:
        return f"{type(self).__name__}(out_dir={self.config.out_dir!r})"


def _find_in_zip(archive: zipfile.ZipFile, member: str) -> zipfile.ZipInfo | None:
    for info in archive.infolist():
        if not info.is_dir() and info.filename.rsplit("/", 1)[-1] == member:
            return info
    return None


def _find_in_tar(archive: tarfile.TarFile, member: str) -> tarfile.TarInfo | None:
    for info in archive.getmembers():
        if info.isfile() and info.name.rsplit("/", 1)[-1] == member:
            return info
    return None


def _extract_member(archive_path: Path, member: str, destination: Path) -> None:
    """
    Copies a single file out of a zip or tar.gz archive and marks it executable.

    Only the member's bytes are read, so archive paths never influence where
    the file is written.
    """
    try:
        if archive_path.name.endswith(".zip"):
            with zipfile.ZipFile(archive_path) as archive:
                info = _find_in_zip(archive, member)
                if info is None:
                    raise TransferError(f"'{member}' not found in {archive_path.name}.")
                data = archive.read(info)
        else:
            with tarfile.open(archive_path, "r:*") as archive:
                info = _find_in_tar(archive, member)
                if info is None:
                    raise TransferError(f"'{member}' not found in {archive_path.name}.")
                data = archive.extractfile(info).read()
    except (zipfile.BadZipFile, tarfile.TarError, OSError) as e:
        raise TransferError(f"Could not unpack {archive_path.name}: {e}") from e

    partial = destination.with_name(destination.name + ".part")
    with open(partial, "wb") as f:
        f.write(data)
    mode = os.stat(partial).st_mode
    os.chmod(partial, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    os.replace(partial, destination)

