"""
Data classes for parsed catalog entries and the local binaries acquired from them.
"""

import time
from dataclasses import dataclass, field
from pathlib import Path

from .version import SemanticVersion


@dataclass(frozen=True)
class CatalogEntry:
    """One remote artifact version, normalized from a catalog listing."""

    raw_version: str
    version: SemanticVersion
    platform: str | None
    url: str
    size: int
    key: str
    last_modified: str = ""

    @property
    def filename(self) -> str:
        """The last path segment of the catalog key."""
        return self.key.rsplit("/", 1)[-1]


@dataclass(frozen=True)
class BinaryRecord:
    """A binary on disk produced by a successful acquisition."""

    filename: str
    version: str
    size: int
    created_at: float = field(default_factory=time.time)

    @classmethod
    def from_path(cls, path: Path, version: str) -> "BinaryRecord":
        stat = path.stat()
        return cls(
            filename=path.name,
            version=version,
            size=stat.st_size,
            created_at=stat.st_mtime,
        )


@dataclass(frozen=True)
class AcquireResult:
    """The outcome of a provider's acquire() call."""

    entry: CatalogEntry
    record: BinaryRecord
    already_current: bool
    bytes_transferred: int
