"""
Reads and writes the small JSON records kept next to downloaded artifacts.

Each provider owns ``<name>.config.json`` (the last resolved version and every
binary acquired so far) plus a snapshot of the catalog it resolved against.
The server keeps ``selenium-server.pid.json`` while a detached process runs.
"""

import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any

from wdm_cli.models.catalog import CatalogEntry

log = logging.getLogger(__name__)

SIDECAR_SUFFIX = ".config.json"
SERVER_RECORD = "selenium-server.pid.json"


def sidecar_path(out_dir: Path, name: str) -> Path:
    return out_dir / f"{name}{SIDECAR_SUFFIX}"


def snapshot_path(out_dir: Path, name: str, suffix: str) -> Path:
    return out_dir / f"{name}{suffix}"


def _read_json(path: Path) -> Any | None:
    """Read JSON file, return None when missing or unreadable."""
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        return None
    except (json.JSONDecodeError, OSError) as e:
        log.warning(f"Ignoring unreadable record {path.name}: {e}")
        return None


def _write_atomic(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    with open(tmp, "w", encoding="utf-8") as f:
        f.write(text)
    os.replace(tmp, path)


def read_sidecar(out_dir: Path, name: str) -> dict[str, Any] | None:
    data = _read_json(sidecar_path(out_dir, name))
    return data if isinstance(data, dict) else None


def write_sidecar(
    out_dir: Path,
    name: str,
    entry: CatalogEntry,
    binary: Path,
    snapshot: str | None,
    snapshot_suffix: str,
    catalog_url: str,
) -> Path:
    """
    Records the resolved version and saves the catalog snapshot.

    Args:
        out_dir: The provider's output directory.
        name: The provider's file stem, e.g. ``chromedriver``.
        entry: The catalog entry that was acquired.
        binary: Path of the binary (or manifest) on disk.
        snapshot: The raw catalog payload, or None to keep the previous one.
        snapshot_suffix: ``.xml`` or ``.json``.
        catalog_url: Where the catalog was fetched from.

    Returns:
        The path of the sidecar file.
    """
    relative = binary.relative_to(out_dir).as_posix()
    previous = read_sidecar(out_dir, name) or {}
    binaries = [
        item
        for item in previous.get("all", [])
        if isinstance(item, dict) and item.get("file") != relative
    ]
    binaries.append({"file": relative, "version": entry.raw_version})

    snapshot_file = snapshot_path(out_dir, name, snapshot_suffix)
    if snapshot is not None:
        _write_atomic(snapshot_file, snapshot)

    record = {
        "last": relative,
        "version": entry.raw_version,
        "all": binaries,
        "catalog": snapshot_file.name,
        "catalog_url": catalog_url,
        "source": entry.url,
        "updated_at": datetime.now().isoformat(timespec="seconds"),
    }
    path = sidecar_path(out_dir, name)
    _write_atomic(path, json.dumps(record, indent=2))
    log.debug(f"Wrote sidecar {path.name} for version {entry.raw_version}.")
    return path


def write_server_record(out_dir: Path, record: dict[str, Any]) -> Path:
    path = out_dir / SERVER_RECORD
    _write_atomic(path, json.dumps(record, indent=2))
    return path


def read_server_record(out_dir: Path) -> dict[str, Any] | None:
    data = _read_json(out_dir / SERVER_RECORD)
    return data if isinstance(data, dict) else None


def clear_server_record(out_dir: Path) -> None:
    try:
        (out_dir / SERVER_RECORD).unlink()
    except FileNotFoundError:
        pass
