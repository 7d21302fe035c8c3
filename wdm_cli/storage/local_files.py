"""
Lists and removes the files a provider owns in the output directory.

A missing or empty output directory is never an error: both operations simply
return an empty list.
"""

import logging
import re
from pathlib import Path

log = logging.getLogger(__name__)


def list_matching(out_dir: Path, pattern: re.Pattern) -> list[Path]:
    """Returns the files directly inside ``out_dir`` whose name matches."""
    if not out_dir.is_dir():
        return []
    return sorted(
        path for path in out_dir.iterdir() if path.is_file() and pattern.match(path.name)
    )


def remove_files(paths: list[Path]) -> list[Path]:
    """Removes files, returning the ones actually deleted."""
    removed = []
    for path in paths:
        try:
            path.unlink()
            removed.append(path)
        except FileNotFoundError:
            continue
        except OSError as e:
            log.warning(f"Could not remove {path}: {e}")
    return removed
