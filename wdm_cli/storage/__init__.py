"""
Storage Layer.

This package handles everything persisted under the output directory and the
user configuration directory: sidecar records, catalog snapshots, the server
pid record, the provider's local artifacts and the optional INI file.
"""

from .config_manager import ConfigManager, default_config_path
from .local_files import list_matching, remove_files
from .sidecar import (
    clear_server_record,
    read_server_record,
    read_sidecar,
    write_server_record,
    write_sidecar,
)

__all__ = [
    "ConfigManager",
    "clear_server_record",
    "default_config_path",
    "list_matching",
    "read_server_record",
    "read_sidecar",
    "remove_files",
    "write_server_record",
    "write_sidecar",
]
