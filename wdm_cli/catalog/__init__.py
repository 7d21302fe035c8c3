"""
Catalog Layer.

This package parses remote version listings and selects the entry that a
provider should acquire.
"""

from .parser import (
    FilenamePattern,
    parse_bucket_xml,
    parse_registry_json,
    parse_release_json,
)
from .selector import describe_range, select_entry

__all__ = [
    "FilenamePattern",
    "describe_range",
    "parse_bucket_xml",
    "parse_registry_json",
    "parse_release_json",
    "select_entry",
]
