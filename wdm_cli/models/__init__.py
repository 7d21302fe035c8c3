"""
Data Models Layer.

This package contains the dataclasses and Pydantic models shared by the
catalog, transfer, provider and server layers.
"""

from .catalog import AcquireResult, BinaryRecord, CatalogEntry
from .config import (
    AppSettings,
    ProviderConfig,
    ProxyEnvironment,
    ServerConfig,
    ServerRole,
)
from .stats import UpdateStats
from .version import SemanticVersion

__all__ = [
    "AcquireResult",
    "AppSettings",
    "BinaryRecord",
    "CatalogEntry",
    "ProviderConfig",
    "ProxyEnvironment",
    "SemanticVersion",
    "ServerConfig",
    "ServerRole",
    "UpdateStats",
]
