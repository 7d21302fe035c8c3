"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class WdmCliError(Exception):
    """Base exception for all application-specific errors."""


class ParseError(WdmCliError):
    """Raised when a remote catalog payload is empty or structurally invalid."""


class VersionNotFoundError(WdmCliError):
    """Raised when no catalog entry satisfies the requested version."""

    def __init__(self, requested: str | None, available: str):
        self.requested = requested
        self.available = available
        wanted = f"'{requested}'" if requested else "the latest version"
        super().__init__(
            f"Could not find {wanted} in the catalog (available: {available})."
        )


class TransferError(WdmCliError):
    """
    Raised when a download fails on the network or the file on disk does not
    match the expected size.
    """


class ProcessSpawnError(WdmCliError):
    """Raised when the server binary is missing, not executable or dies on startup."""


class ReadinessTimeoutError(WdmCliError):
    """Raised when the server never reports ready before the timeout elapses."""


class StopError(WdmCliError):
    """Raised when neither the shutdown request nor a signal stopped the server."""


class ConfigurationError(WdmCliError):
    """Raised for issues related to configuration loading or validation."""
