"""
Server Layer.

Builds the Selenium server command line and owns the lifecycle of the
spawned process: readiness detection, detach handling and shutdown.
"""

from .command import build_server_command
from .controller import ServerController, ServerProcessHandle, ServerState

__all__ = [
    "ServerController",
    "ServerProcessHandle",
    "ServerState",
    "build_server_command",
]
