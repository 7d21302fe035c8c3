"""
Pydantic models for provider, server and application configuration.
"""

import os
import platform
from collections.abc import Mapping
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_OUT_DIR = os.path.join(os.path.expanduser("~"), ".wdm-cli", "downloads")
DEFAULT_PORT = 4444
DEFAULT_HUB = "http://127.0.0.1:4444/grid/register"

# Lines printed by the Selenium server once it accepts sessions
READY_MARKERS = (
    "Selenium Server is up and running",
    "The node is registered to the hub and ready to use",
    "Started Selenium Standalone",
)


class ProxyEnvironment(BaseModel):
    """
    A snapshot of the proxy-related environment variables.

    Captured once at process start and passed down explicitly so that proxy
    resolution never reads ``os.environ`` on its own.
    """

    https_proxy: str | None = None
    http_proxy: str | None = None
    no_proxy: str | None = None
    github_token: str | None = Field(default=None, repr=False)

    class Config:
        """Pydantic model configuration."""

        frozen = True

    @classmethod
    def from_environ(cls, environ: Mapping[str, str] | None = None) -> "ProxyEnvironment":
        """Reads upper and lower case proxy variables, upper case winning."""
        env = os.environ if environ is None else environ
        return cls(
            https_proxy=env.get("HTTPS_PROXY") or env.get("https_proxy") or None,
            http_proxy=env.get("HTTP_PROXY") or env.get("http_proxy") or None,
            no_proxy=env.get("NO_PROXY") or env.get("no_proxy") or None,
            github_token=env.get("GITHUB_TOKEN") or None,
        )


class ProviderConfig(BaseModel):
    """Immutable per-invocation settings shared by every provider."""

    out_dir: str = DEFAULT_OUT_DIR
    proxy: str | None = None
    ignore_ssl: bool = False
    os_type: str = Field(default_factory=platform.system)
    os_arch: str = Field(default_factory=platform.machine)
    environment: ProxyEnvironment = Field(default_factory=ProxyEnvironment)

    class Config:
        """Pydantic model configuration."""

        frozen = True
        str_strip_whitespace = True

    @field_validator("proxy")
    @classmethod
    def validate_proxy(cls, v: str | None) -> str | None:
        """Ensures an explicit proxy is an http(s) URL."""
        if not v:
            return None
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Proxy must be an http:// or https:// URL, got: {v}")
        return v

    @field_validator("out_dir")
    @classmethod
    def validate_out_dir(cls, v: str) -> str:
        if not v:
            raise ValueError("Output directory cannot be empty.")
        return os.path.expanduser(v)


class ServerRole(str, Enum):
    """Whether the server runs self-contained or attaches to a hub."""

    STANDALONE = "standalone"
    NODE = "node"


class ServerConfig(BaseModel):
    """Settings for one run of the automation server process."""

    port: int = DEFAULT_PORT
    run_as_node: bool = False
    detach: bool = False
    host: str = "127.0.0.1"
    readiness_timeout: float = 60.0
    poll_interval: float = 0.5
    shutdown_timeout: float = 10.0
    status_path: str = "/wd/hub/status"
    shutdown_path: str = "/selenium-server/driver/?cmd=shutDownSeleniumServer"
    ready_markers: tuple[str, ...] = READY_MARKERS
    log_file: str | None = None
    hub: str | None = None
    chrome_logs: str | None = None

    class Config:
        """Pydantic model configuration."""

        frozen = True

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if v < 1 or v > 65535:
            raise ValueError("Port must be between 1 and 65535.")
        return v

    @field_validator("readiness_timeout", "poll_interval", "shutdown_timeout")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Timeouts and intervals must be positive.")
        return v

    @model_validator(mode="after")
    def validate_interval(self) -> "ServerConfig":
        """The poll interval has to fit inside the readiness window."""
        if self.poll_interval > self.readiness_timeout:
            raise ValueError("poll_interval cannot exceed readiness_timeout.")
        return self

    @property
    def role(self) -> ServerRole:
        return ServerRole.NODE if self.run_as_node else ServerRole.STANDALONE

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"


class AppSettings(BaseModel):
    """Defaults loaded from the INI file and overridden by CLI flags."""

    out_dir: str = DEFAULT_OUT_DIR
    proxy: str | None = None
    ignore_ssl: bool = False
    port: int = DEFAULT_PORT
    readiness_timeout: float = 60.0
    java: str = "java"

    class Config:
        """Pydantic model configuration."""

        validate_assignment = True
        str_strip_whitespace = True

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if v < 1 or v > 65535:
            raise ValueError("Port must be between 1 and 65535.")
        return v

    @field_validator("readiness_timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Readiness timeout must be positive.")
        return v

    @field_validator("proxy")
    @classmethod
    def validate_proxy(cls, v: str | None) -> str | None:
        if not v:
            return None
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Proxy must be an http:// or https:// URL, got: {v}")
        return v

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        return set(cls.model_fields)
