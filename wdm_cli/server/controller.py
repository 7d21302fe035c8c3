"""
Spawns the automation server as a child process and drives it through its
lifecycle: ``idle -> starting -> running -> stopping -> stopped`` (or ``failed``).

Readiness is detected by polling the server's status URL and, when the output
is attached, by watching stdout for one of the ready markers. Shutdown of a
standalone server is requested over HTTP first; a node, or a server that does
not exit in time, is stopped by signal.
"""

import asyncio
import logging
import os
import subprocess
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import aiohttp
import psutil
from rich.markup import escape

from wdm_cli.exceptions import (
    ProcessSpawnError,
    ReadinessTimeoutError,
    StopError,
)
from wdm_cli.models.config import ServerConfig, ServerRole
from wdm_cli.utils.structured_logger import ServerLogger

log = logging.getLogger(__name__)


class ServerState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    FAILED = "failed"


_LIVE_STATES = (ServerState.STARTING, ServerState.RUNNING, ServerState.STOPPING)

# Slack between the recorded start time and the one the OS reports
START_TIME_TOLERANCE = 5.0


@dataclass
class ServerProcessHandle:
    """The record of one spawned server process."""

    pid: int
    role: ServerRole
    port: int
    detach: bool
    state: ServerState = ServerState.STARTING
    command: list[str] = field(default_factory=list)
    started_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "pid": self.pid,
            "role": self.role.value,
            "port": self.port,
            "detach": self.detach,
            "state": self.state.value,
            "command": list(self.command),
            "started_at": self.started_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ServerProcessHandle":
        return cls(
            pid=int(data["pid"]),
            role=ServerRole(data.get("role", ServerRole.STANDALONE.value)),
            port=int(data["port"]),
            detach=bool(data.get("detach", True)),
            state=ServerState(data.get("state", ServerState.RUNNING.value)),
            command=list(data.get("command", [])),
            started_at=float(data.get("started_at", 0.0)),
        )


def is_recorded_process(handle: ServerProcessHandle) -> bool:
    """
    Checks that the pid in a handle still belongs to the process it recorded.

    Pids are reused, so a live pid alone proves nothing. The process start time
    is compared when the handle has one, otherwise the command line.
    """
    try:
        process = psutil.Process(handle.pid)
        if handle.started_at:
            drift = abs(process.create_time() - handle.started_at)
            return drift <= START_TIME_TOLERANCE
        if handle.command:
            return process.cmdline() == list(handle.command)
        return True
    except psutil.NoSuchProcess:
        return False
    except psutil.AccessDenied:
        log.warning(f"Cannot inspect pid {handle.pid}; treating it as not ours.")
        return False


def exit_code_from_returncode(returncode: int) -> int:
    """Maps a negative (signal) return code to the shell convention ``128 + signum``."""
    return 128 - returncode if returncode < 0 else returncode


class ServerController:
    """
    Owns at most one live server process.

    Once the handle is stopped or failed, ``start`` may spawn a new one.
    """

    def __init__(self, events: ServerLogger | None = None):
        self.events = events
        self.handle: ServerProcessHandle | None = None
        self._config: ServerConfig | None = None
        self._process: asyncio.subprocess.Process | None = None
        self._pump_task: asyncio.Task | None = None
        self._ready_event: asyncio.Event | None = None
        self._start_lock = asyncio.Lock()
        self._stop_lock = asyncio.Lock()

    @classmethod
    def from_handle(
        cls,
        handle: ServerProcessHandle,
        config: ServerConfig,
        events: ServerLogger | None = None,
    ) -> "ServerController":
        """
        Reattaches to a server started by an earlier invocation, so that it can
        be stopped. The process is not a child of this one.
        """
        controller = cls(events)
        controller._config = config
        alive = is_recorded_process(handle)
        if not alive and psutil.pid_exists(handle.pid):
            log.warning(
                f"Pid {handle.pid} now belongs to another process; "
                "the recorded server is gone."
            )
        controller.handle = ServerProcessHandle(
            pid=handle.pid,
            role=handle.role,
            port=handle.port,
            detach=handle.detach,
            state=ServerState.RUNNING if alive else ServerState.STOPPED,
            command=handle.command,
            started_at=handle.started_at,
        )
        return controller

    @property
    def state(self) -> ServerState:
        return self.handle.state if self.handle else ServerState.IDLE

    def _transition(self, new: ServerState) -> None:
        old = self.state
        if self.handle:
            self.handle.state = new
        log.debug(f"Server state {old.value} -> {new.value}")
        if self.events:
            self.events.state_changed(
                old.value, new.value, self.handle.pid if self.handle else None
            )

    async def start(self, command: list[str], config: ServerConfig) -> int:
        """
        Spawns the server and waits until it is ready.

        Args:
            command: The argument vector to execute.
            config: Port, role, detach mode and timeouts.

        Returns:
            0 once ready when detached; otherwise the child's exit code, with
            signal deaths reported as ``128 + signum``.

        Raises:
            ProcessSpawnError: If the executable is missing or not executable, a
                server is already live, or the child exits during startup.
            ReadinessTimeoutError: If the server never became ready in time.
                The child has been killed by then.
        """
        # Claimed before the first await so overlapping calls cannot both spawn
        if self._start_lock.locked() or self.state in _LIVE_STATES:
            raise ProcessSpawnError(self._busy_message())
        async with self._start_lock:
            await self._launch(command, config)

        if config.detach:
            return 0
        return await self.wait()

    def _busy_message(self) -> str:
        if self.state in _LIVE_STATES:
            return (
                f"A server is already {self.state.value} "
                f"with pid {self.handle.pid}."
            )
        return "A server is already starting on this controller."

    async def _launch(self, command: list[str], config: ServerConfig) -> None:
        """Spawns the child and returns once it is running."""
        self._config = config
        self._ready_event = asyncio.Event()
        self._process = await self._spawn(command, config)
        self.handle = ServerProcessHandle(
            pid=self._process.pid,
            role=config.role,
            port=config.port,
            detach=config.detach,
            state=ServerState.IDLE,
            command=list(command),
        )
        self._transition(ServerState.STARTING)
        if self.events:
            self.events.process_started(
                self._process.pid, config.role.value, config.port, config.detach
            )

        if self._process.stdout is not None:
            self._pump_task = asyncio.create_task(
                self._pump_output(self._process.stdout, config.ready_markers)
            )

        try:
            await self._wait_until_ready(config)
        except ReadinessTimeoutError:
            self._transition(ServerState.FAILED)
            await self._force_kill()
            raise
        except ProcessSpawnError:
            self._transition(ServerState.FAILED)
            await self._drain_output()
            raise

        self._transition(ServerState.RUNNING)
        log.info(
            f"[green]Server ready[/green] on port {config.port} "
            f"(pid {self._process.pid}, role {config.role.value})."
        )

    async def _spawn(
        self, command: list[str], config: ServerConfig
    ) -> asyncio.subprocess.Process:
        kwargs: dict[str, Any] = {"stdin": subprocess.DEVNULL}
        log_file = None
        if config.detach:
            if config.log_file:
                log_file = open(config.log_file, "ab")  # noqa: SIM115
                kwargs["stdout"] = log_file
            else:
                kwargs["stdout"] = subprocess.DEVNULL
            kwargs["stderr"] = subprocess.STDOUT
            if os.name == "nt":
                kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
            else:
                kwargs["start_new_session"] = True
        else:
            kwargs["stdout"] = asyncio.subprocess.PIPE
            kwargs["stderr"] = asyncio.subprocess.STDOUT

        log.debug(f"Spawning: {escape(' '.join(command))}")
        try:
            return await asyncio.create_subprocess_exec(*command, **kwargs)
        except (FileNotFoundError, PermissionError) as e:
            raise ProcessSpawnError(f"Could not start '{command[0]}': {e}") from e
        finally:
            # The child holds its own descriptor
            if log_file:
                log_file.close()

    async def _pump_output(
        self, stream: asyncio.StreamReader, markers: tuple[str, ...]
    ) -> None:
        """Drains the child's output, watching for a ready marker."""
        pid = self.handle.pid
        while True:
            line = await stream.readline()
            if not line:
                break
            text = line.decode("utf-8", errors="replace").rstrip()
            if self.events:
                self.events.output_line(pid, text)
            else:
                log.debug(escape(text))
            if any(marker in text for marker in markers):
                self._ready_event.set()

    async def _drain_output(self) -> None:
        if self._pump_task:
            await self._pump_task

    async def _status_ok(self, session: aiohttp.ClientSession, url: str) -> bool:
        try:
            async with session.get(url) as response:
                return response.status == 200
        except (aiohttp.ClientError, asyncio.TimeoutError):
            return False

    async def _wait_until_ready(self, config: ServerConfig) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + config.readiness_timeout
        url = config.base_url + config.status_path
        timeout = aiohttp.ClientTimeout(total=max(config.poll_interval, 1.0))

        async with aiohttp.ClientSession(timeout=timeout, trust_env=False) as session:
            while True:
                if self._ready_event.is_set():
                    log.debug("Ready marker seen in server output.")
                    return
                if self._process.returncode is not None:
                    code = exit_code_from_returncode(self._process.returncode)
                    raise ProcessSpawnError(
                        f"Server exited with code {code} before becoming ready."
                    )
                if await self._status_ok(session, url):
                    log.debug(f"Status endpoint {url} answered.")
                    return

                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise ReadinessTimeoutError(
                        f"Server on port {config.port} was not ready after "
                        f"{config.readiness_timeout:g}s."
                    )
                try:
                    await asyncio.wait_for(
                        self._ready_event.wait(),
                        timeout=min(config.poll_interval, remaining),
                    )
                except asyncio.TimeoutError:
                    pass

    async def wait(self) -> int:
        """
        Waits for the owned child to exit.

        Returns:
            The exit code, with signal deaths reported as ``128 + signum``.
        """
        if self._process is None:
            raise ProcessSpawnError("No server process was started by this controller.")
        returncode = await self._process.wait()
        await self._drain_output()
        code = exit_code_from_returncode(returncode)
        if self.events:
            self.events.process_exited(self._process.pid, code)
        # stop() finishes its own transition
        if self.state == ServerState.RUNNING:
            self._transition(ServerState.STOPPED if code == 0 else ServerState.FAILED)
        log.info(f"Server process {self._process.pid} exited with code {code}.")
        return code

    async def stop(self) -> bool:
        """
        Stops the server. Calling it again once stopped is a no-op.

        Returns:
            True when the server is no longer running.

        Raises:
            StopError: If neither the shutdown request nor signals stopped it.
        """
        async with self._stop_lock:
            if self.state not in _LIVE_STATES:
                return True

            config = self._config or ServerConfig(port=self.handle.port)
            self._transition(ServerState.STOPPING)

            stopped = False
            if self.handle.role == ServerRole.STANDALONE:
                stopped = await self._request_shutdown(config)
            if not stopped:
                stopped = await self._terminate(config.shutdown_timeout)

            if not stopped:
                self._transition(ServerState.FAILED)
                raise StopError(
                    f"Server process {self.handle.pid} did not stop after "
                    "shutdown request and signals."
                )
            self._transition(ServerState.STOPPED)
            return True

    async def _request_shutdown(self, config: ServerConfig) -> bool:
        url = f"http://{config.host}:{self.handle.port}{config.shutdown_path}"
        timeout = aiohttp.ClientTimeout(total=config.shutdown_timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout, trust_env=False) as session:
                async with session.get(url) as response:
                    if response.status != 200:
                        log.debug(f"Shutdown request returned status {response.status}.")
                        return False
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            log.debug(f"Shutdown request failed: {e}")
            return False
        return await self._wait_exit(config.shutdown_timeout)

    async def _wait_exit(self, timeout: float) -> bool:
        """Waits for the process to go away, without reaping anything but our child."""
        if self._process is not None:
            try:
                await asyncio.wait_for(self._process.wait(), timeout=timeout)
                return True
            except asyncio.TimeoutError:
                return False
        try:
            process = psutil.Process(self.handle.pid)
            await asyncio.to_thread(process.wait, timeout)
        except psutil.NoSuchProcess:
            return True
        except psutil.TimeoutExpired:
            return False
        return True

    def _signal(self, kill: bool) -> bool:
        """Sends SIGTERM or SIGKILL. Returns False if the process is already gone."""
        try:
            process = psutil.Process(self.handle.pid)
            if kill:
                process.kill()
            else:
                process.terminate()
        except psutil.NoSuchProcess:
            return False
        except psutil.AccessDenied as e:
            raise StopError(f"Not allowed to signal process {self.handle.pid}: {e}") from e
        return True

    async def _terminate(self, timeout: float) -> bool:
        name = "SIGTERM" if os.name != "nt" else "terminate"
        log.debug(f"Sending {name} to server process {self.handle.pid}.")
        if not self._signal(kill=False):
            return await self._wait_exit(timeout)
        if await self._wait_exit(timeout):
            return True
        log.warning(f"Server process {self.handle.pid} ignored {name}, killing it.")
        self._signal(kill=True)
        return await self._wait_exit(timeout)

    async def _force_kill(self) -> None:
        """Kills a child that never became ready."""
        if self._process is None or self._process.returncode is not None:
            await self._drain_output()
            return
        try:
            self._process.kill()
        except ProcessLookupError:
            pass
        await self._process.wait()
        await self._drain_output()
