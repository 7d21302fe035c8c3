import asyncio
import os
import signal
import socket
import subprocess
import sys
import time
from pathlib import Path

import psutil
import pytest

from _utils import get_free_port
from wdm_cli.exceptions import ProcessSpawnError, ReadinessTimeoutError
from wdm_cli.models.config import ServerConfig, ServerRole
from wdm_cli.server.controller import (
    ServerController,
    ServerProcessHandle,
    ServerState,
    exit_code_from_returncode,
)

FAKE_SERVER = str(Path(__file__).parent / "fake_server.py")


def _command(port: int, *extra: str) -> list[str]:
    return [sys.executable, FAKE_SERVER, "--port", str(port), *extra]


def _config(port: int, **kwargs) -> ServerConfig:
    kwargs.setdefault("readiness_timeout", 15)
    kwargs.setdefault("poll_interval", 0.1)
    return ServerConfig(port=port, **kwargs)


async def _wait_for_state(controller: ServerController, state: ServerState) -> None:
    for _ in range(300):
        if controller.state == state:
            return
        await asyncio.sleep(0.05)
    raise AssertionError(f"Controller never reached {state.value}")


def test_exit_code_from_returncode():
    assert exit_code_from_returncode(0) == 0
    assert exit_code_from_returncode(3) == 3
    assert exit_code_from_returncode(-15) == 143
    assert exit_code_from_returncode(-9) == 137


def test_handle_record_keeps_fields():
    handle = ServerProcessHandle(
        pid=1234,
        role=ServerRole.NODE,
        port=5555,
        detach=True,
        state=ServerState.RUNNING,
        command=["java", "-jar", "s.jar"],
    )
    restored = ServerProcessHandle.from_dict(handle.to_dict())
    assert restored == handle


@pytest.mark.skipif(os.name == "nt", reason="POSIX signals")
def test_external_sigterm_reports_signal_exit(event_loop):
    port = get_free_port()
    controller = ServerController()

    async def scenario():
        task = asyncio.create_task(controller.start(_command(port), _config(port)))
        await _wait_for_state(controller, ServerState.RUNNING)
        os.kill(controller.handle.pid, signal.SIGTERM)
        return await task

    assert event_loop.run_until_complete(scenario()) == 128 + signal.SIGTERM
    assert controller.state == ServerState.FAILED


def test_stop_requests_http_shutdown(event_loop, tmp_path):
    port = get_free_port()
    marker = tmp_path / "shutdown.marker"
    controller = ServerController()

    async def scenario():
        task = asyncio.create_task(
            controller.start(
                _command(port, "--marker-file", str(marker)), _config(port)
            )
        )
        await _wait_for_state(controller, ServerState.RUNNING)
        assert await controller.stop() is True
        return await task

    assert event_loop.run_until_complete(scenario()) == 0
    assert controller.state == ServerState.STOPPED
    assert marker.read_text() == "shutdown"


def test_detached_start_and_double_stop(event_loop, tmp_path):
    port = get_free_port()
    log_file = tmp_path / "server.log"
    controller = ServerController()
    config = _config(port, detach=True, log_file=str(log_file))

    async def scenario():
        code = await controller.start(_command(port), config)
        assert code == 0
        assert controller.state == ServerState.RUNNING
        with pytest.raises(ProcessSpawnError, match="already running"):
            await controller.start(_command(port), config)
        first = await controller.stop()
        second = await controller.stop()
        return first, second

    assert event_loop.run_until_complete(scenario()) == (True, True)
    assert controller.state == ServerState.STOPPED
    assert "fake server booting" in log_file.read_text()


def test_node_is_stopped_by_signal(event_loop, tmp_path):
    port = get_free_port()
    marker = tmp_path / "shutdown.marker"
    controller = ServerController()
    config = _config(port, detach=True, run_as_node=True, shutdown_timeout=5)

    async def scenario():
        await controller.start(_command(port, "--marker-file", str(marker)), config)
        return await controller.stop()

    assert event_loop.run_until_complete(scenario()) is True
    assert controller.state == ServerState.STOPPED
    assert not marker.exists()


def test_readiness_timeout_kills_child(event_loop):
    port = get_free_port()
    controller = ServerController()
    config = _config(port, readiness_timeout=1, poll_interval=0.2)

    with pytest.raises(ReadinessTimeoutError):
        event_loop.run_until_complete(
            controller.start(_command(port, "--no-listen"), config)
        )
    assert controller.state == ServerState.FAILED
    assert controller._process.returncode is not None


def test_missing_executable(event_loop, tmp_path):
    port = get_free_port()
    controller = ServerController()

    with pytest.raises(ProcessSpawnError, match="Could not start"):
        event_loop.run_until_complete(
            controller.start([str(tmp_path / "no-such-java")], _config(port))
        )
    assert controller.state == ServerState.IDLE


def test_crash_during_startup(event_loop):
    port = get_free_port()
    controller = ServerController()

    with pytest.raises(ProcessSpawnError, match="code 3"):
        event_loop.run_until_complete(
            controller.start(_command(port, "--crash"), _config(port))
        )
    assert controller.state == ServerState.FAILED


def test_reattach_to_exited_process(event_loop):
    finished = subprocess.Popen([sys.executable, "-c", "pass"])
    finished.wait()
    handle = ServerProcessHandle(
        pid=finished.pid, role=ServerRole.STANDALONE, port=4444, detach=True
    )
    controller = ServerController.from_handle(handle, ServerConfig())

    assert controller.state == ServerState.STOPPED
    assert event_loop.run_until_complete(controller.stop()) is True


def test_second_start_while_running_keeps_first_handle(event_loop):
    port = get_free_port()
    controller = ServerController()
    config = _config(port, detach=True)

    async def scenario():
        await controller.start(_command(port), config)
        first = controller.handle
        other_port = get_free_port()
        with pytest.raises(ProcessSpawnError, match="already running"):
            await controller.start(
                _command(other_port), _config(other_port, detach=True)
            )
        assert controller.handle is first
        assert controller.handle.port == port
        return await controller.stop()

    assert event_loop.run_until_complete(scenario()) is True


def _is_listening(port: int) -> bool:
    with socket.socket() as sock:
        sock.settimeout(1)
        return sock.connect_ex(("127.0.0.1", port)) == 0


def test_overlapping_starts_spawn_one_server(event_loop):
    ports = [get_free_port(), get_free_port()]
    controller = ServerController()

    async def scenario():
        results = await asyncio.gather(
            *(
                controller.start(_command(port), _config(port, detach=True))
                for port in ports
            ),
            return_exceptions=True,
        )
        second_listening = _is_listening(ports[1])
        assert controller.handle.port == ports[0]
        await controller.stop()
        return results, second_listening

    results, second_listening = event_loop.run_until_complete(scenario())
    assert results[0] == 0
    assert isinstance(results[1], ProcessSpawnError)
    assert "already starting" in str(results[1])
    assert second_listening is False
    assert controller.state == ServerState.STOPPED


def _sleeper() -> subprocess.Popen:
    return subprocess.Popen([sys.executable, "-c", "import time; time.sleep(60)"])


def test_reattach_ignores_reused_pid(event_loop):
    stranger = _sleeper()
    try:
        handle = ServerProcessHandle(
            pid=stranger.pid,
            role=ServerRole.NODE,
            port=4444,
            detach=True,
            started_at=time.time() - 3600,
        )
        controller = ServerController.from_handle(handle, ServerConfig())

        assert controller.state == ServerState.STOPPED
        assert event_loop.run_until_complete(controller.stop()) is True
        assert stranger.poll() is None
    finally:
        stranger.kill()
        stranger.wait()


def test_reattach_to_recorded_process_stops_it(event_loop):
    recorded = _sleeper()
    try:
        handle = ServerProcessHandle(
            pid=recorded.pid,
            role=ServerRole.NODE,
            port=4444,
            detach=True,
            started_at=psutil.Process(recorded.pid).create_time(),
        )
        config = ServerConfig(shutdown_timeout=5)
        controller = ServerController.from_handle(handle, config)

        assert controller.state == ServerState.RUNNING
        assert event_loop.run_until_complete(controller.stop()) is True
        assert recorded.wait(timeout=10) is not None
    finally:
        if recorded.poll() is None:
            recorded.kill()
            recorded.wait()
