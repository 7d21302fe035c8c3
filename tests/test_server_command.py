from pathlib import Path

import pytest

from wdm_cli.models.config import DEFAULT_HUB, ServerConfig
from wdm_cli.server.command import build_server_command


def test_standalone_command(tmp_path):
    jar = tmp_path / "selenium-server-standalone-3.141.59.jar"
    command = build_server_command("java", jar, ServerConfig(port=4445))

    assert command == ["java", "-jar", str(jar), "-port", "4445"]


def test_driver_properties_use_absolute_paths(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    drivers = {
        "chrome": Path("chromedriver_2.40"),
        "gecko": tmp_path / "geckodriver_0.33.0",
    }
    command = build_server_command("java", Path("server.jar"), ServerConfig(), drivers)

    chrome = (tmp_path / "chromedriver_2.40").resolve()
    gecko = (tmp_path / "geckodriver_0.33.0").resolve()
    assert command[1] == f"-Dwebdriver.chrome.driver={chrome}"
    assert command[2] == f"-Dwebdriver.gecko.driver={gecko}"
    assert command.index("-jar") == 3


def test_chrome_logfile(tmp_path):
    config = ServerConfig(chrome_logs=str(tmp_path / "chrome.log"))
    command = build_server_command("java", Path("server.jar"), config)
    expected = (tmp_path / "chrome.log").resolve()
    assert f"-Dwebdriver.chrome.logfile={expected}" in command


def test_node_role_defaults_hub():
    command = build_server_command("java", Path("s.jar"), ServerConfig(run_as_node=True))
    assert command[-4:] == ["-role", "node", "-hub", DEFAULT_HUB]


def test_node_role_custom_hub():
    config = ServerConfig(run_as_node=True, hub="http://grid:4444/grid/register")
    command = build_server_command("java", Path("s.jar"), config)
    assert command[-2:] == ["-hub", "http://grid:4444/grid/register"]


def test_unknown_driver_kind():
    with pytest.raises(ValueError, match="opera"):
        build_server_command(
            "java", Path("s.jar"), ServerConfig(), {"opera": Path("operadriver")}
        )
