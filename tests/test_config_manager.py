import configparser

import pytest

from wdm_cli.exceptions import ConfigurationError
from wdm_cli.models.config import DEFAULT_PORT, AppSettings
from wdm_cli.storage.config_manager import ConfigManager


@pytest.fixture
def config_path(tmp_path):
    return tmp_path / "wdm-cli" / "config.ini"


def test_missing_file_uses_defaults(config_path):
    settings = ConfigManager(config_path).load_settings()
    assert settings == AppSettings()
    assert not config_path.exists()


def test_cli_options_override_file(config_path, tmp_path):
    manager = ConfigManager(config_path)
    manager.save_new_config({"out_dir": str(tmp_path / "drivers"), "port": 4445})

    settings = ConfigManager(config_path).load_settings(
        {"port": 5555, "proxy": None, "ignore_ssl": True}
    )
    assert settings.port == 5555
    assert settings.ignore_ssl is True
    assert settings.proxy is None
    assert settings.out_dir == str(tmp_path / "drivers")


def test_save_then_load(config_path):
    ConfigManager(config_path).save_new_config(
        {"proxy": "http://proxy:3128", "readiness_timeout": 30, "java": "/opt/jdk/bin/java"}
    )
    settings = ConfigManager(config_path).load_settings()

    assert settings.proxy == "http://proxy:3128"
    assert settings.readiness_timeout == 30.0
    assert settings.java == "/opt/jdk/bin/java"
    assert settings.port == DEFAULT_PORT


def test_migration_adds_missing_keys(config_path):
    config_path.parent.mkdir(parents=True)
    config_path.write_text("[DEFAULT]\nport = 4446\n")

    settings = ConfigManager(config_path).load_settings()
    assert settings.port == 4446

    parser = configparser.ConfigParser(interpolation=None)
    parser.read(config_path)
    assert set(parser["DEFAULT"]) == AppSettings.get_ini_keys()
    assert parser["DEFAULT"]["port"] == "4446"


@pytest.mark.parametrize(
    "content",
    [
        "[DEFAULT]\nport = not-a-number\n",
        "[DEFAULT]\nport = 70000\n",
        "[DEFAULT]\nproxy = socks5://proxy:1080\n",
        "[DEFAULT]\nreadiness_timeout = 0\n",
    ],
)
def test_invalid_values_raise(config_path, content):
    config_path.parent.mkdir(parents=True)
    config_path.write_text(content)

    with pytest.raises(ConfigurationError):
        ConfigManager(config_path).load_settings()


def test_invalid_cli_override_raises(config_path):
    with pytest.raises(ConfigurationError):
        ConfigManager(config_path).load_settings({"port": 0})


def test_save_rejects_invalid_settings(config_path):
    with pytest.raises(ConfigurationError):
        ConfigManager(config_path).save_new_config({"proxy": "ftp://proxy"})
    assert not config_path.exists()
