"""
Manages loading, validation, and migration of the optional INI configuration file.
"""

import configparser
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from wdm_cli.exceptions import ConfigurationError
from wdm_cli.models.config import AppSettings

log = logging.getLogger(__name__)


def default_config_path() -> Path:
    """Returns ``config.ini`` under the platform's user configuration directory."""
    if os.name == "nt":
        base = os.environ.get("APPDATA") or os.path.join(
            os.path.expanduser("~"), "AppData", "Roaming"
        )
    else:
        base = os.environ.get("XDG_CONFIG_HOME") or os.path.join(
            os.path.expanduser("~"), ".config"
        )
    return Path(base) / "wdm-cli" / "config.ini"


def _to_ini(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)


class ConfigManager:
    """Handles all operations related to the application's INI config file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = config_file_path
        self._parser = configparser.ConfigParser(interpolation=None)

    def load_settings(self, cli_options: dict[str, Any] | None = None) -> AppSettings:
        """
        Loads defaults from the INI file, applies CLI overrides, and validates them.

        A missing file is not an error: the built-in defaults apply.

        Args:
            cli_options: Options given on the command line. ``None`` values are
                treated as "not given" and do not override the file.

        Returns:
            A validated AppSettings object.

        Raises:
            ConfigurationError: If the file cannot be parsed or a value is invalid.
        """
        values: dict[str, Any] = {}
        if self.config_file_path.is_file():
            try:
                self._parser.read(self.config_file_path, encoding="utf-8")
            except configparser.Error as e:
                raise ConfigurationError(f"Error parsing configuration file: {e}") from e

            if self._migrate_if_needed():
                log.info(
                    "[yellow]Configuration file was updated with new default values."
                    "[/yellow]"
                )
            values = self._get_config_as_dict()
        else:
            log.debug(f"No configuration file at {self.config_file_path}, using defaults.")

        if cli_options:
            values.update({k: v for k, v in cli_options.items() if v is not None})

        try:
            return AppSettings(**values)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def save_new_config(self, settings: dict[str, Any]) -> None:
        """
        Creates and saves a new configuration file.

        Args:
            settings: A dictionary of settings to save; missing keys take the
                model defaults.
        """
        try:
            validated = AppSettings(**{k: v for k, v in settings.items() if v is not None})
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

        config = configparser.ConfigParser(interpolation=None)
        config["DEFAULT"] = {
            key: _to_ini(getattr(validated, key))
            for key in sorted(AppSettings.get_ini_keys())
        }

        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as configfile:
                config.write(configfile)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e

    def _get_config_as_dict(self) -> dict[str, Any]:
        """Reads the 'DEFAULT' section of the INI file into a dictionary."""
        section = self._parser["DEFAULT"]
        defaults = AppSettings()
        try:
            return {
                "out_dir": section.get("out_dir", defaults.out_dir),
                "proxy": section.get("proxy", "") or None,
                "ignore_ssl": section.getboolean("ignore_ssl", defaults.ignore_ssl),
                "port": section.getint("port", defaults.port),
                "readiness_timeout": section.getfloat(
                    "readiness_timeout", defaults.readiness_timeout
                ),
                "java": section.get("java", defaults.java),
            }
        except ValueError as e:
            raise ConfigurationError(f"Invalid value in configuration file: {e}") from e

    def _migrate_if_needed(self) -> bool:
        """Adds missing default values to an existing config file."""
        defaults = AppSettings()
        section = self._parser["DEFAULT"]
        needs_saving = False

        for key in sorted(AppSettings.get_ini_keys()):
            if key not in section:
                section[key] = _to_ini(getattr(defaults, key))
                needs_saving = True
                log.debug(
                    f"Migrating config: added missing key '{key}' with "
                    f"value '{section[key]}'."
                )

        if needs_saving:
            try:
                with open(self.config_file_path, "w", encoding="utf-8") as f:
                    self._parser.write(f)
            except OSError as e:
                log.error(f"Could not save migrated configuration file: {e}")
                return False

        return needs_saving
