"""
Manages loading, validation, and migration of the INI configuration file.
"""

import configparser
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from packsync.exceptions import ConfigurationError
from packsync.models.config import SyncConfig

log = logging.getLogger(__name__)

CONFIG_FILE_NAME = "config.ini"


def default_config_dir() -> Path:
    """``%APPDATA%\\packsync`` on Windows, ``$XDG_CONFIG_HOME/packsync`` elsewhere."""
    if os.name == "nt":
        base = os.environ.get("APPDATA") or str(Path.home() / "AppData" / "Roaming")
    else:
        base = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(base) / "packsync"


class ConfigManager:
    """Handles all operations related to the application's INI config file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = config_file_path
        self._parser = configparser.ConfigParser()

    def load_config(self, cli_options: dict[str, Any] | None = None) -> SyncConfig:
        """
        Loads configuration from the INI file, applies CLI overrides, and validates it.

        A missing file is not an error: the defaults are used, so the tool
        works before ``init`` has ever been run.

        Args:
            cli_options: A dictionary of options provided via the command line.
                ``None`` values are ignored.

        Returns:
            A validated SyncConfig object.

        Raises:
            ConfigurationError: If the config file is invalid or validation fails.
        """
        config_from_file: dict[str, Any] = {}
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
            config_from_file = self._get_config_as_dict()
        else:
            log.debug(f"No configuration file at '{self.config_file_path}', using defaults.")

        if cli_options:
            config_from_file.update(
                {k: v for k, v in cli_options.items() if v is not None}
            )

        try:
            config_dir = self.config_file_path.parent
            return SyncConfig(**config_from_file, config_path=str(config_dir))
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def save_new_config(self, settings: dict[str, Any]) -> None:
        """
        Creates and saves a new configuration file.

        Args:
            settings: A dictionary of settings to save. Missing keys get their
                defaults; empty directory settings are written empty so they
                keep following the config directory.
        """
        config = configparser.ConfigParser()
        config["DEFAULT"] = {}

        defaults = SyncConfig.model_construct()
        for key in sorted(SyncConfig.get_ini_keys()):
            value = settings.get(key, getattr(defaults, key, None))
            if value is not None:
                config["DEFAULT"][key] = str(value)

        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as configfile:
                config.write(configfile)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e

    def _get_config_as_dict(self) -> dict[str, Any]:
        """Converts the ``[DEFAULT]`` section to typed values keyed by field name."""
        section = self._parser["DEFAULT"]
        readers = {int: section.getint, float: section.getfloat}
        values: dict[str, Any] = {}
        for key in SyncConfig.get_ini_keys():
            if key not in section:
                continue
            reader = readers.get(SyncConfig.model_fields[key].annotation, section.get)
            try:
                values[key] = reader(key)
            except ValueError as e:
                raise ConfigurationError(
                    f"Invalid value for '{key}' in configuration file: {e}"
                ) from e
        return values

    def _migrate_if_needed(self) -> bool:
        """Writes defaults for keys added since the file was created."""
        defaults = SyncConfig.model_construct()
        section = self._parser["DEFAULT"]
        missing = sorted(SyncConfig.get_ini_keys() - set(section))
        if not missing:
            return False

        for key in missing:
            section[key] = str(getattr(defaults, key))
            log.debug(f"Config migration: '{key}' = '{section[key]}'")
        try:
            with open(self.config_file_path, "w", encoding="utf-8") as f:
                self._parser.write(f)
        except OSError as e:
            log.error(f"Could not save migrated configuration file: {e}")
            return False
        return True
