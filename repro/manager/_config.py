# Copyright The repro Authors
#
# repro/manager/_config.py - Reproducible environment manager configuration
#
# This file is part of the repro project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Manager configuration.
"""
from dataclasses import dataclass, field
from configparser import ConfigParser, Error as ConfigParserError
from os.path import exists, expanduser, join
from typing import List, Mapping, Optional
import logging
import socket
import os

from repro import (
    DEFAULT_KEEP_BACKUPS,
    ReproArgumentError,
)
from repro.term import COLOR_MODES

_log = logging.getLogger(__name__)

_log_debug = _log.debug

#: Environment variable overriding the configuration root.
REPRO_CONFIG_ENV = "REPRO_CONFIG"

#: Main configuration file name
_REPRO_CFG_FILE = "repro.conf"

#: Main configuration file section
_REPRO_CFG_GLOBAL = "Global"

#: DisablePlugins configuration key
_REPRO_CFG_DISABLE_PLUGINS = "DisablePlugins"

#: KeepBackups configuration key
_REPRO_CFG_KEEP_BACKUPS = "KeepBackups"

#: Color configuration key
_REPRO_CFG_COLOR = "Color"

#: OnCalendar configuration key
_REPRO_CFG_ON_CALENDAR = "OnCalendar"

#: Default monitor schedule
DEFAULT_ON_CALENDAR = "hourly"

_STATE_DIR = "state"
_BACKUP_DIR = "backups"
_LOG_FILE = "repro.log"
_PLUGINS_D = "plugins.d"


def _xdg_config_home(environ: Mapping[str, str]) -> str:
    return environ.get("XDG_CONFIG_HOME") or expanduser("~/.config")


def default_config_dir(environ: Optional[Mapping[str, str]] = None) -> str:
    """
    Return the configuration root: ``$REPRO_CONFIG`` if set, otherwise
    ``$XDG_CONFIG_HOME/repro``.
    """
    environ = os.environ if environ is None else environ
    if environ.get(REPRO_CONFIG_ENV):
        return environ[REPRO_CONFIG_ENV]
    return join(_xdg_config_home(environ), "repro")


def default_unit_dir(environ: Optional[Mapping[str, str]] = None) -> str:
    """
    Return the systemd user unit directory.
    """
    environ = os.environ if environ is None else environ
    return join(_xdg_config_home(environ), "systemd", "user")


@dataclass
class ReproConfig:
    """
    Explicit configuration for a ``Manager`` and its components.
    """

    config_dir: str
    hostname: str = field(default_factory=lambda: socket.gethostname().lower())
    disable_plugins: List[str] = field(default_factory=list)
    keep_backups: int = DEFAULT_KEEP_BACKUPS
    color: str = "auto"
    on_calendar: str = DEFAULT_ON_CALENDAR
    unit_dir: str = field(default_factory=default_unit_dir)

    def __post_init__(self):
        self.hostname = self.hostname.lower()
        if self.keep_backups < 0:
            raise ReproArgumentError(
                f"Invalid {_REPRO_CFG_KEEP_BACKUPS} value: {self.keep_backups}"
            )
        if self.color not in COLOR_MODES:
            raise ReproArgumentError(f"Invalid {_REPRO_CFG_COLOR} value: {self.color}")

    @property
    def state_dir(self) -> str:
        """
        Directory holding one state file per manager.
        """
        return join(self.config_dir, _STATE_DIR)

    @property
    def backup_dir(self) -> str:
        """
        Directory holding timestamped backups.
        """
        return join(self.config_dir, _BACKUP_DIR)

    @property
    def log_file(self) -> str:
        """
        Append-only log of leveled messages.
        """
        return join(self.config_dir, _LOG_FILE)

    @property
    def plugins_dir(self) -> str:
        """
        Directory holding optional per-plugin configuration files.
        """
        return join(self.config_dir, _PLUGINS_D)

    @property
    def config_file(self) -> str:
        """
        Path to the main configuration file.
        """
        return join(self.config_dir, _REPRO_CFG_FILE)

    @classmethod
    def from_file(cls, config_dir: str, **kwargs) -> "ReproConfig":
        """
        Load ``ReproConfig`` from the INI-style ``repro.conf`` file in
        ``config_dir``. A missing file yields the default configuration.
        Keyword arguments are passed through to the initializer and take
        precedence over file values.

        :param config_dir: The configuration root directory.
        :type config_dir: ``str``.
        :returns: A ``ReproConfig`` instance.
        :rtype: ``ReproConfig``
        """
        values = {}
        config_file = join(config_dir, _REPRO_CFG_FILE)

        if exists(config_file):
            _log_debug("Loading configuration from '%s'", config_file)
            cfg = ConfigParser()
            try:
                cfg.read([config_file])
                if cfg.has_section(_REPRO_CFG_GLOBAL):
                    glob = cfg[_REPRO_CFG_GLOBAL]
                    if _REPRO_CFG_DISABLE_PLUGINS in glob:
                        plugins = glob[_REPRO_CFG_DISABLE_PLUGINS]
                        values["disable_plugins"] = [
                            plug.strip() for plug in plugins.split(",") if plug.strip()
                        ]
                    if _REPRO_CFG_KEEP_BACKUPS in glob:
                        values["keep_backups"] = glob.getint(_REPRO_CFG_KEEP_BACKUPS)
                    if _REPRO_CFG_COLOR in glob:
                        values["color"] = glob[_REPRO_CFG_COLOR].strip()
                    if _REPRO_CFG_ON_CALENDAR in glob:
                        values["on_calendar"] = glob[_REPRO_CFG_ON_CALENDAR].strip()
            except (ConfigParserError, ValueError) as err:
                raise ReproArgumentError(
                    f"Invalid configuration file '{config_file}': {err}"
                ) from err

        values.update({k: v for k, v in kwargs.items() if v is not None})
        return cls(config_dir=config_dir, **values)

    def load_plugin_config(self, plugin_name: str) -> ConfigParser:
        """
        Load optional configuration file for plugin ``plugin_name``.

        :param plugin_name: The name of the plugin to load config for.
        :type plugin_name: ``str``
        :returns: A (possibly empty) ``ConfigParser`` instance.
        :rtype: ``ConfigParser``
        """
        plugin_conf_file = join(self.plugins_dir, f"{plugin_name}.conf")
        cfg = ConfigParser()

        if exists(plugin_conf_file):
            _log_debug("Loading plugin configuration from '%s'", plugin_conf_file)
            cfg.read([plugin_conf_file])

        return cfg
