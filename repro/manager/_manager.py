# Copyright The repro Authors
#
# repro/manager/_manager.py - Reproducible environment manager
#
# This file is part of the repro project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Manager interface and plugin infrastructure.
"""
from typing import Dict, List, Optional, Tuple, Union
import logging

from repro import (
    REPRO_MANAGERS,
    REPRO_PACKAGE_MANAGERS,
    REPRO_SUBSYSTEM_MANAGER,
    MANAGER_DISPLAY_NAMES,
    ReproCalloutError,
    ReproNotFoundError,
    ReproPluginError,
    ReproUsageError,
    SearchResult,
    SearchStatus,
    log_success,
)

from ._backup import BackupCatalog
from ._diff import diff_backup
from ._loader import load_plugins
from ._state import StateStore

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_manager(msg, *args, **kwargs):
    """A wrapper for manager subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": REPRO_SUBSYSTEM_MANAGER}, **kwargs)


#: Separator between manager and package in ``--add`` arguments.
_ADD_SEPARATOR = ":"


def _display(manager: str) -> str:
    return MANAGER_DISPLAY_NAMES.get(manager, manager)


def parse_add_spec(spec: str) -> Tuple[str, str]:
    """
    Split a ``<manager>:<package>`` argument.

    :param spec: The argument string.
    :returns: A ``(manager, package)`` tuple.
    :raises: ``ReproUsageError`` if the separator is missing or either part
             is empty.
    """
    if _ADD_SEPARATOR not in spec:
        raise ReproUsageError(
            f"Specify manager:package (e.g. apt:neovim), got '{spec}'"
        )
    manager, package = spec.split(_ADD_SEPARATOR, 1)
    manager = manager.strip().lower()
    package = package.strip()
    if not manager or not package:
        raise ReproUsageError(
            f"Specify manager:package (e.g. apt:neovim), got '{spec}'"
        )
    return manager, package


class Manager:
    """
    Reproducible environment manager high level interface.
    """

    def __init__(self, config, plugin_classes=None):
        """
        Initialise a new ``Manager``.

        :param config: The ``ReproConfig`` for this instance.
        :param plugin_classes: Plugin classes to use instead of the
                               discovered plugins.
        """
        self.config = config
        self.plugins = []

        self.state = StateStore(config)
        self.state.ensure()
        self.backups = BackupCatalog(config)

        if plugin_classes is None:
            plugin_classes = load_plugins()

        for plugin_class in plugin_classes:
            if plugin_class.name in config.disable_plugins:
                _log_debug("Skipping disabled plugin '%s'", plugin_class.name)
                continue
            _log_debug("Loading plugin class '%s'", plugin_class.__name__)
            plugin_cfg = config.load_plugin_config(plugin_class.name)
            try:
                plugin = plugin_class(_log, plugin_cfg)
            except (TypeError, ValueError) as err:
                _log_error("Disabling plugin %s: %s", plugin_class.__name__, err)
                continue
            self.plugins.append(plugin)

    def _plugin(self, manager: str):
        """
        Return the loaded plugin for ``manager``, or ``None``.
        """
        for plugin in self.plugins:
            if plugin.name == manager:
                return plugin
        return None

    def _available_plugins(self):
        for plugin in self.plugins:
            if plugin.available():
                yield plugin
            else:
                _log_debug_manager("Manager %s not available, skipping", plugin.name)

    def _detect_plugin(self, plugin) -> bool:
        """
        Refresh the state file for ``plugin``.

        :returns: ``True`` if the state file was written.
        """
        _log_debug_manager("Detecting %s state", plugin.name)
        try:
            content = plugin.dump()
        except ReproCalloutError as err:
            _log_error("%s detection failed: %s", _display(plugin.name), err)
            return False
        self.state.write(plugin.name, content)
        return True

    def detect(self, manager: str) -> bool:
        """
        Refresh the state file for the single manager ``manager``. A manager
        that is disabled or not installed leaves its file untouched.

        :param manager: The manager name.
        :returns: ``True`` if the state file was written.
        """
        plugin = self._plugin(manager)
        if plugin is None or not plugin.available():
            _log_debug_manager("Manager %s not available, skipping", manager)
            return False
        return self._detect_plugin(plugin)

    def detect_all(self) -> List[str]:
        """
        Refresh the state file of every available manager.

        :returns: The list of managers whose state was written.
        """
        detected = []
        for plugin in self._available_plugins():
            if self._detect_plugin(plugin):
                detected.append(plugin.name)
        return detected

    def install_all(self) -> List[Tuple[str, bool]]:
        """
        Replay the saved state of every available manager that has a
        non-empty state file, then re-detect that manager. A failure for
        one manager is logged and the remaining managers proceed.

        :returns: A list of ``(manager, ok)`` tuples in manager order.
        """
        results = []
        for plugin in self._available_plugins():
            content = self.state.read(plugin.name)
            if not content or not content.strip():
                _log_debug_manager("Empty state for %s, skipping", plugin.name)
                continue
            _log_info("Installing %s packages...", _display(plugin.name))
            try:
                plugin.apply(content)
            except (ReproCalloutError, ReproPluginError) as err:
                _log_error("%s install failed: %s", _display(plugin.name), err)
                results.append((plugin.name, False))
                continue
            self._detect_plugin(plugin)
            results.append((plugin.name, True))
        return results

    def add_package(self, spec: str) -> Tuple[str, str]:
        """
        Install a single package and refresh that manager's state.

        :param spec: A ``<manager>:<package>`` string.
        :returns: The ``(manager, package)`` that was installed.
        :raises: ``ReproUsageError`` for a malformed or unsupported manager,
                 ``ReproNotFoundError`` if the manager is not installed and
                 ``ReproCalloutError`` if the install command fails.
        """
        manager, package = parse_add_spec(spec)
        if manager not in REPRO_PACKAGE_MANAGERS:
            raise ReproUsageError(f"Unsupported manager: {manager}")

        plugin = self._plugin(manager)
        if plugin is None:
            raise ReproUsageError(f"Manager {manager} is disabled")
        if not plugin.available():
            raise ReproNotFoundError(f"{_display(manager)} is not installed")

        _log_info("Installing %s via %s", package, manager)
        plugin.install_one(package)
        self._detect_plugin(plugin)
        log_success(_log, "Installed %s via %s", package, manager)
        return manager, package

    def search(self, name: str) -> List[SearchResult]:
        """
        Look up ``name`` with every package manager.

        :param name: The package name to search for.
        :returns: One ``SearchResult`` per package manager, in manager order.
        """
        if not name or not name.strip():
            raise ReproUsageError("Search requires a package name")
        name = name.strip()

        results = []
        for manager in REPRO_PACKAGE_MANAGERS:
            plugin = self._plugin(manager)
            if plugin is None or not plugin.searchable or not plugin.available():
                results.append(SearchResult(manager, name, SearchStatus.UNAVAILABLE))
                continue
            _log_debug_manager("Searching %s for %s", manager, name)
            results.append(plugin.search(name))
        return results

    def list_state(self) -> Dict[str, List[str]]:
        """
        Return the recorded package set of each package manager with a
        non-empty state file.
        """
        state = {}
        for manager in REPRO_PACKAGE_MANAGERS:
            packages = self.state.read_packages(manager)
            if packages:
                state[manager] = packages
        return state

    def create_backup(self):
        """
        Create a new backup of the current state.
        """
        return self.backups.create()

    def find_backups(self):
        """
        Return all backups, most recent first.
        """
        return self.backups.list()

    def restore_backup(self, identifier: Union[int, str]):
        """
        Restore the state files from the backup matching ``identifier``.
        """
        return self.backups.restore(identifier)

    def clean_backups(self, keep: Optional[int] = None) -> List[str]:
        """
        Remove all but the ``keep`` most recent backups (default from the
        configured ``KeepBackups``).
        """
        if keep is None:
            keep = self.config.keep_backups
        return self.backups.prune(keep)

    def diff(self, identifier: Optional[Union[int, str]] = None):
        """
        Compare the current state with a backup.

        :param identifier: A backup index or name, or ``None`` for the most
                           recent backup.
        :returns: A ``(backup, diffs)`` tuple.
        """
        if identifier is None or identifier == "":
            backup = self.backups.latest()
        else:
            backup = self.backups.resolve(identifier)
        return backup, diff_backup(self.state, backup, REPRO_MANAGERS)

    def _monitor_timer(self, calendarspec=None):
        # Imported here so that systems without dbus-python can use every
        # other operation.
        from ._timers import MonitorTimer  # pylint: disable=import-outside-toplevel

        return MonitorTimer(
            self.config.unit_dir,
            self.config.config_dir,
            calendarspec or self.config.on_calendar,
        )

    def enable_monitor(self, calendarspec: Optional[str] = None):
        """
        Install, enable and start the systemd user timer that runs state
        detection on ``calendarspec`` (default the configured
        ``OnCalendar``).

        :returns: The ``MonitorTimer``.
        """
        timer = self._monitor_timer(calendarspec)
        timer.enable()
        timer.start()
        return timer

    def disable_monitor(self):
        """
        Stop, disable and remove the monitor timer.
        """
        timer = self._monitor_timer()
        timer.disable()
        return timer


__all__ = [
    "Manager",
    "parse_add_spec",
]
