# Copyright The repro Authors
#
# repro/manager/_timers.py - Reproducible environment manager systemd interface
#
# This file is part of the repro project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Systemd user timer integration for periodic state detection.
"""
from typing import List, Optional
from enum import Enum
import logging
import tempfile
import time
import sys
import os

import dbus

from repro import (
    REPRO_SUBSYSTEM_MONITOR,
    ReproSystemError,
    ReproArgumentError,
    ReproTimerError,
)

from ._calendar import CalendarSpec

_log = logging.getLogger(__name__)

_log_info = _log.info
_log_error = _log.error


def _log_debug_monitor(msg, *args, **kwargs):
    """A wrapper for monitor subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": REPRO_SUBSYSTEM_MONITOR}, **kwargs)


#: Base name of the monitor units
MONITOR_UNIT = "repro-monitor"
MONITOR_SERVICE = f"{MONITOR_UNIT}.service"
MONITOR_TIMER = f"{MONITOR_UNIT}.timer"

# Constants for systemd DBus interface
_SYSTEMD_TOP_OBJECT = "org.freedesktop.systemd1"
_SYSTEMD_TOP_PATH = "/org/freedesktop/systemd1"
_ORG_FREEDESTOP_DBUS_PROPS = "org.freedesktop.DBus.Properties"
_NO_SUCH_UNIT = "org.freedesktop.systemd1.NoSuchUnit"

_UNIT_FILE_MODE = 0o644

_SERVICE_CONTENT_FMT = (
    "[Unit]\n"
    "Description=Repro Package Monitor\n"
    "\n"
    "[Service]\n"
    "Type=oneshot\n"
    'Environment="REPRO_CONFIG=%s"\n'
    "ExecStart=%s\n"
)

_TIMER_CONTENT_FMT = (
    "[Unit]\n"
    "Description=Run Repro monitor (%s)\n"
    "\n"
    "[Timer]\n"
    "OnCalendar=%s\n"
    "Persistent=true\n"
    "\n"
    "[Install]\n"
    "WantedBy=timers.target\n"
)


def _escape_specifiers(value: str) -> str:
    # systemd expands "%x" specifiers in most unit settings.
    return value.replace("%", "%%")


def _quote_exec_arg(arg: str) -> str:
    arg = _escape_specifiers(arg).replace("$", "$$")
    if any(c.isspace() for c in arg) or '"' in arg:
        escaped = arg.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return arg


def monitor_command() -> List[str]:
    """
    Return the argument vector run by the monitor service.
    """
    return [sys.executable, "-m", "repro", "--detect"]


def service_unit_content(config_dir: str, command: List[str]) -> str:
    """
    Return the content of the monitor service unit.
    """
    environment = (
        _escape_specifiers(config_dir).replace("\\", "\\\\").replace('"', '\\"')
    )
    exec_start = " ".join(_quote_exec_arg(arg) for arg in command)
    return _SERVICE_CONTENT_FMT % (environment, exec_start)


def timer_unit_content(calendarspec: CalendarSpec) -> str:
    """
    Return the content of the monitor timer unit.
    """
    return _TIMER_CONTENT_FMT % (
        _escape_specifiers(calendarspec.original),
        calendarspec.original,
    )


def _write_unit(unit_dir: str, unit_file: str, content: str):
    """
    Write a unit file robustly: the data reaches disk before the file is
    renamed into place, and the directory metadata is synced afterwards.

    :param unit_dir: The systemd user unit directory.
    :param unit_file: The full path of the unit file to write.
    :param content: The unit file content.
    """
    _log_debug_monitor("Writing unit file %s", unit_file)
    try:
        os.makedirs(unit_dir, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=unit_dir, prefix=".tmp_", text=True)
    except OSError as err:
        raise ReproSystemError(
            f"Filesystem error creating unit directory '{unit_dir}': {err}"
        ) from err

    try:
        with os.fdopen(fd, "w", encoding="utf8") as f:
            f.write(content)
            f.flush()
            os.fdatasync(f.fileno())
        os.rename(tmp_path, unit_file)
        os.chmod(unit_file, _UNIT_FILE_MODE)

        dir_fd = os.open(unit_dir, os.O_DIRECTORY)
        try:
            os.fsync(dir_fd)
        finally:
            os.close(dir_fd)
    except OSError as err:  # pragma: no cover
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise ReproSystemError(
            f"Filesystem error writing unit file '{unit_file}': {err}"
        ) from err


def _remove_unit(unit_file: str):
    try:
        if os.path.exists(unit_file):
            os.unlink(unit_file)
    except OSError as err:  # pragma: no cover
        raise ReproTimerError(f"Failed to remove unit file '{unit_file}': {err}") from err


def _systemd_manager():
    """
    Connect to the systemd user instance on the session bus.

    :returns: A ``(bus, manager)`` tuple.
    """
    bus = dbus.SessionBus()
    systemd = bus.get_object(_SYSTEMD_TOP_OBJECT, _SYSTEMD_TOP_PATH)
    return bus, dbus.Interface(systemd, f"{_SYSTEMD_TOP_OBJECT}.Manager")


class TimerStatus(Enum):
    """
    Enum class representing the possible timer status values.
    """

    DISABLED = "disabled"
    ENABLED = "enabled"
    RUNNING = "running"
    INVALID = "invalid"

    def __str__(self):
        return self.value


class MonitorTimer:
    """
    The systemd user timer that re-runs state detection periodically.
    """

    def __init__(
        self,
        unit_dir: str,
        config_dir: str,
        calendarspec,
        command: Optional[List[str]] = None,
    ):
        """
        Initialise a new ``MonitorTimer``.

        :param unit_dir: The systemd user unit directory.
        :param config_dir: The repro configuration root passed to the service.
        :param calendarspec: A calendarspec string or ``CalendarSpec``.
        :param command: The command run by the service (default
                        ``monitor_command()``).
        """
        if not unit_dir:
            raise ReproArgumentError("Timer unit directory cannot be empty")
        self.unit_dir = unit_dir
        self.config_dir = config_dir
        self.command = command or monitor_command()
        if not isinstance(calendarspec, CalendarSpec):
            try:
                calendarspec = CalendarSpec(calendarspec)
            except ValueError as err:
                raise ReproArgumentError(
                    f"Timer: invalid calendarspec string '{calendarspec}'"
                ) from err
        if not calendarspec.occurs:
            raise ReproArgumentError(
                f"Timer: calendarspec '{calendarspec}' never elapses"
            )
        self.calendarspec = calendarspec

    @property
    def service_file(self):
        """
        Path to the monitor service unit file.
        """
        return os.path.join(self.unit_dir, MONITOR_SERVICE)

    @property
    def timer_file(self):
        """
        Path to the monitor timer unit file.
        """
        return os.path.join(self.unit_dir, MONITOR_TIMER)

    def enable(self):
        """
        Write the monitor units and enable the timer. Following a successful
        call the ``status`` is ``TimerStatus.ENABLED``.
        """
        _write_unit(
            self.unit_dir,
            self.service_file,
            service_unit_content(self.config_dir, self.command),
        )
        _write_unit(self.unit_dir, self.timer_file, timer_unit_content(self.calendarspec))

        try:
            _, manager = _systemd_manager()
            manager.Reload()
            manager.EnableUnitFiles([MONITOR_TIMER], False, True)
            manager.Reload()
        except dbus.DBusException as err:
            raise ReproTimerError(f"DBus error: {err}") from err

    def start(self):
        """
        Start the monitor timer and wait for it to become active.
        """
        try:
            bus, manager = _systemd_manager()
            manager.StartUnit(MONITOR_TIMER, "replace")

            # Poll for unit activation
            for _ in range(10):
                try:
                    unit_obj_path = manager.GetUnit(MONITOR_TIMER)
                    unit = bus.get_object(_SYSTEMD_TOP_OBJECT, str(unit_obj_path))
                    unit_props = dbus.Interface(unit, _ORG_FREEDESTOP_DBUS_PROPS)
                    active_state = unit_props.Get(
                        f"{_SYSTEMD_TOP_OBJECT}.Unit", "ActiveState"
                    )
                    if active_state == "active":
                        _log_info("%s is active.", MONITOR_TIMER)
                        return
                except dbus.DBusException:  # pragma: no cover
                    pass
                time.sleep(0.1)  # pragma: no cover

            raise ReproTimerError(f"Failed to activate {MONITOR_TIMER}.")

        except dbus.DBusException as err:
            raise ReproTimerError(f"DBus error: {err}") from err

    def disable(self):
        """
        Stop and disable the monitor timer and remove its unit files.
        """
        try:
            _, manager = _systemd_manager()
        except dbus.DBusException as err:
            raise ReproTimerError(f"DBus error: {err}") from err

        try:
            try:
                manager.StopUnit(MONITOR_TIMER, "replace")
            except dbus.DBusException as err:
                if err.get_dbus_name() != _NO_SUCH_UNIT:
                    raise
                _log_debug_monitor("%s is not loaded", MONITOR_TIMER)
            manager.DisableUnitFiles([MONITOR_TIMER], False)
        except dbus.DBusException as err:
            _log_error("DBus error disabling timer: %s", err)
            raise ReproTimerError(f"Failed to disable timer unit: {err}") from err
        finally:
            _remove_unit(self.timer_file)
            _remove_unit(self.service_file)

        try:
            manager.Reload()
        except dbus.DBusException as err:
            raise ReproTimerError(f"DBus error: {err}") from err
        _log_info("%s has been disabled and stopped.", MONITOR_TIMER)

    @property
    def status(self):
        """
        Return a ``TimerStatus`` reflecting the state of the timer unit.
        """
        try:
            bus, manager = _systemd_manager()
            try:
                unit_obj_path = manager.GetUnit(MONITOR_TIMER)
            except dbus.DBusException as err:
                if err.get_dbus_name() != _NO_SUCH_UNIT:
                    raise err
                return TimerStatus.DISABLED

            unit = bus.get_object(_SYSTEMD_TOP_OBJECT, str(unit_obj_path))
            unit_props = dbus.Interface(unit, _ORG_FREEDESTOP_DBUS_PROPS)

            load_state = unit_props.Get(f"{_SYSTEMD_TOP_OBJECT}.Unit", "LoadState")
            active_state = unit_props.Get(f"{_SYSTEMD_TOP_OBJECT}.Unit", "ActiveState")

            _log_debug_monitor(
                "timer(%s) unit state load: %s, active: %s",
                MONITOR_TIMER,
                load_state,
                active_state,
            )

            if load_state == "loaded":
                if active_state == "active":
                    return TimerStatus.RUNNING
                if active_state == "inactive":
                    return TimerStatus.ENABLED
            return TimerStatus.INVALID

        except dbus.DBusException as err:
            raise ReproTimerError(f"Failed to get timer unit status: {err}") from err


__all__ = [
    "MONITOR_SERVICE",
    "MONITOR_TIMER",
    "TimerStatus",
    "MonitorTimer",
    "monitor_command",
    "service_unit_content",
    "timer_unit_content",
]
