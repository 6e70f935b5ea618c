# Copyright The repro Authors
#
# repro/_repro.py - Reproducible environment manager global definitions
#
# This file is part of the repro project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Global definitions for the top-level repro package.
"""
from typing import Iterable, List, Optional, TextIO
from datetime import datetime
from enum import Enum
import logging
import string
import json
import sys

_log = logging.getLogger("repro")

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

# Repro debugging subsystem mask
REPRO_DEBUG_MANAGER = 1
REPRO_DEBUG_COMMAND = 2
REPRO_DEBUG_BACKUP = 4
REPRO_DEBUG_PLUGIN = 8
REPRO_DEBUG_MONITOR = 16
REPRO_DEBUG_ALL = (
    REPRO_DEBUG_MANAGER
    | REPRO_DEBUG_COMMAND
    | REPRO_DEBUG_BACKUP
    | REPRO_DEBUG_PLUGIN
    | REPRO_DEBUG_MONITOR
)

# Repro debugging subsystem names
REPRO_SUBSYSTEM_MANAGER = "repro.manager"
REPRO_SUBSYSTEM_COMMAND = "repro.command"
REPRO_SUBSYSTEM_BACKUP = "repro.backup"
REPRO_SUBSYSTEM_PLUGIN = "repro.plugin"
REPRO_SUBSYSTEM_MONITOR = "repro.monitor"

_DEBUG_MASK_TO_SUBSYSTEM = {
    REPRO_DEBUG_MANAGER: REPRO_SUBSYSTEM_MANAGER,
    REPRO_DEBUG_COMMAND: REPRO_SUBSYSTEM_COMMAND,
    REPRO_DEBUG_BACKUP: REPRO_SUBSYSTEM_BACKUP,
    REPRO_DEBUG_PLUGIN: REPRO_SUBSYSTEM_PLUGIN,
    REPRO_DEBUG_MONITOR: REPRO_SUBSYSTEM_MONITOR,
}

_debug_subsystems = set()

#: Log level for successful completion messages (between INFO and WARNING).
SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

# Manager names: the closed set of state files.
MANAGER_APT = "apt"
MANAGER_BREW = "brew"
MANAGER_CARGO = "cargo"
MANAGER_FLATPAK = "flatpak"
MANAGER_SNAP = "snap"
MANAGER_GNOME = "gnome"

#: All managers in presentation order.
REPRO_MANAGERS = [
    MANAGER_APT,
    MANAGER_BREW,
    MANAGER_CARGO,
    MANAGER_FLATPAK,
    MANAGER_SNAP,
    MANAGER_GNOME,
]

#: Managers that install packages (everything except desktop settings).
REPRO_PACKAGE_MANAGERS = REPRO_MANAGERS[:-1]

#: Display names used in reports.
MANAGER_DISPLAY_NAMES = {
    MANAGER_APT: "APT",
    MANAGER_BREW: "Homebrew",
    MANAGER_CARGO: "Cargo",
    MANAGER_FLATPAK: "Flatpak",
    MANAGER_SNAP: "Snap",
    MANAGER_GNOME: "GNOME",
}

#: File name suffix for state files.
STATE_FILE_SUFFIX = ".txt"

#: Timestamp format used in backup names.
BACKUP_TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"

#: Separator between host name and timestamp in backup names.
BACKUP_NAME_SEPARATOR = "_"

#: Default number of backups kept by ``--clean-backups``.
DEFAULT_KEEP_BACKUPS = 5

# Constants for Backup property names
BACKUP_NAME = "BackupName"
BACKUP_INDEX = "Index"
BACKUP_HOSTNAME = "Hostname"
BACKUP_PATH = "Path"
BACKUP_TIME = "Time"
BACKUP_TIMESTAMP = "Timestamp"
BACKUP_MANAGERS = "Managers"

# Constants for SearchResult property names
SEARCH_MANAGER = "Manager"
SEARCH_PACKAGE = "Package"
SEARCH_STATUS = "Status"
SEARCH_VERSION = "Version"

# Constants for ManagerDiff property names
DIFF_MANAGER = "Manager"
DIFF_ADDED = "Added"
DIFF_REMOVED = "Removed"

# Constant for allow-listed backup name characters
REPRO_VALID_NAME_CHARS = set(
    string.ascii_lowercase + string.ascii_uppercase + string.digits + "+_.-"
)

# Console decorations per level: (symbol, TermControl color attribute)
_LEVEL_DECORATIONS = {
    "SUCCESS": ("✓", "GREEN"),
    "INFO": ("ℹ", "CYAN"),
    "WARNING": ("⚠", "YELLOW"),
    "ERROR": ("✗", "RED"),
    "CRITICAL": ("✗", "RED"),
}


class SubsystemFilter(logging.Filter):
    """
    Pass DEBUG records tagged with a ``subsystem`` only when that subsystem
    is enabled. Untagged records and records at other levels always pass.
    """

    def __init__(self, name=""):
        super().__init__(name)
        self.enabled_subsystems = set(_debug_subsystems)

    def filter(self, record):
        subsystem = getattr(record, "subsystem", None)
        if record.levelno != logging.DEBUG or subsystem is None:
            return True
        return subsystem in self.enabled_subsystems

    def set_debug_subsystems(self, subsystems):
        """Replace the set of enabled subsystems."""
        self.enabled_subsystems = set(subsystems)


def _subsystem_filters():
    for handler in logging.getLogger("repro").handlers:
        for log_filter in handler.filters:
            if isinstance(log_filter, SubsystemFilter):
                yield log_filter


def get_debug_mask():
    """
    Return the logical OR of the ``REPRO_DEBUG_*`` flags currently enabled.

    :rtype: int
    """
    subsystems = set(_debug_subsystems)
    for log_filter in _subsystem_filters():
        subsystems |= log_filter.enabled_subsystems
    return sum(
        flag
        for flag, subsystem in _DEBUG_MASK_TO_SUBSYSTEM.items()
        if subsystem in subsystems
    )


def set_debug_mask(mask):
    """
    Enable debug logging for the subsystems selected by ``mask``, the
    logical OR of the ``REPRO_DEBUG_*`` flags.

    :raises: ``ValueError`` if ``mask`` contains unknown flags.
    """
    # pylint: disable=global-statement
    global _debug_subsystems

    if mask < 0 or mask > REPRO_DEBUG_ALL:
        raise ValueError(f"Invalid repro debug mask: {mask}")

    _debug_subsystems = {
        subsystem
        for flag, subsystem in _DEBUG_MASK_TO_SUBSYSTEM.items()
        if mask & flag
    }
    for log_filter in _subsystem_filters():
        log_filter.set_debug_subsystems(_debug_subsystems)


def log_success(logger: logging.Logger, msg, *args, **kwargs):
    """
    Log ``msg`` to ``logger`` at the ``SUCCESS`` level.
    """
    logger.log(SUCCESS, msg, *args, **kwargs)


class ConsoleHandler(logging.StreamHandler):
    """
    A logging handler that decorates each record with a level symbol and,
    when a ``TermControl`` is supplied, the matching terminal color:

        ✓ SUCCESS: Backup created: host_20240101120000
    """

    def __init__(self, stream: Optional[TextIO] = None, term=None, **kwargs):
        super().__init__(stream=stream or sys.stderr, **kwargs)
        self.term = term

    def _decorate(self, record) -> str:
        symbol, color = _LEVEL_DECORATIONS.get(record.levelname, ("•", "BLUE"))
        label = f"{symbol} {record.levelname}:"
        if self.term is None:
            return label
        return (
            f"{getattr(self.term, color, '')}{self.term.BOLD}"
            f"{label}{self.term.NORMAL}"
        )

    def emit(self, record):
        try:
            msg = self.format(record)
            self.stream.write(f"{self._decorate(record)} {msg}\n")
            self.stream.flush()
        except Exception:  # pylint: disable=broad-exception-caught
            self.handleError(record)


#
# Repro exception types
#


class ReproError(Exception):
    """
    Base class for reproducible environment manager errors.
    """


class ReproSystemError(ReproError):
    """
    An error when calling the operating system.
    """


class ReproCalloutError(ReproError):
    """
    An error calling out to an external program.
    """

    def __init__(self, cmd: List[str], status: int, stderr: str = ""):
        """
        Initialise a new ``ReproCalloutError`` exception.

        :param cmd: The argument vector of the failed command.
        :param status: The exit status of the command.
        :param stderr: The error output of the command.
        """
        self.cmd, self.status, self.stderr = cmd, status, stderr
        msg = f"'{' '.join(cmd)}' failed (status={status})"
        if stderr:
            msg += f": {stderr}"
        super().__init__(msg)


class ReproUsageError(ReproError):
    """
    Invalid command line usage, for example a package argument without a
    ``manager:`` prefix.
    """


class ReproNotFoundError(ReproError):
    """
    The requested object does not exist.
    """


class ReproExistsError(ReproError):
    """
    The named backup already exists.
    """


class ReproArgumentError(ReproError):
    """
    An invalid argument was passed to a repro API call.
    """


class ReproPluginError(ReproError):
    """
    An error performing an action via a plugin.
    """


class ReproTimerError(ReproError):
    """
    An error manipulating systemd timers.
    """


#
# Package set helpers
#


def normalize_packages(names: Iterable[str]) -> List[str]:
    """
    Return ``names`` as a package set: stripped, without blank entries or
    duplicates, and sorted lexicographically.

    :param names: An iterable of package name strings.
    :returns: A sorted, de-duplicated list of package names.
    :rtype: ``List[str]``
    """
    return sorted({name.strip() for name in names if name.strip()})


def parse_package_set(text: str) -> List[str]:
    """
    Parse newline-delimited state file content into a package set.
    """
    return normalize_packages(text.splitlines())


def format_package_set(names: Iterable[str]) -> str:
    """
    Format a package set as state file content. An empty set is the empty
    string; otherwise one name per line with a trailing newline.
    """
    packages = normalize_packages(names)
    if not packages:
        return ""
    return "\n".join(packages) + "\n"


def is_valid_backup_name(name: str) -> bool:
    """
    Return ``True`` if ``name`` may name a directory in the backup root.
    """
    if not name or name.startswith("."):
        return False
    return all(char in REPRO_VALID_NAME_CHARS for char in name)


#
# Value types
#


class Backup:
    """
    An immutable timestamped snapshot of all state files.
    """

    def __init__(self, name, path, timestamp, managers, index=None):
        """
        Initialise a new ``Backup`` object.

        :param name: The backup directory name (``<host>_<timestamp>``).
        :param path: The absolute path to the backup directory.
        :param timestamp: The creation time as a UNIX timestamp.
        :param managers: The list of managers with a state file in the backup.
        :param index: The 1-based position in the recency ordered catalog.
        """
        self._name = name
        self._path = path
        self._timestamp = timestamp
        self._managers = managers
        self.index = index

    def __str__(self):
        return (
            f"{BACKUP_NAME}:  {self.name}\n"
            f"{BACKUP_INDEX}:       {self.index}\n"
            f"{BACKUP_HOSTNAME}:    {self.hostname}\n"
            f"{BACKUP_PATH}:        {self.path}\n"
            f"{BACKUP_TIME}:        {self.time}\n"
            f"{BACKUP_MANAGERS}:    {', '.join(self.managers)}"
        )

    def __repr__(self):
        return f"Backup('{self.name}', '{self.path}', {self.timestamp})"

    def __eq__(self, other):
        if not isinstance(other, Backup):
            return NotImplemented
        return self.name == other.name and self.path == other.path

    def __hash__(self):
        return hash((self.name, self.path))

    def to_dict(self):
        """
        Return a representation of this ``Backup`` as a dictionary.
        """
        pmap = {}
        pmap[BACKUP_NAME] = self.name
        pmap[BACKUP_INDEX] = self.index
        pmap[BACKUP_HOSTNAME] = self.hostname
        pmap[BACKUP_PATH] = self.path
        pmap[BACKUP_TIMESTAMP] = self.timestamp
        pmap[BACKUP_TIME] = self.time
        pmap[BACKUP_MANAGERS] = self.managers
        return pmap

    def json(self, pretty=False):
        """
        Return a string representation of this ``Backup`` in JSON notation.
        """
        return json.dumps(self.to_dict(), indent=4 if pretty else None)

    @property
    def name(self):
        """
        The name of this backup.
        """
        return self._name

    @property
    def path(self):
        """
        The path to the directory holding this backup.
        """
        return self._path

    @property
    def hostname(self):
        """
        The host name part of the backup name.
        """
        return self._name.rsplit(BACKUP_NAME_SEPARATOR, 1)[0]

    @property
    def timestamp(self):
        """
        The creation time of this backup as a UNIX timestamp.
        """
        return self._timestamp

    @property
    def datetime(self):
        """
        The creation time of this backup as a ``datetime`` object.
        """
        return datetime.fromtimestamp(self._timestamp)

    @property
    def time(self):
        """
        The creation time of this backup as a human readable string.
        """
        return str(self.datetime.replace(microsecond=0))

    @property
    def managers(self):
        """
        The managers that had a state file when this backup was taken.
        """
        return list(self._managers)


class SearchStatus(Enum):
    """
    Enum class representing the outcome of a package search for one manager.
    """

    UNAVAILABLE = "Unavailable"
    NOT_FOUND = "Not Found"
    AVAILABLE = "Available"
    INSTALLED = "Installed"

    def __str__(self):
        """
        Return a string representation of this ``SearchStatus`` object.
        """
        return self.value


class SearchResult:
    """
    Result of looking up one package name with one manager.
    """

    def __init__(self, manager, package, status, version=None):
        self.manager = manager
        self.package = package
        self.status = status
        self.version = version

    def __str__(self):
        display = MANAGER_DISPLAY_NAMES.get(self.manager, self.manager)
        if self.status == SearchStatus.UNAVAILABLE:
            return f"{display}: manager not available"
        if self.status == SearchStatus.NOT_FOUND:
            return f"{display}: {self.package} [{self.status}]"
        version = f" ({self.version})" if self.version else ""
        return f"{display}: {self.package}{version} [{self.status}]"

    def __repr__(self):
        return (
            f"SearchResult('{self.manager}', '{self.package}', "
            f"{self.status}, version={self.version!r})"
        )

    def __eq__(self, other):
        if not isinstance(other, SearchResult):
            return NotImplemented
        return (
            self.manager == other.manager
            and self.package == other.package
            and self.status == other.status
            and self.version == other.version
        )

    @property
    def found(self):
        """
        ``True`` if the package is available or installed.
        """
        return self.status in (SearchStatus.AVAILABLE, SearchStatus.INSTALLED)

    def to_dict(self):
        """
        Return a representation of this ``SearchResult`` as a dictionary.
        """
        return {
            SEARCH_MANAGER: self.manager,
            SEARCH_PACKAGE: self.package,
            SEARCH_STATUS: str(self.status),
            SEARCH_VERSION: self.version,
        }


class ManagerDiff:
    """
    Lines added to and removed from one manager's state since a backup.
    """

    def __init__(self, manager, added, removed):
        self.manager = manager
        self.added = added
        self.removed = removed

    def __str__(self):
        lines = [f"-{line}" for line in self.removed]
        lines.extend(f"+{line}" for line in self.added)
        return "\n".join(lines)

    def __repr__(self):
        return f"ManagerDiff('{self.manager}', {self.added}, {self.removed})"

    @property
    def has_changes(self):
        """
        ``True`` if any line was added or removed.
        """
        return bool(self.added or self.removed)

    def to_dict(self):
        """
        Return a representation of this ``ManagerDiff`` as a dictionary.
        """
        return {
            DIFF_MANAGER: self.manager,
            DIFF_ADDED: self.added,
            DIFF_REMOVED: self.removed,
        }


__all__ = [
    "REPRO_DEBUG_MANAGER",
    "REPRO_DEBUG_COMMAND",
    "REPRO_DEBUG_BACKUP",
    "REPRO_DEBUG_PLUGIN",
    "REPRO_DEBUG_MONITOR",
    "REPRO_DEBUG_ALL",
    "REPRO_SUBSYSTEM_MANAGER",
    "REPRO_SUBSYSTEM_COMMAND",
    "REPRO_SUBSYSTEM_BACKUP",
    "REPRO_SUBSYSTEM_PLUGIN",
    "REPRO_SUBSYSTEM_MONITOR",
    "SUCCESS",
    "MANAGER_APT",
    "MANAGER_BREW",
    "MANAGER_CARGO",
    "MANAGER_FLATPAK",
    "MANAGER_SNAP",
    "MANAGER_GNOME",
    "REPRO_MANAGERS",
    "REPRO_PACKAGE_MANAGERS",
    "MANAGER_DISPLAY_NAMES",
    "STATE_FILE_SUFFIX",
    "BACKUP_TIMESTAMP_FORMAT",
    "BACKUP_NAME_SEPARATOR",
    "DEFAULT_KEEP_BACKUPS",
    "BACKUP_NAME",
    "BACKUP_INDEX",
    "BACKUP_HOSTNAME",
    "BACKUP_PATH",
    "BACKUP_TIME",
    "BACKUP_TIMESTAMP",
    "BACKUP_MANAGERS",
    "SEARCH_MANAGER",
    "SEARCH_PACKAGE",
    "SEARCH_STATUS",
    "SEARCH_VERSION",
    "DIFF_MANAGER",
    "DIFF_ADDED",
    "DIFF_REMOVED",
    "REPRO_VALID_NAME_CHARS",
    "SubsystemFilter",
    "get_debug_mask",
    "set_debug_mask",
    "log_success",
    "ConsoleHandler",
    "ReproError",
    "ReproSystemError",
    "ReproCalloutError",
    "ReproUsageError",
    "ReproNotFoundError",
    "ReproExistsError",
    "ReproArgumentError",
    "ReproPluginError",
    "ReproTimerError",
    "normalize_packages",
    "parse_package_set",
    "format_package_set",
    "is_valid_backup_name",
    "Backup",
    "SearchStatus",
    "SearchResult",
    "ManagerDiff",
]
