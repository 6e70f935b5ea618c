# Copyright The repro Authors
#
# repro/manager/_backup.py - Reproducible environment manager backups
#
# This file is part of the repro project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Backup catalog: timestamped copies of the state directory.
"""
from os.path import exists, isdir, isfile, join
from datetime import datetime
from typing import List, Optional, Union
import logging
import shutil
import os

from repro import (
    BACKUP_NAME_SEPARATOR,
    BACKUP_TIMESTAMP_FORMAT,
    DEFAULT_KEEP_BACKUPS,
    REPRO_MANAGERS,
    REPRO_SUBSYSTEM_BACKUP,
    STATE_FILE_SUFFIX,
    Backup,
    ReproArgumentError,
    ReproExistsError,
    ReproNotFoundError,
    ReproSystemError,
    is_valid_backup_name,
)

from ._state import state_file_name

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_backup(msg, *args, **kwargs):
    """A wrapper for backup subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": REPRO_SUBSYSTEM_BACKUP}, **kwargs)


def _state_files(dirpath: str) -> List[str]:
    """
    Return the sorted names of the ``*.txt`` files in ``dirpath``.
    """
    return sorted(
        name
        for name in os.listdir(dirpath)
        if name.endswith(STATE_FILE_SUFFIX) and isfile(join(dirpath, name))
    )


def _copy_state_files(src_dir: str, dest_dir: str) -> List[str]:
    """
    Copy every state file from ``src_dir`` into ``dest_dir``, preserving
    file metadata and overwriting files in ``dest_dir``.

    :returns: The list of copied file names.
    """
    copied = []
    for name in _state_files(src_dir):
        _log_debug_backup("Copying %s from %s to %s", name, src_dir, dest_dir)
        shutil.copy2(join(src_dir, name), join(dest_dir, name))
        copied.append(name)
    return copied


def backup_name(hostname: str, when: Optional[datetime] = None) -> str:
    """
    Return the backup name for ``hostname`` at time ``when`` (default now).
    """
    when = when or datetime.now()
    return (
        f"{hostname.lower()}{BACKUP_NAME_SEPARATOR}"
        f"{when.strftime(BACKUP_TIMESTAMP_FORMAT)}"
    )


class BackupCatalog:
    """
    The set of backups stored under the backup root, ordered by recency.
    """

    def __init__(self, config):
        """
        Initialise a new ``BackupCatalog`` for the ``ReproConfig`` ``config``.
        """
        self.config = config
        self.backup_dir = config.backup_dir
        self.state_dir = config.state_dir

    def _backup_from_dir(self, name: str, index=None) -> Backup:
        path = join(self.backup_dir, name)
        managers = [
            manager
            for manager in REPRO_MANAGERS
            if isfile(join(path, state_file_name(manager)))
        ]
        return Backup(name, path, os.stat(path).st_mtime, managers, index=index)

    def list(self) -> List[Backup]:
        """
        Return all backups, most recent first, each with its 1-based
        ``index``. An empty or missing backup root gives an empty list.
        """
        if not isdir(self.backup_dir):
            return []

        try:
            entries = [
                entry
                for entry in os.scandir(self.backup_dir)
                if entry.is_dir(follow_symlinks=False)
                and is_valid_backup_name(entry.name)
            ]
            entries.sort(
                key=lambda entry: (entry.stat().st_mtime_ns, entry.name), reverse=True
            )
        except OSError as err:
            raise ReproSystemError(
                f"Error reading backup directory {self.backup_dir}: {err}"
            ) from err

        backups = [
            self._backup_from_dir(entry.name, index=index)
            for index, entry in enumerate(entries, start=1)
        ]
        _log_debug_backup("Found %d backups in %s", len(backups), self.backup_dir)
        return backups

    def latest(self) -> Backup:
        """
        Return the most recent backup.

        :raises: ``ReproNotFoundError`` if there are no backups.
        """
        backups = self.list()
        if not backups:
            raise ReproNotFoundError("No backups found")
        return backups[0]

    def resolve(self, identifier: Union[int, str]) -> Backup:
        """
        Resolve ``identifier`` to a ``Backup``. A bare integer is the 1-based
        position in the recency ordered ``list()``; anything else is a
        literal backup name.

        :param identifier: A backup index or name.
        :returns: The matching ``Backup``.
        :raises: ``ReproNotFoundError`` if no backup matches.
        """
        text = str(identifier)
        if isinstance(identifier, int) or (text.isascii() and text.isdecimal()):
            index = int(identifier)
            backups = self.list()
            if index < 1 or index > len(backups):
                raise ReproNotFoundError(f"Invalid backup number: {identifier}")
            return backups[index - 1]

        name = text
        if not is_valid_backup_name(name):
            raise ReproNotFoundError(f"Backup not found: {name}")

        for backup in self.list():
            if backup.name == name:
                return backup
        raise ReproNotFoundError(f"Backup not found: {name}")

    def create(self, when: Optional[datetime] = None) -> Backup:
        """
        Create a new backup of the state directory named
        ``<hostname>_<timestamp>``.

        :param when: Override the backup time (default now).
        :returns: The new ``Backup``.
        :raises: ``ReproExistsError`` if a backup with the same name exists.
        """
        name = backup_name(self.config.hostname, when)
        path = join(self.backup_dir, name)

        if exists(path):
            raise ReproExistsError(f"Backup already exists: {name}")

        try:
            os.makedirs(self.backup_dir, exist_ok=True)
            os.mkdir(path)
        except FileExistsError as err:
            raise ReproExistsError(f"Backup already exists: {name}") from err
        except OSError as err:
            raise ReproSystemError(f"Failed to create backup {path}: {err}") from err

        try:
            copied = _copy_state_files(self.state_dir, path)
        except OSError as err:
            raise ReproSystemError(f"Failed to copy state to {path}: {err}") from err

        _log_debug_backup("Created backup %s with %d files", name, len(copied))
        return self._backup_from_dir(name, index=1)

    def restore(self, identifier: Union[int, str]) -> Backup:
        """
        Copy the state files from the backup matching ``identifier`` over
        the state directory. Managers without a file in the backup keep
        their current state file.

        :param identifier: A backup index or name.
        :returns: The restored ``Backup``.
        """
        backup = self.resolve(identifier)
        if not isdir(backup.path):
            raise ReproNotFoundError(f"Backup not found: {backup.name}")

        try:
            os.makedirs(self.state_dir, exist_ok=True)
            copied = _copy_state_files(backup.path, self.state_dir)
        except OSError as err:
            raise ReproSystemError(
                f"Failed to restore backup {backup.name}: {err}"
            ) from err

        _log_debug_backup("Restored %d files from %s", len(copied), backup.name)
        return backup

    def prune(self, keep: int = DEFAULT_KEEP_BACKUPS) -> List[str]:
        """
        Remove all but the ``keep`` most recent backups.

        :param keep: The number of backups to keep.
        :returns: The names of the removed backups, oldest first.
        """
        if keep < 0:
            raise ReproArgumentError(f"Invalid number of backups to keep: {keep}")

        backups = self.list()
        if len(backups) <= keep:
            return []

        removed = []
        for backup in reversed(backups[keep:]):
            _log_debug_backup("Removing backup %s", backup.path)
            try:
                shutil.rmtree(backup.path)
            except OSError as err:
                raise ReproSystemError(
                    f"Failed to remove backup {backup.name}: {err}"
                ) from err
            removed.append(backup.name)
        return removed
