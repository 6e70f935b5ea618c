# Copyright The repro Authors
#
# repro/manager/_state.py - Reproducible environment manager state store
#
# This file is part of the repro project.
#
# SPDX-License-Identifier: Apache-2.0
"""
State directory access: one text file per manager.
"""
from os.path import exists, join
from typing import List, Optional
import logging
import tempfile
import os

from repro import (
    REPRO_MANAGERS,
    REPRO_SUBSYSTEM_MANAGER,
    STATE_FILE_SUFFIX,
    ReproArgumentError,
    ReproSystemError,
    parse_package_set,
)

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_manager(msg, *args, **kwargs):
    """A wrapper for manager subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": REPRO_SUBSYSTEM_MANAGER}, **kwargs)


#: Permissions for newly written state files
_STATE_FILE_MODE = 0o644


def state_file_name(manager: str) -> str:
    """
    Return the state file name for ``manager``.
    """
    if manager not in REPRO_MANAGERS:
        raise ReproArgumentError(f"Unknown manager: {manager}")
    return f"{manager}{STATE_FILE_SUFFIX}"


def _write_atomic(path: str, content: str):
    """
    Replace the file at ``path`` with ``content``. The data is written to a
    temporary file in the same directory and renamed over ``path`` so that
    readers see either the old or the new content.
    """
    dirpath = os.path.dirname(path)
    fd, tmp_path = tempfile.mkstemp(dir=dirpath, prefix=".tmp_", text=True)
    try:
        with os.fdopen(fd, "w", encoding="utf8") as f:
            f.write(content)
            f.flush()
            os.fdatasync(f.fileno())
        os.chmod(tmp_path, _STATE_FILE_MODE)
        os.rename(tmp_path, path)
    except OSError as err:
        if exists(tmp_path):
            os.unlink(tmp_path)
        raise ReproSystemError(f"Error writing state file '{path}': {err}") from err


class StateStore:
    """
    The state directory: the current known installed set for each manager.
    """

    def __init__(self, config):
        """
        Initialise a new ``StateStore`` for the ``ReproConfig`` ``config``.
        """
        self.config = config
        self.state_dir = config.state_dir

    def ensure(self):
        """
        Create the configuration, state and backup directories, an empty
        state file for each manager and the log file, if missing.
        """
        try:
            for dirpath in (
                self.config.config_dir,
                self.state_dir,
                self.config.backup_dir,
            ):
                os.makedirs(dirpath, exist_ok=True)
            paths = [self.path(manager) for manager in REPRO_MANAGERS]
            for path in paths + [self.config.log_file]:
                if not exists(path):
                    _log_debug_manager("Creating empty file %s", path)
                    with open(path, "a", encoding="utf8"):
                        pass
        except OSError as err:
            raise ReproSystemError(
                f"Failed to initialise state directory {self.state_dir}: {err}"
            ) from err

    def path(self, manager: str) -> str:
        """
        Return the path to the state file for ``manager``.
        """
        return join(self.state_dir, state_file_name(manager))

    def read(self, manager: str) -> Optional[str]:
        """
        Return the content of the state file for ``manager``, or ``None`` if
        the file does not exist.
        """
        path = self.path(manager)
        if not exists(path):
            return None
        try:
            with open(path, "r", encoding="utf8") as f:
                return f.read()
        except OSError as err:
            raise ReproSystemError(f"Error reading state file '{path}': {err}") from err

    def read_packages(self, manager: str) -> List[str]:
        """
        Return the package set recorded for ``manager``.
        """
        content = self.read(manager)
        if content is None:
            return []
        return parse_package_set(content)

    def write(self, manager: str, content: str):
        """
        Atomically replace the state file for ``manager`` with ``content``.
        """
        path = self.path(manager)
        _log_debug_manager("Writing %d bytes to %s", len(content), path)
        _write_atomic(path, content)
