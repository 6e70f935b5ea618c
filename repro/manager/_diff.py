# Copyright The repro Authors
#
# repro/manager/_diff.py - Reproducible environment manager state diffs
#
# This file is part of the repro project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Line-set comparison between a backup and the current state.
"""
from os.path import isfile, join
from typing import List, Optional
import logging

from repro import (
    REPRO_MANAGERS,
    Backup,
    ManagerDiff,
)

from ._state import StateStore, state_file_name

_log = logging.getLogger(__name__)

_log_debug = _log.debug


def _read_lines(path: str) -> List[str]:
    with open(path, "r", encoding="utf8") as f:
        return f.read().splitlines()


def diff_lines(manager: str, old: List[str], new: List[str]) -> ManagerDiff:
    """
    Compare two line lists as unordered sets.

    :param manager: The manager the lines belong to.
    :param old: Lines from the backup.
    :param new: Lines from the current state.
    :returns: A ``ManagerDiff`` with lines only in ``new`` as added and lines
              only in ``old`` as removed, each sorted.
    """
    old_set = {line for line in old if line.strip()}
    new_set = {line for line in new if line.strip()}
    return ManagerDiff(
        manager,
        added=sorted(new_set - old_set),
        removed=sorted(old_set - new_set),
    )


def diff_backup(
    store: StateStore, backup: Backup, managers: Optional[List[str]] = None
) -> List[ManagerDiff]:
    """
    Compare each state file in ``backup`` with the current state in
    ``store``. Managers without a file in the backup are skipped; a missing
    current file compares as empty.

    :param store: The current ``StateStore``.
    :param backup: The ``Backup`` to compare against.
    :param managers: Restrict the comparison to these managers.
    :returns: A list of ``ManagerDiff`` objects in manager order.
    """
    diffs = []
    for manager in managers or REPRO_MANAGERS:
        backup_file = join(backup.path, state_file_name(manager))
        if not isfile(backup_file):
            _log_debug("Skipping %s: no state file in backup %s", manager, backup.name)
            continue
        current = store.read(manager) or ""
        diffs.append(diff_lines(manager, _read_lines(backup_file), current.splitlines()))
    return diffs
