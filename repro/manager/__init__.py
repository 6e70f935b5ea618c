# Copyright The repro Authors
#
# repro/manager/__init__.py - Reproducible environment manager
#
# This file is part of the repro project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Top level interface to the reproducible environment manager.
"""

from ._manager import Manager, parse_add_spec  # noqa: F401, F403
from ._config import ReproConfig, default_config_dir, default_unit_dir
from ._state import StateStore
from ._backup import BackupCatalog
from ._diff import diff_lines, diff_backup
from ._calendar import CalendarSpec

__all__ = [
    "Manager",
    "parse_add_spec",
    "ReproConfig",
    "default_config_dir",
    "default_unit_dir",
    "StateStore",
    "BackupCatalog",
    "diff_lines",
    "diff_backup",
    "CalendarSpec",
]
