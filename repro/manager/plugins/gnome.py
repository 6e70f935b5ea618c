# Copyright The repro Authors
#
# repro/manager/plugins/gnome.py - Reproducible environment manager GNOME plugin
#
# This file is part of the repro project.
#
# SPDX-License-Identifier: Apache-2.0
"""
GNOME desktop settings plugin.

The settings database is stored as an opaque ``dconf dump /`` text blob and
restored verbatim with ``dconf load /``.
"""
from repro import MANAGER_GNOME, ReproPluginError
from repro.manager.plugins import Plugin

DCONF_CMD = "dconf"
DCONF_DUMP = "dump"
DCONF_LOAD = "load"
DCONF_ROOT = "/"


class Gnome(Plugin):
    """
    GNOME dconf settings.
    """

    name = MANAGER_GNOME
    version = "0.1.0"
    commands = [DCONF_CMD]
    searchable = False

    def dump(self):
        return self._run([DCONF_CMD, DCONF_DUMP, DCONF_ROOT])

    def install(self, names):
        raise ReproPluginError("GNOME settings cannot be installed by name")

    def install_one(self, name):
        raise ReproPluginError("GNOME settings cannot be installed by name")

    def apply(self, content):
        if not content.strip():
            return False
        self._call([DCONF_CMD, DCONF_LOAD, DCONF_ROOT], input=content)
        return True


__all__ = [
    "Gnome",
]
