# Copyright The repro Authors
#
# repro/manager/plugins/flatpak.py - Reproducible environment manager Flatpak plugin
#
# This file is part of the repro project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Flatpak application plugin.
"""
from typing import Dict, List, Optional, Tuple

from repro import MANAGER_FLATPAK, normalize_packages
from repro.manager.plugins import Plugin

FLATPAK_CMD = "flatpak"
FLATPAK_LIST = "list"
FLATPAK_APP = "--app"
FLATPAK_INSTALL = "install"
FLATPAK_SEARCH = "search"
FLATPAK_YES = "-y"
FLATPAK_COLUMNS_ID = "--columns=application"
FLATPAK_COLUMNS_ID_VERSION = "--columns=application,version"

# Header row printed by some flatpak versions when columns are requested.
_HEADER_ID = "Application ID"


def _rows(output: str) -> List[Tuple[str, str]]:
    """
    Split column output into ``(application, version)`` rows, dropping any
    header row. Columns are tab separated; a missing version is ``""``.
    """
    rows = []
    for line in output.splitlines():
        if not line.strip() or line.startswith(_HEADER_ID):
            continue
        if "\t" in line:
            app, _, version = line.partition("\t")
        else:
            app, _, version = line.strip().partition(" ")
        rows.append((app.strip(), version.strip()))
    return rows


def parse_list(output: str) -> List[str]:
    """
    Parse ``flatpak list --app --columns=application`` output into a
    package set of application IDs.
    """
    return normalize_packages(app for app, _ in _rows(output))


def parse_versions(output: str) -> Dict[str, str]:
    """
    Parse ``--columns=application,version`` output into a mapping of
    application ID to version.
    """
    return dict(_rows(output))


def match_application(apps: Dict[str, str], name: str) -> Optional[str]:
    """
    Return the application ID in ``apps`` matching ``name``: either the full
    ID, or an ID whose last dotted component equals ``name`` ignoring case.
    """
    if name in apps:
        return name
    wanted = name.lower()
    for app in sorted(apps):
        if app.rsplit(".", 1)[-1].lower() == wanted:
            return app
    return None


class Flatpak(Plugin):
    """
    Flatpak applications (runtimes are excluded).
    """

    name = MANAGER_FLATPAK
    version = "0.1.0"
    commands = [FLATPAK_CMD]

    def detect(self):
        return parse_list(
            self._run([FLATPAK_CMD, FLATPAK_LIST, FLATPAK_APP, FLATPAK_COLUMNS_ID])
        )

    def install(self, names):
        self._call(
            [FLATPAK_CMD, FLATPAK_INSTALL, FLATPAK_YES]
            + self.options.install_args
            + list(names)
        )

    def search(self, name):
        available_version = None
        available = False
        found = self._query(
            [FLATPAK_CMD, FLATPAK_SEARCH, FLATPAK_COLUMNS_ID_VERSION, name]
        )
        if found is not None:
            remote = parse_versions(found)
            app = match_application(remote, name)
            if app is not None:
                available = True
                available_version = remote[app]

        installed_app = None
        installed_version = None
        listed = self._query(
            [FLATPAK_CMD, FLATPAK_LIST, FLATPAK_APP, FLATPAK_COLUMNS_ID_VERSION]
        )
        if listed is not None:
            local = parse_versions(listed)
            installed_app = match_application(local, name)
            if installed_app is not None:
                installed_version = local[installed_app]

        return self._result(
            name,
            available,
            available_version=available_version,
            installed=installed_app is not None,
            installed_version=installed_version,
        )


__all__ = [
    "Flatpak",
]
