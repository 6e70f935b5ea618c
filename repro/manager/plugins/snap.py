# Copyright The repro Authors
#
# repro/manager/plugins/snap.py - Reproducible environment manager Snap plugin
#
# This file is part of the repro project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Snap package plugin.
"""
from typing import Dict, List, Optional

from repro import MANAGER_SNAP, normalize_packages
from repro.manager.plugins import Plugin, first_field

SNAP_CMD = "snap"
SNAP_LIST = "list"
SNAP_INSTALL = "install"
SNAP_INFO = "info"

# Channel line in `snap info`: "  latest/stable:    1.2.3 2024-01-01 (123) 10MB -"
_LATEST_STABLE = "latest/stable:"
_CHANNELS = "channels:"


def parse_list(output: str) -> List[str]:
    """
    Parse ``snap list`` output into a package set. The first line is the
    column heading row.
    """
    lines = output.splitlines()[1:]
    return normalize_packages(filter(None, (first_field(line) for line in lines)))


def parse_list_versions(output: str) -> Dict[str, str]:
    """
    Parse ``snap list`` output into a mapping of snap name to version.
    """
    versions = {}
    for line in output.splitlines()[1:]:
        fields = line.split()
        if len(fields) >= 2:
            versions[fields[0]] = fields[1]
    return versions


def parse_info_version(output: str) -> Optional[str]:
    """
    Return the ``latest/stable`` channel version from ``snap info`` output,
    falling back to the first channel with a version.
    """
    in_channels = False
    first = None
    for line in output.splitlines():
        stripped = line.strip()
        if stripped.startswith(_CHANNELS):
            in_channels = True
            continue
        if not in_channels:
            continue
        if not line.startswith((" ", "\t")):
            break
        label, _, rest = stripped.partition(":")
        version = first_field(rest)
        if not version or version in ("--", "^", "↑"):
            continue
        if f"{label}:" == _LATEST_STABLE:
            return version
        if first is None:
            first = version
    return first


class Snap(Plugin):
    """
    Installed snaps.
    """

    name = MANAGER_SNAP
    version = "0.1.0"
    commands = [SNAP_CMD]
    privileged = True

    def detect(self):
        return parse_list(self._run([SNAP_CMD, SNAP_LIST]))

    def install(self, names):
        self._call(
            self._sudo([SNAP_CMD, SNAP_INSTALL] + self.options.install_args + list(names))
        )

    def search(self, name):
        info = self._query([SNAP_CMD, SNAP_INFO, name])
        available_version = parse_info_version(info) if info is not None else None

        installed_version = None
        listed = self._query([SNAP_CMD, SNAP_LIST, name])
        if listed is not None:
            installed_version = parse_list_versions(listed).get(name)

        return self._result(
            name,
            info is not None,
            available_version=available_version,
            installed=installed_version is not None,
            installed_version=installed_version,
        )


__all__ = [
    "Snap",
]
