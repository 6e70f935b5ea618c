# Copyright The repro Authors
#
# repro/manager/plugins/brew.py - Reproducible environment manager Homebrew plugin
#
# This file is part of the repro project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Homebrew package manager plugin.
"""
from typing import List, Optional
import re

from repro import MANAGER_BREW, normalize_packages
from repro.manager.plugins import Plugin

BREW_CMD = "brew"
BREW_LEAVES = "leaves"
BREW_INSTALL = "install"
BREW_INFO = "info"
BREW_LIST = "list"
BREW_VERSIONS = "--versions"

_STABLE_RE = re.compile(r"\bstable\s+([^\s,]+)")


def parse_leaves(output: str) -> List[str]:
    """
    Parse ``brew leaves`` output: one formula name per line.
    """
    return normalize_packages(output.splitlines())


def parse_info_version(output: str) -> Optional[str]:
    """
    Return the stable version from the heading of ``brew info`` output, for
    example ``==> wget: stable 1.21.4 (bottled), HEAD``.
    """
    for line in output.splitlines():
        match = _STABLE_RE.search(line)
        if match:
            return match.group(1)
    return None


def parse_list_versions(output: str, name: str) -> Optional[str]:
    """
    Return the most recent installed version of ``name`` from
    ``brew list --versions`` output, or ``None`` if it is not listed.
    """
    for line in output.splitlines():
        fields = line.split()
        if len(fields) > 1 and fields[0] == name:
            return fields[-1]
    return None


class Brew(Plugin):
    """
    Homebrew formulae installed on request (leaves).
    """

    name = MANAGER_BREW
    version = "0.1.0"
    commands = [BREW_CMD]

    def detect(self):
        return parse_leaves(self._run([BREW_CMD, BREW_LEAVES]))

    def install(self, names):
        self._call([BREW_CMD, BREW_INSTALL] + self.options.install_args + list(names))

    def search(self, name):
        info = self._query([BREW_CMD, BREW_INFO, name])
        available_version = parse_info_version(info) if info is not None else None

        installed_version = None
        versions = self._query([BREW_CMD, BREW_LIST, BREW_VERSIONS, name])
        if versions is not None:
            installed_version = parse_list_versions(versions, name)

        return self._result(
            name,
            info is not None,
            available_version=available_version,
            installed=installed_version is not None,
            installed_version=installed_version,
        )


__all__ = [
    "Brew",
]
