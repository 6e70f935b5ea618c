# Copyright The repro Authors
#
# repro/manager/plugins/cargo.py - Reproducible environment manager Cargo plugin
#
# This file is part of the repro project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Cargo (Rust) binary crate plugin.
"""
from typing import Dict, List, Optional
import re

from repro import MANAGER_CARGO, normalize_packages
from repro.manager.plugins import Plugin

CARGO_CMD = "cargo"
CARGO_INSTALL = "install"
CARGO_LIST = "--list"
CARGO_SEARCH = "search"
CARGO_QUIET = "--quiet"
CARGO_LIMIT = "--limit"

# Crate lines in `cargo install --list`: "ripgrep v14.1.0:"
_INSTALLED_RE = re.compile(r"^([A-Za-z0-9_-]+) v([0-9][^\s:]*)")

# Result lines in `cargo search`: 'ripgrep = "14.1.0"    # description'
_SEARCH_RE = re.compile(r'^([A-Za-z0-9_-]+) = "([^"]+)"')


def parse_install_list(output: str) -> Dict[str, str]:
    """
    Parse ``cargo install --list`` output into a mapping of crate name to
    installed version. Indented binary name lines are ignored.
    """
    crates = {}
    for line in output.splitlines():
        match = _INSTALLED_RE.match(line)
        if match:
            crates[match.group(1)] = match.group(2)
    return crates


def parse_installed(output: str) -> List[str]:
    """
    Parse ``cargo install --list`` output into a package set.
    """
    return normalize_packages(parse_install_list(output).keys())


def parse_search_version(output: str, name: str) -> Optional[str]:
    """
    Return the registry version of the crate ``name`` from ``cargo search``
    output, or ``None`` if no line matches the name exactly.
    """
    for line in output.splitlines():
        match = _SEARCH_RE.match(line)
        if match and match.group(1) == name:
            return match.group(2)
    return None


class Cargo(Plugin):
    """
    Binary crates installed with ``cargo install``.
    """

    name = MANAGER_CARGO
    version = "0.1.0"
    commands = [CARGO_CMD]

    def detect(self):
        return parse_installed(self._run([CARGO_CMD, CARGO_INSTALL, CARGO_LIST]))

    def install(self, names):
        self._call(
            [CARGO_CMD, CARGO_INSTALL] + self.options.install_args + list(names)
        )

    def search(self, name):
        available_version = None
        found = self._query([CARGO_CMD, CARGO_SEARCH, CARGO_QUIET, CARGO_LIMIT, "1", name])
        if found is not None:
            available_version = parse_search_version(found, name)

        installed_version = None
        installed = self._query([CARGO_CMD, CARGO_INSTALL, CARGO_LIST])
        if installed is not None:
            installed_version = parse_install_list(installed).get(name)

        return self._result(
            name,
            available_version is not None,
            available_version=available_version,
            installed=installed_version is not None,
            installed_version=installed_version,
        )


__all__ = [
    "Cargo",
]
