# Copyright The repro Authors
#
# repro/manager/plugins/apt.py - Reproducible environment manager APT plugin
#
# This file is part of the repro project.
#
# SPDX-License-Identifier: Apache-2.0
"""
APT package manager plugin.
"""
from typing import List, Optional, Tuple

from repro import MANAGER_APT, normalize_packages
from repro.manager.plugins import Plugin

# apt-mark: explicitly installed packages
APT_MARK_CMD = "apt-mark"
APT_MARK_SHOWMANUAL = "showmanual"

# apt-get: package installation
APT_GET_CMD = "apt-get"
APT_GET_UPDATE = "update"
APT_GET_INSTALL = "install"
APT_GET_YES = "-y"

# apt-cache: index queries
APT_CACHE_CMD = "apt-cache"
APT_CACHE_SHOW = "show"
APT_CACHE_POLICY = "policy"
APT_CACHE_CANDIDATE = "Candidate:"
APT_CACHE_CANDIDATE_NONE = "(none)"

# dpkg-query: installed state
DPKG_QUERY_CMD = "dpkg-query"
DPKG_QUERY_SHOW = "-W"
DPKG_QUERY_FORMAT = "-f=${Status}\t${Version}\n"
DPKG_STATUS_INSTALLED = "installed"


def parse_showmanual(output: str) -> List[str]:
    """
    Parse ``apt-mark showmanual`` output: one package name per line.
    """
    return normalize_packages(output.splitlines())


def parse_policy_candidate(output: str) -> Optional[str]:
    """
    Return the ``Candidate:`` version from ``apt-cache policy`` output, or
    ``None`` if there is no installation candidate.
    """
    for line in output.splitlines():
        line = line.strip()
        if line.startswith(APT_CACHE_CANDIDATE):
            candidate = line[len(APT_CACHE_CANDIDATE):].strip()
            if candidate and candidate != APT_CACHE_CANDIDATE_NONE:
                return candidate
            return None
    return None


def parse_dpkg_status(output: str) -> Tuple[bool, Optional[str]]:
    """
    Parse ``dpkg-query -W -f='${Status}\\t${Version}\\n'`` output into an
    ``(installed, version)`` tuple. The status field is the triple
    ``want flag status``, for example ``install ok installed``.
    """
    line = output.strip().splitlines()[0] if output.strip() else ""
    status, _, version = line.partition("\t")
    fields = status.split()
    if len(fields) == 3 and fields[2] == DPKG_STATUS_INSTALLED:
        return (True, version.strip() or None)
    return (False, None)


class Apt(Plugin):
    """
    Debian APT packages marked as manually installed.
    """

    name = MANAGER_APT
    version = "0.1.0"
    commands = [APT_MARK_CMD, APT_GET_CMD, APT_CACHE_CMD, DPKG_QUERY_CMD]
    privileged = True

    def detect(self):
        return parse_showmanual(self._run([APT_MARK_CMD, APT_MARK_SHOWMANUAL]))

    def _update(self):
        self._call(self._sudo([APT_GET_CMD, APT_GET_UPDATE]))

    def install(self, names):
        self._update()
        self._call(
            self._sudo(
                [APT_GET_CMD, APT_GET_INSTALL, APT_GET_YES]
                + self.options.install_args
                + list(names)
            )
        )

    def install_one(self, name):
        self._call(
            self._sudo(
                [APT_GET_CMD, APT_GET_INSTALL, APT_GET_YES]
                + self.options.install_args
                + [name]
            )
        )

    def search(self, name):
        available = self._query([APT_CACHE_CMD, APT_CACHE_SHOW, name]) is not None

        installed, installed_version = False, None
        status = self._query([DPKG_QUERY_CMD, DPKG_QUERY_SHOW, DPKG_QUERY_FORMAT, name])
        if status is not None:
            installed, installed_version = parse_dpkg_status(status)

        available_version = None
        if available and not installed:
            policy = self._query([APT_CACHE_CMD, APT_CACHE_POLICY, name])
            if policy is not None:
                available_version = parse_policy_candidate(policy)

        return self._result(
            name,
            available,
            available_version=available_version,
            installed=installed,
            installed_version=installed_version,
        )


__all__ = [
    "Apt",
]
