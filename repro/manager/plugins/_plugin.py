# Copyright The repro Authors
#
# repro/manager/plugins/_plugin.py - Reproducible environment manager plugins
#
# This file is part of the repro project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Package manager plugin interface and callout helpers.
"""
from subprocess import run
from shutil import which
from typing import List, Optional
import shlex
import os

from repro import (
    ReproCalloutError,
    SearchResult,
    SearchStatus,
    format_package_set,
    parse_package_set,
)

SUDO_CMD = "sudo"

#: Plugin configuration options section
_PLUGIN_CFG_OPTIONS = "Options"

#: Plugin configuration: prefix privileged commands with sudo
_PLUGIN_CFG_SUDO = "Sudo"

#: Plugin configuration: extra arguments for install commands
_PLUGIN_CFG_INSTALL_ARGS = "InstallArgs"


class PluginOptions:
    """
    Per-plugin options.
    """

    def __init__(self, cfg, sudo=False):
        """
        Initialise a new ``PluginOptions`` instance from the ``ConfigParser``
        ``cfg``, using ``sudo`` as the default for the ``Sudo`` option.
        """
        self.sudo = sudo
        self.install_args = []

        if cfg.has_section(_PLUGIN_CFG_OPTIONS):
            if cfg.has_option(_PLUGIN_CFG_OPTIONS, _PLUGIN_CFG_SUDO):
                self.sudo = cfg.getboolean(_PLUGIN_CFG_OPTIONS, _PLUGIN_CFG_SUDO)
            if cfg.has_option(_PLUGIN_CFG_OPTIONS, _PLUGIN_CFG_INSTALL_ARGS):
                self.install_args = shlex.split(
                    cfg.get(_PLUGIN_CFG_OPTIONS, _PLUGIN_CFG_INSTALL_ARGS)
                )


def first_field(line: str) -> Optional[str]:
    """
    Return the first whitespace separated field of ``line``, or ``None`` for
    a blank line.
    """
    fields = line.split()
    return fields[0] if fields else None


class Plugin:
    """
    Abstract base class for package manager plugins.

    A plugin wraps one external package manager and exposes the operations
    repro needs: listing the explicitly installed set, installing packages
    and looking up a single package.
    """

    name = "plugin"
    version = "0.1.0"

    #: Executables that must be present for the plugin to be available.
    commands: List[str] = []

    #: Whether privileged commands are prefixed with ``sudo`` by default.
    privileged = False

    #: Whether the plugin takes part in ``search()`` reports.
    searchable = True

    def __init__(self, logger, plugin_cfg):
        self.logger = logger
        self.options = PluginOptions(plugin_cfg, sudo=self.privileged)
        self._env = os.environ.copy()
        # Parsers expect untranslated output.
        self._env["LC_ALL"] = "C"

    def _log_debug(self, *args):
        """
        Log at debug level.
        """
        self.logger.debug(*args)

    def available(self) -> bool:
        """
        Return ``True`` if every executable this plugin needs is on ``PATH``.
        """
        return bool(self.commands) and all(which(cmd) for cmd in self.commands)

    def _sudo(self, cmd: List[str]) -> List[str]:
        """
        Prefix ``cmd`` with ``sudo`` if the plugin is configured to use it and
        the process is not already running as root.
        """
        if self.options.sudo and os.geteuid() != 0:
            return [SUDO_CMD] + cmd
        return cmd

    def _capture(self, cmd: List[str]):
        self._log_debug("Calling: '%s'", " ".join(cmd))
        return run(
            cmd,
            encoding="utf8",
            errors="replace",
            capture_output=True,
            check=False,
            env=self._env,
        )

    def _run(self, cmd: List[str]) -> str:
        """
        Run ``cmd`` capturing its output, and return standard output.

        :param cmd: The command argument vector.
        :returns: The standard output of the command.
        :raises: ``ReproCalloutError`` if the command exits with failure.
        """
        res = self._capture(cmd)
        if res.returncode != 0:
            raise ReproCalloutError(cmd, res.returncode, res.stderr.strip())
        return res.stdout

    def _query(self, cmd: List[str]) -> Optional[str]:
        """
        Run the query ``cmd`` and return its output, or ``None`` if it
        exited with failure.
        """
        res = self._capture(cmd)
        if res.returncode != 0:
            return None
        return res.stdout

    def _call(self, cmd: List[str], input=None):  # pylint: disable=redefined-builtin
        """
        Run the install command ``cmd`` with output going to the terminal.

        :param cmd: The command argument vector.
        :param input: Optional text to feed to the command's standard input.
        :raises: ``ReproCalloutError`` if the command exits with failure.
        """
        self._log_debug("Calling: '%s'", " ".join(cmd))
        res = run(cmd, input=input, encoding="utf8", check=False)
        if res.returncode != 0:
            raise ReproCalloutError(cmd, res.returncode)

    def detect(self) -> List[str]:
        """
        Return the package set explicitly installed with this manager.

        :returns: A sorted, de-duplicated list of package names.
        """
        raise NotImplementedError

    def dump(self) -> str:
        """
        Return the state file content for the current installed set.
        """
        return format_package_set(self.detect())

    def install(self, names: List[str]):
        """
        Install every package in ``names`` with a single bulk command.
        """
        raise NotImplementedError

    def install_one(self, name: str):
        """
        Install the single package ``name``.
        """
        self.install([name])

    def apply(self, content: str) -> bool:
        """
        Apply saved state file ``content``: install the recorded packages.

        :returns: ``True`` if anything was applied, or ``False`` if the state
                  was empty.
        """
        names = parse_package_set(content)
        if not names:
            return False
        self.install(names)
        return True

    def search(self, name: str) -> SearchResult:
        """
        Look up ``name`` in this manager's index and installed set.
        """
        raise NotImplementedError

    def _result(
        self,
        name: str,
        available: bool,
        available_version: Optional[str] = None,
        installed: bool = False,
        installed_version: Optional[str] = None,
    ) -> SearchResult:
        """
        Build a ``SearchResult`` for ``name``. Installed state takes
        precedence over availability.
        """
        if installed:
            return SearchResult(
                self.name, name, SearchStatus.INSTALLED, installed_version or None
            )
        if available:
            return SearchResult(
                self.name, name, SearchStatus.AVAILABLE, available_version or None
            )
        return SearchResult(self.name, name, SearchStatus.NOT_FOUND)


__all__ = [
    "SUDO_CMD",
    "PluginOptions",
    "Plugin",
    "first_field",
]
