# Copyright The repro Authors
#
# tests/__init__.py - Reproducible environment manager test package
#
# This file is part of the repro project.
#
# SPDX-License-Identifier: Apache-2.0
import logging
import os
import tempfile
import shutil
import time

from repro import ReproCalloutError, normalize_packages
import repro.manager.plugins as plugins
from repro.manager import ReproConfig

log = logging.getLogger()
log.setLevel(logging.DEBUG)
formatter = logging.Formatter('%(asctime)s %(levelname)s %(name)s %(message)s')
file_handler = logging.FileHandler("test.log")
file_handler.setFormatter(formatter)
console_handler = logging.StreamHandler()
console_handler.setFormatter(formatter)
log.addHandler(file_handler)
log.addHandler(console_handler)

os.environ["TZ"] = "UTC"
time.tzset()


class MockArgs(object):
    detect = False
    install = False
    add = None
    backup = False
    restore = None
    list = False
    search = None
    monitor = None
    unmonitor = False
    list_backups = False
    clean_backups = None
    diff = None
    config_dir = None
    color = "never"
    json = False
    debug = None
    verbose = False
    config = None


class MockPlugin(plugins.Plugin):
    """In-memory package manager for manager and command tests."""

    name = "apt"
    present = True
    packages = ()
    index = {}
    fail_detect = False
    fail_install = False

    def __init__(self, logger, plugin_cfg):
        super().__init__(logger, plugin_cfg)
        self.installed = list(self.packages)
        self.install_calls = []

    def available(self):
        return self.present

    def detect(self):
        if self.fail_detect:
            raise ReproCalloutError([self.name, "list"], 1, "list failed")
        return normalize_packages(self.installed)

    def install(self, names):
        self.install_calls.append(list(names))
        if self.fail_install:
            raise ReproCalloutError([self.name, "install"] + list(names), 100)
        self.installed.extend(names)

    def search(self, name):
        installed = name in self.installed
        return self._result(
            name,
            name in self.index,
            available_version=self.index.get(name),
            installed=installed,
            installed_version=self.index.get(name) if installed else None,
        )


def mock_plugin(name, **attrs):
    """
    Return a ``MockPlugin`` subclass for manager ``name`` with class
    attributes ``attrs``.
    """
    attrs["name"] = name
    return type(f"Mock{name.capitalize()}", (MockPlugin,), attrs)


class TempConfigMixin(object):
    """
    Provide a ``ReproConfig`` rooted in a fresh temporary directory.
    """

    def setUpConfig(self, **kwargs):
        self.tmpdir = tempfile.mkdtemp(prefix="repro-test-")
        self.config = ReproConfig(
            os.path.join(self.tmpdir, "repro"),
            hostname="TestHost",
            unit_dir=os.path.join(self.tmpdir, "systemd", "user"),
            **kwargs,
        )
        return self.config

    def tearDownConfig(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)


def set_mtime(path, mtime):
    """
    Set both the access and modification time of ``path`` to ``mtime``.
    """
    os.utime(path, (mtime, mtime))
