# Copyright The repro Authors
#
# tests/test_backup.py - Backup catalog tests
#
# This file is part of the repro project.
#
# SPDX-License-Identifier: Apache-2.0
from datetime import datetime
import unittest
import logging
import os

from repro import (
    REPRO_MANAGERS,
    ReproArgumentError,
    ReproExistsError,
    ReproNotFoundError,
)
from repro.manager import BackupCatalog, StateStore
from repro.manager._backup import backup_name

from tests import TempConfigMixin, set_mtime

log = logging.getLogger()

_BASE_TIME = 1700000000


class BackupCatalogTests(TempConfigMixin, unittest.TestCase):
    """Test backup creation, listing, restore and pruning"""

    def setUp(self):
        log.debug("Preparing %s", self._testMethodName)
        self.setUpConfig()
        self.store = StateStore(self.config)
        self.store.ensure()
        self.catalog = BackupCatalog(self.config)

    def tearDown(self):
        log.debug("Tearing down %s", self._testMethodName)
        self.tearDownConfig()

    def _create(self, n, offset=0):
        """
        Create ``n`` backups with strictly increasing modification times.
        """
        names = []
        for i in range(n):
            when = datetime(2024, 1, 1, 12, 0, i + offset)
            backup = self.catalog.create(when=when)
            set_mtime(backup.path, _BASE_TIME + i + offset)
            names.append(backup.name)
        return names

    def _state_snapshot(self):
        return {manager: self.store.read(manager) for manager in REPRO_MANAGERS}

    def test_backup_name(self):
        when = datetime(2024, 3, 5, 7, 9, 11)
        self.assertEqual(backup_name("MyHost", when), "myhost_20240305070911")

    def test_create_copies_state(self):
        self.store.write("apt", "git\nvim\n")
        backup = self.catalog.create(when=datetime(2024, 1, 1, 12, 0, 0))
        self.assertEqual(backup.name, "testhost_20240101120000")
        self.assertEqual(backup.index, 1)
        self.assertEqual(backup.managers, REPRO_MANAGERS)
        with open(os.path.join(backup.path, "apt.txt"), encoding="utf8") as f:
            self.assertEqual(f.read(), "git\nvim\n")

    def test_create_existing_raises(self):
        when = datetime(2024, 1, 1, 12, 0, 0)
        self.catalog.create(when=when)
        with self.assertRaises(ReproExistsError):
            self.catalog.create(when=when)

    def test_list_empty(self):
        self.assertEqual(self.catalog.list(), [])

    def test_list_missing_root(self):
        os.rmdir(self.config.backup_dir)
        self.assertEqual(self.catalog.list(), [])

    def test_list_recency_order(self):
        names = self._create(3)
        backups = self.catalog.list()
        self.assertEqual([b.name for b in backups], list(reversed(names)))
        self.assertEqual([b.index for b in backups], [1, 2, 3])

    def test_list_ignores_hidden_and_files(self):
        self._create(1)
        os.mkdir(os.path.join(self.config.backup_dir, ".partial"))
        with open(os.path.join(self.config.backup_dir, "notes"), "w", encoding="utf8"):
            pass
        self.assertEqual(len(self.catalog.list()), 1)

    def test_latest(self):
        names = self._create(2)
        self.assertEqual(self.catalog.latest().name, names[-1])

    def test_latest_empty(self):
        with self.assertRaises(ReproNotFoundError):
            self.catalog.latest()

    def test_resolve_index_matches_name(self):
        self._create(4)
        backups = self.catalog.list()
        for n in range(1, len(backups) + 1):
            self.assertEqual(
                self.catalog.resolve(n), self.catalog.resolve(backups[n - 1].name)
            )
            self.assertEqual(self.catalog.resolve(str(n)), backups[n - 1])

    def test_resolve_index_out_of_range(self):
        self._create(2)
        for bad in (0, 3, "0", "3"):
            with self.assertRaises(ReproNotFoundError):
                self.catalog.resolve(bad)

    def test_resolve_non_ascii_digits(self):
        self._create(2)
        for bad in ("\u00b2", "\u0661", "1\u00b2"):
            with self.assertRaises(ReproNotFoundError):
                self.catalog.resolve(bad)

    def test_resolve_unknown_name(self):
        with self.assertRaises(ReproNotFoundError):
            self.catalog.resolve("nohost_20240101120000")

    def test_resolve_rejects_path_names(self):
        for bad in ("../state", "/etc", ".", "..", "a/b"):
            with self.assertRaises(ReproNotFoundError):
                self.catalog.resolve(bad)

    def test_restore_create_is_fixed_point(self):
        self.store.write("apt", "git\nvim\n")
        self.store.write("gnome", "[org/gnome/desktop]\nkey='value'\n")
        before = self._state_snapshot()
        backup = self.catalog.create()
        self.catalog.restore(backup.name)
        self.assertEqual(self._state_snapshot(), before)

    def test_restore_scenario(self):
        self.store.write("apt", "git\nvim\n")
        backup = self.catalog.create(when=datetime(2024, 1, 1, 12, 0, 0))
        self.store.write("apt", "git\nhtop\nvim\n")
        self.catalog.restore(backup.name)
        self.assertEqual(self.store.read_packages("apt"), ["git", "vim"])

    def test_restore_by_index(self):
        self.store.write("brew", "jq\n")
        self._create(1)
        self.store.write("brew", "")
        restored = self.catalog.restore(1)
        self.assertEqual(restored.index, 1)
        self.assertEqual(self.store.read("brew"), "jq\n")

    def test_restore_skips_missing_files(self):
        self.store.write("apt", "vim\n")
        backup = self.catalog.create()
        os.unlink(os.path.join(backup.path, "cargo.txt"))
        self.store.write("cargo", "ripgrep\n")
        self.store.write("apt", "")
        self.catalog.restore(backup.name)
        self.assertEqual(self.store.read("cargo"), "ripgrep\n")
        self.assertEqual(self.store.read("apt"), "vim\n")

    def test_restore_empty_catalog(self):
        with self.assertRaises(ReproNotFoundError):
            self.catalog.restore("1")

    def test_prune_keeps_newest(self):
        for keep in (0, 2, 5):
            names = self._create(5, offset=keep * 10)
            removed = self.catalog.prune(keep)
            remaining = [b.name for b in self.catalog.list()]
            self.assertEqual(len(remaining), min(keep, 5))
            self.assertEqual(remaining, list(reversed(names))[:keep])
            self.assertEqual(removed, names[: 5 - keep])
            self.catalog.prune(0)

    def test_prune_noop(self):
        self._create(3)
        self.assertEqual(self.catalog.prune(5), [])
        self.assertEqual(len(self.catalog.list()), 3)

    def test_prune_negative(self):
        with self.assertRaises(ReproArgumentError):
            self.catalog.prune(-1)

    def test_prune_empty(self):
        self.assertEqual(self.catalog.prune(), [])
