# Copyright The repro Authors
#
# tests/test_repro.py - repro package unit tests
#
# This file is part of the repro project.
#
# SPDX-License-Identifier: Apache-2.0
import unittest
import logging
import json
from io import StringIO

import repro
from repro import (
    Backup,
    ManagerDiff,
    SearchResult,
    SearchStatus,
)

log = logging.getLogger()


class ReproTestsSimple(unittest.TestCase):
    """Test repro module"""

    def setUp(self):
        log.debug("Preparing %s", self._testMethodName)

    def tearDown(self):
        log.debug("Tearing down (%s)", self._testMethodName)

    def test_set_debug_mask(self):
        repro.set_debug_mask(repro.REPRO_DEBUG_ALL)
        self.assertEqual(repro.get_debug_mask(), repro.REPRO_DEBUG_ALL)
        repro.set_debug_mask(0)

    def test_set_debug_mask_bad_mask(self):
        with self.assertRaises(ValueError):
            repro.set_debug_mask(repro.REPRO_DEBUG_ALL + 1)

    def test_SubsystemFilter(self):
        repro.set_debug_mask(0)
        sf = repro.SubsystemFilter("repro")
        self.assertEqual(sf.enabled_subsystems, set())
        repro.set_debug_mask(repro.REPRO_DEBUG_BACKUP | repro.REPRO_DEBUG_PLUGIN)
        sf2 = repro.SubsystemFilter("repro")
        self.assertEqual(
            sf2.enabled_subsystems,
            {repro.REPRO_SUBSYSTEM_BACKUP, repro.REPRO_SUBSYSTEM_PLUGIN},
        )
        repro.set_debug_mask(0)

    def test_SubsystemFilter_filter(self):
        sf = repro.SubsystemFilter("repro")
        sf.set_debug_subsystems([repro.REPRO_SUBSYSTEM_BACKUP])

        record = logging.LogRecord("repro", logging.DEBUG, __file__, 1, "m", None, None)
        self.assertTrue(sf.filter(record))

        record.subsystem = repro.REPRO_SUBSYSTEM_BACKUP
        self.assertTrue(sf.filter(record))

        record.subsystem = repro.REPRO_SUBSYSTEM_PLUGIN
        self.assertFalse(sf.filter(record))

        info = logging.LogRecord("repro", logging.INFO, __file__, 1, "m", None, None)
        info.subsystem = repro.REPRO_SUBSYSTEM_PLUGIN
        self.assertTrue(sf.filter(info))

    def test_success_level_name(self):
        self.assertEqual(logging.getLevelName(repro.SUCCESS), "SUCCESS")

    def test_ConsoleHandler_decorates_levels(self):
        stream = StringIO()
        handler = repro.ConsoleHandler(stream=stream)
        logger = logging.getLogger("repro.test_console")
        logger.propagate = False
        logger.addHandler(handler)
        try:
            logger.setLevel(logging.DEBUG)
            repro.log_success(logger, "Backup created: %s", "host_1")
            logger.warning("careful")
            logger.error("broken")
        finally:
            logger.removeHandler(handler)
        lines = stream.getvalue().splitlines()
        self.assertEqual(lines[0], "✓ SUCCESS: Backup created: host_1")
        self.assertEqual(lines[1], "⚠ WARNING: careful")
        self.assertEqual(lines[2], "✗ ERROR: broken")

    def test_ReproCalloutError_message(self):
        err = repro.ReproCalloutError(["apt-get", "install", "-y", "vim"], 100, "E: nope")
        self.assertEqual(err.status, 100)
        self.assertEqual(err.cmd, ["apt-get", "install", "-y", "vim"])
        self.assertIn("apt-get install -y vim", str(err))
        self.assertIn("status=100", str(err))
        self.assertIn("E: nope", str(err))
        self.assertTrue(isinstance(err, repro.ReproError))

    def test_exception_hierarchy(self):
        for exc in (
            repro.ReproSystemError,
            repro.ReproUsageError,
            repro.ReproNotFoundError,
            repro.ReproExistsError,
            repro.ReproArgumentError,
            repro.ReproPluginError,
            repro.ReproTimerError,
        ):
            self.assertTrue(issubclass(exc, repro.ReproError))


class PackageSetTests(unittest.TestCase):
    """Test package set helpers"""

    def setUp(self):
        log.debug("Preparing %s", self._testMethodName)

    def test_normalize_packages(self):
        names = ["vim", " git", "vim", "", "  ", "curl\n", "git"]
        self.assertEqual(repro.normalize_packages(names), ["curl", "git", "vim"])

    def test_normalize_packages_empty(self):
        self.assertEqual(repro.normalize_packages([]), [])

    def test_parse_package_set(self):
        self.assertEqual(repro.parse_package_set("vim\ngit\n\nvim\n"), ["git", "vim"])

    def test_format_package_set(self):
        self.assertEqual(repro.format_package_set(["vim", "git"]), "git\nvim\n")

    def test_format_package_set_empty(self):
        self.assertEqual(repro.format_package_set([]), "")
        self.assertEqual(repro.format_package_set(["", " "]), "")

    def test_format_is_stable(self):
        text = repro.format_package_set(["b", "a", "c"])
        self.assertEqual(repro.format_package_set(repro.parse_package_set(text)), text)

    def test_is_valid_backup_name(self):
        self.assertTrue(repro.is_valid_backup_name("host_20240101120000"))
        self.assertTrue(repro.is_valid_backup_name("my-host.local_1"))
        self.assertFalse(repro.is_valid_backup_name(""))
        self.assertFalse(repro.is_valid_backup_name(".hidden"))
        self.assertFalse(repro.is_valid_backup_name(".."))
        self.assertFalse(repro.is_valid_backup_name("a/b"))
        self.assertFalse(repro.is_valid_backup_name("has space"))


class ValueTypeTests(unittest.TestCase):
    """Test Backup, SearchResult and ManagerDiff"""

    def setUp(self):
        log.debug("Preparing %s", self._testMethodName)

    def _backup(self):
        return Backup(
            "myhost_20240101120000",
            "/tmp/backups/myhost_20240101120000",
            1704110400.0,
            ["apt", "gnome"],
            index=1,
        )

    def test_Backup_properties(self):
        backup = self._backup()
        self.assertEqual(backup.name, "myhost_20240101120000")
        self.assertEqual(backup.hostname, "myhost")
        self.assertEqual(backup.index, 1)
        self.assertEqual(backup.managers, ["apt", "gnome"])
        self.assertEqual(backup.time, "2024-01-01 12:00:00")

    def test_Backup_hostname_with_separator(self):
        backup = Backup("my_host_20240101120000", "/x", 0, [])
        self.assertEqual(backup.hostname, "my_host")

    def test_Backup_str(self):
        text = str(self._backup())
        self.assertIn("BackupName:  myhost_20240101120000", text)
        self.assertIn("Managers:    apt, gnome", text)

    def test_Backup_json(self):
        value = json.loads(self._backup().json())
        self.assertEqual(value[repro.BACKUP_NAME], "myhost_20240101120000")
        self.assertEqual(value[repro.BACKUP_INDEX], 1)
        self.assertEqual(value[repro.BACKUP_MANAGERS], ["apt", "gnome"])

    def test_Backup_eq(self):
        self.assertEqual(self._backup(), self._backup())
        self.assertEqual(len({self._backup(), self._backup()}), 1)
        self.assertNotEqual(self._backup(), Backup("other_1", "/x", 0, []))

    def test_SearchResult_str(self):
        installed = SearchResult("apt", "vim", SearchStatus.INSTALLED, "2:9.1")
        self.assertEqual(str(installed), "APT: vim (2:9.1) [Installed]")
        available = SearchResult("brew", "vim", SearchStatus.AVAILABLE)
        self.assertEqual(str(available), "Homebrew: vim [Available]")
        missing = SearchResult("cargo", "vim", SearchStatus.NOT_FOUND)
        self.assertEqual(str(missing), "Cargo: vim [Not Found]")
        absent = SearchResult("snap", "vim", SearchStatus.UNAVAILABLE)
        self.assertEqual(str(absent), "Snap: manager not available")

    def test_SearchResult_found(self):
        self.assertTrue(SearchResult("apt", "x", SearchStatus.INSTALLED).found)
        self.assertTrue(SearchResult("apt", "x", SearchStatus.AVAILABLE).found)
        self.assertFalse(SearchResult("apt", "x", SearchStatus.NOT_FOUND).found)
        self.assertFalse(SearchResult("apt", "x", SearchStatus.UNAVAILABLE).found)

    def test_SearchResult_to_dict(self):
        result = SearchResult("flatpak", "gimp", SearchStatus.AVAILABLE, "2.10")
        self.assertEqual(
            result.to_dict(),
            {
                repro.SEARCH_MANAGER: "flatpak",
                repro.SEARCH_PACKAGE: "gimp",
                repro.SEARCH_STATUS: "Available",
                repro.SEARCH_VERSION: "2.10",
            },
        )

    def test_ManagerDiff_str(self):
        diff = ManagerDiff("apt", ["htop"], ["nano"])
        self.assertEqual(str(diff), "-nano\n+htop")
        self.assertTrue(diff.has_changes)

    def test_ManagerDiff_no_changes(self):
        diff = ManagerDiff("apt", [], [])
        self.assertEqual(str(diff), "")
        self.assertFalse(diff.has_changes)
