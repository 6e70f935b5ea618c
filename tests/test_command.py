# Copyright The repro Authors
#
# tests/test_command.py - CLI layer tests
#
# This file is part of the repro project.
#
# SPDX-License-Identifier: Apache-2.0
from contextlib import redirect_stdout
from unittest.mock import patch
from io import StringIO
import unittest
import logging
import json
import os

import repro
import repro.command as command
from repro import Backup, ManagerDiff, SearchResult, SearchStatus
from repro.manager import Manager, ReproConfig

from tests import MockArgs, TempConfigMixin, mock_plugin

log = logging.getLogger()


def _plugins():
    return [
        mock_plugin("apt", packages=("git", "vim"), index={"vim": "2:9.1"}),
        mock_plugin("brew", packages=("jq",)),
        mock_plugin("cargo", present=False),
        mock_plugin("flatpak"),
        mock_plugin("snap"),
        mock_plugin("gnome", packages=("[org/gnome/shell]",), searchable=False),
    ]


class CommandTestsSimple(unittest.TestCase):
    """
    Test command helpers that need no configuration
    """

    def setUp(self):
        log.debug("Preparing %s", self._testMethodName)

    def tearDown(self):
        log.debug("Tearing down %s", self._testMethodName)
        repro.set_debug_mask(0)

    def test_set_debug(self):
        command.set_debug("manager,backup")
        self.assertEqual(
            repro.get_debug_mask(), repro.REPRO_DEBUG_MANAGER | repro.REPRO_DEBUG_BACKUP
        )

    def test_set_debug_all(self):
        command.set_debug("all")
        self.assertEqual(repro.get_debug_mask(), repro.REPRO_DEBUG_ALL)

    def test_set_debug_none(self):
        command.set_debug(None)
        self.assertEqual(repro.get_debug_mask(), 0)

    def test_set_debug_bad(self):
        with self.assertRaises(ValueError):
            command.set_debug("manager,quux")

    def test_select_action(self):
        args = MockArgs()
        self.assertIsNone(command._select_action(args))
        args.backup = True
        self.assertEqual(command._select_action(args), command._backup_cmd)
        args = MockArgs()
        args.clean_backups = 0
        self.assertEqual(command._select_action(args), command._clean_backups_cmd)
        args = MockArgs()
        args.diff = ""
        self.assertEqual(command._select_action(args), command._diff_cmd)

    def test_parse_keep(self):
        self.assertIsNone(command._parse_keep(None))
        self.assertIsNone(command._parse_keep(""))
        self.assertEqual(command._parse_keep("0"), 0)
        self.assertEqual(command._parse_keep("3"), 3)
        self.assertEqual(command._parse_keep(2), 2)
        for bad in ("x", "-2", "²", -1):
            with self.assertRaises(repro.ReproUsageError):
                command._parse_keep(bad)

    def test_print_backups(self):
        backups = [
            Backup("box_20240102030405", "/b/box_20240102030405", 1704164645, ["apt"], 1),
            Backup("box_20240101000000", "/b/box_20240101000000", 1704067200, ["apt"], 2),
        ]
        out = StringIO()
        with redirect_stdout(out):
            command.print_backups(backups)
        self.assertEqual(
            out.getvalue(), "  [1] box_20240102030405\n  [2] box_20240101000000\n"
        )

    def test_print_search(self):
        results = [
            SearchResult("apt", "vim", SearchStatus.INSTALLED, "2:9.1"),
            SearchResult("brew", "vim", SearchStatus.NOT_FOUND),
            SearchResult("cargo", "vim", SearchStatus.UNAVAILABLE),
        ]
        out = StringIO()
        with redirect_stdout(out):
            command.print_search("vim", results)
        lines = out.getvalue().splitlines()
        self.assertEqual(lines[0], "Search results for 'vim':")
        self.assertEqual(lines[1], "-" * 32)
        self.assertEqual(lines[2], "APT: vim (2:9.1) [Installed]")
        self.assertEqual(lines[3], "Homebrew: vim [Not Found]")
        self.assertEqual(lines[4], "Cargo: manager not available")
        self.assertNotIn("No package found", out.getvalue())

    def test_print_search_not_found(self):
        results = [SearchResult("apt", "nosuch", SearchStatus.NOT_FOUND)]
        out = StringIO()
        with redirect_stdout(out):
            command.print_search("nosuch", results)
        self.assertIn("No package found in any manager: nosuch", out.getvalue())

    def test_print_search_json(self):
        results = [SearchResult("apt", "vim", SearchStatus.AVAILABLE, "2:9.1")]
        out = StringIO()
        with redirect_stdout(out):
            command.print_search("vim", results, json=True)
        self.assertEqual(
            json.loads(out.getvalue()),
            [{"Manager": "apt", "Package": "vim", "Status": "Available", "Version": "2:9.1"}],
        )

    def test_print_diff(self):
        backup = Backup("box_20240101000000", "/b/box_20240101000000", 1704067200, [])
        diffs = [ManagerDiff("apt", ["htop"], ["nano"])]
        out = StringIO()
        with redirect_stdout(out):
            command.print_diff(backup, diffs)
        self.assertEqual(out.getvalue(), "\nAPT CHANGES:\n-nano\n+htop\n")

    def test_print_diff_json(self):
        backup = Backup("box_20240101000000", "/b/box_20240101000000", 1704067200, [])
        diffs = [ManagerDiff("snap", [], ["core22"])]
        out = StringIO()
        with redirect_stdout(out):
            command.print_diff(backup, diffs, json=True)
        value = json.loads(out.getvalue())
        self.assertEqual(value["BackupName"], "box_20240101000000")
        self.assertEqual(
            value["Changes"], [{"Manager": "snap", "Added": [], "Removed": ["core22"]}]
        )


class CommandTests(TempConfigMixin, unittest.TestCase):
    """
    Test the command line interface with in-memory plugins
    """

    def setUp(self):
        log.debug("Preparing %s", self._testMethodName)
        self.setUpConfig()
        self._manager_patch = patch(
            "repro.command.Manager",
            side_effect=lambda cfg: Manager(cfg, plugin_classes=_plugins()),
        )
        self._manager_patch.start()

    def tearDown(self):
        log.debug("Tearing down %s", self._testMethodName)
        self._manager_patch.stop()
        repro.set_debug_mask(0)
        self.tearDownConfig()

    def get_main_args(self):
        """
        Return an argument array (in the form of sys.argv) reflecting the
        ``repro`` command with a temporary configuration directory.

        :returns: A list of command arguments.
        """
        return ["repro", "--config-dir", self.config.config_dir, "--color", "never"]

    def _main(self, *args):
        out = StringIO()
        with redirect_stdout(out):
            status = command.main(self.get_main_args() + list(args))
        return status, out.getvalue()

    def _manager(self):
        config = ReproConfig.from_file(self.config.config_dir)
        return Manager(config, plugin_classes=_plugins())

    def test_main_no_action(self):
        status, out = self._main()
        self.assertEqual(status, 0)
        self.assertIn("usage: repro", out)

    def test_main_version(self):
        with self.assertRaises(SystemExit) as cm:
            self._main("--version")
        self.assertEqual(cm.exception.code, 0)

    def test_main_bad_debug(self):
        status, out = self._main("--debug", "quux", "-d")
        self.assertEqual(status, 1)
        self.assertIn("Unknown debug option: quux", out)

    def test_main_bad_config(self):
        os.makedirs(self.config.config_dir, exist_ok=True)
        with open(
            os.path.join(self.config.config_dir, "repro.conf"), "w", encoding="utf8"
        ) as f:
            f.write("[Global]\nKeepBackups = many\n")
        status, _ = self._main("-d")
        self.assertEqual(status, 1)
        with open(self.config.log_file, encoding="utf8") as f:
            log_text = f.read()
        self.assertIn("ERROR: Command failed:", log_text)
        self.assertIn("repro.conf", log_text)

    def test_main_detect(self):
        status, _ = self._main("--detect")
        self.assertEqual(status, 0)
        self.assertEqual(self._manager().state.read("apt"), "git\nvim\n")
        self.assertTrue(os.path.exists(self.config.log_file))

    def test_main_detect_verbose_debug(self):
        status, _ = self._main("--verbose", "--debug", "all", "-d")
        self.assertEqual(status, 0)

    def test_main_list(self):
        self._main("-d")
        status, out = self._main("-l")
        self.assertEqual(status, 0)
        self.assertIn("\nAPT PACKAGES:\ngit\nvim\n", out)
        self.assertIn("\nBREW PACKAGES:\njq\n", out)
        self.assertNotIn("SNAP PACKAGES", out)

    def test_main_install(self):
        self._manager().state.write("brew", "jq\nwget\n")
        status, _ = self._main("-i")
        self.assertEqual(status, 0)

    def test_main_add(self):
        status, _ = self._main("-a", "apt:htop")
        self.assertEqual(status, 0)
        self.assertEqual(
            self._manager().state.read_packages("apt"), ["git", "htop", "vim"]
        )

    def test_main_add_bad_spec(self):
        status, _ = self._main("-a", "htop")
        self.assertEqual(status, 1)

    def test_main_add_unavailable(self):
        status, _ = self._main("-a", "cargo:ripgrep")
        self.assertEqual(status, 1)

    def test_main_backup_list_restore(self):
        self._main("-d")
        status, out = self._main("-b")
        self.assertEqual(status, 0)
        self.assertIn("Backup location:", out)

        status, out = self._main("--list-backups", "--json")
        self.assertEqual(status, 0)
        backups = json.loads(out)
        self.assertEqual(len(backups), 1)
        self.assertEqual(backups[0]["Index"], 1)
        self.assertIn("apt", backups[0]["Managers"])

        self._manager().state.write("apt", "emacs\n")
        status, _ = self._main("-r", "1")
        self.assertEqual(status, 0)
        self.assertEqual(self._manager().state.read("apt"), "git\nvim\n")

    def test_main_backup_json(self):
        status, out = self._main("-b", "--json")
        self.assertEqual(status, 0)
        self.assertEqual(json.loads(out)["Index"], 1)

    def test_main_restore_empty_catalog(self):
        status, _ = self._main("-r", "1")
        self.assertEqual(status, 1)

    def test_main_restore_debug_raises(self):
        with self.assertRaises(repro.ReproNotFoundError):
            self._main("--debug", "command", "-r", "1")

    def test_main_diff(self):
        self._main("-d")
        self._main("-b")
        self._manager().state.write("apt", "git\nhtop\n")
        status, out = self._main("--diff")
        self.assertEqual(status, 0)
        self.assertIn("\nAPT CHANGES:\n-vim\n+htop\n", out)

    def test_main_diff_no_backups(self):
        status, _ = self._main("--diff")
        self.assertEqual(status, 1)

    def test_main_clean_backups(self):
        self._main("-b")
        status, _ = self._main("--clean-backups")
        self.assertEqual(status, 0)
        self.assertEqual(len(self._manager().find_backups()), 1)
        status, _ = self._main("--clean-backups", "0")
        self.assertEqual(status, 0)
        self.assertEqual(self._manager().find_backups(), [])

    def test_main_clean_backups_bad_count(self):
        self._main("-b")
        for bad in ("many", "-1", "2.5"):
            status, _ = self._main("--clean-backups", bad)
            self.assertEqual(status, 1)
        self.assertEqual(len(self._manager().find_backups()), 1)

    def test_main_search(self):
        status, out = self._main("-s", "vim")
        self.assertEqual(status, 0)
        self.assertIn("APT: vim (2:9.1) [Installed]", out)
        self.assertIn("Cargo: manager not available", out)

    def test_main_search_json(self):
        status, out = self._main("--json", "-s", "vim")
        self.assertEqual(status, 0)
        results = json.loads(out)
        self.assertEqual(
            [r["Manager"] for r in results], ["apt", "brew", "cargo", "flatpak", "snap"]
        )

    def test_main_monitor(self):
        with patch("repro.command.enable_monitor") as mock_enable:
            mock_enable.return_value.calendarspec.original = "daily"
            mock_enable.return_value.status = "running"
            with self.assertLogs("repro.command", level="INFO") as logs:
                status, _ = self._main("-m", "daily")
        self.assertEqual(status, 0)
        self.assertIn("runs daily, timer running", "\n".join(logs.output))
        self.assertEqual(mock_enable.call_args[0][1], "daily")

    def test_main_monitor_default(self):
        with patch("repro.command.enable_monitor") as mock_enable:
            mock_enable.return_value.calendarspec.original = "hourly"
            status, _ = self._main("-m")
        self.assertEqual(status, 0)
        self.assertIsNone(mock_enable.call_args[0][1])

    def test_main_unmonitor(self):
        with patch("repro.command.disable_monitor") as mock_disable:
            status, _ = self._main("--unmonitor")
        self.assertEqual(status, 0)
        mock_disable.assert_called_once()

    def test_main_exclusive_actions(self):
        with self.assertRaises(SystemExit):
            self._main("-d", "-l")
