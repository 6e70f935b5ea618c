# Copyright The repro Authors
#
# repro/command.py - Reproducible environment manager command interface
#
# This file is part of the repro project.
#
# SPDX-License-Identifier: Apache-2.0
"""The ``repro.command`` module provides both the repro command line
interface infrastructure, and a simple procedural interface to the
``repro`` library modules.

The procedural interface is used by the ``repro`` command line tool,
and may be used by application programs, or interactively in the
Python shell by users who do not require all the features present
in the repro object API.
"""
from argparse import ArgumentParser, RawDescriptionHelpFormatter
from typing import List, Optional
from os.path import basename
from json import dumps
import logging
import sys
import os

from repro import (
    REPRO_DEBUG_MANAGER,
    REPRO_DEBUG_COMMAND,
    REPRO_DEBUG_BACKUP,
    REPRO_DEBUG_PLUGIN,
    REPRO_DEBUG_MONITOR,
    REPRO_DEBUG_ALL,
    REPRO_SUBSYSTEM_COMMAND,
    ConsoleHandler,
    ReproUsageError,
    SearchStatus,
    SubsystemFilter,
    log_success,
    set_debug_mask,
    __version__,
)
from repro.manager import Manager, ReproConfig, default_config_dir
from repro.term import COLOR_MODES, TermControl

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_command(msg, *args, **kwargs):
    """A wrapper for command subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": REPRO_SUBSYSTEM_COMMAND}, **kwargs)


_DEFAULT_LOG_LEVEL = logging.INFO
_CONSOLE_HANDLER = None
_FILE_HANDLER = None

_LOG_FILE_FORMAT = "%(asctime)s - %(levelname)s: %(message)s"
_LOG_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"

_SEPARATOR = "-" * 32

#: Color attribute used for each search outcome.
_SEARCH_COLORS = {
    SearchStatus.UNAVAILABLE: "DIM",
    SearchStatus.NOT_FOUND: "YELLOW",
    SearchStatus.AVAILABLE: "CYAN",
    SearchStatus.INSTALLED: "GREEN",
}

_EPILOG = """\
examples:
  # Create new backup
  repro -b

  # Install package from specific manager
  repro --add apt:neovim

  # Restore backup #2
  repro -r 2

  # Compare with latest backup
  repro --diff
"""


def _heading(term, text):
    return f"{term.BOLD}{term.MAGENTA}{text}{term.NORMAL}"


#
# Procedural interface
#


def detect_state(manager: Manager) -> List[str]:
    """
    Refresh the state file of every available manager.

    :param manager: The manager context to use.
    :returns: The list of managers whose state was written.
    """
    return manager.detect_all()


def install_state(manager: Manager):
    """
    Install every recorded package with its manager and apply the saved
    GNOME settings.

    :param manager: The manager context to use.
    :returns: A list of ``(manager, ok)`` tuples.
    """
    return manager.install_all()


def add_package(manager: Manager, spec: str):
    """
    Install the package named by ``spec`` (``<manager>:<package>``) and
    refresh that manager's state.
    """
    return manager.add_package(spec)


def create_backup(manager: Manager):
    """
    Create a new backup of the current state.
    """
    return manager.create_backup()


def list_backups(manager: Manager):
    """
    Return the recency ordered list of backups.
    """
    return manager.find_backups()


def restore_backup(manager: Manager, identifier):
    """
    Restore the state files from a backup.

    :param manager: The manager context to use.
    :param identifier: A 1-based backup index or a backup name.
    """
    return manager.restore_backup(identifier)


def clean_backups(manager: Manager, keep: Optional[int] = None) -> List[str]:
    """
    Remove all but the ``keep`` most recent backups.

    :param manager: The manager context to use.
    :param keep: The number of backups to keep (default from configuration).
    :returns: The names of the removed backups.
    """
    return manager.clean_backups(keep)


def diff_state(manager: Manager, identifier=None):
    """
    Compare the current state with a backup (default the most recent).

    :returns: A ``(backup, diffs)`` tuple.
    """
    return manager.diff(identifier)


def search_package(manager: Manager, name: str):
    """
    Look up ``name`` with every package manager.
    """
    return manager.search(name)


def enable_monitor(manager: Manager, calendarspec: Optional[str] = None):
    """
    Enable periodic state detection with a systemd user timer.
    """
    return manager.enable_monitor(calendarspec)


def disable_monitor(manager: Manager):
    """
    Disable periodic state detection.
    """
    return manager.disable_monitor()


def print_state(manager: Manager, term=None):
    """
    Print the recorded package set of each package manager.
    """
    term = term or TermControl(color="never")
    for name, packages in manager.list_state().items():
        print(f"\n{_heading(term, name.upper() + ' PACKAGES:')}")
        for package in packages:
            print(package)


def print_backups(backups, term=None, json=False):
    """
    Print a list of backups with their selection index.
    """
    if json:
        print(dumps([backup.to_dict() for backup in backups], indent=4))
        return

    term = term or TermControl(color="never")
    for backup in backups:
        print(f"  {term.BOLD}[{backup.index}]{term.NORMAL} {backup.name}")


def print_search(name, results, term=None, json=False):
    """
    Print per-manager search results for ``name``.
    """
    if json:
        print(dumps([result.to_dict() for result in results], indent=4))
        return

    term = term or TermControl(color="never")
    print(f"{term.BOLD}Search results for '{name}':{term.NORMAL}")
    print(f"{term.BOLD}{_SEPARATOR}{term.NORMAL}")
    for result in results:
        color = getattr(term, _SEARCH_COLORS[result.status], "")
        print(f"{color}{result}{term.NORMAL}")
    if not any(result.found for result in results):
        print(f"{term.RED}No package found in any manager:{term.NORMAL} {name}")
    print(f"{term.BOLD}{_SEPARATOR}{term.NORMAL}")


def print_diff(backup, diffs, term=None, json=False):
    """
    Print the changes in each manager's state since ``backup``.
    """
    if json:
        value = {
            "BackupName": backup.name,
            "Changes": [diff.to_dict() for diff in diffs],
        }
        print(dumps(value, indent=4))
        return

    term = term or TermControl(color="never")
    for diff in diffs:
        print(f"\n{_heading(term, diff.manager.upper() + ' CHANGES:')}")
        for line in diff.removed:
            print(f"{term.RED}-{line}{term.NORMAL}")
        for line in diff.added:
            print(f"{term.GREEN}+{line}{term.NORMAL}")


#
# Command handlers
#


def _term(cmd_args):
    return TermControl(color=cmd_args.config.color)


def _detect_cmd(cmd_args):
    """
    Detect installed packages and settings.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    manager = Manager(cmd_args.config)
    _log_info("Detecting installed packages and settings...")
    detected = detect_state(manager)
    _log_debug_command("Detected state for: %s", ", ".join(detected))
    log_success(_log, "Detection completed")
    return 0


def _install_cmd(cmd_args):
    """
    Install packages from the current state.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    manager = Manager(cmd_args.config)
    _log_info("Beginning system provisioning...")
    results = install_state(manager)
    failed = [name for name, ok in results if not ok]
    if failed:
        _log_error("Provisioning failed for: %s", ", ".join(failed))
        return 1
    log_success(_log, "Provisioning completed")
    return 0


def _add_cmd(cmd_args):
    """
    Install a single package and update the state.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    manager = Manager(cmd_args.config)
    add_package(manager, cmd_args.add)
    return 0


def _backup_cmd(cmd_args):
    """
    Create a new backup.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    manager = Manager(cmd_args.config)
    backup = create_backup(manager)
    log_success(_log, "Backup created: %s", backup.name)
    if cmd_args.json:
        print(backup.json(pretty=True))
        return 0
    term = _term(cmd_args)
    print(f"{term.BOLD}Backup location:{term.NORMAL} {backup.path}")
    return 0


def _restore_cmd(cmd_args):
    """
    Restore a backup.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    manager = Manager(cmd_args.config)
    backup = manager.backups.resolve(cmd_args.restore)
    _log_info("Restoring backup: %s", backup.name)
    restore_backup(manager, backup.name)
    log_success(_log, "Backup restored")
    return 0


def _list_cmd(cmd_args):
    """
    List the current package state.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    manager = Manager(cmd_args.config)
    _log_info("Current package state:")
    print_state(manager, term=_term(cmd_args))
    return 0


def _search_cmd(cmd_args):
    """
    Search for a package with every manager.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    manager = Manager(cmd_args.config)
    results = search_package(manager, cmd_args.search)
    print_search(cmd_args.search, results, term=_term(cmd_args), json=cmd_args.json)
    return 0


def _monitor_cmd(cmd_args):
    """
    Enable automatic monitoring.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    manager = Manager(cmd_args.config)
    _log_info("Setting up package monitoring...")
    timer = enable_monitor(manager, cmd_args.monitor or None)
    log_success(
        _log,
        "Monitoring enabled (runs %s, timer %s)",
        timer.calendarspec.original,
        timer.status,
    )
    return 0


def _unmonitor_cmd(cmd_args):
    """
    Disable automatic monitoring.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    manager = Manager(cmd_args.config)
    disable_monitor(manager)
    log_success(_log, "Monitoring disabled")
    return 0


def _list_backups_cmd(cmd_args):
    """
    List available backups.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    manager = Manager(cmd_args.config)
    backups = list_backups(manager)
    if not cmd_args.json:
        _log_info("Available backups:")
    print_backups(backups, term=_term(cmd_args), json=cmd_args.json)
    return 0


def _parse_keep(value):
    """
    Convert the ``--clean-backups`` argument to a backup count. A bare
    ``--clean-backups`` (empty string) selects the configured default.
    """
    if value is None or value == "":
        return None
    if isinstance(value, int):
        keep = value
    else:
        text = value.strip()
        if not (text.isascii() and text.isdecimal()):
            raise ReproUsageError(f"Invalid backup count: '{value}'")
        keep = int(text)
    if keep < 0:
        raise ReproUsageError(f"Invalid backup count: '{value}'")
    return keep


def _clean_backups_cmd(cmd_args):
    """
    Remove old backups.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    manager = Manager(cmd_args.config)
    keep = _parse_keep(cmd_args.clean_backups)
    removed = clean_backups(manager, keep)
    if not removed:
        total = len(list_backups(manager))
        _log_info("No backups to clean (keeping all %d backups)", total)
        return 0
    for name in removed:
        _log_info("Removed backup: %s", name)
    log_success(_log, "Backup cleanup completed")
    return 0


def _diff_cmd(cmd_args):
    """
    Compare the current state with a backup.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    manager = Manager(cmd_args.config)
    backup, diffs = diff_state(manager, cmd_args.diff or None)
    if not cmd_args.json:
        _log_info("Comparing current state with: %s", backup.name)
    print_diff(backup, diffs, term=_term(cmd_args), json=cmd_args.json)
    return 0


#: Action argument destinations and their handlers, in precedence order.
_ACTIONS = [
    ("detect", _detect_cmd),
    ("install", _install_cmd),
    ("add", _add_cmd),
    ("backup", _backup_cmd),
    ("restore", _restore_cmd),
    ("list", _list_cmd),
    ("search", _search_cmd),
    ("monitor", _monitor_cmd),
    ("unmonitor", _unmonitor_cmd),
    ("list_backups", _list_backups_cmd),
    ("clean_backups", _clean_backups_cmd),
    ("diff", _diff_cmd),
]


def _select_action(cmd_args):
    for dest, func in _ACTIONS:
        value = getattr(cmd_args, dest)
        if value is not None and value is not False:
            return func
    return None


def setup_logging(cmd_args, config=None):
    """
    Set up repro logging.
    """
    # pylint: disable=global-statement
    global _CONSOLE_HANDLER, _FILE_HANDLER
    level = _DEFAULT_LOG_LEVEL
    if cmd_args.verbose:
        level = logging.DEBUG

    repro_log = logging.getLogger("repro")
    repro_log.setLevel(level)
    if repro_log.hasHandlers():
        repro_log.handlers.clear()

    # Subsystem log filtering
    _repro_subsystem_filter = SubsystemFilter("repro")

    # Main console handler
    color = config.color if config else "auto"
    _CONSOLE_HANDLER = ConsoleHandler(term=TermControl(sys.stderr, color=color))
    _CONSOLE_HANDLER.setLevel(level)
    _CONSOLE_HANDLER.addFilter(_repro_subsystem_filter)
    repro_log.addHandler(_CONSOLE_HANDLER)

    if config is None:
        return

    # Persistent log file
    try:
        os.makedirs(config.config_dir, exist_ok=True)
        _FILE_HANDLER = logging.FileHandler(config.log_file, encoding="utf8")
    except OSError as err:
        _log_warn("Cannot open log file %s: %s", config.log_file, err)
        return
    _FILE_HANDLER.setLevel(level)
    _FILE_HANDLER.setFormatter(
        logging.Formatter(_LOG_FILE_FORMAT, datefmt=_LOG_FILE_DATEFMT)
    )
    _FILE_HANDLER.addFilter(_repro_subsystem_filter)
    repro_log.addHandler(_FILE_HANDLER)


def shutdown_logging():
    """
    Shut down repro logging.
    """
    repro_log = logging.getLogger("repro")
    for handler in (_CONSOLE_HANDLER, _FILE_HANDLER):
        if handler is not None:
            handler.close()
            repro_log.removeHandler(handler)


def set_debug(debug_arg):
    """
    Set debugging mask from command line argument.
    """
    if not debug_arg:
        return

    mask_map = {
        "manager": REPRO_DEBUG_MANAGER,
        "command": REPRO_DEBUG_COMMAND,
        "backup": REPRO_DEBUG_BACKUP,
        "plugin": REPRO_DEBUG_PLUGIN,
        "monitor": REPRO_DEBUG_MONITOR,
        "all": REPRO_DEBUG_ALL,
    }

    mask = 0
    for name in debug_arg.split(","):
        if name not in mask_map:
            raise ValueError(f"Unknown debug option: {name}")
        mask |= mask_map[name]
    set_debug_mask(mask)


def _add_action_args(parser):
    actions = parser.add_argument_group("actions")
    group = actions.add_mutually_exclusive_group()
    group.add_argument(
        "-d",
        "--detect",
        action="store_true",
        help="Detect installed packages",
    )
    group.add_argument(
        "-i",
        "--install",
        action="store_true",
        help="Install packages from current state",
    )
    group.add_argument(
        "-a",
        "--add",
        metavar="MANAGER:PACKAGE",
        type=str,
        help="Install package and update state",
    )
    group.add_argument(
        "-b",
        "--backup",
        action="store_true",
        help="Create new backup",
    )
    group.add_argument(
        "-r",
        "--restore",
        metavar="ID",
        type=str,
        help="Restore specific backup by number or name",
    )
    group.add_argument(
        "-l",
        "--list",
        action="store_true",
        help="List current package state",
    )
    group.add_argument(
        "-s",
        "--search",
        metavar="PACKAGE",
        type=str,
        help="Search for package across managers",
    )
    group.add_argument(
        "-m",
        "--monitor",
        metavar="ONCALENDAR",
        nargs="?",
        const="",
        type=str,
        help="Enable automatic monitoring (default schedule: hourly)",
    )
    group.add_argument(
        "--unmonitor",
        action="store_true",
        help="Disable automatic monitoring",
    )
    group.add_argument(
        "--list-backups",
        action="store_true",
        help="List available backups",
    )
    group.add_argument(
        "--clean-backups",
        metavar="N",
        nargs="?",
        const="",
        type=str,
        help="Clean old backups (keep last N, default 5)",
    )
    group.add_argument(
        "--diff",
        metavar="ID",
        nargs="?",
        const="",
        type=str,
        help="Compare current state with backup (default latest)",
    )


def main(args):
    """
    Main entry point for repro.
    """
    parser = ArgumentParser(
        description="repro - Reproducible Environment Manager",
        prog=basename(args[0]),
        epilog=_EPILOG,
        formatter_class=RawDescriptionHelpFormatter,
    )

    _add_action_args(parser)

    # Global arguments
    parser.add_argument(
        "--config-dir",
        metavar="DIR",
        type=str,
        help="Configuration directory (default: $REPRO_CONFIG or ~/.config/repro)",
    )
    parser.add_argument(
        "--color",
        choices=COLOR_MODES,
        help="Control use of color in output",
    )
    parser.add_argument(
        "-j",
        "--json",
        action="store_true",
        help="Display output in JSON notation",
    )
    parser.add_argument(
        "--debug",
        metavar="DEBUGOPTS",
        type=str,
        help="A list of debug options to enable",
    )
    parser.add_argument("--verbose", help="Enable verbose output", action="store_true")
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        help="Report the version number of repro",
        version=f"repro {__version__}",
    )

    cmd_args = parser.parse_args(args[1:])

    status = 1

    try:
        set_debug(cmd_args.debug)
    except ValueError as err:
        print(err)
        parser.print_help()
        return status

    func = _select_action(cmd_args)
    if func is None:
        parser.print_help()
        return 0

    config_dir = cmd_args.config_dir or default_config_dir()
    try:
        cmd_args.config = ReproConfig.from_file(config_dir, color=cmd_args.color)
    except Exception as err:  # pylint: disable=broad-except
        # Log to the default location under the configuration root.
        setup_logging(cmd_args, ReproConfig(config_dir, color=cmd_args.color or "auto"))
        _log_error("Command failed: %s", err)
        shutdown_logging()
        return status

    setup_logging(cmd_args, cmd_args.config)

    _log_debug_command("Parsed %s", " ".join(args[1:]))

    if cmd_args.debug:
        status = func(cmd_args)
    else:
        try:
            status = func(cmd_args)
        # pylint: disable=broad-except
        except KeyboardInterrupt:  # pragma: no cover
            _log_info("Exiting on user cancel")
        except Exception as err:
            _log_error("Command failed: %s", err)

    shutdown_logging()
    return status


def run():
    """
    Console script entry point.
    """
    sys.exit(main(sys.argv))


# vim: set et ts=4 sw=4 :
