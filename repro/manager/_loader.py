# Copyright The repro Authors
#
# repro/manager/_loader.py - Reproducible environment manager plugin loader
#
# This file is part of the repro project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Discovery of the package manager plugins shipped in ``repro.manager.plugins``.
"""
from typing import List
import importlib
import inspect
import logging
import pkgutil

from repro import REPRO_MANAGERS, REPRO_SUBSYSTEM_PLUGIN
from repro.manager.plugins import Plugin
import repro.manager.plugins as plugin_pkg

_log = logging.getLogger(__name__)

_log_error = _log.error


def _log_debug_plugin(msg, *args, **kwargs):
    """A wrapper for plugin subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": REPRO_SUBSYSTEM_PLUGIN}, **kwargs)


def _plugin_modules():
    """
    Import and yield each public module of the plugins package. Modules
    that fail to import are logged and skipped.
    """
    prefix = f"{plugin_pkg.__name__}."
    for info in pkgutil.iter_modules(plugin_pkg.__path__, prefix):
        if info.ispkg or info.name.rsplit(".", 1)[1].startswith("_"):
            continue
        _log_debug_plugin("Importing plugin module %s", info.name)
        try:
            yield importlib.import_module(info.name)
        except ImportError as err:  # pragma: no cover
            _log_error("Error importing plugin %s: %s", info.name, err)


def _module_plugins(module, base_class) -> List[type]:
    exported = getattr(module, "__all__", None)
    classes = []
    for name, cls in inspect.getmembers(module, inspect.isclass):
        if exported is not None and name not in exported:
            continue
        if cls is base_class or not issubclass(cls, base_class):
            continue
        if cls.__module__ != module.__name__ or name.startswith("_"):
            continue
        classes.append(cls)
    return classes


def _manager_order(cls):
    try:
        return (REPRO_MANAGERS.index(cls.name), cls.name)
    except ValueError:  # pragma: no cover
        return (len(REPRO_MANAGERS), cls.name)


def load_plugins(base_class=Plugin) -> List[type]:
    """
    Return the plugin classes defined in ``repro.manager.plugins`` that
    subclass ``base_class``, in the order the managers are presented.

    :param base_class: The plugin base class to match.
    :returns: A list of plugin classes.
    """
    found = []
    for module in _plugin_modules():
        found.extend(_module_plugins(module, base_class))
    return sorted(found, key=_manager_order)


__all__ = ["load_plugins"]
