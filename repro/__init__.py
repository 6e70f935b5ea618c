# Copyright The repro Authors
#
# repro/__init__.py - Reproducible environment manager package initialisation
#
# This file is part of the repro project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Repro top-level package.
"""
from ._repro import *  # noqa: F401, F403
from ._repro import __all__  # noqa: F401

__version__ = "3.0.0"
