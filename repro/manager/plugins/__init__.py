# Copyright The repro Authors
#
# repro/manager/plugins/__init__.py - Reproducible environment manager plugins
#
# This file is part of the repro project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Package manager plugin interface.
"""
from ._plugin import *  # noqa: F401, F403
from ._plugin import __all__  # noqa: F401
