# Copyright The repro Authors
#
# repro/__main__.py - Reproducible environment manager module entry point
#
# This file is part of the repro project.
#
# SPDX-License-Identifier: Apache-2.0
import sys

from repro.command import main

if __name__ == "__main__":
    sys.exit(main(["repro"] + sys.argv[1:]))
