# Copyright The repro Authors
#
# repro/manager/_calendar.py - Reproducible environment manager CalendarSpec
#
# This file is part of the repro project.
#
# SPDX-License-Identifier: Apache-2.0
"""
OnCalendar expression validation for the monitor timer.
"""
from typing import Dict
from subprocess import run
import logging

from repro import REPRO_SUBSYSTEM_MONITOR, ReproCalloutError

_log = logging.getLogger(__name__)


def _log_debug_monitor(msg, *args, **kwargs):
    """A wrapper for monitor subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": REPRO_SUBSYSTEM_MONITOR}, **kwargs)


_ANALYZE_CALENDAR_CMD = ["systemd-analyze", "calendar"]

#: Exit status of systemd-analyze for an unparseable expression.
_ANALYZE_INVALID = 1

#: Map systemd-analyze output labels to ``CalendarSpec`` attributes.
_ANALYZE_FIELDS = {
    "Normalized form": "normalized",
    "Next elapse": "next_elapse",
}

_NEVER = "never"


def _parse_analyze_output(output: str) -> Dict[str, str]:
    """
    Parse the ``Label: value`` lines printed by ``systemd-analyze calendar``
    into a dictionary keyed by ``CalendarSpec`` attribute name. Only the
    first expression in the output is considered.
    """
    values = {}
    for line in output.splitlines():
        label, sep, value = line.partition(":")
        if not sep:
            continue
        attr = _ANALYZE_FIELDS.get(label.strip())
        if attr and attr not in values:
            values[attr] = value.strip()
    return values


class CalendarSpec:
    """
    A systemd OnCalendar expression checked with ``systemd-analyze``.
    """

    def __init__(self, calendarspec: str):
        """
        Validate ``calendarspec`` and record its normalized form and next
        elapse time.

        :param calendarspec: An OnCalendar expression, e.g. "hourly".
        :raises: ``ValueError`` if systemd rejects the expression, or
                 ``ReproCalloutError`` if ``systemd-analyze`` fails.
        """
        self._calendarspec = calendarspec
        self.normalized = None
        self.next_elapse = None

        cmd_args = _ANALYZE_CALENDAR_CMD + [calendarspec]
        result = run(cmd_args, encoding="utf8", capture_output=True, check=False)
        if result.returncode == _ANALYZE_INVALID:
            raise ValueError(f"Invalid CalendarSpec expression: {calendarspec}")
        if result.returncode != 0:
            raise ReproCalloutError(cmd_args, result.returncode, result.stderr.strip())

        for attr, value in _parse_analyze_output(result.stdout).items():
            setattr(self, attr, value)
        _log_debug_monitor(
            "CalendarSpec '%s' normalized to '%s'", calendarspec, self.normalized
        )

    @property
    def occurs(self):
        """
        ``True`` if the expression elapses again in the future.
        """
        return self.next_elapse not in (None, _NEVER)

    @property
    def original(self):
        """
        The expression as given by the caller.
        """
        return self._calendarspec

    def __str__(self):
        return self._calendarspec

    def __repr__(self):
        return f'CalendarSpec("{self._calendarspec}")'


__all__ = ["CalendarSpec"]
