# Copyright The repro Authors
#
# repro/term.py - Reproducible environment manager terminal control
#
# This file is part of the repro project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Terminal control sequences for colored command output.
"""
from typing import Dict, Mapping, Optional, TextIO
import curses
import sys
import os

#: Valid values for the color mode.
COLOR_MODES = ["auto", "always", "never"]

#: Text attributes and their terminfo capability names.
_MODE_CAPABILITIES = {
    "BOLD": "bold",
    "DIM": "dim",
    "NORMAL": "sgr0",
}

#: Foreground colors in ANSI color number order.
_COLORS = ["BLACK", "RED", "GREEN", "YELLOW", "BLUE", "MAGENTA", "CYAN", "WHITE"]

_ANSI_MODES = {
    "BOLD": "\033[1m",
    "DIM": "\033[2m",
    "NORMAL": "\033[0m",
}


def color_mode(color: str, environ: Optional[Mapping[str, str]] = None) -> str:
    """
    Resolve the effective color mode for ``color``, taking the ``NO_COLOR``
    and ``TERM`` environment variables into account.

    :param color: The requested mode: "auto", "always" or "never".
    :param environ: The environment to consult (default ``os.environ``).
    :returns: The effective color mode.
    :rtype: ``str``
    """
    if color not in COLOR_MODES:
        raise ValueError(f"Invalid color mode: {color}")
    environ = os.environ if environ is None else environ
    if color == "auto":
        if "NO_COLOR" in environ or environ.get("TERM", "") == "dumb":
            return "never"
    return color


class TermControl:
    """
    Control sequences for the terminal attached to an output stream.

    Each upper case attribute holds the sequence that switches the stream
    to that mode or color. Attributes are empty strings when the stream is
    not a terminal, color is disabled or the terminal has no such
    capability, so output can always be built by concatenation:

        >>> term = TermControl(color="never")
        >>> term.GREEN + "APT:" + term.NORMAL
        'APT:'

    Sequences are read from terminfo with ``curses``; with ``color="always"``
    plain ANSI sequences are used when no terminfo entry is available.
    """

    BOLD: str = ""  #: Bold text
    DIM: str = ""  #: Half-bright text
    NORMAL: str = ""  #: Reset all attributes

    BLACK: str = ""  #: Black text
    RED: str = ""  #: Red text
    GREEN: str = ""  #: Green text
    YELLOW: str = ""  #: Yellow text
    BLUE: str = ""  #: Blue text
    MAGENTA: str = ""  #: Magenta text
    CYAN: str = ""  #: Cyan text
    WHITE: str = ""  #: White text

    def __init__(self, term_stream: Optional[TextIO] = None, color: str = "auto"):
        """
        Probe ``term_stream`` and set the control attributes.

        :param term_stream: The stream output is written to (default
                            ``sys.stdout``).
        :param color: The color mode: "auto", "always" or "never".
        """
        self.term_stream = term_stream if term_stream is not None else sys.stdout
        self.color = color_mode(color)

        if self.color == "never":
            return

        if self.color == "auto":
            isatty = getattr(self.term_stream, "isatty", None)
            if isatty is None or not isatty():
                return

        try:
            curses.setupterm()
        # curses.error is only usable once setupterm() has been called.
        except BaseException as err:  # pylint: disable=broad-exception-caught
            if isinstance(err, (KeyboardInterrupt, SystemExit)):
                raise
            if self.color == "always":
                self._set_controls(self._ansi_controls())
            return

        self._set_controls(self._terminfo_controls())

    def _set_controls(self, controls: Dict[str, str]):
        for attr, value in controls.items():
            setattr(self, attr, value)

    @staticmethod
    def _ansi_controls() -> Dict[str, str]:
        controls = dict(_ANSI_MODES)
        for number, name in enumerate(_COLORS):
            controls[name] = f"\033[0;3{number}m"
        return controls

    @staticmethod
    def _capability(name: str) -> str:
        value = curses.tigetstr(name)
        if not value:
            return ""
        # Drop terminfo padding such as "$<2>".
        return value.decode("utf8").split("$<", 1)[0]

    def _terminfo_controls(self) -> Dict[str, str]:
        controls = {
            attr: self._capability(cap) for attr, cap in _MODE_CAPABILITIES.items()
        }
        setaf = self._capability("setaf")
        if setaf:
            for number, name in enumerate(_COLORS):
                controls[name] = curses.tparm(setaf.encode("utf8"), number).decode(
                    "utf8"
                )
        return controls


__all__ = [
    "COLOR_MODES",
    "color_mode",
    "TermControl",
]
