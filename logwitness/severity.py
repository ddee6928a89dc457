"""Normalised severity classes shared by every capture backend.

Backends disagree about how many levels exist below ``INFO`` and what they are
called, so assertions are expressed against a deliberately small scale of five
ordered classes. Each backend supplies a :class:`ThresholdTable` describing
where its native levels cross into the next class.

String level parameters accept case-insensitive names: "FINEST", "FINE",
"INFO", "WARNING" and "SEVERE", plus the aliases "TRACE", "DEBUG", "WARN",
"ERROR" and "CRITICAL".
"""

from __future__ import annotations

import dataclasses
import enum
import functools
import logging
import typing as typ

TRACE_LEVEL_NUM = 5
logging.addLevelName(TRACE_LEVEL_NUM, "TRACE")


@functools.total_ordering
class Severity(enum.Enum):
    """Ordered severity classes, lowest first."""

    FINEST = 0
    FINE = 1
    INFO = 2
    WARNING = 3
    SEVERE = 4

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.value < other.value


_SEVERITY_NAMES: typ.Final[dict[str, Severity]] = {
    "FINEST": Severity.FINEST,
    "TRACE": Severity.FINEST,
    "FINE": Severity.FINE,
    "DEBUG": Severity.FINE,
    "INFO": Severity.INFO,
    "WARN": Severity.WARNING,
    "WARNING": Severity.WARNING,
    "SEVERE": Severity.SEVERE,
    "ERROR": Severity.SEVERE,
    "CRITICAL": Severity.SEVERE,
}


def parse_severity(value: Severity | str) -> Severity:
    """Return the :class:`Severity` named by ``value``.

    Raises
    ------
    ValueError
        If ``value`` is a string that does not name a severity class.
    TypeError
        If ``value`` is neither a string nor a :class:`Severity`.

    """
    if isinstance(value, Severity):
        return value
    if not isinstance(value, str):
        msg = f"severity must be a Severity or a level name, got {type(value).__name__}"
        raise TypeError(msg)
    try:
        return _SEVERITY_NAMES[value.strip().upper()]
    except KeyError:
        msg = f"unknown severity {value!r}"
        raise ValueError(msg) from None


@dataclasses.dataclass(frozen=True, slots=True)
class ThresholdTable:
    """Backend breakpoints separating the five severity classes.

    Each attribute is the lowest native level value belonging to that class.
    Values below ``fine`` classify as :attr:`Severity.FINEST`. ``floor`` is the
    native value used when a backend is asked to emit ``FINEST`` logs.

    Examples
    --------
    >>> table = ThresholdTable(fine=10, info=20, warning=30, severe=40, floor=5)
    >>> table.classify(25)
    <Severity.INFO: 2>

    """

    fine: float
    info: float
    warning: float
    severe: float
    floor: float

    def __post_init__(self) -> None:
        ordered = (self.floor, self.fine, self.info, self.warning, self.severe)
        if any(a >= b for a, b in zip(ordered, ordered[1:], strict=False)):
            msg = f"threshold breakpoints must be strictly increasing: {ordered!r}"
            raise ValueError(msg)

    def classify(self, native_level: float) -> Severity:
        """Map a native level value onto the shared severity scale."""
        if native_level >= self.severe:
            return Severity.SEVERE
        if native_level >= self.warning:
            return Severity.WARNING
        if native_level >= self.info:
            return Severity.INFO
        if native_level >= self.fine:
            return Severity.FINE
        return Severity.FINEST

    def native_level(self, severity: Severity) -> float:
        """Return the lowest native level value classified as ``severity``."""
        return {
            Severity.FINEST: self.floor,
            Severity.FINE: self.fine,
            Severity.INFO: self.info,
            Severity.WARNING: self.warning,
            Severity.SEVERE: self.severe,
        }[severity]


# Standard library ``logging``: DEBUG=10, INFO=20, WARNING=30, ERROR=40.
STDLIB_THRESHOLDS: typ.Final = ThresholdTable(
    fine=logging.DEBUG,
    info=logging.INFO,
    warning=logging.WARNING,
    severe=logging.ERROR,
    floor=TRACE_LEVEL_NUM,
)

# Record-dispatching backends using the 0-5 ordinal scale
# (TRACE, DEBUG, INFO, WARN, ERROR, CRITICAL).
RECORD_THRESHOLDS: typ.Final = ThresholdTable(
    fine=1, info=2, warning=3, severe=4, floor=0
)

__all__ = [
    "RECORD_THRESHOLDS",
    "STDLIB_THRESHOLDS",
    "TRACE_LEVEL_NUM",
    "Severity",
    "ThresholdTable",
    "parse_severity",
]
