"""Composable, self-describing predicates over captured records.

A :class:`LogPredicate` pairs a test with a description so failures can say
what was being checked::

    >>> p = level_at_least("WARNING") & ~message_containing("retrying")
    >>> p.description
    "(level >= WARNING and not (message contains 'retrying'))"

"""

from __future__ import annotations

import collections.abc as cabc
import dataclasses
import re
import typing as typ

from .severity import Severity, parse_severity

if typ.TYPE_CHECKING:
    from .record import CaptureRecord


@dataclasses.dataclass(frozen=True, slots=True)
class LogPredicate:
    """A described boolean test on a :class:`~logwitness.record.CaptureRecord`."""

    description: str
    test: cabc.Callable[[CaptureRecord], bool]

    def __call__(self, record: CaptureRecord) -> bool:
        return bool(self.test(record))

    def __and__(self, other: LogPredicate) -> LogPredicate:
        return LogPredicate(
            f"({self.description} and {other.description})",
            lambda r: self(r) and other(r),
        )

    def __or__(self, other: LogPredicate) -> LogPredicate:
        return LogPredicate(
            f"({self.description} or {other.description})",
            lambda r: self(r) or other(r),
        )

    def __invert__(self) -> LogPredicate:
        return LogPredicate(f"not ({self.description})", lambda r: not self(r))

    def __str__(self) -> str:
        return self.description


def as_predicate(value: LogPredicate | cabc.Callable[[CaptureRecord], bool]) -> LogPredicate:
    """Wrap a plain callable as a :class:`LogPredicate`."""
    if isinstance(value, LogPredicate):
        return value
    if not callable(value):
        msg = f"expected a predicate, got {type(value).__name__}"
        raise TypeError(msg)
    name = getattr(value, "__name__", repr(value))
    return LogPredicate(f"satisfies {name}", value)


def _contains_in_order(message: str, fragments: cabc.Sequence[str]) -> bool:
    start = 0
    for fragment in fragments:
        index = message.find(fragment, start)
        if index == -1:
            return False
        start = index + len(fragment)
    return True


def message_containing(*fragments: str) -> LogPredicate:
    """Match messages containing every fragment, in the given order.

    Raises
    ------
    ValueError
        If no fragments are given or any fragment is empty.

    """
    if not fragments or not all(fragments):
        msg = "at least one non-empty fragment is required"
        raise ValueError(msg)
    shown = ", ".join(repr(f) for f in fragments)
    return LogPredicate(
        f"message contains {shown}",
        lambda r: _contains_in_order(r.message, fragments),
    )


def message_matching(pattern: str | re.Pattern[str]) -> LogPredicate:
    """Match messages in which ``pattern`` is found anywhere."""
    regex = re.compile(pattern)
    return LogPredicate(
        f"message matches /{regex.pattern}/",
        lambda r: regex.search(r.message) is not None,
    )


def level(value: Severity | str) -> LogPredicate:
    severity = parse_severity(value)
    return LogPredicate(f"level == {severity.name}", lambda r: r.severity is severity)


def level_at_least(value: Severity | str) -> LogPredicate:
    severity = parse_severity(value)
    return LogPredicate(f"level >= {severity.name}", lambda r: r.severity >= severity)


def level_at_most(value: Severity | str) -> LogPredicate:
    severity = parse_severity(value)
    return LogPredicate(f"level <= {severity.name}", lambda r: r.severity <= severity)


def level_greater_than(value: Severity | str) -> LogPredicate:
    severity = parse_severity(value)
    return LogPredicate(f"level > {severity.name}", lambda r: r.severity > severity)


def level_less_than(value: Severity | str) -> LogPredicate:
    severity = parse_severity(value)
    return LogPredicate(f"level < {severity.name}", lambda r: r.severity < severity)


def has_cause(exc_type: type[BaseException] | None = None) -> LogPredicate:
    """Match records with a cause, optionally of type ``exc_type``."""
    if exc_type is None:
        return LogPredicate("has cause", lambda r: r.cause is not None)
    return LogPredicate(
        f"has cause {exc_type.__name__}",
        lambda r: isinstance(r.cause, exc_type),
    )


def has_metadata(key: str, value: object) -> LogPredicate:
    """Match records whose ``key`` has a value equal to ``value``.

    Raises
    ------
    ValueError
        If ``value`` is ``None``.

    """
    if value is None:
        msg = "value must not be None (did you mean 'has_metadata_key(...)'?)"
        raise ValueError(msg)
    return LogPredicate(
        f"has metadata {key}={value!r}", lambda r: r.has_metadata(key, value)
    )


def has_metadata_key(key: str) -> LogPredicate:
    return LogPredicate(f"has metadata key {key!r}", lambda r: r.has_metadata_key(key))


def in_same_thread_as(other: CaptureRecord) -> LogPredicate:
    return LogPredicate(
        f"in same thread as {other.snippet()}", lambda r: r.has_same_thread_as(other)
    )


__all__ = [
    "LogPredicate",
    "as_predicate",
    "has_cause",
    "has_metadata",
    "has_metadata_key",
    "in_same_thread_as",
    "level",
    "level_at_least",
    "level_at_most",
    "level_greater_than",
    "level_less_than",
    "message_containing",
    "message_matching",
]
