"""Labelled transformations of captured record sequences.

A :class:`LogMatcher` narrows (or reorders) a sequence of records. Matchers
are applied in the order given, and their labels are joined to describe the
resulting query in failure messages.

Comparative matchers select records relative to a reference record:
:func:`before` keeps records captured strictly before it and :func:`after`
keeps those captured strictly after it, by capture position and identity.
Both can be narrowed further::

    after(start).in_same_thread().from_same_outer_class()

Records whose class or method name is ``"<unknown>"`` are never considered to
come from the same class or method as any record, themselves included.
"""

from __future__ import annotations

import collections.abc as cabc
import dataclasses
import typing as typ

from .names import UNKNOWN

if typ.TYPE_CHECKING:
    from .record import CaptureRecord

Records = tuple["CaptureRecord", ...]


@dataclasses.dataclass(frozen=True, slots=True)
class LogMatcher:
    """A labelled function from a record sequence to a record sequence."""

    label: str
    apply: cabc.Callable[[Records], Records]

    def __call__(self, records: Records) -> Records:
        return tuple(self.apply(records))

    def __str__(self) -> str:
        return self.label


def simple(label: str, predicate: cabc.Callable[[CaptureRecord], bool]) -> LogMatcher:
    """Return a matcher keeping records for which ``predicate`` holds."""
    return LogMatcher(label, lambda records: tuple(r for r in records if predicate(r)))


def _index_of(records: Records, target: CaptureRecord) -> int:
    for index, record in enumerate(records):
        if record is target:
            return index
    msg = f"Provided log entry does not exist: {target}"
    raise ValueError(msg)


def _has_same_class(record: CaptureRecord, target: CaptureRecord) -> bool:
    return record.class_name != UNKNOWN and record.class_name == target.class_name


def _has_same_outer_class(record: CaptureRecord, target: CaptureRecord) -> bool:
    return (
        record.class_name != UNKNOWN
        and record.outer_class_name == target.outer_class_name
    )


def _has_same_method(record: CaptureRecord, target: CaptureRecord) -> bool:
    return (
        _has_same_class(record, target)
        and record.method_name != UNKNOWN
        and record.method_name == target.method_name
    )


@dataclasses.dataclass(frozen=True, slots=True)
class ComparativeLogMatcher(LogMatcher):
    """A matcher tied to a reference record which can be narrowed further."""

    target: CaptureRecord | None = None

    def _narrowed(
        self, label: str, predicate: cabc.Callable[[CaptureRecord, CaptureRecord], bool]
    ) -> ComparativeLogMatcher:
        target = typ.cast("CaptureRecord", self.target)
        base = self.apply
        return ComparativeLogMatcher(
            f"{self.label}.{label}",
            lambda records: tuple(r for r in base(records) if predicate(r, target)),
            target,
        )

    def in_same_thread(self) -> ComparativeLogMatcher:
        """Additionally require the reference record's thread."""
        return self._narrowed("in_same_thread()", lambda r, t: r.has_same_thread_as(t))

    def from_same_outer_class(self) -> ComparativeLogMatcher:
        """Additionally require the reference record's outermost class.

        This is the least brittle way to ask for logs "from the same place".
        """
        return self._narrowed("from_same_outer_class()", _has_same_outer_class)

    def from_same_class(self) -> ComparativeLogMatcher:
        """Additionally require the reference record's nearest named class."""
        return self._narrowed("from_same_class()", _has_same_class)

    def from_same_method(self) -> ComparativeLogMatcher:
        """Additionally require the reference record's class and method."""
        return self._narrowed("from_same_method()", _has_same_method)


def _label(name: str, record: CaptureRecord) -> str:
    return f"{name}({record.snippet()})"


def before(record: CaptureRecord) -> ComparativeLogMatcher:
    """Keep records captured strictly before ``record``.

    Applying the matcher raises :class:`ValueError` if ``record`` is not in
    the sequence being matched.
    """
    return ComparativeLogMatcher(
        _label("before", record),
        lambda records: records[: _index_of(records, record)],
        record,
    )


def after(record: CaptureRecord) -> ComparativeLogMatcher:
    """Keep records captured strictly after ``record``.

    Applying the matcher raises :class:`ValueError` if ``record`` is not in
    the sequence being matched.
    """
    return ComparativeLogMatcher(
        _label("after", record),
        lambda records: records[_index_of(records, record) + 1 :],
        record,
    )


def in_same_thread_as(record: CaptureRecord) -> LogMatcher:
    return simple(_label("in_same_thread_as", record), lambda r: r.has_same_thread_as(record))


def from_same_outer_class_as(record: CaptureRecord) -> LogMatcher:
    return simple(
        _label("from_same_outer_class_as", record),
        lambda r: _has_same_outer_class(r, record),
    )


def from_same_class_as(record: CaptureRecord) -> LogMatcher:
    return simple(_label("from_same_class_as", record), lambda r: _has_same_class(r, record))


def from_same_method_as(record: CaptureRecord) -> LogMatcher:
    return simple(
        _label("from_same_method_as", record), lambda r: _has_same_method(r, record)
    )


def ordered_by_timestamp() -> LogMatcher:
    """Reorder records by timestamp.

    The sort is stable, but records with equal timestamps are not guaranteed
    to appear in the order they were logged: timestamp granularity and
    reentrant logging both break that correspondence. Prefer capture order,
    or :func:`in_same_thread_as`, unless timestamp order is what is tested.
    """
    return LogMatcher(
        "ordered_by_timestamp()",
        lambda records: tuple(sorted(records, key=lambda r: r.timestamp)),
    )


__all__ = [
    "ComparativeLogMatcher",
    "LogMatcher",
    "after",
    "before",
    "from_same_class_as",
    "from_same_method_as",
    "from_same_outer_class_as",
    "in_same_thread_as",
    "ordered_by_timestamp",
    "simple",
]
