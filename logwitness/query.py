"""Fluent queries and assertions over captured records.

A :class:`LogsQuery` wraps an immutable, capture-ordered sequence of
records. Filtering operations return new queries and never modify the
original, so a query can be shared and extended freely::

    logs = capture.assert_logs()
    start = logs.with_message_containing("starting").get_only_match()
    logs.matching(after(start)).with_level_at_least("WARNING").do_not_occur()

Quantifiers (:meth:`LogsQuery.every`, :meth:`LogsQuery.any` and
:meth:`LogsQuery.none`) raise :class:`LogAssertionError` on failure. The
error text names the query that produced the records, the predicate which
was being tested and a bounded sample of the records responsible.
"""

from __future__ import annotations

import collections.abc as cabc
import re
import typing as typ

from . import predicates as p
from .matchers import LogMatcher

if typ.TYPE_CHECKING:
    from .record import CaptureRecord
    from .severity import Severity

PredicateLike = p.LogPredicate | cabc.Callable[["CaptureRecord"], bool]

MAX_SAMPLE: typ.Final = 10

_EMPTY_HINT: typ.Final = (
    "no log entries were matched "
    "(to test potentially empty sequences, use 'allowing_no_matches()')"
)


class LogAssertionError(AssertionError):
    """Raised when captured logs do not meet an expectation."""


def _render_sample(records: cabc.Sequence[CaptureRecord]) -> list[str]:
    if not records:
        return []
    heading = "failing logs" if len(records) <= MAX_SAMPLE else "first few failing logs"
    lines = [f"{heading}:"]
    lines.extend(f"  {record}" for record in records[:MAX_SAMPLE])
    return lines


def failure_text(
    label: str, expectation: str, failing: cabc.Sequence[CaptureRecord] = ()
) -> str:
    """Return the text of a :class:`LogAssertionError`."""
    return "\n".join([f"{label}: {expectation}", *_render_sample(failing)])


class LogsQuery:
    """An immutable, ordered view of captured records.

    Parameters
    ----------
    records
        Records in capture order.
    label
        Describes how this view was derived; shown in failure text.
    allow_empty
        Whether :meth:`always`, :meth:`never` and :meth:`match_count` accept
        an empty view.

    """

    __slots__ = ("_allow_empty", "_label", "_records")

    def __init__(
        self,
        records: cabc.Iterable[CaptureRecord] = (),
        *,
        label: str = "logs",
        allow_empty: bool = False,
    ) -> None:
        self._records: tuple[CaptureRecord, ...] = tuple(records)
        self._label = label
        self._allow_empty = allow_empty

    @property
    def label(self) -> str:
        return self._label

    def _derive(
        self, step: str, records: cabc.Iterable[CaptureRecord], *, allow_empty: bool | None = None
    ) -> LogsQuery:
        return LogsQuery(
            records,
            label=f"{self._label}.{step}",
            allow_empty=self._allow_empty if allow_empty is None else allow_empty,
        )

    def _where(self, step: str, predicate: cabc.Callable[[CaptureRecord], bool]) -> LogsQuery:
        return self._derive(step, (r for r in self._records if predicate(r)))

    # -- Filtering --------------------------------------------------------

    def filter(self, condition: LogMatcher | PredicateLike) -> LogsQuery:
        """Narrow the view with a predicate or apply a matcher."""
        if isinstance(condition, LogMatcher):
            return self._derive(condition.label, condition(self._records))
        predicate = p.as_predicate(condition)
        return self._where(f"filter({predicate.description})", predicate)

    def matching(self, *matchers: LogMatcher) -> LogsQuery:
        """Apply ``matchers`` in order.

        Raises
        ------
        ValueError
            If a comparative matcher's reference record is not in the view.

        """
        if not matchers:
            return self
        records = self._records
        for matcher in matchers:
            records = matcher(records)
        labels = ", ".join(m.label for m in matchers)
        return self._derive(f"matching({labels})", records)

    def with_message_containing(self, *fragments: str) -> LogsQuery:
        return self._filter_with(p.message_containing(*fragments))

    def with_message_matching(self, pattern: str | re.Pattern[str]) -> LogsQuery:
        return self._filter_with(p.message_matching(pattern))

    def with_level(self, level: Severity | str) -> LogsQuery:
        return self._filter_with(p.level(level))

    def with_level_at_least(self, level: Severity | str) -> LogsQuery:
        return self._filter_with(p.level_at_least(level))

    def with_level_at_most(self, level: Severity | str) -> LogsQuery:
        return self._filter_with(p.level_at_most(level))

    def with_level_greater_than(self, level: Severity | str) -> LogsQuery:
        return self._filter_with(p.level_greater_than(level))

    def with_level_less_than(self, level: Severity | str) -> LogsQuery:
        return self._filter_with(p.level_less_than(level))

    def with_cause(self, exc_type: type[BaseException] | None = None) -> LogsQuery:
        return self._filter_with(p.has_cause(exc_type))

    def with_metadata(self, key: str, value: object) -> LogsQuery:
        return self._filter_with(p.has_metadata(key, value))

    def with_metadata_key(self, key: str) -> LogsQuery:
        return self._filter_with(p.has_metadata_key(key))

    def ordered_by_timestamp(self) -> LogsQuery:
        """Reorder by timestamp; equal timestamps have no guaranteed order."""
        return self._derive(
            "ordered_by_timestamp()", sorted(self._records, key=lambda r: r.timestamp)
        )

    def allowing_no_matches(self) -> LogsQuery:
        """Permit :meth:`always`, :meth:`never` and :meth:`match_count` on no records."""
        return self._derive("allowing_no_matches()", self._records, allow_empty=True)

    def _filter_with(self, predicate: p.LogPredicate) -> LogsQuery:
        return self._where(f"where({predicate.description})", predicate)

    # -- Quantifiers ------------------------------------------------------

    def every(self, condition: PredicateLike) -> LogsQuery:
        """Assert every record satisfies ``condition``; vacuous when empty."""
        predicate = p.as_predicate(condition)
        failing = [r for r in self._records if not predicate(r)]
        if failing:
            raise LogAssertionError(
                failure_text(self._label, f"expected every log to satisfy: {predicate}", failing)
            )
        return self

    def none(self, condition: PredicateLike) -> LogsQuery:
        """Assert no record satisfies ``condition``; vacuous when empty."""
        predicate = p.as_predicate(condition)
        failing = [r for r in self._records if predicate(r)]
        if failing:
            raise LogAssertionError(
                failure_text(self._label, f"expected no log to satisfy: {predicate}", failing)
            )
        return self

    def any(self, condition: PredicateLike) -> LogsQuery:
        """Assert at least one record satisfies ``condition``.

        An empty view always fails.
        """
        predicate = p.as_predicate(condition)
        if not any(predicate(r) for r in self._records):
            expectation = f"expected at least one log to satisfy: {predicate}"
            if not self._records:
                expectation = f"{expectation}, but no logs were matched"
            raise LogAssertionError(failure_text(self._label, expectation, self._records))
        return self

    def always(self) -> QuantifiedLogs:
        self._check_not_empty()
        return QuantifiedLogs(self._derive("always()", self._records), "always")

    def never(self) -> QuantifiedLogs:
        self._check_not_empty()
        return QuantifiedLogs(self._derive("never()", self._records), "never")

    def at_least_one(self) -> QuantifiedLogs:
        return QuantifiedLogs(self._derive("at_least_one()", self._records), "at_least_one")

    def _check_not_empty(self) -> None:
        if not self._allow_empty and not self._records:
            raise LogAssertionError(failure_text(self._label, _EMPTY_HINT))

    # -- Results ----------------------------------------------------------

    def count(self) -> int:
        return len(self._records)

    def is_empty(self) -> bool:
        return not self._records

    def all_matches(self) -> tuple[CaptureRecord, ...]:
        return self._records

    def match_count(self) -> int:
        """Return the number of records, failing on none unless allowed."""
        self._check_not_empty()
        return len(self._records)

    def get_match(self, n: int) -> CaptureRecord:
        """Return the ``n``-th record (zero based).

        Raises
        ------
        ValueError
            If ``n`` is negative.
        LogAssertionError
            If there are ``n`` or fewer records.

        """
        if n < 0:
            msg = "match index must not be negative"
            raise ValueError(msg)
        if n >= len(self._records):
            raise LogAssertionError(
                failure_text(
                    self._label,
                    f"expected at least {n + 1} matching logs, found {len(self._records)}",
                )
            )
        return self._records[n]

    def get_only_match(self) -> CaptureRecord:
        """Return the single record, failing if there are none or several."""
        if len(self._records) != 1:
            found = "none" if not self._records else str(len(self._records))
            raise LogAssertionError(
                failure_text(
                    self._label,
                    f"expected to match exactly one log, found {found}",
                    self._records,
                )
            )
        return self._records[0]

    def do_not_occur(self) -> None:
        """Assert the view is empty."""
        if self._records:
            raise LogAssertionError(
                failure_text(self._label, "expected no matching logs", self._records)
            )

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> cabc.Iterator[CaptureRecord]:
        return iter(self._records)

    def __repr__(self) -> str:
        return f"LogsQuery({self._label!r}, count={len(self._records)})"


class QuantifiedLogs:
    """Assertions applied to every record, no record or at least one record.

    Returned by :meth:`LogsQuery.always`, :meth:`LogsQuery.never` and
    :meth:`LogsQuery.at_least_one`.
    """

    __slots__ = ("_mode", "_query")

    def __init__(
        self, query: LogsQuery, mode: typ.Literal["always", "never", "at_least_one"]
    ) -> None:
        self._query = query
        self._mode = mode

    def satisfy(self, condition: PredicateLike) -> LogsQuery:
        if self._mode == "always":
            return self._query.every(condition)
        if self._mode == "never":
            return self._query.none(condition)
        return self._query.any(condition)

    def have_message_containing(self, *fragments: str) -> LogsQuery:
        return self.satisfy(p.message_containing(*fragments))

    def have_message_matching(self, pattern: str | re.Pattern[str]) -> LogsQuery:
        return self.satisfy(p.message_matching(pattern))

    def have_level(self, level: Severity | str) -> LogsQuery:
        return self.satisfy(p.level(level))

    def have_level_at_least(self, level: Severity | str) -> LogsQuery:
        return self.satisfy(p.level_at_least(level))

    def have_level_at_most(self, level: Severity | str) -> LogsQuery:
        return self.satisfy(p.level_at_most(level))

    def have_level_greater_than(self, level: Severity | str) -> LogsQuery:
        return self.satisfy(p.level_greater_than(level))

    def have_level_less_than(self, level: Severity | str) -> LogsQuery:
        return self.satisfy(p.level_less_than(level))

    def have_cause(self, exc_type: type[BaseException] | None = None) -> LogsQuery:
        return self.satisfy(p.has_cause(exc_type))

    def have_metadata(self, key: str, value: object) -> LogsQuery:
        return self.satisfy(p.has_metadata(key, value))

    def have_metadata_key(self, key: str) -> LogsQuery:
        return self.satisfy(p.has_metadata_key(key))


__all__ = ["MAX_SAMPLE", "LogAssertionError", "LogsQuery", "QuantifiedLogs", "failure_text"]
