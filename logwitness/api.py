"""Per-test log capture.

:class:`LogCapture` owns the records captured for one test. Installing it
attaches one recorder per configured channel; the returned
:class:`CaptureHook` detaches them again and then runs any expectations and
verifications registered during the test::

    capture = LogCapture(CaptureConfig().with_level("app", "INFO"))
    with capture.install():
        run_the_code_under_test()
        capture.assert_logs().with_level("WARNING").do_not_occur()

When test ids are enabled each installation claims a short random id and
tags its context with it, so that logs emitted for one test are not captured
by another test running concurrently in the same process.
"""

from __future__ import annotations

import collections.abc as cabc
import contextlib
import dataclasses
import logging
import operator
import random
import threading
import typing as typ

from .config import CaptureConfig
from .context import scoped_tags
from .interceptor import TEST_ID_KEY, CaptureBuffer
from .loader import best_factory
from .matchers import LogMatcher, simple
from .names import OneShotLatch
from .query import LogAssertionError, LogsQuery, failure_text
from .severity import Severity

if typ.TYPE_CHECKING:
    from .record import CaptureRecord

_logger = logging.getLogger(__name__)

DEFAULT_LEVELS: typ.Final[cabc.Mapping[str, Severity]] = {"": Severity.INFO}

# -- Test ids -------------------------------------------------------------

TEST_ID_RANGE: typ.Final = 0x10000
MAX_TEST_IDS: typ.Final = TEST_ID_RANGE // 16

_ids: set[str] = set()
_ids_lock = threading.Lock()
TEST_IDS_EXHAUSTED: typ.Final = OneShotLatch()


def claim_test_id() -> str:
    """Claim an unused four hex digit test id.

    Returns an empty id, which disables isolation, once :data:`MAX_TEST_IDS`
    ids are in use; this is reported once per process.
    """
    with _ids_lock:
        if len(_ids) < MAX_TEST_IDS:
            while True:
                test_id = f"{random.randrange(TEST_ID_RANGE):04X}"  # noqa: S311
                if test_id not in _ids:
                    _ids.add(test_id)
                    return test_id
    if TEST_IDS_EXHAUSTED.trip():
        _logger.warning(
            "Too many test ids were claimed; returning an empty id.\n"
            "This may cause multi-threaded logging test failures."
        )
    return ""


def release_test_id(test_id: str) -> None:
    if test_id:
        with _ids_lock:
            _ids.discard(test_id)


def claimed_test_ids() -> frozenset[str]:
    with _ids_lock:
        return frozenset(_ids)


# -- Expectations ---------------------------------------------------------

QueryFn = cabc.Callable[[LogsQuery], LogsQuery]


@dataclasses.dataclass(frozen=True, slots=True)
class _CountCheck:
    description: str
    bound: int
    compare: cabc.Callable[[int, int], bool]


class LogsExpectation:
    """Expect a query to match a number of logs when the test finishes.

    Matched logs are then excluded from the logs seen by verifications.
    Created by :meth:`LogCapture.expect_logs`; the expectation takes effect
    when one of the count methods is called.
    """

    def __init__(self, capture: LogCapture, query: QueryFn) -> None:
        self._capture = capture
        self._query = query
        self._check: _CountCheck | None = None

    def _expect(self, description: str, bound: int, compare: cabc.Callable[[int, int], bool]) -> None:
        if self._check is not None:
            msg = "the expected count has already been set"
            raise ValueError(msg)
        if bound < 0:
            msg = f"expected count must not be negative: {bound}"
            raise ValueError(msg)
        self._check = _CountCheck(description, bound, compare)
        self._capture._add_expectation(self)  # noqa: SLF001

    def once(self) -> None:
        self.times(1)

    def times(self, n: int) -> None:
        self._expect("exactly", n, operator.eq)

    def at_least(self, n: int) -> None:
        self._expect("at least", n, operator.ge)

    def at_most(self, n: int) -> None:
        self._expect("at most", n, operator.le)

    def more_than(self, n: int) -> None:
        self._expect("more than", n, operator.gt)

    def fewer_than(self, n: int) -> None:
        self._expect("fewer than", n, operator.lt)

    def check(self, logs: LogsQuery) -> tuple[CaptureRecord, ...]:
        """Assert the expected count against ``logs``; return the matched logs."""
        check = typ.cast("_CountCheck", self._check)
        expected = self._query(logs)
        count = expected.count()
        if not check.compare(count, check.bound):
            raise LogAssertionError(
                failure_text(
                    expected.label,
                    f"expected {check.description} {check.bound} matching logs, found {count}",
                    expected.all_matches(),
                )
            )
        return expected.all_matches()


# -- Capture --------------------------------------------------------------


class CaptureHook:
    """Installed capture; closing it ends capture for the test.

    Closing detaches every recorder in reverse order, resets the test id tag,
    releases the test id, and then (unless ``verify`` is false) checks
    expectations and runs verifications, raising
    :class:`~logwitness.query.LogAssertionError` if they fail. Recorders are
    detached and the id released even when resetting the tag fails, as it
    does when closing from another context. Closing twice does nothing.
    """

    def __init__(
        self,
        capture: LogCapture,
        test_id: str,
        scope: contextlib.ExitStack,
    ) -> None:
        self._capture = capture
        self.test_id = test_id
        self._scope = scope
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self, *, verify: bool = True) -> None:
        if self._closed:
            return
        self._closed = True
        self._scope.close()
        if verify:
            self._capture._run_verification()  # noqa: SLF001

    def __enter__(self) -> typ.Self:
        return self

    def __exit__(self, exc_type: type[BaseException] | None, *exc_info: object) -> None:
        self.close(verify=exc_type is None)


class LogCapture:
    """Capture and assert on the logs of a single test.

    Parameters
    ----------
    config
        Channels and levels to capture. When no levels are configured the
        root logger is captured at INFO.

    """

    def __init__(self, config: CaptureConfig | None = None) -> None:
        self.config = config if config is not None else CaptureConfig()
        self._buffer = CaptureBuffer()
        self._verifications: list[cabc.Callable[[LogsQuery], object]] = []
        self._expectations: list[LogsExpectation] = []
        self._excluded: set[CaptureRecord] = set()

    # -- Lifecycle --------------------------------------------------------

    def install(
        self, extra_levels: cabc.Mapping[str, Severity | str] | None = None
    ) -> CaptureHook:
        """Start capturing.

        Parameters
        ----------
        extra_levels
            Channel levels added to the configured ones for this installation.

        """
        config = self.config.with_levels(extra_levels or {})
        levels = dict(config.levels) or dict(DEFAULT_LEVELS)
        factory = config.factory if config.factory is not None else best_factory()
        interceptor = factory.create()
        test_id = claim_test_id() if config.use_test_id else ""

        scope = contextlib.ExitStack()
        scope.callback(release_test_id, test_id)
        try:
            if test_id:
                scope.enter_context(scoped_tags(**{TEST_ID_KEY: test_id}))
            for channel, severity in levels.items():
                recorder = interceptor.attach(
                    channel, severity, self._buffer.append, test_id
                )
                scope.callback(recorder.close)
        except BaseException:
            scope.close()
            raise
        return CaptureHook(self, test_id, scope)

    # -- Queries ----------------------------------------------------------

    @property
    def records(self) -> tuple[CaptureRecord, ...]:
        return self._buffer.snapshot()

    def assert_logs(self, *matchers: LogMatcher) -> LogsQuery:
        """Return a query over the logs captured so far."""
        return LogsQuery(self._buffer.snapshot()).matching(*matchers)

    def log(self, n: int) -> CaptureRecord:
        """Return the ``n``-th captured log (zero based)."""
        return LogsQuery(self._buffer.snapshot(), label=f"log[{n}]").get_match(n)

    def assert_log_order(
        self, first: CaptureRecord, second: CaptureRecord, *rest: CaptureRecord
    ) -> None:
        """Assert the given logs were captured in strictly this order.

        Raises
        ------
        ValueError
            If any of the logs was not captured.
        LogAssertionError
            If the logs are out of order.

        """
        logged = self._buffer.snapshot()
        positions = {id(record): index for index, record in enumerate(logged)}
        ordered = (first, second, *rest)
        indices: list[int] = []
        for record in ordered:
            if id(record) not in positions:
                msg = f"log entry '{record}' was not in the captured logs"
                raise ValueError(msg)
            indices.append(positions[id(record)])
        if any(a >= b for a, b in zip(indices, indices[1:], strict=False)):
            raise LogAssertionError(
                failure_text("logs", "expected log entries to be in order", ordered)
            )

    # -- Post-test checks -------------------------------------------------

    def verify(self, assertion: cabc.Callable[[LogsQuery], object]) -> typ.Self:
        """Run ``assertion`` on the unexpected logs when capture ends."""
        if not callable(assertion):
            msg = f"expected a callable, got {type(assertion).__name__}"
            raise TypeError(msg)
        self._verifications.append(assertion)
        return self

    def clear_verification(self) -> None:
        self._verifications.clear()

    def expect(self, *records: CaptureRecord) -> None:
        """Exclude ``records`` from the logs passed to verifications."""
        self._excluded.update(records)

    def expect_logs(self, query: QueryFn) -> LogsExpectation:
        """Expect the logs selected by ``query`` to occur; see :class:`LogsExpectation`."""
        return LogsExpectation(self, query)

    def _add_expectation(self, expectation: LogsExpectation) -> None:
        self._expectations.append(expectation)

    def _run_verification(self) -> None:
        logs = self.assert_logs()
        excluded = set(self._excluded)
        for expectation in self._expectations:
            excluded.update(expectation.check(logs))
        if excluded:
            logs = logs.matching(simple("not_in(<expected>)", lambda r: r not in excluded))
        for assertion in self._verifications:
            assertion(logs)


__all__ = [
    "DEFAULT_LEVELS",
    "MAX_TEST_IDS",
    "CaptureHook",
    "LogCapture",
    "LogsExpectation",
    "claim_test_id",
    "claimed_test_ids",
    "release_test_id",
]
