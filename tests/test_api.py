"""Tests for per-test capture, expectations and verification."""

from __future__ import annotations

import contextvars
import logging
import threading
import typing as typ

import pytest

from logwitness import api
from logwitness.api import LogCapture, claim_test_id, claimed_test_ids, release_test_id
from logwitness.config import CaptureConfig
from logwitness.context import current_tags
from logwitness.matchers import after
from logwitness.names import OneShotLatch
from logwitness.predicates import level
from logwitness.query import LogAssertionError, LogsQuery
from logwitness.severity import Severity
from logwitness.stdlib import StdlibInterceptor, StdlibInterceptorFactory

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from logwitness.interceptor import Collector


@pytest.fixture
def capture(channel: str) -> LogCapture:
    return LogCapture(CaptureConfig().with_level(channel, "INFO"))


@pytest.fixture
def logger(channel: str) -> logging.Logger:
    return logging.getLogger(channel)


class TestInstall:
    """Tests for installing and closing capture."""

    @staticmethod
    def test_captures_until_closed(capture: LogCapture, logger: logging.Logger) -> None:
        hook = capture.install()
        logger.info("inside")
        logger.debug("too fine")
        hook.close()
        logger.info("outside")
        assert [r.message for r in capture.records] == ["inside"]
        assert hook.closed
        assert not logger.handlers

    @staticmethod
    def test_records_carry_test_id(capture: LogCapture, logger: logging.Logger) -> None:
        with capture.install() as hook:
            assert hook.test_id in claimed_test_ids()
            logger.info("tagged")
        assert capture.log(0).has_metadata("test_id", hook.test_id)
        assert hook.test_id not in claimed_test_ids()

    @staticmethod
    def test_test_ids_can_be_disabled(channel: str, logger: logging.Logger) -> None:
        capture = LogCapture(CaptureConfig().with_level(channel, "INFO").with_test_id(False))  # noqa: FBT003
        with capture.install() as hook:
            logger.info("untagged")
        assert hook.test_id == ""
        assert not capture.log(0).has_metadata_key("test_id")

    @staticmethod
    def test_extra_levels_lower_capture_level(capture: LogCapture, logger: logging.Logger) -> None:
        with capture.install({logger.name: "FINE"}):
            logger.debug("fine")
        assert capture.log(0).severity is Severity.FINE

    @staticmethod
    def test_default_levels_capture_root_at_info(logger: logging.Logger) -> None:
        capture = LogCapture()
        with capture.install():
            logger.info("via root")
            logger.debug("dropped")
        assert [r.message for r in capture.records] == ["via root"]

    @staticmethod
    def test_explicit_factory_is_used(channel: str, logger: logging.Logger) -> None:
        factory = StdlibInterceptorFactory()
        capture = LogCapture(CaptureConfig().with_level(channel, "INFO").with_factory(factory))
        with capture.install():
            logger.info("hello")
        assert len(capture.records) == 1

    @staticmethod
    def test_failed_install_releases_everything(channel: str, logger: logging.Logger) -> None:
        broken = f"{channel}.broken"
        config = CaptureConfig().with_level(channel, "INFO").with_factory(_BrokenFactory())
        before = claimed_test_ids()
        with pytest.raises(RuntimeError, match="cannot attach"):
            LogCapture(config).install({broken: "INFO"})
        assert claimed_test_ids() == before
        assert not logger.handlers
        assert dict(current_tags()) == {}

    @staticmethod
    def test_close_from_another_thread_still_detaches(
        capture: LogCapture, logger: logging.Logger
    ) -> None:
        hook = contextvars.copy_context().run(capture.install)
        errors: list[BaseException] = []

        def close() -> None:
            try:
                hook.close(verify=False)
            except ValueError as exc:
                errors.append(exc)

        worker = threading.Thread(target=close)
        worker.start()
        worker.join()
        assert len(errors) == 1
        assert hook.closed
        assert not logger.handlers
        assert hook.test_id not in claimed_test_ids()
        assert dict(current_tags()) == {}

    @staticmethod
    @pytest.mark.concurrency
    def test_logs_from_concurrent_tests_are_isolated(channel: str) -> None:
        """Each capture only sees logs tagged with its own id."""
        first = LogCapture(CaptureConfig().with_level(channel, "INFO"))
        second = LogCapture(CaptureConfig().with_level(f"{channel}.other", "INFO"))
        barrier = threading.Barrier(2)
        errors: list[BaseException] = []

        def run(capture: LogCapture, name: str) -> None:
            try:
                with capture.install():
                    barrier.wait()
                    logging.getLogger(f"{channel}.other").info(name)
                    barrier.wait()
            except BaseException as exc:  # noqa: BLE001
                errors.append(exc)

        threads = [
            threading.Thread(target=run, args=(first, "first")),
            threading.Thread(target=run, args=(second, "second")),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert not errors
        assert [r.message for r in first.records] == ["first"]
        assert [r.message for r in second.records] == ["second"]
        assert not logging.getLogger(f"{channel}.other").handlers


class _BrokenInterceptor(StdlibInterceptor):
    """Refuses to attach to channels ending in ``.broken``."""

    def _attach(
        self,
        channel: str,
        min_severity: Severity,
        collector: Collector,
        test_id: str,
    ) -> cabc.Callable[[], None]:
        if channel.endswith(".broken"):
            msg = f"cannot attach to {channel!r}"
            raise RuntimeError(msg)
        return super()._attach(channel, min_severity, collector, test_id)


class _BrokenFactory(StdlibInterceptorFactory):
    def create(self) -> StdlibInterceptor:
        return _BrokenInterceptor()


class TestQueries:
    """Tests for querying captured logs."""

    @staticmethod
    def test_assert_logs_and_log(capture: LogCapture, logger: logging.Logger) -> None:
        with capture.install():
            logger.info("start")
            logger.warning("careful")
            start = capture.log(0)
            capture.assert_logs(after(start)).always().have_level("WARNING")
        assert capture.assert_logs().label == "logs"
        with pytest.raises(LogAssertionError, match=r"log\[5\]"):
            capture.log(5)

    @staticmethod
    def test_assert_log_order(capture: LogCapture, logger: logging.Logger) -> None:
        with capture.install():
            for name in ("a", "b", "c"):
                logger.info(name)
        a, b, c = capture.records
        capture.assert_log_order(a, b, c)
        capture.assert_log_order(a, c)
        with pytest.raises(LogAssertionError, match="expected log entries to be in order"):
            capture.assert_log_order(b, a)
        with pytest.raises(LogAssertionError):
            capture.assert_log_order(a, a)

    @staticmethod
    def test_assert_log_order_rejects_unknown_records(capture: LogCapture) -> None:
        other = LogCapture()
        with other.install():
            logging.getLogger().info("elsewhere")
        with pytest.raises(ValueError, match="was not in the captured logs"):
            capture.assert_log_order(other.log(0), other.log(0))


class TestVerification:
    """Tests for expectations and verifications run at close."""

    @staticmethod
    def test_verification_runs_at_close(capture: LogCapture, logger: logging.Logger) -> None:
        seen: list[int] = []
        hook = capture.install()
        capture.verify(lambda logs: seen.append(logs.count()))
        logger.info("one")
        assert seen == []
        hook.close()
        assert seen == [1]

    @staticmethod
    def test_failing_verification_raises(capture: LogCapture, logger: logging.Logger) -> None:
        hook = capture.install()
        capture.verify(lambda logs: logs.with_level_at_least("WARNING").do_not_occur())
        logger.warning("unexpected")
        with pytest.raises(LogAssertionError, match="expected no matching logs"):
            hook.close()

    @staticmethod
    def test_verification_skipped_when_body_fails(
        capture: LogCapture, logger: logging.Logger
    ) -> None:
        seen: list[LogsQuery] = []
        with pytest.raises(KeyError), capture.install():
            capture.verify(seen.append)
            logger.warning("unexpected")
            raise KeyError
        assert seen == []

    @staticmethod
    def test_expected_logs_are_excluded(capture: LogCapture, logger: logging.Logger) -> None:
        with capture.install():
            capture.verify(lambda logs: logs.none(level("WARNING")))
            capture.expect_logs(lambda logs: logs.with_message_containing("retry")).times(2)
            logger.warning("retry 1")
            logger.warning("retry 2")
            logger.warning("gave up")
            capture.expect(capture.log(2))

    @staticmethod
    def test_clear_verification(capture: LogCapture, logger: logging.Logger) -> None:
        with capture.install():
            capture.verify(lambda logs: logs.do_not_occur())
            logger.info("noise")
            capture.clear_verification()

    @staticmethod
    def test_verify_requires_callable(capture: LogCapture) -> None:
        with pytest.raises(TypeError, match="expected a callable"):
            capture.verify("nope")  # type: ignore[arg-type]
        assert capture.verify(lambda logs: None) is capture

    @staticmethod
    @pytest.mark.parametrize(
        ("method", "bound", "count", "passes"),
        [
            ("once", None, 1, True),
            ("once", None, 2, False),
            ("times", 0, 0, True),
            ("at_least", 2, 2, True),
            ("at_least", 2, 1, False),
            ("at_most", 1, 2, False),
            ("more_than", 1, 2, True),
            ("more_than", 2, 2, False),
            ("fewer_than", 3, 2, True),
            ("fewer_than", 2, 2, False),
        ],
    )
    def test_expectation_counts(  # noqa: PLR0913
        capture: LogCapture,
        logger: logging.Logger,
        method: str,
        bound: int | None,
        count: int,
        passes: bool,  # noqa: FBT001
    ) -> None:
        hook = capture.install()
        expectation = capture.expect_logs(lambda logs: logs.with_message_containing("hit"))
        args = () if bound is None else (bound,)
        getattr(expectation, method)(*args)
        for _ in range(count):
            logger.info("hit")
        if passes:
            hook.close()
        else:
            with pytest.raises(LogAssertionError, match="matching logs, found"):
                hook.close()

    @staticmethod
    def test_expectation_count_is_set_once(capture: LogCapture) -> None:
        expectation = capture.expect_logs(lambda logs: logs)
        expectation.once()
        with pytest.raises(ValueError, match="already been set"):
            expectation.at_least(1)
        with pytest.raises(ValueError, match="must not be negative"):
            capture.expect_logs(lambda logs: logs).times(-1)


class TestTestIds:
    """Tests for the process-wide test id pool."""

    @staticmethod
    def test_claim_and_release() -> None:
        test_id = claim_test_id()
        assert len(test_id) == 4
        assert int(test_id, 16) < api.TEST_ID_RANGE
        assert test_id in claimed_test_ids()
        release_test_id(test_id)
        assert test_id not in claimed_test_ids()
        release_test_id("")

    @staticmethod
    def test_ids_are_unique() -> None:
        ids = [claim_test_id() for _ in range(64)]
        assert len(set(ids)) == 64

    @staticmethod
    def test_exhaustion_returns_empty_id_and_warns_once(
        monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
    ) -> None:
        monkeypatch.setattr(api, "MAX_TEST_IDS", 0)
        monkeypatch.setattr(api, "TEST_IDS_EXHAUSTED", OneShotLatch())
        with caplog.at_level(logging.WARNING, logger="logwitness.api"):
            assert claim_test_id() == ""
            assert claim_test_id() == ""
        warnings = [r for r in caplog.records if "Too many test ids" in r.getMessage()]
        assert len(warnings) == 1
