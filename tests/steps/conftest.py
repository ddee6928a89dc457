"""Shared BDD steps reused across feature modules."""

from __future__ import annotations

import logging
import typing as typ

import pytest
from pytest_bdd import given, parsers, then

from logwitness import CaptureConfig, LogAssertionError, LogCapture
from logwitness.severity import STDLIB_THRESHOLDS, parse_severity

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from logwitness import CaptureHook


@pytest.fixture
def open_hooks() -> cabc.Iterator[list[CaptureHook]]:
    """Hooks installed by scenario steps, closed unverified at teardown."""
    hooks: list[CaptureHook] = []
    yield hooks
    for hook in reversed(hooks):
        hook.close(verify=False)


@given(
    parsers.parse('a log capture on channel "{channel}" at "{level}"'),
    target_fixture="capture",
)
def log_capture(channel: str, level: str, open_hooks: list[CaptureHook]) -> LogCapture:
    capture = LogCapture(CaptureConfig().with_level(channel, level))
    open_hooks.append(capture.install())
    return capture


@given(parsers.parse('"{message}" was logged to "{channel}" at "{level}"'))
def log_message(message: str, channel: str, level: str) -> None:
    native = int(STDLIB_THRESHOLDS.native_level(parse_severity(level)))
    logging.getLogger(channel).log(native, message)


@then(parsers.parse("{count:d} logs are captured"))
def count_captured(capture: LogCapture, count: int) -> None:
    assert len(capture.records) == count


@then(parsers.parse('closing the capture fails mentioning "{fragment}"'))
def close_fails(open_hooks: list[CaptureHook], fragment: str) -> None:
    with pytest.raises(LogAssertionError) as excinfo:
        open_hooks[-1].close()
    assert fragment in str(excinfo.value)


@then("closing the capture succeeds")
def close_succeeds(open_hooks: list[CaptureHook]) -> None:
    open_hooks[-1].close()
