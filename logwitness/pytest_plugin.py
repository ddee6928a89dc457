"""pytest integration.

Provides the ``logwitness`` fixture, an installed
:class:`~logwitness.api.LogCapture` which is closed (and verified) when the
test finishes::

    @pytest.mark.set_log_level("app.db", "FINE")
    def test_query_logs(logwitness):
        run_query()
        logwitness.assert_logs().with_message_containing("SELECT").always().have_level("FINE")

Channel levels come from the ``logwitness_levels`` ini option (one
``channel=LEVEL`` per line) and from any ``set_log_level`` markers on the
test, its class or its module.
"""

from __future__ import annotations

import collections.abc as cabc
import typing as typ

import pytest

from .api import LogCapture
from .config import CaptureConfig, parse_level_lines
from .severity import Severity, parse_severity

_INI_LEVELS: typ.Final = "logwitness_levels"
_INI_TEST_ID: typ.Final = "logwitness_use_test_id"
_MARKER: typ.Final = "set_log_level"
_CALL_FAILED = pytest.StashKey[bool]()


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addini(
        _INI_LEVELS,
        "Channels captured by the logwitness fixture, one 'channel=LEVEL' per line.",
        type="linelist",
        default=[],
    )
    parser.addini(
        _INI_TEST_ID,
        "Tag each test's logs with a test id to isolate concurrent tests.",
        type="bool",
        default=True,
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        f"{_MARKER}(channel, level): capture 'channel' at 'level' and above "
        "with the logwitness fixture",
    )


def _marker_levels(node: pytest.Item) -> dict[str, Severity]:
    levels: dict[str, Severity] = {}
    # Closest markers first; outer scopes only lower the level further.
    for marker in node.iter_markers(_MARKER):
        if len(marker.args) != 2:  # noqa: PLR2004 - channel and level.
            msg = f"{_MARKER} takes (channel, level), got {marker.args!r}"
            raise pytest.UsageError(msg)
        channel, level = marker.args
        severity = parse_severity(level)
        levels[channel] = min(levels.get(channel, severity), severity)
    return levels


def _base_config(pytestconfig: pytest.Config) -> CaptureConfig:
    lines = typ.cast("cabc.Iterable[str]", pytestconfig.getini(_INI_LEVELS))
    use_test_id = bool(pytestconfig.getini(_INI_TEST_ID))
    return CaptureConfig().with_levels(parse_level_lines(lines)).with_test_id(use_test_id)


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(item: pytest.Item) -> cabc.Generator[None, typ.Any, None]:
    outcome = yield
    report = outcome.get_result()
    if report.when == "call":
        item.stash[_CALL_FAILED] = report.failed


@pytest.fixture
def logwitness(
    request: pytest.FixtureRequest, pytestconfig: pytest.Config
) -> cabc.Iterator[LogCapture]:
    """Capture logs for the duration of the test."""
    capture = LogCapture(_base_config(pytestconfig))
    hook = capture.install(_marker_levels(request.node))
    try:
        yield capture
    finally:
        # Verification only runs after a passing test body.
        hook.close(verify=not request.node.stash.get(_CALL_FAILED, False))
