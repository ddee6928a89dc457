from __future__ import annotations

import logging
import typing as typ
import warnings

import pytest

from logwitness import api

if typ.TYPE_CHECKING:
    import collections.abc as cabc

warnings.filterwarnings(
    "ignore",
    message="'maxsplit' is passed as positional argument",
    category=DeprecationWarning,
    module=r"gherkin\.gherkin_line",
)
# Raised inside the Gherkin parser bundled with pytest-bdd.

TEST_CHANNEL = "logwitness.tests"


@pytest.fixture
def channel() -> cabc.Iterator[str]:
    """Return a stdlib logger name which is reset after the test."""
    logger = logging.getLogger(TEST_CHANNEL)
    try:
        yield TEST_CHANNEL
    finally:
        logger.handlers.clear()
        logger.setLevel(logging.NOTSET)
        logger.propagate = True


@pytest.fixture(autouse=True)
def _release_test_ids() -> cabc.Iterator[None]:
    """Ensure no test leaks claimed test ids into the next one."""
    before = api.claimed_test_ids()
    try:
        yield
    finally:
        for test_id in api.claimed_test_ids() - before:
            api.release_test_id(test_id)
