"""Tests for context-scoped tags."""

from __future__ import annotations

import asyncio
import logging

import pytest

from logwitness.context import ContextTagFilter, current_tags, scoped_tags
from logwitness.metadata import parse


def test_scopes_nest_and_restore() -> None:
    assert dict(current_tags()) == {}
    with scoped_tags(a=1, b="x"):
        with scoped_tags(b="y") as inner:
            assert dict(inner) == {"a": 1, "b": "y"}
        assert dict(current_tags()) == {"a": 1, "b": "x"}
    assert dict(current_tags()) == {}


def test_scope_is_restored_after_errors() -> None:
    with pytest.raises(RuntimeError), scoped_tags(a=1):
        raise RuntimeError
    assert dict(current_tags()) == {}


def test_tags_are_isolated_between_tasks() -> None:
    async def tagged(name: str) -> dict[str, object]:
        with scoped_tags(task=name):
            await asyncio.sleep(0)
            return dict(current_tags())

    async def main() -> list[dict[str, object]]:
        return list(await asyncio.gather(tagged("a"), tagged("b")))

    assert asyncio.run(main()) == [{"task": "a"}, {"task": "b"}]


def test_filter_appends_context_block(channel: str, caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger(channel)
    tag_filter = ContextTagFilter()
    logger.addFilter(tag_filter)
    try:
        with caplog.at_level(logging.INFO, logger=channel):
            logger.info("plain")
            with scoped_tags(request="r 1", n=2):
                logger.info("count=%d", 5)
    finally:
        logger.removeFilter(tag_filter)
    plain, tagged = (r.getMessage() for r in caplog.records)
    assert plain == "plain"
    decoded = parse(tagged)
    assert decoded.message == "count=5"
    assert dict(decoded.metadata) == {"request": ("r 1",), "n": (2,)}
