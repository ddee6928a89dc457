"""Context-scoped metadata tags.

Tags set with :func:`scoped_tags` follow the current thread or asyncio task
and are merged into the metadata of every record captured by the stdlib
interceptor while the scope is active. Capture uses this to tag logs with the
running test's id.

Handlers that do not capture can still carry the tags by installing
:class:`ContextTagFilter`, which appends them to the message as a
``[CONTEXT ... ]`` block.
"""

from __future__ import annotations

import collections.abc as cabc
import contextlib
import contextvars
import logging
import typing as typ
from types import MappingProxyType

from .metadata import format_context

if typ.TYPE_CHECKING:
    from .metadata import MetadataValue

_EMPTY: typ.Final[cabc.Mapping[str, MetadataValue]] = MappingProxyType({})

_TAGS: contextvars.ContextVar[cabc.Mapping[str, MetadataValue]] = (
    contextvars.ContextVar("logwitness_tags", default=_EMPTY)
)


def current_tags() -> cabc.Mapping[str, MetadataValue]:
    """Return the tags active in the current context."""
    return _TAGS.get()


@contextlib.contextmanager
def scoped_tags(**tags: MetadataValue) -> cabc.Iterator[cabc.Mapping[str, MetadataValue]]:
    """Add ``tags`` to the current context for the duration of the block.

    Nested scopes inherit outer tags; an inner value for the same key replaces
    the outer one until the inner scope exits.

    Examples
    --------
    >>> with scoped_tags(request_id="a1b2"):
    ...     dict(current_tags())
    {'request_id': 'a1b2'}

    """
    merged = MappingProxyType({**_TAGS.get(), **tags})
    token = _TAGS.set(merged)
    try:
        yield merged
    finally:
        _TAGS.reset(token)


class ContextTagFilter(logging.Filter):
    """Append the current context tags to each record's message.

    The message is rendered with its arguments first so the context block is
    always the trailing part of the final text. Records are never dropped.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        tags = current_tags()
        if tags:
            record.msg = format_context(record.getMessage(), tags)
            record.args = None
        return True


__all__ = ["ContextTagFilter", "current_tags", "scoped_tags"]
