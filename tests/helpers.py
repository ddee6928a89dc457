"""Shared helpers for the test suite."""

from __future__ import annotations

import datetime as dt
import typing as typ
from types import MappingProxyType

from logwitness.record import CaptureRecord
from logwitness.severity import Severity

if typ.TYPE_CHECKING:
    import collections.abc as cabc

BASE_TIME = dt.datetime(2024, 1, 1, tzinfo=dt.UTC)


def make_record(  # noqa: PLR0913 - mirrors the record attributes.
    message: str = "message",
    severity: Severity = Severity.INFO,
    *,
    level_name: str | None = None,
    class_name: str = "app.jobs:Worker",
    method_name: str = "run",
    thread_id: object = "main",
    offset_ms: int = 0,
    metadata: cabc.Mapping[str, tuple[object, ...]] | None = None,
    cause: BaseException | None = None,
) -> CaptureRecord:
    """Build a :class:`CaptureRecord` with sensible defaults.

    Parameters
    ----------
    message
        The record message.
    severity
        The severity class; also used as the level name unless given.
    offset_ms
        Milliseconds after :data:`BASE_TIME` for the record timestamp.

    """
    return CaptureRecord(
        class_name=class_name,
        method_name=method_name,
        level_name=level_name or severity.name,
        severity=severity,
        timestamp=BASE_TIME + dt.timedelta(milliseconds=offset_ms),
        thread_id=thread_id,
        message=message,
        metadata=MappingProxyType(dict(metadata or {})),
        cause=cause,
    )
