"""Capture from the standard library :mod:`logging` package.

:class:`StdlibInterceptor` installs a :class:`CapturingHandler` on the named
logger. Handlers run synchronously in the logging thread, so the frame which
made the logging call is still on the stack when the record is emitted; the
handler finds it and attributes the record to that frame's qualified name.

The logger's level is lowered while attached when it would otherwise filter
out the requested severity. The saved level is restored once the last handler
attached to that logger is detached. Propagation is left untouched.
"""

from __future__ import annotations

import collections.abc as cabc
import dataclasses
import datetime as dt
import logging
import sys
import threading
import types
import typing as typ

from .context import current_tags
from .interceptor import (
    Collector,
    Interceptor,
    InterceptorFactory,
    accepts_test_id,
)
from .metadata import metadata_value_matches, parse
from .record import CaptureRecord
from .severity import STDLIB_THRESHOLDS, Severity

_MAX_FRAME_DEPTH: typ.Final = 64


def _find_site(record: logging.LogRecord) -> tuple[str, str] | None:
    """Return ``(module, qualname)`` of the frame that logged ``record``."""
    frame: types.FrameType | None = sys._getframe(1)  # noqa: SLF001
    depth = 0
    while frame is not None and depth < _MAX_FRAME_DEPTH:
        code = frame.f_code
        if (
            frame.f_lineno == record.lineno
            and code.co_name == record.funcName
            and code.co_filename == record.pathname
        ):
            module = frame.f_globals.get("__name__")
            if not isinstance(module, str):
                return None
            return module, code.co_qualname
        frame = frame.f_back
        depth += 1
    return None


def _merge_tags(
    metadata: cabc.Mapping[str, tuple[object, ...]],
    tags: cabc.Mapping[str, object],
) -> dict[str, list[object]]:
    merged = {key: list(values) for key, values in metadata.items()}
    for key, value in tags.items():
        values = merged.setdefault(key, [])
        if not any(metadata_value_matches(v, value) for v in values):
            values.append(value)
    return merged


def _cause_of(record: logging.LogRecord) -> BaseException | None:
    exc_info = record.exc_info
    if exc_info and isinstance(exc_info, tuple):
        return exc_info[1]
    return None


def to_capture_record(record: logging.LogRecord) -> CaptureRecord:
    """Convert a :class:`logging.LogRecord` emitted on this thread."""
    decoded = parse(record.getMessage())
    site = _find_site(record)
    module, qualname = site if site is not None else (None, record.funcName)
    return CaptureRecord.create(
        module=module,
        qualname=qualname,
        level_name=record.levelname,
        severity=STDLIB_THRESHOLDS.classify(record.levelno),
        timestamp=dt.datetime.fromtimestamp(record.created, tz=dt.UTC),
        thread_id=record.thread,
        message=decoded.message,
        metadata=_merge_tags(decoded.metadata, current_tags()),
        cause=_cause_of(record),
    )


class CapturingHandler(logging.Handler):
    """Convert each handled record and pass it to a collector.

    Parameters
    ----------
    collector
        Receives every converted record accepted for ``test_id``.
    test_id
        Records tagged with a different test id are dropped.
    level
        Native level threshold of the handler.

    """

    def __init__(self, collector: Collector, test_id: str = "", level: int = 0) -> None:
        super().__init__(level)
        self._collector = collector
        self._test_id = test_id

    def emit(self, record: logging.LogRecord) -> None:
        try:
            captured = to_capture_record(record)
            if accepts_test_id(captured.metadata, self._test_id):
                self._collector(captured)
        except Exception:  # noqa: BLE001 - logging.Handler reports its own failures.
            self.handleError(record)


@dataclasses.dataclass(slots=True)
class _LevelOverride:
    """Level saved for a logger shared by several attached handlers."""

    saved: int
    applied: int | None = None
    holders: int = 0


_overrides: dict[str, _LevelOverride] = {}
_overrides_lock = threading.Lock()


def _lower_level(logger: logging.Logger, native: int) -> None:
    with _overrides_lock:
        override = _overrides.setdefault(logger.name, _LevelOverride(logger.level))
        override.holders += 1
        if logger.getEffectiveLevel() > native:
            logger.setLevel(native)
            override.applied = native


def _release_level(logger: logging.Logger) -> None:
    with _overrides_lock:
        override = _overrides[logger.name]
        override.holders -= 1
        if override.holders:
            return
        del _overrides[logger.name]
        # Leave the level alone if something else changed it meanwhile.
        if override.applied is not None and logger.level == override.applied:
            logger.setLevel(override.saved)


class StdlibInterceptor(Interceptor):
    """Attach :class:`CapturingHandler` instances to stdlib loggers."""

    def _attach(
        self,
        channel: str,
        min_severity: Severity,
        collector: Collector,
        test_id: str,
    ) -> cabc.Callable[[], None]:
        logger = logging.getLogger(channel)
        native = int(STDLIB_THRESHOLDS.native_level(min_severity))
        handler = CapturingHandler(collector, test_id, native)
        _lower_level(logger, native)
        logger.addHandler(handler)

        def detach() -> None:
            logger.removeHandler(handler)
            _release_level(logger)

        return detach


class StdlibInterceptorFactory(InterceptorFactory):
    """Factory for :class:`StdlibInterceptor`."""

    name = "stdlib"

    def create(self) -> StdlibInterceptor:
        return StdlibInterceptor()

    def configure_for_info_logging(self, channel: str) -> None:
        logger = logging.getLogger(channel)
        logger.setLevel(logging.INFO)
        logger.propagate = False

    def emit(
        self,
        channel: str,
        severity: Severity,
        message: str,
        cause: BaseException | None = None,
    ) -> None:
        logging.getLogger(channel).log(
            int(STDLIB_THRESHOLDS.native_level(severity)),
            message,
            exc_info=cause,
            stacklevel=2,
        )


__all__ = [
    "CapturingHandler",
    "StdlibInterceptor",
    "StdlibInterceptorFactory",
    "to_capture_record",
]
