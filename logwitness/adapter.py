"""Capture from backends that dispatch plain record dictionaries.

Some logging backends (femtologging among them) hand each record to their
handlers as a dictionary via ``handle_record(record)`` rather than as a
:class:`logging.LogRecord`. :class:`DictRecordInterceptor` attaches a
:class:`RecordCollectorHandler` to such a backend and converts the dictionary
into a :class:`~logwitness.record.CaptureRecord`.

The record schema carries no qualified function name and exceptions arrive
pre-rendered, so records captured here have ``"<unknown>"`` class and method
names and no ``cause``. Interceptors of this kind therefore self-test as
:attr:`~logwitness.interceptor.SupportLevel.PARTIAL` at best.
"""

from __future__ import annotations

import collections.abc as cabc
import datetime as dt
import typing as typ
import warnings

from .interceptor import Collector, Interceptor, InterceptorFactory, accepts_test_id
from .metadata import parse
from .record import CaptureRecord
from .severity import RECORD_THRESHOLDS, Severity

# -- Record schema TypedDicts ---------------------------------------------


class RecordMetadata(typ.TypedDict, total=False):
    """The ``metadata`` sub-dictionary of a dispatched record."""

    filename: str
    line_number: int
    timestamp: float
    thread_name: str
    thread_id: int | str
    key_values: dict[str, object]


class ExcInfo(typ.TypedDict, total=False):
    """The ``exc_info`` sub-dictionary of a dispatched record."""

    type_name: str
    message: str


class DictRecord(typ.TypedDict, total=False):
    """Schema for the record dict passed to ``handle_record``."""

    logger: str
    level: str
    levelno: int
    message: str
    metadata: RecordMetadata
    exc_info: ExcInfo


class RecordLogger(typ.Protocol):
    """The logger surface a dict-record backend must provide."""

    def add_handler(self, handler: object) -> None: ...

    def remove_handler(self, handler: object) -> object: ...

    def set_level(self, level: str) -> None: ...

    def log(self, level: str, message: str) -> object: ...


# -- Level names on the 0-5 ordinal scale ---------------------------------

_LEVEL_NAMES: typ.Final[dict[Severity, str]] = {
    Severity.FINEST: "TRACE",
    Severity.FINE: "DEBUG",
    Severity.INFO: "INFO",
    Severity.WARNING: "WARN",
    Severity.SEVERE: "ERROR",
}

_LEVEL_ORDINALS: typ.Final[dict[str, int]] = {
    "TRACE": 0,
    "DEBUG": 1,
    "INFO": 2,
    "WARN": 3,
    "WARNING": 3,
    "ERROR": 4,
    "CRITICAL": 5,
}
_MAX_ORDINAL: typ.Final = 5


def _record_severity(record: DictRecord) -> Severity:
    """Classify a record by ``levelno``, then ``level``, else WARNING."""
    levelno = record.get("levelno")
    if isinstance(levelno, int) and 0 <= levelno <= _MAX_ORDINAL:
        return RECORD_THRESHOLDS.classify(levelno)

    name = record.get("level")
    if isinstance(name, str) and name.upper() in _LEVEL_ORDINALS:
        return RECORD_THRESHOLDS.classify(_LEVEL_ORDINALS[name.upper()])

    return Severity.WARNING


def _thread_token(metadata: RecordMetadata) -> object:
    """Return a thread identity token from record metadata.

    Rust formats thread ids as ``"ThreadId(N)"``; the number is extracted
    where possible so records compare by the same token whichever way the
    backend rendered them. The thread name is used when no id is present.
    """
    thread_id = metadata.get("thread_id")
    if thread_id is None:
        return metadata.get("thread_name")
    if isinstance(thread_id, int):
        return thread_id
    text = str(thread_id).strip()
    if text.startswith("ThreadId(") and text.endswith(")"):
        text = text[9:-1]
    return int(text) if text.isdigit() else str(thread_id)


def _timestamp(metadata: RecordMetadata) -> dt.datetime:
    timestamp = metadata.get("timestamp")
    if isinstance(timestamp, (int, float)) and not isinstance(timestamp, bool):
        return dt.datetime.fromtimestamp(float(timestamp), tz=dt.UTC)
    return dt.datetime.now(dt.UTC)


def to_capture_record(record: DictRecord) -> CaptureRecord:
    """Convert a dispatched record dictionary.

    Examples
    --------
    >>> captured = to_capture_record(
    ...     {"level": "INFO", "levelno": 2, "message": "hi [CONTEXT n=1 ]"}
    ... )
    >>> captured.message, dict(captured.metadata), captured.severity.name
    ('hi', {'n': (1,)}, 'INFO')

    """
    metadata: RecordMetadata = record.get("metadata", {})
    decoded = parse(record.get("message", ""))
    merged = {key: list(values) for key, values in decoded.metadata.items()}
    key_values = metadata.get("key_values")
    if isinstance(key_values, dict):
        for key, value in key_values.items():
            if isinstance(key, str):
                merged.setdefault(key, []).append(value)

    severity = _record_severity(record)
    return CaptureRecord.create(
        module=None,
        qualname=None,
        level_name=str(record.get("level", _LEVEL_NAMES[severity])),
        severity=severity,
        timestamp=_timestamp(metadata),
        thread_id=_thread_token(metadata),
        message=decoded.message,
        metadata=merged,
    )


class RecordCollectorHandler:
    """Receive dict records from a backend and pass them to a collector.

    Parameters
    ----------
    collector
        Receives every converted record accepted for ``test_id``.
    min_severity
        Records classified below this severity are ignored.
    test_id
        Records tagged with a different test id are dropped.

    """

    def __init__(
        self,
        collector: Collector,
        min_severity: Severity = Severity.FINEST,
        test_id: str = "",
    ) -> None:
        self._collector = collector
        self._min_severity = min_severity
        self._test_id = test_id

    @staticmethod
    def handle(_logger: str, _level: str, _message: str) -> None:
        """Fallback required by backends that validate a ``handle`` attribute.

        ``handle_record`` is always preferred, so this should never be
        called at runtime. A ``RuntimeWarning`` surfaces accidental use.
        """
        warnings.warn(
            "RecordCollectorHandler.handle() was called directly; "
            "this is a no-op, handle_record() should be used instead",
            RuntimeWarning,
            stacklevel=2,
        )

    def handle_record(self, record: DictRecord) -> None:
        if _record_severity(record) < self._min_severity:
            return
        captured = to_capture_record(record)
        if accepts_test_id(captured.metadata, self._test_id):
            self._collector(captured)

    def flush(self) -> None:
        """Nothing is buffered."""

    def close(self) -> None:
        """Nothing to release."""


class DictRecordInterceptor(Interceptor):
    """Attach :class:`RecordCollectorHandler` instances to a dict-record backend.

    Parameters
    ----------
    get_logger
        Returns the backend logger for a channel name.

    Notes
    -----
    A logger level is only ever lowered while attached. It is restored on
    detach when it was readable as a level name.

    """

    def __init__(self, get_logger: cabc.Callable[[str], RecordLogger]) -> None:
        super().__init__()
        self._get_logger = get_logger

    def _attach(
        self,
        channel: str,
        min_severity: Severity,
        collector: Collector,
        test_id: str,
    ) -> cabc.Callable[[], None]:
        logger = self._get_logger(channel)
        handler = RecordCollectorHandler(collector, min_severity, test_id)
        saved_level = getattr(logger, "level", None)
        target = _LEVEL_NAMES[min_severity]
        current = (
            _LEVEL_ORDINALS.get(saved_level.upper())
            if isinstance(saved_level, str)
            else None
        )
        lowered = current is None or current > _LEVEL_ORDINALS[target]
        if lowered:
            logger.set_level(target)
        logger.add_handler(handler)

        def detach() -> None:
            logger.remove_handler(handler)
            if lowered and isinstance(saved_level, str):
                logger.set_level(saved_level)

        return detach


class DictRecordInterceptorFactory(InterceptorFactory):
    """Factory for :class:`DictRecordInterceptor`.

    Parameters
    ----------
    get_logger
        Returns the backend logger for a channel name.
    name
        Identifies the backend in diagnostics.

    """

    def __init__(
        self,
        get_logger: cabc.Callable[[str], RecordLogger],
        name: str = "dict-record",
    ) -> None:
        super().__init__()
        self._get_logger = get_logger
        self.name = name

    def create(self) -> DictRecordInterceptor:
        return DictRecordInterceptor(self._get_logger)

    def configure_for_info_logging(self, channel: str) -> None:
        self._get_logger(channel).set_level(_LEVEL_NAMES[Severity.INFO])

    def emit(
        self,
        channel: str,
        severity: Severity,
        message: str,
        cause: BaseException | None = None,
    ) -> None:
        # The backend renders exceptions to text; the cause object is lost.
        del cause
        self._get_logger(channel).log(_LEVEL_NAMES[severity], message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


__all__ = [
    "DictRecord",
    "DictRecordInterceptor",
    "DictRecordInterceptorFactory",
    "RecordCollectorHandler",
    "RecordLogger",
    "to_capture_record",
]
