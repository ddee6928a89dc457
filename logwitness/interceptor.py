"""Backend-neutral capture contract.

An :class:`Interceptor` attaches a collector to a named logging channel and
turns each backend event into a :class:`~logwitness.record.CaptureRecord`.
Backend implementations live in :mod:`logwitness.stdlib` and
:mod:`logwitness.adapter`; each is produced by an :class:`InterceptorFactory`
which can probe how completely its interceptor captures log data.

Attachment lifecycle
--------------------
``attach()`` moves a channel from *detached* to *attached* and returns a
:class:`Recorder`. Closing the recorder detaches the channel again. Closing is
idempotent and never raises. Attaching a channel which is already attached to
the same interceptor raises :class:`AlreadyAttachedError`.
"""

from __future__ import annotations

import abc
import collections.abc as cabc
import enum
import functools
import logging
import threading
import typing as typ

from .metadata import Metadata, format_context, metadata_value_matches
from .severity import Severity

if typ.TYPE_CHECKING:
    from .record import CaptureRecord

Collector = cabc.Callable[["CaptureRecord"], None]

TEST_ID_KEY: typ.Final = "test_id"
PROBE_CHANNEL: typ.Final = "logwitness.probe"

_logger = logging.getLogger(__name__)


class AlreadyAttachedError(RuntimeError):
    """Raised when a channel is attached twice to the same interceptor."""


def accepts_test_id(metadata: Metadata, test_id: str) -> bool:
    """Return whether a record with ``metadata`` belongs to test ``test_id``.

    Records are accepted when no isolation is requested (empty ``test_id``),
    when they carry no test id tag at all, or when their tag matches.
    """
    if not test_id or TEST_ID_KEY not in metadata:
        return True
    return any(metadata_value_matches(v, test_id) for v in metadata[TEST_ID_KEY])


class CaptureBuffer:
    """Append-only, thread-safe sequence of captured records.

    Appends may come from any thread. :meth:`snapshot` returns an immutable
    prefix of everything appended so far; successive snapshots only ever grow.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: list[CaptureRecord] = []
        self._snapshot: tuple[CaptureRecord, ...] = ()

    def append(self, record: CaptureRecord) -> None:
        with self._lock:
            self._records.append(record)

    def snapshot(self) -> tuple[CaptureRecord, ...]:
        """Return the records captured so far."""
        with self._lock:
            if len(self._snapshot) != len(self._records):
                self._snapshot = tuple(self._records)
            return self._snapshot

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class Recorder:
    """Handle for one channel attachment; closing it detaches the channel."""

    def __init__(self, channel: str, detach: cabc.Callable[[], None]) -> None:
        self.channel = channel
        self._detach: cabc.Callable[[], None] | None = detach
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._detach is None

    def close(self) -> None:
        """Detach from the channel. Safe to call more than once."""
        with self._lock:
            detach, self._detach = self._detach, None
        if detach is None:
            return
        try:
            detach()
        except Exception:  # noqa: BLE001 - closing must always succeed.
            _logger.debug("Failed to detach from channel %r", self.channel, exc_info=True)

    def __enter__(self) -> typ.Self:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self.closed else "attached"
        return f"Recorder({self.channel!r}, {state})"


class Interceptor(abc.ABC):
    """Attach collectors to backend channels."""

    def __init__(self) -> None:
        self._attached: set[str] = set()
        self._lock = threading.Lock()

    def attach(
        self,
        channel: str,
        min_severity: Severity,
        collector: Collector,
        test_id: str = "",
    ) -> Recorder:
        """Capture logs from ``channel`` at or above ``min_severity``.

        Parameters
        ----------
        channel
            The backend's name for the logger to attach to.
        min_severity
            The lowest severity class to capture.
        collector
            Receives each captured record which passes the test id filter.
        test_id
            The current test's id; records tagged for other tests are dropped.

        Raises
        ------
        AlreadyAttachedError
            If ``channel`` is already attached to this interceptor.

        """
        with self._lock:
            if channel in self._attached:
                msg = f"channel {channel!r} is already attached"
                raise AlreadyAttachedError(msg)
            self._attached.add(channel)
        try:
            detach = self._attach(channel, min_severity, collector, test_id)
        except BaseException:
            self._release(channel)
            raise
        return Recorder(channel, functools.partial(self._detach_and_release, channel, detach))

    def _detach_and_release(
        self, channel: str, detach: cabc.Callable[[], None]
    ) -> None:
        try:
            detach()
        finally:
            self._release(channel)

    def _release(self, channel: str) -> None:
        with self._lock:
            self._attached.discard(channel)

    @abc.abstractmethod
    def _attach(
        self,
        channel: str,
        min_severity: Severity,
        collector: Collector,
        test_id: str,
    ) -> cabc.Callable[[], None]:
        """Install a backend listener and return a callable removing it."""


class SupportLevel(enum.IntEnum):
    """How completely an interceptor captures log data."""

    NONE = 0
    PARTIAL = 1
    FULL = 2


_ENABLED_MESSAGE: typ.Final = "<<enabled message>>"
_FORCED_MESSAGE: typ.Final = "<<forced message>>"
_DISABLED_MESSAGE: typ.Final = "<<disabled message>>"


class InterceptorFactory(abc.ABC):
    """Create interceptors for one logging backend.

    Subclasses describe how to reach their backend; :meth:`support_level`
    runs a scripted self-test through it to discover how much of each
    :class:`~logwitness.record.CaptureRecord` the interceptor can fill in.
    """

    name: str = "interceptor"

    def __init__(self) -> None:
        self._support: SupportLevel | None = None

    @abc.abstractmethod
    def create(self) -> Interceptor:
        """Return a new interceptor."""

    @abc.abstractmethod
    def configure_for_info_logging(self, channel: str) -> None:
        """Configure ``channel`` to emit INFO logs and keep them local."""

    @abc.abstractmethod
    def emit(
        self,
        channel: str,
        severity: Severity,
        message: str,
        cause: BaseException | None = None,
    ) -> None:
        """Log ``message`` through the backend, attributed to the caller."""

    def support_level(self) -> SupportLevel:
        """Return the capability level discovered by self-test (cached)."""
        if self._support is None:
            self._support = probe_support(self)
        return self._support

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


def _emit_probe_logs(factory: InterceptorFactory, cause: BaseException) -> None:
    factory.emit(PROBE_CHANNEL, Severity.INFO, _ENABLED_MESSAGE, cause)
    factory.emit(
        PROBE_CHANNEL, Severity.FINE, format_context(_FORCED_MESSAGE, {"forced": True})
    )
    factory.emit(PROBE_CHANNEL, Severity.FINEST, _DISABLED_MESSAGE)


def _check_basic_support(
    record: CaptureRecord,
    severity: Severity,
    message: str,
    cause: BaseException | None,
) -> SupportLevel:
    if message not in record.message:
        return SupportLevel.NONE
    full = (
        record.class_name == _emit_probe_logs.__module__
        and record.method_name == _emit_probe_logs.__name__
        and record.severity is severity
        and record.cause is cause
    )
    return SupportLevel.FULL if full else SupportLevel.PARTIAL


def probe_support(factory: InterceptorFactory) -> SupportLevel:
    """Exercise ``factory``'s backend with scripted logs and grade the capture.

    An INFO log with a cause, a FINE log carrying ``forced=true`` metadata and
    a FINEST log are emitted while attached at FINE. Nothing captured means
    :attr:`SupportLevel.NONE`; any missing or inaccurate detail (call site,
    severity, cause, metadata, or the FINE log itself) means
    :attr:`SupportLevel.PARTIAL`.
    """
    logged: list[CaptureRecord] = []
    cause = RuntimeError("logwitness probe")
    try:
        factory.configure_for_info_logging(PROBE_CHANNEL)
        interceptor = factory.create()
        with interceptor.attach(PROBE_CHANNEL, Severity.FINE, logged.append):
            _emit_probe_logs(factory, cause)
    except Exception:  # noqa: BLE001 - capability shortfalls are reported, not raised.
        _logger.debug("Self-test of %r failed", factory, exc_info=True)
        return SupportLevel.NONE

    if not logged:
        return SupportLevel.NONE
    support = _check_basic_support(logged[0], Severity.INFO, _ENABLED_MESSAGE, cause)
    if len(logged) != 2:  # noqa: PLR2004 - the enabled and forced probe logs.
        return min(support, SupportLevel.PARTIAL)
    forced = logged[1]
    support = min(
        support, _check_basic_support(forced, Severity.FINE, _FORCED_MESSAGE, None)
    )
    if not forced.has_metadata_key("forced") or not forced.has_metadata("forced", True):
        support = min(support, SupportLevel.PARTIAL)
    return support


__all__ = [
    "PROBE_CHANNEL",
    "TEST_ID_KEY",
    "AlreadyAttachedError",
    "CaptureBuffer",
    "Collector",
    "Interceptor",
    "InterceptorFactory",
    "Recorder",
    "SupportLevel",
    "accepts_test_id",
    "probe_support",
]
