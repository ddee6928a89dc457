"""The immutable value captured for each intercepted log event."""

from __future__ import annotations

import collections.abc as cabc
import dataclasses
import datetime as dt
import typing as typ
from types import MappingProxyType

from .metadata import Metadata, MetadataValue, metadata_value_matches
from .names import UNKNOWN, infer_site, outer_class_name

if typ.TYPE_CHECKING:
    from .severity import Severity

_TRIMMED_MESSAGE_LENGTH: typ.Final = 30


def _widen(value: object) -> MetadataValue:
    """Restrict a metadata value to ``bool``, ``int``, ``float`` or ``str``."""
    if isinstance(value, (bool, int, float, str)):
        return value
    return str(value)


def freeze_metadata(metadata: cabc.Mapping[str, cabc.Iterable[object]]) -> Metadata:
    """Return a read-only copy of ``metadata`` with widened values."""
    return MappingProxyType(
        {str(key): tuple(_widen(v) for v in values) for key, values in metadata.items()}
    )


@dataclasses.dataclass(frozen=True, slots=True, eq=False)
class CaptureRecord:
    """A single captured log event.

    Records compare and hash by identity: two records with identical contents
    logged twice are still two distinct events, and ordering queries such as
    ``before(record)`` rely on that.

    Attributes
    ----------
    class_name
        ``module:Qual.Name`` of the log site's nearest named class, the module
        name for module-level code, or ``"<unknown>"``.
    method_name
        Nearest named function at the log site, or ``"<unknown>"``.
    level_name
        The backend's own name for the level (e.g. ``"DEBUG"``).
    severity
        The normalised severity class.
    timestamp
        When the event was logged (UTC).
    thread_id
        Opaque token identifying the logging thread.
    message
        The log message with any context block removed.
    metadata
        Key to values mapping. A key with no values is a bare tag.
    cause
        The exception associated with the event, if any.

    """

    class_name: str
    method_name: str
    level_name: str
    severity: Severity
    timestamp: dt.datetime
    thread_id: object
    message: str
    metadata: Metadata = dataclasses.field(default_factory=lambda: MappingProxyType({}))
    cause: BaseException | None = None

    @classmethod
    def create(  # noqa: PLR0913 - mirrors the record attributes one to one.
        cls,
        *,
        module: str | None,
        qualname: str | None,
        level_name: str,
        severity: Severity,
        timestamp: dt.datetime,
        thread_id: object,
        message: str,
        metadata: cabc.Mapping[str, cabc.Iterable[object]] | None = None,
        cause: BaseException | None = None,
    ) -> CaptureRecord:
        """Build a record from raw backend data.

        ``module`` and ``qualname`` describe the log site; synthetic names are
        resolved to the nearest named class and function. If either is
        ``None`` the site is recorded as ``"<unknown>"``.
        """
        if module is not None and qualname is not None:
            class_name, method_name = infer_site(module, qualname)
        else:
            class_name = UNKNOWN
            method_name = qualname.rsplit(".", 1)[-1] if qualname else UNKNOWN
        return cls(
            class_name=class_name,
            method_name=method_name,
            level_name=level_name,
            severity=severity,
            timestamp=timestamp,
            thread_id=thread_id,
            message=message,
            metadata=freeze_metadata(metadata or {}),
            cause=cause,
        )

    @property
    def outer_class_name(self) -> str:
        """Return the outermost named class of the log site."""
        if self.class_name == UNKNOWN:
            return UNKNOWN
        return outer_class_name(self.class_name)

    def has_metadata_key(self, key: str) -> bool:
        """Return whether ``key`` is present, with or without values."""
        return key in self.metadata

    def has_metadata(self, key: str, value: object) -> bool:
        """Return whether ``key`` has a value equal to ``value``.

        Comparison follows :func:`~logwitness.metadata.metadata_value_matches`,
        so ``has_metadata("n", 10)`` matches a captured ``10`` or ``10.0``, but
        ``has_metadata("flag", "true")`` does not match a captured ``True``.

        Raises
        ------
        ValueError
            If ``value`` is ``None``; use :meth:`has_metadata_key` instead.

        """
        if value is None:
            msg = "value must not be None (did you mean 'has_metadata_key(...)'?)"
            raise ValueError(msg)
        return any(metadata_value_matches(v, value) for v in self.metadata.get(key, ()))

    def has_same_thread_as(self, other: CaptureRecord) -> bool:
        return self.thread_id == other.thread_id

    def snippet(self) -> str:
        """Return a one-line summary identifying this record in failure text."""
        level = self.level_name
        if level != self.severity.name:
            level = f"{level}({self.severity.name})"
        return f'{level}: "{_short_snippet(self.message)}"'

    def __str__(self) -> str:
        site = self.class_name.rpartition(":")[2].rpartition(".")[2]
        cause = f", cause={type(self.cause).__name__}" if self.cause is not None else ""
        context = ""
        if self.metadata:
            shown = {k: list(v) for k, v in self.metadata.items()}
            context = f", context={shown}"
        return f"{site}#{self.method_name}@{self.snippet()}{cause}{context}"


def _short_snippet(message: str) -> str:
    head = message[:_TRIMMED_MESSAGE_LENGTH]
    for stop in ("\n", "\r"):
        head = head.split(stop, 1)[0]
    if len(head) == len(message):
        return message
    return f"{head}..."


__all__ = ["CaptureRecord", "freeze_metadata"]
