"""Re-parse structured metadata embedded in formatted log messages.

Loggers which cannot hand structured key/value context to a backend commonly
format it onto the end of the message instead::

    Request handled [CONTEXT request_id="a1b2" attempt=2 cached=false ]

:func:`parse` recovers the original message and the metadata so tests can make
assertions about both. Only four value types survive the text round trip:
``bool``, ``int`` (signed 64-bit), ``float`` and ``str``. Unquoted values are
re-typed in that order of ambiguity; quoted values are always strings and are
unescaped (``\\\\``, ``\\"``, ``\\n``, ``\\r`` and ``\\t``).

Parsing never raises. Values which cannot be interpreted cleanly degrade to
their literal text and the problem is reported on this module's logger, since a
testing tool must not fail a test because a backend formatted something
unexpectedly.

:func:`format_context` is the matching encoder.
"""

from __future__ import annotations

import collections.abc as cabc
import dataclasses
import logging
import math
import re
import typing as typ
from types import MappingProxyType

MetadataValue = bool | int | float | str
Metadata = cabc.Mapping[str, tuple[MetadataValue, ...]]

_logger = logging.getLogger(__name__)

_INT64_MIN: typ.Final = -(2**63)
_INT64_MAX: typ.Final = 2**63 - 1
_FLOAT_TOLERANCE: typ.Final = 1e-10

_KEY_VALUE_PAIR = r'([^\s=]+)(?:=([^"]\S*|"(?:[^"\\]|\\[\\nrt"])*"))?'
KEY_VALUE_PAIR: typ.Final = re.compile(_KEY_VALUE_PAIR)
CONTEXT: typ.Final = re.compile(
    r"(?:^|[ \n])\[CONTEXT ((?:" + _KEY_VALUE_PAIR + r" )+)]\Z"
)

_INTEGER: typ.Final = re.compile(r"[+-]?[0-9]+")
_FLOAT: typ.Final = re.compile(
    r"[+-]?(?:NaN|Infinity|(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?)"
)

_ESCAPES: typ.Final[dict[str, str]] = {
    "\\": "\\",
    '"': '"',
    "n": "\n",
    "r": "\r",
    "t": "\t",
}
_ESCAPE_FOR: typ.Final[dict[str, str]] = {v: f"\\{k}" for k, v in _ESCAPES.items()}

_EMPTY: typ.Final[Metadata] = MappingProxyType({})


@dataclasses.dataclass(frozen=True, slots=True)
class MessageAndMetadata:
    """A log message with its embedded context block removed."""

    message: str
    metadata: Metadata = dataclasses.field(default_factory=lambda: _EMPTY)


def parse(message: str) -> MessageAndMetadata:
    """Split a formatted log message into its message and metadata.

    Parameters
    ----------
    message
        The formatted log message as delivered by the backend.

    Returns
    -------
    MessageAndMetadata
        The message without any trailing ``[CONTEXT ... ]`` block, and the
        metadata parsed from that block. If no well-formed trailing block is
        present, the message is returned unchanged with empty metadata.

    Examples
    --------
    >>> mm = parse("msg [CONTEXT foo=true bar=10 ]")
    >>> mm.message, dict(mm.metadata)
    ('msg', {'foo': (True,), 'bar': (10,)})

    """
    match = CONTEXT.search(message)
    if match is None:
        return MessageAndMetadata(message)

    collected: dict[str, list[MetadataValue]] = {}
    for pair in KEY_VALUE_PAIR.finditer(match.group(1)):
        key, value = pair.group(1), pair.group(2)
        values = collected.setdefault(key, [])
        if value is not None:
            values.append(_parse_value(value))
    return MessageAndMetadata(
        message[: match.start()],
        MappingProxyType({k: tuple(v) for k, v in collected.items()}),
    )


def _parse_value(text: str) -> MetadataValue:
    """Interpret a single raw value token from a context block."""
    if not text.startswith('"'):
        return _parse_unquoted(text)
    return _unescape(text, text[1:-1])


def _parse_unquoted(text: str) -> MetadataValue:
    lowered = text.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    # Integers first so that long values are not widened to floats.
    if _INTEGER.fullmatch(text):
        number = int(text)
        if _INT64_MIN <= number <= _INT64_MAX:
            return number
    if _FLOAT.fullmatch(text):
        return float(text)
    _logger.debug(
        "Failed to parse metadata value '%s' from log message\n"
        "It was expected to be one of boolean, integer or float",
        text,
    )
    return text


def _unescape(raw: str, body: str) -> str:
    end = body.find("\\")
    if end == -1:
        return body

    found_problems = False
    parts: list[str] = []
    start = 0
    while end != -1:
        if end == len(body) - 1:
            found_problems = True
            _logger.debug("Unexpected trailing backslash found in value string: %s", raw)
            # The final chunk, trailing backslash included, is appended below.
            break
        parts.append(body[start:end])
        escaped = body[end + 1]
        replacement = _ESCAPES.get(escaped)
        if replacement is None:
            found_problems = True
            _logger.debug(
                "Unexpected escaped character '\\%s' in metadata value string: %s",
                escaped,
                raw,
            )
            replacement = escaped
        parts.append(replacement)
        start = end + 2
        end = body.find("\\", start)
    parts.append(body[start:])
    unescaped = "".join(parts)
    if found_problems:
        _logger.warning(
            "Problems found while parsing metadata value string: '%s'\n"
            "Unescaped value '%s' may not be accurate and could affect test results. "
            "To debug further, enable DEBUG logging for: %s",
            raw,
            unescaped,
            __name__,
        )
    return unescaped


def _format_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return repr(value)
    escaped = "".join(_ESCAPE_FOR.get(c, c) for c in str(value))
    return f'"{escaped}"'


def _values_of(value: object) -> cabc.Sequence[object]:
    if value is None:
        return ()
    if isinstance(value, (list, tuple)):
        return value
    return (value,)


def format_context(message: str, metadata: cabc.Mapping[str, object]) -> str:
    """Append ``metadata`` to ``message`` as a trailing context block.

    Each metadata value may be a single value, a list or tuple of values, or
    ``None`` (or an empty sequence) to record the key as a bare tag. An empty
    mapping returns ``message`` unchanged.

    Raises
    ------
    ValueError
        If a key is empty or contains whitespace or ``=``.

    Examples
    --------
    >>> format_context("msg", {"id": "a b", "n": 3, "tag": None})
    'msg [CONTEXT id="a b" n=3 tag ]'

    """
    if not metadata:
        return message
    pairs: list[str] = []
    for key, value in metadata.items():
        if not key or any(c.isspace() or c == "=" for c in key):
            msg = f"invalid metadata key {key!r}"
            raise ValueError(msg)
        values = _values_of(value)
        if not values:
            pairs.append(f"{key} ")
        pairs.extend(f"{key}={_format_value(v)} " for v in values)
    separator = " " if message else ""
    return f"{message}{separator}[CONTEXT {''.join(pairs)}]"


def metadata_value_matches(actual: object, expected: object) -> bool:
    """Compare a captured metadata value with an expected test value.

    Values are compared within four classes: integral numbers compare exactly
    (so ``10 == 10.0``), floating point values compare within ``1e-10``,
    booleans only match booleans and strings only match non-numeric,
    non-boolean values.
    """
    if isinstance(expected, bool):
        return isinstance(actual, bool) and actual == expected
    if isinstance(expected, (int, float)):
        if isinstance(actual, bool) or not isinstance(actual, (int, float)):
            return False
        if isinstance(expected, float):
            return math.fabs(actual - expected) < _FLOAT_TOLERANCE
        return actual == expected
    if isinstance(actual, (bool, int, float)):
        return False
    return str(actual) == str(expected)


__all__ = [
    "CONTEXT",
    "KEY_VALUE_PAIR",
    "MessageAndMetadata",
    "Metadata",
    "MetadataValue",
    "format_context",
    "metadata_value_matches",
    "parse",
]
