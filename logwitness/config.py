"""Capture configuration.

:class:`CaptureConfig` is an immutable value: each ``with_*`` step returns a
new configuration and never modifies the one it was called on, so a shared
base configuration can be extended safely by concurrently running tests::

    base = CaptureConfig().with_level("app", "INFO")
    verbose = base.with_level("app.db", "FINE")

Requesting several levels for one channel keeps the lowest, since one
recorder per channel captures everything any of the requests asked for.

:func:`config_from_dict` accepts the same settings as a plain dictionary:

>>> config_from_dict({"version": 1, "levels": {"app": "INFO"}, "use_test_id": False})
CaptureConfig(levels={'app': <Severity.INFO: 2>}, use_test_id=False, factory=None)

"""

from __future__ import annotations

import collections.abc as cabc
import dataclasses
import typing as typ
from types import MappingProxyType

from .interceptor import InterceptorFactory
from .severity import Severity, parse_severity

Mapping = cabc.Mapping
cast = typ.cast

_CONFIG_KEYS: typ.Final = frozenset({"version", "levels", "use_test_id"})


def _merge_level(
    levels: Mapping[str, Severity], channel: str, severity: Severity
) -> dict[str, Severity]:
    merged = dict(levels)
    current = merged.get(channel)
    merged[channel] = severity if current is None else min(current, severity)
    return merged


def _validate_channel(channel: object) -> str:
    if not isinstance(channel, str):
        msg = f"channel names must be strings, got {type(channel).__name__}"
        raise TypeError(msg)
    return channel


@dataclasses.dataclass(frozen=True, slots=True)
class CaptureConfig:
    """Which channels to capture, at what level, and how.

    Attributes
    ----------
    levels
        Channel name to the lowest severity captured from it. The empty
        string names the root logger.
    use_test_id
        Whether each test claims an id and ignores logs tagged for others.
    factory
        Interceptor factory to use; the best registered one when ``None``.

    """

    levels: Mapping[str, Severity] = dataclasses.field(
        default_factory=lambda: MappingProxyType({})
    )
    use_test_id: bool = True
    factory: InterceptorFactory | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "levels", MappingProxyType(dict(self.levels)))

    def __repr__(self) -> str:
        return (
            f"CaptureConfig(levels={dict(self.levels)!r}, "
            f"use_test_id={self.use_test_id!r}, factory={self.factory!r})"
        )

    def with_level(self, channel: str, severity: Severity | str) -> CaptureConfig:
        """Return a copy also capturing ``channel`` at ``severity`` and above."""
        merged = _merge_level(
            self.levels, _validate_channel(channel), parse_severity(severity)
        )
        return dataclasses.replace(self, levels=merged)

    def with_levels(self, levels: Mapping[str, Severity | str]) -> CaptureConfig:
        config = self
        for channel, severity in levels.items():
            config = config.with_level(channel, severity)
        return config

    def with_test_id(self, enabled: bool) -> CaptureConfig:  # noqa: FBT001
        return dataclasses.replace(self, use_test_id=bool(enabled))

    def with_factory(self, factory: InterceptorFactory | None) -> CaptureConfig:
        if factory is not None and not isinstance(factory, InterceptorFactory):
            msg = f"expected an InterceptorFactory, got {type(factory).__name__}"
            raise TypeError(msg)
        return dataclasses.replace(self, factory=factory)


def _validate_mapping_type(value: object, name: str) -> Mapping[object, object]:
    """Ensure ``value`` is a mapping and not bytes-like."""
    if isinstance(value, (bytes, bytearray)) or not isinstance(value, Mapping):
        msg = f"{name} must be a mapping"
        raise TypeError(msg)
    return cast("Mapping[object, object]", value)


def _validate_string_keys(
    mapping: Mapping[object, object], name: str
) -> Mapping[str, object]:
    """Ensure all keys in ``mapping`` are strings."""
    for key in mapping:
        if not isinstance(key, str):
            msg = f"{name} keys must be strings"
            raise TypeError(msg)
    return cast("Mapping[str, object]", mapping)


def _validate_config_keys(config: Mapping[str, object]) -> None:
    unknown = set(config) - _CONFIG_KEYS
    if unknown:
        msg = f"capture configuration has unsupported keys: {sorted(unknown)!r}"
        raise ValueError(msg)
    version = config.get("version", 1)
    if version != 1:
        msg = f"unsupported configuration version {version!r}"
        raise ValueError(msg)


def _validate_level(channel: str, value: object) -> Severity:
    if not isinstance(value, (str, Severity)):
        msg = f"level for channel {channel!r} must be a string"
        raise TypeError(msg)
    return parse_severity(value)


def _validate_use_test_id(value: object) -> bool:
    if not isinstance(value, bool):
        msg = "use_test_id must be a bool"
        raise TypeError(msg)
    return value


def config_from_dict(config: Mapping[str, object]) -> CaptureConfig:
    """Build a :class:`CaptureConfig` from a plain dictionary.

    Parameters
    ----------
    config
        Supported keys are ``version`` (must be ``1``), ``levels`` (a mapping
        of channel name to level name) and ``use_test_id`` (a bool).

    Raises
    ------
    TypeError
        If a section has the wrong type.
    ValueError
        If unknown keys, versions or level names are used.

    """
    mapping = _validate_string_keys(_validate_mapping_type(config, "config"), "config")
    _validate_config_keys(mapping)
    result = CaptureConfig()
    levels = _validate_string_keys(
        _validate_mapping_type(mapping.get("levels", {}), "levels"), "levels"
    )
    for channel, value in levels.items():
        result = result.with_level(channel, _validate_level(channel, value))
    if "use_test_id" in mapping:
        result = result.with_test_id(_validate_use_test_id(mapping["use_test_id"]))
    return result


def parse_level_lines(lines: cabc.Iterable[str]) -> dict[str, Severity]:
    """Parse ``channel=LEVEL`` lines, as used by the ``logwitness_levels`` ini option.

    Blank lines and lines starting with ``#`` are ignored. A bare ``=LEVEL``
    names the root logger.

    Raises
    ------
    ValueError
        If a line has no ``=`` or names an unknown level.

    """
    levels: dict[str, Severity] = {}
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        channel, sep, level = line.partition("=")
        if not sep:
            msg = f"expected 'channel=LEVEL', got {line!r}"
            raise ValueError(msg)
        levels = _merge_level(levels, channel.strip(), parse_severity(level))
    return levels


__all__ = ["CaptureConfig", "config_from_dict", "parse_level_lines"]
