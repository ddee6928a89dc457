"""Tests for capture configuration."""

from __future__ import annotations

import dataclasses
import typing as typ

import pytest

from logwitness.config import CaptureConfig, config_from_dict, parse_level_lines
from logwitness.severity import Severity
from logwitness.stdlib import StdlibInterceptorFactory


def test_builder_steps_return_new_configs() -> None:
    base = CaptureConfig().with_level("app", "INFO")
    verbose = base.with_level("app.db", "FINE")
    assert dict(base.levels) == {"app": Severity.INFO}
    assert dict(verbose.levels) == {"app": Severity.INFO, "app.db": Severity.FINE}
    assert base.use_test_id
    assert not base.with_test_id(False).use_test_id  # noqa: FBT003
    assert base.use_test_id


def test_repeated_channel_keeps_lowest_level() -> None:
    config = CaptureConfig().with_level("app", "WARNING").with_level("app", "fine")
    assert config.levels["app"] is Severity.FINE
    assert config.with_level("app", "SEVERE").levels["app"] is Severity.FINE


def test_with_levels_merges_mapping() -> None:
    config = CaptureConfig().with_levels({"": "INFO", "app": Severity.FINEST})
    assert dict(config.levels) == {"": Severity.INFO, "app": Severity.FINEST}


def test_config_is_frozen() -> None:
    config = CaptureConfig(levels={"app": Severity.INFO})
    with pytest.raises(dataclasses.FrozenInstanceError):
        config.use_test_id = False  # type: ignore[misc]
    with pytest.raises(TypeError):
        config.levels["x"] = Severity.INFO  # type: ignore[index]


def test_with_factory_validates_type() -> None:
    factory = StdlibInterceptorFactory()
    assert CaptureConfig().with_factory(factory).factory is factory
    with pytest.raises(TypeError, match="InterceptorFactory"):
        CaptureConfig().with_factory(object())  # type: ignore[arg-type]


def test_with_level_rejects_bad_input() -> None:
    with pytest.raises(ValueError, match="unknown severity"):
        CaptureConfig().with_level("app", "LOUD")
    with pytest.raises(TypeError, match="channel names"):
        CaptureConfig().with_level(1, "INFO")  # type: ignore[arg-type]


def test_config_from_dict() -> None:
    config = config_from_dict(
        {"version": 1, "levels": {"app": "DEBUG", "": "WARN"}, "use_test_id": False}
    )
    assert dict(config.levels) == {"app": Severity.FINE, "": Severity.WARNING}
    assert config.use_test_id is False


@pytest.mark.parametrize(
    ("config", "error", "match"),
    [
        ([("levels", {})], TypeError, "config must be a mapping"),
        ({1: "x"}, TypeError, "config keys must be strings"),
        ({"handlers": {}}, ValueError, "unsupported keys"),
        ({"version": 2}, ValueError, "unsupported configuration version"),
        ({"levels": b"app"}, TypeError, "levels must be a mapping"),
        ({"levels": {1: "INFO"}}, TypeError, "levels keys must be strings"),
        ({"levels": {"app": 20}}, TypeError, "must be a string"),
        ({"levels": {"app": "LOUD"}}, ValueError, "unknown severity"),
        ({"use_test_id": "yes"}, TypeError, "use_test_id must be a bool"),
    ],
)
def test_config_from_dict_errors(
    config: typ.Any, error: type[Exception], match: str
) -> None:
    with pytest.raises(error, match=match):
        config_from_dict(config)


def test_parse_level_lines() -> None:
    levels = parse_level_lines(
        ["", "# comment", "app = INFO", "=WARNING", "app=debug"]
    )
    assert levels == {"app": Severity.FINE, "": Severity.WARNING}


def test_parse_level_lines_rejects_missing_separator() -> None:
    with pytest.raises(ValueError, match="expected 'channel=LEVEL'"):
        parse_level_lines(["app INFO"])
