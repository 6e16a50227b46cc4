"""Tests for sink plugin discovery."""

from __future__ import annotations

import importlib.metadata as metadata

import pytest

from chsink.probe import StaticProbeBackend
from chsink.registry import ENTRY_POINT_GROUP, SinkRegistry
from chsink.sink import ClickhouseSink

ENTRY_POINT = metadata.EntryPoint(
    name="clickhouse",
    value="chsink.sink:ClickhouseSink",
    group=ENTRY_POINT_GROUP,
)


@pytest.fixture(autouse=True)
def fake_entry_points(monkeypatch: pytest.MonkeyPatch) -> None:
    """Force discovery to use the packaged sink only."""

    monkeypatch.setattr(metadata, "entry_points", lambda: metadata.EntryPoints((ENTRY_POINT,)))


def test_discover_returns_entry_point_sinks() -> None:
    discovered = SinkRegistry(builtin_sinks=()).discover()

    assert [sink.name for sink in discovered] == ["clickhouse"]
    assert discovered[0].source == "chsink.sink:ClickhouseSink"
    assert discovered[0].factory is ClickhouseSink


def test_builtin_sink_is_discovered(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(metadata, "entry_points", lambda: metadata.EntryPoints(()))

    registry = SinkRegistry()

    assert registry.names == ("clickhouse",)


def test_create_returns_fresh_instances() -> None:
    registry = SinkRegistry()
    backend = StaticProbeBackend()

    first = registry.create("clickhouse", backend=backend)
    second = registry.create("clickhouse", backend=backend)

    assert isinstance(first, ClickhouseSink)
    assert first is not second


def test_unknown_sink_lists_known_names() -> None:
    with pytest.raises(LookupError, match="clickhouse"):
        SinkRegistry().create("kafka")


def test_incompatible_sink_is_skipped(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(ClickhouseSink, "min_core", "9.9.9")

    registry = SinkRegistry(core_version="0.1.0")

    assert registry.discover() == []
