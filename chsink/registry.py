"""Discovery of sink plugins exposed via entry points."""

from __future__ import annotations

import importlib.metadata as metadata
import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from chsink import __version__ as CORE_VERSION

from .sink import ClickhouseSink, SinkPlugin

LOG = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "chsink.sinks"

SinkFactory = Callable[..., SinkPlugin]


def _parse_version(value: str) -> tuple[int, int, int]:
    """Parse a dotted string into a comparable tuple."""

    parts = value.split(".")
    ints: list[int] = []
    for chunk in parts[:3]:
        try:
            ints.append(int(chunk))
        except ValueError:
            ints.append(0)
    while len(ints) < 3:
        ints.append(0)
    return ints[0], ints[1], ints[2]


@dataclass(slots=True, frozen=True)
class DiscoveredSink:
    """Sink plugin found during discovery."""

    name: str
    version: str
    min_core: str
    factory: SinkFactory
    source: str


class SinkRegistry:
    """Finds sink plugins and builds fresh instances by name."""

    def __init__(
        self,
        *,
        core_version: str = CORE_VERSION,
        entry_point_group: str = ENTRY_POINT_GROUP,
        builtin_sinks: Iterable[SinkFactory] | None = (ClickhouseSink,),
    ) -> None:
        self._core_version = core_version
        self._entry_point_group = entry_point_group
        self._builtin_sinks = list(builtin_sinks or [])
        self._sinks: dict[str, DiscoveredSink] | None = None

    def discover(self) -> list[DiscoveredSink]:
        """Enumerate compatible sinks from entry points and built-ins."""

        discovered: dict[str, DiscoveredSink] = {}
        group = metadata.entry_points().select(group=self._entry_point_group)
        for entry_point in sorted(group, key=lambda ep: ep.name):
            factory = entry_point.load()
            sink = self._describe(factory, source=entry_point.value)
            if self._is_compatible(sink):
                discovered[sink.name] = sink
        for factory in self._builtin_sinks:
            sink = self._describe(factory, source="builtin")
            if sink.name not in discovered and self._is_compatible(sink):
                discovered[sink.name] = sink
        self._sinks = discovered
        return list(discovered.values())

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self._ensure_discovered())

    def create(self, name: str, **kwargs: Any) -> SinkPlugin:
        """Return a new sink instance for ``name``."""

        sinks = self._ensure_discovered()
        try:
            sink = sinks[name]
        except KeyError:
            known = ", ".join(sorted(sinks)) or "none"
            raise LookupError(f"Unknown sink '{name}' (known sinks: {known})") from None
        return sink.factory(**kwargs)

    def _ensure_discovered(self) -> dict[str, DiscoveredSink]:
        if self._sinks is None:
            self.discover()
        assert self._sinks is not None
        return self._sinks

    def _describe(self, factory: Any, *, source: str) -> DiscoveredSink:
        if not callable(factory):
            raise TypeError(f"Sink entry '{source}' is not callable")
        return DiscoveredSink(
            name=getattr(factory, "name"),
            version=getattr(factory, "version", "0.0.0"),
            min_core=getattr(factory, "min_core", "0.0.0"),
            factory=factory,
            source=source,
        )

    def _is_compatible(self, sink: DiscoveredSink) -> bool:
        if _parse_version(self._core_version) < _parse_version(sink.min_core):
            LOG.warning(
                "Skipping sink due to min_core mismatch",
                extra={"sink": sink.name, "min_core": sink.min_core},
            )
            return False
        return True


__all__ = ["DiscoveredSink", "ENTRY_POINT_GROUP", "SinkRegistry"]
