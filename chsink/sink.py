"""Sink plugin contract and the ClickHouse sink."""

from __future__ import annotations

import logging
import pickle
from typing import Any, Callable, Generic, Mapping, NamedTuple, Protocol, Sequence, TypeVar, runtime_checkable

from .config import SinkConfig
from .errors import SinkStateError
from .models import WritePlan
from .plan import SinkPreparer
from .probe import AsyncpgProbeBackend, ProbeBackend

LOG = logging.getLogger(__name__)

StateT = TypeVar("StateT")


class RowType(NamedTuple):
    """Shape of the rows the upstream stage produces."""

    field_names: tuple[str, ...]
    field_types: tuple[str, ...]


class WriterContext(NamedTuple):
    """Runtime details for one writer instance."""

    subtask_index: int = 0
    parallelism: int = 1


@runtime_checkable
class SinkWriter(Protocol):
    """Writer component fed by the runtime; implemented outside this package."""

    def write(self, row: Sequence[Any]) -> None: ...

    def snapshot_state(self) -> Sequence[Any]: ...

    def close(self) -> None: ...


WriterFactory = Callable[[WritePlan, WriterContext, Sequence[Any]], SinkWriter]


class StateSerializer(Protocol[StateT]):
    """Converts writer state to bytes for checkpoints."""

    def serialize(self, state: StateT) -> bytes: ...

    def deserialize(self, payload: bytes) -> StateT: ...


class PickleStateSerializer(Generic[StateT]):
    """Default serializer for writer state objects."""

    def serialize(self, state: StateT) -> bytes:
        return pickle.dumps(state)

    def deserialize(self, payload: bytes) -> StateT:
        return pickle.loads(payload)


class SinkPlugin(Protocol):
    """Capabilities a target store exposes to the orchestration runtime."""

    name: str
    version: str
    min_core: str

    def prepare(self, options: SinkConfig | Mapping[str, Any]) -> None: ...

    def create_writer(self, context: WriterContext) -> SinkWriter: ...

    def restore_writer(self, context: WriterContext, states: Sequence[Any]) -> SinkWriter: ...

    def state_serializer(self) -> StateSerializer[Any] | None: ...

    def consumed_type(self) -> RowType | None: ...

    def set_type_info(self, row_type: RowType) -> None: ...


class ClickhouseSink:
    """Sink that prepares a write plan for a ClickHouse table."""

    name = "clickhouse"
    version = "0.1.0"
    min_core = "0.1.0"

    def __init__(
        self,
        *,
        backend: ProbeBackend | None = None,
        writer_factory: WriterFactory | None = None,
    ) -> None:
        self._backend = backend
        self._writer_factory = writer_factory
        self._plan: WritePlan | None = None
        self._row_type: RowType | None = None

    @property
    def plan(self) -> WritePlan | None:
        """Write plan produced by prepare(), if it has run."""

        return self._plan

    def prepare(self, options: SinkConfig | Mapping[str, Any]) -> None:
        backend = self._backend
        owned = backend is None
        if backend is None:
            backend = AsyncpgProbeBackend()
        try:
            self._plan = SinkPreparer(backend).prepare(options)
        finally:
            if owned and isinstance(backend, AsyncpgProbeBackend):
                backend.shutdown()

    def create_writer(self, context: WriterContext) -> SinkWriter:
        return self._build_writer(context, ())

    def restore_writer(self, context: WriterContext, states: Sequence[Any]) -> SinkWriter:
        LOG.debug("Restoring writer", extra={"subtask": context.subtask_index, "states": len(states)})
        return self._build_writer(context, tuple(states))

    def state_serializer(self) -> StateSerializer[Any] | None:
        return PickleStateSerializer()

    def consumed_type(self) -> RowType | None:
        return self._row_type

    def set_type_info(self, row_type: RowType) -> None:
        self._row_type = row_type

    def _build_writer(self, context: WriterContext, states: Sequence[Any]) -> SinkWriter:
        if self._plan is None:
            raise SinkStateError(f"Sink '{self.name}' must be prepared before creating writers")
        if self._writer_factory is None:
            raise SinkStateError(f"Sink '{self.name}' has no writer factory configured")
        return self._writer_factory(self._plan, context, states)


__all__ = [
    "ClickhouseSink",
    "PickleStateSerializer",
    "RowType",
    "SinkPlugin",
    "SinkWriter",
    "StateSerializer",
    "WriterContext",
    "WriterFactory",
]
