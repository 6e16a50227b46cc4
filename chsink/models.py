"""Immutable value objects produced while preparing a sink."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Iterator, Mapping

DISTRIBUTED_ENGINE = "Distributed"
DEFAULT_BATCH_SIZE = 20_000


@dataclass(frozen=True, slots=True)
class Endpoint:
    """One reachable cluster node for a database."""

    host: str
    port: int
    database: str

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True, slots=True)
class NoCredential:
    """Connect without authentication."""

    def as_properties(self) -> dict[str, str]:
        return {}


@dataclass(frozen=True, slots=True)
class BasicCredential:
    """Username/password pair; both halves are always present."""

    username: str
    password: str = field(repr=False)

    def as_properties(self) -> dict[str, str]:
        return {"user": self.username, "password": self.password}


Credential = NoCredential | BasicCredential


class TableSchema(Mapping[str, str]):
    """Read-only column name -> type mapping in the table's column order."""

    __slots__ = ("_columns",)

    def __init__(self, columns: Iterable[tuple[str, str]] | Mapping[str, str] = ()) -> None:
        pairs = columns.items() if isinstance(columns, Mapping) else columns
        parsed: dict[str, str] = {}
        for name, type_name in pairs:
            if name in parsed:
                raise ValueError(f"Duplicate column '{name}' in table schema")
            parsed[str(name)] = str(type_name)
        self._columns = parsed

    def __getitem__(self, name: str) -> str:
        return self._columns[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._columns)

    def __len__(self) -> int:
        return len(self._columns)

    def __repr__(self) -> str:
        return f"TableSchema({list(self._columns.items())!r})"

    @property
    def columns(self) -> tuple[str, ...]:
        return tuple(self._columns)


@dataclass(frozen=True, slots=True)
class TableInfo:
    """Table metadata as reported by ``system.tables``."""

    database: str
    name: str
    engine: str
    engine_full: str = ""

    @property
    def is_distributed(self) -> bool:
        return self.engine == DISTRIBUTED_ENGINE


@dataclass(frozen=True, slots=True)
class DistributedEngine:
    """Parsed arguments of a ``Distributed(cluster, db, table[, key])`` definition."""

    cluster: str
    database: str
    table: str
    sharding_expression: str | None = None
    sharding_columns: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Shard:
    """Shard the writer targets; index is 1-based."""

    index: int
    count: int
    endpoint: Endpoint

    def __post_init__(self) -> None:
        if self.count < 1 or not 1 <= self.index <= self.count:
            raise ValueError(f"Invalid shard {self.index}/{self.count}")


@dataclass(frozen=True, slots=True)
class ShardMetadata:
    """Routing metadata handed to the writer."""

    sharding_key: str | None
    sharding_key_type: str | None
    database: str
    table: str
    split_mode: bool
    shard: Shard
    credential: Credential = field(default_factory=NoCredential)
    distributed: DistributedEngine | None = None

    def __post_init__(self) -> None:
        if (self.sharding_key is None) != (self.sharding_key_type is None):
            raise ValueError("sharding_key and sharding_key_type must be set together")


@dataclass(frozen=True, slots=True)
class WritePlan:
    """Fully resolved configuration consumed by the row writer."""

    connection_properties: Mapping[str, str]
    fields: tuple[str, ...]
    schema: TableSchema
    shard_metadata: ShardMetadata
    batch_size: int = DEFAULT_BATCH_SIZE
    endpoints: tuple[Endpoint, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.connection_properties, MappingProxyType):
            object.__setattr__(
                self,
                "connection_properties",
                MappingProxyType(dict(self.connection_properties)),
            )

    def describe(self) -> dict[str, Any]:
        """Return a JSON-friendly summary with secrets masked."""

        metadata = self.shard_metadata
        properties = {
            key: ("***" if key == "password" else value)
            for key, value in self.connection_properties.items()
        }
        distributed = metadata.distributed
        return {
            "database": metadata.database,
            "table": metadata.table,
            "endpoints": [endpoint.address for endpoint in self.endpoints],
            "fields": list(self.fields),
            "schema": dict(self.schema),
            "batch_size": self.batch_size,
            "connection_properties": properties,
            "shard": {
                "split_mode": metadata.split_mode,
                "sharding_key": metadata.sharding_key,
                "sharding_key_type": metadata.sharding_key_type,
                "index": metadata.shard.index,
                "count": metadata.shard.count,
                "endpoint": metadata.shard.endpoint.address,
                "distributed": None
                if distributed is None
                else {
                    "cluster": distributed.cluster,
                    "database": distributed.database,
                    "table": distributed.table,
                    "sharding_expression": distributed.sharding_expression,
                },
            },
        }


__all__ = [
    "BasicCredential",
    "Credential",
    "DEFAULT_BATCH_SIZE",
    "DISTRIBUTED_ENGINE",
    "DistributedEngine",
    "Endpoint",
    "NoCredential",
    "Shard",
    "ShardMetadata",
    "TableInfo",
    "TableSchema",
    "WritePlan",
]
