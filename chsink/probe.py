"""Live schema introspection against one cluster endpoint."""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType
from typing import Any, Coroutine, Mapping, Protocol, Sequence, TypeVar, runtime_checkable

import asyncpg
import tomllib
from sqlglot import exp

from .engine import DIALECT
from .errors import ConfigurationError, SchemaProbeError, UnsupportedEngineError
from .models import Credential, Endpoint, TableInfo, TableSchema

LOG = logging.getLogger(__name__)

T = TypeVar("T")


@runtime_checkable
class ProbeConnection(Protocol):
    """Open connection able to answer introspection queries."""

    def fetch_schema(self, database: str, table: str) -> TableSchema:
        """Return the table's columns in position order (empty if it does not exist)."""

    def fetch_table(self, database: str, table: str) -> TableInfo | None:
        """Return engine metadata for the table, or None if it does not exist."""

    def close(self) -> None:
        """Release the connection."""


@runtime_checkable
class ProbeBackend(Protocol):
    """Factory for transient probe connections."""

    def open(
        self,
        endpoint: Endpoint,
        credential: Credential,
        properties: Mapping[str, str],
    ) -> ProbeConnection:
        """Connect to the endpoint; raise SchemaProbeError when unreachable."""


def columns_query(database: str, table: str) -> str:
    """SQL listing a table's columns from ``system.columns``."""

    return (
        exp.select(exp.column("name", quoted=True), exp.column("type", quoted=True))
        .from_("system.columns")
        .where(_matches("database", database))
        .where(_matches("table", table))
        .order_by("position")
        .sql(dialect=DIALECT)
    )


def table_query(database: str, table: str) -> str:
    """SQL reading a table's engine from ``system.tables``."""

    return (
        exp.select(exp.column("engine", quoted=True), exp.column("engine_full", quoted=True))
        .from_("system.tables")
        .where(_matches("database", database))
        .where(_matches("name", table))
        .sql(dialect=DIALECT)
    )


def _matches(column: str, value: str) -> exp.Expression:
    return exp.column(column, quoted=True).eq(exp.Literal.string(value))


class SchemaProbe:
    """Scoped probe connection; always closed when the ``with`` block exits."""

    def __init__(
        self,
        backend: ProbeBackend,
        endpoint: Endpoint,
        credential: Credential,
        properties: Mapping[str, str] | None = None,
    ) -> None:
        self._backend = backend
        self._endpoint = endpoint
        self._credential = credential
        self._properties = dict(properties or {})
        self._connection: ProbeConnection | None = None

    def __enter__(self) -> SchemaProbe:
        LOG.debug("Opening probe connection", extra={"endpoint": self._endpoint.address})
        try:
            self._connection = self._backend.open(self._endpoint, self._credential, self._properties)
        except SchemaProbeError:
            raise
        except Exception as exc:
            raise SchemaProbeError(f"Failed to connect to {self._endpoint.address}: {exc}") from exc
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        connection, self._connection = self._connection, None
        if connection is not None:
            connection.close()
            LOG.debug("Closed probe connection", extra={"endpoint": self._endpoint.address})

    @property
    def endpoint(self) -> Endpoint:
        return self._endpoint

    def table_schema(self, database: str, table: str) -> TableSchema:
        """Return the live schema, failing if the table does not exist."""

        connection = self._require_connection()
        try:
            schema = connection.fetch_schema(database, table)
        except SchemaProbeError:
            raise
        except Exception as exc:
            raise SchemaProbeError(
                f"Failed to read schema of {database}.{table} from {self._endpoint.address}: {exc}"
            ) from exc
        if not schema:
            raise SchemaProbeError(f"Table {database}.{table} does not exist on {self._endpoint.address}")
        return schema

    def require_distributed(self, database: str, table: str) -> TableInfo:
        """Return table metadata, failing unless the engine is ``Distributed``."""

        connection = self._require_connection()
        try:
            info = connection.fetch_table(database, table)
        except SchemaProbeError:
            raise
        except Exception as exc:
            raise SchemaProbeError(
                f"Failed to read engine of {database}.{table} from {self._endpoint.address}: {exc}"
            ) from exc
        if info is None:
            raise SchemaProbeError(f"Table {database}.{table} does not exist on {self._endpoint.address}")
        if not info.is_distributed:
            raise UnsupportedEngineError(database, table, info.engine)
        return info

    def _require_connection(self) -> ProbeConnection:
        if self._connection is None:
            raise SchemaProbeError("Probe connection is not open; use SchemaProbe as a context manager")
        return self._connection


class AsyncpgProbeBackend:
    """Probe backend speaking ClickHouse's PostgreSQL interface via asyncpg."""

    def __init__(self, *, connect_timeout: float = 3.0) -> None:
        self._connect_timeout = connect_timeout
        self._loop = asyncio.new_event_loop()
        self._loop_thread = threading.Thread(
            target=self._loop.run_forever,
            name="chsink-asyncpg-probe",
            daemon=True,
        )
        self._loop_thread.start()

    def open(
        self,
        endpoint: Endpoint,
        credential: Credential,
        properties: Mapping[str, str],
    ) -> AsyncpgProbeConnection:
        kwargs: dict[str, Any] = {
            "host": endpoint.host,
            "port": endpoint.port,
            "database": endpoint.database,
            "timeout": self._connect_timeout,
        }
        auth = credential.as_properties()
        if auth:
            kwargs["user"] = auth["user"]
            kwargs["password"] = auth["password"]
        if properties:
            kwargs["server_settings"] = dict(properties)
        try:
            conn = self.run(asyncpg.connect(**kwargs))
        except Exception as exc:
            raise SchemaProbeError(f"Failed to connect to {endpoint.address}: {exc}") from exc
        return AsyncpgProbeConnection(self, conn, endpoint)

    def run(self, coro: Coroutine[Any, Any, T]) -> T:
        """Execute a coroutine on the backend loop and wait for its result."""

        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result()

    def shutdown(self) -> None:
        """Stop the background event loop."""

        if not self._loop.is_running():
            return
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._loop_thread.join(timeout=1)

    def __del__(self) -> None:  # pragma: no cover - best effort cleanup
        try:
            self.shutdown()
        except Exception:
            pass


class AsyncpgProbeConnection:
    """One asyncpg connection bound to the backend's event loop."""

    def __init__(self, backend: AsyncpgProbeBackend, conn: Any, endpoint: Endpoint) -> None:
        self._backend = backend
        self._conn = conn
        self._endpoint = endpoint

    def fetch_schema(self, database: str, table: str) -> TableSchema:
        rows = self._fetch(columns_query(database, table), database, table)
        return TableSchema((str(row["name"]), str(row["type"])) for row in rows)

    def fetch_table(self, database: str, table: str) -> TableInfo | None:
        rows = self._fetch(table_query(database, table), database, table)
        if not rows:
            return None
        row = rows[0]
        return TableInfo(
            database=database,
            name=table,
            engine=str(row["engine"]),
            engine_full=str(row["engine_full"] or ""),
        )

    def close(self) -> None:
        try:
            self._backend.run(self._conn.close())
        except Exception:  # pragma: no cover - best effort
            LOG.debug("Ignoring error while closing probe connection", exc_info=True)

    def _fetch(self, query: str, database: str, table: str) -> Sequence[Mapping[str, Any]]:
        try:
            return self._backend.run(self._conn.fetch(query))
        except Exception as exc:
            raise SchemaProbeError(
                f"Query against {database}.{table} on {self._endpoint.address} failed: {exc}"
            ) from exc


@dataclass(frozen=True, slots=True)
class StaticTable:
    """Catalog entry served by StaticProbeBackend."""

    columns: tuple[tuple[str, str], ...]
    engine: str = "MergeTree"
    engine_full: str = ""


class StaticProbeBackend:
    """In-memory probe backend for offline planning against a schema snapshot."""

    def __init__(self, tables: Mapping[str, StaticTable] | None = None) -> None:
        self._tables = dict(tables or {})
        self.opened = 0
        self.closed = 0
        self.engine_lookups = 0

    @classmethod
    def from_toml(cls, path: Path) -> StaticProbeBackend:
        """Load ``[tables."db.table"]`` entries with ``columns``/``engine``/``engine_full``."""

        try:
            with path.open("rb") as handle:
                raw = tomllib.load(handle)
        except (tomllib.TOMLDecodeError, OSError) as exc:
            raise ConfigurationError(f"Schema snapshot '{path}' could not be read: {exc}") from exc
        tables: dict[str, StaticTable] = {}
        entries = raw.get("tables", {})
        if not isinstance(entries, dict):
            raise ConfigurationError(f"Schema snapshot '{path}' has no [tables] section")
        for name, entry in entries.items():
            if not isinstance(entry, dict):
                continue
            columns = tuple((str(col[0]), str(col[1])) for col in entry.get("columns", ()) if len(col) == 2)
            tables[str(name)] = StaticTable(
                columns=columns,
                engine=str(entry.get("engine", "MergeTree")),
                engine_full=str(entry.get("engine_full", "")),
            )
        return cls(tables)

    def open(
        self,
        endpoint: Endpoint,
        credential: Credential,
        properties: Mapping[str, str],
    ) -> StaticProbeConnection:
        self.opened += 1
        return StaticProbeConnection(self)

    def _lookup(self, database: str, table: str) -> StaticTable | None:
        return self._tables.get(f"{database}.{table}")


class StaticProbeConnection:
    """Connection handed out by StaticProbeBackend."""

    def __init__(self, backend: StaticProbeBackend) -> None:
        self._backend = backend

    def fetch_schema(self, database: str, table: str) -> TableSchema:
        entry = self._backend._lookup(database, table)
        return TableSchema(entry.columns if entry else ())

    def fetch_table(self, database: str, table: str) -> TableInfo | None:
        self._backend.engine_lookups += 1
        entry = self._backend._lookup(database, table)
        if entry is None:
            return None
        return TableInfo(database=database, name=table, engine=entry.engine, engine_full=entry.engine_full)

    def close(self) -> None:
        self._backend.closed += 1


__all__ = [
    "AsyncpgProbeBackend",
    "AsyncpgProbeConnection",
    "ProbeBackend",
    "ProbeConnection",
    "SchemaProbe",
    "StaticProbeBackend",
    "StaticProbeConnection",
    "StaticTable",
    "columns_query",
    "table_query",
]
