"""Errors raised while preparing a sink for writing."""

from __future__ import annotations


class PrepareError(RuntimeError):
    """Base error for failures that must abort sink startup."""


class ConfigurationError(PrepareError):
    """Raised when options are missing, contradictory, or name unknown columns."""


class UnsupportedEngineError(PrepareError):
    """Raised when split mode is requested over a non-distributed table."""

    def __init__(self, database: str, table: str, engine: str) -> None:
        super().__init__(
            f"Split mode requires a 'Distributed' table engine, but {database}.{table} uses '{engine}'"
        )
        self.database = database
        self.table = table
        self.engine = engine


class SchemaProbeError(PrepareError):
    """Raised when the live schema cannot be read from the cluster."""


class SinkStateError(PrepareError):
    """Raised when a sink is used out of order (e.g. writer before prepare)."""


__all__ = [
    "ConfigurationError",
    "PrepareError",
    "SchemaProbeError",
    "SinkStateError",
    "UnsupportedEngineError",
]
