"""Select the columns the writer emits."""

from __future__ import annotations

from typing import Sequence

from .errors import ConfigurationError
from .models import TableSchema


def reconcile_fields(declared: Sequence[str] | None, schema: TableSchema, table: str) -> tuple[str, ...]:
    """Return the write order: declared fields as given, or every schema column."""

    if not declared:
        return schema.columns
    for field in declared:
        if field not in schema:
            raise ConfigurationError(f"Field '{field}' does not exist in table {table}")
    return tuple(declared)


__all__ = ["reconcile_fields"]
