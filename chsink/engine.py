"""Helpers for reading ClickHouse table engine definitions."""

from __future__ import annotations

import logging
import re

from sqlglot import exp, parse_one
from sqlglot.errors import ParseError

from .models import DISTRIBUTED_ENGINE, DistributedEngine, TableInfo

LOG = logging.getLogger(__name__)

DIALECT = "clickhouse"

_SETTINGS_CLAUSE = re.compile(r"\s+SETTINGS\s+.*$", re.IGNORECASE | re.DOTALL)


def parse_distributed_engine(info: TableInfo) -> DistributedEngine | None:
    """Parse ``Distributed(cluster, db, table[, sharding_key])`` from ``engine_full``.

    Returns ``None`` for other engines or definitions sqlglot cannot read.
    """

    if not info.is_distributed or not info.engine_full:
        return None
    definition = _SETTINGS_CLAUSE.sub("", info.engine_full.strip())
    try:
        node = parse_one(definition, read=DIALECT)
    except ParseError:
        LOG.warning(
            "Unable to parse engine definition",
            extra={"table": f"{info.database}.{info.name}", "engine_full": info.engine_full},
        )
        return None
    if not isinstance(node, exp.Anonymous) or node.name != DISTRIBUTED_ENGINE:
        return None
    args = list(node.expressions)
    if len(args) < 3:
        LOG.warning(
            "Distributed engine definition is missing arguments",
            extra={"table": f"{info.database}.{info.name}", "engine_full": info.engine_full},
        )
        return None

    cluster = _literal(args[0]) or ""
    database = _literal(args[1]) or info.database
    table = _literal(args[2]) or ""
    sharding_expression: str | None = None
    sharding_columns: tuple[str, ...] = ()
    if len(args) > 3:
        key = args[3]
        raw_args = _split_arguments(definition)
        sharding_expression = raw_args[3] if len(raw_args) > 3 else key.sql(dialect=DIALECT)
        sharding_columns = tuple(dict.fromkeys(column.name for column in key.find_all(exp.Column)))
    return DistributedEngine(
        cluster=cluster,
        database=database,
        table=table,
        sharding_expression=sharding_expression,
        sharding_columns=sharding_columns,
    )


def _literal(node: exp.Expression) -> str | None:
    if isinstance(node, (exp.Literal, exp.Column, exp.Identifier)):
        return node.name or None
    return None


def _split_arguments(definition: str) -> list[str]:
    """Return the top-level argument texts of ``Engine(arg, ...)`` as written.

    sqlglot regenerates some ClickHouse functions under other names (``rand()``
    becomes ``randCanonical()``), so the sharding key is kept verbatim.
    """

    start = definition.find("(")
    if start < 0:
        return []
    args: list[str] = []
    depth = 0
    quote: str | None = None
    escaped = False
    current = start + 1
    for index in range(start + 1, len(definition)):
        char = definition[index]
        if quote is not None:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == quote:
                quote = None
            continue
        if char in "'\"`":
            quote = char
        elif char in "([":
            depth += 1
        elif char in ")]":
            if depth == 0:
                args.append(definition[current:index].strip())
                return args
            depth -= 1
        elif char == "," and depth == 0:
            args.append(definition[current:index].strip())
            current = index + 1
    return args


__all__ = ["DIALECT", "parse_distributed_engine"]
