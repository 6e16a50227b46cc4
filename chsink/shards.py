"""Resolve how rows are routed to shards."""

from __future__ import annotations

import logging

from .engine import parse_distributed_engine
from .errors import ConfigurationError, UnsupportedEngineError
from .models import Credential, Endpoint, NoCredential, Shard, ShardMetadata, TableInfo, TableSchema

LOG = logging.getLogger(__name__)


def resolve_shard_metadata(
    *,
    split_mode: bool,
    sharding_key: str | None,
    schema: TableSchema,
    database: str,
    table: str,
    endpoint: Endpoint,
    credential: Credential | None = None,
    table_info: TableInfo | None = None,
) -> ShardMetadata:
    """Build shard metadata for the writer.

    Without split mode the writer targets the endpoint directly as a single
    shard. With split mode the table must be ``Distributed``; a declared
    sharding key must be one of the table's columns and carries its type.
    Without a declared key, per-row routing is left to the writer.
    """

    credential = credential or NoCredential()
    shard = Shard(index=1, count=1, endpoint=endpoint)

    if not split_mode:
        if sharding_key is not None:
            LOG.warning(
                "Ignoring sharding key because split mode is disabled",
                extra={"sharding_key": sharding_key, "table": f"{database}.{table}"},
            )
        return ShardMetadata(
            sharding_key=None,
            sharding_key_type=None,
            database=database,
            table=table,
            split_mode=False,
            shard=shard,
            credential=credential,
        )

    if table_info is None or not table_info.is_distributed:
        engine = table_info.engine if table_info is not None else "unknown"
        raise UnsupportedEngineError(database, table, engine)

    key_type: str | None = None
    if sharding_key is not None:
        if sharding_key not in schema:
            raise ConfigurationError(
                f"Sharding key '{sharding_key}' does not exist in table {database}.{table}"
            )
        key_type = schema[sharding_key]

    distributed = parse_distributed_engine(table_info)
    if sharding_key is None and distributed is not None and distributed.sharding_expression:
        LOG.info(
            "No sharding key declared; routing is left to the writer",
            extra={"table": f"{database}.{table}", "sharding_expression": distributed.sharding_expression},
        )
    return ShardMetadata(
        sharding_key=sharding_key,
        sharding_key_type=key_type,
        database=database,
        table=table,
        split_mode=True,
        shard=shard,
        credential=credential,
        distributed=distributed,
    )


__all__ = ["resolve_shard_metadata"]
