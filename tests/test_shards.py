"""Tests for shard metadata resolution."""

from __future__ import annotations

import pytest

from chsink.errors import ConfigurationError, UnsupportedEngineError
from chsink.models import BasicCredential, Endpoint, NoCredential, TableInfo, TableSchema
from chsink.shards import resolve_shard_metadata

ENDPOINT = Endpoint(host="ch1", port=9005, database="db")
SCHEMA = TableSchema([("id", "UInt64"), ("user_id", "UInt32"), ("name", "String")])
DISTRIBUTED = TableInfo("db", "events", "Distributed", "Distributed('main', 'db', 'events_local', rand())")


def _resolve(**overrides: object):
    params: dict[str, object] = {
        "split_mode": False,
        "sharding_key": None,
        "schema": SCHEMA,
        "database": "db",
        "table": "events",
        "endpoint": ENDPOINT,
    }
    params.update(overrides)
    return resolve_shard_metadata(**params)  # type: ignore[arg-type]


def test_direct_write_is_a_single_shard() -> None:
    metadata = _resolve()

    assert metadata.split_mode is False
    assert metadata.sharding_key is None
    assert metadata.sharding_key_type is None
    assert (metadata.shard.index, metadata.shard.count) == (1, 1)
    assert metadata.shard.endpoint == ENDPOINT
    assert metadata.credential == NoCredential()
    assert metadata.distributed is None


def test_sharding_key_ignored_without_split_mode() -> None:
    metadata = _resolve(sharding_key="user_id")

    assert metadata.sharding_key is None
    assert metadata.sharding_key_type is None


def test_split_mode_carries_key_type() -> None:
    credential = BasicCredential("writer", "s3cret")

    metadata = _resolve(split_mode=True, sharding_key="user_id", table_info=DISTRIBUTED, credential=credential)

    assert metadata.split_mode is True
    assert metadata.sharding_key == "user_id"
    assert metadata.sharding_key_type == "UInt32"
    assert metadata.credential == credential
    assert metadata.distributed is not None
    assert metadata.distributed.table == "events_local"


def test_split_mode_without_key_leaves_routing_to_writer() -> None:
    metadata = _resolve(split_mode=True, table_info=DISTRIBUTED)

    assert metadata.sharding_key is None
    assert metadata.sharding_key_type is None


def test_unknown_sharding_key() -> None:
    with pytest.raises(ConfigurationError, match="'tenant_id'.*db.events"):
        _resolve(split_mode=True, sharding_key="tenant_id", table_info=DISTRIBUTED)


@pytest.mark.parametrize("table_info", [None, TableInfo("db", "events", "ReplicatedMergeTree")])
def test_split_mode_requires_distributed(table_info: TableInfo | None) -> None:
    with pytest.raises(UnsupportedEngineError):
        _resolve(split_mode=True, table_info=table_info)
