"""Tests for write plan preparation."""

from __future__ import annotations

import logging

import pytest

from chsink.config import SinkConfig
from chsink.errors import ConfigurationError, SchemaProbeError, SinkStateError, UnsupportedEngineError
from chsink.models import BasicCredential, Endpoint, NoCredential, Shard, ShardMetadata, TableSchema
from chsink.plan import PreparationState, SinkPreparer, assemble_write_plan, prepare_write_plan
from chsink.probe import StaticProbeBackend, StaticProbeConnection


def test_direct_write_scenario(backend: StaticProbeBackend, base_options: dict[str, object]) -> None:
    plan = prepare_write_plan(base_options, backend)

    assert plan.fields == ("id", "user_id", "name", "created_at")
    assert set(plan.fields) == set(plan.schema)
    assert plan.batch_size == 20000
    assert (plan.shard_metadata.shard.index, plan.shard_metadata.shard.count) == (1, 1)
    assert plan.shard_metadata.shard.endpoint.host == "ch1"
    assert plan.connection_properties == {}
    assert backend.engine_lookups == 0
    assert (backend.opened, backend.closed) == (1, 1)


def test_state_history_on_success(backend: StaticProbeBackend, base_options: dict[str, object]) -> None:
    preparer = SinkPreparer(backend)

    preparer.prepare(base_options)

    assert preparer.history == (
        PreparationState.UNCONFIGURED,
        PreparationState.VALIDATING,
        PreparationState.CONNECTING,
        PreparationState.SCHEMA_PROBED,
        PreparationState.FIELDS_RECONCILED,
        PreparationState.PLAN_ASSEMBLED,
        PreparationState.PROBE_CLOSED,
    )


def test_split_mode_state_history(backend: StaticProbeBackend, base_options: dict[str, object]) -> None:
    preparer = SinkPreparer(backend)

    preparer.prepare({**base_options, "table": "events_all", "split_mode": True})

    assert preparer.history == (
        PreparationState.UNCONFIGURED,
        PreparationState.VALIDATING,
        PreparationState.CONNECTING,
        PreparationState.SCHEMA_PROBED,
        PreparationState.SHARD_RESOLVED,
        PreparationState.FIELDS_RECONCILED,
        PreparationState.PLAN_ASSEMBLED,
        PreparationState.PROBE_CLOSED,
    )


def test_preparer_runs_once(backend: StaticProbeBackend, base_options: dict[str, object]) -> None:
    preparer = SinkPreparer(backend)
    preparer.prepare(base_options)

    with pytest.raises(SinkStateError, match="exactly once"):
        preparer.prepare(base_options)

    assert backend.opened == 1


def test_ignored_sharding_key_warns_once(
    backend: StaticProbeBackend, base_options: dict[str, object], caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.WARNING, logger="chsink"):
        plan = prepare_write_plan({**base_options, "sharding_key": "user_id"}, backend)

    assert plan.shard_metadata.sharding_key is None
    warnings = [record for record in caplog.records if "sharding key" in record.getMessage().lower()]
    assert len(warnings) == 1


def test_bulk_size_and_fields_are_honoured(backend: StaticProbeBackend, base_options: dict[str, object]) -> None:
    plan = prepare_write_plan({**base_options, "bulk_size": 500, "fields": ["name", "id"]}, backend)

    assert plan.batch_size == 500
    assert plan.fields == ("name", "id")


def test_credentials_reach_connection_properties(
    backend: StaticProbeBackend, base_options: dict[str, object]
) -> None:
    options = {
        **base_options,
        "username": "writer",
        "password": "s3cret",
        "clickhouse": {"socket_timeout": 50000},
    }

    plan = prepare_write_plan(options, backend)

    assert plan.connection_properties == {"socket_timeout": "50000", "user": "writer", "password": "s3cret"}
    assert plan.shard_metadata.credential == BasicCredential("writer", "s3cret")


def test_split_mode_over_merge_tree_fails(backend: StaticProbeBackend, base_options: dict[str, object]) -> None:
    preparer = SinkPreparer(backend)

    with pytest.raises(UnsupportedEngineError, match="MergeTree"):
        preparer.prepare({**base_options, "split_mode": True})

    assert preparer.state is PreparationState.FAILED
    assert (backend.opened, backend.closed) == (1, 1)


def test_split_mode_over_distributed(backend: StaticProbeBackend, base_options: dict[str, object]) -> None:
    plan = prepare_write_plan(
        {**base_options, "table": "events_all", "split_mode": True, "sharding_key": "user_id"},
        backend,
    )

    metadata = plan.shard_metadata
    assert metadata.split_mode is True
    assert metadata.sharding_key == "user_id"
    assert metadata.sharding_key_type == plan.schema["user_id"]
    assert metadata.distributed is not None
    assert metadata.distributed.cluster == "main"
    assert backend.engine_lookups == 1


def test_unknown_sharding_key_fails(backend: StaticProbeBackend, base_options: dict[str, object]) -> None:
    options = {**base_options, "table": "events_all", "split_mode": True, "sharding_key": "tenant_id"}

    with pytest.raises(ConfigurationError, match="tenant_id"):
        prepare_write_plan(options, backend)

    assert (backend.opened, backend.closed) == (1, 1)


def test_unknown_field_fails(backend: StaticProbeBackend, base_options: dict[str, object]) -> None:
    with pytest.raises(ConfigurationError, match="'ghost'.*events"):
        prepare_write_plan({**base_options, "fields": ["id", "ghost"]}, backend)

    assert (backend.opened, backend.closed) == (1, 1)


def test_missing_table_fails(backend: StaticProbeBackend, base_options: dict[str, object]) -> None:
    with pytest.raises(SchemaProbeError, match="db.nope"):
        prepare_write_plan({**base_options, "table": "nope"}, backend)

    assert (backend.opened, backend.closed) == (1, 1)


def test_split_mode_fails_when_engine_row_is_missing(
    backend: StaticProbeBackend, base_options: dict[str, object], monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(StaticProbeConnection, "fetch_table", lambda self, database, table: None)
    preparer = SinkPreparer(backend)

    with pytest.raises(SchemaProbeError, match="db.events_all does not exist"):
        preparer.prepare({**base_options, "table": "events_all", "split_mode": True})

    assert preparer.state is PreparationState.FAILED
    assert (backend.opened, backend.closed) == (1, 1)


def test_invalid_options_fail_before_connecting(
    backend: StaticProbeBackend, base_options: dict[str, object]
) -> None:
    preparer = SinkPreparer(backend)

    with pytest.raises(ConfigurationError, match="password"):
        preparer.prepare({**base_options, "username": "writer"})

    assert preparer.history[-2:] == (PreparationState.VALIDATING, PreparationState.FAILED)
    assert backend.opened == 0


def test_accepts_prebuilt_config(backend: StaticProbeBackend) -> None:
    config = SinkConfig(host="ch1:9100,ch2", database="db", table="events")

    plan = prepare_write_plan(config, backend)

    assert [endpoint.address for endpoint in plan.endpoints] == ["ch1:9100", "ch2:9005"]
    assert plan.shard_metadata.shard.endpoint.address == "ch1:9100"


def test_assemble_write_plan_is_pure_composition() -> None:
    endpoint = Endpoint(host="ch1", port=9005, database="db")
    schema = TableSchema([("id", "UInt64")])
    metadata = ShardMetadata(None, None, "db", "events", False, Shard(1, 1, endpoint))

    plan = assemble_write_plan(
        credential=NoCredential(),
        client_properties={"compress": "true"},
        shard_metadata=metadata,
        fields=["id"],
        schema=schema,
        batch_size=100,
        endpoints=[endpoint],
    )

    assert plan.fields == ("id",)
    assert plan.schema is schema
    assert plan.shard_metadata is metadata
    assert plan.connection_properties == {"compress": "true"}
    assert plan.endpoints == (endpoint,)
