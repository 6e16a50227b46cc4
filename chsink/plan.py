"""Compose the write plan from validated options and the live schema."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Mapping, Sequence

from .config import SinkConfig
from .errors import SinkStateError
from .fields import reconcile_fields
from .models import Credential, Endpoint, ShardMetadata, TableInfo, TableSchema, WritePlan
from .nodes import create_endpoints
from .probe import ProbeBackend, SchemaProbe
from .shards import resolve_shard_metadata

LOG = logging.getLogger(__name__)


class PreparationState(str, Enum):
    """Stages a sink passes through while preparing its write plan."""

    UNCONFIGURED = "unconfigured"
    VALIDATING = "validating"
    CONNECTING = "connecting"
    SCHEMA_PROBED = "schema_probed"
    SHARD_RESOLVED = "shard_resolved"
    FIELDS_RECONCILED = "fields_reconciled"
    PLAN_ASSEMBLED = "plan_assembled"
    PROBE_CLOSED = "probe_closed"
    FAILED = "failed"


def assemble_write_plan(
    *,
    credential: Credential,
    client_properties: Mapping[str, str],
    shard_metadata: ShardMetadata,
    fields: Sequence[str],
    schema: TableSchema,
    batch_size: int,
    endpoints: Sequence[Endpoint] = (),
) -> WritePlan:
    """Combine already-validated parts into an immutable WritePlan."""

    properties = dict(client_properties)
    properties.update(credential.as_properties())
    return WritePlan(
        connection_properties=properties,
        fields=tuple(fields),
        schema=schema,
        shard_metadata=shard_metadata,
        batch_size=batch_size,
        endpoints=tuple(endpoints),
    )


class SinkPreparer:
    """Runs validate -> connect -> probe -> resolve -> reconcile -> assemble once."""

    def __init__(self, backend: ProbeBackend) -> None:
        self._backend = backend
        self._history: list[PreparationState] = [PreparationState.UNCONFIGURED]

    @property
    def state(self) -> PreparationState:
        return self._history[-1]

    @property
    def history(self) -> tuple[PreparationState, ...]:
        return tuple(self._history)

    def prepare(self, options: SinkConfig | Mapping[str, Any]) -> WritePlan:
        """Produce the write plan, raising a PrepareError subclass on any failure."""

        if self.state is not PreparationState.UNCONFIGURED:
            raise SinkStateError("SinkPreparer instances prepare exactly once")
        try:
            plan = self._prepare(options)
        except Exception:
            self._advance(PreparationState.FAILED)
            raise
        self._advance(PreparationState.PROBE_CLOSED)
        return plan

    def _prepare(self, options: SinkConfig | Mapping[str, Any]) -> WritePlan:
        self._advance(PreparationState.VALIDATING)
        config = options if isinstance(options, SinkConfig) else SinkConfig.from_options(options)
        endpoints = create_endpoints(config.host, config.database)
        credential = config.credential

        self._advance(PreparationState.CONNECTING)
        with SchemaProbe(self._backend, endpoints[0], credential, config.client_properties) as probe:
            schema = probe.table_schema(config.database, config.table)
            table_info: TableInfo | None = None
            if config.split_mode:
                table_info = probe.require_distributed(config.database, config.table)
            self._advance(PreparationState.SCHEMA_PROBED)

            shard_metadata = resolve_shard_metadata(
                split_mode=config.split_mode,
                sharding_key=config.sharding_key,
                schema=schema,
                database=config.database,
                table=config.table,
                endpoint=probe.endpoint,
                credential=credential,
                table_info=table_info,
            )
            if config.split_mode:
                self._advance(PreparationState.SHARD_RESOLVED)

            fields = reconcile_fields(config.fields, schema, config.table)
            self._advance(PreparationState.FIELDS_RECONCILED)

            plan = assemble_write_plan(
                credential=credential,
                client_properties=config.client_properties,
                shard_metadata=shard_metadata,
                fields=fields,
                schema=schema,
                batch_size=config.bulk_size,
                endpoints=endpoints,
            )
            self._advance(PreparationState.PLAN_ASSEMBLED)

        LOG.info(
            "Prepared write plan",
            extra={
                "table": f"{config.database}.{config.table}",
                "fields": len(plan.fields),
                "batch_size": plan.batch_size,
                "split_mode": config.split_mode,
            },
        )
        return plan

    def _advance(self, state: PreparationState) -> None:
        LOG.debug("Preparation state %s -> %s", self.state.value, state.value)
        self._history.append(state)


def prepare_write_plan(options: SinkConfig | Mapping[str, Any], backend: ProbeBackend) -> WritePlan:
    """Convenience wrapper running a fresh SinkPreparer."""

    return SinkPreparer(backend).prepare(options)


__all__ = [
    "PreparationState",
    "SinkPreparer",
    "assemble_write_plan",
    "prepare_write_plan",
]
