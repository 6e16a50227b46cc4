"""Preparation of ClickHouse sink write plans."""

from __future__ import annotations

__version__ = "0.1.0"

from .config import SinkConfig, load_config
from .errors import (
    ConfigurationError,
    PrepareError,
    SchemaProbeError,
    SinkStateError,
    UnsupportedEngineError,
)
from .models import (
    BasicCredential,
    Credential,
    Endpoint,
    NoCredential,
    Shard,
    ShardMetadata,
    TableInfo,
    TableSchema,
    WritePlan,
)
from .plan import PreparationState, SinkPreparer, prepare_write_plan
from .sink import ClickhouseSink

__all__ = [
    "BasicCredential",
    "ClickhouseSink",
    "ConfigurationError",
    "Credential",
    "Endpoint",
    "NoCredential",
    "PreparationState",
    "PrepareError",
    "SchemaProbeError",
    "Shard",
    "ShardMetadata",
    "SinkConfig",
    "SinkPreparer",
    "SinkStateError",
    "TableInfo",
    "TableSchema",
    "UnsupportedEngineError",
    "WritePlan",
    "load_config",
    "prepare_write_plan",
]
