"""Shared fixtures for sink preparation tests."""

from __future__ import annotations

import pytest

from chsink.probe import StaticProbeBackend, StaticTable

EVENTS_COLUMNS = (
    ("id", "UInt64"),
    ("user_id", "UInt32"),
    ("name", "String"),
    ("created_at", "DateTime"),
)


@pytest.fixture
def backend() -> StaticProbeBackend:
    """Catalog with a plain MergeTree table and a Distributed one."""

    return StaticProbeBackend(
        {
            "db.events": StaticTable(columns=EVENTS_COLUMNS, engine="MergeTree"),
            "db.events_all": StaticTable(
                columns=EVENTS_COLUMNS,
                engine="Distributed",
                engine_full="Distributed('main', 'db', 'events', cityHash64(user_id))",
            ),
        }
    )


@pytest.fixture
def base_options() -> dict[str, object]:
    return {"host": "ch1", "database": "db", "table": "events"}
