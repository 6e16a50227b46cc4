"""Utility that launches a sample ClickHouse Docker container for chsink."""

from __future__ import annotations

import argparse
import subprocess
import sys
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from chsink.config import load_config

DEFAULT_CONTAINER = "chsink-sample-clickhouse"
DEFAULT_PORT = 9015
DEFAULT_PASSWORD = "chsink"
DEFAULT_DB = "chsink_demo"
DEFAULT_USER = "chsink"
DEFAULT_CONFIG = ROOT / "sample-sink.toml"
DOCKER_IMAGE = "clickhouse/clickhouse-server:24.8"
# Single-node cluster shipped in the image's default remote_servers config.
SAMPLE_CLUSTER = "test_shard_localhost"


def run(cmd: list[str], *, check: bool = True, **kwargs) -> subprocess.CompletedProcess[str]:
    print("$", " ".join(cmd))
    return subprocess.run(cmd, check=check, text=True, **kwargs)


def container_exists(name: str) -> bool:
    result = subprocess.run(
        ["docker", "ps", "-a", "--filter", f"name={name}", "--format", "{{.ID}}"],
        text=True,
        capture_output=True,
    )
    return bool(result.stdout.strip())


def start_container(name: str, port: int, password: str, user: str) -> None:
    if container_exists(name):
        print(f"Container '{name}' already exists. Reusing it.")
        run(["docker", "start", name], check=False)
    else:
        run(
            [
                "docker",
                "run",
                "-d",
                "--name",
                name,
                "-e",
                f"CLICKHOUSE_USER={user}",
                "-e",
                f"CLICKHOUSE_PASSWORD={password}",
                "-p",
                f"{port}:9005",
                DOCKER_IMAGE,
            ]
        )
    wait_for_start(name, user, password)


def wait_for_start(name: str, user: str, password: str, retries: int = 30, delay: float = 1.0) -> None:
    for _ in range(retries):
        result = subprocess.run(
            ["docker", "exec", name, "clickhouse-client", "--user", user, "--password", password, "-q", "SELECT 1"],
            text=True,
            capture_output=True,
        )
        if result.returncode == 0:
            return
        time.sleep(delay)
    print("Warning: server did not answer; continuing anyway.")


def seed_tables(name: str, database: str, user: str, password: str) -> None:
    statements = [
        f"CREATE DATABASE IF NOT EXISTS {database}",
        f"""
        CREATE TABLE IF NOT EXISTS {database}.events_local (
            id UInt64,
            user_id UInt32,
            name String,
            created_at DateTime
        ) ENGINE = MergeTree ORDER BY id
        """,
        f"""
        CREATE TABLE IF NOT EXISTS {database}.events AS {database}.events_local
        ENGINE = Distributed('{SAMPLE_CLUSTER}', '{database}', 'events_local', cityHash64(user_id))
        """,
    ]
    for statement in statements:
        run(
            ["docker", "exec", name, "clickhouse-client", "--user", user, "--password", password, "-q", statement.strip()],
        )


def write_config(path: Path, port: int, user: str, password: str, database: str) -> None:
    lines = [
        f'host = "localhost:{port}"',
        f'database = "{database}"',
        'table = "events"',
        f'username = "{user}"',
        f'password = "{password}"',
        "split_mode = true",
        'sharding_key = "user_id"',
        "bulk_size = 5000",
        "",
    ]
    path.write_text("\n".join(lines))
    load_config(path)
    print(f"Wrote sample sink config to {path}.")


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--container", default=DEFAULT_CONTAINER, help="Docker container name")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="Host port for the PostgreSQL interface")
    parser.add_argument("--password", default=DEFAULT_PASSWORD, help="ClickHouse password")
    parser.add_argument("--database", default=DEFAULT_DB, help="Database name to create")
    parser.add_argument("--user", default=DEFAULT_USER, help="ClickHouse user")
    parser.add_argument("--config", type=Path, default=DEFAULT_CONFIG, help="Where to write the sink config")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or sys.argv[1:])
    try:
        start_container(args.container, args.port, args.password, args.user)
        seed_tables(args.container, args.database, args.user, args.password)
    except FileNotFoundError:
        print("Docker is not installed or not on PATH.")
        return 1
    write_config(args.config, args.port, args.user, args.password, args.database)
    print(f"Sample cluster is ready. Run: python -m chsink plan {args.config}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
