"""Turn a host option into the ordered set of cluster endpoints."""

from __future__ import annotations

from .errors import ConfigurationError
from .models import Endpoint

# ClickHouse's PostgreSQL wire interface, spoken by the asyncpg probe.
DEFAULT_PORT = 9005


def create_endpoints(host: str, database: str, *, default_port: int = DEFAULT_PORT) -> tuple[Endpoint, ...]:
    """Parse ``host1[:port],host2[:port]`` into endpoints for ``database``.

    Order follows the option; repeated entries keep their first position.
    """

    if not host or not host.strip():
        raise ConfigurationError("Option 'host' must not be empty")
    if not database or not database.strip():
        raise ConfigurationError("Option 'database' must not be empty")

    endpoints: list[Endpoint] = []
    for entry in host.split(","):
        endpoint = _parse_entry(entry.strip(), database.strip(), default_port, host)
        if endpoint not in endpoints:
            endpoints.append(endpoint)
    return tuple(endpoints)


def _parse_entry(entry: str, database: str, default_port: int, option: str) -> Endpoint:
    if not entry:
        raise ConfigurationError(f"Option 'host' contains an empty entry: '{option}'")
    name, sep, port_text = entry.rpartition(":")
    if not sep:
        name, port_text = entry, ""
    name = name.strip()
    if not name:
        raise ConfigurationError(f"Host entry '{entry}' is missing a hostname")
    if not port_text:
        return Endpoint(host=name, port=default_port, database=database)
    try:
        port = int(port_text)
    except ValueError as exc:
        raise ConfigurationError(f"Host entry '{entry}' has a non-numeric port '{port_text}'") from exc
    if not 1 <= port <= 65535:
        raise ConfigurationError(f"Host entry '{entry}' has an out-of-range port {port}")
    return Endpoint(host=name, port=port, database=database)


__all__ = ["DEFAULT_PORT", "create_endpoints"]
