# ==============================================
# Routing Table
# ==============================================
#
# PURPOSE:
#   Static table of field ownership: for each service, which
#   backend owns which field key (or dotted prefix). Loaded once
#   at startup and never mutated at request time.
#
# ENUMS:
# ------
# - Backend(Enum): SQL, MONGODB
#
# CLASSES:
# --------
# - RoutingEntry (dataclass, frozen)
#     service: str    → Service name, e.g. "SpecScans"
#     key: str        → Field key or dotted prefix, e.g. "motors"
#     backend: Backend
#
# - RoutingTable
#     Immutable collection of RoutingEntry.
#     - owner(service, path) -> RoutingEntry | None
#         Most specific entry whose key equals `path` or is a
#         strict dot-separated prefix of it.
#     - entries_for(service) -> tuple[RoutingEntry, ...]
#
# FUNCTIONS:
# ----------
# - load_routing_table(source: str | None) -> RoutingTable
#     source is a JSON file path or an http(s) URL (fetched with
#     requests). None returns the built-in SpecScans table.
#
#   Accepted JSON shapes:
#     [{"service": "SpecScans", "key": "motors", "backend": "sql"}, ...]
#     {"SpecScans": {"sql": ["motors"], "mongodb": ["did", ...]}}
#
# ==============================================

import json
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Optional

import requests

from specscans.errors import RoutingTableError

logger = logging.getLogger(__name__)


class Backend(Enum):
    """
    Enumeration of storage backends a field can be owned by.

    - SQL: Relational motor positions database (MySQL / SQLite)
    - MONGODB: MongoDB document database
    """
    SQL = "sql"
    MONGODB = "mongodb"

    @classmethod
    def parse(cls, name: str) -> "Backend":
        backend = _BACKEND_ALIASES.get(str(name).strip().lower())
        if backend is None:
            raise RoutingTableError(f"Unknown backend '{name}'")
        return backend


_BACKEND_ALIASES = {
    "sql": Backend.SQL,
    "mysql": Backend.SQL,
    "sqlite": Backend.SQL,
    "motors": Backend.SQL,
    "motorsdb": Backend.SQL,
    "mongo": Backend.MONGODB,
    "mongodb": Backend.MONGODB,
}


@dataclass(frozen=True)
class RoutingEntry:
    """One (service, key, backend) ownership row."""
    service: str
    key: str
    backend: Backend

    def matches(self, path: str) -> bool:
        """True if `key` equals `path` or is a strict dotted prefix of it."""
        return path == self.key or path.startswith(self.key + ".")

    def to_dict(self) -> dict[str, str]:
        return {"service": self.service, "key": self.key, "backend": self.backend.value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RoutingEntry":
        try:
            return cls(
                service=str(data["service"]),
                key=str(data["key"]),
                backend=Backend.parse(data["backend"]),
            )
        except KeyError as e:
            raise RoutingTableError(f"Routing entry {data} is missing {e}") from e


class RoutingTable:
    """Immutable service → field → backend ownership table."""

    def __init__(self, entries: Iterable[RoutingEntry]):
        self._entries: tuple[RoutingEntry, ...] = tuple(entries)
        seen: dict[tuple[str, str], Backend] = {}
        for entry in self._entries:
            if not entry.key:
                raise RoutingTableError(f"Empty key in routing entry for '{entry.service}'")
            previous = seen.setdefault((entry.service, entry.key), entry.backend)
            if previous != entry.backend:
                raise RoutingTableError(
                    f"Key '{entry.key}' of service '{entry.service}' is assigned "
                    f"to both {previous.value} and {entry.backend.value}"
                )

    @property
    def entries(self) -> tuple[RoutingEntry, ...]:
        return self._entries

    def entries_for(self, service: str) -> tuple[RoutingEntry, ...]:
        return tuple(e for e in self._entries if e.service == service)

    def owner(self, service: str, path: str) -> Optional[RoutingEntry]:
        # Longest matching key wins so a field never has two owners
        best = None
        for entry in self._entries:
            if entry.service != service or not entry.matches(path):
                continue
            if best is None or len(entry.key) > len(best.key):
                best = entry
        return best

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"RoutingTable({len(self._entries)} entries)"


SPECSCANS_SERVICE = "SpecScans"

DEFAULT_DOCUMENT_KEYS = (
    "sid", "did", "cycle", "beamline", "btr", "spec_file", "scan_number",
    "start_time", "command", "status", "comments", "spec_version", "variables",
)

DEFAULT_RELATIONAL_KEYS = ("motors",)


def default_routing_table(service: str = SPECSCANS_SERVICE) -> RoutingTable:
    """Built-in ownership table used when no service map is configured."""
    entries = [RoutingEntry(service, key, Backend.MONGODB) for key in DEFAULT_DOCUMENT_KEYS]
    entries += [RoutingEntry(service, key, Backend.SQL) for key in DEFAULT_RELATIONAL_KEYS]
    return RoutingTable(entries)


def parse_routing_table(data: Any) -> RoutingTable:
    """Build a RoutingTable from either accepted JSON shape."""
    if isinstance(data, list):
        entries = []
        for item in data:
            if not isinstance(item, dict):
                raise RoutingTableError(f"Routing entry must be an object, got {item!r}")
            entries.append(RoutingEntry.from_dict(item))
        return RoutingTable(entries)
    if isinstance(data, dict):
        entries = []
        for service, backends in data.items():
            if not isinstance(backends, dict):
                raise RoutingTableError(f"Service '{service}' must map backends to key lists")
            for backend_name, keys in backends.items():
                backend = Backend.parse(backend_name)
                if isinstance(keys, str) or not isinstance(keys, list):
                    raise RoutingTableError(
                        f"Keys for {service}/{backend_name} must be a list, got {keys!r}"
                    )
                entries.extend(RoutingEntry(str(service), str(key), backend) for key in keys)
        return RoutingTable(entries)
    raise RoutingTableError(f"Unsupported service map type: {type(data).__name__}")


def load_routing_table(source: Optional[str] = None, timeout: float = 10.0) -> RoutingTable:
    """
    Load the static routing table.

    Args:
        source: JSON file path or http(s) URL; None for the built-in table
        timeout: HTTP timeout in seconds when source is a URL

    Returns:
        RoutingTable
    """
    if not source:
        table = default_routing_table()
        logger.info("✓ Using built-in routing table (%d entries)", len(table))
        return table

    if source.startswith(("http://", "https://")):
        try:
            response = requests.get(source, timeout=timeout)
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            raise RoutingTableError(f"Could not fetch service map from {source}: {e}") from e
        except ValueError as e:
            raise RoutingTableError(f"Service map at {source} is not valid JSON: {e}") from e
    else:
        path = Path(source)
        try:
            with open(path, "r") as f:
                data = json.load(f)
        except OSError as e:
            raise RoutingTableError(f"Could not read service map {path}: {e}") from e
        except json.JSONDecodeError as e:
            raise RoutingTableError(f"Service map {path} is not valid JSON: {e}") from e

    table = parse_routing_table(data)
    logger.info("✓ Loaded routing table from %s (%d entries)", source, len(table))
    return table
