# ==============================================
# ScanService: Final Orchestrator
# ==============================================
#
# PURPOSE:
#   The one class callers (HTTP handlers, the CLI, tests) talk
#   to. Ties routing, compilation, both stores and the batch
#   coordinator together.
#
#   ┌──────────────────────────────────────────────────────────┐
#   │                      ScanService                         │
#   │                                                          │
#   │  add / edit                        search                │
#   │     │                                 │                  │
#   │     ▼                                 ▼                  │
#   │  BatchCoordinator              FieldRouter               │
#   │  (one task per record)           │          │            │
#   │     │ validate                   ▼          ▼            │
#   │     │ decompose        MotorPredicate    document        │
#   │     ▼                  Compiler          sub-query       │
#   │  MotorStore.insert        │               │              │
#   │     │ (then)              ▼               ▼              │
#   │  DocumentStore.insert   FederatedSearch (join on sid)    │
#   └──────────────────────────────────────────────────────────┘
#
# CLASS: ServiceContext (dataclass)
# ---------------------------------
#   Explicit bundle of everything an operation needs, built once
#   at startup and passed in. Tests build one from in-memory
#   substitutes.
#     motor_store, document_store, routing_table, validator,
#     collection_name, service_name, max_workers, strict_routing
#   - from_config(config) (classmethod)
#   - connect() / close(), context manager
#
# CLASS: ScanService
# ------------------
#   - add(body) -> BatchResult
#   - edit(body) -> BatchResult
#   - search(query, idx=0, limit=0) -> list[dict]
#   - count(query) -> int
#
# CONSISTENCY:
#   Per record the relational insert runs first, in its own
#   transaction. The document insert only runs if it committed,
#   so a failed record never leaves a document without motors.
#   A document failure after a relational commit leaves motor
#   rows behind; there is no cross-store transaction.
#   Edits of one scan are serialized by a per-sid lock, so the
#   read-merge-write of its motors never interleaves.
#
# ==============================================

import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from specscans.batch import BatchCoordinator, BatchResult
from specscans.config import AppConfig, get_config
from specscans.errors import EditLookupError, QueryParseError, ValidationError
from specscans.query.executor import FederatedSearch, SearchStrategy
from specscans.query.filters import to_document_query
from specscans.query.motor_compiler import MotorPredicateCompiler
from specscans.query.router import FieldRouter
from specscans.query.routing import Backend, RoutingTable, load_routing_table
from specscans.records.record import (
    MOTORS_KEY,
    SID_KEY,
    MotorRecord,
    complete,
    decode_records,
    decompose,
)
from specscans.records.validator import SchemaValidator
from specscans.storage.document_store import DocumentStore
from specscans.storage.motor_store import MotorStore

logger = logging.getLogger(__name__)

EDIT_LOOKUP_KEYS = ("spec_file", "scan_number")


@dataclass
class ServiceContext:
    motor_store: Any
    document_store: Any
    routing_table: RoutingTable
    validator: Any
    collection_name: str = "specscans"
    service_name: str = "SpecScans"
    max_workers: int = 8
    strict_routing: bool = False

    @classmethod
    def from_config(cls, config: Optional[AppConfig] = None) -> "ServiceContext":
        config = config or get_config()
        return cls(
            motor_store=MotorStore.from_config(config.motors),
            document_store=DocumentStore.from_config(config.mongo),
            routing_table=load_routing_table(config.service.service_map),
            validator=SchemaValidator.load(config.service.schema_file),
            collection_name=config.mongo.collection,
            service_name=config.service.name,
            max_workers=config.service.max_workers,
            strict_routing=config.service.strict_routing,
        )

    def connect(self) -> None:
        self.motor_store.connect()
        self.document_store.connect()
        self.document_store.ensure_indexes(self.collection_name)

    def close(self) -> None:
        self.motor_store.disconnect()
        self.document_store.disconnect()

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def _reject_constant(name: str):
    raise QueryParseError(f"Cannot decode query: {name} is not a valid number")


def decode_query(query: Union[bytes, str, Mapping, None]) -> dict:
    """Decode a search filter; an empty body means "match everything"."""
    if query is None:
        return {}
    if isinstance(query, (bytes, bytearray)):
        try:
            query = query.decode("utf-8")
        except UnicodeDecodeError as e:
            raise QueryParseError(f"Query is not UTF-8: {e}") from e
    if isinstance(query, str):
        if not query.strip():
            return {}
        try:
            query = json.loads(query, parse_constant=_reject_constant)
        except json.JSONDecodeError as e:
            raise QueryParseError(f"Cannot decode query as JSON: {e}") from e
    if not isinstance(query, Mapping):
        raise QueryParseError(f"Query must be a JSON object, got {type(query).__name__}")
    return dict(query)


class ScanService:
    def __init__(self, context: ServiceContext):
        self.context = context
        self.router = FieldRouter(context.routing_table, strict=context.strict_routing)
        self.compiler = MotorPredicateCompiler()
        self.searcher = FederatedSearch(
            router=self.router,
            compiler=self.compiler,
            motor_store=context.motor_store,
            document_store=context.document_store,
            collection_name=context.collection_name,
            service_name=context.service_name,
        )
        self.coordinator = BatchCoordinator(context.max_workers)
        self._edit_locks: dict[Any, threading.Lock] = {}
        self._edit_locks_guard = threading.Lock()

    # --- add ---

    def add(self, body) -> BatchResult:
        """
        Submit one record or an array of records.

        Raises:
            RequestDecodeError: the body itself is unusable (nothing attempted)

        Returns:
            BatchResult with per-record outcomes and aggregate status
        """
        records = decode_records(body)
        return self.coordinator.run(records, self._add_one)

    def _add_one(self, record: dict) -> dict:
        self.context.validator.validate(record)
        document, motor_record = decompose(record)
        self.context.motor_store.insert(motor_record)
        self.context.document_store.insert(self.context.collection_name, [document])
        logger.info("✓ Added scan %s", motor_record.sid)
        return complete(document, motor_record)

    # --- edit ---

    def edit(self, body) -> BatchResult:
        """
        Apply field-level edits to existing records.

        Each edit object names its target by "sid", or by
        ("spec_file", "scan_number"); the remaining keys are the new
        field values. "motors" edits are merged per mnemonic.
        Edits of the same scan, in one batch or across calls on this
        service, are applied one at a time in completion order.
        """
        edits = decode_records(body)
        return self.coordinator.run(edits, self._edit_one)

    def _edit_one(self, edit: dict) -> dict:
        lookup = self._edit_lookup(edit)
        collection = self.context.collection_name
        matches = self.context.document_store.count(collection, lookup)
        if matches != 1:
            raise EditLookupError(lookup, matches)
        sid = self.context.document_store.get(collection, lookup, 0, 1)[0][SID_KEY]
        # Read-merge-write of one scan must not interleave with another edit of it
        with self._target_lock(sid):
            return self._apply_edit(sid, lookup, edit)

    def _apply_edit(self, sid: Any, lookup: Mapping[str, Any], edit: Mapping[str, Any]) -> dict:
        collection = self.context.collection_name
        current = self.context.document_store.get(collection, {SID_KEY: sid}, 0, 1)[0]
        motor_records = self.context.motor_store.query_by_sid([sid])
        motor_record = motor_records[0] if motor_records else MotorRecord(sid=sid)
        record = complete(current, motor_record)

        changes = {k: v for k, v in edit.items() if k not in lookup and k != SID_KEY}
        if MOTORS_KEY in changes:
            if not isinstance(changes[MOTORS_KEY], Mapping):
                raise ValidationError([f"motors must be an object, got {type(changes[MOTORS_KEY]).__name__}"])
            record[MOTORS_KEY] = {**record[MOTORS_KEY], **changes.pop(MOTORS_KEY)}
        record.update(changes)
        self.context.validator.validate(record)

        document = {k: v for k, v in record.items() if k != MOTORS_KEY}
        if MOTORS_KEY in edit:
            self.context.motor_store.replace_motors(sid, record[MOTORS_KEY])
        self.context.document_store.upsert(collection, {SID_KEY: sid}, {"$set": document})
        logger.info("✓ Edited scan %s (%s)", sid, sorted(edit))
        return record

    def _target_lock(self, sid: Any) -> threading.Lock:
        with self._edit_locks_guard:
            return self._edit_locks.setdefault(sid, threading.Lock())

    @staticmethod
    def _edit_lookup(edit: Mapping[str, Any]) -> dict:
        if edit.get(SID_KEY) is not None:
            return {SID_KEY: edit[SID_KEY]}
        if all(edit.get(key) is not None for key in EDIT_LOOKUP_KEYS):
            return {key: edit[key] for key in EDIT_LOOKUP_KEYS}
        raise ValidationError([
            f"edit must identify its record by '{SID_KEY}' or by {list(EDIT_LOOKUP_KEYS)}"
        ])

    # --- search ---

    def search(self, query=None, idx: int = 0, limit: int = 0) -> list[dict]:
        if idx < 0 or limit < 0:
            raise QueryParseError(f"idx and limit must be non-negative, got idx={idx} limit={limit}")
        expression = decode_query(query)
        records = self.searcher.search(expression, idx, limit)
        logger.info("Search %s matched %d records", expression, len(records))
        return records

    def count(self, query=None) -> int:
        """Document-store count for metadata-only queries, else size of the joined result."""
        expression = decode_query(query)
        routed = self.router.route(self.context.service_name, expression)
        strategy = self.searcher.plan(routed)
        if strategy in (SearchStrategy.NEITHER, SearchStrategy.DOCUMENT_ONLY):
            return self.context.document_store.count(
                self.context.collection_name,
                to_document_query(routed[Backend.MONGODB]),
            )
        return len(self.searcher.search(expression))
