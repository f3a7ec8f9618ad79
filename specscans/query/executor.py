# ==============================================
# FederatedSearch
# ==============================================
#
# PURPOSE:
#   Answers one user filter expression with completed scan
#   records, although every record is split across MongoDB
#   (metadata) and the relational motors database (positions).
#
# STRATEGY (which backend(s) got predicates after routing):
# ---------------------------------------------------------
#   NEITHER         empty filter → page of all documents,
#                   completed with query_by_sid
#   RELATIONAL_ONLY motor rows by filter → documents by
#                   {"sid": {"$in": sids}} (paged) → complete
#   DOCUMENT_ONLY   documents by filter (paged) → complete with
#                   query_by_sid
#   BOTH            documents by filter (paged) AND motor rows by
#                   filter, independently → keep only sids found
#                   in both (intersection join)
#
#   Pagination (idx, limit) applies to the document-store fetch
#   only; joins can return fewer than `limit` records.
#   A document whose sid has no motors-db row is not returned.
#   Output keeps the document-store order.
#
# CLASS: FederatedSearch
# ----------------------
#   - __init__(router, compiler, motor_store, document_store,
#              collection_name, service_name)
#   - search(expression, idx=0, limit=0) -> list[dict]
#   - plan(routed) -> SearchStrategy
#
# ==============================================

import logging
from enum import Enum
from typing import Any, Iterable, Mapping

from specscans.query.filters import to_document_query
from specscans.query.motor_compiler import MotorPredicateCompiler
from specscans.query.router import FieldRouter
from specscans.query.routing import Backend
from specscans.records.record import SID_KEY, MotorRecord, complete

logger = logging.getLogger(__name__)


class SearchStrategy(Enum):
    NEITHER = "neither"
    RELATIONAL_ONLY = "relational_only"
    DOCUMENT_ONLY = "document_only"
    BOTH = "both"


class FederatedSearch:
    def __init__(
        self,
        router: FieldRouter,
        compiler: MotorPredicateCompiler,
        motor_store,
        document_store,
        collection_name: str,
        service_name: str,
    ):
        self.router = router
        self.compiler = compiler
        self.motor_store = motor_store
        self.document_store = document_store
        self.collection_name = collection_name
        self.service_name = service_name

    @staticmethod
    def plan(routed: Mapping[Backend, Mapping[str, Any]]) -> SearchStrategy:
        has_document = bool(routed.get(Backend.MONGODB))
        has_relational = bool(routed.get(Backend.SQL))
        if has_document and has_relational:
            return SearchStrategy.BOTH
        if has_relational:
            return SearchStrategy.RELATIONAL_ONLY
        if has_document:
            return SearchStrategy.DOCUMENT_ONLY
        return SearchStrategy.NEITHER

    def search(self, expression: Mapping[str, Any], idx: int = 0, limit: int = 0) -> list[dict]:
        routed = self.router.route(self.service_name, expression or {})
        strategy = self.plan(routed)
        document_query = to_document_query(routed[Backend.MONGODB])
        logger.debug("Search strategy %s for %s", strategy.value, expression)

        if strategy in (SearchStrategy.NEITHER, SearchStrategy.DOCUMENT_ONLY):
            documents = self._get_documents(document_query, idx, limit)
            sids = [doc[SID_KEY] for doc in documents if doc.get(SID_KEY) is not None]
            motor_records = self.motor_store.query_by_sid(sids)
            return self.join(documents, motor_records)

        motor_filters = self.compiler.compile(routed[Backend.SQL])
        motor_records = self.motor_store.query_by_filter(motor_filters)

        if strategy == SearchStrategy.RELATIONAL_ONLY:
            if not motor_records:
                return []
            sids = [record.sid for record in motor_records]
            documents = self._get_documents({SID_KEY: {"$in": sids}}, idx, limit)
            return self.join(documents, motor_records)

        documents = self._get_documents(document_query, idx, limit)
        return self.join(documents, motor_records)

    def _get_documents(self, query: Mapping[str, Any], idx: int, limit: int) -> list[dict]:
        return self.document_store.get(self.collection_name, query, idx, limit)

    @staticmethod
    def join(documents: Iterable[Mapping[str, Any]], motor_records: Iterable[MotorRecord]) -> list[dict]:
        """
        Complete every document whose sid also has a motor record.

        Equality join on sid; with a document filter and a motor filter
        on each side this is the intersection of both result sets.
        """
        by_sid = {record.sid: record for record in motor_records}
        records = []
        for document in documents:
            motor_record = by_sid.get(document.get(SID_KEY))
            if motor_record is None:
                logger.debug("No motor record for sid %s, skipping", document.get(SID_KEY))
                continue
            records.append(complete(document, motor_record))
        return records
