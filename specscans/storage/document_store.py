# ==============================================
# DocumentStore
# ==============================================
#
# PURPOSE:
#   Manages the MongoDB connection and the document portion of
#   scan records: every field except the motor positions, plus
#   the sid that links a document to its motor rows.
#
# CLASS: DocumentStore
# --------------------
#   Stateful: holds the MongoDB client.
#
#   Constructor:
#   ------------
#   - __init__(host, port, database, user=None, password=None)
#   - from_config(config: MongoConfig) (classmethod)
#
#   Methods:
#   --------
#   - connect() / disconnect()
#   - ensure_indexes(collection_name) -> None
#       Unique index on sid (the cross-store join key).
#   - insert(collection_name, documents: list[dict]) -> int
#   - get(collection_name, query, offset=0, limit=0) -> list[dict]
#       limit=0 means no limit. The Mongo "_id" is never returned.
#   - count(collection_name, query) -> int
#   - upsert(collection_name, match, update) -> int
#       `update` is a full update spec ({"$set": {...}}) or a plain
#       dict of fields, which is wrapped in $set.
#
#   Context Manager:
#   ----------------
#   - __enter__ / __exit__ for `with DocumentStore(...) as db:` usage.
#
# ==============================================

import logging
from typing import Any, Mapping, Optional

import pymongo
from pymongo import MongoClient as PyMongoClient
from pymongo.errors import ConnectionFailure, OperationFailure, PyMongoError

from specscans.config import MongoConfig
from specscans.errors import DocumentStoreError

logger = logging.getLogger(__name__)

SID_INDEX = "sid"


class DocumentStore:
    def __init__(self, host, port, database, user=None, password=None):
        # Store connection params. Don't connect yet.
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self.client = None

    @classmethod
    def from_config(cls, config: MongoConfig) -> "DocumentStore":
        return cls(
            host=config.host,
            port=config.port,
            database=config.database,
            user=config.user,
            password=config.password,
        )

    def connect(self) -> None:
        if self.client is not None:
            return
        if self.user and self.password:
            uri = f"mongodb://{self.user}:{self.password}@{self.host}:{self.port}/{self.database}"
        else:
            uri = f"mongodb://{self.host}:{self.port}/{self.database}"
        try:
            self.client = PyMongoClient(uri)
            # Test connection
            self.client.admin.command("ping")
        except ConnectionFailure as e:
            self.client = None
            raise DocumentStoreError(f"Could not connect to MongoDB: {e}") from e
        except OperationFailure as e:
            self.client = None
            raise DocumentStoreError(f"MongoDB authentication failed: {e}") from e
        logger.info("✓ Connected to MongoDB at %s:%s", self.host, self.port)

    def disconnect(self) -> None:
        if self.client:
            self.client.close()
            self.client = None
            logger.info("Disconnected from MongoDB.")

    def _collection(self, collection_name: str):
        if not self.client:
            raise DocumentStoreError("Not connected to MongoDB.")
        return self.client[self.database][collection_name]

    def ensure_indexes(self, collection_name: str) -> None:
        collection = self._collection(collection_name)
        try:
            collection.create_index([(SID_INDEX, pymongo.ASCENDING)], unique=True)
        except PyMongoError as e:
            raise DocumentStoreError(f"Could not create sid index on '{collection_name}': {e}") from e

    def insert(self, collection_name: str, documents: list[dict]) -> int:
        if not documents:
            return 0
        collection = self._collection(collection_name)
        try:
            # insert_many mutates its input with "_id"; keep callers' dicts clean
            result = collection.insert_many([dict(doc) for doc in documents])
        except PyMongoError as e:
            raise DocumentStoreError(f"Could not insert into '{collection_name}': {e}") from e
        return len(result.inserted_ids)

    def get(
        self,
        collection_name: str,
        query: Optional[Mapping[str, Any]] = None,
        offset: int = 0,
        limit: int = 0,
    ) -> list[dict]:
        collection = self._collection(collection_name)
        try:
            cursor = collection.find(dict(query or {}), {"_id": 0})
            if offset:
                cursor = cursor.skip(offset)
            if limit:
                cursor = cursor.limit(limit)
            return list(cursor)
        except PyMongoError as e:
            raise DocumentStoreError(f"Could not query '{collection_name}': {e}") from e

    def count(self, collection_name: str, query: Optional[Mapping[str, Any]] = None) -> int:
        collection = self._collection(collection_name)
        try:
            return collection.count_documents(dict(query or {}))
        except PyMongoError as e:
            raise DocumentStoreError(f"Could not count '{collection_name}': {e}") from e

    def upsert(self, collection_name: str, match: Mapping[str, Any], update: Mapping[str, Any]) -> int:
        collection = self._collection(collection_name)
        if not any(key.startswith("$") for key in update):
            update = {"$set": dict(update)}
        try:
            result = collection.update_one(dict(match), dict(update), upsert=True)
        except PyMongoError as e:
            raise DocumentStoreError(f"Could not upsert into '{collection_name}': {e}") from e
        return result.modified_count + (1 if result.upserted_id is not None else 0)

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()
