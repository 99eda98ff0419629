# ==============================================================================
# MONGODB ADAPTER - Motor Async Driver
# ==============================================================================
# JSON filter documents as queries, skip/limit pagination
# ==============================================================================

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorCollection,
)
from pymongo.errors import PyMongoError

from backoffice.config.models import MongoSourceConfig
from backoffice.core.exceptions import DataSourceConnectionError
from backoffice.core.settings import settings
from backoffice.datasources.adapters.base_adapter import BaseDataSourceAdapter, Pagination
from backoffice.datasources.coercion import Record, to_record

logger = logging.getLogger(__name__)

MUTATION_VERBS = ("insert", "update", "delete")


class MongoDBAdapter(BaseDataSourceAdapter):
    """
    MongoDB adapter bound to one collection.

    Query text is a JSON filter document (blank means match-all); the
    params map is merged into it. Document ids are exposed as a string
    ``id`` field and ``id`` in filters maps back to ``_id``.

    Mutations read a verb and an optional filter from the query text::

        insert
        update {"status": "draft"}
        delete {"id": "65f..."}

    A blank query inserts. ``{"delete": true}`` in the payload deletes.
    """

    kind = "mongodb"
    supports_pagination = True

    def __init__(self, name: str, config: MongoSourceConfig) -> None:
        super().__init__(name)
        self._connection_url = config.connection_string
        self._database_name = config.database
        self._collection_name = config.collection
        self._client: Optional[AsyncIOMotorClient] = None

    # ==========================================================================
    # ID HELPERS
    # ==========================================================================

    @staticmethod
    def _serialize_id(document: Dict[str, Any]) -> Dict[str, Any]:
        """Transform ``_id`` into a string ``id``."""
        if document and "_id" in document:
            document["id"] = str(document.pop("_id"))
        return document

    @staticmethod
    def _deserialize_id(id_value: Any) -> Any:
        """Convert a 24-hex string to ObjectId; leave other ids untouched."""
        if isinstance(id_value, str):
            try:
                return ObjectId(id_value)
            except (InvalidId, TypeError):
                return id_value
        return id_value

    def _build_query(self, filters: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        query: Dict[str, Any] = {}
        for key, value in (filters or {}).items():
            if key in ("id", "_id"):
                query["_id"] = self._deserialize_id(value)
            else:
                query[key] = value
        return query

    def _parse_filter(self, text: str) -> Dict[str, Any]:
        text = text.strip()
        if not text:
            return {}
        try:
            parsed = json.loads(text)
        except ValueError as e:
            raise self._error(f"MongoDB query is not valid JSON: {e}", query=text) from e
        if not isinstance(parsed, dict):
            raise self._error("MongoDB query must be a JSON object", query=text)
        return parsed

    @property
    def _collection(self) -> AsyncIOMotorCollection:
        if not self._client:
            raise self._error(f"MongoDB data source '{self.name}' is not connected")
        return self._client[self._database_name][self._collection_name]

    # ==========================================================================
    # LIFECYCLE METHODS
    # ==========================================================================

    async def connect(self) -> None:
        try:
            self._client = AsyncIOMotorClient(
                self._connection_url,
                maxPoolSize=settings.DB_POOL_SIZE,
                minPoolSize=1,
                maxIdleTimeMS=settings.DB_POOL_RECYCLE * 1000,
                serverSelectionTimeoutMS=settings.DB_POOL_TIMEOUT * 1000,
            )
            await self._client.admin.command("ping")
            logger.info(
                f"Connected MongoDB data source '{self.name}' "
                f"({self._database_name}.{self._collection_name})"
            )
        except Exception as e:
            logger.error(f"MongoDB connection failed for '{self.name}': {e}")
            if self._client:
                self._client.close()
                self._client = None
            raise DataSourceConnectionError(
                f"MongoDB connection failed for '{self.name}': {e}",
                data_source=self.name,
                kind=self.kind,
            ) from e

    async def disconnect(self) -> None:
        if self._client:
            self._client.close()
            self._client = None
            logger.info(f"Closed MongoDB data source '{self.name}'")

    async def health_check(self) -> bool:
        if not self._client:
            return False
        try:
            await self._client.admin.command("ping")
            return True
        except Exception as e:
            logger.error(f"MongoDB health check failed for '{self.name}': {e}")
            return False

    # ==========================================================================
    # QUERY OPERATIONS
    # ==========================================================================

    async def execute_query(
        self,
        query: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> List[Record]:
        return await self._find(query, params, None)

    async def execute_query_paginated(
        self,
        query: str,
        params: Optional[Dict[str, Any]],
        pagination: Pagination,
    ) -> List[Record]:
        return await self._find(query, params, pagination)

    async def _find(
        self,
        query: str,
        params: Optional[Dict[str, Any]],
        pagination: Optional[Pagination],
    ) -> List[Record]:
        filters = self._parse_filter(query or "")
        filters.update(params or {})
        mongo_query = self._build_query(filters)
        logger.debug(f"{self.name}: find {mongo_query} {pagination}")

        try:
            cursor = self._collection.find(mongo_query)
            if pagination is not None:
                cursor = cursor.skip(pagination.start).limit(pagination.limit)
            documents = await cursor.to_list(length=None)
        except PyMongoError as e:
            logger.error(f"MongoDB query failed on '{self.name}': {e}")
            raise self._error(f"MongoDB query failed: {e}") from e

        return [to_record(self._serialize_id(doc)) for doc in documents]

    async def execute_mutation(self, query: str, data: Dict[str, Any]) -> Any:
        verb, _, rest = (query or "").strip().partition(" ")
        verb = verb.lower()
        if verb and verb not in MUTATION_VERBS:
            # No verb: the whole query is a filter
            verb, rest = "update", query
        payload = dict(data or {})
        if payload.pop("delete", False) is True:
            verb = "delete"
        verb = verb or "insert"

        try:
            if verb == "insert":
                result = await self._collection.insert_one(self._build_query(payload))
                ack = {"inserted_id": str(result.inserted_id), "success": True}
            elif verb == "update":
                filters = self._build_query(self._parse_filter(rest))
                changes = {k: v for k, v in payload.items() if k not in ("id", "_id")}
                if not changes:
                    raise self._error("MongoDB update requires at least one field")
                result = await self._collection.update_many(filters, {"$set": changes})
                ack = {
                    "matched_count": result.matched_count,
                    "modified_count": result.modified_count,
                    "success": True,
                }
            else:
                filters = self._parse_filter(rest)
                if not filters and "id" in payload:
                    filters = {"id": payload["id"]}
                if not filters:
                    raise self._error("MongoDB delete requires a filter")
                result = await self._collection.delete_many(self._build_query(filters))
                ack = {"deleted_count": result.deleted_count, "success": True}
        except PyMongoError as e:
            logger.error(f"MongoDB {verb} failed on '{self.name}': {e}")
            raise self._error(f"MongoDB {verb} failed: {e}") from e

        logger.info(f"MongoDB {verb} on '{self.name}': {ack}")
        return ack

    # ==========================================================================
    # QUERY RENDERING
    # ==========================================================================

    def render_lookup(
        self,
        collection: str,
        field: str,
        value: Any,
    ) -> Tuple[str, Optional[Dict[str, Any]]]:
        return "", {field: value}

    def render_delete(
        self,
        collection: str,
        field: str,
        value: Any,
    ) -> Tuple[str, Dict[str, Any]]:
        return f"delete {json.dumps({field: value})}", {}
