# ==============================================================================
# REDIS ADAPTER - redis.asyncio Key-Value Access
# ==============================================================================
# Keys (or glob patterns) as queries, JSON-decoded values as records
# ==============================================================================

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

from backoffice.config.models import RedisSourceConfig
from backoffice.core.exceptions import DataSourceConnectionError
from backoffice.datasources.adapters.base_adapter import BaseDataSourceAdapter
from backoffice.datasources.coercion import Record, matches_params

logger = logging.getLogger(__name__)


def _decode(raw: Optional[str]) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return raw


class RedisAdapter(BaseDataSourceAdapter):
    """
    Redis adapter for string keys holding JSON or plain text.

    Key Patterns:
        - ``user:42``     -> GET, one record
        - ``user:*``      -> SCAN + MGET, one record per key
        - blank           -> no records

    Records look like ``{"key": "user:42", "value": {...}}`` with the
    configured prefix stripped. The params map filters records on ``key``,
    ``value`` or fields of a JSON object value.

    Mutations: ``{"value": ..., "ttl": seconds}`` sets the key,
    ``{"delete": true}`` removes it. Pagination is not supported.
    """

    kind = "redis"

    def __init__(self, name: str, config: RedisSourceConfig) -> None:
        super().__init__(name)
        self._url = config.connection_string
        self._key_prefix = config.key_prefix
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[Redis] = None

    def _full_key(self, key: str) -> str:
        return f"{self._key_prefix}:{key}" if self._key_prefix else key

    def _short_key(self, key: str) -> str:
        prefix = f"{self._key_prefix}:" if self._key_prefix else ""
        return key[len(prefix):] if prefix and key.startswith(prefix) else key

    @property
    def _redis(self) -> Redis:
        if not self._client:
            raise self._error(f"Redis data source '{self.name}' is not connected")
        return self._client

    # ==========================================================================
    # LIFECYCLE METHODS
    # ==========================================================================

    async def connect(self) -> None:
        try:
            self._pool = ConnectionPool.from_url(
                self._url,
                max_connections=10,
                socket_timeout=5.0,
                socket_connect_timeout=5.0,
                retry_on_timeout=True,
                decode_responses=True,
            )
            self._client = Redis(connection_pool=self._pool)
            await self._client.ping()
            logger.info(f"Connected Redis data source '{self.name}'")
        except Exception as e:
            logger.error(f"Redis connection failed for '{self.name}': {e}")
            await self.disconnect()
            raise DataSourceConnectionError(
                f"Redis connection failed for '{self.name}': {e}",
                data_source=self.name,
                kind=self.kind,
            ) from e

    async def disconnect(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
        if self._pool:
            await self._pool.disconnect()
            self._pool = None

    async def health_check(self) -> bool:
        if not self._client:
            return False
        try:
            return bool(await self._client.ping())
        except RedisError as e:
            logger.error(f"Redis health check failed for '{self.name}': {e}")
            return False

    # ==========================================================================
    # QUERY OPERATIONS
    # ==========================================================================

    async def execute_query(
        self,
        query: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> List[Record]:
        key = (query or "").strip()
        if not key:
            return []

        try:
            if "*" in key or "?" in key:
                keys = [k async for k in self._redis.scan_iter(match=self._full_key(key))]
                values = await self._redis.mget(keys) if keys else []
                pairs = list(zip(keys, values))
            else:
                full_key = self._full_key(key)
                pairs = [(full_key, await self._redis.get(full_key))]
        except RedisError as e:
            logger.error(f"Redis read failed on '{self.name}': {e}")
            raise self._error(f"Redis read failed: {e}", key=key) from e

        records = [
            {"key": self._short_key(k), "value": _decode(raw)}
            for k, raw in pairs
            if raw is not None
        ]
        return [r for r in records if matches_params(r, params)]

    async def execute_mutation(self, query: str, data: Dict[str, Any]) -> Any:
        key = (query or "").strip()
        if not key:
            raise self._error("Redis mutation requires a key")
        full_key = self._full_key(key)

        try:
            if data.get("delete") is True:
                deleted = await self._redis.delete(full_key)
                ack = {"key": key, "deleted": deleted, "success": True}
            elif "value" in data:
                value = data["value"]
                raw = value if isinstance(value, str) else json.dumps(value)
                ttl = data.get("ttl")
                if ttl:
                    await self._redis.set(full_key, raw, ex=int(ttl))
                else:
                    await self._redis.set(full_key, raw)
                ack = {"key": key, "success": True}
            else:
                raise self._error("Redis mutation needs a 'value' or 'delete: true'")
        except RedisError as e:
            logger.error(f"Redis write failed on '{self.name}': {e}")
            raise self._error(f"Redis write failed: {e}", key=key) from e

        logger.info(f"Redis mutation on '{self.name}': {key}")
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
        if field == "id":
            return f"{collection}:{value}", None
        return f"{collection}:*", {field: value}

    def render_delete(
        self,
        collection: str,
        field: str,
        value: Any,
    ) -> Tuple[str, Dict[str, Any]]:
        if field != "id":
            raise self._error("Redis can only delete by key")
        return f"{collection}:{value}", {"delete": True}
