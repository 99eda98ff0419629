# ==============================================================================
# WEBSOCKET ADAPTER - Request/Reply over a Persistent Socket (aiohttp)
# ==============================================================================

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

import aiohttp

from backoffice.config.models import WebSocketSourceConfig
from backoffice.core.exceptions import DataSourceConnectionError
from backoffice.core.settings import settings
from backoffice.datasources.adapters.base_adapter import BaseDataSourceAdapter
from backoffice.datasources.coercion import Record, to_record

logger = logging.getLogger(__name__)


class WebSocketAdapter(BaseDataSourceAdapter):
    """
    Adapter for real-time socket backends speaking JSON.

    Each call sends one JSON frame and waits for one reply frame:

        read:   {"action": "query", "query": ..., "params": {...}}
        write:  {"action": "mutation", "query": ..., "data": {...}}

    A list reply becomes one record per object, an object reply one record.
    A closed socket is reopened before the next call when ``reconnect`` is
    set. Calls are serialized so replies cannot interleave. Lookups are not
    supported.
    """

    kind = "websocket"

    def __init__(self, name: str, config: WebSocketSourceConfig) -> None:
        super().__init__(name)
        self._url = config.url
        self._reconnect = config.reconnect
        self._heartbeat = config.heartbeat_interval
        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._lock = asyncio.Lock()

    # ==========================================================================
    # LIFECYCLE METHODS
    # ==========================================================================

    async def _open(self) -> None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        self._ws = await self._session.ws_connect(self._url, heartbeat=self._heartbeat)

    async def connect(self) -> None:
        try:
            await self._open()
            logger.info(f"Connected WebSocket data source '{self.name}' -> {self._url}")
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            logger.error(f"WebSocket connection failed for '{self.name}': {e}")
            await self.disconnect()
            raise DataSourceConnectionError(
                f"WebSocket connection failed for '{self.name}': {e}",
                data_source=self.name,
                kind=self.kind,
            ) from e

    async def disconnect(self) -> None:
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        self._ws = None
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def health_check(self) -> bool:
        return self._ws is not None and not self._ws.closed

    # ==========================================================================
    # MESSAGING
    # ==========================================================================

    async def _exchange(self, frame: Dict[str, Any]) -> Any:
        async with self._lock:
            if self._ws is None or self._ws.closed:
                if not self._reconnect or self._session is None:
                    raise self._error(f"WebSocket '{self.name}' is closed")
                logger.warning(f"Reconnecting WebSocket data source '{self.name}'")
                try:
                    await self._open()
                except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
                    raise self._error(f"WebSocket reconnect failed: {e}") from e

            try:
                await self._ws.send_json(frame)
                message = await self._ws.receive(timeout=settings.WEBSOCKET_RECEIVE_TIMEOUT)
            except (aiohttp.ClientError, asyncio.TimeoutError, ConnectionResetError) as e:
                raise self._error(f"WebSocket exchange failed: {e}") from e

        if message.type == aiohttp.WSMsgType.TEXT:
            try:
                return json.loads(message.data)
            except ValueError:
                return message.data
        if message.type == aiohttp.WSMsgType.BINARY:
            return message.data.decode("utf-8", errors="replace")
        raise self._error(f"WebSocket closed while waiting for a reply ({message.type.name})")

    # ==========================================================================
    # QUERY OPERATIONS
    # ==========================================================================

    async def execute_query(
        self,
        query: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> List[Record]:
        if not query or not query.strip():
            return []
        reply = await self._exchange({"action": "query", "query": query, "params": params or {}})
        if isinstance(reply, list):
            return [to_record(item) for item in reply if isinstance(item, dict)]
        if isinstance(reply, dict):
            return [to_record(reply)]
        return [{"value": reply}]

    async def execute_mutation(self, query: str, data: Dict[str, Any]) -> Any:
        reply = await self._exchange({"action": "mutation", "query": query, "data": data})
        logger.info(f"WebSocket mutation on '{self.name}' acknowledged")
        return reply if reply is not None else {"success": True}

    # ==========================================================================
    # QUERY RENDERING
    # ==========================================================================

    def render_lookup(
        self,
        collection: str,
        field: str,
        value: Any,
    ) -> Tuple[str, Optional[Dict[str, Any]]]:
        raise self._error("WebSocket backends do not support record lookups")

    def render_delete(
        self,
        collection: str,
        field: str,
        value: Any,
    ) -> Tuple[str, Dict[str, Any]]:
        return f"delete {collection}", {field: value, "delete": True}
