# ==============================================================================
# REST ADAPTER - JSON HTTP APIs
# ==============================================================================
# Endpoint paths as queries, offset/limit or Range-header pagination
# ==============================================================================

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

from backoffice.config.models import ApiSourceConfig
from backoffice.datasources.adapters.base_adapter import Pagination
from backoffice.datasources.adapters.http_adapter import HttpDataSourceAdapter, auth_headers
from backoffice.datasources.coercion import Record, to_record

logger = logging.getLogger(__name__)

HTTP_VERBS = ("GET", "POST", "PUT", "PATCH", "DELETE")


def split_verb(query: str, default: str) -> Tuple[str, str]:
    """``"PUT users/1"`` -> ``("PUT", "users/1")``; no verb -> default."""
    head, _, rest = (query or "").strip().partition(" ")
    if head.upper() in HTTP_VERBS:
        return head.upper(), rest.strip()
    return default, (query or "").strip()


def query_string_params(params: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """Stringify params for the URL; booleans as ``true``/``false``."""
    result: Dict[str, str] = {}
    for key, value in (params or {}).items():
        if value is None:
            continue
        if isinstance(value, bool):
            result[key] = "true" if value else "false"
        else:
            result[key] = str(value)
    return result


class RestAdapter(HttpDataSourceAdapter):
    """
    Generic REST adapter.

    Reads issue ``GET {base_url}/{query}`` with params in the query string.
    A JSON array becomes one record per object; a JSON object becomes a
    single record; 404, empty bodies and a blank query yield no records.

    Mutations default to ``POST {base_url}/{query}`` with the payload as
    JSON. A leading verb selects another method (``PUT users/7``) and
    ``{"delete": true}`` sends DELETE.

    Pagination style ``query`` adds ``offset``/``limit`` params, style
    ``range`` sends ``Range: items=start-end``.
    """

    kind = "api"
    supports_pagination = True

    def __init__(self, name: str, config: ApiSourceConfig, **kwargs: Any) -> None:
        headers = {"Accept": "application/json", **config.headers, **auth_headers(config.auth)}
        super().__init__(name, base_url=config.base_url, headers=headers, **kwargs)
        self._pagination_style = config.pagination_style

    def _records(self, payload: Any) -> List[Record]:
        if payload is None:
            return []
        if isinstance(payload, list):
            return [to_record(item) for item in payload if isinstance(item, dict)]
        if isinstance(payload, dict):
            return [to_record(payload)]
        raise self._error("Unexpected API response format")

    async def _get(
        self,
        path: str,
        params: Optional[Dict[str, Any]],
        headers: Optional[Dict[str, str]] = None,
    ) -> List[Record]:
        response = await self._request(
            "GET", path.lstrip("/"), params=query_string_params(params), headers=headers
        )
        if response.status_code == 404:
            return []
        self._raise_for_status(response)
        return self._records(self._json(response))

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
        return await self._get(query, params)

    async def execute_query_paginated(
        self,
        query: str,
        params: Optional[Dict[str, Any]],
        pagination: Pagination,
    ) -> List[Record]:
        if not query or not query.strip():
            return []
        if self._pagination_style == "range":
            end = pagination.start + pagination.limit - 1
            return await self._get(
                query, params, headers={"Range": f"items={pagination.start}-{end}"}
            )

        paged = dict(params or {})
        paged.update({"offset": pagination.start, "limit": pagination.limit})
        return await self._get(query, paged)

    async def execute_mutation(self, query: str, data: Dict[str, Any]) -> Any:
        method, path = split_verb(query, "POST")
        payload = {k: v for k, v in data.items() if k != "delete"}
        if data.get("delete") is True:
            method = "DELETE"

        if method in ("GET", "DELETE"):
            response = await self._request(method, path.lstrip("/"))
        else:
            response = await self._request(method, path.lstrip("/"), json=payload)

        self._raise_for_status(response)
        logger.info(f"API {method} /{path.lstrip('/')} on '{self.name}' -> {response.status_code}")

        body = self._json(response)
        if body is None:
            return {"status_code": response.status_code, "success": True}
        return body

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
            return f"{collection}/{quote(str(value), safe='')}", None
        return collection, {field: value}

    def render_delete(
        self,
        collection: str,
        field: str,
        value: Any,
    ) -> Tuple[str, Dict[str, Any]]:
        if field == "id":
            return f"DELETE {collection}/{quote(str(value), safe='')}", {}
        return f"DELETE {collection}?{field}={quote(str(value), safe='')}", {}
