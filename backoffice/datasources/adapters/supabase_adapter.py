# ==============================================================================
# SUPABASE ADAPTER - PostgREST Table Access
# ==============================================================================

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qsl

from backoffice.config.models import SupabaseSourceConfig
from backoffice.datasources.adapters.base_adapter import Pagination
from backoffice.datasources.adapters.http_adapter import HttpDataSourceAdapter
from backoffice.datasources.adapters.rest_adapter import query_string_params, split_verb
from backoffice.datasources.coercion import Record, to_record

logger = logging.getLogger(__name__)

_OPERATORS = {"eq", "neq", "gt", "gte", "lt", "lte", "like", "ilike", "is", "in", "cs", "cd"}


def _filters(text: str, params: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """
    Merge a PostgREST query string with plain equality params.

    ``"select=*&status=eq.active"`` plus ``{"owner": 3}`` gives
    ``{"select": "*", "status": "eq.active", "owner": "eq.3"}``.
    """
    merged = dict(parse_qsl(text.lstrip("?"), keep_blank_values=True)) if text else {}
    for key, value in query_string_params(params).items():
        merged[key] = value if "." in value and value.split(".", 1)[0] in _OPERATORS else f"eq.{value}"
    return merged


class SupabaseAdapter(HttpDataSourceAdapter):
    """
    Supabase table adapter over ``{url}/rest/v1/{table}``.

    Query text is a PostgREST query string (``select=id,name&status=eq.x``).
    Pagination uses the ``Range`` header. Mutations insert by default;
    a leading ``PATCH``/``DELETE`` verb with a filter string updates or
    deletes, as does ``{"delete": true}`` with an ``id``.
    """

    kind = "supabase"
    supports_pagination = True
    health_path = "/rest/v1/"

    def __init__(self, name: str, config: SupabaseSourceConfig, **kwargs: Any) -> None:
        headers = {
            "apikey": config.api_key,
            "Authorization": f"Bearer {config.api_key}",
            "Content-Type": "application/json",
        }
        super().__init__(name, base_url=config.url, headers=headers, **kwargs)
        self._table = config.table

    @property
    def _path(self) -> str:
        return f"rest/v1/{self._table}"

    async def _select(
        self,
        query: str,
        params: Optional[Dict[str, Any]],
        headers: Optional[Dict[str, str]] = None,
    ) -> List[Record]:
        response = await self._request(
            "GET", self._path, params=_filters(query or "", params), headers=headers
        )
        self._raise_for_status(response)
        payload = self._json(response) or []
        if isinstance(payload, dict):
            payload = [payload]
        return [to_record(row) for row in payload if isinstance(row, dict)]

    async def execute_query(
        self,
        query: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> List[Record]:
        return await self._select(query, params)

    async def execute_query_paginated(
        self,
        query: str,
        params: Optional[Dict[str, Any]],
        pagination: Pagination,
    ) -> List[Record]:
        end = pagination.start + pagination.limit - 1
        headers = {"Range-Unit": "items", "Range": f"{pagination.start}-{end}"}
        return await self._select(query, params, headers=headers)

    async def execute_mutation(self, query: str, data: Dict[str, Any]) -> Any:
        method, filter_text = split_verb(query, "POST")
        payload = {k: v for k, v in data.items() if k != "delete"}
        if data.get("delete") is True:
            method = "DELETE"
            if not filter_text and "id" in payload:
                filter_text = f"id=eq.{payload['id']}"

        if method in ("PATCH", "DELETE") and not filter_text:
            raise self._error(f"Supabase {method} requires a filter")

        headers = {"Prefer": "return=representation"}
        params = _filters(filter_text, None)
        if method == "DELETE":
            response = await self._request(method, self._path, params=params, headers=headers)
        else:
            response = await self._request(
                method, self._path, params=params, headers=headers, json=payload
            )

        self._raise_for_status(response)
        rows = self._json(response) or []
        logger.info(f"Supabase {method} on '{self.name}' ({self._table}) returned {len(rows)} rows")
        return {"rows": rows, "rows_affected": len(rows), "success": True}

    def render_lookup(
        self,
        collection: str,
        field: str,
        value: Any,
    ) -> Tuple[str, Optional[Dict[str, Any]]]:
        return f"{field}=eq.{value}", None

    def render_delete(
        self,
        collection: str,
        field: str,
        value: Any,
    ) -> Tuple[str, Dict[str, Any]]:
        return f"DELETE {field}=eq.{value}", {}
