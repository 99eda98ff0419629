# ==============================================================================
# ELASTICSEARCH ADAPTER - Search Index over HTTP
# ==============================================================================
# Query DSL bodies as queries, from/size pagination
# ==============================================================================

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

from backoffice.config.models import ElasticsearchSourceConfig
from backoffice.datasources.adapters.base_adapter import Pagination
from backoffice.datasources.adapters.http_adapter import HttpDataSourceAdapter, auth_headers
from backoffice.datasources.coercion import Record, to_record

logger = logging.getLogger(__name__)


class ElasticsearchAdapter(HttpDataSourceAdapter):
    """
    Elasticsearch adapter talking to the REST API of the first node.

    Query text is a search body (``{"query": {...}}``) or a bare query
    clause; blank means ``match_all``. Params become ``term`` filters.
    Hits are returned as their ``_source`` plus ``_id`` and ``_score``.

    Mutations index the payload under the document id given as query text
    (blank lets Elasticsearch pick one); ``{"delete": true}`` deletes it.
    """

    kind = "elasticsearch"
    supports_pagination = True

    def __init__(self, name: str, config: ElasticsearchSourceConfig, **kwargs: Any) -> None:
        headers = {"Content-Type": "application/json", **auth_headers(config.auth)}
        super().__init__(name, base_url=config.nodes[0], headers=headers, **kwargs)
        self._index = config.index

    def _search_body(self, query: str, params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        text = (query or "").strip()
        if text:
            try:
                body = json.loads(text)
            except ValueError as e:
                raise self._error(f"Elasticsearch query is not valid JSON: {e}", query=text) from e
            if not isinstance(body, dict):
                raise self._error("Elasticsearch query must be a JSON object", query=text)
            if "query" not in body:
                body = {"query": body}
        else:
            body = {"query": {"match_all": {}}}

        if params:
            terms = [{"term": {key: value}} for key, value in params.items()]
            body["query"] = {"bool": {"must": [body["query"]], "filter": terms}}
        return body

    async def _search(self, body: Dict[str, Any]) -> List[Record]:
        response = await self._request(
            "POST", f"/{self._index}/_search", idempotent=True, json=body
        )
        if response.status_code == 404:
            return []
        self._raise_for_status(response)
        payload = self._json(response) or {}

        records = []
        for hit in payload.get("hits", {}).get("hits", []):
            record = dict(hit.get("_source") or {})
            record["_id"] = hit.get("_id")
            record["_score"] = hit.get("_score")
            records.append(to_record(record))
        return records

    # ==========================================================================
    # QUERY OPERATIONS
    # ==========================================================================

    async def execute_query(
        self,
        query: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> List[Record]:
        return await self._search(self._search_body(query, params))

    async def execute_query_paginated(
        self,
        query: str,
        params: Optional[Dict[str, Any]],
        pagination: Pagination,
    ) -> List[Record]:
        body = self._search_body(query, params)
        body["from"] = pagination.start
        body["size"] = pagination.limit
        return await self._search(body)

    async def execute_mutation(self, query: str, data: Dict[str, Any]) -> Any:
        doc_id = (query or "").strip()
        document = {k: v for k, v in data.items() if k != "delete"}

        if data.get("delete") is True:
            if not doc_id:
                raise self._error("Elasticsearch delete requires a document id")
            response = await self._request("DELETE", f"/{self._index}/_doc/{quote(doc_id, safe='')}")
            if response.status_code == 404:
                return {"id": doc_id, "deleted": 0, "success": True}
        elif doc_id:
            response = await self._request(
                "PUT", f"/{self._index}/_doc/{quote(doc_id, safe='')}", json=document
            )
        else:
            response = await self._request("POST", f"/{self._index}/_doc", json=document)

        self._raise_for_status(response)
        result = self._json(response) or {}
        ack = {"id": result.get("_id", doc_id), "result": result.get("result"), "success": True}
        if data.get("delete") is True:
            ack["deleted"] = 1
        logger.info(f"Elasticsearch mutation on '{self.name}': {ack}")
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
        if field in ("id", "_id"):
            return json.dumps({"query": {"ids": {"values": [str(value)]}}}), None
        return json.dumps({"query": {"term": {field: value}}}), None

    def render_delete(
        self,
        collection: str,
        field: str,
        value: Any,
    ) -> Tuple[str, Dict[str, Any]]:
        if field not in ("id", "_id"):
            raise self._error("Elasticsearch can only delete by document id")
        return str(value), {"delete": True}
