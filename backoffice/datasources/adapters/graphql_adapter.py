# ==============================================================================
# GRAPHQL ADAPTER - Queries and Mutations over HTTP POST
# ==============================================================================

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from backoffice.config.models import GraphQLSourceConfig
from backoffice.core.exceptions import AdapterError
from backoffice.datasources.adapters.base_adapter import Pagination
from backoffice.datasources.adapters.http_adapter import HttpDataSourceAdapter, auth_headers
from backoffice.datasources.coercion import Record, to_record

logger = logging.getLogger(__name__)


class GraphQLAdapter(HttpDataSourceAdapter):
    """
    GraphQL adapter posting ``{"query", "variables"}`` to one endpoint.

    Params and mutation payloads are sent as variables; pagination adds
    ``limit`` and ``offset`` variables for the document to use.

    Result shaping: when ``data`` has a single root field holding a list,
    each element becomes a record; a single object root becomes one record;
    otherwise ``data`` itself is the record. A non-empty ``errors`` array
    raises ``AdapterError``.

    Lookups render ``query { <collection>(<field>: <value>) { id <field> } }``
    and deletes ``mutation { delete_<collection>(<field>: <value>) { id } }``;
    schemas with other conventions should spell their own queries.
    """

    kind = "graphql"
    supports_pagination = True

    def __init__(self, name: str, config: GraphQLSourceConfig, **kwargs: Any) -> None:
        headers = {"Content-Type": "application/json", **config.headers, **auth_headers(config.auth)}
        super().__init__(name, base_url=config.endpoint, headers=headers, **kwargs)

    async def _post(self, document: str, variables: Dict[str, Any], write: bool = False) -> Any:
        # Only read documents are safe to send twice
        read_only = not write and not document.lstrip().lower().startswith("mutation")
        response = await self._request(
            "POST",
            self._base_url,
            idempotent=read_only,
            json={"query": document, "variables": variables},
        )
        self._raise_for_status(response)
        payload = self._json(response) or {}

        errors = payload.get("errors")
        if errors:
            messages = [e.get("message", str(e)) if isinstance(e, dict) else str(e) for e in errors]
            raise AdapterError(
                f"GraphQL errors: {'; '.join(messages)}",
                data_source=self.name,
                kind=self.kind,
                details={"errors": errors},
            )
        return payload.get("data")

    @staticmethod
    def _shape(data: Any) -> List[Record]:
        if data is None:
            return []
        if isinstance(data, dict) and len(data) == 1:
            root = next(iter(data.values()))
            if root is None:
                return []
            if isinstance(root, list):
                return [to_record(item) for item in root if isinstance(item, dict)]
            if isinstance(root, dict):
                return [to_record(root)]
        if isinstance(data, dict):
            return [to_record(data)]
        return []

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
        return self._shape(await self._post(query, dict(params or {})))

    async def execute_query_paginated(
        self,
        query: str,
        params: Optional[Dict[str, Any]],
        pagination: Pagination,
    ) -> List[Record]:
        if not query or not query.strip():
            return []
        variables = dict(params or {})
        variables.update({"limit": pagination.limit, "offset": pagination.start})
        return self._shape(await self._post(query, variables))

    async def execute_mutation(self, query: str, data: Dict[str, Any]) -> Any:
        if not query or not query.strip():
            raise self._error("GraphQL mutation requires a document")
        result = await self._post(query, dict(data), write=True)
        logger.info(f"GraphQL mutation on '{self.name}' completed")
        return result

    # ==========================================================================
    # QUERY RENDERING
    # ==========================================================================

    def render_lookup(
        self,
        collection: str,
        field: str,
        value: Any,
    ) -> Tuple[str, Optional[Dict[str, Any]]]:
        root = self._check_identifier(collection)
        arg = self._check_identifier(field)
        selection = "id" if arg == "id" else f"id {arg}"
        return f"query {{ {root}({arg}: {json.dumps(value)}) {{ {selection} }} }}", None

    def render_delete(
        self,
        collection: str,
        field: str,
        value: Any,
    ) -> Tuple[str, Dict[str, Any]]:
        root = self._check_identifier(collection)
        arg = self._check_identifier(field)
        return f"mutation {{ delete_{root}({arg}: {json.dumps(value)}) {{ id }} }}", {}
