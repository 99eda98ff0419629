# ==============================================================================
# HTTP ADAPTER BASE - Timeout and Retry Policy for Network Backends
# ==============================================================================
# Shared by REST, GraphQL, Supabase and Elasticsearch adapters
# ==============================================================================

from __future__ import annotations

import base64
import logging
from typing import Any, Dict, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from backoffice.config.models import ApiAuthConfig
from backoffice.core.exceptions import (
    AdapterError,
    DataSourceConnectionError,
    RetryExhaustedError,
)
from backoffice.core.settings import settings
from backoffice.datasources.adapters.base_adapter import BaseDataSourceAdapter

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "PUT", "DELETE"})


class RetryableStatusError(Exception):
    """Internal marker for responses worth another attempt."""

    def __init__(self, response: httpx.Response) -> None:
        super().__init__(f"HTTP {response.status_code}")
        self.response = response


def auth_headers(auth: Optional[ApiAuthConfig]) -> Dict[str, str]:
    """Translate an auth block into request headers."""
    if auth is None:
        return {}

    auth_type = auth.auth_type.lower()
    if auth_type == "bearer" and auth.token:
        return {"Authorization": f"Bearer {auth.token}"}
    if auth_type == "basic" and auth.username is not None:
        raw = f"{auth.username}:{auth.password or ''}".encode("utf-8")
        return {"Authorization": f"Basic {base64.b64encode(raw).decode('ascii')}"}
    if auth_type in ("api_key", "apikey") and auth.token:
        return {auth.header_name: auth.token}

    logger.warning(f"Unsupported or incomplete auth type '{auth.auth_type}'; sending no credentials")
    return {}


class HttpDataSourceAdapter(BaseDataSourceAdapter):
    """
    Base for adapters that talk HTTP through ``httpx.AsyncClient``.

    Every call runs under a per-request timeout. Idempotent calls (GET,
    HEAD, OPTIONS, PUT, DELETE and reads sent as POST) are retried with
    exponential backoff on transport errors, timeouts and 429/5xx
    responses; once attempts run out ``RetryExhaustedError`` is raised.
    Other writes are sent exactly once.

    Args:
        name: Data source id
        base_url: Root URL of the backend
        headers: Static headers sent on every request
        timeout: Per-request timeout in seconds
        max_retries: Total attempts including the first
        retry_base_delay: Backoff multiplier in seconds
        retry_max_delay: Cap for a single backoff delay
        transport: Optional httpx transport (tests use ``MockTransport``)
    """

    health_path: str = ""

    def __init__(
        self,
        name: str,
        base_url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
        retry_max_delay: Optional[float] = None,
        check_on_connect: Optional[bool] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(name)
        self._base_url = base_url.rstrip("/")
        self._headers = dict(headers or {})
        self._timeout = timeout if timeout is not None else settings.HTTP_TIMEOUT
        self._max_retries = max_retries if max_retries is not None else settings.HTTP_MAX_RETRIES
        self._retry_base_delay = (
            retry_base_delay if retry_base_delay is not None else settings.HTTP_RETRY_BASE_DELAY
        )
        self._retry_max_delay = (
            retry_max_delay if retry_max_delay is not None else settings.HTTP_RETRY_MAX_DELAY
        )
        self._check_on_connect = (
            check_on_connect if check_on_connect is not None else settings.HTTP_CHECK_ON_CONNECT
        )
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    # ==========================================================================
    # LIFECYCLE METHODS
    # ==========================================================================

    async def connect(self) -> None:
        if not self._base_url.startswith(("http://", "https://")):
            raise DataSourceConnectionError(
                f"{self.kind} data source '{self.name}' has an invalid URL: {self._base_url}",
                data_source=self.name,
                kind=self.kind,
            )

        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._headers,
            timeout=self._timeout,
            transport=self._transport,
        )

        if self._check_on_connect and not await self.health_check():
            await self.disconnect()
            raise DataSourceConnectionError(
                f"{self.kind} data source '{self.name}' is unreachable at {self._base_url}",
                data_source=self.name,
                kind=self.kind,
            )

        logger.info(f"Connected {self.kind} data source '{self.name}' -> {self._base_url}")

    async def disconnect(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info(f"Closed {self.kind} data source '{self.name}'")

    async def health_check(self) -> bool:
        """Any HTTP answer counts as reachable; transport errors do not."""
        if not self._client:
            return False
        try:
            await self._client.get(self.health_path or "/")
            return True
        except httpx.HTTPError as e:
            logger.warning(f"Health check for '{self.name}' failed: {e}")
            return False

    # ==========================================================================
    # REQUESTS
    # ==========================================================================

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self._max_retries),
            wait=wait_exponential(multiplier=self._retry_base_delay, max=self._retry_max_delay),
            retry=retry_if_exception_type((httpx.TransportError, RetryableStatusError)),
            before_sleep=before_sleep_log(logger, logging.DEBUG),
        )

    async def _request(
        self,
        method: str,
        url: str,
        idempotent: Optional[bool] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Send one request, retrying only when repeating it is safe.

        Returns the final response for any non-retryable status; callers
        decide what a 4xx means for them. Non-idempotent requests get a
        single attempt, so a 5xx comes back as the response and a transport
        failure is raised as ``AdapterError``.

        Args:
            method: HTTP method
            url: Path relative to the base URL, or an absolute URL
            idempotent: Override for reads sent as POST (search, GraphQL
                queries); defaults to the method's own semantics

        Raises:
            RetryExhaustedError: After the last failed attempt
            AdapterError: If the adapter is not connected, or a single-shot
                request cannot be sent
        """
        if not self._client:
            raise self._error(f"{self.kind} data source '{self.name}' is not connected")

        if idempotent is None:
            idempotent = method.upper() in IDEMPOTENT_METHODS

        logger.debug(f"{self.name}: {method} {url}")
        if not idempotent:
            try:
                return await self._client.request(method, url, **kwargs)
            except httpx.TransportError as e:
                raise self._error(f"{method} {url} failed: {e}") from e

        try:
            async for attempt in self._retrying():
                with attempt:
                    response = await self._client.request(method, url, **kwargs)
                    if response.status_code in RETRYABLE_STATUS_CODES:
                        raise RetryableStatusError(response)
                    return response
        except RetryError as e:
            last = e.last_attempt.exception()
            raise RetryExhaustedError(
                f"{method} {url} failed after {self._max_retries} attempts: {last}",
                data_source=self.name,
                kind=self.kind,
                attempts=self._max_retries,
            ) from last
        raise self._error(f"{method} {url} produced no response")

    def _raise_for_status(self, response: httpx.Response) -> None:
        if response.is_error:
            raise AdapterError(
                f"{self.kind} request failed with HTTP {response.status_code}",
                data_source=self.name,
                kind=self.kind,
                details={"status_code": response.status_code, "body": response.text[:500]},
            )

    def _json(self, response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise self._error(f"Invalid JSON from {self.kind} backend: {e}") from e
