# ==============================================================================
# S3 ADAPTER - Object Storage via aioboto3
# ==============================================================================
# Object keys (or "*" listings) as queries
# ==============================================================================

from __future__ import annotations

import base64
import json
import logging
import mimetypes
from typing import Any, Dict, List, Optional, Tuple

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

from backoffice.config.models import S3SourceConfig
from backoffice.core.exceptions import DataSourceConnectionError
from backoffice.datasources.adapters.base_adapter import BaseDataSourceAdapter
from backoffice.datasources.coercion import Record, matches_params, to_record

logger = logging.getLogger(__name__)

_MISSING_KEY_CODES = {"NoSuchKey", "404", "NotFound"}


def _decode_body(body: bytes, content_type: str) -> Tuple[Any, str]:
    """Return ``(content, encoding)``: parsed JSON, text, or base64."""
    if content_type.startswith("application/json"):
        try:
            return json.loads(body), "json"
        except ValueError:
            pass
    try:
        return body.decode("utf-8"), "text"
    except UnicodeDecodeError:
        return base64.b64encode(body).decode("ascii"), "base64"


class S3Adapter(BaseDataSourceAdapter):
    """
    S3 bucket adapter.

    Queries:
        - blank or ``*`` lists objects under the configured prefix
          (``max_keys`` param caps the listing)
        - ``reports/*`` lists under ``prefix/reports/``
        - any other text fetches that object's content

    Listing records: ``{key, size, last_modified, etag}``. Object records:
    ``{key, size, content, encoding, content_type, mime_type}``.

    Mutations put ``data["content"]`` (``encoding: base64`` for binary,
    optional ``content_type`` and ``metadata``) or, with
    ``{"delete": true}``, remove the object. No pagination.
    """

    kind = "s3"

    def __init__(self, name: str, config: S3SourceConfig) -> None:
        super().__init__(name)
        self._bucket = config.bucket
        self._region = config.region
        self._access_key = config.access_key
        self._secret_key = config.secret_key
        self._prefix = (config.prefix or "").strip("/")
        self._endpoint_url = config.endpoint_url
        self._session: Optional[aioboto3.Session] = None

    def _client_config(self) -> Dict[str, Any]:
        client_config: Dict[str, Any] = {"region_name": self._region}
        if self._access_key and self._secret_key:
            client_config["aws_access_key_id"] = self._access_key
            client_config["aws_secret_access_key"] = self._secret_key
        if self._endpoint_url:
            client_config["endpoint_url"] = self._endpoint_url
        return client_config

    def _full_key(self, key: str) -> str:
        key = key.lstrip("/")
        return f"{self._prefix}/{key}" if self._prefix else key

    def _short_key(self, key: str) -> str:
        prefix = f"{self._prefix}/" if self._prefix else ""
        return key[len(prefix):] if prefix and key.startswith(prefix) else key

    def _client(self):
        if not self._session:
            raise self._error(f"S3 data source '{self.name}' is not connected")
        return self._session.client("s3", **self._client_config())

    # ==========================================================================
    # LIFECYCLE METHODS
    # ==========================================================================

    async def connect(self) -> None:
        self._session = aioboto3.Session()
        if not await self.health_check():
            self._session = None
            raise DataSourceConnectionError(
                f"S3 bucket '{self._bucket}' is not reachable for '{self.name}'",
                data_source=self.name,
                kind=self.kind,
            )
        logger.info(f"Connected S3 data source '{self.name}' (bucket {self._bucket})")

    async def disconnect(self) -> None:
        self._session = None

    async def health_check(self) -> bool:
        if not self._session:
            return False
        try:
            async with self._client() as s3:
                await s3.head_bucket(Bucket=self._bucket)
            return True
        except (BotoCoreError, ClientError) as e:
            logger.error(f"S3 health check failed for '{self.name}': {e}")
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
        params = dict(params or {})
        listing = not key or key.endswith("*")
        if listing:
            raw_max = params.pop("max_keys", 1000)
            try:
                max_keys = int(raw_max)
            except (TypeError, ValueError) as e:
                raise self._error(f"Invalid max_keys: {raw_max!r}", key=key) from e
            if max_keys < 1:
                raise self._error(f"max_keys must be positive, got {max_keys}", key=key)

        try:
            if listing:
                records = await self._list(key.rstrip("*"), max_keys)
            else:
                records = await self._get(key)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"S3 read failed on '{self.name}': {e}")
            raise self._error(f"S3 read failed: {e}", key=key) from e
        return [r for r in records if matches_params(r, params)]

    async def _list(self, sub_prefix: str, max_keys: int) -> List[Record]:
        prefix = self._full_key(sub_prefix) if sub_prefix else (f"{self._prefix}/" if self._prefix else "")
        async with self._client() as s3:
            response = await s3.list_objects_v2(Bucket=self._bucket, Prefix=prefix, MaxKeys=max_keys)
        return [
            to_record({
                "key": self._short_key(obj["Key"]),
                "size": obj.get("Size"),
                "last_modified": obj.get("LastModified"),
                "etag": (obj.get("ETag") or "").strip('"'),
            })
            for obj in response.get("Contents", [])
        ]

    async def _get(self, key: str) -> List[Record]:
        async with self._client() as s3:
            try:
                response = await s3.get_object(Bucket=self._bucket, Key=self._full_key(key))
            except ClientError as e:
                if e.response.get("Error", {}).get("Code") in _MISSING_KEY_CODES:
                    return []
                raise
            async with response["Body"] as stream:
                body: bytes = await stream.read()

        content_type = response.get("ContentType") or "application/octet-stream"
        content, encoding = _decode_body(body, content_type)
        return [to_record({
            "key": key,
            "size": len(body),
            "content": content,
            "encoding": encoding,
            "content_type": content_type,
            "mime_type": mimetypes.guess_type(key)[0],
        })]

    async def execute_mutation(self, query: str, data: Dict[str, Any]) -> Any:
        key = (query or "").strip()
        if not key:
            raise self._error("S3 mutation requires an object key")

        try:
            async with self._client() as s3:
                if data.get("delete") is True:
                    await s3.delete_object(Bucket=self._bucket, Key=self._full_key(key))
                    ack = {"key": key, "deleted": True, "success": True}
                else:
                    if "content" not in data:
                        raise self._error("S3 put requires 'content'")
                    body, content_type = self._encode_body(data)
                    extra: Dict[str, Any] = {}
                    if data.get("metadata"):
                        extra["Metadata"] = {str(k): str(v) for k, v in data["metadata"].items()}
                    response = await s3.put_object(
                        Bucket=self._bucket,
                        Key=self._full_key(key),
                        Body=body,
                        ContentType=content_type,
                        **extra,
                    )
                    ack = {"key": key, "etag": (response.get("ETag") or "").strip('"'), "success": True}
        except (BotoCoreError, ClientError) as e:
            logger.error(f"S3 write failed on '{self.name}': {e}")
            raise self._error(f"S3 write failed: {e}", key=key) from e

        logger.info(f"S3 mutation on '{self.name}': {key}")
        return ack

    def _encode_body(self, data: Dict[str, Any]) -> Tuple[bytes, str]:
        content = data["content"]
        if data.get("encoding") == "base64":
            try:
                return base64.b64decode(content), data.get("content_type") or "application/octet-stream"
            except (ValueError, TypeError) as e:
                raise self._error(f"Invalid base64 content: {e}") from e
        if isinstance(content, str):
            return content.encode("utf-8"), data.get("content_type") or "text/plain"
        return json.dumps(content).encode("utf-8"), data.get("content_type") or "application/json"

    # ==========================================================================
    # QUERY RENDERING
    # ==========================================================================

    def render_lookup(
        self,
        collection: str,
        field: str,
        value: Any,
    ) -> Tuple[str, Optional[Dict[str, Any]]]:
        if field in ("id", "key"):
            return f"{collection}/{value}", None
        return f"{collection}/*", {field: value}

    def render_delete(
        self,
        collection: str,
        field: str,
        value: Any,
    ) -> Tuple[str, Dict[str, Any]]:
        if field not in ("id", "key"):
            raise self._error("S3 can only delete by object key")
        return f"{collection}/{value}", {"delete": True}
