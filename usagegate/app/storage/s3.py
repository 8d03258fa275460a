"""S3-backed usage record storage.

Each user's record is an individual JSON object:

    {prefix}/{safe_id}.json

boto3 is synchronous, so every call runs in a worker thread to keep the
event loop free.
"""

import asyncio
import json
from typing import Any, Optional

import boto3
from botocore.client import BaseClient
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from usagegate.app.core.logging import get_logger
from usagegate.app.exceptions import (
    StorageConflictError,
    StorageError,
    StorageNotFoundError,
    StoragePermissionError,
    StorageUnavailableError,
)
from usagegate.app.storage.base import QuotaBackend
from usagegate.app.storage.models import UserQuotaRecord

logger = get_logger(__name__)

RECORD_SUFFIX = ".json"

_ERROR_CODE_MAP = {
    "NoSuchKey": StorageNotFoundError,
    "404": StorageNotFoundError,
    "NotFound": StorageNotFoundError,
    "AccessDenied": StoragePermissionError,
    "403": StoragePermissionError,
    "AllAccessDisabled": StoragePermissionError,
    "InvalidAccessKeyId": StoragePermissionError,
    "SignatureDoesNotMatch": StoragePermissionError,
    "PreconditionFailed": StorageConflictError,
    "412": StorageConflictError,
    "ConditionalRequestConflict": StorageConflictError,
    "409": StorageConflictError,
}


def translate_error(error: Exception, key: str | None = None) -> StorageError:
    """Map a botocore exception onto the storage error hierarchy.

    Unknown client error codes and transport failures become
    ``StorageUnavailableError``; missing credentials count as a permission
    failure.
    """
    if isinstance(error, ClientError):
        code = str(error.response.get("Error", {}).get("Code", ""))
        exc_cls = _ERROR_CODE_MAP.get(code, StorageUnavailableError)
        return exc_cls(str(error), key=key, cause=error)
    if isinstance(error, NoCredentialsError):
        return StoragePermissionError(str(error), key=key, cause=error)
    return StorageUnavailableError(str(error), key=key, cause=error)


class S3QuotaBackend(QuotaBackend):
    """Usage record backend on S3-compatible object storage."""

    def __init__(
        self,
        bucket_name: str,
        prefix: str = "quotas",
        region: str = "us-east-1",
        endpoint_url: Optional[str] = None,
        conditional_writes: bool = True,
        s3_client: Optional[BaseClient] = None,
    ):
        """Initialize S3 storage.

        Args:
            bucket_name: S3 bucket name
            prefix: Key prefix for record objects
            region: AWS region of the bucket
            endpoint_url: Custom endpoint for S3-compatible stores (MinIO etc.)
            conditional_writes: Send If-Match/If-None-Match on every write
            s3_client: Optional pre-configured S3 client
        """
        if not bucket_name:
            raise ValueError("bucket_name cannot be empty")

        self.bucket_name = bucket_name
        self.prefix = prefix.strip("/")
        self.conditional_writes = conditional_writes

        if s3_client is None:
            kwargs: dict[str, Any] = {
                "config": Config(
                    region_name=region,
                    signature_version="s3v4",
                    retries={"max_attempts": 3, "mode": "standard"},
                ),
            }
            if endpoint_url:
                kwargs["endpoint_url"] = endpoint_url
            self.s3 = boto3.client("s3", **kwargs)
        else:
            self.s3 = s3_client

        logger.info(
            "S3QuotaBackend initialized. Bucket: %s, Prefix: %s",
            self.bucket_name,
            self.prefix,
        )

    def key_for(self, safe_id: str) -> str:
        return f"{self.prefix}/{safe_id}{RECORD_SUFFIX}"

    def _safe_id_from_key(self, key: str) -> str | None:
        head = f"{self.prefix}/"
        if not key.startswith(head) or not key.endswith(RECORD_SUFFIX):
            return None
        safe_id = key[len(head):-len(RECORD_SUFFIX)]
        if not safe_id or "/" in safe_id:
            return None
        return safe_id

    async def read(self, safe_id: str) -> UserQuotaRecord | None:
        key = self.key_for(safe_id)
        try:
            return await self._get_record(key, safe_id)
        except StorageNotFoundError:
            return None

    async def write(self, record: UserQuotaRecord) -> UserQuotaRecord:
        key = self.key_for(record.safe_id)
        body = json.dumps(record.to_dict(), ensure_ascii=False).encode("utf-8")
        params: dict[str, Any] = {
            "Bucket": self.bucket_name,
            "Key": key,
            "Body": body,
            "ContentType": "application/json",
        }
        if self.conditional_writes:
            if record.version is None:
                params["IfNoneMatch"] = "*"
            else:
                params["IfMatch"] = record.version

        def _put():
            return self.s3.put_object(**params)

        try:
            response = await asyncio.to_thread(_put)
        except (ClientError, BotoCoreError) as e:
            error = translate_error(e, key)
            # Object deleted since it was read: the caller must reload.
            if isinstance(error, StorageNotFoundError) and "IfMatch" in params:
                raise StorageConflictError(str(e), key=key, cause=e) from e
            raise error from e

        stored = UserQuotaRecord.from_dict(
            record.to_dict(), safe_id=record.safe_id, version=response.get("ETag")
        )
        logger.debug("Stored usage record %s", key)
        return stored

    async def remove(self, safe_id: str) -> None:
        key = self.key_for(safe_id)

        def _delete():
            return self.s3.delete_object(Bucket=self.bucket_name, Key=key)

        try:
            await asyncio.to_thread(_delete)
        except (ClientError, BotoCoreError) as e:
            error = translate_error(e, key)
            if isinstance(error, StorageNotFoundError):
                return
            raise error from e
        logger.info("Deleted usage record %s", key)

    async def scan(self) -> list[UserQuotaRecord]:
        keys = await self._list_keys()
        records: list[UserQuotaRecord] = []
        for key in keys:
            safe_id = self._safe_id_from_key(key)
            if safe_id is None:
                continue
            try:
                records.append(await self._get_record(key, safe_id))
            except StorageNotFoundError:
                # Deleted between listing and reading.
                continue
        logger.debug("Scanned %d usage records under %s/", len(records), self.prefix)
        return records

    async def _get_record(self, key: str, safe_id: str) -> UserQuotaRecord:
        def _get():
            response = self.s3.get_object(Bucket=self.bucket_name, Key=key)
            return response["Body"].read(), response.get("ETag")

        try:
            content, etag = await asyncio.to_thread(_get)
        except (ClientError, BotoCoreError) as e:
            raise translate_error(e, key) from e

        try:
            data = json.loads(content.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.warning("Usage record %s is not valid JSON, treating as empty", key)
            data = {}
        return UserQuotaRecord.from_dict(data, safe_id=safe_id, version=etag)

    async def _list_keys(self) -> list[str]:
        def _list():
            keys: list[str] = []
            paginator = self.s3.get_paginator("list_objects_v2")
            for page in paginator.paginate(
                Bucket=self.bucket_name, Prefix=f"{self.prefix}/"
            ):
                keys.extend(obj["Key"] for obj in page.get("Contents", []))
            return keys

        try:
            return await asyncio.to_thread(_list)
        except (ClientError, BotoCoreError) as e:
            raise translate_error(e) from e
