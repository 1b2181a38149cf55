"""S3-compatible blob store backed by boto3."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..config import BlobStoreSettings
from .blob_store import BlobStore
from .storage_errors import BlobStoreError

logger = logging.getLogger(__name__)

RETRYABLE_CODES = frozenset({"RequestTimeout", "SlowDown", "Throttling", "ServiceUnavailable"})


def map_client_error(exc: ClientError) -> BlobStoreError:
    """Translate a botocore ``ClientError`` into a :class:`BlobStoreError`."""
    error = exc.response.get("Error", {}) or {}
    meta = exc.response.get("ResponseMetadata", {}) or {}

    code = error.get("Code", "") or "Unknown"
    message = error.get("Message", "") or str(exc)
    http_status = int(meta.get("HTTPStatusCode", 500) or 500)

    if code in {"AccessDenied", "InvalidAccessKeyId"}:
        hint = "check the access key and bucket policy"
    elif code == "SignatureDoesNotMatch":
        hint = "check the secret key, region and clock skew"
    elif code == "NoSuchBucket":
        hint = "check R2_BUCKET"
    elif code in RETRYABLE_CODES or http_status >= 500:
        hint = "temporary backend failure"
    else:
        hint = None

    text = f"{code}: {message}" if hint is None else f"{code}: {message} ({hint})"
    return BlobStoreError(
        text,
        code=code,
        http_status=http_status,
        request_id=meta.get("RequestId"),
        retryable=code in RETRYABLE_CODES or http_status >= 500,
    )


def build_s3_client(settings: BlobStoreSettings) -> Any:
    # A single attempt: the caller owns retry policy and the request deadline.
    client_config = Config(
        signature_version="s3v4",
        connect_timeout=settings.timeout_seconds,
        read_timeout=settings.timeout_seconds,
        retries={"max_attempts": 1, "mode": "standard"},
    )
    return boto3.client(
        "s3",
        endpoint_url=settings.endpoint,
        aws_access_key_id=settings.access_key,
        aws_secret_access_key=settings.secret_key,
        region_name=settings.region,
        config=client_config,
    )


@dataclass(slots=True)
class S3BlobStore(BlobStore):
    """Put objects into one bucket of an S3-compatible endpoint (e.g. R2)."""

    bucket: str
    client: Any
    timeout_seconds: float = 15.0
    log: logging.Logger = field(default_factory=lambda: logger)

    name = "s3"

    @classmethod
    def from_settings(cls, settings: BlobStoreSettings) -> "S3BlobStore":
        return cls(
            bucket=settings.bucket or "",
            client=build_s3_client(settings),
            timeout_seconds=settings.timeout_seconds,
        )

    async def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        metadata: Mapping[str, str],
    ) -> str | None:
        try:
            response = await asyncio.wait_for(
                asyncio.to_thread(self._put_object, key, data, content_type, dict(metadata)),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise BlobStoreError(
                f"Blob store write timed out after {self.timeout_seconds}s",
                code="Timeout",
                retryable=True,
            ) from exc
        except ClientError as exc:
            raise map_client_error(exc) from exc
        except BotoCoreError as exc:
            raise BlobStoreError(str(exc), code=type(exc).__name__, retryable=True) from exc

        etag = (response or {}).get("ETag")
        self.log.debug(
            "storage.s3.put",
            extra={"bucket": self.bucket, "key": key, "size_bytes": len(data), "etag": etag},
        )
        return etag.strip('"') if isinstance(etag, str) else None

    def _put_object(
        self, key: str, data: bytes, content_type: str, metadata: dict[str, str]
    ) -> dict[str, Any]:
        return self.client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=data,
            ContentType=content_type,
            ContentLength=len(data),
            Metadata=metadata,
        )
