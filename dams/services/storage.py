from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any, Protocol
from urllib.parse import quote

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from dams.core.config import Settings, settings as default_settings
from dams.core.errors import StorageFailureError

logger = logging.getLogger(__name__)

_MISSING_CODES = {"404", "nosuchkey", "notfound"}


class BlobStore(Protocol):
    """Key/value object store holding asset bytes."""

    def put(self, key: str, data: bytes, content_type: str) -> str:
        """Store ``data`` under ``key`` and return its location reference."""
        ...

    def delete(self, key: str) -> None: ...

    def get(self, key: str) -> tuple[bytes, str]: ...

    def exists(self, key: str) -> bool: ...

    def iter_keys(self, prefix: str = "") -> Iterator[str]: ...


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", "")).lower()


def build_s3_client(cfg: Settings | None = None) -> Any:
    cfg = cfg or default_settings
    return boto3.client(
        "s3",
        endpoint_url=cfg.s3_endpoint_url or None,
        aws_access_key_id=cfg.s3_access_key or None,
        aws_secret_access_key=cfg.s3_secret_key or None,
        region_name=cfg.s3_region,
        config=Config(signature_version="s3v4"),
    )


class S3BlobStore:
    def __init__(
        self,
        client: Any,
        bucket: str,
        *,
        region: str = "us-east-1",
        endpoint_url: str = "",
        public_base_url: str = "",
    ) -> None:
        self.client = client
        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url
        self.public_base_url = public_base_url
        self._bucket_checked = False

    @classmethod
    def from_settings(cls, cfg: Settings | None = None) -> S3BlobStore:
        cfg = cfg or default_settings
        return cls(
            build_s3_client(cfg),
            cfg.s3_bucket,
            region=cfg.s3_region,
            endpoint_url=cfg.s3_endpoint_url,
            public_base_url=cfg.s3_public_base_url,
        )

    def ensure_bucket(self) -> None:
        if self._bucket_checked:
            return

        try:
            self.client.head_bucket(Bucket=self.bucket)
            self._bucket_checked = True
            return
        except ClientError as exc:
            if _error_code(exc) not in {"404", "nosuchbucket", "notfound"}:
                raise StorageFailureError(f"Bucket check failed: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageFailureError(f"Bucket check failed: {exc}") from exc

        create_args: dict[str, Any] = {"Bucket": self.bucket}
        region = str(self.region or "").strip()
        if region and region != "us-east-1":
            create_args["CreateBucketConfiguration"] = {"LocationConstraint": region}
        try:
            self.client.create_bucket(**create_args)
        except (BotoCoreError, ClientError) as exc:
            raise StorageFailureError(f"Bucket creation failed: {exc}") from exc
        logger.info("Created bucket %s", self.bucket)
        self._bucket_checked = True

    def location_for(self, key: str) -> str:
        quoted = quote(key)
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{quoted}"
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{quoted}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{quoted}"

    def put(self, key: str, data: bytes, content_type: str) -> str:
        self.ensure_bucket()
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
        except (BotoCoreError, ClientError) as exc:
            raise StorageFailureError(f"Failed to write object {key}: {exc}") from exc
        return self.location_for(key)

    def delete(self, key: str) -> None:
        self.ensure_bucket()
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise StorageFailureError(f"Failed to delete object {key}: {exc}") from exc

    def get(self, key: str) -> tuple[bytes, str]:
        self.ensure_bucket()
        try:
            obj = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if _error_code(exc) in _MISSING_CODES:
                raise FileNotFoundError(key) from exc
            raise StorageFailureError(f"Failed to read object {key}: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageFailureError(f"Failed to read object {key}: {exc}") from exc

        body = obj["Body"].read()
        media_type = str(obj.get("ContentType") or "application/octet-stream")
        return body, media_type

    def exists(self, key: str) -> bool:
        self.ensure_bucket()
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if _error_code(exc) in _MISSING_CODES:
                return False
            raise StorageFailureError(f"Failed to stat object {key}: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageFailureError(f"Failed to stat object {key}: {exc}") from exc
        return True

    def iter_keys(self, prefix: str = "") -> Iterator[str]:
        self.ensure_bucket()
        paginator = self.client.get_paginator("list_objects_v2")
        try:
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for item in page.get("Contents", []):
                    yield item["Key"]
        except (BotoCoreError, ClientError) as exc:
            raise StorageFailureError(f"Failed to list objects under {prefix!r}: {exc}") from exc
