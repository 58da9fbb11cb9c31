"""
Gateway to the S3-compatible bucket that holds uploaded file bytes.

Clients never send bytes through this service: uploads and downloads go
directly to the bucket through presigned URLs. The gateway signs those URLs
and performs the few server-side calls the service needs (existence checks,
deletes, listings). boto3 is blocking, so network calls run in a worker
thread; signing is local and runs inline.
"""
import asyncio
from typing import Any, Dict, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from drop_service.config import Settings
from drop_service.exceptions import ConfigurationError, UpstreamError
from drop_service.logging_config import get_logger

logger = get_logger(__name__)

MISSING_OBJECT_CODES = {"404", "NoSuchKey", "NotFound"}


class ObjectStoreGateway:
    def __init__(self, client: Any, bucket: str):
        self.client = client
        self.bucket = bucket

    @classmethod
    def from_settings(cls, settings: Settings) -> "ObjectStoreGateway":
        if not settings.object_storage_configured:
            raise ConfigurationError("Object storage is not configured")

        addressing_style = "path" if settings.S3_FORCE_PATH_STYLE else "auto"
        client = boto3.client(
            "s3",
            endpoint_url=settings.S3_ENDPOINT_URL,
            region_name=settings.S3_REGION,
            aws_access_key_id=settings.S3_ACCESS_KEY_ID,
            aws_secret_access_key=settings.S3_SECRET_ACCESS_KEY,
            config=Config(signature_version="s3v4", s3={"addressing_style": addressing_style}),
        )
        logger.info(f"Object store gateway ready for bucket '{settings.S3_BUCKET}' at {settings.S3_ENDPOINT_URL or 'AWS default endpoint'}")
        return cls(client, settings.S3_BUCKET)

    async def presign_upload(self, key: str, content_type: str, expires_in: int) -> str:
        try:
            return self.client.generate_presigned_url(
                "put_object",
                Params={"Bucket": self.bucket, "Key": key, "ContentType": content_type},
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to presign upload for key '{key}': {e}")
            raise UpstreamError(f"Failed to generate upload URL for {key}") from e

    async def presign_download(self, key: str, expires_in: int) -> str:
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to presign download for key '{key}': {e}")
            raise UpstreamError(f"Failed to generate download URL for {key}") from e

    async def object_exists(self, key: str) -> bool:
        try:
            await asyncio.to_thread(self.client.head_object, Bucket=self.bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in MISSING_OBJECT_CODES:
                return False
            logger.error(f"HEAD failed for key '{key}': {e}")
            raise UpstreamError(f"Failed to check object {key}") from e
        except BotoCoreError as e:
            logger.error(f"HEAD failed for key '{key}': {e}")
            raise UpstreamError(f"Failed to check object {key}") from e
        return True

    async def delete_object(self, key: str) -> None:
        logger.debug(f"Deleting object '{key}' from bucket '{self.bucket}'")
        try:
            await asyncio.to_thread(self.client.delete_object, Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise UpstreamError(f"Failed to delete object {key}: {e}") from e

    async def list_objects(self, prefix: str = "") -> List[Dict[str, Any]]:
        def _collect() -> List[Dict[str, Any]]:
            paginator = self.client.get_paginator("list_objects_v2")
            objects = []
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for item in page.get("Contents", []):
                    objects.append({
                        "key": item["Key"],
                        "size": item.get("Size", 0),
                        "last_modified": item.get("LastModified"),
                    })
            return objects

        try:
            return await asyncio.to_thread(_collect)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Listing bucket '{self.bucket}' with prefix '{prefix}' failed: {e}")
            raise UpstreamError(f"Failed to list objects under {prefix or '/'}") from e

    async def check_bucket(self) -> bool:
        try:
            await asyncio.to_thread(self.client.head_bucket, Bucket=self.bucket)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Bucket '{self.bucket}' is not reachable: {e}")
            raise UpstreamError(f"Bucket {self.bucket} is not reachable") from e
        return True


def build_object_store(settings: Settings) -> Optional[ObjectStoreGateway]:
    """Return a gateway, or None when the deployment has no bucket configured."""
    try:
        return ObjectStoreGateway.from_settings(settings)
    except ConfigurationError:
        logger.warning("S3 bucket or credentials missing. Requests that need object storage will fail until configured.")
        return None
