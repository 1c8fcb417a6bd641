"""Thin boto3 wrapper with the four blob operations the mirror needs."""

import logging

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..config import CONNECT_TIMEOUT, READ_TIMEOUT, S3_DEFAULT_REGION
from ..errors import StorageError

logger = logging.getLogger(__name__)

_MISSING_KEY_CODES = {"NoSuchKey", "404", "NotFound"}


def normalize_etag(etag: str | None) -> str:
    """Strips weak markers and quotes so ETags from list and put compare equal."""
    if not etag:
        return ""
    e = etag.strip()
    if e.startswith("W/"):
        e = e[2:]
    return e.strip('"').strip("'").lower()


class S3BlobClient:
    """Blob operations against one bucket.

    Args:
        bucket: Bucket holding the mirror
        endpoint: Custom endpoint URL (MinIO, Ceph...); pins the signing region
        region: Region when talking to AWS itself
        client: Preconfigured boto3 S3 client, mostly for tests
    """

    def __init__(self, bucket: str, endpoint: str | None = None, region: str | None = None, client=None):
        self.bucket = bucket
        if client is None:
            client = self._init_client(endpoint, region)
        self.s3_client = client

    @staticmethod
    def _init_client(endpoint: str | None, region: str | None):
        boto_config = BotoConfig(
            connect_timeout=CONNECT_TIMEOUT,
            read_timeout=READ_TIMEOUT,
            retries={"max_attempts": 3, "mode": "standard"},
        )
        kwargs = {"config": boto_config}
        if endpoint:
            kwargs["endpoint_url"] = endpoint
            kwargs["region_name"] = S3_DEFAULT_REGION
        elif region:
            kwargs["region_name"] = region
        logger.info(f"Creating S3 client (endpoint: {endpoint or 'AWS default'})")
        return boto3.client("s3", **kwargs)

    def get(self, key: str) -> bytes:
        try:
            response = self.s3_client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read()
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in _MISSING_KEY_CODES:
                raise StorageError(f"s3://{self.bucket}/{key} does not exist") from e
            raise StorageError(f"Error loading s3://{self.bucket}/{key}: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Error loading s3://{self.bucket}/{key}: {e}") from e

    def put(self, key: str, data: bytes, content_type: str | None = None) -> str:
        """Uploads data and returns the ETag reported for the new object."""
        extra_args = {"ContentType": content_type} if content_type else {}
        try:
            response = self.s3_client.put_object(Bucket=self.bucket, Key=key, Body=data, **extra_args)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Error uploading s3://{self.bucket}/{key}: {e}") from e
        logger.debug(f"Uploaded {len(data)} bytes to s3://{self.bucket}/{key}")
        return response.get("ETag", "")

    def list(self, prefix: str) -> dict[str, dict]:
        """All objects under prefix as {key: {"ETag": ..., "Size": ...}}, across every page."""
        objects = {}
        try:
            paginator = self.s3_client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    objects[obj["Key"]] = {"ETag": obj.get("ETag", ""), "Size": obj.get("Size", 0)}
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Error listing s3://{self.bucket}/{prefix}: {e}") from e
        return objects

    def delete(self, key: str) -> None:
        try:
            self.s3_client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Error deleting s3://{self.bucket}/{key}: {e}") from e
