"""Storage backends for the provider mirror and the factory that picks one."""

import logging

from ..errors import ConfigError
from ..models import Provider
from ..reconcile import reconcile
from ..settings import DownloadDestination, StorageType
from .base import MirrorStorage, Reconciler
from .filesystem import FilesystemStorage
from .s3 import S3Storage
from .s3_client import S3BlobClient

logger = logging.getLogger(__name__)

__all__ = [
    "MirrorStorage",
    "FilesystemStorage",
    "S3Storage",
    "S3BlobClient",
    "create_blob_client",
    "create_storage",
]


def create_blob_client(destination: DownloadDestination) -> S3BlobClient | None:
    """Builds the S3 client once per run; None for non-S3 destinations."""
    if destination.type is not StorageType.S3:
        return None
    s3_config = destination.s3_config
    return S3BlobClient(
        bucket=s3_config.bucket,
        endpoint=s3_config.endpoint or None,
        region=s3_config.region or None,
    )


def create_storage(
    destination: DownloadDestination,
    provider: Provider,
    reconciler: Reconciler = reconcile,
    blob_client: S3BlobClient | None = None,
) -> MirrorStorage:
    """Maps the configured storage type onto a backend for one provider."""
    if destination.type is StorageType.FS:
        return FilesystemStorage(destination.fs_config.download_root, provider, reconciler)
    if destination.type is StorageType.S3:
        if blob_client is None:
            blob_client = create_blob_client(destination)
        return S3Storage(blob_client, destination.s3_config.prefix, provider, reconciler)
    raise ConfigError(f"Unknown storage type: {destination.type!r}")
