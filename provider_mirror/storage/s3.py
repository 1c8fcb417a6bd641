"""
Object store backend.

Remote archives cannot be re-hashed without downloading them, so when an
archive is uploaded its ETag and h1 checksum are remembered in .etag-map.json.
Verification then only needs one listing of the provider prefix: an archive is
trusted while its current ETag still equals the one recorded at upload time.
"""
import logging
import os
import tempfile
import zipfile
from pathlib import Path

from ..checksums import hash_zip
from ..config import MIRROR_INDEX_FILE, S3_ETAG_MAP_FILE
from ..errors import StorageError
from ..models import EtagRecord, Provider, ProviderArtifact, ProviderTarget
from ..reconcile import reconcile
from . import catalog
from .base import MirrorStorage, Reconciler
from .s3_client import S3BlobClient, normalize_etag

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"


class S3Storage(MirrorStorage):
    """Mirror stored in a bucket under <prefix>/<hostname>/<owner>/<name>/."""

    def __init__(self, client: S3BlobClient, prefix: str, provider: Provider, reconciler: Reconciler = reconcile):
        super().__init__(provider, reconciler)
        self.client = client
        self.prefix = prefix.strip("/")

    @property
    def provider_prefix(self) -> str:
        if self.prefix:
            return f"{self.prefix}/{self.provider.base_path}"
        return self.provider.base_path

    def key_for(self, filename: str) -> str:
        return f"{self.provider_prefix}/{filename}"

    def load_catalog(self) -> list[ProviderArtifact]:
        index_key = self.key_for(MIRROR_INDEX_FILE)
        try:
            versions = catalog.parse_index(self.client.get(index_key))
        except ValueError as e:
            raise StorageError(f"Malformed index object {index_key}: {e}") from e

        etag_map_key = self.key_for(S3_ETAG_MAP_FILE)
        try:
            etag_map = catalog.parse_etag_map(self.client.get(etag_map_key))
        except ValueError as e:
            raise StorageError(f"Malformed etag map {etag_map_key}: {e}") from e
        logger.debug(f"Loaded {len(versions)} versions and {len(etag_map)} etag records for {self.provider}")

        artifacts = []
        for version in versions:
            manifest_key = self.key_for(f"{version}.json")
            try:
                entries = catalog.parse_manifest(self.client.get(manifest_key), version)
            except StorageError as e:
                logger.error(f"Unable to load version manifest {manifest_key}: {e}")
                continue
            except ValueError as e:
                logger.error(f"Malformed version manifest {manifest_key}: {e}")
                continue

            for entry in entries:
                etag_record = etag_map.get(entry.url)
                if etag_record is None:
                    # Still loaded so verification marks it invalid and it gets refetched
                    logger.debug(f"No etag record for {entry.url}, it will be fetched again")
                    etag_record = EtagRecord()
                artifacts.append(ProviderArtifact(
                    target=catalog.manifest_target(self.provider, version, entry),
                    h1_checksum=entry.h1_checksum,
                    location=self.key_for(entry.url),
                    etag_record=etag_record,
                ))
        return artifacts

    def verify(self, artifacts):
        objects = self.client.list(self.provider_prefix + "/")
        logger.debug(f"Listed {len(objects)} objects under {self.provider_prefix}")

        valid, invalid = [], []
        for artifact in artifacts:
            stored = objects.get(artifact.location)
            if stored is None:
                logger.debug(f"{artifact.location} not found in bucket")
                invalid.append(artifact)
                continue

            recorded_etag = normalize_etag(artifact.etag_record.etag)
            current_etag = normalize_etag(stored.get("ETag"))
            if not recorded_etag or recorded_etag != current_etag:
                logger.warning(f"{artifact.location}: recorded ETag '{recorded_etag}' does not match current '{current_etag}'")
                invalid.append(artifact)
            elif artifact.etag_record.h1_checksum != artifact.h1_checksum:
                logger.warning(f"{artifact.location}: manifest h1 {artifact.h1_checksum} disagrees with etag map h1 {artifact.etag_record.h1_checksum}")
                invalid.append(artifact)
            else:
                valid.append(artifact)

        logger.debug(f"{self.provider}: {len(valid)} valid, {len(invalid)} invalid stored archives")
        return valid, invalid

    def write(self, data: bytes, target: ProviderTarget) -> ProviderArtifact:
        # The h1 checksum needs a real zip file, so hash a local temporary copy
        fd, tmp_name = tempfile.mkstemp(prefix="provider-mirror-", suffix=".zip")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            h1_checksum = hash_zip(Path(tmp_name))
        except (OSError, zipfile.BadZipFile, ValueError) as e:
            raise StorageError(f"Unable to compute h1 checksum for {target}: {e}") from e
        finally:
            try:
                os.remove(tmp_name)
            except OSError:
                logger.warning(f"Could not remove temporary file {tmp_name}")

        key = self.key_for(target.filename)
        etag = self.client.put(key, data)
        logger.debug(f"Uploaded {target} to {key} (ETag {etag})")
        return ProviderArtifact(
            target=target,
            h1_checksum=h1_checksum,
            location=key,
            etag_record=EtagRecord(etag=etag, h1_checksum=h1_checksum),
        )

    def commit(self, artifacts: list[ProviderArtifact]) -> None:
        by_version = catalog.group_by_version(artifacts)
        for version, version_artifacts in by_version.items():
            self.client.put(
                self.key_for(f"{version}.json"),
                catalog.dump_json(catalog.build_manifest(version_artifacts)),
                JSON_CONTENT_TYPE,
            )

        self.client.put(
            self.key_for(MIRROR_INDEX_FILE),
            catalog.dump_json(catalog.build_index(by_version)),
            JSON_CONTENT_TYPE,
        )
        self.client.put(
            self.key_for(S3_ETAG_MAP_FILE),
            catalog.dump_json(catalog.build_etag_map(artifacts)),
            JSON_CONTENT_TYPE,
        )
        logger.info(f"Committed {len(by_version)} versions ({len(artifacts)} archives) for {self.provider}")
