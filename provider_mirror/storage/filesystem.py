import logging
import zipfile
from pathlib import Path

from ..checksums import hash_zip
from ..config import MIRROR_INDEX_FILE
from ..errors import StorageError
from ..models import Provider, ProviderArtifact, ProviderTarget
from ..reconcile import reconcile
from . import catalog
from .base import MirrorStorage, Reconciler

logger = logging.getLogger(__name__)


class FilesystemStorage(MirrorStorage):
    """Mirror laid out on local disk under <root>/<hostname>/<owner>/<name>/."""

    def __init__(self, download_root: str | Path, provider: Provider, reconciler: Reconciler = reconcile):
        super().__init__(provider, reconciler)
        self.download_root = Path(download_root)

    @property
    def provider_dir(self) -> Path:
        return self.download_root / self.provider.hostname / self.provider.owner / self.provider.name

    def load_catalog(self) -> list[ProviderArtifact]:
        index_path = self.provider_dir / MIRROR_INDEX_FILE
        try:
            versions = catalog.parse_index(index_path.read_bytes())
        except OSError as e:
            raise StorageError(f"Unable to read index file {index_path}: {e}") from e
        except ValueError as e:
            raise StorageError(f"Malformed index file {index_path}: {e}") from e
        logger.debug(f"Index {index_path} lists {len(versions)} versions")

        artifacts = []
        for version in versions:
            manifest_path = self.provider_dir / f"{version}.json"
            try:
                entries = catalog.parse_manifest(manifest_path.read_bytes(), version)
            except OSError as e:
                logger.error(f"Unable to read version manifest {manifest_path}: {e}")
                continue
            except ValueError as e:
                logger.error(f"Malformed version manifest {manifest_path}: {e}")
                continue

            for entry in entries:
                artifacts.append(ProviderArtifact(
                    target=catalog.manifest_target(self.provider, version, entry),
                    h1_checksum=entry.h1_checksum,
                    location=str(self.provider_dir / entry.url),
                ))
        return artifacts

    def verify(self, artifacts):
        valid, invalid = [], []
        for artifact in artifacts:
            try:
                actual = hash_zip(Path(artifact.location))
            except (OSError, zipfile.BadZipFile, ValueError) as e:
                logger.debug(f"Cannot hash {artifact.location}: {e}")
                invalid.append(artifact)
                continue

            if actual != artifact.h1_checksum:
                logger.warning(f"Checksum {actual} of {artifact.location} does not match recorded {artifact.h1_checksum}")
                invalid.append(artifact)
            else:
                valid.append(artifact)

        logger.debug(f"{self.provider}: {len(valid)} valid, {len(invalid)} invalid stored archives")
        return valid, invalid

    def write(self, data: bytes, target: ProviderTarget) -> ProviderArtifact:
        dest_path = self.provider_dir / target.filename
        tmp_path = dest_path.with_suffix(dest_path.suffix + ".partial")
        try:
            dest_path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(data)
            h1_checksum = hash_zip(tmp_path)
            tmp_path.replace(dest_path)
        except (OSError, zipfile.BadZipFile, ValueError) as e:
            raise StorageError(f"Error writing {target} to {dest_path}: {e}") from e
        finally:
            if tmp_path.exists():
                try:
                    tmp_path.unlink()
                except OSError:
                    logger.warning(f"Could not remove temporary file {tmp_path}")

        logger.debug(f"Stored {target} at {dest_path} ({h1_checksum})")
        return ProviderArtifact(target=target, h1_checksum=h1_checksum, location=str(dest_path))

    def commit(self, artifacts: list[ProviderArtifact]) -> None:
        by_version = catalog.group_by_version(artifacts)
        try:
            self.provider_dir.mkdir(parents=True, exist_ok=True)
            for version, version_artifacts in by_version.items():
                manifest_path = self.provider_dir / f"{version}.json"
                manifest_path.write_bytes(catalog.dump_json(catalog.build_manifest(version_artifacts)))

            index_path = self.provider_dir / MIRROR_INDEX_FILE
            index_path.write_bytes(catalog.dump_json(catalog.build_index(by_version)))
        except OSError as e:
            raise StorageError(f"Error writing catalog for {self.provider}: {e}") from e
        logger.info(f"Committed {len(by_version)} versions ({len(artifacts)} archives) for {self.provider}")
