"""
Catalog documents of the provider network mirror protocol.

    index.json       {"versions": {"5.0.0": {}, ...}}
    <version>.json   {"archives": {"linux_amd64": {"hashes": ["h1:..."], "url": "<file>"}}}
    .etag-map.json   {"<file>": {"ETag": "...", "H1Checksum": "h1:..."}}   (object store only)

Both backends share this module; only where the bytes live differs.
"""
import json
import logging
from collections import defaultdict
from dataclasses import dataclass

from ..models import EtagRecord, Platform, Provider, ProviderArtifact, ProviderTarget

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ManifestEntry:
    """One usable archive line of a version manifest."""
    platform: Platform
    h1_checksum: str
    url: str


def dump_json(document: dict) -> bytes:
    return json.dumps(document, indent=2, sort_keys=True).encode("utf-8")


def parse_index(content: bytes) -> list[str]:
    """Returns the version strings listed in index.json. Raises ValueError on bad content."""
    document = json.loads(content)
    if not isinstance(document, dict) or not isinstance(document.get("versions"), dict):
        raise ValueError("index document has no 'versions' object")
    return list(document["versions"])


def parse_manifest(content: bytes, version: str) -> list[ManifestEntry]:
    """
    Parses one <version>.json document.
    Entries with a malformed platform key or not exactly one hash are skipped.
    Raises ValueError if the document itself is unusable.
    """
    document = json.loads(content)
    if not isinstance(document, dict) or not isinstance(document.get("archives"), dict):
        raise ValueError(f"manifest for {version} has no 'archives' object")

    entries = []
    for key, archive in document["archives"].items():
        try:
            platform = Platform.from_key(key)
        except ValueError:
            logger.warning(f"Version {version} ({key}) does not have the expected os_arch key, skipping.")
            continue
        if not isinstance(archive, dict):
            logger.warning(f"Version {version} ({key}) has a malformed archive entry, skipping.")
            continue
        hashes = archive.get("hashes") or []
        if not isinstance(hashes, list):
            logger.warning(f"Version {version} ({key}) has a malformed hashes field, skipping.")
            continue
        if len(hashes) != 1:
            logger.warning(f"Version {version} ({key}) has {len(hashes)} hashes instead of 1, skipping.")
            continue
        if not isinstance(hashes[0], str):
            logger.warning(f"Version {version} ({key}) has a non-string hash, skipping.")
            continue
        url = archive.get("url")
        if not url or not isinstance(url, str):
            logger.warning(f"Version {version} ({key}) has no archive url, skipping.")
            continue
        entries.append(ManifestEntry(platform=platform, h1_checksum=hashes[0], url=url))
    return entries


def parse_etag_map(content: bytes) -> dict[str, EtagRecord]:
    document = json.loads(content)
    if not isinstance(document, dict):
        raise ValueError("etag map is not a JSON object")
    return {
        filename: EtagRecord.from_dict(record)
        for filename, record in document.items()
        if isinstance(record, dict)
    }


def manifest_target(provider: Provider, version: str, entry: ManifestEntry) -> ProviderTarget:
    return ProviderTarget(provider, version, entry.platform.os, entry.platform.arch)


def group_by_version(artifacts: list[ProviderArtifact]) -> dict[str, list[ProviderArtifact]]:
    versions: dict[str, list[ProviderArtifact]] = defaultdict(list)
    for artifact in artifacts:
        versions[artifact.version].append(artifact)
    return dict(versions)


def build_manifest(artifacts: list[ProviderArtifact]) -> dict:
    return {
        "archives": {
            a.target.platform_key: {"hashes": [a.h1_checksum], "url": a.filename}
            for a in artifacts
        }
    }


def build_index(versions) -> dict:
    # The protocol defines each version value as an (for now) empty object
    return {"versions": {version: {} for version in versions}}


def build_etag_map(artifacts: list[ProviderArtifact]) -> dict:
    return {a.filename: a.etag_record.to_dict() for a in artifacts}
