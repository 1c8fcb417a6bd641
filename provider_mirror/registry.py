import logging

import requests

from .config import CONNECT_TIMEOUT, DEFAULT_REGISTRY_SCHEME, READ_TIMEOUT
from .errors import RegistryError, VersionParseError
from .models import DownloadDescriptor, Platform, Provider, ProviderTarget, ProviderVersion
from .versions import parse_constraint, parse_version

logger = logging.getLogger(__name__)


def parse_reference(reference: str) -> Provider:
    """Resolves a config reference like 'aws' or 'hashicorp/aws' to a full identity."""
    return Provider.from_reference(reference)


def parse_versions_response(document) -> list[ProviderVersion]:
    """
    Parses the body of GET /v1/providers/{owner}/{name}/versions.
    Entries without a version string are skipped; a body without a
    'versions' list, or with non-list platforms or protocols, raises
    RegistryError.
    """
    if not isinstance(document, dict) or not isinstance(document.get("versions"), list):
        raise RegistryError("Versions response has no 'versions' list")

    versions = []
    for entry in document["versions"]:
        if not isinstance(entry, dict) or not entry.get("version"):
            logger.warning(f"Skipping malformed version entry: {entry!r}")
            continue
        raw_platforms = entry.get("platforms") or []
        raw_protocols = entry.get("protocols") or []
        if not isinstance(raw_platforms, list) or not isinstance(raw_protocols, list):
            raise RegistryError(f"Version {entry['version']!r} has malformed platforms or protocols")
        platforms = []
        for p in raw_platforms:
            if isinstance(p, dict) and p.get("os") and p.get("arch"):
                platforms.append(Platform(os=str(p["os"]), arch=str(p["arch"])))
        versions.append(ProviderVersion(
            version=str(entry["version"]),
            platforms=tuple(platforms),
            protocols=tuple(str(x) for x in raw_protocols),
        ))
    return versions


def filter_wanted(
    provider: Provider,
    versions: list[ProviderVersion],
    constraint: str,
    skip_versions: list[str],
    platforms: list[Platform],
) -> list[ProviderTarget]:
    """
    Narrows the upstream listing down to the targets to mirror.

    Versions outside the constraint or listed in skip_versions are dropped.
    Every requested platform that exists upstream for a surviving version
    yields one target; requested platforms missing upstream are logged and
    skipped. Raises ConstraintParseError for a bad constraint.
    """
    version_range = parse_constraint(constraint)

    versions_to_skip = set()
    for skip in skip_versions:
        try:
            versions_to_skip.add(parse_version(skip))
        except VersionParseError:
            logger.error(f"Cannot parse version to skip '{skip}' as semver, ignoring it")

    targets = []
    for upstream in versions:
        try:
            version = parse_version(upstream.version)
        except VersionParseError:
            logger.error(f"Cannot parse upstream version '{upstream.version}' of {provider} as semver, skipping")
            continue
        if not version_range.matches(version):
            continue
        if version in versions_to_skip:
            logger.info(f"Skipping {provider} {upstream.version} as configured")
            continue

        available = set(upstream.platforms)
        for requested in platforms:
            if requested not in available:
                logger.warning(f"Requested platform {requested} for {provider} {upstream.version} not found upstream")
                continue
            targets.append(ProviderTarget(provider, upstream.version, requested.os, requested.arch))

    return targets


class RegistryClient:
    """Talks to the provider registry API through an injected requests session."""

    def __init__(self, session: requests.Session, scheme: str = DEFAULT_REGISTRY_SCHEME,
                 timeout: tuple = (CONNECT_TIMEOUT, READ_TIMEOUT)):
        self.session = session
        self.scheme = scheme
        self.timeout = timeout

    def _provider_url(self, provider: Provider) -> str:
        return f"{self.scheme}://{provider.hostname}/v1/providers/{provider.owner}/{provider.name}"

    def _get_json(self, url: str):
        try:
            response = self.session.get(url, timeout=self.timeout, allow_redirects=True)
        except requests.exceptions.RequestException as e:
            raise RegistryError(f"Request to {url} failed: {e}") from e

        if not 200 <= response.status_code < 300:
            raise RegistryError(f"HTTP {response.status_code} fetching {url}", status_code=response.status_code)
        try:
            return response.json()
        except ValueError as e:
            raise RegistryError(f"Malformed JSON from {url}: {e}") from e

    def fetch_versions(self, provider: Provider) -> list[ProviderVersion]:
        url = f"{self._provider_url(provider)}/versions"
        logger.debug(f"Fetching version list: {url}")
        versions = parse_versions_response(self._get_json(url))
        logger.info(f"Registry lists {len(versions)} versions of {provider}")
        return versions

    def download_descriptor(self, target: ProviderTarget) -> DownloadDescriptor:
        url = f"{self._provider_url(target.provider)}/{target.version}/download/{target.os}/{target.arch}"
        document = self._get_json(url)
        if not isinstance(document, dict) or not document.get("download_url") or not document.get("shasum"):
            raise RegistryError(f"Download response for {target} lacks download_url or shasum")
        return DownloadDescriptor(
            download_url=str(document["download_url"]),
            shasum=str(document["shasum"]),
            filename=str(document.get("filename") or ""),
        )
