import logging
import traceback
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Iterable

from tqdm import tqdm

from .errors import FetchError, MirrorError, StorageError
from .fetcher import Fetcher
from .models import MirrorResult, MirrorStatus, Provider, ProviderArtifact, ProviderTarget
from .registry import RegistryClient, filter_wanted, parse_reference
from .settings import MirrorConfig, ProviderConfig, current_platform
from .storage.base import MirrorStorage

logger = logging.getLogger(__name__)

StorageFactory = Callable[[Provider], MirrorStorage]
FetcherFactory = Callable[[MirrorStorage], Fetcher]


def exclude_failed_versions(
    artifacts: Iterable[ProviderArtifact], failed: Iterable[ProviderTarget]
) -> list[ProviderArtifact]:
    """Drops every artifact of a version that had at least one failed target."""
    failed_versions = {t.version for t in failed}
    kept = []
    for artifact in artifacts:
        if artifact.version in failed_versions:
            logger.debug(f"Excluding {artifact.target} from the catalog, version {artifact.version} is incomplete")
            continue
        kept.append(artifact)
    return kept


def _resolve_wanted(provider_config: ProviderConfig, registry: RegistryClient) -> tuple[Provider, list[ProviderTarget]]:
    provider = parse_reference(provider_config.reference)
    platforms = provider_config.os_archs
    if not platforms:
        platforms = [current_platform()]
        logger.warning(f"No os_archs configured for {provider}, defaulting to this machine's platform {platforms[0]}")

    versions = registry.fetch_versions(provider)
    wanted = filter_wanted(
        provider, versions, provider_config.version_range, provider_config.skip_versions, platforms)
    logger.info(f"{provider}: {len(wanted)} archives wanted")
    return provider, wanted


def _fetch_all(
    fetcher: Fetcher, to_fetch: list[ProviderTarget], workers: int, show_progress: bool, desc: str
) -> tuple[list[ProviderArtifact], list[ProviderTarget]]:
    fetched, failed = [], []
    with tqdm(total=len(to_fetch), desc=desc, unit="archive", smoothing=0.1, disable=not show_progress) as pbar:
        with ThreadPoolExecutor(max_workers=max(1, workers), thread_name_prefix="Fetch") as executor:
            future_to_target = {executor.submit(fetcher.fetch, target): target for target in to_fetch}
            for future in as_completed(future_to_target):
                target = future_to_target[future]
                pbar.update(1)
                try:
                    fetched.append(future.result())
                except FetchError as e:
                    logger.error(f"Giving up on {target}: {e}")
                    failed.append(target)
                except Exception as exc:
                    logger.error(f"{target} generated an exception during fetch: {exc}")
                    logger.error(traceback.format_exc())
                    failed.append(target)
    return fetched, failed


def mirror_provider(
    provider_config: ProviderConfig,
    registry: RegistryClient,
    storage_factory: StorageFactory,
    fetcher_factory: FetcherFactory,
    workers: int = 1,
    heal_all: bool = True,
    show_progress: bool = True,
) -> MirrorResult:
    """
    Runs one mirroring pass for a single provider.

    Resolves the wanted archives from the registry, checks the stored catalog,
    fetches whatever is missing or damaged and commits the new catalog.
    Versions with any failed archive are left out of the committed catalog.
    Errors are reported in the returned result, never raised.
    """
    reference = provider_config.reference
    try:
        provider, wanted = _resolve_wanted(provider_config, registry)
    except MirrorError as e:
        logger.error(f"Could not resolve wanted archives for '{reference}': {e}")
        return MirrorResult(reference, MirrorStatus.FAILED, error_message=str(e))

    storage = storage_factory(provider)
    try:
        stored = storage.load_catalog()
        valid, invalid = storage.verify(stored)
        to_fetch = storage.reconcile(valid, invalid, wanted, heal_all=heal_all)
        logger.info(f"{provider}: {len(valid)} stored archives valid, {len(invalid)} invalid, {len(to_fetch)} to fetch")
    except StorageError as e:
        logger.warning(f"Could not load the stored catalog for {provider} ({e}), mirroring from scratch")
        valid = []
        to_fetch = set(wanted)

    ordered = sorted(to_fetch, key=lambda t: (t.version, t.os, t.arch))
    fetched, failed = [], []
    if ordered:
        fetcher = fetcher_factory(storage)
        fetched, failed = _fetch_all(fetcher, ordered, workers, show_progress, f"Fetching {provider.name}")
    else:
        logger.info(f"{provider}: nothing to fetch")

    if failed:
        logger.warning(f"{provider}: {len(failed)} archives failed, excluding versions "
                       f"{', '.join(sorted({t.version for t in failed}))}")
    artifacts = exclude_failed_versions(list(valid) + fetched, failed)

    try:
        storage.commit(artifacts)
    except StorageError as e:
        logger.error(f"Failed to commit the catalog for {provider}: {e}")
        return MirrorResult(reference, MirrorStatus.FAILED, fetched=len(fetched), failed=len(failed),
                            error_message=str(e))

    if failed:
        status = MirrorStatus.PARTIAL
    elif fetched:
        status = MirrorStatus.SUCCESS
    else:
        status = MirrorStatus.NO_CHANGES
    return MirrorResult(
        reference,
        status,
        fetched=len(fetched),
        failed=len(failed),
        committed_versions=sorted({a.version for a in artifacts}),
    )


def mirror_all(
    config: MirrorConfig,
    registry: RegistryClient,
    storage_factory: StorageFactory,
    fetcher_factory: FetcherFactory,
    workers: int = 1,
    show_progress: bool = True,
) -> list[MirrorResult]:
    """Mirrors every configured provider in turn; one provider failing does not stop the rest."""
    results = []
    for provider_config in config.providers:
        logger.info(f"--- Mirroring {provider_config.reference} ---")
        try:
            result = mirror_provider(
                provider_config,
                registry,
                storage_factory,
                fetcher_factory,
                workers=workers,
                heal_all=config.heal_all,
                show_progress=show_progress,
            )
        except Exception as exc:
            logger.error(f"{provider_config.reference} generated an exception during mirroring: {exc}")
            logger.error(traceback.format_exc())
            result = MirrorResult(provider_config.reference, MirrorStatus.FAILED, error_message=str(exc))
        results.append(result)
    return results
