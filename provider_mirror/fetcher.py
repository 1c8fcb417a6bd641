import logging
import time

import requests

from .checksums import calculate_sha256, digests_match
from .config import CHUNK_SIZE, CONNECT_TIMEOUT, MAX_ATTEMPTS, READ_TIMEOUT
from .errors import ChecksumMismatchError, FetchError, RegistryError, StorageError
from .models import ProviderArtifact, ProviderTarget
from .registry import RegistryClient
from .storage.base import MirrorStorage

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (
    RegistryError,
    ChecksumMismatchError,
    StorageError,
    requests.exceptions.RequestException,
)


def download_bytes(url: str, session: requests.Session, timeout: tuple = (CONNECT_TIMEOUT, READ_TIMEOUT)) -> bytes:
    """Downloads url into memory. Non-2xx raises RegistryError."""
    response = session.get(url, stream=True, timeout=timeout, allow_redirects=True)
    try:
        if not 200 <= response.status_code < 300:
            raise RegistryError(f"HTTP {response.status_code} downloading {url}", status_code=response.status_code)

        content_length_str = response.headers.get('Content-Length')
        buffer = bytearray()
        for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
            buffer.extend(chunk)

        # Truncated transfers are retried like any other transport failure
        if content_length_str:
            try:
                content_length = int(content_length_str)
            except ValueError:
                logger.warning(f"Could not parse Content-Length header '{content_length_str}' for {url}")
            else:
                if len(buffer) != content_length:
                    raise requests.exceptions.ContentDecodingError(
                        f"Downloaded size ({len(buffer)}) differs from Content-Length ({content_length}) for {url}")
        return bytes(buffer)
    finally:
        response.close()


class Fetcher:
    """
    Fetches one target: registry download descriptor, archive download,
    SHA256 verification and hand-off to storage. Holds no state between calls.
    """

    def __init__(self, registry: RegistryClient, storage: MirrorStorage, session: requests.Session,
                 max_attempts: int = MAX_ATTEMPTS, sleep=time.sleep):
        self.registry = registry
        self.storage = storage
        self.session = session
        self.max_attempts = max_attempts
        self._sleep = sleep

    def _fetch_once(self, target: ProviderTarget) -> ProviderArtifact:
        descriptor = self.registry.download_descriptor(target)
        logger.debug(f"Downloading {target} from {descriptor.download_url}")
        data = download_bytes(descriptor.download_url, self.session, self.registry.timeout)

        actual = calculate_sha256(data)
        if not digests_match(descriptor.shasum, actual):
            raise ChecksumMismatchError(descriptor.shasum, actual)
        logger.debug(f"SHA256 verified for {target}")

        return self.storage.write(data, target)

    def fetch(self, target: ProviderTarget) -> ProviderArtifact:
        """Fetches target with quadratic backoff (1, 4, 9, 16s). Raises FetchError when out of attempts."""
        last_error = None
        for attempt in range(self.max_attempts):
            if attempt > 0:
                delay = attempt ** 2
                logger.debug(f"Retrying {target} in {delay} seconds...")
                self._sleep(delay)
            try:
                artifact = self._fetch_once(target)
                logger.info(f"Mirrored {target} ({artifact.h1_checksum})")
                return artifact
            except RETRYABLE_ERRORS as e:
                last_error = e
                logger.warning(f"Attempt {attempt + 1}/{self.max_attempts} for {target} failed: {e}")

        logger.error(f"Failed to fetch {target} after {self.max_attempts} attempts.")
        raise FetchError(target, self.max_attempts, last_error) from last_error
