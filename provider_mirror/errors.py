"""Exception hierarchy for the provider mirror.

Failures are scoped: a bad reference, constraint or registry response stops
one provider; a failed fetch only drops that target's version from the
committed catalog; a ConfigError stops the whole process.
"""


class MirrorError(Exception):
    """Base class for all provider mirror failures."""


class ConfigError(MirrorError):
    """Configuration file or command line values are unusable."""


class ReferenceParseError(MirrorError, ValueError):
    """A provider reference string cannot be split into hostname/owner/name."""


class VersionParseError(MirrorError, ValueError):
    """A version string is not valid semver."""


class ConstraintParseError(MirrorError, ValueError):
    """A version range expression has invalid syntax."""


class RegistryError(MirrorError):
    """The registry answered with a non-2xx status or an unusable body."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ChecksumMismatchError(MirrorError):
    """Downloaded bytes do not hash to the digest the registry declared."""

    def __init__(self, expected: str, actual: str):
        super().__init__(f"SHA256 mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class StorageError(MirrorError):
    """Reading, writing or listing the mirror storage failed."""


class FetchError(MirrorError):
    """A target could not be fetched within the retry budget."""

    def __init__(self, target, attempts: int, last_error: Exception):
        super().__init__(f"Failed to fetch {target} after {attempts} attempts: {last_error}")
        self.target = target
        self.attempts = attempts
        self.last_error = last_error
