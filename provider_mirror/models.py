from dataclasses import dataclass, field
from enum import Enum, auto
import logging

from .config import DEFAULT_PROVIDER_HOSTNAME, DEFAULT_PROVIDER_OWNER
from .errors import ReferenceParseError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Provider:
    """Registry-qualified identity of a provider family."""
    hostname: str
    owner: str
    name: str

    @classmethod
    def from_reference(cls, reference: str) -> "Provider":
        """
        Parses 'name', 'owner/name' or 'hostname/owner/name[/...]'.
        Segments past the third are folded back into the name.
        """
        parts = reference.strip().split("/") if reference else []
        if not parts or any(not part for part in parts):
            raise ReferenceParseError(f"Invalid provider reference: {reference!r}")

        if len(parts) == 1:
            return cls(DEFAULT_PROVIDER_HOSTNAME, DEFAULT_PROVIDER_OWNER, parts[0])
        if len(parts) == 2:
            return cls(DEFAULT_PROVIDER_HOSTNAME, parts[0], parts[1])
        return cls(parts[0], parts[1], "/".join(parts[2:]))

    @property
    def base_path(self) -> str:
        return f"{self.hostname}/{self.owner}/{self.name}"

    def __str__(self):
        return self.base_path


@dataclass(frozen=True)
class Platform:
    os: str
    arch: str

    @classmethod
    def from_key(cls, key: str) -> "Platform":
        """Splits a manifest key like 'linux_amd64' on its first underscore."""
        os_name, sep, arch = key.partition("_")
        if not sep or not os_name or not arch:
            raise ValueError(f"Platform key {key!r} has no os_arch separator")
        return cls(os_name, arch)

    def __str__(self):
        return f"{self.os}_{self.arch}"


@dataclass(frozen=True)
class ProviderTarget:
    """One fetchable archive: provider + version + os + arch."""
    provider: Provider
    version: str
    os: str
    arch: str

    @property
    def platform(self) -> Platform:
        return Platform(self.os, self.arch)

    @property
    def platform_key(self) -> str:
        return f"{self.os}_{self.arch}"

    @property
    def filename(self) -> str:
        # Recorded verbatim in manifests and used as the storage key suffix.
        return f"terraform-provider-{self.provider.name}_{self.version}_{self.os}_{self.arch}.zip"

    def __str__(self):
        return f"{self.provider} {self.version} {self.platform_key}"


@dataclass(frozen=True)
class EtagRecord:
    """What the object store reported when an archive was uploaded."""
    etag: str = ""
    h1_checksum: str = ""

    def to_dict(self) -> dict:
        return {"ETag": self.etag, "H1Checksum": self.h1_checksum}

    @classmethod
    def from_dict(cls, raw: dict) -> "EtagRecord":
        return cls(etag=str(raw.get("ETag", "")), h1_checksum=str(raw.get("H1Checksum", "")))


@dataclass
class ProviderArtifact:
    """A target that exists in storage, with the checksum recorded for it."""
    target: ProviderTarget
    h1_checksum: str
    location: str  # filesystem path or object key
    etag_record: EtagRecord = field(default_factory=EtagRecord)

    @property
    def version(self) -> str:
        return self.target.version

    @property
    def filename(self) -> str:
        return self.target.filename


@dataclass(frozen=True)
class DownloadDescriptor:
    """Short-lived download details handed out by the registry."""
    download_url: str
    shasum: str
    filename: str = ""


@dataclass(frozen=True)
class ProviderVersion:
    """One entry of the registry's version listing."""
    version: str
    platforms: tuple[Platform, ...] = ()
    protocols: tuple[str, ...] = ()


class MirrorStatus(Enum):
    SUCCESS = auto()
    PARTIAL = auto()  # Some targets failed, their versions were left out
    FAILED = auto()
    NO_CHANGES = auto()


@dataclass
class MirrorResult:
    """Outcome of one mirroring pass over a single provider."""
    reference: str
    status: MirrorStatus
    fetched: int = 0
    failed: int = 0
    committed_versions: list[str] = field(default_factory=list)
    error_message: str | None = None

    @property
    def is_success(self) -> bool:
        return self.status in (MirrorStatus.SUCCESS, MirrorStatus.NO_CHANGES)
