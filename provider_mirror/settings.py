"""Run configuration loaded from the YAML (or JSON) config file."""

import logging
import platform
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

import yaml

from .config import DEFAULT_REGISTRY_SCHEME
from .errors import ConfigError
from .models import Platform

logger = logging.getLogger(__name__)

# platform.machine() values mapped onto registry arch names
_ARCH_ALIASES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "386",
    "i686": "386",
    "armv7l": "arm",
}


class StorageType(Enum):
    FS = "fs"
    S3 = "s3"


@dataclass
class FSConfig:
    download_root: str = ""


@dataclass
class S3Config:
    bucket: str = ""
    endpoint: str = ""
    prefix: str = ""
    region: str = ""


@dataclass
class DownloadDestination:
    type: StorageType
    fs_config: FSConfig = field(default_factory=FSConfig)
    s3_config: S3Config = field(default_factory=S3Config)


@dataclass
class ProviderConfig:
    """One `providers` entry: what to mirror for a single provider."""
    reference: str
    version_range: str = ""
    skip_versions: list[str] = field(default_factory=list)
    os_archs: list[Platform] = field(default_factory=list)


@dataclass
class MirrorConfig:
    providers: list[ProviderConfig]
    destination: DownloadDestination
    heal_all: bool = True
    registry_scheme: str = DEFAULT_REGISTRY_SCHEME


def current_platform() -> Platform:
    """The os/arch pair of the machine running the mirror."""
    machine = platform.machine().lower()
    return Platform(os=platform.system().lower(), arch=_ARCH_ALIASES.get(machine, machine))


def parse_platforms(raw: list | None, reference: str) -> list[Platform]:
    platforms = []
    for entry in raw or []:
        if not isinstance(entry, dict) or not entry.get("os") or not entry.get("arch"):
            raise ConfigError(f"Provider '{reference}' has an invalid os_archs entry: {entry!r}")
        platforms.append(Platform(os=str(entry["os"]), arch=str(entry["arch"])))
    return platforms


def parse_provider_config(raw: dict) -> ProviderConfig:
    if not isinstance(raw, dict) or not raw.get("reference"):
        raise ConfigError(f"Provider entry without a reference: {raw!r}")
    reference = str(raw["reference"])
    skip_versions = raw.get("skip_versions") or []
    if not isinstance(skip_versions, list):
        raise ConfigError(f"skip_versions for '{reference}' must be a list")
    return ProviderConfig(
        reference=reference,
        version_range=str(raw.get("version_range") or ""),
        skip_versions=[str(v) for v in skip_versions],
        os_archs=parse_platforms(raw.get("os_archs"), reference),
    )


def parse_destination(raw: dict) -> DownloadDestination:
    storage_type_str = str(raw.get("storage_type") or "").lower()
    try:
        storage_type = StorageType(storage_type_str)
    except ValueError:
        raise ConfigError(f"{storage_type_str!r} is not a known storage type") from None

    fs_raw = raw.get("fs_config") or {}
    s3_raw = raw.get("s3_config") or {}
    destination = DownloadDestination(
        type=storage_type,
        fs_config=FSConfig(download_root=str(fs_raw.get("download_root") or "")),
        s3_config=S3Config(
            bucket=str(s3_raw.get("bucket") or ""),
            endpoint=str(s3_raw.get("endpoint") or ""),
            prefix=str(s3_raw.get("prefix") or ""),
            region=str(s3_raw.get("region") or ""),
        ),
    )

    if storage_type is StorageType.FS and not destination.fs_config.download_root:
        raise ConfigError("fs_config.download_root is required for storage_type fs")
    if storage_type is StorageType.S3 and not destination.s3_config.bucket:
        raise ConfigError("s3_config.bucket is required for storage_type s3")
    return destination


def load_config(config_path: str | Path) -> MirrorConfig:
    """Loads and validates the YAML (or JSON) mirror configuration."""
    path = Path(config_path)
    try:
        text = path.read_text()
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e

    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    providers_raw = raw.get("providers") or []
    if not isinstance(providers_raw, list):
        raise ConfigError("'providers' must be a list")

    config = MirrorConfig(
        providers=[parse_provider_config(p) for p in providers_raw],
        destination=parse_destination(raw),
        heal_all=bool(raw.get("heal_all", True)),
        registry_scheme=str(raw.get("registry_scheme") or DEFAULT_REGISTRY_SCHEME),
    )
    if config.registry_scheme not in ("http", "https"):
        raise ConfigError(f"registry_scheme must be http or https, not {config.registry_scheme!r}")
    logger.debug(f"Loaded {len(config.providers)} provider entries from {path}")
    return config
