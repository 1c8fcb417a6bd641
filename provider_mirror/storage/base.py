"""Interface every mirror storage backend implements.

A backend owns the persisted catalog of one provider: it loads what the last
run committed, checks that catalog against what is really stored, writes new
archives and commits the final catalog.
"""

from abc import ABC, abstractmethod
from typing import Callable, Iterable

from ..models import Provider, ProviderArtifact, ProviderTarget
from ..reconcile import reconcile

Reconciler = Callable[..., set[ProviderTarget]]


class MirrorStorage(ABC):
    """Abstract storage backend for one provider's mirror."""

    def __init__(self, provider: Provider, reconciler: Reconciler = reconcile):
        self.provider = provider
        self._reconciler = reconciler

    @abstractmethod
    def load_catalog(self) -> list[ProviderArtifact]:
        """Reads the committed catalog.

        Raises:
            StorageError: the index cannot be read; the caller treats the
                provider as a fresh mirror.
        """

    @abstractmethod
    def verify(
        self, catalog: list[ProviderArtifact]
    ) -> tuple[list[ProviderArtifact], list[ProviderArtifact]]:
        """Splits catalog entries into (valid, invalid) against real storage."""

    def reconcile(
        self,
        valid: Iterable[ProviderArtifact],
        invalid: Iterable[ProviderArtifact],
        wanted: Iterable[ProviderTarget],
        heal_all: bool = True,
    ) -> set[ProviderTarget]:
        """Targets that must be fetched, computed by the injected reconciler."""
        return self._reconciler(valid, invalid, wanted, heal_all=heal_all)

    @abstractmethod
    def write(self, data: bytes, target: ProviderTarget) -> ProviderArtifact:
        """Stores one archive under its canonical name and returns its artifact.

        Raises:
            StorageError: the archive could not be stored or hashed.
        """

    @abstractmethod
    def commit(self, artifacts: list[ProviderArtifact]) -> None:
        """Overwrites the catalog so it lists exactly these artifacts.

        Raises:
            StorageError: any catalog document could not be written.
        """
