import logging
from typing import Iterable

from .models import ProviderArtifact, ProviderTarget

logger = logging.getLogger(__name__)


def _as_target(item: ProviderTarget | ProviderArtifact) -> ProviderTarget:
    return item.target if isinstance(item, ProviderArtifact) else item


def reconcile(
    valid: Iterable[ProviderTarget | ProviderArtifact],
    invalid: Iterable[ProviderTarget | ProviderArtifact],
    wanted: Iterable[ProviderTarget],
    heal_all: bool = True,
) -> set[ProviderTarget]:
    """
    Works out which targets must be (re)fetched: (invalid | wanted) - valid.

    Anything that failed verification is refetched even when the current
    configuration no longer asks for it, unless heal_all is False, in which
    case invalid targets are only refetched when they are also wanted.
    Anything already valid is never refetched.
    """
    wanted_set = {_as_target(t) for t in wanted}
    invalid_set = {_as_target(t) for t in invalid}
    if not heal_all:
        skipped = invalid_set - wanted_set
        if skipped:
            logger.debug(f"Not healing {len(skipped)} invalid targets outside the wanted set")
        invalid_set &= wanted_set

    to_fetch = (invalid_set | wanted_set) - {_as_target(t) for t in valid}
    return to_fetch
