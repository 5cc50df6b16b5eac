"""Name lookup over the identities listed for one reconciliation pass."""

import logging
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field

from models import Identity
from utils import list_to_map

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DuplicateIdentityName:
    """Two or more AzureIdentity resources share a name.

    This is a cluster-state anomaly: lookups still resolve, to the last
    identity listed under the name.
    """

    name: str
    count: int


@dataclass(frozen=True)
class IdentityIndex:
    """Identities keyed by name for the duration of a pass."""

    by_name: dict[str, Identity] = field(default_factory=dict, hash=False)
    duplicates: tuple[DuplicateIdentityName, ...] = ()

    def get(self, name: str) -> Identity | None:
        """Return the identity with this name, or None if absent."""
        return self.by_name.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self.by_name

    def __len__(self) -> int:
        return len(self.by_name)


def build_identity_index(identities: Iterable[Identity]) -> IdentityIndex:
    """Build the name index, recording duplicated names instead of failing."""
    identities = list(identities)
    by_name, duplicate_names = list_to_map(identities, key=lambda identity: identity.name)

    duplicates: tuple[DuplicateIdentityName, ...] = ()
    if duplicate_names:
        counts = Counter(identity.name for identity in identities)
        duplicates = tuple(
            DuplicateIdentityName(name=name, count=counts[name])
            for name in duplicate_names
        )
        for duplicate in duplicates:
            logger.debug(
                "Identity name %s listed %d times, using the last one",
                duplicate.name,
                duplicate.count,
            )

    return IdentityIndex(by_name=by_name, duplicates=duplicates)
