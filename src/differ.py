"""Comparison of desired and recorded assigned identities."""

from collections.abc import Mapping
from dataclasses import dataclass, field

from models import AssignedIdentity


@dataclass(frozen=True)
class AssignmentDiff:
    """Work items for one pass, each list sorted by record key."""

    to_create: list[AssignedIdentity] = field(default_factory=list, hash=False)
    to_delete: list[AssignedIdentity] = field(default_factory=list, hash=False)
    unchanged: list[str] = field(default_factory=list, hash=False)

    @property
    def is_empty(self) -> bool:
        return not self.to_create and not self.to_delete


def diff_assignments(
    desired: Mapping[str, AssignedIdentity],
    current: Mapping[str, AssignedIdentity],
) -> AssignmentDiff:
    """Split desired and current records into create, delete and keep sets.

    Records are compared by key only. A key present on both sides is left
    alone, so a pass over converged state performs no work.
    """
    return AssignmentDiff(
        to_create=[desired[key] for key in sorted(desired.keys() - current.keys())],
        to_delete=[current[key] for key in sorted(current.keys() - desired.keys())],
        unchanged=sorted(desired.keys() & current.keys()),
    )
