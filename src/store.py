"""Assigned identity record management."""

import logging
import threading

from collaborators import IdentityStore
from metrics import ASSIGNED_IDENTITIES
from models import AssignedIdentity, StoreError

logger = logging.getLogger(__name__)


class AssignmentStore:
    """Creates, deletes and lists AzureAssignedIdentity records.

    Writes are serialized so in-pass workers can share one instance; every
    failure of the underlying store is raised as StoreError.
    """

    def __init__(self, backend: IdentityStore) -> None:
        self._backend = backend
        self._lock = threading.Lock()

    def list(self) -> dict[str, AssignedIdentity]:
        """Return the committed records keyed by name."""
        try:
            records = self._backend.list_assigned_identities()
        except Exception as e:
            raise StoreError(f"Failed to list assigned identities: {e}") from e

        current: dict[str, AssignedIdentity] = {}
        for record in records:
            if record.key in current:
                logger.warning("Assigned identity %s listed twice", record.key)
            current[record.key] = record
        ASSIGNED_IDENTITIES.set(len(current))
        return current

    def create(self, record: AssignedIdentity) -> None:
        """Persist a record after its identity was attached."""
        with self._lock:
            try:
                created = self._backend.create_assigned_identity(record)
            except Exception as e:
                raise StoreError(
                    f"Failed to create assigned identity {record.key}: {e}"
                ) from e
            if created:
                ASSIGNED_IDENTITIES.inc()
        logger.info(
            "Created assigned identity %s (node %s)", record.key, record.node_name
        )

    def delete(self, key: str) -> None:
        """Remove a record after its identity was detached."""
        with self._lock:
            try:
                removed = self._backend.delete_assigned_identity(key)
            except Exception as e:
                raise StoreError(f"Failed to delete assigned identity {key}: {e}") from e
            if removed:
                ASSIGNED_IDENTITIES.dec()
        logger.info("Deleted assigned identity %s", key)
