"""One reconciliation pass: snapshot, desired state, diff, cloud sync."""

import logging
import threading
import time
from dataclasses import dataclass, field

from collaborators import CloudProvider, EventSink, IdentityStore, NodeSource, PodSource
from desired_state import build_desired_state
from differ import diff_assignments
from identity_index import DuplicateIdentityName, build_identity_index
from metrics import (
    DUPLICATE_IDENTITY_NAMES,
    RECONCILE_DURATION,
    RECONCILE_IN_PROGRESS,
    RECONCILE_TOTAL,
)
from models import Snapshot, SnapshotError, StoreError, TriggerType
from store import AssignmentStore
from synchronizer import CloudSynchronizer, SyncResult

logger = logging.getLogger(__name__)


@dataclass
class PassResult:
    """Summary of a completed pass."""

    trigger: TriggerType
    desired: int = 0
    current: int = 0
    unchanged: int = 0
    sync: SyncResult = field(default_factory=SyncResult)
    duplicates: tuple[DuplicateIdentityName, ...] = ()
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        """True when every work item of the pass succeeded."""
        return not self.sync.failed


class Reconciler:
    """Runs reconciliation passes over injected collaborators.

    Passes are single-flight: concurrent calls to reconcile() wait for the
    running pass to finish.
    """

    def __init__(
        self,
        pods: PodSource,
        nodes: NodeSource,
        crd: IdentityStore,
        cloud: CloudProvider,
        events: EventSink,
        max_workers: int = 4,
    ) -> None:
        self._pods = pods
        self._nodes = nodes
        self._crd = crd
        self._store = AssignmentStore(crd)
        self._synchronizer = CloudSynchronizer(cloud, self._store, events, max_workers)
        self._lock = threading.Lock()

    @property
    def store(self) -> AssignmentStore:
        return self._store

    def snapshot(self) -> Snapshot:
        """Read pods, nodes, bindings and identities for a pass.

        Raises:
            SnapshotError: If any listing fails; a partial snapshot is never
                used.
        """
        try:
            return Snapshot(
                pods=tuple(self._pods.list_pods()),
                nodes=tuple(self._nodes.list_nodes()),
                bindings=tuple(self._crd.list_bindings()),
                identities=tuple(self._crd.list_identities()),
            )
        except Exception as e:
            raise SnapshotError(f"Failed to read cluster state: {e}") from e

    def reconcile(self, trigger: TriggerType = TriggerType.RESYNC) -> PassResult:
        """Run one full pass.

        Per-item cloud and store failures are reported in the result and
        do not stop the pass.

        Raises:
            SnapshotError: If the cluster state or the current records could
                not be read; nothing was changed.
        """
        with self._lock:
            start_time = time.monotonic()
            RECONCILE_IN_PROGRESS.set(1)
            try:
                result = self._reconcile(trigger)
            except SnapshotError:
                RECONCILE_TOTAL.labels(status="aborted").inc()
                raise
            finally:
                RECONCILE_IN_PROGRESS.set(0)

            result.duration_seconds = time.monotonic() - start_time
            RECONCILE_DURATION.observe(result.duration_seconds)
            RECONCILE_TOTAL.labels(status="success" if result.success else "error").inc()
            return result

    def _reconcile(self, trigger: TriggerType) -> PassResult:
        snapshot = self.snapshot()
        try:
            current = self._store.list()
        except StoreError as e:
            raise SnapshotError(str(e)) from e

        index = build_identity_index(snapshot.identities)
        for duplicate in index.duplicates:
            DUPLICATE_IDENTITY_NAMES.inc()
            logger.warning(
                "Found %d identities named %s; using the last one listed",
                duplicate.count,
                duplicate.name,
            )

        desired = build_desired_state(snapshot, index)
        diff = diff_assignments(desired, current)
        result = PassResult(
            trigger=trigger,
            desired=len(desired),
            current=len(current),
            unchanged=len(diff.unchanged),
            duplicates=index.duplicates,
        )

        if diff.is_empty:
            logger.debug(
                "Pass (%s): %d assigned identities up to date",
                trigger.value,
                len(diff.unchanged),
            )
            return result

        logger.info(
            "Pass (%s): %d to create, %d to delete, %d unchanged",
            trigger.value,
            len(diff.to_create),
            len(diff.to_delete),
            len(diff.unchanged),
        )
        result.sync = self._synchronizer.run(diff, desired, snapshot.node_names)

        if result.sync.failed:
            logger.warning(
                "Pass (%s) finished with %d failed item(s), retrying on next pass",
                trigger.value,
                len(result.sync.apply_errors)
                + len(result.sync.remove_errors)
                + len(result.sync.store_errors),
            )
        return result
