"""Cloud synchronization of assigned identities.

Each work item is attached or detached on its node's VM, recorded in the
assignment store, and reported as an event. A failing item never stops its
siblings: cloud errors are reported and left for the next pass to retry.
"""

import logging
import time
from collections.abc import Collection, Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from collaborators import CloudProvider, EventSink
from constants import (
    REASON_BINDING_APPLIED,
    REASON_BINDING_APPLY_ERROR,
    REASON_BINDING_REMOVED,
    REASON_BINDING_REMOVE_ERROR,
)
from differ import AssignmentDiff
from metrics import CLOUD_OPERATION_DURATION, CLOUD_OPERATIONS, STORE_ERRORS
from models import AssignedIdentity, EventSeverity, IdentityType, StoreError
from store import AssignmentStore

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Outcome of the work items of one pass, by record key."""

    applied: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    apply_errors: dict[str, str] = field(default_factory=dict)
    remove_errors: dict[str, str] = field(default_factory=dict)
    store_errors: dict[str, str] = field(default_factory=dict)

    @property
    def failed(self) -> bool:
        return bool(self.apply_errors or self.remove_errors or self.store_errors)

    def merge(self, other: "SyncResult") -> None:
        self.applied.extend(other.applied)
        self.removed.extend(other.removed)
        self.apply_errors.update(other.apply_errors)
        self.remove_errors.update(other.remove_errors)
        self.store_errors.update(other.store_errors)


def _attachment(record: AssignedIdentity) -> tuple[str, str, str]:
    """What a record puts on a VM: the node and the identity resource."""
    identity = record.identity
    if identity.type is IdentityType.SYSTEM_ASSIGNED:
        # A VM has a single system identity, whatever resource declares it
        return (record.node_name, identity.type.value, "")
    return (record.node_name, identity.type.value, identity.resource_id or identity.name)


class CloudSynchronizer:
    """Executes create/delete work items against the cloud provider."""

    def __init__(
        self,
        cloud: CloudProvider,
        store: AssignmentStore,
        events: EventSink,
        max_workers: int = 4,
    ) -> None:
        self._cloud = cloud
        self._store = store
        self._events = events
        self._max_workers = max(1, max_workers)

    def run(
        self,
        diff: AssignmentDiff,
        desired: Mapping[str, AssignedIdentity],
        node_names: Collection[str],
    ) -> SyncResult:
        """Process every item of the diff.

        Items are grouped by node and each node's items run in order on one
        worker, since concurrent updates of the same VM conflict. Different
        nodes are processed in parallel.

        Args:
            diff: Records to create and delete
            desired: Full desired state of the pass
            node_names: Nodes that currently exist

        Returns:
            Combined outcome of all items
        """
        still_attached = {_attachment(record) for record in desired.values()}

        by_node: dict[str, tuple[list[AssignedIdentity], list[AssignedIdentity]]] = {}
        for record in diff.to_create:
            by_node.setdefault(record.node_name, ([], []))[0].append(record)
        for record in diff.to_delete:
            by_node.setdefault(record.node_name, ([], []))[1].append(record)

        def sync_node(node_name: str) -> SyncResult:
            creates, deletes = by_node[node_name]
            result = SyncResult()
            for record in creates:
                self.apply(record, result)
            for record in deletes:
                if node_name not in node_names:
                    logger.info(
                        "Node %s is gone, dropping assigned identity %s without detach",
                        node_name,
                        record.key,
                    )
                    detach = False
                elif _attachment(record) in still_attached:
                    logger.info(
                        "Identity %s still used on node %s, keeping it attached",
                        record.identity.name,
                        node_name,
                    )
                    detach = False
                else:
                    detach = True
                self.remove(record, result, detach=detach)
            return result

        result = SyncResult()
        if self._max_workers == 1 or len(by_node) <= 1:
            for node_name in sorted(by_node):
                result.merge(sync_node(node_name))
            return result

        with ThreadPoolExecutor(
            max_workers=self._max_workers, thread_name_prefix="cloud-sync"
        ) as executor:
            for node_result in executor.map(sync_node, sorted(by_node)):
                result.merge(node_result)
        return result

    def apply(self, record: AssignedIdentity, result: SyncResult) -> None:
        """Attach the identity, then persist the record."""
        binding = record.binding.name
        node = record.node_name

        start_time = time.monotonic()
        try:
            self._cloud.attach(record.identity, node)
        except Exception as e:
            CLOUD_OPERATIONS.labels(operation="attach", status="error").inc()
            logger.error(f"Failed to attach identity {record.identity.name} to node {node}: {e}")
            result.apply_errors[record.key] = str(e)
            self._events.record(
                EventSeverity.WARNING,
                REASON_BINDING_APPLY_ERROR,
                f"Applying binding {binding} node {node} for pod {record.key} "
                f"resulted in error {e}",
            )
            return
        finally:
            CLOUD_OPERATION_DURATION.labels(operation="attach").observe(
                time.monotonic() - start_time
            )
        CLOUD_OPERATIONS.labels(operation="attach", status="success").inc()

        try:
            self._store.create(record)
        except StoreError as e:
            STORE_ERRORS.labels(operation="create").inc()
            logger.error(f"{e}; will retry on next pass")
            result.store_errors[record.key] = str(e)
            return

        result.applied.append(record.key)
        self._events.record(
            EventSeverity.NORMAL,
            REASON_BINDING_APPLIED,
            f"Binding {binding} applied on node {node} for pod {record.key}",
        )

    def remove(self, record: AssignedIdentity, result: SyncResult, detach: bool = True) -> None:
        """Detach the identity, then delete the record.

        On detach failure the record is kept so the next pass retries.
        """
        binding = record.binding.name
        node = record.node_name

        if detach:
            start_time = time.monotonic()
            try:
                self._cloud.detach(record.identity, node)
            except Exception as e:
                CLOUD_OPERATIONS.labels(operation="detach", status="error").inc()
                logger.error(
                    f"Failed to detach identity {record.identity.name} from node {node}: {e}"
                )
                result.remove_errors[record.key] = str(e)
                self._events.record(
                    EventSeverity.WARNING,
                    REASON_BINDING_REMOVE_ERROR,
                    f"Binding {binding} removal from node {node} for pod "
                    f"{record.pod_name} resulted in error {e}",
                )
                return
            finally:
                CLOUD_OPERATION_DURATION.labels(operation="detach").observe(
                    time.monotonic() - start_time
                )
            CLOUD_OPERATIONS.labels(operation="detach", status="success").inc()

        try:
            self._store.delete(record.key)
        except StoreError as e:
            STORE_ERRORS.labels(operation="delete").inc()
            logger.error(f"{e}; will retry on next pass")
            result.store_errors[record.key] = str(e)
            return

        result.removed.append(record.key)
        self._events.record(
            EventSeverity.NORMAL,
            REASON_BINDING_REMOVED,
            f"Binding {binding} removed from node {node} for pod {record.pod_name}",
        )
