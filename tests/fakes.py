"""In-memory collaborators for tests."""

import threading

from collaborators import CloudProvider, EventSink, IdentityStore, NodeSource, PodSource
from constants import POD_BINDING_LABEL
from models import (
    AssignedIdentity,
    Binding,
    Event,
    EventSeverity,
    Identity,
    IdentityType,
    LabelSelector,
    Node,
    Pod,
)

MSI_RESOURCE_PREFIX = (
    "/subscriptions/sub-id/resourceGroups/rg/providers/"
    "Microsoft.ManagedIdentity/userAssignedIdentities"
)


class FakePodSource(PodSource):
    def __init__(self) -> None:
        self._pods: dict[tuple[str, str], Pod] = {}
        self.error: Exception | None = None

    def add_pod(self, name: str, namespace: str, node_name: str | None, selector: str) -> Pod:
        pod = Pod(name, namespace, node_name, {POD_BINDING_LABEL: selector})
        self._pods[(namespace, name)] = pod
        return pod

    def delete_pod(self, name: str, namespace: str) -> None:
        self._pods.pop((namespace, name), None)

    def list_pods(self) -> list[Pod]:
        if self.error is not None:
            raise self.error
        return list(self._pods.values())


class FakeNodeSource(NodeSource):
    def __init__(self) -> None:
        self._nodes: dict[str, Node] = {}

    def add_node(self, name: str) -> None:
        self._nodes[name] = Node(name)

    def delete_node(self, name: str) -> None:
        self._nodes.pop(name, None)

    def list_nodes(self) -> list[Node]:
        return list(self._nodes.values())


class FakeCrdClient(IdentityStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.identities: list[Identity] = []
        self.bindings: list[Binding] = []
        self.assigned: dict[str, AssignedIdentity] = {}
        self.create_error: Exception | None = None
        self.delete_error: Exception | None = None
        self.writes = 0

    def create_id(
        self,
        name: str,
        namespace: str,
        type: IdentityType = IdentityType.USER_ASSIGNED,
        resource_id: str | None = None,
        client_id: str = "test-user-msi-clientid",
    ) -> Identity:
        if resource_id is None:
            resource_id = f"{MSI_RESOURCE_PREFIX}/{name}"
        identity = Identity(name, namespace, type, resource_id, client_id)
        self.identities.append(identity)
        return identity

    def create_binding(self, name: str, namespace: str, identity_name: str, selector: str) -> Binding:
        binding = Binding(name, namespace, identity_name, LabelSelector.from_spec(selector))
        self.bindings.append(binding)
        return binding

    def list_identities(self) -> list[Identity]:
        return list(self.identities)

    def list_bindings(self) -> list[Binding]:
        return list(self.bindings)

    def list_assigned_identities(self) -> list[AssignedIdentity]:
        with self._lock:
            return list(self.assigned.values())

    def create_assigned_identity(self, record: AssignedIdentity) -> bool:
        if self.create_error is not None:
            raise self.create_error
        with self._lock:
            created = record.key not in self.assigned
            self.assigned[record.key] = record
            self.writes += 1
            return created

    def delete_assigned_identity(self, key: str) -> bool:
        if self.delete_error is not None:
            raise self.delete_error
        with self._lock:
            removed = self.assigned.pop(key, None) is not None
            self.writes += 1
            return removed


class FakeCloudProvider(CloudProvider):
    """Tracks attached identity names per node; can be told to fail."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.attached: dict[str, set[str]] = {}
        self.calls: list[tuple[str, str, str]] = []
        self.error: Exception | None = None
        self.fail_identities: set[str] = set()

    def set_error(self, error: Exception) -> None:
        self.error = error

    def unset_error(self) -> None:
        self.error = None

    def _check(self, identity: Identity) -> None:
        if self.error is not None:
            raise self.error
        if identity.name in self.fail_identities:
            raise RuntimeError(f"cannot assign {identity.name}")

    def attach(self, identity: Identity, node_name: str) -> None:
        with self._lock:
            self.calls.append(("attach", identity.name, node_name))
        self._check(identity)
        with self._lock:
            self.attached.setdefault(node_name, set()).add(identity.name)

    def detach(self, identity: Identity, node_name: str) -> None:
        with self._lock:
            self.calls.append(("detach", identity.name, node_name))
        self._check(identity)
        with self._lock:
            self.attached.get(node_name, set()).discard(identity.name)


class RecordingEventSink(EventSink):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.events: list[Event] = []

    def record(self, severity: EventSeverity, reason: str, message: str) -> None:
        with self._lock:
            self.events.append(Event(severity, reason, message))

    @property
    def last_event(self) -> Event | None:
        with self._lock:
            return self.events[-1] if self.events else None

    def reasons(self) -> list[str]:
        with self._lock:
            return [event.reason for event in self.events]
