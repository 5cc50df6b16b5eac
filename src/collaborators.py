"""Abstract contracts for the systems the reconciler talks to.

Production implementations live in kube_client, crd_client, azure_client
and events; in-memory ones are used by the tests.
"""

from abc import ABC, abstractmethod

from models import AssignedIdentity, Binding, EventSeverity, Identity, Node, Pod


class PodSource(ABC):
    """Lists the pods of the cluster."""

    @abstractmethod
    def list_pods(self) -> list[Pod]:
        pass


class NodeSource(ABC):
    """Lists the nodes of the cluster."""

    @abstractmethod
    def list_nodes(self) -> list[Node]:
        pass


class IdentityStore(ABC):
    """Reads identities and bindings, and owns assigned identity records."""

    @abstractmethod
    def list_identities(self) -> list[Identity]:
        pass

    @abstractmethod
    def list_bindings(self) -> list[Binding]:
        pass

    @abstractmethod
    def list_assigned_identities(self) -> list[AssignedIdentity]:
        pass

    @abstractmethod
    def create_assigned_identity(self, record: AssignedIdentity) -> bool:
        """Persist a record.

        Creating an existing key is not an error.

        Returns:
            False if the record already existed
        """
        pass

    @abstractmethod
    def delete_assigned_identity(self, key: str) -> bool:
        """Remove a record.

        Deleting a missing key is not an error.

        Returns:
            False if there was no such record
        """
        pass


class CloudProvider(ABC):
    """Attaches identities to, and detaches them from, node VMs.

    Both operations return None on success and raise on failure; the
    exception text is reported to users as-is.
    """

    @abstractmethod
    def attach(self, identity: Identity, node_name: str) -> None:
        pass

    @abstractmethod
    def detach(self, identity: Identity, node_name: str) -> None:
        pass


class EventSink(ABC):
    """Receives status notifications."""

    @abstractmethod
    def record(self, severity: EventSeverity, reason: str, message: str) -> None:
        pass
