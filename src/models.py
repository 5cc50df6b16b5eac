"""Domain models for the pod identity operator.

This module defines typed data structures for identities, bindings, pods,
nodes and assigned identities, together with the conversions to and from
the Kubernetes custom resource bodies that carry them.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypedDict, NotRequired

from constants import (
    ASSIGNED_IDENTITY_KIND,
    CRD_GROUP,
    CRD_VERSION,
    POD_BINDING_LABEL,
)


# =============================================================================
# Enums for constrained values
# =============================================================================


class IdentityType(Enum):
    """Kind of managed identity."""

    USER_ASSIGNED = "UserAssigned"
    SYSTEM_ASSIGNED = "SystemAssigned"

    @classmethod
    def parse(cls, value: Any) -> "IdentityType":
        """Parse the spec.type field of an AzureIdentity.

        The integer 0 is the legacy encoding of a user-assigned identity.
        """
        if value in (0, "0", "UserAssigned", "UserAssignedMSI", None):
            return cls.USER_ASSIGNED
        if value == "SystemAssigned":
            return cls.SYSTEM_ASSIGNED
        raise ValueError(f"Unsupported identity type: {value!r}")


class EventSeverity(Enum):
    """Kubernetes event type."""

    NORMAL = "Normal"
    WARNING = "Warning"


class TriggerType(Enum):
    """Reason a reconciliation pass was requested."""

    POD_CREATED = "PodCreated"
    POD_DELETED = "PodDeleted"
    POD_UPDATED = "PodUpdated"
    IDENTITY_CHANGED = "IdentityChanged"
    BINDING_CHANGED = "BindingChanged"
    RESYNC = "Resync"


class SelectorOperator(Enum):
    """Set-based label selector operators."""

    IN = "In"
    NOT_IN = "NotIn"
    EXISTS = "Exists"
    DOES_NOT_EXIST = "DoesNotExist"


# =============================================================================
# TypedDicts for CRD spec (external data from Kubernetes)
# =============================================================================


class AzureIdentitySpec(TypedDict, total=False):
    """AzureIdentity CRD spec."""

    type: int | str
    resourceID: str
    clientID: str


class SelectorRequirementSpec(TypedDict):
    """Single matchExpressions entry."""

    key: str
    operator: str
    values: NotRequired[list[str]]


class LabelSelectorSpec(TypedDict, total=False):
    """Structured selector form accepted on a binding."""

    matchLabels: dict[str, str]
    matchExpressions: list[SelectorRequirementSpec]


class AzureIdentityBindingSpec(TypedDict):
    """AzureIdentityBinding CRD spec."""

    azureIdentity: str
    selector: str | LabelSelectorSpec


# =============================================================================
# Dataclasses for cluster state
# =============================================================================


def _metadata(body: dict[str, Any]) -> tuple[str, str]:
    meta = body.get("metadata") or {}
    return meta.get("name", ""), meta.get("namespace", "")


@dataclass(frozen=True)
class SelectorRequirement:
    """A matchExpressions requirement."""

    key: str
    operator: SelectorOperator
    values: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"key": self.key, "operator": self.operator.value}
        if self.values:
            result["values"] = list(self.values)
        return result


@dataclass(frozen=True)
class LabelSelector:
    """Label selector with Kubernetes set-based semantics."""

    match_labels: dict[str, str] = field(default_factory=dict, hash=False)
    match_expressions: tuple[SelectorRequirement, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.match_labels and not self.match_expressions

    @classmethod
    def from_spec(cls, spec: "str | LabelSelectorSpec | None") -> "LabelSelector":
        """Build a selector from a binding's spec.selector.

        A plain string is the classic form: it selects pods labelled
        ``aadpodidbinding=<value>``.
        """
        if not spec:
            return cls()
        if isinstance(spec, str):
            return cls(match_labels={POD_BINDING_LABEL: spec})

        expressions = tuple(
            SelectorRequirement(
                key=expr["key"],
                operator=SelectorOperator(expr["operator"]),
                values=tuple(expr.get("values") or ()),
            )
            for expr in spec.get("matchExpressions") or []
        )
        return cls(
            match_labels=dict(spec.get("matchLabels") or {}),
            match_expressions=expressions,
        )

    def to_spec(self) -> "str | LabelSelectorSpec":
        """Convert back to a binding spec.selector value."""
        if (
            not self.match_expressions
            and list(self.match_labels) == [POD_BINDING_LABEL]
        ):
            return self.match_labels[POD_BINDING_LABEL]
        result: LabelSelectorSpec = {}
        if self.match_labels:
            result["matchLabels"] = dict(self.match_labels)
        if self.match_expressions:
            result["matchExpressions"] = [
                expr.to_dict() for expr in self.match_expressions
            ]
        return result


@dataclass(frozen=True)
class Identity:
    """A managed identity declared by an AzureIdentity resource."""

    name: str
    namespace: str
    type: IdentityType = IdentityType.USER_ASSIGNED
    resource_id: str = ""
    client_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to an AzureIdentity resource body."""
        return {
            "metadata": {"name": self.name, "namespace": self.namespace},
            "spec": {
                "type": self.type.value,
                "resourceID": self.resource_id,
                "clientID": self.client_id,
            },
        }

    @classmethod
    def from_dict(cls, body: dict[str, Any]) -> "Identity":
        """Create from an AzureIdentity resource body."""
        name, namespace = _metadata(body)
        spec: AzureIdentitySpec = body.get("spec") or {}
        return cls(
            name=name,
            namespace=namespace,
            type=IdentityType.parse(spec.get("type")),
            resource_id=spec.get("resourceID", ""),
            client_id=spec.get("clientID", ""),
        )


@dataclass(frozen=True)
class Binding:
    """An AzureIdentityBinding: which pods may use a named identity."""

    name: str
    namespace: str
    identity_name: str
    selector: LabelSelector = field(default_factory=LabelSelector)

    def to_dict(self) -> dict[str, Any]:
        """Convert to an AzureIdentityBinding resource body."""
        return {
            "metadata": {"name": self.name, "namespace": self.namespace},
            "spec": {
                "azureIdentity": self.identity_name,
                "selector": self.selector.to_spec(),
            },
        }

    @classmethod
    def from_dict(cls, body: dict[str, Any]) -> "Binding":
        """Create from an AzureIdentityBinding resource body."""
        name, namespace = _metadata(body)
        spec = body.get("spec") or {}
        return cls(
            name=name,
            namespace=namespace,
            identity_name=spec.get("azureIdentity", ""),
            selector=LabelSelector.from_spec(spec.get("selector")),
        )


@dataclass(frozen=True)
class Pod:
    """The parts of a pod the operator reads."""

    name: str
    namespace: str
    node_name: str | None = None
    labels: dict[str, str] = field(default_factory=dict, hash=False)


@dataclass(frozen=True)
class Node:
    """A cluster node; its name is the name of the backing VM."""

    name: str


@dataclass(frozen=True)
class AssignedIdentity:
    """Durable record that an identity is attached to a node for a pod."""

    key: str
    pod_name: str
    pod_namespace: str
    node_name: str
    binding: Binding
    identity: Identity

    def to_dict(self) -> dict[str, Any]:
        """Convert to an AzureAssignedIdentity resource body."""
        return {
            "apiVersion": f"{CRD_GROUP}/{CRD_VERSION}",
            "kind": ASSIGNED_IDENTITY_KIND,
            "metadata": {"name": self.key},
            "spec": {
                "pod": self.pod_name,
                "podNamespace": self.pod_namespace,
                "nodeName": self.node_name,
                "azureBindingRef": self.binding.to_dict(),
                "azureIdentityRef": self.identity.to_dict(),
            },
        }

    @classmethod
    def from_dict(cls, body: dict[str, Any]) -> "AssignedIdentity":
        """Create from an AzureAssignedIdentity resource body."""
        name, _ = _metadata(body)
        spec = body.get("spec") or {}
        return cls(
            key=name,
            pod_name=spec.get("pod", ""),
            pod_namespace=spec.get("podNamespace", ""),
            node_name=spec.get("nodeName", ""),
            binding=Binding.from_dict(spec.get("azureBindingRef") or {}),
            identity=Identity.from_dict(spec.get("azureIdentityRef") or {}),
        )


@dataclass(frozen=True)
class Event:
    """A status notification emitted for one outcome."""

    severity: EventSeverity
    reason: str
    message: str


@dataclass(frozen=True)
class Snapshot:
    """Cluster state read once at the start of a pass."""

    pods: tuple[Pod, ...] = ()
    nodes: tuple[Node, ...] = ()
    bindings: tuple[Binding, ...] = ()
    identities: tuple[Identity, ...] = ()

    @property
    def node_names(self) -> frozenset[str]:
        return frozenset(node.name for node in self.nodes)


# =============================================================================
# Exceptions
# =============================================================================


class OperatorError(Exception):
    """Base exception for operator errors."""

    pass


class SnapshotError(OperatorError):
    """The cluster state for a pass could not be read."""

    pass


class StoreError(OperatorError):
    """An assigned identity record could not be written."""

    pass


class CloudProviderError(OperatorError):
    """Error communicating with the cloud provider."""

    pass


class ConfigurationError(OperatorError):
    """Invalid or missing configuration."""

    pass
