"""Constants used across the operator."""

# Namespace acting as the cluster-wide wildcard for bindings and identities
DEFAULT_NAMESPACE = "default"

# Pod label matched by the classic string form of a binding selector
POD_BINDING_LABEL = "aadpodidbinding"

# CRD coordinates
CRD_GROUP = "aadpodidentity.k8s.io"
CRD_VERSION = "v1"
IDENTITY_PLURAL = "azureidentities"
BINDING_PLURAL = "azureidentitybindings"
ASSIGNED_IDENTITY_PLURAL = "azureassignedidentities"
ASSIGNED_IDENTITY_KIND = "AzureAssignedIdentity"

# Event reasons
REASON_BINDING_APPLIED = "binding applied"
REASON_BINDING_APPLY_ERROR = "binding apply error"
REASON_BINDING_REMOVED = "binding removed"
REASON_BINDING_REMOVE_ERROR = "binding remove error"

# Component name reported as the source of Kubernetes events
EVENT_COMPONENT = "pod-identity-operator"
