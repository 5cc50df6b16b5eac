"""Azure compute wrapper attaching managed identities to node VMs."""

import logging

from azure.core.exceptions import AzureError, ResourceNotFoundError
from azure.identity import DefaultAzureCredential
from azure.mgmt.compute import ComputeManagementClient
from azure.mgmt.compute.models import (
    UserAssignedIdentitiesValue,
    VirtualMachine,
    VirtualMachineIdentity,
    VirtualMachineUpdate,
)

from collaborators import CloudProvider
from models import CloudProviderError, Identity, IdentityType
from ratelimit import RateLimiter

logger = logging.getLogger(__name__)

SYSTEM_ASSIGNED = "SystemAssigned"
USER_ASSIGNED = "UserAssigned"


def identity_type_string(system: bool, user: bool) -> str:
    """Build the ARM identity type for a VM.

    Example: (True, True) -> 'SystemAssigned, UserAssigned'
    """
    parts = [name for name, enabled in ((SYSTEM_ASSIGNED, system), (USER_ASSIGNED, user)) if enabled]
    return ", ".join(parts) if parts else "None"


def _vm_identities(vm: VirtualMachine) -> tuple[bool, dict[str, str]]:
    """Return whether the VM has its system identity, and its user identities.

    User identities are keyed by lowercased resource ID, since ARM does not
    preserve the casing callers used.
    """
    identity = vm.identity
    if identity is None:
        return False, {}
    # Deserialized responses carry a ResourceIdentityType member, not a str
    vm_type = getattr(identity.type, "value", identity.type) or ""
    has_system = SYSTEM_ASSIGNED.lower() in str(vm_type).lower()
    user_ids = {rid.lower(): rid for rid in (identity.user_assigned_identities or {})}
    return has_system, user_ids


class AzureClient(CloudProvider):
    """Attaches and detaches identities on the VMs backing cluster nodes.

    Node names are VM names in the configured resource group. Both
    operations are idempotent: attaching an attached identity or detaching
    a detached one makes no ARM update.
    """

    def __init__(
        self,
        subscription_id: str,
        resource_group: str,
        rate_limiter: RateLimiter | None = None,
        compute: ComputeManagementClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            subscription_id: Subscription holding the node VMs
            resource_group: Resource group holding the node VMs
            rate_limiter: Shared ARM rate limiter
            compute: Compute client; created on first use if None
        """
        self.subscription_id = subscription_id
        self.resource_group = resource_group
        self._rate_limiter = rate_limiter or RateLimiter()
        self._compute = compute

    @property
    def compute(self) -> ComputeManagementClient:
        """Get or create the compute management client."""
        if self._compute is None:
            logger.info("Connecting to Azure subscription: %s", self.subscription_id)
            self._compute = ComputeManagementClient(
                DefaultAzureCredential(), self.subscription_id
            )
        return self._compute

    def close(self) -> None:
        """Close the compute client."""
        if self._compute is not None:
            self._compute.close()
            self._compute = None

    def _get_vm(self, vm_name: str) -> VirtualMachine:
        try:
            with self._rate_limiter.acquire():
                return self.compute.virtual_machines.get(self.resource_group, vm_name)
        except ResourceNotFoundError as e:
            raise CloudProviderError(
                f"VM {vm_name} not found in resource group {self.resource_group}"
            ) from e
        except AzureError as e:
            raise CloudProviderError(f"Failed to get VM {vm_name}: {e}") from e

    def _update_identity(self, vm_name: str, identity: VirtualMachineIdentity) -> None:
        try:
            with self._rate_limiter.acquire():
                poller = self.compute.virtual_machines.begin_update(
                    self.resource_group,
                    vm_name,
                    VirtualMachineUpdate(identity=identity),
                )
            poller.result()
        except AzureError as e:
            raise CloudProviderError(f"Failed to update identities of VM {vm_name}: {e}") from e

    def attach(self, identity: Identity, node_name: str) -> None:
        """Assign the identity to the node's VM."""
        vm = self._get_vm(node_name)
        has_system, user_ids = _vm_identities(vm)

        if identity.type is IdentityType.SYSTEM_ASSIGNED:
            if has_system:
                logger.debug("System identity already enabled on VM %s", node_name)
                return
            logger.info("Enabling system identity on VM %s", node_name)
            self._update_identity(
                node_name,
                VirtualMachineIdentity(type=identity_type_string(True, bool(user_ids))),
            )
            return

        if not identity.resource_id:
            raise CloudProviderError(f"Identity {identity.name} has no resource ID")
        if identity.resource_id.lower() in user_ids:
            logger.debug(
                "Identity %s already assigned to VM %s", identity.resource_id, node_name
            )
            return

        logger.info("Assigning identity %s to VM %s", identity.resource_id, node_name)
        self._update_identity(
            node_name,
            VirtualMachineIdentity(
                type=identity_type_string(has_system, True),
                user_assigned_identities={
                    identity.resource_id: UserAssignedIdentitiesValue()
                },
            ),
        )

    def detach(self, identity: Identity, node_name: str) -> None:
        """Remove the identity from the node's VM."""
        vm = self._get_vm(node_name)
        has_system, user_ids = _vm_identities(vm)

        if identity.type is IdentityType.SYSTEM_ASSIGNED:
            if not has_system:
                logger.debug("System identity already disabled on VM %s", node_name)
                return
            logger.info("Disabling system identity on VM %s", node_name)
            self._update_identity(
                node_name,
                VirtualMachineIdentity(type=identity_type_string(False, bool(user_ids))),
            )
            return

        attached_id = user_ids.get(identity.resource_id.lower())
        if attached_id is None:
            logger.debug(
                "Identity %s not assigned to VM %s", identity.resource_id, node_name
            )
            return

        remaining = len(user_ids) - 1
        logger.info("Removing identity %s from VM %s", attached_id, node_name)
        if remaining:
            # A null value removes one user identity and keeps the others
            update = VirtualMachineIdentity(
                type=identity_type_string(has_system, True),
                user_assigned_identities={attached_id: None},
            )
        else:
            update = VirtualMachineIdentity(type=identity_type_string(has_system, False))
        self._update_identity(node_name, update)
