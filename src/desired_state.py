"""Desired assigned identities computed from a cluster snapshot."""

import logging

from identity_index import IdentityIndex, build_identity_index
from models import AssignedIdentity, Snapshot
from scope import identity_usable_by_binding, pod_matches_binding
from utils import make_assigned_identity_key

logger = logging.getLogger(__name__)


def build_desired_state(
    snapshot: Snapshot,
    index: IdentityIndex | None = None,
) -> dict[str, AssignedIdentity]:
    """Compute every assignment the snapshot entitles pods to.

    For each scheduled pod and each binding visible to it whose selector
    matches, the binding's identity is resolved through the index and kept
    if the binding may use it. Pods without a node, or on a node missing
    from the snapshot, are skipped: they are picked up by a later pass once
    scheduled.

    Args:
        snapshot: Pods, nodes, bindings and identities read for this pass
        index: Identity index for the snapshot; built here if not given

    Returns:
        Dict mapping assigned identity key to the candidate record
    """
    if index is None:
        index = build_identity_index(snapshot.identities)

    node_names = snapshot.node_names
    desired: dict[str, AssignedIdentity] = {}

    for pod in snapshot.pods:
        if not pod.node_name:
            logger.debug("Pod %s/%s not scheduled yet", pod.namespace, pod.name)
            continue
        if pod.node_name not in node_names:
            logger.debug(
                "Node %s of pod %s/%s not found", pod.node_name, pod.namespace, pod.name
            )
            continue

        for binding in snapshot.bindings:
            if not pod_matches_binding(pod, binding):
                continue

            identity = index.get(binding.identity_name)
            if identity is None:
                logger.debug(
                    "Binding %s/%s references unknown identity %s",
                    binding.namespace,
                    binding.name,
                    binding.identity_name,
                )
                continue
            if not identity_usable_by_binding(identity, binding):
                logger.debug(
                    "Identity %s/%s is out of scope for binding %s/%s",
                    identity.namespace,
                    identity.name,
                    binding.namespace,
                    binding.name,
                )
                continue

            key = make_assigned_identity_key(pod.name, pod.namespace, identity.name)
            if key in desired:
                logger.debug(
                    "Identity %s already assigned to pod %s/%s by binding %s",
                    identity.name,
                    pod.namespace,
                    pod.name,
                    desired[key].binding.name,
                )
                continue

            desired[key] = AssignedIdentity(
                key=key,
                pod_name=pod.name,
                pod_namespace=pod.namespace,
                node_name=pod.node_name,
                binding=binding,
                identity=identity,
            )

    return desired
