"""Access to the identity custom resources through the Kubernetes API."""

import logging
from collections.abc import Callable
from typing import Any, TypeVar

from kubernetes import client as k8s_client
from kubernetes.client import ApiException

from collaborators import IdentityStore
from constants import (
    ASSIGNED_IDENTITY_PLURAL,
    BINDING_PLURAL,
    CRD_GROUP,
    CRD_VERSION,
    DEFAULT_NAMESPACE,
    IDENTITY_PLURAL,
)
from kube_client import retry_on_error
from models import AssignedIdentity, Binding, Identity

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _parse_items(
    items: list[dict[str, Any]], parse: Callable[[dict[str, Any]], T], kind: str
) -> list[T]:
    """Convert resource bodies, skipping malformed ones."""
    parsed: list[T] = []
    for item in items:
        try:
            parsed.append(parse(item))
        except (KeyError, TypeError, ValueError) as e:
            meta = item.get("metadata", {})
            logger.warning(
                "Skipping invalid %s %s/%s: %s",
                kind,
                meta.get("namespace", ""),
                meta.get("name", ""),
                e,
            )
    return parsed


class CrdClient(IdentityStore):
    """Reads AzureIdentity/AzureIdentityBinding resources and manages
    AzureAssignedIdentity records.

    Identities and bindings are listed cluster-wide. Assigned identities
    all live in one namespace, so a record is addressed by its key alone.
    """

    def __init__(
        self,
        custom_api: k8s_client.CustomObjectsApi,
        assigned_identity_namespace: str = DEFAULT_NAMESPACE,
    ) -> None:
        self._api = custom_api
        self._namespace = assigned_identity_namespace

    @retry_on_error()
    def _list_cluster(self, plural: str) -> list[dict[str, Any]]:
        try:
            response = self._api.list_cluster_custom_object(
                group=CRD_GROUP,
                version=CRD_VERSION,
                plural=plural,
            )
        except ApiException as e:
            if e.status == 404:
                # CRD doesn't exist yet
                logger.warning("Custom resource %s.%s is not installed", plural, CRD_GROUP)
                return []
            raise
        return response.get("items", [])

    def list_identities(self) -> list[Identity]:
        return _parse_items(
            self._list_cluster(IDENTITY_PLURAL), Identity.from_dict, "AzureIdentity"
        )

    def list_bindings(self) -> list[Binding]:
        return _parse_items(
            self._list_cluster(BINDING_PLURAL), Binding.from_dict, "AzureIdentityBinding"
        )

    @retry_on_error()
    def list_assigned_identities(self) -> list[AssignedIdentity]:
        response = self._api.list_namespaced_custom_object(
            group=CRD_GROUP,
            version=CRD_VERSION,
            namespace=self._namespace,
            plural=ASSIGNED_IDENTITY_PLURAL,
        )
        return _parse_items(
            response.get("items", []), AssignedIdentity.from_dict, "AzureAssignedIdentity"
        )

    def create_assigned_identity(self, record: AssignedIdentity) -> bool:
        body = record.to_dict()
        body["metadata"]["namespace"] = self._namespace
        try:
            self._api.create_namespaced_custom_object(
                group=CRD_GROUP,
                version=CRD_VERSION,
                namespace=self._namespace,
                plural=ASSIGNED_IDENTITY_PLURAL,
                body=body,
            )
        except ApiException as e:
            if e.status == 409:
                logger.debug("Assigned identity %s already exists", record.key)
                return False
            raise
        return True

    def delete_assigned_identity(self, key: str) -> bool:
        try:
            self._api.delete_namespaced_custom_object(
                group=CRD_GROUP,
                version=CRD_VERSION,
                namespace=self._namespace,
                plural=ASSIGNED_IDENTITY_PLURAL,
                name=key,
            )
        except ApiException as e:
            if e.status == 404:
                logger.debug("Assigned identity %s already deleted", key)
                return False
            raise
        return True
