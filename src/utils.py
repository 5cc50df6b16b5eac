"""Utility functions for the pod identity operator."""

import datetime
from collections.abc import Callable, Iterable
from typing import TypeVar

K = TypeVar("K")
V = TypeVar("V")


def make_assigned_identity_key(pod_name: str, pod_namespace: str, identity_name: str) -> str:
    """Build the name of an AzureAssignedIdentity record.

    Example: ('test-pod', 'default', 'test-id') -> 'test-pod-default-test-id'
    """
    return f"{pod_name}-{pod_namespace}-{identity_name}"


def list_to_map(items: Iterable[V], key: Callable[[V], K]) -> tuple[dict[K, V], list[K]]:
    """Index items by key, reporting keys that occur more than once.

    Later items overwrite earlier ones. Each duplicated key appears once in
    the returned list, in order of first repetition.
    """
    mapping: dict[K, V] = {}
    duplicates: list[K] = []
    for item in items:
        item_key = key(item)
        if item_key in mapping and item_key not in duplicates:
            duplicates.append(item_key)
        mapping[item_key] = item
    return mapping, duplicates


def now_iso() -> str:
    """Return current UTC time in ISO format."""
    return datetime.datetime.now(datetime.UTC).isoformat()


def truncate(message: str, limit: int = 1024) -> str:
    """Shorten a message to fit a Kubernetes event."""
    if len(message) <= limit:
        return message
    return message[: limit - 3] + "..."
