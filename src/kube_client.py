"""Kubernetes pod and node listing with retry logic."""

import logging
import time
from collections.abc import Callable
from functools import wraps
from typing import Any, ParamSpec, TypeVar

from kubernetes import client as k8s_client
from kubernetes.client import ApiException

from collaborators import NodeSource, PodSource
from models import Node, Pod

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

# Statuses worth retrying: throttling and server-side failures
RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})


def retry_on_error(
    max_retries: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Decorator to retry Kubernetes API reads on transient errors."""

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            current_delay = delay

            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except ApiException as e:
                    if e.status not in RETRYABLE_STATUSES or attempt == max_retries:
                        raise
                    logger.warning(
                        "Attempt %d/%d failed for %s: %s. Retrying in %.1fs...",
                        attempt + 1,
                        max_retries + 1,
                        func.__name__,
                        e.reason,
                        current_delay,
                    )
                    time.sleep(current_delay)
                    current_delay *= backoff

            raise AssertionError("unreachable")

        return wrapper

    return decorator


def pod_from_k8s(pod: Any) -> Pod:
    """Convert a V1Pod to the operator's Pod."""
    return Pod(
        name=pod.metadata.name,
        namespace=pod.metadata.namespace,
        node_name=(pod.spec.node_name if pod.spec else None) or None,
        labels=dict(pod.metadata.labels or {}),
    )


def _is_terminated(pod: Any) -> bool:
    phase = pod.status.phase if pod.status else None
    return phase in ("Succeeded", "Failed")


class KubernetesPodSource(PodSource):
    """Lists pods cluster-wide, or in one namespace."""

    def __init__(self, core_api: k8s_client.CoreV1Api, namespace: str = "") -> None:
        self._core_api = core_api
        self._namespace = namespace

    @retry_on_error()
    def list_pods(self) -> list[Pod]:
        """List running and pending pods; finished pods no longer need identities."""
        if self._namespace:
            response = self._core_api.list_namespaced_pod(self._namespace)
        else:
            response = self._core_api.list_pod_for_all_namespaces()
        return [pod_from_k8s(pod) for pod in response.items if not _is_terminated(pod)]


class KubernetesNodeSource(NodeSource):
    """Lists cluster nodes."""

    def __init__(self, core_api: k8s_client.CoreV1Api) -> None:
        self._core_api = core_api

    @retry_on_error()
    def list_nodes(self) -> list[Node]:
        response = self._core_api.list_node()
        return [Node(name=node.metadata.name) for node in response.items]
