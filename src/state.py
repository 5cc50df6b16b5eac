"""Shared operator state - thread-safe singleton for clients and the sync loop."""

import logging
import threading
from dataclasses import dataclass, field

from kubernetes import client as k8s_client
from kubernetes import config as k8s_config

from azure_client import AzureClient
from config import OperatorSettings
from crd_client import CrdClient
from events import EventReporter, KubernetesEventSink
from kube_client import KubernetesNodeSource, KubernetesPodSource
from models import TriggerType
from ratelimit import RateLimiter
from reconciler import Reconciler
from sync_loop import SyncLoop

logger = logging.getLogger(__name__)


@dataclass
class OperatorState:
    """Thread-safe operator state container.

    This class provides thread-safe access to shared operator resources:
    - Kubernetes API clients
    - Azure compute client
    - Event reporter and sync loop

    Watch handlers only talk to the sync loop through enqueue(); cluster
    state itself is never cached here, each pass reads its own snapshot.
    """

    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _k8s_core_api: k8s_client.CoreV1Api | None = field(default=None, repr=False)
    _k8s_custom_api: k8s_client.CustomObjectsApi | None = field(default=None, repr=False)
    _k8s_configured: bool = field(default=False, repr=False)
    _azure_client: AzureClient | None = field(default=None, repr=False)
    _event_reporter: EventReporter | None = field(default=None, repr=False)
    _sync_loop: SyncLoop | None = field(default=None, repr=False)

    def _ensure_k8s_config(self) -> None:
        """Ensure Kubernetes configuration is loaded (must hold lock)."""
        if not self._k8s_configured:
            try:
                k8s_config.load_incluster_config()
            except k8s_config.ConfigException:
                k8s_config.load_kube_config()
            self._k8s_configured = True

    def get_k8s_core_api(self) -> k8s_client.CoreV1Api:
        """Get or create the Kubernetes CoreV1Api client (thread-safe)."""
        with self._lock:
            self._ensure_k8s_config()
            if self._k8s_core_api is None:
                self._k8s_core_api = k8s_client.CoreV1Api()
            return self._k8s_core_api

    def get_k8s_custom_api(self) -> k8s_client.CustomObjectsApi:
        """Get or create the Kubernetes CustomObjectsApi client (thread-safe)."""
        with self._lock:
            self._ensure_k8s_config()
            if self._k8s_custom_api is None:
                self._k8s_custom_api = k8s_client.CustomObjectsApi()
            return self._k8s_custom_api

    def get_azure_client(self, settings: OperatorSettings) -> AzureClient:
        """Get or create the Azure compute client (thread-safe)."""
        with self._lock:
            if self._azure_client is None:
                settings.require_azure()
                self._azure_client = AzureClient(
                    settings.azure_subscription_id,
                    settings.azure_resource_group,
                    rate_limiter=RateLimiter(
                        max_concurrent=settings.azure_max_concurrent_calls,
                        requests_per_second=settings.azure_requests_per_second,
                    ),
                )
            return self._azure_client

    def start(self, settings: OperatorSettings) -> SyncLoop:
        """Wire the production collaborators and start the sync loop."""
        core_api = self.get_k8s_core_api()
        custom_api = self.get_k8s_custom_api()
        cloud = self.get_azure_client(settings)

        with self._lock:
            if self._sync_loop is not None:
                return self._sync_loop

            # close() releases the client the loop was started with
            self._azure_client = cloud
            self._event_reporter = EventReporter(
                KubernetesEventSink(core_api, settings.pod_namespace, settings.pod_name),
                max_queued=settings.event_queue_size,
            )
            reconciler = Reconciler(
                pods=KubernetesPodSource(core_api, settings.watch_namespace),
                nodes=KubernetesNodeSource(core_api),
                crd=CrdClient(custom_api, settings.assigned_identity_namespace),
                cloud=cloud,
                events=self._event_reporter,
                max_workers=settings.sync_workers,
            )
            self._sync_loop = SyncLoop(
                reconciler,
                queue_size=settings.sync_queue_size,
                resync_interval=settings.resync_interval_seconds,
            )
            self._sync_loop.start()
            # Converge whatever changed while the operator was down
            self._sync_loop.enqueue(TriggerType.RESYNC)
            return self._sync_loop

    def enqueue(self, trigger: TriggerType) -> bool:
        """Request a pass from the running sync loop."""
        loop = self._sync_loop
        if loop is None:
            logger.debug("Sync loop not running, ignoring %s", trigger.value)
            return False
        return loop.enqueue(trigger)

    def close(self, timeout: float | None = 30.0) -> None:
        """Stop the loop after its current pass and close all connections."""
        with self._lock:
            loop, self._sync_loop = self._sync_loop, None
            reporter, self._event_reporter = self._event_reporter, None
            cloud, self._azure_client = self._azure_client, None
        if loop is not None:
            loop.stop(timeout)
        if reporter is not None:
            reporter.stop(timeout)
        if cloud is not None:
            cloud.close()


# Global operator state singleton
state = OperatorState()
