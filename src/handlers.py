"""Kopf handlers turning watch notifications into reconciliation triggers."""

import logging
import sys
from pathlib import Path
from typing import Any

# Add src directory to path for imports when run as script by Kopf
_src_dir = Path(__file__).parent
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

import kopf
from prometheus_client import start_http_server

from config import OperatorSettings
from constants import BINDING_PLURAL, CRD_GROUP, CRD_VERSION, IDENTITY_PLURAL
from metrics import init_metrics, set_operator_info
from models import TriggerType
from state import state

logger = logging.getLogger(__name__)

# Operator version
OPERATOR_VERSION = "0.1.0"

POD_TRIGGERS = {
    "ADDED": TriggerType.POD_CREATED,
    "DELETED": TriggerType.POD_DELETED,
    "MODIFIED": TriggerType.POD_UPDATED,
}

_watch_namespace = ""


def pod_trigger(event_type: str | None, namespace: str | None, node_name: str | None) -> TriggerType | None:
    """Decide which trigger, if any, a pod watch event produces.

    The initial listing (no event type) is covered by the startup resync,
    and updates of unscheduled pods cannot change any assignment.
    """
    if _watch_namespace and namespace != _watch_namespace:
        return None
    trigger = POD_TRIGGERS.get(event_type or "")
    if trigger is TriggerType.POD_UPDATED and not node_name:
        return None
    return trigger


@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, **_: Any) -> None:
    """Configure operator settings and start the sync loop."""
    global _watch_namespace

    # Reduce logging noise
    settings.posting.level = logging.WARNING
    # Identities and bindings in "default" apply cluster-wide, so always watch everything
    settings.watching.clusterwide = True

    operator_settings = OperatorSettings.from_env()
    _watch_namespace = operator_settings.watch_namespace

    # Start Prometheus metrics server
    try:
        start_http_server(operator_settings.metrics_port)
        logger.info(
            "Prometheus metrics server started on port %d", operator_settings.metrics_port
        )
    except OSError as e:
        logger.warning(
            "Failed to start metrics server on port %d: %s", operator_settings.metrics_port, e
        )

    init_metrics()
    set_operator_info(OPERATOR_VERSION, operator_settings.azure_subscription_id)

    state.start(operator_settings)
    logger.info("Pod identity operator started (version %s)", OPERATOR_VERSION)


@kopf.on.cleanup()
def cleanup(**_: Any) -> None:
    """Drain the sync loop on operator shutdown."""
    logger.info("Pod identity operator shutting down")
    state.close()


@kopf.on.event("v1", "pods")
def pod_event(
    event: kopf.RawEvent,
    namespace: str | None,
    name: str | None,
    spec: kopf.Spec,
    **_: Any,
) -> None:
    """Request a pass when pods appear, move or disappear."""
    trigger = pod_trigger(event.get("type"), namespace, spec.get("nodeName"))
    if trigger is None:
        return
    logger.debug("Pod %s/%s: %s", namespace, name, trigger.value)
    state.enqueue(trigger)


@kopf.on.event("v1", "nodes")
def node_event(event: kopf.RawEvent, name: str | None, **_: Any) -> None:
    """Request a pass when a node is removed."""
    if event.get("type") == "DELETED":
        logger.info("Node %s deleted", name)
        state.enqueue(TriggerType.RESYNC)


@kopf.on.event(CRD_GROUP, CRD_VERSION, IDENTITY_PLURAL)
def identity_event(event: kopf.RawEvent, namespace: str | None, name: str | None, **_: Any) -> None:
    """Request a pass when an AzureIdentity changes."""
    if event.get("type"):
        logger.debug("AzureIdentity %s/%s changed", namespace, name)
        state.enqueue(TriggerType.IDENTITY_CHANGED)


@kopf.on.event(CRD_GROUP, CRD_VERSION, BINDING_PLURAL)
def binding_event(event: kopf.RawEvent, namespace: str | None, name: str | None, **_: Any) -> None:
    """Request a pass when an AzureIdentityBinding changes."""
    if event.get("type"):
        logger.debug("AzureIdentityBinding %s/%s changed", namespace, name)
        state.enqueue(TriggerType.BINDING_CHANGED)


def main() -> None:
    """Entry point for running the operator."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Kopf will be run via the CLI, but this allows direct invocation for testing
    logger.info("Starting pod identity operator...")
    logger.info("Use 'kopf run src/handlers.py --all-namespaces' to run the operator")
    sys.exit(0)


if __name__ == "__main__":
    main()
