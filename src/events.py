"""Status event emission.

The reconciler hands events to an EventReporter, which buffers them and
forwards them to a sink from a background thread so that a slow or failing
API server never stalls a pass.
"""

import logging
import queue
import threading
import time
import uuid

from kubernetes import client as k8s_client

from collaborators import EventSink
from constants import EVENT_COMPONENT
from metrics import EVENTS_DROPPED, EVENTS_TOTAL
from models import Event, EventSeverity
from utils import now_iso, truncate

logger = logging.getLogger(__name__)

_STOP = object()


class EventReporter(EventSink):
    """Bounded, fire-and-forget event buffer in front of a sink."""

    def __init__(self, sink: EventSink, max_queued: int = 1000) -> None:
        """Initialize the reporter and start its worker.

        Args:
            sink: Destination of the events
            max_queued: Events buffered before new ones are dropped
        """
        self._sink = sink
        self._queue: queue.Queue[object] = queue.Queue(maxsize=max_queued)
        self._stopping = threading.Event()
        self._abandon = threading.Event()
        self._worker = threading.Thread(
            target=self._run, name="event-reporter", daemon=True
        )
        self._worker.start()

    def record(self, severity: EventSeverity, reason: str, message: str) -> None:
        """Queue an event; never blocks."""
        if self._stopping.is_set():
            logger.debug("Event reporter stopped, dropping event %s", reason)
            return
        try:
            self._queue.put_nowait(Event(severity, reason, message))
        except queue.Full:
            EVENTS_DROPPED.inc()
            logger.warning("Event buffer full, dropping event %s: %s", reason, message)

    def flush(self, timeout: float | None = None) -> bool:
        """Wait until every queued event has been handed to the sink.

        Returns:
            False if the timeout expired first
        """
        with self._queue.all_tasks_done:
            return self._queue.all_tasks_done.wait_for(
                lambda: self._queue.unfinished_tasks == 0, timeout
            )

    def stop(self, timeout: float | None = None) -> None:
        """Deliver the queued events and stop the worker.

        Never waits longer than timeout overall. If the buffer is still
        full when it expires, the worker exits after its current event and
        the rest are discarded.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        self._stopping.set()
        try:
            self._queue.put(_STOP, timeout=timeout)
        except queue.Full:
            logger.warning(
                "Event buffer still full at shutdown, discarding %d event(s)",
                self._queue.qsize(),
            )
            self._abandon.set()
        remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
        self._worker.join(remaining)

    def _run(self) -> None:
        while not self._abandon.is_set():
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self._deliver(item)  # type: ignore[arg-type]
            finally:
                self._queue.task_done()

    def _deliver(self, event: Event) -> None:
        try:
            self._sink.record(event.severity, event.reason, event.message)
            EVENTS_TOTAL.labels(type=event.severity.value, reason=event.reason).inc()
        except Exception as e:
            logger.error(f"Failed to emit event {event.reason}: {e}")


class KubernetesEventSink(EventSink):
    """Posts core/v1 Events about the operator's own pod."""

    def __init__(
        self,
        core_api: k8s_client.CoreV1Api,
        namespace: str,
        pod_name: str,
    ) -> None:
        self._core_api = core_api
        self._namespace = namespace
        self._involved_object = k8s_client.V1ObjectReference(
            api_version="v1", kind="Pod", name=pod_name, namespace=namespace
        )

    def record(self, severity: EventSeverity, reason: str, message: str) -> None:
        timestamp = now_iso()
        event = k8s_client.CoreV1Event(
            metadata=k8s_client.V1ObjectMeta(
                name=f"{self._involved_object.name}.{uuid.uuid4().hex[:16]}",
                namespace=self._namespace,
            ),
            involved_object=self._involved_object,
            type=severity.value,
            reason=reason,
            message=truncate(message),
            source=k8s_client.V1EventSource(component=EVENT_COMPONENT),
            first_timestamp=timestamp,
            last_timestamp=timestamp,
            count=1,
        )
        self._core_api.create_namespaced_event(self._namespace, event)
