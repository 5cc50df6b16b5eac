"""Trigger-driven reconciliation loop."""

import logging
import queue
import threading
from enum import Enum

from metrics import TRIGGERS_COALESCED, TRIGGERS_TOTAL
from models import SnapshotError, TriggerType
from reconciler import PassResult, Reconciler

logger = logging.getLogger(__name__)

# Wakes the loop without requesting a pass
_WAKE = object()


class LoopState(Enum):
    """Sync loop state."""

    IDLE = "Idle"
    RECONCILING = "Reconciling"


class SyncLoop:
    """Single worker consuming reconciliation triggers.

    Producers call enqueue() from watch handlers; the loop runs one full
    pass per trigger, folding triggers that queued up during a pass into
    the next one. stop() lets the in-flight pass finish before the loop
    exits.
    """

    def __init__(
        self,
        reconciler: Reconciler,
        queue_size: int = 100,
        resync_interval: float = 0.0,
        poll_interval: float = 1.0,
    ) -> None:
        """Initialize the loop.

        Args:
            reconciler: Runs the passes
            queue_size: Triggers buffered before further ones are coalesced
            resync_interval: Idle seconds after which a resync pass runs
                (0 disables periodic resync)
            poll_interval: How often an idle loop checks for shutdown
        """
        self._reconciler = reconciler
        self._queue: queue.Queue[object] = queue.Queue(maxsize=queue_size)
        self._resync_interval = resync_interval
        self._poll_interval = poll_interval
        self._stop = threading.Event()
        self._condition = threading.Condition()
        self._state = LoopState.IDLE
        self._passes = 0
        self._last_result: PassResult | None = None
        self._thread: threading.Thread | None = None

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def passes(self) -> int:
        """Number of passes finished, including aborted ones."""
        return self._passes

    @property
    def last_result(self) -> PassResult | None:
        return self._last_result

    def enqueue(self, trigger: TriggerType) -> bool:
        """Request a pass without blocking.

        Returns:
            False if the queue was full; a pass is already pending then and
            will observe the change that caused this trigger.
        """
        TRIGGERS_TOTAL.labels(trigger=trigger.value).inc()
        try:
            self._queue.put_nowait(trigger)
        except queue.Full:
            TRIGGERS_COALESCED.inc()
            logger.debug("Trigger queue full, coalescing %s", trigger.value)
            return False
        return True

    def start(self) -> threading.Thread:
        """Run the loop on a daemon thread."""
        self._thread = threading.Thread(target=self.run, name="sync-loop", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, timeout: float | None = None) -> None:
        """Stop scheduling passes and wait for the in-flight one to finish."""
        logger.info("Stopping sync loop")
        self._stop.set()
        try:
            self._queue.put_nowait(_WAKE)
        except queue.Full:
            pass
        if self._thread is not None:
            self._thread.join(timeout)

    def wait_for_passes(self, count: int, timeout: float | None = None) -> bool:
        """Block until at least count passes have finished."""
        with self._condition:
            return self._condition.wait_for(lambda: self._passes >= count, timeout)

    def run(self) -> None:
        """Consume triggers until stopped."""
        logger.info("Sync loop started")
        while not self._stop.is_set():
            trigger = self._next_trigger()
            if trigger is not None:
                self._run_pass(trigger)
        logger.info("Sync loop stopped after %d passes", self._passes)

    def _next_trigger(self) -> TriggerType | None:
        """Wait for a trigger and drain the ones queued behind it."""
        timeout = self._resync_interval if self._resync_interval > 0 else self._poll_interval
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            if self._resync_interval > 0 and not self._stop.is_set():
                TRIGGERS_TOTAL.labels(trigger=TriggerType.RESYNC.value).inc()
                return TriggerType.RESYNC
            return None

        coalesced = 0
        while True:
            try:
                extra = self._queue.get_nowait()
            except queue.Empty:
                break
            if extra is not _WAKE:
                coalesced += 1
        if coalesced:
            TRIGGERS_COALESCED.inc(coalesced)
            logger.debug("Coalesced %d trigger(s) into the next pass", coalesced)

        if self._stop.is_set() or item is _WAKE:
            return None
        return item  # type: ignore[return-value]

    def _run_pass(self, trigger: TriggerType) -> None:
        self._state = LoopState.RECONCILING
        result: PassResult | None = None
        try:
            result = self._reconciler.reconcile(trigger)
        except SnapshotError as e:
            logger.error(f"Reconciliation pass aborted, waiting for next trigger: {e}")
        except Exception:
            logger.exception("Unexpected error during reconciliation pass")
        finally:
            with self._condition:
                self._passes += 1
                if result is not None:
                    self._last_result = result
                self._state = LoopState.IDLE
                self._condition.notify_all()
