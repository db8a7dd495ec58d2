"""Wait for a node to go down and come back Ready after a reboot."""
import logging
import threading
import time
from typing import Callable, Optional

from ..errors import NodePilotError
from ..models import NodeCondition, NodeReadyResult, Timings
from ..utils import ProgressSink, check_cancelled, safe_progress
from .probe import ScheduleProbe

logger = logging.getLogger("nodepilot.readiness")


class ReadinessWaiter:
    """Two-phase readiness poll: disconnect first (optional), then Ready."""

    def __init__(
        self,
        probe: ScheduleProbe,
        timings: Optional[Timings] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.probe = probe
        self.timings = timings or Timings()
        self.sleep = sleep
        self.clock = clock

    def wait_for_ready(
        self,
        node: str,
        timeout_seconds: float,
        wait_for_disconnect_first: bool = True,
        progress: Optional[ProgressSink] = None,
        cancel: Optional[threading.Event] = None,
    ) -> NodeReadyResult:
        """Block until the node reports Ready or the timeout runs out.

        Phase 1 waits at most disconnect_timeout for the node to stop being
        Ready. A node that never visibly disconnects only produces a warning.
        Phase 2 polls until Ready; probe errors there mean the node has not
        rejoined yet and are not fatal. The timeout covers both phases.

        Args:
            node: Node name
            timeout_seconds: Overall ceiling, measured from the call
            wait_for_disconnect_first: Run phase 1
            progress: Callback receiving human-readable status lines
            cancel: Cancellation token, checked at every poll

        Returns:
            NodeReadyResult with the elapsed time

        Raises:
            OperationCancelled: If the token is set while waiting
        """
        emit = safe_progress(progress)
        start = self.clock()

        if wait_for_disconnect_first:
            self._wait_for_disconnect(node, emit, cancel)

        emit("Waiting for node to come back online...")
        while True:
            elapsed = self.clock() - start
            if elapsed >= timeout_seconds:
                message = f"Timed out waiting for node after {int(timeout_seconds)}s"
                logger.error(f"{node}: {message}")
                emit(message)
                return NodeReadyResult(success=False, elapsed_seconds=elapsed, error=message)

            check_cancelled(cancel, f"Waiting for {node}")
            remaining = int(timeout_seconds - elapsed)
            try:
                condition = self.probe.node_ready_condition(node)
            except NodePilotError as e:
                logger.debug(f"{node} not reachable yet: {e}")
                emit(f"Waiting for node to rejoin cluster ({remaining}s remaining)")
            else:
                if condition == NodeCondition.READY:
                    logger.info(f"{node} is Ready after {elapsed:.1f}s")
                    emit(f"Node is Ready (took {int(elapsed)}s)")
                    return NodeReadyResult(success=True, elapsed_seconds=elapsed)
                emit(f"Node status: {condition.value} ({remaining}s remaining)")

            self.sleep(self.timings.ready_poll_interval)

    def _wait_for_disconnect(
        self, node: str, emit: ProgressSink, cancel: Optional[threading.Event]
    ) -> bool:
        emit("Waiting for node to begin rebooting...")
        phase_start = self.clock()

        while self.clock() - phase_start < self.timings.disconnect_timeout:
            check_cancelled(cancel, f"Waiting for {node}")
            try:
                condition = self.probe.node_ready_condition(node)
            except NodePilotError as e:
                # the API dropping the node is a disconnect too
                gone = not self.probe.node_exists(node)
                logger.debug(f"{node} probe failed during disconnect wait: {e}")
                emit("Node left the cluster, rebooting..." if gone else "Node is rebooting...")
                return True

            if condition != NodeCondition.READY:
                emit("Node is rebooting...")
                return True
            self.sleep(self.timings.disconnect_poll_interval)

        logger.warning(f"{node} never appeared to disconnect, continuing to wait")
        emit("Warning: Node didn't appear to disconnect, continuing to wait...")
        return False
