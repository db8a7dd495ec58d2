"""Rolling operations across a fleet of nodes, strictly one node at a time."""
import logging
import threading
from typing import List, Optional

from ..errors import RolloutInProgressError
from ..models import (
    DrainOptions,
    FailurePolicy,
    NodeOutcome,
    OperationKind,
    OutcomeStatus,
    RollingNodeInfo,
    RolloutRun,
    RolloutStatus,
)
from ..utils import ProgressSink, safe_progress
from .lifecycle import NodeLifecycleOperation

logger = logging.getLogger("nodepilot.rollout")


def order_nodes(nodes: List[RollingNodeInfo]) -> List[RollingNodeInfo]:
    """Execution order: explicit selection_order ascending, then the rest in input order."""
    return sorted(
        nodes,
        key=lambda n: (n.selection_order is None, n.selection_order if n.selection_order is not None else 0),
    )


class RollingFleetOrchestrator:
    """Sequences NodeLifecycleOperation over an ordered list of nodes.

    With the default ``continue`` policy a failed node is recorded and the
    rollout moves on; ``abort`` stops at the first failure and marks the
    remaining nodes as skipped. Per-node problems never escape run().
    """

    def __init__(
        self,
        operation: NodeLifecycleOperation,
        policy: FailurePolicy = FailurePolicy.CONTINUE,
    ):
        self.operation = operation
        self.policy = FailurePolicy(policy)
        self._running = threading.Lock()

    def run(
        self,
        nodes: List[RollingNodeInfo],
        options: Optional[DrainOptions] = None,
        kind: OperationKind = OperationKind.REBOOT,
        progress: Optional[ProgressSink] = None,
        cancel: Optional[threading.Event] = None,
    ) -> RolloutRun:
        """Run the lifecycle operation on every node in order.

        Args:
            nodes: Nodes to process
            options: Drain options applied to every node
            kind: drain or reboot
            progress: Callback receiving "<node>: <message>" progress lines
            cancel: Cancellation token; remaining nodes are skipped once set

        Returns:
            RolloutRun with one outcome per node

        Raises:
            RolloutInProgressError: If this orchestrator is already running
        """
        if not self._running.acquire(blocking=False):
            raise RolloutInProgressError("A rollout is already in progress")
        try:
            return self._run(nodes, options, kind, safe_progress(progress), cancel)
        finally:
            self._running.release()

    def _run(
        self,
        nodes: List[RollingNodeInfo],
        options: Optional[DrainOptions],
        kind: OperationKind,
        emit: ProgressSink,
        cancel: Optional[threading.Event],
    ) -> RolloutRun:
        ordered = order_nodes(nodes)
        run = RolloutRun(nodes=ordered, kind=kind, policy=self.policy)
        total = len(ordered)
        stop_reason = None

        logger.info(
            f"Rolling {kind.value} of {total} nodes ({self.policy.value} on failure): "
            f"{', '.join(n.hostname for n in ordered)}"
        )

        for idx, node in enumerate(ordered, 1):
            if stop_reason is None and cancel is not None and cancel.is_set():
                stop_reason = "Skipped: rollout cancelled"
                run.status = RolloutStatus.CANCELLED

            if stop_reason is not None:
                run.outcomes.append(NodeOutcome(node=node, status=OutcomeStatus.SKIPPED, message=stop_reason))
                emit(f"{node.hostname}: skipped")
                continue

            emit(f"[{idx}/{total}] {kind.value} {node.hostname}")
            outcome = self._run_node(node, options, kind, emit, cancel)
            run.outcomes.append(outcome)

            if outcome.status != OutcomeStatus.FAILED:
                continue
            if cancel is not None and cancel.is_set():
                stop_reason = "Skipped: rollout cancelled"
                run.status = RolloutStatus.CANCELLED
            elif self.policy == FailurePolicy.ABORT:
                stop_reason = f"Skipped: rollout aborted after {node.hostname} failed"
                run.status = RolloutStatus.ABORTED_ON_FAILURE

        if run.status == RolloutStatus.IN_PROGRESS:
            run.status = RolloutStatus.COMPLETED

        summary = (
            f"Rolling {kind.value} {run.status.value}: {len(run.succeeded)} succeeded, "
            f"{len(run.failed)} failed, {len(run.skipped)} skipped"
        )
        logger.info(summary)
        emit(summary)
        return run

    def _run_node(
        self,
        node: RollingNodeInfo,
        options: Optional[DrainOptions],
        kind: OperationKind,
        emit: ProgressSink,
        cancel: Optional[threading.Event],
    ) -> NodeOutcome:
        def node_progress(message: str) -> None:
            emit(f"{node.hostname}: {message}")

        try:
            result = self.operation.run(node, kind, options=options, progress=node_progress, cancel=cancel)
        except Exception as e:
            logger.error(f"Unexpected error during {kind.value} of {node.hostname}: {e}", exc_info=True)
            return NodeOutcome(node=node, status=OutcomeStatus.FAILED, message=f"Unexpected error: {e}")

        status = OutcomeStatus.SUCCEEDED if result.success else OutcomeStatus.FAILED
        return NodeOutcome(node=node, status=status, message=result.message, result=result)
