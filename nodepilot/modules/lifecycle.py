"""Per-node lifecycle: cordon, drain, reboot, wait for Ready, uncordon."""
import logging
import threading
import time
from typing import Callable, Optional

from ..errors import AdmissionBlocked, NodePilotError, PhaseTimeout
from ..models import (
    DrainOptions,
    NodeOperationResult,
    NodeState,
    OperationKind,
    RollingNodeInfo,
    Timings,
)
from ..utils import ProgressSink, check_cancelled, safe_progress
from .audit import AuditLog
from .cordon import CordonController
from .eviction import EvictionEngine
from .nodecontrol import NodeControl
from .probe import ScheduleProbe
from .readiness import ReadinessWaiter
from .scheduler import SchedulerApi

logger = logging.getLogger("nodepilot.lifecycle")


class _NodeFailed(Exception):
    """Internal: stop the state machine with a message."""


class NodeLifecycleOperation:
    """
    Runs one node through Idle -> Cordoning -> Draining -> AwaitingExternalReboot
    -> WaitingReady -> Uncordoning -> Done, or into Failed from any step.

    A node that fails after being cordoned is left cordoned; re-admitting a
    partially drained or unhealthy node is for the operator to decide.
    """

    def __init__(
        self,
        scheduler: SchedulerApi,
        node_control: NodeControl,
        options: Optional[DrainOptions] = None,
        timings: Optional[Timings] = None,
        audit: Optional[AuditLog] = None,
        pdb_precheck: bool = True,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the operation.

        Args:
            scheduler: Scheduler API adapter
            node_control: Node control adapter used for the reboot step
            options: Default drain options, can be overridden per run
            timings: Poll intervals and backoffs
            audit: Audit log, in-memory only if omitted
            pdb_precheck: Look at PodDisruptionBudgets before cordoning
            sleep: Sleep function, replaced in tests
            clock: Monotonic clock, replaced in tests
        """
        self.options = options or DrainOptions()
        self.timings = timings or Timings()
        self.audit = audit or AuditLog()
        self.pdb_precheck = pdb_precheck
        self.clock = clock
        self.node_control = node_control

        self.probe = ScheduleProbe(scheduler)
        self.cordon_controller = CordonController(scheduler)
        self.eviction = EvictionEngine(scheduler, self.timings, sleep=sleep, audit=self.audit)
        self.waiter = ReadinessWaiter(self.probe, self.timings, sleep=sleep, clock=clock)

    def run(
        self,
        node: RollingNodeInfo,
        kind: OperationKind = OperationKind.REBOOT,
        options: Optional[DrainOptions] = None,
        progress: Optional[ProgressSink] = None,
        cancel: Optional[threading.Event] = None,
    ) -> NodeOperationResult:
        """Run the lifecycle for a single node.

        Never raises for operational failures; they end in the Failed state
        with an explanation in the result message.

        Args:
            node: Node to operate on; hostname is the Kubernetes node name,
                address is what node control talks to
            kind: drain (no reboot) or reboot
            options: Drain options for this run
            progress: Callback receiving human-readable progress lines
            cancel: Cancellation token

        Returns:
            NodeOperationResult in state Done or Failed
        """
        options = options or self.options
        emit = safe_progress(progress)
        name = node.hostname
        result = NodeOperationResult(
            node=name, kind=kind, state=NodeState.IDLE, message='', states=[NodeState.IDLE]
        )
        start = self.clock()
        cordoned = False

        logger.info(f"Starting {kind.value} of {name} ({node.address})")
        try:
            self._pre_check(name, options, result, emit)

            self._enter(result, NodeState.CORDONING, emit)
            check_cancelled(cancel, f"{kind.value.capitalize()} of {name}")
            cordon = self.cordon_controller.cordon(name)
            self.audit.record("cordon", name, "success" if cordon.success else "failed", error=cordon.error)
            if not cordon.success:
                raise _NodeFailed(f"Cordon failed: {cordon.error}")
            cordoned = True

            self._enter(result, NodeState.DRAINING, emit)
            drain = self.eviction.drain(name, options, progress=emit, cancel=cancel)
            result.drain = drain
            self.audit.record(
                "drain", name, "success" if drain.success else "failed",
                evicted=drain.evicted_count,
                failed_pods=drain.failed_pods,
                force_deleted_pods=drain.force_deleted_pods,
            )
            if not drain.success:
                raise _NodeFailed(
                    f"Drain failed: {len(drain.failed_pods)} pods could not be evicted "
                    f"({', '.join(drain.failed_pods)})"
                )

            if kind == OperationKind.REBOOT:
                self._reboot(node, options, result, emit, cancel)

            if options.uncordon_after_reboot:
                self._enter(result, NodeState.UNCORDONING, emit)
                uncordon = self.cordon_controller.uncordon(name)
                self.audit.record("uncordon", name, "success" if uncordon.success else "failed", error=uncordon.error)
                if uncordon.success:
                    cordoned = False
                else:
                    # the node itself is fine, it just stays out of scheduling
                    result.warnings.append(f"Uncordon failed: {uncordon.error}")

        except (_NodeFailed, NodePilotError) as e:
            message = str(e)
            if cordoned:
                message += "; node left cordoned"
            self._fail(result, message, emit)
        else:
            self._enter(result, NodeState.DONE, emit)
            result.message = self._done_message(result, cordoned)
            emit(result.message)
            logger.info(result.message)
        finally:
            result.elapsed_seconds = self.clock() - start

        self.audit.record(kind.value, name, "success" if result.success else "failed", message=result.message)
        return result

    def _pre_check(self, name: str, options: DrainOptions, result: NodeOperationResult, emit: ProgressSink) -> None:
        """Advisory PDB check; only refuses to start when strict_pdb_check is set."""
        if not (self.pdb_precheck or options.strict_pdb_check):
            return
        try:
            summary = self.probe.pdb_health()
            blocking = self.probe.blocking_pdbs_for_node(name, summary)
        except NodePilotError as e:
            if options.strict_pdb_check:
                raise
            logger.warning(f"PDB pre-check for {name} failed: {e}")
            result.warnings.append(f"PDB pre-check failed: {e}")
            return

        result.pdb_summary = summary.summary()
        emit(f"PDB check: {result.pdb_summary}")
        if not blocking:
            return

        names = ', '.join(f"{p.namespace}/{p.name}" for p in blocking)
        if options.strict_pdb_check:
            raise AdmissionBlocked(f"Refusing to start: PDBs would block drain of {name} ({names})")
        warning = f"PDBs may block drain of {name}: {names}"
        logger.warning(warning)
        result.warnings.append(warning)
        emit(f"Warning: {warning}")

    def _reboot(
        self,
        node: RollingNodeInfo,
        options: DrainOptions,
        result: NodeOperationResult,
        emit: ProgressSink,
        cancel: Optional[threading.Event],
    ) -> None:
        name = node.hostname
        self._enter(result, NodeState.AWAITING_EXTERNAL_REBOOT, emit)
        check_cancelled(cancel, f"Reboot of {name}")
        reboot = self.node_control.reboot(node.address or name)
        self.audit.record("reboot_request", name, "success" if reboot.success else "failed", output=reboot.output)
        if not reboot.success:
            raise _NodeFailed(f"Reboot failed: {reboot.output}")
        emit(f"Reboot requested for {name}")

        if not options.wait_for_node_ready:
            return

        self._enter(result, NodeState.WAITING_READY, emit)
        ready = self.waiter.wait_for_ready(
            name,
            options.post_reboot_timeout_seconds,
            wait_for_disconnect_first=True,
            progress=emit,
            cancel=cancel,
        )
        result.ready = ready
        if not ready.success:
            raise PhaseTimeout(ready.error or f"{name} did not become Ready", ready.elapsed_seconds)

    def _enter(self, result: NodeOperationResult, state: NodeState, emit: ProgressSink) -> None:
        logger.debug(f"{result.node}: {result.state.value} -> {state.value}")
        result.state = state
        result.states.append(state)
        emit(f"{state.value}")

    def _fail(self, result: NodeOperationResult, message: str, emit: ProgressSink) -> None:
        failed_in = result.state.value
        self._enter(result, NodeState.FAILED, emit)
        result.message = f"{result.kind.value.capitalize()} of {result.node} failed during {failed_in}: {message}"
        logger.error(result.message)
        emit(result.message)

    def _done_message(self, result: NodeOperationResult, still_cordoned: bool) -> str:
        evicted = result.drain.evicted_count if result.drain else 0
        if result.kind == OperationKind.REBOOT:
            if result.ready:
                message = f"{result.node} rebooted and Ready in {int(result.ready.elapsed_seconds)}s"
            else:
                message = f"{result.node} reboot requested (readiness not checked)"
        else:
            message = f"{result.node} drained"
        message += f", {evicted} pods evicted"
        if result.drain and result.drain.force_deleted_pods:
            message += f" ({len(result.drain.force_deleted_pods)} force-deleted)"
        if still_cordoned:
            message += "; node still cordoned"
        return message
