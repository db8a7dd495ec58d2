import threading

import pytest

from nodepilot.errors import RolloutInProgressError
from nodepilot.models import (
    DrainOptions,
    EvictionOutcome,
    FailurePolicy,
    NodeOperationResult,
    NodeState,
    OperationKind,
    OutcomeStatus,
    RollingNodeInfo,
    RolloutStatus,
    Timings,
)
from nodepilot.modules.lifecycle import NodeLifecycleOperation
from nodepilot.modules.rollout import RollingFleetOrchestrator, order_nodes
from nodepilot.tests.conftest import make_pod


def node(name, order=None):
    return RollingNodeInfo(hostname=name, address=name, selection_order=order)


class RecordingOperation:
    """Lifecycle stand-in: fails the nodes in `failing`, raises for `broken`."""

    def __init__(self, failing=(), broken=()):
        self.failing = set(failing)
        self.broken = set(broken)
        self.visited = []
        self.on_run = None

    def run(self, node, kind=OperationKind.REBOOT, options=None, progress=None, cancel=None):
        self.visited.append(node.hostname)
        if self.on_run:
            self.on_run(node)
        if node.hostname in self.broken:
            raise RuntimeError("boom")
        failed = node.hostname in self.failing
        progress("working")
        return NodeOperationResult(
            node=node.hostname,
            kind=kind,
            state=NodeState.FAILED if failed else NodeState.DONE,
            message=f"{node.hostname} {'failed' if failed else 'done'}",
        )


def test_order_nodes_is_stable():
    nodes = [node("a"), node("b", 2), node("c"), node("d", 1), node("e", 2), node("f")]
    assert [n.hostname for n in order_nodes(nodes)] == ["d", "b", "e", "a", "c", "f"]


def test_visits_nodes_in_selection_order():
    operation = RecordingOperation()
    orchestrator = RollingFleetOrchestrator(operation)

    run = orchestrator.run([node("w3"), node("w2", 2), node("w1", 1)])

    assert operation.visited == ["w1", "w2", "w3"]
    assert [n.hostname for n in run.nodes] == ["w1", "w2", "w3"]
    assert run.status == RolloutStatus.COMPLETED


def test_default_policy_is_continue():
    assert RollingFleetOrchestrator(RecordingOperation()).policy == FailurePolicy.CONTINUE


def test_continue_after_drain_failure(scheduler, node_control, clock, audit):
    scheduler.pods = [
        make_pod("web-1", node="w1", owner="ReplicaSet"),
        make_pod("stuck", node="w2"),
        make_pod("web-3", node="w3", owner="ReplicaSet"),
    ]
    scheduler.eviction_script["default/stuck"] = [EvictionOutcome.BLOCKED]
    operation = NodeLifecycleOperation(
        scheduler, node_control, timings=Timings(), audit=audit, sleep=clock.sleep, clock=clock
    )
    orchestrator = RollingFleetOrchestrator(operation, policy=FailurePolicy.CONTINUE)

    run = orchestrator.run(
        [node("w1"), node("w2"), node("w3")],
        options=DrainOptions(per_pod_timeout_seconds=4),
        kind=OperationKind.DRAIN,
    )

    assert [o.node.hostname for o in run.outcomes] == ["w1", "w2", "w3"]
    assert [o.status for o in run.outcomes] == [
        OutcomeStatus.SUCCEEDED, OutcomeStatus.FAILED, OutcomeStatus.SUCCEEDED
    ]
    assert run.status == RolloutStatus.COMPLETED
    assert run.outcomes[1].result.drain.failed_pods == ["default/stuck"]
    assert scheduler.nodes["w2"].unschedulable
    assert not scheduler.nodes["w1"].unschedulable
    assert not scheduler.nodes["w3"].unschedulable


def test_abort_skips_remaining_nodes():
    operation = RecordingOperation(failing={"w2"})
    orchestrator = RollingFleetOrchestrator(operation, policy=FailurePolicy.ABORT)

    run = orchestrator.run([node("w1"), node("w2"), node("w3"), node("w4")])

    assert operation.visited == ["w1", "w2"]
    assert run.status == RolloutStatus.ABORTED_ON_FAILURE
    assert [o.status for o in run.outcomes] == [
        OutcomeStatus.SUCCEEDED, OutcomeStatus.FAILED, OutcomeStatus.SKIPPED, OutcomeStatus.SKIPPED
    ]
    assert run.outcomes[2].message == "Skipped: rollout aborted after w2 failed"
    assert len(run.failed) == 1
    assert len(run.skipped) == 2


def test_unexpected_errors_never_escape():
    operation = RecordingOperation(broken={"w1"})

    run = RollingFleetOrchestrator(operation).run([node("w1"), node("w2")])

    assert run.outcomes[0].status == OutcomeStatus.FAILED
    assert run.outcomes[0].message == "Unexpected error: boom"
    assert run.outcomes[1].status == OutcomeStatus.SUCCEEDED
    assert run.status == RolloutStatus.COMPLETED


def test_cancel_skips_remaining_nodes():
    cancel = threading.Event()
    operation = RecordingOperation()
    operation.on_run = lambda n: cancel.set() if n.hostname == "w1" else None

    run = RollingFleetOrchestrator(operation).run([node("w1"), node("w2"), node("w3")], cancel=cancel)

    assert operation.visited == ["w1"]
    assert run.status == RolloutStatus.CANCELLED
    assert [o.status for o in run.outcomes] == [
        OutcomeStatus.SUCCEEDED, OutcomeStatus.SKIPPED, OutcomeStatus.SKIPPED
    ]
    assert run.outcomes[1].message == "Skipped: rollout cancelled"


def test_progress_is_prefixed_with_hostname(messages):
    RollingFleetOrchestrator(RecordingOperation()).run([node("w1")], progress=messages.append)

    assert "[1/1] reboot w1" in messages
    assert "w1: working" in messages
    assert messages[-1] == "Rolling reboot Completed: 1 succeeded, 0 failed, 0 skipped"


def test_rejects_concurrent_runs():
    operation = RecordingOperation()
    orchestrator = RollingFleetOrchestrator(operation)
    errors = []

    def nested(n):
        with pytest.raises(RolloutInProgressError):
            orchestrator.run([node("other")])
        errors.append(n.hostname)

    operation.on_run = nested
    run = orchestrator.run([node("w1")])

    assert errors == ["w1"]
    assert run.status == RolloutStatus.COMPLETED
    assert operation.visited == ["w1"]


def test_run_to_dict():
    run = RollingFleetOrchestrator(RecordingOperation(failing={"w1"})).run([node("w1")], kind=OperationKind.DRAIN)

    data = run.to_dict()

    assert data["kind"] == "drain"
    assert data["policy"] == "continue"
    assert data["order"] == ["w1"]
    assert data["outcomes"][0]["status"] == "failed"
