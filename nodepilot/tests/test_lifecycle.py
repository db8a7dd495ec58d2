import threading

import pytest

from nodepilot.errors import TransientApiError
from nodepilot.models import (
    DrainOptions,
    EvictionOutcome,
    NodeState,
    OperationKind,
    RollingNodeInfo,
    Timings,
)
from nodepilot.modules.lifecycle import NodeLifecycleOperation
from nodepilot.modules.nodecontrol import NodeControl
from nodepilot.tests.conftest import FakeRunner, make_node, make_pdb, make_pod

W1 = RollingNodeInfo(hostname="w1", address="10.0.0.1")


@pytest.fixture
def cluster(scheduler):
    scheduler.pods = [make_pod("web", owner="ReplicaSet"), make_pod("ds", owner="DaemonSet")]
    # Ready, then down for one poll, then back
    scheduler.node_script["w1"] = [make_node("w1"), make_node("w1", ready="False"), make_node("w1")]
    return scheduler


def operation_for(scheduler, node_control, clock, audit, **kwargs):
    return NodeLifecycleOperation(
        scheduler, node_control, timings=Timings(), audit=audit, sleep=clock.sleep, clock=clock, **kwargs
    )


def test_reboot_runs_every_state(cluster, node_control, runner, clock, audit, messages):
    operation = operation_for(cluster, node_control, clock, audit)

    result = operation.run(W1, OperationKind.REBOOT, progress=messages.append)

    assert result.success
    assert result.states == [
        NodeState.IDLE,
        NodeState.CORDONING,
        NodeState.DRAINING,
        NodeState.AWAITING_EXTERNAL_REBOOT,
        NodeState.WAITING_READY,
        NodeState.UNCORDONING,
        NodeState.DONE,
    ]
    assert result.message == "w1 rebooted and Ready in 2s, 1 pods evicted"
    assert result.drain.evicted_count == 1
    assert result.ready.success
    assert result.pdb_summary == "No PDBs configured"
    assert runner.calls[0][0] == ["talosctl", "reboot", "--nodes", "10.0.0.1", "--wait=false"]
    assert cluster.patches == [("w1", False), ("w1", True)]
    assert not cluster.nodes["w1"].unschedulable
    assert "Cordoning" in messages
    assert "Reboot requested for w1" in messages
    assert messages[-1] == result.message


def test_drain_kind_skips_reboot(cluster, node_control, runner, clock, audit):
    result = operation_for(cluster, node_control, clock, audit).run(W1, OperationKind.DRAIN)

    assert result.success
    assert result.states == [
        NodeState.IDLE, NodeState.CORDONING, NodeState.DRAINING, NodeState.UNCORDONING, NodeState.DONE
    ]
    assert result.message == "w1 drained, 1 pods evicted"
    assert runner.calls == []


def test_drain_failure_leaves_node_cordoned(cluster, node_control, runner, clock, audit):
    cluster.pods.append(make_pod("pod-c"))
    cluster.eviction_script["default/pod-c"] = [EvictionOutcome.BLOCKED]
    options = DrainOptions(per_pod_timeout_seconds=4, force_delete_unmanaged=False)

    result = operation_for(cluster, node_control, clock, audit).run(W1, options=options)

    assert result.state == NodeState.FAILED
    assert result.states[-2:] == [NodeState.DRAINING, NodeState.FAILED]
    assert result.message == (
        "Reboot of w1 failed during Draining: Drain failed: 1 pods could not be evicted "
        "(default/pod-c); node left cordoned"
    )
    assert result.drain.failed_pods == ["default/pod-c"]
    assert cluster.nodes["w1"].unschedulable
    assert runner.calls == []


def test_cordon_failure(cluster, node_control, clock, audit):
    cluster.patch_error = TransientApiError("patch node w1: 503 Service Unavailable", status=503)

    result = operation_for(cluster, node_control, clock, audit).run(W1)

    assert result.state == NodeState.FAILED
    assert result.message == (
        "Reboot of w1 failed during Cordoning: Cordon failed: patch node w1: 503 Service Unavailable"
    )
    assert cluster.evictions == []


def test_reboot_request_failure(cluster, clock, audit):
    runner = FakeRunner(returncode=1, stderr="connection refused")
    node_control = NodeControl(talosctl="talosctl", context="", runner=runner)

    result = operation_for(cluster, node_control, clock, audit).run(W1)

    assert result.state == NodeState.FAILED
    assert result.message == (
        "Reboot of w1 failed during AwaitingExternalReboot: Reboot failed: talosctl failed: "
        "connection refused; node left cordoned"
    )
    assert cluster.nodes["w1"].unschedulable


def test_ready_timeout_leaves_node_cordoned(cluster, node_control, clock, audit):
    cluster.node_script["w1"] = [make_node("w1", ready="False")]
    options = DrainOptions(post_reboot_timeout_seconds=30)

    result = operation_for(cluster, node_control, clock, audit).run(W1, options=options)

    assert result.state == NodeState.FAILED
    assert result.message == (
        "Reboot of w1 failed during WaitingReady: Timed out waiting for node after 30s; node left cordoned"
    )
    assert not result.ready.success
    assert cluster.nodes["w1"].unschedulable


def test_uncordon_failure_is_only_a_warning(cluster, node_control, clock, audit, monkeypatch):
    patch = cluster.patch_node_schedulable

    def failing_uncordon(name, schedulable):
        if schedulable:
            raise TransientApiError("patch node w1: 500 Internal Server Error", status=500)
        patch(name, schedulable)

    monkeypatch.setattr(cluster, "patch_node_schedulable", failing_uncordon)

    result = operation_for(cluster, node_control, clock, audit).run(W1)

    assert result.success
    assert result.warnings == ["Uncordon failed: patch node w1: 500 Internal Server Error"]
    assert result.message.endswith("; node still cordoned")


def test_no_wait_for_ready(cluster, node_control, clock, audit):
    options = DrainOptions(wait_for_node_ready=False)

    result = operation_for(cluster, node_control, clock, audit).run(W1, options=options)

    assert result.success
    assert NodeState.WAITING_READY not in result.states
    assert result.ready is None
    assert result.message == "w1 reboot requested (readiness not checked), 1 pods evicted"


def test_stays_cordoned_without_uncordon_after_reboot(cluster, node_control, clock, audit):
    options = DrainOptions(uncordon_after_reboot=False)

    result = operation_for(cluster, node_control, clock, audit).run(W1, OperationKind.DRAIN, options=options)

    assert result.success
    assert NodeState.UNCORDONING not in result.states
    assert result.message == "w1 drained, 1 pods evicted; node still cordoned"
    assert cluster.nodes["w1"].unschedulable


def test_blocking_pdb_is_advisory_by_default(cluster, node_control, clock, audit):
    cluster.pdbs = [make_pdb("web-pdb", allowed=0)]

    result = operation_for(cluster, node_control, clock, audit).run(W1, OperationKind.DRAIN)

    assert result.success
    assert result.warnings == ["PDBs may block drain of w1: default/web-pdb"]
    assert result.pdb_summary == "1 PDBs, 1 would block drain"


def test_strict_pdb_check_refuses_to_start(cluster, node_control, clock, audit):
    cluster.pdbs = [make_pdb("web-pdb", allowed=0)]
    options = DrainOptions(strict_pdb_check=True)

    result = operation_for(cluster, node_control, clock, audit).run(W1, options=options)

    assert result.state == NodeState.FAILED
    assert result.states == [NodeState.IDLE, NodeState.FAILED]
    assert "Refusing to start: PDBs would block drain of w1 (default/web-pdb)" in result.message
    assert cluster.patches == []


def test_precheck_can_be_disabled(cluster, node_control, clock, audit):
    cluster.pdbs = [make_pdb("web-pdb", allowed=0)]

    result = operation_for(cluster, node_control, clock, audit, pdb_precheck=False).run(W1, OperationKind.DRAIN)

    assert result.success
    assert result.warnings == []
    assert result.pdb_summary is None


def test_audit_trail(cluster, node_control, clock, audit):
    operation_for(cluster, node_control, clock, audit).run(W1)

    assert [e["action"] for e in audit.entries] == ["cordon", "drain", "reboot_request", "uncordon", "reboot"]
    assert all(e["target"] == "w1" for e in audit.entries)
    assert audit.entries[-1]["result"] == "success"


def test_cancelled_before_cordon(cluster, node_control, clock, audit):
    cancel = threading.Event()
    cancel.set()

    result = operation_for(cluster, node_control, clock, audit).run(W1, cancel=cancel)

    assert result.state == NodeState.FAILED
    assert result.message == "Reboot of w1 failed during Cordoning: Reboot of w1 cancelled"
    assert cluster.patches == []


def test_elapsed_time_is_recorded(cluster, node_control, clock, audit):
    result = operation_for(cluster, node_control, clock, audit).run(W1)

    # 0.5s after the eviction plus one 2s disconnect poll
    assert result.elapsed_seconds == 2.5
