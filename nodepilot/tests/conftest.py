import subprocess

import pytest

from nodepilot.errors import ResourceNotFound, TransientApiError
from nodepilot.models import (
    EvictionOutcome,
    EvictionResponse,
    NodeRecord,
    NodeRole,
    PdbRecord,
    PodRecord,
    Timings,
)
from nodepilot.modules.audit import AuditLog
from nodepilot.modules.nodecontrol import NodeControl


class FakeScheduler:
    """In-memory stand-in for SchedulerApi.

    eviction_script maps "namespace/name" to a list of outcomes returned one
    per call; the last one repeats. node_script does the same for get_node
    with NodeRecords or exceptions.
    """

    def __init__(self, pods=None, nodes=None, pdbs=None):
        self.pods = list(pods or [])
        self.nodes = {n.name: n for n in nodes or []}
        self.pdbs = list(pdbs or [])
        self.eviction_script = {}
        self.node_script = {}
        self.delete_errors = set()
        self.patch_error = None
        self.evictions = []
        self.deleted = []
        self.patches = []

    def list_pods(self, node=None):
        return [p for p in self.pods if node is None or p.node_name == node]

    def list_pdbs(self):
        return list(self.pdbs)

    def list_nodes(self):
        return list(self.nodes.values())

    def get_node(self, name):
        script = self.node_script.get(name)
        if script:
            item = script.pop(0) if len(script) > 1 else script[0]
            if isinstance(item, Exception):
                raise item
            return item
        if name not in self.nodes:
            raise ResourceNotFound(f"get node {name}: not found")
        return self.nodes[name]

    def patch_node_schedulable(self, name, schedulable):
        if self.patch_error is not None:
            raise self.patch_error
        if name not in self.nodes:
            raise ResourceNotFound(f"patch node {name}: not found")
        self.nodes[name].unschedulable = not schedulable
        self.patches.append((name, schedulable))

    def evict_pod(self, namespace, name):
        key = f"{namespace}/{name}"
        self.evictions.append(key)
        script = self.eviction_script.get(key)
        if script:
            outcome = script.pop(0) if len(script) > 1 else script[0]
        else:
            outcome = EvictionOutcome.EVICTED
        if outcome in (EvictionOutcome.EVICTED, EvictionOutcome.NOT_FOUND):
            self._remove(key)
        return EvictionResponse(outcome, f"scripted {outcome.value}")

    def delete_pod(self, namespace, name, grace_period_seconds=0):
        key = f"{namespace}/{name}"
        if key in self.delete_errors:
            raise TransientApiError(f"delete pod {key}: 500 Internal Server Error", status=500)
        self.deleted.append((key, grace_period_seconds))
        self._remove(key)

    def _remove(self, key):
        self.pods = [p for p in self.pods if p.key != key]


class FakeClock:
    """Monotonic clock that only moves when sleep() is called."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class FakeRunner:
    """subprocess.run replacement recording talosctl invocations."""

    def __init__(self, returncode=0, stdout="", stderr="", error=None):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.error = error
        self.calls = []

    def __call__(self, cmd, **kwargs):
        self.calls.append((cmd, kwargs))
        if self.error is not None:
            raise self.error
        return subprocess.CompletedProcess(cmd, self.returncode, stdout=self.stdout, stderr=self.stderr)


def make_pod(name, namespace="default", node="w1", owner=None, empty_dir=False, mirror=False, **kwargs):
    return PodRecord(
        namespace=namespace,
        name=name,
        node_name=node,
        owner_kinds=[owner] if owner else [],
        annotations={"kubernetes.io/config.mirror": "abc"} if mirror else {},
        has_empty_dir=empty_dir,
        **kwargs,
    )


def make_node(name, ready="True", address=None, role=NodeRole.WORKER):
    conditions = {"Ready": ready} if ready is not None else {}
    return NodeRecord(name=name, address=address, role=role, conditions=conditions)


def make_pdb(name, namespace="default", allowed=1, expected=1):
    return PdbRecord(
        namespace=namespace,
        name=name,
        current_healthy=expected,
        desired_healthy=expected,
        disruptions_allowed=allowed,
        expected_pods=expected,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def timings():
    return Timings()


@pytest.fixture
def scheduler():
    return FakeScheduler(nodes=[make_node("w1"), make_node("w2"), make_node("w3")])


@pytest.fixture
def runner():
    return FakeRunner(stdout="ok")


@pytest.fixture
def node_control(runner):
    return NodeControl(talosctl="talosctl", context="", timeout=30, runner=runner)


@pytest.fixture
def audit():
    return AuditLog()


@pytest.fixture
def messages():
    """Collects progress lines; pass messages.append as the sink."""
    return []


@pytest.fixture
def fast_settings(tmp_path, monkeypatch):
    """Settings file with zero waits; default settings locations are hidden."""
    from nodepilot.modules import settings as settings_module

    monkeypatch.setattr(settings_module, "DEFAULT_SETTINGS_PATHS", [tmp_path / "absent.yaml"])
    path = tmp_path / "settings.yaml"
    path.write_text(
        "timings:\n"
        "  eviction_interval: 0\n"
        "  pdb_retry_backoff: 0\n"
        "  ready_poll_interval: 0\n"
        "  disconnect_poll_interval: 0\n"
        "  disconnect_timeout: 0\n"
        "drain:\n"
        "  per_pod_timeout_seconds: 4\n"
    )
    settings_module.set_settings(settings_module.Settings.load(path))
    yield path
    settings_module.set_settings(None)


@pytest.fixture
def wired(scheduler, node_control, audit, fast_settings):
    """Install the fakes as the process-wide adapters used by the CLI and API."""
    from nodepilot import modules

    modules.set_scheduler(scheduler)
    modules.set_node_control(node_control)
    modules.set_audit_log(audit)
    yield scheduler
    modules.set_scheduler(None)
    modules.set_node_control(None)
    modules.set_audit_log(None)
