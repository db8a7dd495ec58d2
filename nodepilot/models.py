"""
Data models for node lifecycle operations.

Records read from the scheduler API are rebuilt on every probe and never
shared between operation steps.
"""
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

# Fixed waits, in seconds. Tests override them through Timings.
EVICTION_INTERVAL_SECONDS = 0.5
PDB_RETRY_BACKOFF_SECONDS = 2.0
READY_POLL_INTERVAL_SECONDS = 5.0
DISCONNECT_POLL_INTERVAL_SECONDS = 2.0
DISCONNECT_TIMEOUT_SECONDS = 60.0

MANAGED_OWNER_KINDS = ("ReplicaSet", "Deployment", "StatefulSet", "Job", "DaemonSet")
MIRROR_POD_ANNOTATION = "kubernetes.io/config.mirror"


class NodeRole(str, Enum):
    """Node roles in the cluster."""
    CONTROL_PLANE = 'ControlPlane'
    WORKER = 'Worker'


class NodeCondition(str, Enum):
    """Value of a node's Ready condition."""
    READY = 'Ready'
    NOT_READY = 'NotReady'
    UNKNOWN = 'Unknown'


class EvictionOutcome(str, Enum):
    """Distinguishable answers to an eviction request."""
    EVICTED = 'evicted'
    NOT_FOUND = 'not_found'
    BLOCKED = 'blocked'
    FAILED = 'failed'


class OperationKind(str, Enum):
    """What a lifecycle operation does between drain and uncordon."""
    DRAIN = 'drain'
    REBOOT = 'reboot'


class NodeState(str, Enum):
    """States of the per-node lifecycle state machine."""
    IDLE = 'Idle'
    CORDONING = 'Cordoning'
    DRAINING = 'Draining'
    AWAITING_EXTERNAL_REBOOT = 'AwaitingExternalReboot'
    WAITING_READY = 'WaitingReady'
    UNCORDONING = 'Uncordoning'
    DONE = 'Done'
    FAILED = 'Failed'


class FailurePolicy(str, Enum):
    """What a rollout does after a node fails."""
    CONTINUE = 'continue'
    ABORT = 'abort'


class RolloutStatus(str, Enum):
    """Overall status of a fleet rollout."""
    IN_PROGRESS = 'InProgress'
    COMPLETED = 'Completed'
    ABORTED_ON_FAILURE = 'AbortedOnFailure'
    CANCELLED = 'Cancelled'


class OutcomeStatus(str, Enum):
    """Per-node result inside a rollout."""
    SUCCEEDED = 'succeeded'
    FAILED = 'failed'
    SKIPPED = 'skipped'


@dataclass
class ContainerStatusRecord:
    """The parts of a container status the probes care about."""
    name: str
    waiting_reason: Optional[str] = None
    restart_count: int = 0
    last_termination_reason: Optional[str] = None


@dataclass
class PodRecord:
    """A pod as returned by the scheduler API."""
    namespace: str
    name: str
    node_name: Optional[str] = None
    owner_kinds: List[str] = field(default_factory=list)
    annotations: Dict[str, str] = field(default_factory=dict)
    has_empty_dir: bool = False
    phase: str = ''
    has_conditions: bool = False
    container_statuses: List[ContainerStatusRecord] = field(default_factory=list)

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    @property
    def is_mirror(self) -> bool:
        return MIRROR_POD_ANNOTATION in self.annotations


@dataclass
class NodeRecord:
    """A node as returned by the scheduler API."""
    name: str
    address: Optional[str] = None
    role: NodeRole = NodeRole.WORKER
    unschedulable: bool = False
    conditions: Dict[str, str] = field(default_factory=dict)

    @property
    def ready_condition(self) -> NodeCondition:
        """Map the Ready condition; anything but True/False is Unknown."""
        status = self.conditions.get('Ready')
        if status == 'True':
            return NodeCondition.READY
        if status == 'False':
            return NodeCondition.NOT_READY
        return NodeCondition.UNKNOWN


@dataclass
class PdbRecord:
    """Snapshot of a PodDisruptionBudget's status."""
    namespace: str
    name: str
    current_healthy: int = 0
    desired_healthy: int = 0
    disruptions_allowed: int = 0
    expected_pods: int = 0

    @property
    def would_block_drain(self) -> bool:
        return self.disruptions_allowed == 0 and self.expected_pods > 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['would_block_drain'] = self.would_block_drain
        return data


@dataclass
class EvictionResponse:
    """Result of a single eviction request."""
    outcome: EvictionOutcome
    message: str = ''


@dataclass
class EvictionCandidate:
    """A pod considered for eviction during one drain pass."""
    namespace: str
    name: str
    is_managed: bool = False
    is_daemonset_pod: bool = False
    has_empty_dir_volume: bool = False

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    @classmethod
    def from_pod(cls, pod: PodRecord) -> 'EvictionCandidate':
        return cls(
            namespace=pod.namespace,
            name=pod.name,
            is_managed=any(kind in MANAGED_OWNER_KINDS for kind in pod.owner_kinds),
            is_daemonset_pod='DaemonSet' in pod.owner_kinds,
            has_empty_dir_volume=pod.has_empty_dir,
        )


@dataclass
class DrainOptions:
    """Options for drain and reboot operations."""
    per_pod_timeout_seconds: int = 30
    grace_period_seconds: Optional[int] = None  # only used for force-delete
    force_delete_unmanaged: bool = False
    ignore_daemonsets: bool = True
    delete_emptydir_data: bool = True
    wait_for_node_ready: bool = True
    post_reboot_timeout_seconds: int = 300
    uncordon_after_reboot: bool = True
    strict_pdb_check: bool = False

    @property
    def max_attempts(self) -> int:
        """Eviction attempts per pod; each PDB retry waits about 2s."""
        return max(1, self.per_pod_timeout_seconds // 2)


@dataclass
class Timings:
    """Poll intervals and backoffs used by the engines."""
    eviction_interval: float = EVICTION_INTERVAL_SECONDS
    pdb_retry_backoff: float = PDB_RETRY_BACKOFF_SECONDS
    ready_poll_interval: float = READY_POLL_INTERVAL_SECONDS
    disconnect_poll_interval: float = DISCONNECT_POLL_INTERVAL_SECONDS
    disconnect_timeout: float = DISCONNECT_TIMEOUT_SECONDS


@dataclass
class CordonResult:
    """Result of a cordon or uncordon."""
    node: str
    success: bool
    error: Optional[str] = None


@dataclass
class DrainResult:
    """Result of draining one node."""
    node: str
    evicted_count: int = 0
    failed_pods: List[str] = field(default_factory=list)
    force_deleted_pods: List[str] = field(default_factory=list)
    skipped_pods: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return not self.failed_pods

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['success'] = self.success
        return data


@dataclass
class NodeReadyResult:
    """Result of waiting for a node to become Ready."""
    success: bool
    elapsed_seconds: float
    error: Optional[str] = None


@dataclass
class UnhealthyPod:
    """A pod flagged by the pod health probe."""
    namespace: str
    name: str
    state: str
    restart_count: int = 0
    last_reason: Optional[str] = None


@dataclass
class PodHealthSummary:
    """Cluster-wide pod health."""
    crashing: List[UnhealthyPod] = field(default_factory=list)
    image_pull_errors: List[UnhealthyPod] = field(default_factory=list)
    pending: List[UnhealthyPod] = field(default_factory=list)
    total_pods: int = 0

    def has_issues(self) -> bool:
        return bool(self.crashing or self.image_pull_errors)

    def summary(self) -> str:
        if not (self.crashing or self.image_pull_errors or self.pending):
            return "All pods healthy"
        parts = []
        if self.crashing:
            parts.append(f"{len(self.crashing)} crashing")
        if self.image_pull_errors:
            parts.append(f"{len(self.image_pull_errors)} image errors")
        if self.pending:
            parts.append(f"{len(self.pending)} pending")
        return ", ".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['has_issues'] = self.has_issues()
        data['summary'] = self.summary()
        return data


@dataclass
class PdbHealthSummary:
    """All PDBs in the cluster and the ones that would block a drain."""
    pdbs: List[PdbRecord] = field(default_factory=list)
    blocking: List[PdbRecord] = field(default_factory=list)

    def has_blocking_pdbs(self) -> bool:
        return bool(self.blocking)

    def summary(self) -> str:
        if not self.pdbs:
            return "No PDBs configured"
        if not self.blocking:
            return f"{len(self.pdbs)} PDBs, all allow disruption"
        return f"{len(self.pdbs)} PDBs, {len(self.blocking)} would block drain"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'pdbs': [p.to_dict() for p in self.pdbs],
            'blocking': [p.to_dict() for p in self.blocking],
            'summary': self.summary(),
        }


@dataclass
class RollingNodeInfo:
    """A node taking part in a single-node or fleet operation."""
    hostname: str
    address: str
    is_control_plane: bool = False
    selection_order: Optional[int] = None


@dataclass
class NodeOperationResult:
    """Terminal result of one node's lifecycle operation."""
    node: str
    kind: OperationKind
    state: NodeState
    message: str
    states: List[NodeState] = field(default_factory=list)
    drain: Optional[DrainResult] = None
    ready: Optional[NodeReadyResult] = None
    pdb_summary: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.state == NodeState.DONE

    def to_dict(self) -> Dict[str, Any]:
        return {
            'node': self.node,
            'kind': self.kind.value,
            'state': self.state.value,
            'success': self.success,
            'message': self.message,
            'states': [s.value for s in self.states],
            'drain': self.drain.to_dict() if self.drain else None,
            'ready': asdict(self.ready) if self.ready else None,
            'pdb_summary': self.pdb_summary,
            'warnings': list(self.warnings),
            'elapsed_seconds': round(self.elapsed_seconds, 1),
        }


@dataclass
class NodeOutcome:
    """One entry of a rollout's outcome log."""
    node: RollingNodeInfo
    status: OutcomeStatus
    message: str = ''
    result: Optional[NodeOperationResult] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'hostname': self.node.hostname,
            'address': self.node.address,
            'status': self.status.value,
            'message': self.message,
            'result': self.result.to_dict() if self.result else None,
        }


@dataclass
class RolloutRun:
    """A fleet pass: execution order, outcomes and overall status."""
    nodes: List[RollingNodeInfo]
    kind: OperationKind = OperationKind.REBOOT
    policy: FailurePolicy = FailurePolicy.CONTINUE
    outcomes: List[NodeOutcome] = field(default_factory=list)
    status: RolloutStatus = RolloutStatus.IN_PROGRESS

    @property
    def failed(self) -> List[NodeOutcome]:
        return [o for o in self.outcomes if o.status == OutcomeStatus.FAILED]

    @property
    def succeeded(self) -> List[NodeOutcome]:
        return [o for o in self.outcomes if o.status == OutcomeStatus.SUCCEEDED]

    @property
    def skipped(self) -> List[NodeOutcome]:
        return [o for o in self.outcomes if o.status == OutcomeStatus.SKIPPED]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind.value,
            'policy': self.policy.value,
            'status': self.status.value,
            'order': [n.hostname for n in self.nodes],
            'outcomes': [o.to_dict() for o in self.outcomes],
        }
