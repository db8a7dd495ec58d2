"""Typed adapter over the Kubernetes API.

Everything the lifecycle engines know about pods, nodes and PDBs comes
through SchedulerApi; raw client objects never leave this module.
"""
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

import urllib3
from kubernetes import client
from kubernetes.client.rest import ApiException

from ..errors import ConfigurationError, ResourceNotFound, TransientApiError
from ..models import (
    ContainerStatusRecord,
    EvictionOutcome,
    EvictionResponse,
    NodeRecord,
    NodeRole,
    PdbRecord,
    PodRecord,
)

logger = logging.getLogger("nodepilot.scheduler")

CONTROL_PLANE_LABELS = (
    "node-role.kubernetes.io/control-plane",
    "node-role.kubernetes.io/master",
)

# Substrings the API server uses when a PDB refuses an eviction
PDB_BLOCK_MARKERS = ("disruption budget", "PodDisruptionBudget", "Cannot evict")


@contextmanager
def translate_api_errors(what: str) -> Iterator[None]:
    """Map client exceptions onto the nodepilot error taxonomy.

    Args:
        what: Short description of the call, used in messages
    """
    try:
        yield
    except ApiException as e:
        if e.status == 404:
            raise ResourceNotFound(f"{what}: not found") from e
        if e.status in (401, 403):
            raise ConfigurationError(f"{what}: not authorized ({e.status} {e.reason})") from e
        raise TransientApiError(f"{what}: {e.status} {e.reason}", status=e.status) from e
    except (urllib3.exceptions.HTTPError, OSError) as e:
        raise TransientApiError(f"{what}: {e}") from e


def _api_error_text(e: ApiException) -> str:
    body = e.body
    if isinstance(body, bytes):
        body = body.decode(errors="replace")
    return f"{e.status} {e.reason} {body or ''}".strip()


def classify_eviction_error(e: Exception) -> EvictionResponse:
    """Turn an eviction failure into an EvictionResponse.

    404 means the pod is already gone, 429 or a disruption budget message
    means a PDB refused the eviction, anything else is a plain failure.
    """
    if isinstance(e, ApiException):
        text = _api_error_text(e)
        if e.status == 404:
            return EvictionResponse(EvictionOutcome.NOT_FOUND, text)
        if e.status == 429 or any(marker in text for marker in PDB_BLOCK_MARKERS):
            return EvictionResponse(EvictionOutcome.BLOCKED, text)
        return EvictionResponse(EvictionOutcome.FAILED, text)
    return EvictionResponse(EvictionOutcome.FAILED, str(e))


def pod_from_api(pod: Any) -> PodRecord:
    """Build a PodRecord from a V1Pod."""
    metadata = pod.metadata
    spec = pod.spec
    status = pod.status

    statuses = []
    for cs in (status.container_statuses or []) if status else []:
        waiting = cs.state.waiting if cs.state else None
        terminated = cs.last_state.terminated if cs.last_state else None
        statuses.append(ContainerStatusRecord(
            name=cs.name,
            waiting_reason=waiting.reason if waiting else None,
            restart_count=cs.restart_count or 0,
            last_termination_reason=terminated.reason if terminated else None,
        ))

    volumes = (spec.volumes or []) if spec else []
    return PodRecord(
        namespace=metadata.namespace or '',
        name=metadata.name or '',
        node_name=spec.node_name if spec else None,
        owner_kinds=[ref.kind for ref in (metadata.owner_references or [])],
        annotations=dict(metadata.annotations or {}),
        has_empty_dir=any(v.empty_dir is not None for v in volumes),
        phase=(status.phase or '') if status else '',
        has_conditions=bool(status and status.conditions),
        container_statuses=statuses,
    )


def node_from_api(node: Any) -> NodeRecord:
    """Build a NodeRecord from a V1Node."""
    labels = node.metadata.labels or {}
    status = node.status
    address = None
    for addr in (status.addresses or []) if status else []:
        if addr.type == 'InternalIP':
            address = addr.address
            break

    return NodeRecord(
        name=node.metadata.name,
        address=address,
        role=NodeRole.CONTROL_PLANE if any(l in labels for l in CONTROL_PLANE_LABELS) else NodeRole.WORKER,
        unschedulable=bool(node.spec and node.spec.unschedulable),
        conditions={c.type: c.status for c in ((status.conditions or []) if status else [])},
    )


def pdb_from_api(pdb: Any) -> PdbRecord:
    """Build a PdbRecord from a V1PodDisruptionBudget; missing status counts as zero."""
    status = pdb.status
    return PdbRecord(
        namespace=pdb.metadata.namespace or '',
        name=pdb.metadata.name or '',
        current_healthy=(status.current_healthy or 0) if status else 0,
        desired_healthy=(status.desired_healthy or 0) if status else 0,
        disruptions_allowed=(status.disruptions_allowed or 0) if status else 0,
        expected_pods=(status.expected_pods or 0) if status else 0,
    )


class SchedulerApi:
    """Scheduler API operations needed by the lifecycle engines."""

    def __init__(self, core_v1: Optional[Any] = None, policy_v1: Optional[Any] = None):
        """Initialize the adapter.

        Args:
            core_v1: CoreV1Api instance, created from the loaded kubeconfig if omitted
            policy_v1: PolicyV1Api instance, created from the loaded kubeconfig if omitted
        """
        self.core_v1 = core_v1 or client.CoreV1Api()
        self.policy_v1 = policy_v1 or client.PolicyV1Api()

    def list_pods(self, node: Optional[str] = None) -> List[PodRecord]:
        """List pods across all namespaces, optionally only those bound to a node."""
        with translate_api_errors("list pods"):
            if node:
                pods = self.core_v1.list_pod_for_all_namespaces(field_selector=f"spec.nodeName={node}")
            else:
                pods = self.core_v1.list_pod_for_all_namespaces()
        return [pod_from_api(p) for p in pods.items]

    def list_pdbs(self) -> List[PdbRecord]:
        with translate_api_errors("list poddisruptionbudgets"):
            pdbs = self.policy_v1.list_pod_disruption_budget_for_all_namespaces()
        return [pdb_from_api(p) for p in pdbs.items]

    def get_node(self, name: str) -> NodeRecord:
        with translate_api_errors(f"get node {name}"):
            node = self.core_v1.read_node(name)
        return node_from_api(node)

    def list_nodes(self) -> List[NodeRecord]:
        with translate_api_errors("list nodes"):
            nodes = self.core_v1.list_node()
        return [node_from_api(n) for n in nodes.items]

    def patch_node_schedulable(self, name: str, schedulable: bool) -> None:
        body: Dict[str, Any] = {"spec": {"unschedulable": not schedulable}}
        with translate_api_errors(f"patch node {name}"):
            self.core_v1.patch_node(name, body)

    def evict_pod(self, namespace: str, name: str) -> EvictionResponse:
        """Request a policy-checked eviction.

        Never raises; every failure is reported through the response outcome.
        """
        body = client.V1Eviction(metadata=client.V1ObjectMeta(name=name, namespace=namespace))
        try:
            self.core_v1.create_namespaced_pod_eviction(name, namespace, body)
        except Exception as e:
            response = classify_eviction_error(e)
            logger.debug(f"Eviction of {namespace}/{name}: {response.outcome.value} ({response.message})")
            return response
        return EvictionResponse(EvictionOutcome.EVICTED)

    def delete_pod(self, namespace: str, name: str, grace_period_seconds: int = 0) -> None:
        with translate_api_errors(f"delete pod {namespace}/{name}"):
            self.core_v1.delete_namespaced_pod(
                name, namespace, grace_period_seconds=grace_period_seconds
            )
