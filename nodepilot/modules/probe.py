"""Read-only cluster probes used before and during lifecycle operations."""
import logging
from typing import List

from ..errors import NodePilotError
from ..models import (
    NodeCondition,
    PdbHealthSummary,
    PdbRecord,
    PodHealthSummary,
    UnhealthyPod,
)
from .scheduler import SchedulerApi

logger = logging.getLogger("nodepilot.probe")

CRASH_REASONS = ("CrashLoopBackOff",)
IMAGE_PULL_REASONS = ("ImagePullBackOff", "ErrImagePull")


class ScheduleProbe:
    """Pod, PDB and node health queries. Never mutates cluster state."""

    def __init__(self, scheduler: SchedulerApi):
        self.scheduler = scheduler

    def pod_health(self) -> PodHealthSummary:
        """Classify every pod in the cluster by container waiting reason.

        Pods stuck in Pending are those that have status conditions but no
        container statuses yet.

        Returns:
            PodHealthSummary with per-category pod lists
        """
        pods = self.scheduler.list_pods()
        info = PodHealthSummary(total_pods=len(pods))

        for pod in pods:
            for cs in pod.container_statuses:
                if not cs.waiting_reason:
                    continue
                unhealthy = UnhealthyPod(
                    namespace=pod.namespace,
                    name=pod.name,
                    state=cs.waiting_reason,
                    restart_count=cs.restart_count,
                    last_reason=cs.last_termination_reason,
                )
                if cs.waiting_reason in CRASH_REASONS:
                    info.crashing.append(unhealthy)
                elif cs.waiting_reason in IMAGE_PULL_REASONS:
                    info.image_pull_errors.append(unhealthy)

            if pod.phase == "Pending" and pod.has_conditions and not pod.container_statuses:
                info.pending.append(UnhealthyPod(namespace=pod.namespace, name=pod.name, state="Pending"))

        logger.debug(f"Pod health: {info.summary()} ({info.total_pods} pods)")
        return info

    def pdb_health(self) -> PdbHealthSummary:
        """List all PDBs and pick out the ones that would block a drain."""
        info = PdbHealthSummary()
        for pdb in self.scheduler.list_pdbs():
            info.pdbs.append(pdb)
            if pdb.would_block_drain:
                info.blocking.append(pdb)
        logger.debug(f"PDB health: {info.summary()}")
        return info

    def blocking_pdbs_for_node(self, node: str, summary: PdbHealthSummary = None) -> List[PdbRecord]:
        """Blocking PDBs in namespaces that have non-DaemonSet pods on the node.

        PDB selectors are not evaluated; a namespace match is enough to warn.
        """
        summary = summary or self.pdb_health()
        if not summary.blocking:
            return []
        namespaces = {
            pod.namespace
            for pod in self.scheduler.list_pods(node=node)
            if not pod.is_mirror and "DaemonSet" not in pod.owner_kinds
        }
        return [pdb for pdb in summary.blocking if pdb.namespace in namespaces]

    def node_ready_condition(self, node: str) -> NodeCondition:
        """Read the node's Ready condition. API errors are raised."""
        return self.scheduler.get_node(node).ready_condition

    def node_exists(self, node: str) -> bool:
        """Any failure to read the node counts as the node not existing."""
        try:
            self.scheduler.get_node(node)
        except NodePilotError as e:
            logger.debug(f"Node {node} not readable: {e}")
            return False
        return True
