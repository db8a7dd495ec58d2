"""Drain a node by evicting its pods one at a time.

Evictions go through the Eviction API so the API server can refuse them
when a PodDisruptionBudget has no disruptions left. Refused evictions are
retried with a fixed backoff; once the per-pod budget is spent, unmanaged
pods may be force-deleted if the caller allows it.
"""
import logging
import threading
import time
from typing import Callable, List, Optional, Tuple

from ..errors import NodePilotError
from ..models import (
    DrainOptions,
    DrainResult,
    EvictionCandidate,
    EvictionOutcome,
    PodRecord,
    Timings,
)
from ..utils import ProgressSink, safe_progress
from .audit import AuditLog
from .scheduler import SchedulerApi

logger = logging.getLogger("nodepilot.eviction")


def select_candidates(
    pods: List[PodRecord], options: DrainOptions
) -> Tuple[List[EvictionCandidate], List[str]]:
    """Pick the pods a drain should evict, keeping listing order.

    Mirror pods are always left alone. DaemonSet pods are skipped when
    ignore_daemonsets is set, emptyDir pods unless delete_emptydir_data is set.

    Args:
        pods: Pods bound to the node, in listing order
        options: Drain options

    Returns:
        Tuple of (candidates to evict, "namespace/name (reason)" for skipped pods)
    """
    candidates = []
    skipped = []
    for pod in pods:
        if pod.is_mirror:
            skipped.append(f"{pod.key} (mirror pod)")
            continue

        candidate = EvictionCandidate.from_pod(pod)
        if candidate.is_daemonset_pod and options.ignore_daemonsets:
            skipped.append(f"{pod.key} (DaemonSet)")
            continue
        if candidate.has_empty_dir_volume and not options.delete_emptydir_data:
            skipped.append(f"{pod.key} (emptyDir)")
            continue

        candidates.append(candidate)
    return candidates, skipped


class EvictionEngine:
    """Sequential, PDB-respecting node drain."""

    def __init__(
        self,
        scheduler: SchedulerApi,
        timings: Optional[Timings] = None,
        sleep: Callable[[float], None] = time.sleep,
        audit: Optional[AuditLog] = None,
    ):
        """Initialize the engine.

        Args:
            scheduler: Scheduler API adapter
            timings: Eviction interval and PDB backoff
            sleep: Sleep function, replaced in tests
            audit: Audit log for force deletions
        """
        self.scheduler = scheduler
        self.timings = timings or Timings()
        self.sleep = sleep
        self.audit = audit

    def drain(
        self,
        node: str,
        options: Optional[DrainOptions] = None,
        progress: Optional[ProgressSink] = None,
        cancel: Optional[threading.Event] = None,
    ) -> DrainResult:
        """Evict every eligible pod from a node.

        Args:
            node: Node name
            options: Drain options, defaults if omitted
            progress: Callback receiving human-readable progress lines
            cancel: Cancellation token, checked before every eviction request

        Returns:
            DrainResult; success is true iff no pod ended up in failed_pods

        Raises:
            NodePilotError: If the pods on the node cannot be listed
        """
        options = options or DrainOptions()
        emit = safe_progress(progress)

        pods = self.scheduler.list_pods(node=node)
        candidates, skipped = select_candidates(pods, options)
        result = DrainResult(node=node, skipped_pods=skipped)

        total = len(candidates)
        max_attempts = options.max_attempts
        emit(f"Found {total} pods to evict")
        logger.info(f"Draining {node}: {total} pods to evict, {len(skipped)} skipped")

        for idx, candidate in enumerate(candidates, 1):
            if cancel is not None and cancel.is_set():
                remaining = [c.key for c in candidates[idx - 1:]]
                result.failed_pods.extend(remaining)
                result.error = f"Drain cancelled with {len(remaining)} pods remaining"
                emit(result.error)
                logger.warning(f"Drain of {node} cancelled")
                return result

            emit(f"Evicting {candidate.key} ({idx}/{total})")
            self._evict_one(candidate, options, max_attempts, total, result, emit, cancel)

        logger.info(
            f"Drain of {node} finished: {result.evicted_count} evicted, "
            f"{len(result.force_deleted_pods)} force-deleted, {len(result.failed_pods)} failed"
        )
        return result

    def _evict_one(
        self,
        candidate: EvictionCandidate,
        options: DrainOptions,
        max_attempts: int,
        total: int,
        result: DrainResult,
        emit: ProgressSink,
        cancel: Optional[threading.Event],
    ) -> None:
        attempts = 0
        while True:
            response = self.scheduler.evict_pod(candidate.namespace, candidate.name)

            if response.outcome == EvictionOutcome.EVICTED:
                result.evicted_count += 1
                logger.info(f"Evicted pod {candidate.key}")
                emit(f"Evicted {candidate.key} ({result.evicted_count}/{total})")
                # Let termination start before the next eviction
                self.sleep(self.timings.eviction_interval)
                return

            if response.outcome == EvictionOutcome.NOT_FOUND:
                result.evicted_count += 1
                emit(f"Pod gone {candidate.key} ({result.evicted_count}/{total})")
                return

            if response.outcome == EvictionOutcome.BLOCKED:
                attempts += 1
                logger.debug(f"PDB blocking eviction of {candidate.key}, attempt {attempts}/{max_attempts}")
                emit(f"Waiting for PDB: {candidate.key} (retry {attempts}/{max_attempts})")
                if attempts >= max_attempts:
                    logger.warning(f"Timed out waiting for PDB to allow eviction of {candidate.key}")
                    self._force_delete_or_fail(candidate, options, total, result, emit, cancel, timed_out=True)
                    return
                if cancel is not None and cancel.is_set():
                    result.failed_pods.append(candidate.key)
                    emit(f"Cancelled: {candidate.key}")
                    return
                self.sleep(self.timings.pdb_retry_backoff)
                continue

            logger.warning(f"Failed to evict {candidate.key}: {response.message}")
            self._force_delete_or_fail(candidate, options, total, result, emit, cancel, timed_out=False)
            return

    def _force_delete_or_fail(
        self,
        candidate: EvictionCandidate,
        options: DrainOptions,
        total: int,
        result: DrainResult,
        emit: ProgressSink,
        cancel: Optional[threading.Event],
        timed_out: bool,
    ) -> None:
        if cancel is not None and cancel.is_set():
            # cancelled drains never escalate to force-delete
            result.failed_pods.append(candidate.key)
            emit(f"Cancelled: {candidate.key}")
            return

        label = "Timeout" if timed_out else "Failed"

        if not (options.force_delete_unmanaged and not candidate.is_managed):
            result.failed_pods.append(candidate.key)
            emit(f"{label}: {candidate.key}")
            return

        suffix = " after timeout" if timed_out else ""
        emit(f"Force deleting unmanaged pod {candidate.key}{suffix}")
        grace = options.grace_period_seconds if options.grace_period_seconds is not None else 0
        try:
            self.scheduler.delete_pod(candidate.namespace, candidate.name, grace_period_seconds=grace)
        except NodePilotError as e:
            logger.warning(f"Force delete failed for {candidate.key}: {e}")
            result.failed_pods.append(candidate.key)
            emit(f"{label}: {candidate.key}")
            if self.audit:
                self.audit.record("force_delete", candidate.key, "failed", error=str(e))
            return

        result.evicted_count += 1
        result.force_deleted_pods.append(candidate.key)
        logger.info(f"Force deleted unmanaged pod {candidate.key}{suffix}")
        emit(f"Force deleted {candidate.key} ({result.evicted_count}/{total})")
        if self.audit:
            self.audit.record("force_delete", candidate.key, "success", grace_period_seconds=grace)
