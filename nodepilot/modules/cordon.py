"""Cordon and uncordon nodes."""
import logging

from ..errors import NodePilotError
from ..models import CordonResult
from .scheduler import SchedulerApi

logger = logging.getLogger("nodepilot.cordon")


class CordonController:
    """Flip a node's schedulable flag. Both directions are idempotent."""

    def __init__(self, scheduler: SchedulerApi):
        self.scheduler = scheduler

    def cordon(self, node: str) -> CordonResult:
        """Mark a node unschedulable. Running pods are not touched."""
        return self._set_schedulable(node, False)

    def uncordon(self, node: str) -> CordonResult:
        """Mark a node schedulable again."""
        return self._set_schedulable(node, True)

    def _set_schedulable(self, node: str, schedulable: bool) -> CordonResult:
        action = "uncordon" if schedulable else "cordon"
        try:
            self.scheduler.patch_node_schedulable(node, schedulable)
        except NodePilotError as e:
            logger.warning(f"Failed to {action} node {node}: {e}")
            return CordonResult(node=node, success=False, error=str(e))
        logger.info(f"{action.capitalize()}ed node {node}")
        return CordonResult(node=node, success=True)
