"""
Node lifecycle modules.

The get_* helpers build process-wide instances from Config on first use;
the set_* helpers replace them (tests, embedding applications).
"""
import logging
from typing import Optional

from ..config import Config
from ..errors import NodePilotError
from ..utils.kube import load_kubeconfig
from .audit import AuditLog
from .lifecycle import NodeLifecycleOperation
from .nodecontrol import NodeControl
from .rollout import RollingFleetOrchestrator
from .scheduler import SchedulerApi
from .settings import Settings, get_settings

logger = logging.getLogger("nodepilot.modules")

_scheduler: Optional[SchedulerApi] = None
_node_control: Optional[NodeControl] = None
_audit_log: Optional[AuditLog] = None


def get_node_control() -> NodeControl:
    global _node_control
    if _node_control is None:
        _node_control = NodeControl()
    return _node_control


def set_node_control(node_control: Optional[NodeControl]) -> None:
    global _node_control
    _node_control = node_control


def get_scheduler(kubeconfig: Optional[str] = None) -> SchedulerApi:
    """Load a kubeconfig on first use and return the shared SchedulerApi."""
    global _scheduler
    if _scheduler is None:
        source = load_kubeconfig(
            kubeconfig or Config.KUBECONFIG,
            node=Config.KUBECONFIG_NODE,
            node_control=get_node_control(),
        )
        logger.debug(f"Using kubeconfig from {source}")
        _scheduler = SchedulerApi()
    return _scheduler


def set_scheduler(scheduler: Optional[SchedulerApi]) -> None:
    global _scheduler
    _scheduler = scheduler


def get_audit_log() -> AuditLog:
    global _audit_log
    if _audit_log is None:
        _audit_log = AuditLog(Config.AUDIT_LOG)
    return _audit_log


def set_audit_log(audit_log: Optional[AuditLog]) -> None:
    global _audit_log
    _audit_log = audit_log


def resolve_address(name: str, address: Optional[str] = None) -> str:
    """Address node control should use; falls back to the node's InternalIP, then its name."""
    if address:
        return address
    try:
        node = get_scheduler().get_node(name)
    except NodePilotError:
        return name
    return node.address or name


def build_operation(settings: Optional[Settings] = None) -> NodeLifecycleOperation:
    """Build a NodeLifecycleOperation wired to the shared adapters."""
    settings = settings or get_settings()
    return NodeLifecycleOperation(
        get_scheduler(),
        get_node_control(),
        options=settings.drain.to_options(),
        timings=settings.timings.to_timings(),
        audit=get_audit_log(),
        pdb_precheck=settings.rollout.pdb_precheck,
    )


def build_orchestrator(settings: Optional[Settings] = None, policy=None) -> RollingFleetOrchestrator:
    """Build a RollingFleetOrchestrator; policy defaults to the settings value."""
    settings = settings or get_settings()
    return RollingFleetOrchestrator(build_operation(settings), policy=policy or settings.rollout.policy)


__all__ = [
    'AuditLog',
    'NodeControl',
    'NodeLifecycleOperation',
    'RollingFleetOrchestrator',
    'SchedulerApi',
    'build_operation',
    'build_orchestrator',
    'get_audit_log',
    'get_node_control',
    'get_scheduler',
    'resolve_address',
    'set_audit_log',
    'set_node_control',
    'set_scheduler',
]
