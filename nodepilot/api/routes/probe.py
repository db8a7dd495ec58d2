from fastapi import APIRouter

from nodepilot.modules import get_scheduler
from nodepilot.modules.probe import ScheduleProbe

router = APIRouter(prefix="/probe", tags=["probe"])


@router.get("/pods")
def pod_health():
    return ScheduleProbe(get_scheduler()).pod_health().to_dict()


@router.get("/pdbs")
def pdb_health():
    return ScheduleProbe(get_scheduler()).pdb_health().to_dict()


@router.get("/nodes/{name}")
def node_status(name: str):
    """Ready condition and scheduling state of one node."""
    node = get_scheduler().get_node(name)
    return {
        "name": node.name,
        "address": node.address,
        "role": node.role.value,
        "ready": node.ready_condition.value,
        "unschedulable": node.unschedulable,
    }
