import threading
from typing import List, Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field

from nodepilot.errors import RolloutInProgressError
from nodepilot.models import FailurePolicy, OperationKind
from nodepilot.modules import build_orchestrator, resolve_address
from nodepilot.modules.settings import DrainSettings, FleetNode, get_settings

router = APIRouter(tags=["rollout"])

# one rollout per API process
_active = threading.Lock()


class RolloutRequest(BaseModel):
    nodes: List[FleetNode] = Field(..., min_length=1)
    kind: OperationKind = OperationKind.REBOOT
    policy: Optional[FailurePolicy] = None
    per_pod_timeout_seconds: Optional[int] = Field(default=None, ge=1)
    force_delete_unmanaged: Optional[bool] = None
    post_reboot_timeout_seconds: Optional[int] = Field(default=None, ge=1)


@router.post("/rollout")
def start_rollout(req: RolloutRequest):
    """Run a rolling drain or reboot and return the outcome of every node."""
    if not _active.acquire(blocking=False):
        raise RolloutInProgressError("A rollout is already in progress")
    try:
        settings = get_settings()
        overrides = req.model_dump(
            include={"per_pod_timeout_seconds", "force_delete_unmanaged", "post_reboot_timeout_seconds"},
            exclude_none=True,
        )
        options = DrainSettings.model_validate({**settings.drain.model_dump(), **overrides}).to_options()
        orchestrator = build_orchestrator(settings, policy=req.policy)
        run = orchestrator.run([n.to_node_info(resolve_address) for n in req.nodes], options=options, kind=req.kind)
        return run.to_dict()
    finally:
        _active.release()
