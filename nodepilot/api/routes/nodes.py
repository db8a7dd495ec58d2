from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from nodepilot.models import OperationKind, RollingNodeInfo
from nodepilot.modules import build_operation, get_scheduler
from nodepilot.modules.cordon import CordonController
from nodepilot.modules.settings import DrainSettings, get_settings

router = APIRouter(prefix="/nodes", tags=["nodes"])


class DrainRequest(BaseModel):
    per_pod_timeout_seconds: Optional[int] = Field(default=None, ge=1)
    grace_period_seconds: Optional[int] = Field(default=None, ge=0)
    force_delete_unmanaged: Optional[bool] = None
    ignore_daemonsets: Optional[bool] = None
    delete_emptydir_data: Optional[bool] = None
    strict_pdb_check: Optional[bool] = None
    uncordon_after: bool = False


def _cordon_response(result):
    if not result.success:
        raise HTTPException(status_code=502, detail=result.error)
    return asdict(result)


@router.post("/{name}/cordon")
def cordon_node(name: str):
    return _cordon_response(CordonController(get_scheduler()).cordon(name))


@router.post("/{name}/uncordon")
def uncordon_node(name: str):
    return _cordon_response(CordonController(get_scheduler()).uncordon(name))


@router.post("/{name}/drain")
def drain_node(name: str, req: Optional[DrainRequest] = None):
    """Cordon and drain a node; it stays cordoned unless uncordon_after is set."""
    req = req or DrainRequest()
    settings = get_settings()
    overrides = req.model_dump(exclude={"uncordon_after"}, exclude_none=True)
    options = DrainSettings.model_validate({**settings.drain.model_dump(), **overrides}).to_options()
    options.uncordon_after_reboot = req.uncordon_after

    result = build_operation(settings).run(RollingNodeInfo(hostname=name, address=name), OperationKind.DRAIN, options=options)
    return result.to_dict()
