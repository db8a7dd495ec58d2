import logging

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from nodepilot.api.middleware import AuthMiddleware
from nodepilot.api.routes import nodes, probe, rollout
from nodepilot.config import Config
from nodepilot.errors import (
    AdmissionBlocked,
    ConfigurationError,
    NodePilotError,
    ResourceNotFound,
    RolloutInProgressError,
    TransientApiError,
)
from nodepilot.logging import setup_logger

load_dotenv()
logger = setup_logger("nodepilot.api", getattr(logging, Config.LOG_LEVEL, logging.INFO))

app = FastAPI(title="nodepilot")
app.add_middleware(AuthMiddleware)

app.include_router(probe.router)
app.include_router(nodes.router)
app.include_router(rollout.router)

ERROR_STATUS = {
    ResourceNotFound: 404,
    AdmissionBlocked: 409,
    RolloutInProgressError: 409,
    TransientApiError: 503,
    ConfigurationError: 500,
}


@app.exception_handler(NodePilotError)
async def nodepilot_error_handler(request: Request, exc: NodePilotError):
    status = next((code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)), 500)
    logger.warning(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=status, content={"detail": str(exc), "error": type(exc).__name__})
