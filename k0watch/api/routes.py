"""Status API routes: health, manager status and Prometheus metrics."""

from __future__ import annotations

from fastapi import APIRouter, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from k0watch import __version__
from k0watch.api.schemas import HealthResponse, ManagerStatus, StatusResponse

router = APIRouter()
metrics_router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    """Healthy while no manager has been stopped."""
    stopped = any(m.status()["stopped"] for m in request.app.state.managers)
    return HealthResponse(status="stopping" if stopped else "ok", version=__version__)


@router.get("/status", response_model=StatusResponse)
async def status(request: Request) -> StatusResponse:
    return StatusResponse(
        version=__version__,
        managers=[ManagerStatus(**m.status()) for m in request.app.state.managers],
    )


@metrics_router.get("/metrics")
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
