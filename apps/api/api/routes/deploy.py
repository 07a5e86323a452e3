from __future__ import annotations

import json
from functools import lru_cache
from typing import List

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import StreamingResponse

from api.schemas.deploy import (
    DeployCancelOut,
    DeployCreateOut,
    DeployInputIn,
    DeployInputOut,
    DeploymentOut,
    DeployRequest,
)
from services.config import stream_heartbeat, stream_interval
from services.deployments import DeploymentRegistry
from services.deployments.deployment import Deployment
from services.deployments.errors import (
    AdmissionError,
    DeploymentNotFoundError,
    DeploymentNotRunningError,
    StdinUnavailableError,
)
from services.deployments.stream import deployment_events

router = APIRouter(prefix="/deploy", tags=["deploy"])


@lru_cache(maxsize=1)
def _registry() -> DeploymentRegistry:
    """
    Lazy singleton so importing the router has no side effects.
    """
    return DeploymentRegistry()


def shutdown_registry() -> None:
    if _registry.cache_info().currsize:
        _registry().shutdown()


def _get(deploy_id: str) -> Deployment:
    try:
        return _registry().get(deploy_id)
    except DeploymentNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


def _deployment_out(d: Deployment) -> DeploymentOut:
    return DeploymentOut(
        deploy_id=d.id,
        backend=d.backend,
        model=d.model,
        status=d.status,
        exit_code=d.exit_code,
        created_at=d.created_at,
        finished_at=d.finished_at,
        line_count=d.line_count,
    )


@router.post("", response_model=DeployCreateOut)
def create_deployment(req: DeployRequest) -> DeployCreateOut:
    """
    Start a deployment script. Only one deployment may run at a time.
    """
    try:
        deployment = _registry().create(req)
    except AdmissionError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return DeployCreateOut(
        deploy_id=deployment.id,
        message=f"Deploying {req.model} in {req.backend} mode",
    )


@router.get("", response_model=List[DeploymentOut])
def list_deployments() -> List[DeploymentOut]:
    return [_deployment_out(d) for d in _registry().list_deployments()]


def _sse_message(payload: dict) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


@router.get("/stream")
async def stream_deployment(
    request: Request, deploy_id: str = Query(..., alias="deployId", min_length=1)
) -> StreamingResponse:
    """
    Stream a deployment's log via Server-Sent Events (SSE).

    Every message is `data: {"type", "data", "timestamp"}` where type is:
      - status:   "connected" once the stream is open
      - output:   a stdout line
      - error:    a stderr/error line
      - complete: terminal status ("completed" | "failed"), then the stream closes
    """
    _get(deploy_id)  # validate deployment exists
    registry = _registry()

    async def event_stream():
        async for event in deployment_events(
            registry,
            deploy_id,
            interval=stream_interval(),
            heartbeat=stream_heartbeat(),
            is_disconnected=request.is_disconnected,
        ):
            if event is None:
                yield ": keep-alive\n\n"
            else:
                yield _sse_message(dict(event))

    headers = {
        "Cache-Control": "no-cache",
        "Connection": "keep-alive",
        "X-Accel-Buffering": "no",
    }
    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers=headers,
    )


@router.post("/stdin", response_model=DeployInputOut)
def send_input(payload: DeployInputIn) -> DeployInputOut:
    try:
        _registry().send_input(payload.deploy_id, payload.input)
    except DeploymentNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except DeploymentNotRunningError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StdinUnavailableError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return DeployInputOut(success=True)


@router.get("/{deploy_id}", response_model=DeploymentOut)
def get_deployment(deploy_id: str) -> DeploymentOut:
    return _deployment_out(_get(deploy_id))


@router.post("/{deploy_id}/cancel", response_model=DeployCancelOut)
def cancel_deployment(deploy_id: str) -> DeployCancelOut:
    try:
        ok = _registry().cancel(deploy_id)
    except DeploymentNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return DeployCancelOut(ok=ok)
