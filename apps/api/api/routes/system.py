from __future__ import annotations

from fastapi import APIRouter

from api.schemas.system import HealthOut, SystemInfoOut
from services.health import check_backends
from services.system_info import collect_system_info

router = APIRouter(tags=["system"])


@router.get("/system", response_model=SystemInfoOut)
def system_info() -> SystemInfoOut:
    return SystemInfoOut(**collect_system_info())


@router.get("/health", response_model=HealthOut)
def backend_health() -> HealthOut:
    """
    Reachability of the inference backends (Ollama, vLLM slots).
    """
    return HealthOut(**check_backends())
