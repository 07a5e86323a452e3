from __future__ import annotations

from typing import Literal, Optional

from pydantic import Field, field_validator, model_validator

from .common import CamelModel, validate_model_name

Backend = Literal["cpu", "gpu"]
RunMode = Literal["background", "foreground"]
GpuSlot = Literal[0, 1]
Quantization = Literal["Q2_K", "Q3_K_M", "Q4_0", "Q4_K_M", "Q5_K_M", "Q6_K", "Q8_0"]
DeploymentStatus = Literal["running", "completed", "failed"]


class DeployRequest(CamelModel):
    """
    A request to run one of the two deployment scripts.

    cpu -> deploy_cpu.sh <model> --<run_mode> [--quant <tag>]
    gpu -> deploy_model.sh <model> <gpu_slot>
    """

    backend: Backend
    model: str = Field(..., description="Model identifier, e.g. TinyLlama/TinyLlama-1.1B")
    quantization: Optional[Quantization] = None
    run_mode: RunMode = "background"
    gpu_slot: Optional[GpuSlot] = None

    @field_validator("model")
    @classmethod
    def _check_model(cls, v: str) -> str:
        return validate_model_name(v)

    @model_validator(mode="after")
    def _require_gpu_slot(self) -> "DeployRequest":
        if self.backend == "gpu" and self.gpu_slot is None:
            raise ValueError("GPU slot is required for GPU deployments")
        return self


class DeployCreateOut(CamelModel):
    deploy_id: str
    status: Literal["started"] = "started"
    message: str


class DeployInputIn(CamelModel):
    deploy_id: str = Field(..., min_length=1)
    # May be empty (a bare Enter) but must be present.
    input: str


class DeployInputOut(CamelModel):
    success: bool = True


class DeployCancelOut(CamelModel):
    ok: bool


class DeploymentOut(CamelModel):
    deploy_id: str
    backend: Backend
    model: str
    status: DeploymentStatus
    exit_code: Optional[int] = None
    created_at: str
    finished_at: Optional[str] = None
    line_count: int = 0
