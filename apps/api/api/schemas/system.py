from __future__ import annotations

from typing import Literal, Optional

from .common import CamelModel


class GpuInfoOut(CamelModel):
    name: str
    vram_total_mb: float
    vram_used_mb: float
    vram_free_mb: float
    utilization: float
    temperature: float


class SystemInfoOut(CamelModel):
    os: str
    arch: str
    cpu: str
    cpu_cores: int
    cpu_load: int
    ram_total: str
    ram_total_bytes: int
    ram_available: str
    ram_available_bytes: int
    ram_used: str
    ram_used_bytes: int
    hostname: str
    gpu: Optional[GpuInfoOut] = None
    vllm_kv_cache_percent: Optional[float] = None


class ServiceHealthOut(CamelModel):
    status: Literal["healthy", "unhealthy"]
    message: str
    url: str
    version: Optional[str] = None


class HealthOut(CamelModel):
    ollama: ServiceHealthOut
    vllm: ServiceHealthOut
