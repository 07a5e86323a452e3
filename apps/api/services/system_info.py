from __future__ import annotations

import platform
import re
import socket
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
import psutil

from services.config import vllm_base_url

_NVIDIA_SMI = [
    "nvidia-smi",
    "--query-gpu=name,memory.total,memory.used,memory.free,utilization.gpu,temperature.gpu",
    "--format=csv,noheader,nounits",
]
_KV_CACHE_RE = re.compile(r"^vllm:kv_cache_usage_perc(?:\{[^}]*\})?\s+([\d.eE+-]+)", re.MULTILINE)


def run_command(cmd: List[str], timeout: float = 5.0) -> str:
    try:
        proc = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired):
        return ""
    if proc.returncode != 0:
        return ""
    return proc.stdout.strip()


def format_gb(num_bytes: int) -> str:
    return f"{num_bytes / (1024 ** 3):.1f} GB"


def parse_nvidia_smi(csv: str) -> Optional[Dict[str, Any]]:
    first = (csv or "").strip().splitlines()
    if not first:
        return None
    parts = [p.strip() for p in first[0].split(",")]
    if len(parts) < 6:
        return None

    def _num(value: str) -> float:
        try:
            return float(value)
        except ValueError:
            return 0.0

    return {
        "name": parts[0],
        "vram_total_mb": _num(parts[1]),
        "vram_used_mb": _num(parts[2]),
        "vram_free_mb": _num(parts[3]),
        "utilization": _num(parts[4]),
        "temperature": _num(parts[5]),
    }


def parse_kv_cache_percent(metrics: str) -> Optional[float]:
    match = _KV_CACHE_RE.search(metrics or "")
    if not match:
        return None
    try:
        return float(match.group(1))
    except ValueError:
        return None


def memory_usage() -> Dict[str, int]:
    vm = psutil.virtual_memory()
    available = min(vm.available, vm.total)
    return {
        "total": vm.total,
        "available": available,
        "used": max(0, vm.total - available),
    }


def cpu_load_percent(cores: int) -> int:
    """1-minute load average as a share of the logical cores, capped at 100."""
    try:
        load1 = psutil.getloadavg()[0]
    except (OSError, AttributeError):
        return 0
    return min(100, round(load1 / max(1, cores) * 100))


def os_name() -> str:
    system = platform.system()
    if system == "Darwin":
        return f"macOS {run_command(['sw_vers', '-productVersion'])}".strip()
    if system == "Linux":
        try:
            text = Path("/etc/os-release").read_text(encoding="utf-8")
        except OSError:
            return "Linux"
        match = re.search(r'^PRETTY_NAME="?([^"\n]*)"?', text, re.MULTILINE)
        return match.group(1) if match else "Linux"
    return system or "unknown"


def cpu_model() -> str:
    system = platform.system()
    model = ""
    if system == "Linux":
        try:
            text = Path("/proc/cpuinfo").read_text(encoding="utf-8")
        except OSError:
            text = ""
        match = re.search(r"^model name\s*:\s*(.+)$", text, re.MULTILINE)
        model = match.group(1) if match else ""
    elif system == "Darwin":
        model = run_command(["sysctl", "-n", "machdep.cpu.brand_string"])
    model = model or platform.processor() or "Unknown"
    return re.sub(r"\s+", " ", model).strip()


def vllm_kv_cache(transport: Optional[httpx.BaseTransport] = None) -> Optional[float]:
    try:
        with httpx.Client(timeout=2.0, transport=transport) as client:
            resp = client.get(f"{vllm_base_url(0)}/metrics")
    except httpx.HTTPError:
        return None
    if resp.status_code != 200:
        return None
    return parse_kv_cache_percent(resp.text)


def collect_system_info() -> Dict[str, Any]:
    cores = psutil.cpu_count() or 1
    memory = memory_usage()
    gpu = parse_nvidia_smi(run_command(_NVIDIA_SMI))

    return {
        "os": os_name(),
        "arch": platform.machine(),
        "cpu": cpu_model(),
        "cpu_cores": cores,
        "cpu_load": cpu_load_percent(cores),
        "ram_total": format_gb(memory["total"]),
        "ram_total_bytes": memory["total"],
        "ram_available": format_gb(memory["available"]),
        "ram_available_bytes": memory["available"],
        "ram_used": format_gb(memory["used"]),
        "ram_used_bytes": memory["used"],
        "hostname": socket.gethostname(),
        "gpu": gpu,
        "vllm_kv_cache_percent": vllm_kv_cache() if gpu else None,
    }
