from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

LOGGER = logging.getLogger(__name__)

_DEFAULT_VLLM_PORTS = "8104,8105"


@lru_cache(maxsize=1)
def _file_defaults() -> Dict[str, Any]:
    """
    Optional YAML file with defaults for the environment variables below.

    Only top-level scalar keys are used; the environment always wins.
    """
    raw = (os.getenv("DASHBOARD_CONFIG") or "").strip()
    if not raw:
        return {}
    path = Path(raw)
    if not path.is_file():
        LOGGER.warning("DASHBOARD_CONFIG points to a missing file: %s", raw)
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        LOGGER.warning("ignoring invalid DASHBOARD_CONFIG %s: %s", raw, exc)
        return {}
    return data if isinstance(data, dict) else {}


def reload_config() -> None:
    _file_defaults.cache_clear()


def _lookup(name: str) -> Optional[str]:
    raw = os.getenv(name)
    if raw is not None and raw.strip():
        return raw.strip()
    value = _file_defaults().get(name)
    if value is None:
        return None
    return str(value).strip() or None


def env_str(name: str, default: str = "") -> str:
    value = _lookup(name)
    return default if value is None else value


def env_int(name: str, default: int) -> int:
    value = _lookup(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        LOGGER.warning("%s=%r is not an integer, using %s", name, value, default)
        return default


def env_float(name: str, default: float) -> float:
    value = _lookup(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        LOGGER.warning("%s=%r is not a number, using %s", name, value, default)
        return default


def repo_root() -> Path:
    raw = env_str("DEPLOY_REPO_ROOT")
    return Path(raw).resolve() if raw else Path.cwd()


def cleanup_seconds() -> float:
    return max(0.0, env_float("DEPLOY_CLEANUP_SECONDS", 60.0))


def stream_interval() -> float:
    return max(0.01, env_float("DEPLOY_STREAM_INTERVAL", 0.5))


def stream_heartbeat() -> float:
    return env_float("DEPLOY_STREAM_HEARTBEAT", 10.0)


def ollama_base_url() -> str:
    return env_str("OLLAMA_BASE_URL", "http://localhost:11434").rstrip("/")


def vllm_ports() -> Dict[int, int]:
    raw = env_str("VLLM_PORTS", _DEFAULT_VLLM_PORTS)
    ports: Dict[int, int] = {}
    for slot, item in enumerate(p.strip() for p in raw.split(",")):
        if not item:
            continue
        try:
            ports[slot] = int(item)
        except ValueError:
            LOGGER.warning("ignoring invalid vLLM port %r", item)
    return ports or {0: 8104, 1: 8105}


def vllm_base_url(gpu_slot: int) -> str:
    host = env_str("VLLM_HOST", "http://localhost").rstrip("/")
    ports = vllm_ports()
    port = ports.get(gpu_slot, ports.get(0, 8104))
    return f"{host}:{port}"


def hf_api_url() -> str:
    return env_str("HF_API_URL", "https://huggingface.co/api/models").rstrip("/")


def lookup_ttl_seconds() -> int:
    return env_int("MODEL_LOOKUP_TTL_SECONDS", 300)


def log_level() -> str:
    return env_str("LOG_LEVEL", "INFO").upper()


def api_host() -> str:
    return env_str("API_HOST", "127.0.0.1")


def api_port() -> int:
    return env_int("API_PORT", 8000)
