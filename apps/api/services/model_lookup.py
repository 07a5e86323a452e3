from __future__ import annotations

import logging
import re
import threading
import time
from typing import Any, Dict, List, Optional, Tuple

import httpx

from services.config import hf_api_url, lookup_ttl_seconds

LOGGER = logging.getLogger(__name__)

QUANT_BITS: Dict[str, int] = {
    "Q2": 2,
    "Q3": 3,
    "Q4": 4,
    "Q5": 5,
    "Q6": 6,
    "Q8": 8,
    "F16": 16,
    "F32": 32,
    "IQ1": 1,
    "IQ2": 2,
    "IQ3": 3,
    "IQ4": 4,
}

# model.Q4_K_M.gguf, model-Q4_0.gguf
_QUANT_FROM_FILENAME = re.compile(r"[.\-]((?:Q|F|IQ)\d\w*?)\.gguf$", re.IGNORECASE)


class ModelLookupError(RuntimeError):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code


def parse_bits(quant: str) -> int:
    return QUANT_BITS.get(quant.split("_")[0].upper(), 0)


def parse_quant_from_filename(filename: str) -> Optional[str]:
    match = _QUANT_FROM_FILENAME.search(filename)
    return match.group(1) if match else None


def format_params(params: int) -> str:
    if params >= 1e12:
        return f"{params / 1e12:.1f}T"
    if params >= 1e9:
        return f"{params / 1e9:.1f}B"
    if params >= 1e6:
        return f"{params / 1e6:.0f}M"
    return str(params)


def _gguf_files(siblings: List[Any]) -> List[Dict[str, Any]]:
    files: List[Dict[str, Any]] = []
    for s in siblings:
        if not isinstance(s, dict):
            continue
        filename = s.get("rfilename")
        if not isinstance(filename, str) or not filename.endswith(".gguf"):
            continue
        quant = parse_quant_from_filename(filename)
        lfs = s.get("lfs") or {}
        files.append(
            {
                "filename": filename,
                "quantization": quant or filename,
                "size_bytes": lfs.get("size") or s.get("size") or 0,
                "bits": parse_bits(quant) if quant else 0,
            }
        )
    files.sort(key=lambda f: (f["bits"], f["size_bytes"]))
    return files


def _parameters(raw: Dict[str, Any]) -> Optional[int]:
    params = (raw.get("safetensors") or {}).get("parameters") or {}
    value = None
    if isinstance(params, dict) and params:
        value = params.get("F16") or params.get("BF16") or next(iter(params.values()))
    if not value:
        value = (raw.get("gguf") or {}).get("total")
    return int(value) if value else None


def _architecture(raw: Dict[str, Any]) -> Optional[str]:
    config = raw.get("config") or {}
    architectures = config.get("architectures") or []
    if architectures:
        return str(architectures[0])
    if config.get("model_type"):
        return str(config["model_type"])
    return (raw.get("gguf") or {}).get("architecture")


def summarize(raw: Dict[str, Any], repo: str) -> Dict[str, Any]:
    gguf_files = _gguf_files(raw.get("siblings") or [])
    parameters = _parameters(raw)
    return {
        "id": raw.get("id") or repo,
        "author": raw.get("author") or repo.split("/")[0],
        "pipeline": raw.get("pipeline_tag") or "unknown",
        "architecture": _architecture(raw),
        "parameters": parameters,
        "parameters_formatted": format_params(parameters) if parameters else None,
        "context_length": (raw.get("gguf") or {}).get("context_length"),
        "license": (raw.get("cardData") or {}).get("license"),
        "downloads": raw.get("downloads") or 0,
        "likes": raw.get("likes") or 0,
        "last_modified": raw.get("lastModified"),
        "tags": raw.get("tags") or [],
        "has_gguf": bool(gguf_files),
        "gguf_files": gguf_files,
    }


class ModelLookupService:
    """
    Cached metadata lookups against the remote model registry.

    Cache: per-process, keyed by repo, entries expire after the TTL.
    """

    def __init__(
        self,
        *,
        transport: Optional[httpx.BaseTransport] = None,
        ttl_seconds: Optional[int] = None,
    ) -> None:
        self._base_url = hf_api_url()
        self._ttl = lookup_ttl_seconds() if ttl_seconds is None else ttl_seconds
        self._lock = threading.Lock()
        self._cache: Dict[str, Tuple[float, Dict[str, Any]]] = {}
        self._client = httpx.Client(
            timeout=8.0,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    def _cached(self, repo: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            entry = self._cache.get(repo)
        if entry is None:
            return None
        ts, data = entry
        if (time.time() - ts) >= self._ttl:
            return None
        return data

    def lookup(self, repo: str) -> Dict[str, Any]:
        repo = (repo or "").strip()
        if not repo or "/" not in repo:
            raise ModelLookupError(
                400, "Missing or invalid repo parameter (expected org/name)"
            )

        cached = self._cached(repo)
        if cached is not None:
            return cached

        try:
            resp = self._client.get(f"{self._base_url}/{repo}")
        except httpx.HTTPError as exc:
            LOGGER.warning("model lookup for %s failed: %s", repo, exc)
            raise ModelLookupError(502, f"Failed to fetch model info: {exc}") from exc

        if resp.status_code == 404:
            raise ModelLookupError(404, f'Model "{repo}" not found on HuggingFace')
        if resp.status_code != 200:
            raise ModelLookupError(
                resp.status_code, f"HuggingFace API error ({resp.status_code})"
            )

        try:
            raw = resp.json()
        except ValueError as exc:
            raise ModelLookupError(502, "HuggingFace returned invalid JSON") from exc

        data = summarize(raw if isinstance(raw, dict) else {}, repo)
        with self._lock:
            self._cache[repo] = (time.time(), data)
        return data
