from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from services.config import ollama_base_url

LOGGER = logging.getLogger(__name__)

OLLAMA_PORT = 11434


class OllamaError(RuntimeError):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code


def format_size(num_bytes: int) -> str:
    gb = num_bytes / (1024 * 1024 * 1024)
    if gb >= 1:
        return f"{gb:.1f} GB"
    mb = num_bytes / (1024 * 1024)
    return f"{mb:.0f} MB"


def _is_running(name: str, running: List[str]) -> bool:
    return any(r == name or name.startswith(r.split(":")[0]) for r in running)


class OllamaClient:
    """
    Thin client for the CPU inference daemon (Ollama).

    Listing tolerates an unreachable daemon (empty list); mutating calls
    raise OllamaError with the upstream status (502 when unreachable).
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        transport: Optional[httpx.BaseTransport] = None,
        timeout: float = 5.0,
    ) -> None:
        self.base_url = (base_url or ollama_base_url()).rstrip("/")
        self._client = httpx.Client(
            base_url=self.base_url, transport=transport, timeout=timeout
        )

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            resp = self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise OllamaError(502, f"Ollama is not reachable: {exc}") from exc
        return resp

    def _model_entry(self, m: Dict[str, Any], running: List[str]) -> Dict[str, Any]:
        name = str(m.get("name") or "")
        details = m.get("details") or {}
        size = m.get("size")
        return {
            "name": name,
            "display_name": name.split(":")[0],
            "type": "cpu",
            "status": "running" if _is_running(name, running) else "stopped",
            "size": format_size(size) if isinstance(size, int) and size else None,
            "quantization": details.get("quantization_level"),
            "port": OLLAMA_PORT,
            "api_url": f"{self.base_url}/api/chat",
            "api_url_openai": f"{self.base_url}/v1/chat/completions",
            "modified_at": m.get("modified_at"),
            "digest": m.get("digest"),
        }

    def running_models(self) -> List[str]:
        try:
            resp = self._client.get("/api/ps")
        except httpx.HTTPError:
            return []
        if resp.status_code != 200:
            return []
        return [str(m.get("name")) for m in resp.json().get("models") or [] if m.get("name")]

    def list_models(self) -> List[Dict[str, Any]]:
        try:
            resp = self._client.get("/api/tags")
        except httpx.HTTPError as exc:
            LOGGER.info("Ollama not reachable at %s: %s", self.base_url, exc)
            return []
        if resp.status_code != 200:
            LOGGER.warning("Ollama /api/tags returned %s", resp.status_code)
            return []

        running = self.running_models()
        models = resp.json().get("models") or []
        return [self._model_entry(m, running) for m in models if isinstance(m, dict)]

    def show(self, name: str) -> Dict[str, Any]:
        resp = self._request("POST", "/api/show", json={"name": name})
        if resp.status_code != 200:
            raise OllamaError(404, f'Model "{name}" not found')
        details = resp.json().get("details") or {}
        return {
            "name": name,
            "type": "cpu",
            "status": "stopped",
            "port": OLLAMA_PORT,
            "api_url": f"{self.base_url}/api/chat",
            "api_url_openai": f"{self.base_url}/v1/chat/completions",
            "family": details.get("family"),
            "parameter_size": details.get("parameter_size"),
            "quantization": details.get("quantization_level"),
        }

    def delete(self, name: str) -> None:
        resp = self._request("DELETE", "/api/delete", json={"name": name})
        if resp.status_code >= 400:
            raise OllamaError(resp.status_code, f"Failed to delete model: {resp.text}")

    def _keep_alive(self, name: str, keep_alive: Any, action: str) -> None:
        # An empty chat with keep_alive loads (or unloads, with 0) the model.
        resp = self._request(
            "POST",
            "/api/chat",
            json={"model": name, "messages": [], "keep_alive": keep_alive},
        )
        if resp.status_code >= 400:
            raise OllamaError(resp.status_code, f"Failed to {action} model: {resp.text}")

    def start(self, name: str) -> None:
        self._keep_alive(name, "10m", "start")

    def stop(self, name: str) -> None:
        self._keep_alive(name, 0, "stop")
