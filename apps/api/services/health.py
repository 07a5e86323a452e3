from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from services.config import ollama_base_url, vllm_base_url, vllm_ports

CHECK_TIMEOUT_SECONDS = 3.0


def check_service(client: httpx.Client, url: str, name: str) -> Dict[str, Any]:
    try:
        resp = client.get(url)
    except httpx.TimeoutException:
        return {"status": "unhealthy", "message": f"{name} connection timed out", "url": url}
    except httpx.HTTPError:
        return {"status": "unhealthy", "message": f"{name} is not running", "url": url}

    if resp.status_code != 200:
        return {
            "status": "unhealthy",
            "message": f"{name} returned {resp.status_code}",
            "url": url,
        }

    version = None
    text = resp.text.strip()
    # Ollama answers its root URL with "Ollama is running".
    if "Ollama" in text:
        version = text
    return {"status": "healthy", "version": version, "message": f"{name} is running", "url": url}


def check_backends(transport: Optional[httpx.BaseTransport] = None) -> Dict[str, Dict[str, Any]]:
    with httpx.Client(timeout=CHECK_TIMEOUT_SECONDS, transport=transport) as client:
        ollama = check_service(client, ollama_base_url(), "Ollama")

        slots = [
            check_service(client, f"{vllm_base_url(slot)}/health", f"vLLM GPU {slot}")
            for slot in sorted(vllm_ports())
        ]

    vllm = next((s for s in slots if s["status"] == "healthy"), None)
    if vllm is None:
        vllm = {
            "status": "unhealthy",
            "message": "No vLLM instances running",
            "url": vllm_base_url(0),
        }
    return {"ollama": ollama, "vllm": vllm}
