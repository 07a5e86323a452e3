from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from services.config import ollama_base_url, vllm_base_url

LOGGER = logging.getLogger(__name__)

CHAT_TIMEOUT = httpx.Timeout(120.0, connect=5.0)


class ChatUpstreamError(RuntimeError):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code


def parse_ollama_line(line: str) -> Optional[Dict[str, Any]]:
    """One NDJSON chunk from Ollama /api/chat, or None when malformed."""
    try:
        chunk = json.loads(line)
    except ValueError:
        return None
    if not isinstance(chunk, dict):
        return None
    message = chunk.get("message") or {}
    return {
        "content": str(message.get("content") or ""),
        "done": bool(chunk.get("done")),
    }


def parse_openai_line(line: str) -> Optional[Dict[str, Any]]:
    """One SSE line from an OpenAI-compatible stream, or None to skip it."""
    if not line.startswith("data:"):
        return None
    data = line[len("data:"):].strip()
    if data == "[DONE]":
        return {"content": "", "done": True}
    try:
        chunk = json.loads(data)
    except ValueError:
        return None
    if not isinstance(chunk, dict):
        return None
    choices = chunk.get("choices") or [{}]
    choice = choices[0] if isinstance(choices[0], dict) else {}
    delta = choice.get("delta") or {}
    return {
        "content": str(delta.get("content") or ""),
        "done": choice.get("finish_reason") is not None,
    }


def _upstream(backend: str, gpu_slot: Optional[int]):
    if backend == "gpu":
        return (
            f"{vllm_base_url(gpu_slot or 0)}/v1/chat/completions",
            parse_openai_line,
            "vLLM",
        )
    return f"{ollama_base_url()}/api/chat", parse_ollama_line, "Ollama"


async def stream_chat(
    *,
    backend: str,
    model: str,
    messages: List[Dict[str, str]],
    gpu_slot: Optional[int] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> AsyncIterator[Dict[str, Any]]:
    """
    Proxy a chat completion and yield `{"content", "done"}` events.

    Failures before the first event raise ChatUpstreamError. Once events
    have been yielded, a failure is reported as a single
    `{"error", "done": True}` event instead.
    """
    url, parse, name = _upstream(backend, gpu_slot)
    payload = {"model": model, "messages": messages, "stream": True}
    started = False

    async with httpx.AsyncClient(timeout=CHAT_TIMEOUT, transport=transport) as client:
        try:
            async with client.stream("POST", url, json=payload) as resp:
                if resp.status_code != 200:
                    text = (await resp.aread()).decode("utf-8", errors="replace")
                    raise ChatUpstreamError(
                        resp.status_code, f"{name} error: {text or 'Unknown error'}"
                    )
                async for line in resp.aiter_lines():
                    line = line.strip()
                    if not line:
                        continue
                    event = parse(line)
                    if event is None:
                        continue
                    started = True
                    yield event
                    if event["done"]:
                        return
        except httpx.HTTPError as exc:
            if not started:
                LOGGER.warning("%s chat request to %s failed: %s", name, url, exc)
                raise ChatUpstreamError(502, f"{name} is not reachable: {exc}") from exc
            LOGGER.warning("%s chat stream interrupted: %s", name, exc)
            yield {"error": str(exc) or "Stream error", "done": True}
