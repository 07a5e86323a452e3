from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, Iterator, Optional

import httpx

from .orchestrator import PromptOrchestrator
from .prompts import PendingPrompt

LOGGER = logging.getLogger(__name__)

PromptHandler = Callable[[PromptOrchestrator, PendingPrompt], None]
EventHandler = Callable[[Dict[str, Any]], None]


class DeployClientError(RuntimeError):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        return str(body.get("detail") or body.get("error") or body)
    return str(body)


class DeployClient:
    """
    Talks to the dashboard's /api/deploy endpoints.

    `watch()` follows the event stream and hands every detected prompt to a
    callback, which answers it through the orchestrator (confirm/cancel).
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        *,
        transport: Optional[httpx.BaseTransport] = None,
        timeout: float = 10.0,
    ) -> None:
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            transport=transport,
            timeout=httpx.Timeout(timeout, read=None),
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "DeployClient":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    def _check(self, resp: httpx.Response) -> httpx.Response:
        if resp.status_code >= 400:
            raise DeployClientError(resp.status_code, _error_message(resp))
        return resp

    def create(
        self,
        *,
        backend: str,
        model: str,
        quantization: Optional[str] = None,
        run_mode: Optional[str] = None,
        gpu_slot: Optional[int] = None,
    ) -> str:
        payload: Dict[str, Any] = {"backend": backend, "model": model}
        if quantization is not None:
            payload["quantization"] = quantization
        if run_mode is not None:
            payload["runMode"] = run_mode
        if gpu_slot is not None:
            payload["gpuSlot"] = gpu_slot
        resp = self._check(self._client.post("/api/deploy", json=payload))
        return str(resp.json()["deployId"])

    def status(self, deploy_id: str) -> Dict[str, Any]:
        return self._check(self._client.get(f"/api/deploy/{deploy_id}")).json()

    def send_input(self, deploy_id: str, text: str) -> None:
        self._check(
            self._client.post(
                "/api/deploy/stdin", json={"deployId": deploy_id, "input": text}
            )
        )

    def cancel(self, deploy_id: str) -> bool:
        resp = self._check(self._client.post(f"/api/deploy/{deploy_id}/cancel"))
        return bool(resp.json().get("ok"))

    def events(self, deploy_id: str) -> Iterator[Dict[str, Any]]:
        with self._client.stream(
            "GET", "/api/deploy/stream", params={"deployId": deploy_id}
        ) as resp:
            if resp.status_code >= 400:
                resp.read()
                raise DeployClientError(resp.status_code, _error_message(resp))
            for line in resp.iter_lines():
                if not line.startswith("data:"):
                    continue
                try:
                    event = json.loads(line[len("data:") :].strip())
                except ValueError:
                    LOGGER.debug("skipping malformed event: %r", line)
                    continue
                if isinstance(event, dict):
                    yield event

    def watch(
        self,
        deploy_id: str,
        on_prompt: PromptHandler,
        *,
        on_event: Optional[EventHandler] = None,
    ) -> str:
        """Follow a deployment to the end; returns its final state."""
        orchestrator = PromptOrchestrator(lambda text: self.send_input(deploy_id, text))
        orchestrator.begin()
        for event in self.events(deploy_id):
            if on_event is not None:
                on_event(event)
            prompt = orchestrator.handle_event(event)
            if prompt is not None:
                on_prompt(orchestrator, prompt)
            if event.get("type") == "complete":
                break
        if orchestrator.state == "deploying":
            # Stream ended without a complete event (deployment cleaned up).
            orchestrator.state = "failed"
        return orchestrator.state
