from __future__ import annotations

import logging
import threading
import uuid
from functools import partial
from pathlib import Path
from typing import Callable, Dict, List, Optional

from api.schemas.deploy import DeployRequest
from services.config import cleanup_seconds, repo_root

from .deployment import Deployment
from .errors import AdmissionError, DeploymentNotFoundError
from .runner import (
    DeploymentProcess,
    ExitCallback,
    OutputCallback,
    build_command,
    start_process,
)
from .types import ExitInfo, LogSource

LOGGER = logging.getLogger(__name__)

Launcher = Callable[..., DeploymentProcess]


class DeploymentRegistry:
    """
    In-memory registry of active and recently finished deployments.

    Rules:
      - at most one deployment is `running`; the check and the spawn happen
        under one lock so concurrent requests cannot both get in
      - finished deployments stay readable for `cleanup_delay` seconds, then
        disappear; nothing survives a restart
    """

    def __init__(
        self,
        *,
        root: Optional[Path] = None,
        cleanup_delay: Optional[float] = None,
        launcher: Launcher = start_process,
    ) -> None:
        self._root = root if root is not None else repo_root()
        self._cleanup_delay = cleanup_seconds() if cleanup_delay is None else cleanup_delay
        self._launcher = launcher
        # Re-entrant: a spawn failure reports its exit while create() holds the lock.
        self._lock = threading.RLock()
        self._deployments: Dict[str, Deployment] = {}
        self._timers: Dict[str, threading.Timer] = {}

    @property
    def root(self) -> Path:
        return self._root

    def create(self, req: DeployRequest) -> Deployment:
        with self._lock:
            active = self._active_locked()
            if active is not None:
                LOGGER.warning(
                    "rejected deployment of %s: %s is still running", req.model, active.id
                )
                raise AdmissionError()

            argv = build_command(req, self._root)
            deployment = Deployment(
                uuid.uuid4().hex[:12], backend=req.backend, model=req.model, argv=argv
            )
            self._deployments[deployment.id] = deployment
            LOGGER.info(
                "deployment %s accepted: %s on %s", deployment.id, req.model, req.backend
            )

            on_output: OutputCallback = partial(self._on_output, deployment)
            on_exit: ExitCallback = partial(self._on_exit, deployment)
            process = self._launcher(
                argv, cwd=self._root, on_output=on_output, on_exit=on_exit
            )
            deployment.attach(process)
            return deployment

    def get(self, deploy_id: str) -> Deployment:
        rid = (deploy_id or "").strip()
        with self._lock:
            deployment = self._deployments.get(rid)
        if deployment is None:
            raise DeploymentNotFoundError(rid)
        return deployment

    def active(self) -> Optional[Deployment]:
        with self._lock:
            return self._active_locked()

    def list_deployments(self) -> List[Deployment]:
        with self._lock:
            return list(self._deployments.values())

    def send_input(self, deploy_id: str, text: str) -> None:
        deployment = self.get(deploy_id)
        try:
            deployment.write_stdin(text)
        except Exception as exc:
            LOGGER.warning("input for deployment %s not delivered: %s", deployment.id, exc)
            raise

    def cancel(self, deploy_id: str) -> bool:
        deployment = self.get(deploy_id)
        if deployment.status != "running":
            return True
        LOGGER.info("cancelling deployment %s", deployment.id)
        deployment.terminate()
        return True

    def remove(self, deploy_id: str) -> bool:
        with self._lock:
            timer = self._timers.pop(deploy_id, None)
            removed = self._deployments.pop(deploy_id, None)
        if timer is not None:
            timer.cancel()
        if removed is not None:
            LOGGER.info("deployment %s removed", deploy_id)
        return removed is not None

    def shutdown(self) -> None:
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
            running = [d for d in self._deployments.values() if d.status == "running"]
        for timer in timers:
            timer.cancel()
        for deployment in running:
            LOGGER.info("terminating deployment %s on shutdown", deployment.id)
            deployment.terminate()

    def _active_locked(self) -> Optional[Deployment]:
        for deployment in self._deployments.values():
            if deployment.status == "running":
                return deployment
        return None

    def _on_output(self, deployment: Deployment, source: LogSource, line: str) -> None:
        deployment.append(source, line)

    def _on_exit(self, deployment: Deployment, info: ExitInfo) -> None:
        if not deployment.finish(info):
            return
        LOGGER.info(
            "deployment %s finished: %s (exit code %s)",
            deployment.id,
            deployment.status,
            info.returncode,
        )
        self._schedule_cleanup(deployment.id)

    def _schedule_cleanup(self, deploy_id: str) -> None:
        timer = threading.Timer(self._cleanup_delay, self.remove, args=(deploy_id,))
        timer.daemon = True
        with self._lock:
            if deploy_id not in self._deployments:
                return
            previous = self._timers.pop(deploy_id, None)
            self._timers[deploy_id] = timer
        if previous is not None:
            previous.cancel()
        timer.start()
