from __future__ import annotations

import threading
from typing import List, Optional, Tuple

from .errors import DeploymentNotRunningError, StdinUnavailableError
from .runner import DeploymentProcess
from .types import (
    Backend,
    DeploymentStatus,
    ExitInfo,
    LogLine,
    LogSource,
    STDERR_MARKER,
)
from .util import now_ms, utc_iso


class Deployment:
    """
    One invocation of a deployment script: its process, its log, its status.

    The log only grows; status leaves `running` exactly once.
    """

    def __init__(self, deploy_id: str, *, backend: Backend, model: str, argv: List[str]) -> None:
        self.id = deploy_id
        self.backend = backend
        self.model = model
        self.argv = list(argv)
        self.created_at = utc_iso()
        self.finished_at: Optional[str] = None
        self.exit_code: Optional[int] = None

        self._lock = threading.Lock()
        self._log: List[LogLine] = []
        self._status: DeploymentStatus = "running"
        self._process: Optional[DeploymentProcess] = None

    @property
    def status(self) -> DeploymentStatus:
        with self._lock:
            return self._status

    @property
    def line_count(self) -> int:
        with self._lock:
            return len(self._log)

    def attach(self, process: DeploymentProcess) -> None:
        self._process = process

    def append(self, source: LogSource, text: str) -> None:
        if not text.strip():
            return
        if source == "stderr":
            text = f"{STDERR_MARKER} {text}"
        line = LogLine(text=text, source=source, timestamp=now_ms())
        with self._lock:
            self._log.append(line)

    def finish(self, info: ExitInfo) -> bool:
        """Record the terminal status; returns False if already finished."""
        summary = LogLine(
            text=info.summary(),
            source="stdout" if info.error is None else "stderr",
            timestamp=now_ms(),
        )
        with self._lock:
            if self._status != "running":
                return False
            self._log.append(summary)
            self._status = "completed" if info.succeeded else "failed"
            self.exit_code = info.returncode
            self.finished_at = utc_iso()
            return True

    def read(self, cursor: int) -> Tuple[List[LogLine], DeploymentStatus]:
        """
        Lines appended since `cursor` together with the status at that moment.

        When the returned status is terminal the lines include the summary.
        """
        with self._lock:
            return self._log[max(0, cursor) :], self._status

    def lines(self) -> List[LogLine]:
        with self._lock:
            return list(self._log)

    def write_stdin(self, text: str) -> None:
        if self.status != "running":
            raise DeploymentNotRunningError()
        if self._process is None:
            raise StdinUnavailableError()
        self._process.write_stdin(text)

    def terminate(self) -> bool:
        if self._process is None:
            return False
        return self._process.terminate()
