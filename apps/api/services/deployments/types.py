from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional, TypedDict

Backend = Literal["cpu", "gpu"]
DeploymentStatus = Literal["running", "completed", "failed"]
LogSource = Literal["stdout", "stderr"]
EventType = Literal["status", "output", "error", "complete"]

TERMINAL_STATUSES = frozenset({"completed", "failed"})

STDERR_MARKER = "[stderr]"
ERROR_MARKER = "[error]"


@dataclass(frozen=True)
class LogLine:
    text: str
    source: LogSource
    timestamp: int  # epoch milliseconds

    @property
    def event_type(self) -> EventType:
        return "error" if self.source == "stderr" else "output"


@dataclass(frozen=True)
class ExitInfo:
    """
    How a deployment process ended.

    `error` is set when the process never started; `returncode` follows
    subprocess conventions (negative values are signal numbers).
    """

    returncode: Optional[int] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.returncode == 0

    def summary(self) -> str:
        if self.error is not None:
            return f"{ERROR_MARKER} {self.error}"
        if self.returncode == 0:
            return "Deployment completed successfully!"
        if self.returncode is not None and self.returncode < 0:
            return f"Deployment terminated by signal {-self.returncode}"
        return f"Deployment failed with exit code {self.returncode}"


class DeployEvent(TypedDict):
    type: EventType
    data: str
    timestamp: int
