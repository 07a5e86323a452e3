from __future__ import annotations

import codecs
import logging
import os
import select
import signal
import subprocess
import threading
from pathlib import Path
from typing import IO, Callable, Dict, List, Optional

from api.schemas.deploy import DeployRequest

from .errors import StdinUnavailableError
from .types import ExitInfo, LogSource

LOGGER = logging.getLogger(__name__)

CPU_SCRIPT = "deploy_cpu.sh"
GPU_SCRIPT = "deploy_model.sh"

# A partial line (e.g. `read -p` prompt) is flushed once the stream is quiet this long.
PARTIAL_LINE_FLUSH_SECONDS = 0.15

OutputCallback = Callable[[LogSource, str], None]
ExitCallback = Callable[[ExitInfo], None]


def build_command(req: DeployRequest, repo_root: Path) -> List[str]:
    if req.backend == "cpu":
        cmd = ["bash", str(repo_root / CPU_SCRIPT), req.model, f"--{req.run_mode}"]
        if req.quantization:
            cmd.extend(["--quant", req.quantization])
        return cmd

    slot = req.gpu_slot if req.gpu_slot is not None else 0
    return ["bash", str(repo_root / GPU_SCRIPT), req.model, str(slot)]


def runner_env() -> Dict[str, str]:
    env = dict(os.environ)
    env.setdefault("PYTHONUNBUFFERED", "1")
    return env


def _split_stream_buffer(buffer: str) -> tuple[list[str], str]:
    lines: list[str] = []
    while True:
        idx_n = buffer.find("\n")
        idx_r = buffer.find("\r")

        if idx_n == -1 and idx_r == -1:
            break

        if idx_n == -1:
            idx = idx_r
        elif idx_r == -1:
            idx = idx_n
        else:
            idx = idx_n if idx_n < idx_r else idx_r

        lines.append(buffer[:idx])
        buffer = buffer[idx + 1 :]

    return lines, buffer


class DeploymentProcess:
    """
    Exclusive owner of one spawned deployment script.

    Output is delivered line by line through `on_output` from one reader
    thread per stream, so each stream stays in order. `on_exit` fires
    exactly once, after both readers drained, with the exit code or with
    the reason the process could not be started at all.
    """

    def __init__(
        self,
        argv: List[str],
        *,
        cwd: Path,
        on_output: OutputCallback,
        on_exit: ExitCallback,
    ) -> None:
        self.argv = list(argv)
        self.cwd = cwd
        self._on_output = on_output
        self._on_exit = on_exit
        self._proc: Optional[subprocess.Popen] = None
        self._readers: List[threading.Thread] = []
        self._stdin_lock = threading.Lock()
        self._exit_lock = threading.Lock()
        self._exited = False

    @property
    def pid(self) -> Optional[int]:
        return self._proc.pid if self._proc is not None else None

    def start(self) -> None:
        try:
            self._proc = subprocess.Popen(
                self.argv,
                cwd=str(self.cwd),
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                bufsize=0,
                env=runner_env(),
                start_new_session=True,  # new process group/session
            )
        except OSError as exc:
            LOGGER.warning("failed to start %s: %s", self.argv[0], exc)
            self._notify_exit(ExitInfo(error=f"failed to start {self.argv[0]}: {exc}"))
            return

        LOGGER.info("spawned pid %s: %s", self._proc.pid, " ".join(self.argv))
        for stream, source in ((self._proc.stdout, "stdout"), (self._proc.stderr, "stderr")):
            if stream is None:
                continue
            t = threading.Thread(
                target=self._read_stream, args=(stream, source), daemon=True
            )
            t.start()
            self._readers.append(t)

        threading.Thread(target=self._wait, daemon=True).start()

    def write_stdin(self, text: str) -> None:
        stdin = self._proc.stdin if self._proc is not None else None
        with self._stdin_lock:
            if stdin is None or stdin.closed:
                raise StdinUnavailableError()
            try:
                stdin.write((text + "\n").encode("utf-8"))
                stdin.flush()
            except (BrokenPipeError, ValueError, OSError) as exc:
                raise StdinUnavailableError() from exc

    def terminate(self) -> bool:
        if self._proc is None or self._proc.poll() is not None:
            return False
        terminate_process_group(self._proc.pid)
        return True

    def _emit(self, source: LogSource, line: str) -> None:
        try:
            self._on_output(source, line)
        except Exception:
            LOGGER.debug("output callback failed for pid %s", self.pid, exc_info=True)

    def _read_stream(self, stream: IO[bytes], source: LogSource) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        fd = stream.fileno()
        buf = ""
        try:
            while True:
                ready, _, _ = select.select([fd], [], [], PARTIAL_LINE_FLUSH_SECONDS)
                if not ready:
                    if buf:
                        self._emit(source, buf)
                        buf = ""
                    continue
                chunk = os.read(fd, 4096)
                if not chunk:
                    break
                buf += decoder.decode(chunk)
                lines, buf = _split_stream_buffer(buf)
                for line in lines:
                    self._emit(source, line)
            buf += decoder.decode(b"", final=True)
            if buf:
                self._emit(source, buf)
        except (OSError, ValueError):
            LOGGER.debug("reading %s of pid %s stopped", source, self.pid, exc_info=True)
        finally:
            try:
                stream.close()
            except OSError:
                pass

    def _wait(self) -> None:
        assert self._proc is not None
        rc = self._proc.wait()
        for reader in self._readers:
            reader.join(timeout=5)
        with self._stdin_lock:
            if self._proc.stdin is not None:
                try:
                    self._proc.stdin.close()
                except OSError:
                    pass
        LOGGER.info("pid %s exited with %s", self._proc.pid, rc)
        self._notify_exit(ExitInfo(returncode=rc))

    def _notify_exit(self, info: ExitInfo) -> None:
        with self._exit_lock:
            if self._exited:
                return
            self._exited = True
        try:
            self._on_exit(info)
        except Exception:
            LOGGER.exception("exit callback failed for %s", self.argv)


def start_process(
    argv: List[str],
    *,
    cwd: Path,
    on_output: OutputCallback,
    on_exit: ExitCallback,
) -> DeploymentProcess:
    """
    Spawn the deployment script without blocking.

    A spawn failure is reported through `on_exit`, never raised.
    """
    proc = DeploymentProcess(argv, cwd=cwd, on_output=on_output, on_exit=on_exit)
    proc.start()
    return proc


def terminate_process_group(pid: Optional[int]) -> None:
    if not isinstance(pid, int) or pid <= 0:
        return
    try:
        os.killpg(pid, signal.SIGTERM)
    except (ProcessLookupError, PermissionError):
        # Already gone or not ours.
        return
