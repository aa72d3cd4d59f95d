from __future__ import annotations

"""
Run the external transcription executable under a hard deadline.

Design intent:
- Drain stdout/stderr on their own workers from the moment the child starts,
  so a chatty child can never block on a full pipe.
- Treat timeout and cancellation as the same forced-kill path.
- Hand back an immutable outcome; interpretation belongs to the collector.
"""

import logging
import os
import signal
import subprocess
import threading
import time
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any, Dict, Optional, Tuple

from ..config import TranscribeConfig
from ..contracts import TERMINAL_JOB_STATES, JobState

logger = logging.getLogger(__name__)

_IS_WINDOWS = os.name == "nt"
_READ_CHUNK_BYTES = 8192
TRUNCATED_MARKER = "[truncated] "


@dataclass(frozen=True)
class TranscriptionJob:
    input_path: Path
    artifact_path: Path
    command: Tuple[str, ...]
    timeout_sec: float
    work_dir: Optional[Path] = None
    env: Optional[Dict[str, str]] = None


@dataclass(frozen=True)
class ProcessOutcome:
    state: JobState
    exit_code: Optional[int] = None
    stdout: str = ""
    stderr: str = ""
    duration_sec: float = 0.0
    launch_error: str = ""

    @property
    def succeeded(self) -> bool:
        return self.state == "exited" and self.exit_code == 0


def _popen_group_kwargs() -> Dict[str, Any]:
    if _IS_WINDOWS:
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    return {"start_new_session": True}


def kill_job(process: subprocess.Popen) -> None:
    """
    Forcibly terminate `process` together with every descendant in its group.

    POSIX children are started as session leaders, so the process group id
    equals the child's pid and a single SIGKILL to the group reaches the whole
    tree. On Windows `taskkill /T` walks the tree instead.
    """
    if _IS_WINDOWS:
        if process.poll() is None:
            subprocess.run(
                ["taskkill", "/F", "/T", "/PID", str(process.pid)],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                check=False,
            )
            try:
                process.kill()
            except OSError:
                pass
        return

    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    except PermissionError:
        # Not allowed to signal the whole group; the leader is still ours.
        if process.poll() is None:
            process.kill()


def child_has_exited(process: subprocess.Popen) -> bool:
    """True once the child has exited; on POSIX the zombie is left for `wait()` to reap."""
    if _IS_WINDOWS or process.returncode is not None:
        return process.poll() is not None
    try:
        status = os.waitid(os.P_PID, process.pid, os.WEXITED | os.WNOHANG | os.WNOWAIT)
    except ChildProcessError:
        return True
    return status is not None


def drain_stream(stream: IO[bytes], limit_chars: int) -> str:
    """Read `stream` to EOF, keeping only the last `limit_chars` characters."""
    limit_bytes = max(1, limit_chars) * 4
    chunks: deque[bytes] = deque()
    total = 0
    truncated = False
    try:
        while True:
            chunk = stream.read(_READ_CHUNK_BYTES)
            if not chunk:
                break
            chunks.append(chunk)
            total += len(chunk)
            while len(chunks) > 1 and total - len(chunks[0]) >= limit_bytes:
                total -= len(chunks.popleft())
                truncated = True
    except (OSError, ValueError) as exc:
        logger.debug("stream drain stopped early: %s", exc)
    finally:
        try:
            stream.close()
        except OSError:
            pass

    data = b"".join(chunks)
    if len(data) > limit_bytes:
        data = data[-limit_bytes:]
        truncated = True
    text = data.decode("utf-8", errors="replace")
    if len(text) > limit_chars:
        text = text[-limit_chars:]
        truncated = True
    return TRUNCATED_MARKER + text if truncated else text


class ProcessHandle:
    """One child process and its lifecycle state; terminal states are absorbing."""

    def __init__(self, job: TranscriptionJob):
        self.job = job
        self.process: Optional[subprocess.Popen] = None
        self.exit_code: Optional[int] = None
        self._state: JobState = "not_started"
        self._lock = threading.Lock()

    @property
    def state(self) -> JobState:
        return self._state

    @property
    def finished(self) -> bool:
        return self._state in TERMINAL_JOB_STATES

    def _transition(self, new_state: JobState) -> None:
        with self._lock:
            if self._state in TERMINAL_JOB_STATES:
                raise RuntimeError(
                    f"job already finished as {self._state}; cannot move to {new_state}"
                )
            if self._state == "not_started" and new_state not in {"running", "launch_failed"}:
                raise RuntimeError(f"job not started; cannot move to {new_state}")
            if self._state == "running" and new_state in {"running", "launch_failed"}:
                raise RuntimeError(f"job already running; cannot move to {new_state}")
            self._state = new_state

    def launch(self) -> subprocess.Popen:
        job = self.job
        try:
            process = subprocess.Popen(
                list(job.command),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=str(job.work_dir) if job.work_dir else None,
                env=job.env,
                **_popen_group_kwargs(),
            )
        except OSError:
            self._transition("launch_failed")
            raise
        self.process = process
        self._transition("running")
        return process

    def mark_exited(self, exit_code: int) -> None:
        self.exit_code = exit_code
        self._transition("exited")

    def kill(self, reason: JobState, grace_sec: float) -> None:
        if self.process is None:
            raise RuntimeError("cannot kill a job that was never launched")
        if self.finished:
            raise RuntimeError(f"job already finished as {self._state}; cannot move to {reason}")
        kill_job(self.process)
        try:
            self.exit_code = self.process.wait(timeout=max(grace_sec, 0.1))
        except subprocess.TimeoutExpired:
            logger.error("pid=%d still alive %.1fs after SIGKILL", self.process.pid, grace_sec)
        self._transition(reason)


class ProcessSupervisor:
    def __init__(
        self,
        *,
        capture_max_chars: int = 65536,
        kill_grace_sec: float = 5.0,
        poll_interval_sec: float = 0.1,
    ):
        self._capture_max_chars = capture_max_chars
        self._kill_grace_sec = kill_grace_sec
        self._poll_interval_sec = poll_interval_sec

    @classmethod
    def from_config(cls, cfg: TranscribeConfig) -> "ProcessSupervisor":
        return cls(
            capture_max_chars=cfg.TRANSCRIBE_CAPTURE_MAX_CHARS,
            kill_grace_sec=cfg.TRANSCRIBE_KILL_GRACE_SECONDS,
        )

    def run(
        self,
        job: TranscriptionJob,
        *,
        cancel_event: Optional[threading.Event] = None,
    ) -> ProcessOutcome:
        handle = ProcessHandle(job)
        started = time.monotonic()
        try:
            process = handle.launch()
        except OSError as exc:
            reason = exc.strerror or str(exc)
            logger.warning("could not launch %s: %s", Path(job.command[0]).name, reason)
            return ProcessOutcome(
                state="launch_failed",
                duration_sec=time.monotonic() - started,
                launch_error=f"{type(exc).__name__}: {reason}",
            )

        logger.info(
            "launched %s pid=%d for %s (timeout=%.0fs)",
            Path(job.command[0]).name,
            process.pid,
            job.input_path.name,
            job.timeout_sec,
        )

        pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="transcribe-drain")
        try:
            stdout_future = pool.submit(drain_stream, process.stdout, self._capture_max_chars)
            stderr_future = pool.submit(drain_stream, process.stderr, self._capture_max_chars)
            self._wait_for_terminal_state(handle, started, cancel_event)
            stdout, stderr = self._join_drains(process, stdout_future, stderr_future)
        finally:
            if not handle.finished:
                handle.kill("killed_cancelled", self._kill_grace_sec)
            pool.shutdown(wait=False)

        duration = time.monotonic() - started
        if handle.state == "exited":
            logger.info("pid=%d exited with code %s after %.1fs", process.pid, handle.exit_code, duration)
        else:
            logger.warning("pid=%d %s after %.1fs", process.pid, handle.state.replace("_", " "), duration)

        return ProcessOutcome(
            state=handle.state,
            exit_code=handle.exit_code,
            stdout=stdout,
            stderr=stderr,
            duration_sec=duration,
        )

    def _wait_for_terminal_state(
        self,
        handle: ProcessHandle,
        started: float,
        cancel_event: Optional[threading.Event],
    ) -> None:
        process = handle.process
        assert process is not None
        deadline = started + handle.job.timeout_sec
        while True:
            if cancel_event is not None and cancel_event.is_set():
                handle.kill("killed_cancelled", self._kill_grace_sec)
                return
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                handle.kill("killed_timeout", self._kill_grace_sec)
                return
            if child_has_exited(process):
                if not _IS_WINDOWS:
                    # The unreaped leader still owns its pid, so the group id cannot
                    # have been handed to another request's child yet.
                    kill_job(process)
                handle.mark_exited(process.wait())
                return
            pause = min(self._poll_interval_sec, remaining)
            if cancel_event is not None:
                cancel_event.wait(pause)
            else:
                time.sleep(pause)

    def _join_drains(
        self,
        process: subprocess.Popen,
        stdout_future: Future,
        stderr_future: Future,
    ) -> Tuple[str, str]:
        futures = [stdout_future, stderr_future]
        _, pending = wait_futures(futures, timeout=self._kill_grace_sec)
        if pending:
            # The group is already gone; whatever holds the pipes left it via setsid.
            logger.error(
                "pid=%d output pipes still open %.1fs after the process group was killed; "
                "giving up on capturing the rest",
                process.pid,
                self._kill_grace_sec,
            )

        def _result(future: Future) -> str:
            return future.result() if future.done() else ""

        return _result(stdout_future), _result(stderr_future)
