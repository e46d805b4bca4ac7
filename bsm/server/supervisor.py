"""Single-slot server process supervision backed by a durable PID handle file.

The handle file (``server.pid`` in the server directory) is the only state the
supervisor keeps. Every read treats it as a hint and revalidates it with a
no-op signal before trusting it; a handle whose process is gone is removed on
sight. A probe that fails leaves the handle in place. Recycled PIDs are not
fenced: a handle pointing at an unrelated process that reuses the id reads as
running.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Protocol

from bsm.errors import (
    AlreadyRunningError,
    BsmError,
    ExecutableNotFoundError,
    NotRunningError,
    PermissionDeniedError,
    SignalFailedError,
    StopTimeoutError,
)

logger = logging.getLogger("bsm.server.supervisor")

SERVER_EXECUTABLE = "bedrock_server"
HANDLE_FILENAME = "server.pid"
STOP_POLL_INTERVAL_SECONDS = 1.0
STOP_TIMEOUT_SECONDS = 30.0


class ServerState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class StopOutcome(str, Enum):
    GRACEFUL = "graceful"
    FORCED = "forced"


@dataclass(frozen=True)
class ProcessHandle:
    pid: int
    path: Path


@dataclass(frozen=True)
class ServerStatus:
    state: ServerState
    pid: int | None = None

    @property
    def running(self) -> bool:
        return self.state == ServerState.RUNNING

    def __str__(self) -> str:
        if self.running:
            return f"running (PID: {self.pid})"
        return "stopped"


class SignalSender(Protocol):
    def terminate(self, pid: int) -> None: ...

    def kill(self, pid: int) -> None: ...

    def is_alive(self, pid: int) -> bool: ...


class OsSignals:
    """Deliver real POSIX signals to a process id."""

    def terminate(self, pid: int) -> None:
        os.kill(pid, signal.SIGTERM)

    def kill(self, pid: int) -> None:
        os.kill(pid, getattr(signal, "SIGKILL", signal.SIGTERM))

    def is_alive(self, pid: int) -> bool:
        """Check whether pid exists in the current process table."""
        if pid <= 0:
            return False
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            return True
        return True


class ProcessSupervisor:
    """Start, stop and observe the one server process of a server directory."""

    def __init__(
        self,
        server_dir: str | Path,
        *,
        signals: SignalSender | None = None,
        executable_name: str = SERVER_EXECUTABLE,
        poll_interval: float = STOP_POLL_INTERVAL_SECONDS,
        stop_timeout: float = STOP_TIMEOUT_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.server_dir = Path(server_dir)
        self.handle_path = self.server_dir / HANDLE_FILENAME
        self.executable_path = self.server_dir / executable_name
        self.signals = signals or OsSignals()
        self.poll_interval = poll_interval
        self.stop_timeout = stop_timeout
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start(self) -> ProcessHandle:
        """Spawn the server and record its PID. Does not wait for it to exit."""
        handle = self._live_handle()
        if handle is not None:
            raise AlreadyRunningError(handle.pid)

        if not self.executable_path.is_file():
            raise ExecutableNotFoundError(
                f"{self.executable_path.name} not found in {self.server_dir}"
            )
        try:
            os.chmod(self.executable_path, 0o755)
        except OSError as exc:
            raise PermissionDeniedError(
                f"failed to make {self.executable_path} executable: {exc}"
            ) from exc

        logger.info("Starting server %s", self.executable_path)
        try:
            # stdout/stderr are inherited so the operator sees server output.
            process = subprocess.Popen(
                [str(self.executable_path)],
                cwd=str(self.server_dir),
                start_new_session=True,
            )
        except OSError as exc:
            raise BsmError(
                f"failed to start {self.executable_path}: {exc}",
                error_code="SERVER_START_FAILED",
            ) from exc

        try:
            self._write_handle(process.pid)
        except OSError as exc:
            process.kill()
            process.wait()
            raise BsmError(
                f"failed to write PID file {self.handle_path} for PID {process.pid}: {exc}",
                error_code="HANDLE_WRITE_FAILED",
            ) from exc

        self._spawn_reaper(process)
        logger.info("Server running with PID %d", process.pid)
        return ProcessHandle(pid=process.pid, path=self.handle_path)

    def stop(self) -> StopOutcome:
        """Terminate gracefully, escalating to a kill after the stop ceiling."""
        handle = self._live_handle()
        if handle is None:
            raise NotRunningError(f"server is not running (no live PID in {self.handle_path})")
        pid = handle.pid

        logger.info("Stopping server PID %d", pid)
        if not self._deliver(self.signals.terminate, pid, "termination"):
            self._remove_handle(pid)
            return StopOutcome.GRACEFUL

        try:
            self._wait_for_exit(pid)
        except StopTimeoutError as exc:
            logger.warning("%s; sending kill", exc)
            self._deliver(self.signals.kill, pid, "kill")
            self._remove_handle(pid)
            return StopOutcome.FORCED

        self._remove_handle(pid)
        logger.info("Server PID %d stopped", pid)
        return StopOutcome.GRACEFUL

    def status(self) -> ServerStatus:
        handle = self._live_handle()
        if handle is None:
            return ServerStatus(ServerState.STOPPED)
        return ServerStatus(ServerState.RUNNING, handle.pid)

    def is_running(self) -> bool:
        try:
            return self._live_handle() is not None
        except BsmError:
            return False

    def read_handle(self) -> ProcessHandle | None:
        """Return the recorded handle without probing it, or None when absent."""
        pid = self._read_pid()
        if pid is None:
            return None
        return ProcessHandle(pid=pid, path=self.handle_path)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _read_pid(self) -> int | None:
        try:
            raw = self.handle_path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise BsmError(
                f"failed to read PID file {self.handle_path}: {exc}",
                error_code="HANDLE_READ_FAILED",
            ) from exc
        pid = int(raw)
        if pid <= 0:
            raise ValueError(f"invalid PID {pid}")
        return pid

    def _live_handle(self) -> ProcessHandle | None:
        """Return the handle only if its process answers a liveness probe."""
        try:
            handle = self.read_handle()
        except ValueError as exc:
            logger.warning("Removing unreadable PID file %s: %s", self.handle_path, exc)
            self._discard_handle()
            return None
        if handle is None:
            return None
        if self._probe(handle.pid):
            return handle
        logger.warning("Removing stale PID file %s (PID %d is not running)", self.handle_path, handle.pid)
        self._remove_handle(handle.pid)
        return None

    def _probe(self, pid: int) -> bool:
        """Liveness of ``pid``; raises when the probe itself fails."""
        try:
            return bool(self.signals.is_alive(pid))
        except OSError as exc:
            raise BsmError(
                f"failed to probe server PID {pid}: {exc}",
                error_code="PROBE_FAILED",
            ) from exc

    def _deliver(self, send: Callable[[int], None], pid: int, label: str) -> bool:
        """Send a signal; False when the process is already gone."""
        try:
            send(pid)
        except ProcessLookupError:
            logger.info("Server PID %d already exited before %s signal", pid, label)
            return False
        except OSError as exc:
            raise SignalFailedError(
                f"failed to send {label} signal to server PID {pid}: {exc}", pid=pid
            ) from exc
        return True

    def _wait_for_exit(self, pid: int) -> None:
        waited = 0.0
        while waited < self.stop_timeout:
            if not self._probe(pid):
                return
            self._sleep(self.poll_interval)
            waited += self.poll_interval
        if self._probe(pid):
            raise StopTimeoutError(
                f"server PID {pid} still running after {self.stop_timeout:g}s"
            )

    def _write_handle(self, pid: int) -> None:
        tmp = self.handle_path.with_name(self.handle_path.name + ".tmp")
        with open(tmp, "w", encoding="utf-8") as fh:
            fh.write(str(pid))
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, self.handle_path)

    def _discard_handle(self) -> None:
        try:
            self.handle_path.unlink()
        except FileNotFoundError:
            pass

    def _remove_handle(self, pid: int) -> None:
        """Delete the handle if it still records ``pid``."""
        try:
            current = self._read_pid()
        except ValueError:
            current = None
        if current == pid:
            self._discard_handle()

    def _spawn_reaper(self, process: subprocess.Popen) -> None:
        reaper = threading.Thread(
            target=self._reap,
            args=(process,),
            name=f"bsm-reaper-{process.pid}",
            daemon=True,
        )
        reaper.start()

    def _reap(self, process: subprocess.Popen) -> None:
        code = process.wait()
        logger.info("Server PID %d exited with code %s", process.pid, code)
        try:
            self._remove_handle(process.pid)
        except (BsmError, OSError) as exc:
            logger.warning("Failed to remove PID file %s after exit: %s", self.handle_path, exc)
