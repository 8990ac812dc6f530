"""
Process-backed Resource Ledger

Every allocation is one child process. The executable is looked up under
``<package_root>/<package>/`` for each configured package root, then on
PATH. The robot namespace reaches the process through the ROBOT_NAMESPACE
environment variable and the args string is split shell-style.

A monitor thread polls the children; a process that exits while still
allocated is reported as failed.
"""

import logging
import os
import shlex
import shutil
import subprocess
import threading
from pathlib import Path
from typing import Dict, List, Optional

from ..errors import ErrorCode, RobotManagerError
from .ledger import ResourceHandle, ResourceLedger

logger = logging.getLogger(__name__)


class ProcessResourceLedger(ResourceLedger):

    def __init__(
        self,
        package_roots: Optional[List[str]] = None,
        terminate_timeout: float = 10.0,
        monitor_interval: float = 0.5,
    ):
        super().__init__()
        self.package_roots = [Path(p) for p in (package_roots or [])]
        self.terminate_timeout = terminate_timeout
        self.monitor_interval = monitor_interval

        self._processes: Dict[int, subprocess.Popen] = {}
        self._handles: Dict[int, ResourceHandle] = {}
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._monitor_thread: Optional[threading.Thread] = None

    def resolve_executable(self, package: str, executable: str) -> str:
        for root in self.package_roots:
            candidate = root / package / executable
            if candidate.is_file() and os.access(candidate, os.X_OK):
                return str(candidate)
        found = shutil.which(executable)
        if found is None:
            raise RobotManagerError(
                ErrorCode.SERVICE_REQ_FAIL,
                f"Executable '{executable}' of package '{package}' not found",
            )
        return found

    def allocate(self, package: str, executable: str, args: str, namespace: str) -> ResourceHandle:
        if self._stop_event.is_set():
            raise RobotManagerError(
                ErrorCode.SERVICE_REQ_FAIL,
                f"Resource ledger is stopped, refusing to start {package}/{executable}",
            )
        command = [self.resolve_executable(package, executable)] + shlex.split(args or "")
        env = dict(os.environ)
        env["ROBOT_NAMESPACE"] = namespace

        try:
            process = subprocess.Popen(
                command,
                env=env,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as e:
            raise RobotManagerError(
                ErrorCode.SERVICE_REQ_FAIL,
                f"Failed to start {package}/{executable}: {e}",
            )

        handle = self._mint(package, executable, args, namespace)
        with self._lock:
            stopped = self._stop_event.is_set()
            if not stopped:
                self._processes[handle.id] = process
                self._handles[handle.id] = handle
        if stopped:
            self._forget(handle)
            self._terminate(process)
            raise RobotManagerError(
                ErrorCode.SERVICE_REQ_FAIL,
                f"Resource ledger stopped while starting {package}/{executable}",
            )
        self._ensure_monitor()

        logger.info(f"Started {handle} (PID: {process.pid})")
        return handle

    def release(self, handle: ResourceHandle):
        with self._lock:
            process = self._processes.pop(handle.id, None)
            self._handles.pop(handle.id, None)
        self._forget(handle)
        if process is None:
            return
        self._terminate(process)
        logger.info(f"Stopped {handle}")

    def _terminate(self, process: subprocess.Popen):
        if process.poll() is None:
            process.terminate()
            try:
                process.wait(timeout=self.terminate_timeout)
            except subprocess.TimeoutExpired:
                process.kill()
                process.wait()

    def is_running(self, handle: ResourceHandle) -> bool:
        with self._lock:
            process = self._processes.get(handle.id)
        return process is not None and process.poll() is None

    def stop(self):
        """Release every process and refuse further allocations."""
        self._stop_event.set()
        with self._lock:
            handles = list(self._handles.values())
        for handle in handles:
            self.release(handle)
        if self._monitor_thread:
            self._monitor_thread.join(timeout=2.0)
            self._monitor_thread = None

    def _ensure_monitor(self):
        with self._lock:
            if self._stop_event.is_set():
                return
            if self._monitor_thread is not None and self._monitor_thread.is_alive():
                return
            self._monitor_thread = threading.Thread(
                target=self._monitor_loop,
                name="resource-monitor",
                daemon=True,
            )
            self._monitor_thread.start()

    def _monitor_loop(self):
        """Report processes that exited while still allocated."""
        while not self._stop_event.wait(self.monitor_interval):
            with self._lock:
                exited = [
                    (self._handles[hid], process.returncode)
                    for hid, process in self._processes.items()
                    if process.poll() is not None
                ]
            for handle, returncode in exited:
                logger.warning(f"Resource {handle} exited with code {returncode}")
                self._report_failure(handle)
