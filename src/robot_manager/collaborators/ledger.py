"""
Resource Ledger interface.

The ledger starts external processes on behalf of robot features and hands
back opaque ResourceHandles. It reports out-of-band when a resource dies:
each handle has a failure event that readiness waits block on, and
registered callbacks are told about every failure.
"""

import itertools
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, List

logger = logging.getLogger(__name__)

FailureCallback = Callable[["ResourceHandle"], None]


@dataclass(frozen=True)
class ResourceHandle:
    id: int
    package: str
    executable: str
    args: str = ""
    namespace: str = ""

    def __str__(self) -> str:
        return f"#{self.id} {self.package}/{self.executable} in {self.namespace}"


class ResourceLedger(ABC):

    def __init__(self):
        self._ids = itertools.count(1)
        self._failure_events: Dict[int, threading.Event] = {}
        self._failure_callbacks: List[FailureCallback] = []
        self._events_lock = threading.Lock()

    @abstractmethod
    def allocate(self, package: str, executable: str, args: str, namespace: str) -> ResourceHandle:
        """
        Start a resource and return its handle.

        Raises:
            RobotManagerError: SERVICE_REQ_FAIL if the resource cannot be started
        """

    @abstractmethod
    def release(self, handle: ResourceHandle):
        """
        Stop a resource. Releasing an unknown or already released handle is
        a no-op.
        """

    def stop(self):
        """Release everything still held and stop background work."""

    # -------------------------------------------------------------------------
    # Failure signalling
    # -------------------------------------------------------------------------

    def _mint(self, package: str, executable: str, args: str, namespace: str) -> ResourceHandle:
        handle = ResourceHandle(next(self._ids), package, executable, args, namespace)
        with self._events_lock:
            self._failure_events[handle.id] = threading.Event()
        return handle

    def _forget(self, handle: ResourceHandle):
        with self._events_lock:
            self._failure_events.pop(handle.id, None)

    def failure_event(self, handle: ResourceHandle) -> threading.Event:
        with self._events_lock:
            event = self._failure_events.get(handle.id)
            if event is None:
                # Unknown or released handles never fail again
                event = threading.Event()
            return event

    def has_failed(self, handle: ResourceHandle) -> bool:
        return self.failure_event(handle).is_set()

    def register_failure_callback(self, callback: FailureCallback):
        self._failure_callbacks.append(callback)

    def _report_failure(self, handle: ResourceHandle):
        with self._events_lock:
            event = self._failure_events.get(handle.id)
        if event is None or event.is_set():
            return
        logger.error(f"Resource {handle} reported FAILED")
        event.set()
        for callback in list(self._failure_callbacks):
            try:
                callback(handle)
            except Exception as e:
                logger.error(f"Failure callback for resource {handle} failed: {e}")
