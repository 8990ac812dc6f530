"""Bounded readiness wait that wakes up as soon as a resource fails."""

import logging
import threading
import time
from typing import Callable, Optional

from ..errors import ErrorCode, RobotManagerError

logger = logging.getLogger(__name__)


def cancelled_error(description: str) -> RobotManagerError:
    return RobotManagerError(
        ErrorCode.SERVICE_STATUS_FAIL,
        f"Loading cancelled while waiting for {description}, the manager is shutting down",
    )


def wait_until_ready(
    check: Callable[[], bool],
    description: str,
    failure_event: threading.Event,
    poll_interval: float = 1.0,
    timeout: Optional[float] = 30.0,
    cancel_event: Optional[threading.Event] = None,
):
    """
    Poll ``check`` until it returns True.

    Args:
        check: Readiness predicate
        description: What is being waited for, used in logs and errors
        failure_event: Set by the resource ledger when the resource fails
        poll_interval: Seconds between checks
        timeout: Overall bound in seconds, None to wait indefinitely
        cancel_event: Set by the owner to abandon the wait, checked at
            least once per poll interval

    Raises:
        RobotManagerError: SERVICE_STATUS_FAIL if the failure event fires or
            the wait is cancelled, TIMEOUT if the bound is exceeded
    """
    deadline = None if timeout is None else time.monotonic() + timeout
    logger.info(f"Waiting for {description}")

    while True:
        if failure_event.is_set():
            break
        if cancel_event is not None and cancel_event.is_set():
            raise cancelled_error(description)
        if check():
            logger.info(f"{description} is ready")
            return

        delay = poll_interval
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise RobotManagerError(
                    ErrorCode.TIMEOUT,
                    f"Timed out after {timeout:.1f}s waiting for {description}",
                )
            delay = min(delay, remaining)

        if failure_event.wait(delay):
            break

    raise RobotManagerError(
        ErrorCode.SERVICE_STATUS_FAIL,
        f"Loading interrupted, the resource providing {description} reported FAILED",
    )
