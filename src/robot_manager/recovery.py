"""
Retry with exponential backoff, used to reissue a robot load after one of
its resources failed.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Type

from .errors import RobotManagerError

logger = logging.getLogger(__name__)


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0

    def delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (0-based)."""
        return min(self.max_delay, self.base_delay * (self.multiplier ** attempt))

    def run(
        self,
        operation: Callable[[], object],
        description: str,
        stop_event: Optional[threading.Event] = None,
        retry_on: Tuple[Type[BaseException], ...] = (RobotManagerError,),
    ) -> bool:
        """
        Call ``operation`` until it succeeds, attempts run out, or
        ``stop_event`` is set.

        Returns:
            True if an attempt succeeded
        """
        stop_event = stop_event or threading.Event()
        for attempt in range(self.max_attempts):
            if attempt > 0:
                delay = self.delay(attempt - 1)
                logger.info(f"Retrying {description} in {delay:.1f}s (attempt {attempt + 1}/{self.max_attempts})")
                if stop_event.wait(delay):
                    logger.info(f"Retry of {description} cancelled")
                    return False
            elif stop_event.is_set():
                return False
            try:
                operation()
                return True
            except retry_on as e:
                logger.warning(f"{description} failed on attempt {attempt + 1}: {e}")
        logger.error(f"Giving up on {description} after {self.max_attempts} attempt(s)")
        return False
