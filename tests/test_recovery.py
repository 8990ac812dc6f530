import threading

import pytest

from robot_manager.errors import ErrorCode, RobotManagerError
from robot_manager.recovery import RetryPolicy


class TestRetryPolicy:

    def test_delays_grow_exponentially_and_are_capped(self):
        policy = RetryPolicy(base_delay=1.0, multiplier=2.0, max_delay=5.0)
        assert [policy.delay(i) for i in range(5)] == [1.0, 2.0, 4.0, 5.0, 5.0]

    def test_succeeds_after_failures(self):
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise RobotManagerError(ErrorCode.SERVICE_STATUS_FAIL, "not yet")

        policy = RetryPolicy(max_attempts=3, base_delay=0.0)
        assert policy.run(flaky, "flaky") is True
        assert len(calls) == 3

    def test_gives_up_after_max_attempts(self):
        calls = []

        def broken():
            calls.append(1)
            raise RobotManagerError(ErrorCode.TIMEOUT, "never")

        assert RetryPolicy(max_attempts=2, base_delay=0.0).run(broken, "broken") is False
        assert len(calls) == 2

    def test_stop_event_cancels_pending_retry(self):
        stop = threading.Event()
        calls = []

        def broken():
            calls.append(1)
            stop.set()
            raise RobotManagerError(ErrorCode.TIMEOUT, "never")

        policy = RetryPolicy(max_attempts=5, base_delay=10.0)
        assert policy.run(broken, "broken", stop_event=stop) is False
        assert len(calls) == 1

    def test_unexpected_errors_propagate(self):
        def buggy():
            raise KeyError("bug")

        with pytest.raises(KeyError):
            RetryPolicy(max_attempts=3, base_delay=0.0).run(buggy, "buggy")
