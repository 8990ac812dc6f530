"""
Navigation action boundary.

HttpNavigationClient talks to a navigation bridge exposing the move_base
action of each robot namespace over HTTP:

    GET  {base_url}/servers?name=<ns>/move_base         -> {"available": bool}
    POST {base_url}/goals    {"server", "goal"}          -> {"goal_id": str}
    GET  {base_url}/goals/<goal_id>/result?timeout=<s>   -> {"state": str}
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Optional

import requests

from ..errors import ErrorCode, RobotManagerError
from ..geometry import PoseStamped

logger = logging.getLogger(__name__)

SUCCEEDED = "SUCCEEDED"


class NavigationClient(ABC):

    @abstractmethod
    def wait_for_server(self, server: str, timeout: float) -> bool:
        pass

    @abstractmethod
    def send_goal(self, server: str, goal: PoseStamped) -> str:
        """Returns a goal id."""

    @abstractmethod
    def wait_for_result(self, server: str, goal_id: str) -> str:
        """Block until the goal is terminal and return its state, e.g. SUCCEEDED."""


class HttpNavigationClient(NavigationClient):

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        poll_interval: float = 1.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, **kwargs) -> dict:
        kwargs.setdefault("timeout", self.timeout)
        try:
            resp = self.session.request(method, f"{self.base_url}{path}", **kwargs)
            resp.raise_for_status()
            return resp.json()
        except (requests.RequestException, ValueError) as e:
            raise RobotManagerError(ErrorCode.SERVICE_REQ_FAIL, f"Navigation request {method} {path} failed: {e}")

    def wait_for_server(self, server: str, timeout: float) -> bool:
        deadline = time.monotonic() + timeout
        while True:
            try:
                if self._request("GET", "/servers", params={"name": server}).get("available"):
                    return True
            except RobotManagerError as e:
                logger.debug(f"Navigation server {server} not reachable yet: {e}")
            if time.monotonic() >= deadline:
                return False
            time.sleep(min(self.poll_interval, max(0.0, deadline - time.monotonic())))

    def send_goal(self, server: str, goal: PoseStamped) -> str:
        data = self._request("POST", "/goals", json={"server": server, "goal": goal.model_dump()})
        return str(data["goal_id"])

    def wait_for_result(self, server: str, goal_id: str) -> str:
        while True:
            data = self._request("GET", f"/goals/{goal_id}/result", params={"timeout": self.timeout / 2})
            state = data.get("state")
            if state:
                return str(state)
