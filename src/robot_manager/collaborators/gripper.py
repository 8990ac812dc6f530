"""
Gripper control boundary.

HttpGripperClient calls ``POST {base_url}/services`` with
``{"service": "<ns>/gripper_control", "name": str, "position": float}`` and
expects ``{"success": bool}``.
"""

from abc import ABC, abstractmethod
from typing import Optional

import requests

from ..errors import ErrorCode, RobotManagerError


class GripperClient(ABC):

    @abstractmethod
    def control(self, service: str, name: str, position: float) -> bool:
        """
        Returns:
            Whether the gripper reported success

        Raises:
            RobotManagerError: SERVICE_REQ_FAIL if the service is unreachable
        """


class HttpGripperClient(GripperClient):

    def __init__(self, base_url: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def control(self, service: str, name: str, position: float) -> bool:
        try:
            resp = self.session.post(
                f"{self.base_url}/services",
                json={"service": service, "name": name, "position": position},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            return bool(resp.json().get("success", False))
        except (requests.RequestException, ValueError) as e:
            raise RobotManagerError(ErrorCode.SERVICE_REQ_FAIL, f"Gripper service {service} unreachable: {e}")
