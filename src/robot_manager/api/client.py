"""
Robot Manager HTTP client.

Used by applications and by managers forwarding requests for robots owned
by a peer. Transport failures and non-2xx responses raise SERVICE_REQ_FAIL;
a delivered FAILED response is re-raised with its error stack unchanged.
"""

import logging
from typing import Any, Dict, Optional, Tuple

import requests

from ..errors import ErrorCode, RobotManagerError
from ..geometry import Pose

logger = logging.getLogger(__name__)


class RobotManagerClient:

    def __init__(self, base_url: Optional[str] = None, session=None, timeout: Optional[float] = 120.0):
        """
        Args:
            base_url: Root URL of the manager, e.g. http://host:8000
            session: Object with a requests-style ``post``; defaults to a
                new requests.Session
            timeout: Seconds per request, None to wait indefinitely. Loads
                block until the robot is ready, so this must cover every
                readiness wait of a load.
        """
        self.base_url = base_url.rstrip("/") if base_url else None
        self.session = session or requests.Session()
        self.timeout = timeout

    def _post(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.base_url:
            raise RobotManagerError(ErrorCode.UNINITIALIZED, "Robot manager client has no base URL")

        url = f"{self.base_url}/robot_manager/{endpoint}"
        try:
            resp = self.session.post(url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise RobotManagerError(ErrorCode.SERVICE_REQ_FAIL, f"Request to {url} failed: {e}")

        if not 200 <= resp.status_code < 300:
            raise RobotManagerError(
                ErrorCode.SERVICE_REQ_FAIL,
                f"Request to {url} returned HTTP {resp.status_code}",
            )
        try:
            data = resp.json()
        except ValueError as e:
            raise RobotManagerError(ErrorCode.SERVICE_REQ_FAIL, f"Invalid response from {url}: {e}")

        if data.get("code") != "OK":
            raise RobotManagerError.from_stack(data.get("error_stack") or [])
        return data

    # =========================================================================
    # Operations
    # =========================================================================

    def load_robot(self, robot_name: str) -> Dict[str, Any]:
        return self._post("load", {"robot_name": robot_name})

    def unload_robot(self, robot_name: str):
        self._post("unload", {"robot_name": robot_name})

    def plan_manipulation(
        self,
        robot_name: str,
        planning_group: str = "",
        use_named_target: bool = False,
        named_target: str = "",
        target_pose: Optional[Pose] = None,
    ):
        self._post("plan", {
            "robot_name": robot_name,
            "planning_group": planning_group,
            "use_named_target": use_named_target,
            "named_target": named_target,
            "target_pose": (target_pose or Pose()).model_dump(),
        })

    def execute_plan(self, robot_name: str) -> bool:
        return bool(self._post("execute", {"robot_name": robot_name}).get("success", False))

    def get_manipulation_target(self, robot_name: str) -> Pose:
        data = self._post("get_manipulation_target", {"robot_name": robot_name})
        return Pose.model_validate(data.get("pose") or {})

    def navigation_goal(self, robot_name: str, reference_frame: str, target_pose: Pose):
        self._post("navigation_goal", {
            "robot_name": robot_name,
            "reference_frame": reference_frame,
            "target_pose": target_pose.model_dump(),
        })

    def gripper_control(self, robot_name: str, gripper_name: str, position: float):
        self._post("gripper_control", {
            "robot_name": robot_name,
            "gripper_name": gripper_name,
            "position": position,
        })

    def get_viz_info(self, robot_name: str) -> str:
        return self._post("get_viz_info", {"robot_name": robot_name}).get("info", "")

    def get_robot_config(self, robot_name: str) -> Tuple[str, str]:
        data = self._post("get_config", {"robot_name": robot_name})
        return data.get("robot_config", ""), data.get("robot_absolute_namespace", "")
