"""
Robot

One loaded robot: its config, its four capability features and, once
manipulation is up, its planning groups. A robot owned by another manager
(non-local) is a proxy that only carries the config; operations on it are
forwarded by the manager and never reach these methods.
"""

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

import yaml

from .collaborators.discovery import Discovery
from .collaborators.gripper import GripperClient
from .collaborators.ledger import ResourceHandle, ResourceLedger
from .collaborators.navigation import SUCCEEDED, NavigationClient
from .collaborators.planning import MotionPlanner, PlanningGroupHandle
from .config.robot_config import RobotConfig
from .errors import ErrorCode, RobotManagerError
from .features.feature import (
    Feature,
    WaitSettings,
    gripper_feature,
    manipulation_feature,
    navigation_feature,
    urdf_feature,
)
from .geometry import Pose, PoseStamped

logger = logging.getLogger(__name__)


@dataclass
class RobotServices:
    """Collaborators shared by every robot of a manager. Not owned by the robot."""
    ledger: ResourceLedger
    discovery: Discovery
    planner: Optional[MotionPlanner] = None
    navigation: Optional[NavigationClient] = None
    gripper: Optional[GripperClient] = None
    wait: WaitSettings = field(default_factory=WaitSettings)
    navigation_server_timeout: float = 5.0
    # the manager's shutdown signal, cancels in-flight loads
    stop_event: Optional[threading.Event] = None


class Robot:

    def __init__(
        self,
        config: RobotConfig,
        manager_namespace: str,
        services: Optional[RobotServices] = None,
        robot_id: Optional[str] = None,
    ):
        self.config = config
        self.manager_namespace = manager_namespace
        self.services = services
        self.robot_id = robot_id or uuid.uuid4().hex

        self.planning_groups: Dict[str, PlanningGroupHandle] = {}
        self.active_planning_group = config.manipulation.active_planning_group if config.manipulation else ""
        self.last_plan: Optional[Any] = None
        self.last_plan_valid = False

        self._lock = threading.RLock()
        self.features: Dict[str, Feature] = {}
        if self.is_local():
            if services is None:
                raise RobotManagerError(ErrorCode.UNINITIALIZED, f"Local robot '{config.name}' needs robot services")
            self._build_features()

    def __repr__(self) -> str:
        return f"Robot(name={self.config.name!r}, namespace={self.config.namespace!r}, id={self.robot_id})"

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def absolute_namespace(self) -> str:
        return self.config.absolute_namespace

    def is_local(self) -> bool:
        return self.config.namespace == self.manager_namespace

    def _build_features(self):
        cfg = self.config
        ns = cfg.absolute_namespace
        s = self.services
        wait = s.wait if s.stop_event is None else replace(s.wait, cancel_event=s.stop_event)
        if cfg.urdf is not None:
            self.features["urdf"] = urdf_feature(cfg.urdf, ns, s.ledger, s.discovery, wait)
        if cfg.manipulation is not None:
            self.features["manipulation"] = manipulation_feature(
                cfg.manipulation, ns, s.ledger, s.discovery,
                post_load=self._add_planning_groups, wait=wait,
            )
        if cfg.navigation is not None:
            self.features["navigation"] = navigation_feature(cfg.navigation, ns, s.ledger, s.discovery, wait)
        if cfg.gripper is not None:
            self.features["gripper"] = gripper_feature(cfg.gripper, ns, s.ledger, s.discovery, wait)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def load(self):
        """
        Load every enabled feature: URDF, manipulation, navigation, gripper.

        Each feature brings its driver up before its controller. The first
        failure aborts the sequence; features already loaded stay loaded
        until teardown.

        Raises:
            RobotManagerError: CONFIG_FAIL if nothing is enabled,
                UNINITIALIZED if manipulation has no motion planner, or
                whatever a feature load raised
        """
        if not self.config.any_feature_enabled:
            raise RobotManagerError(ErrorCode.CONFIG_FAIL, f"Robot '{self.name}' has no enabled features")
        if not self.is_local():
            raise RobotManagerError(ErrorCode.UNINITIALIZED, f"Robot '{self.name}' is owned by '{self.config.namespace}'")
        if self.config.manipulation is not None and self.services.planner is None:
            raise RobotManagerError(
                ErrorCode.UNINITIALIZED,
                f"Robot '{self.name}' enables manipulation but no motion planner is configured",
            )

        with self._lock:
            logger.info(f"Loading robot '{self.name}' in {self.absolute_namespace}")
            for feature in self.features.values():
                feature.load()
            logger.info(f"Robot '{self.name}' loaded")

    def teardown(self):
        """Release every held resource and withdraw the robot's discovery names. Never raises."""
        if not self.is_local():
            return
        with self._lock:
            for feature in self.features.values():
                feature.teardown()
            self.planning_groups.clear()
            self.last_plan = None
            self.last_plan_valid = False
            try:
                removed = self.services.discovery.delete_scope(self.absolute_namespace)
                logger.debug(f"Withdrew {removed} name(s) under {self.absolute_namespace}")
            except Exception as e:
                logger.warning(f"Failed to withdraw names under {self.absolute_namespace}: {e}")
        logger.info(f"Robot '{self.name}' torn down")

    def held_handles(self) -> List[ResourceHandle]:
        handles = []
        for feature in self.features.values():
            handles.extend(feature.handles())
        return handles

    def has_resource(self, handle: ResourceHandle) -> bool:
        return any(feature.owns(handle) for feature in self.features.values())

    def _add_planning_groups(self):
        planner = self.services.planner
        if planner is None:
            raise RobotManagerError(ErrorCode.UNINITIALIZED, "No motion planner configured")
        for group_name in self.config.manipulation.planning_groups:
            logger.info(f"Adding planning group '{group_name}' to robot '{self.name}'")
            group = planner.create_group(group_name, self.absolute_namespace)
            group.configure_defaults()
            self.planning_groups[group_name] = group
        if not self.active_planning_group and self.config.manipulation.planning_groups:
            self.active_planning_group = self.config.manipulation.planning_groups[0]

    # =========================================================================
    # Manipulation
    # =========================================================================

    def plan_manipulation_path(
        self,
        planning_group: str = "",
        use_named_target: bool = False,
        named_target: str = "",
        target_pose: Optional[Pose] = None,
    ):
        """
        Plan to a named target or a pose and keep the plan for execution.

        Raises:
            RobotManagerError: ROBOT_PLAN_FAIL when the robot has no planning
                groups or no solution was found, PLANNING_GROUP_NOT_FOUND for
                an unknown group
        """
        with self._lock:
            if not self.planning_groups:
                raise RobotManagerError(ErrorCode.ROBOT_PLAN_FAIL, f"Robot '{self.name}' has no planning groups")

            group_name = planning_group or self.active_planning_group
            group = self.planning_groups.get(group_name)
            if group is None:
                raise RobotManagerError(
                    ErrorCode.PLANNING_GROUP_NOT_FOUND,
                    f"Planning group '{group_name}' not found on robot '{self.name}'",
                )
            self.active_planning_group = group_name
            self.config.set_active_planning_group(group_name)

            group.set_start_state_to_current_state()
            if use_named_target:
                group.set_named_target(named_target)
            else:
                group.set_pose_target(target_pose or Pose())

            plan = group.plan()
            self.last_plan = plan
            self.last_plan_valid = plan is not None
            if not self.last_plan_valid:
                target = named_target if use_named_target else "pose target"
                raise RobotManagerError(
                    ErrorCode.ROBOT_PLAN_FAIL,
                    f"Planning '{group_name}' to {target} found no solution",
                )
            logger.info(f"Planned '{group_name}' for robot '{self.name}'")

    def execute_manipulation_path(self) -> bool:
        with self._lock:
            if not self.last_plan_valid:
                logger.error(f"Robot '{self.name}' has no valid plan to execute")
                return False
            group = self.planning_groups.get(self.active_planning_group)
            if group is None:
                logger.error(f"Active planning group '{self.active_planning_group}' is gone")
                return False
            group.set_start_state_to_current_state()
            success = group.execute(self.last_plan)
            logger.info(f"Execution on '{self.active_planning_group}' {'succeeded' if success else 'failed'}")
            return success

    def get_manipulation_target(self) -> Pose:
        with self._lock:
            group = self.planning_groups.get(self.active_planning_group)
            if group is None:
                logger.error(f"Cannot read the end-effector pose, no active planning group on '{self.name}'")
                return Pose()
            return group.current_pose()

    # =========================================================================
    # Navigation & gripper
    # =========================================================================

    def goal_navigation(self, reference_frame: str, target_pose: Pose):
        """Send a goal to the robot's move_base and wait for it. Outcome is only logged."""
        client = self.services.navigation if self.services else None
        if client is None:
            raise RobotManagerError(ErrorCode.UNINITIALIZED, "No navigation client configured")

        server = f"{self.absolute_namespace}/move_base"
        try:
            if not client.wait_for_server(server, self.services.navigation_server_timeout):
                logger.info(f"The move_base action server {server} did not come up")

            goal = PoseStamped(frame_id=reference_frame, stamp=time.time(), pose=target_pose)
            goal_id = client.send_goal(server, goal)
            state = client.wait_for_result(server, goal_id)
        except RobotManagerError as e:
            logger.error(f"Navigation goal for '{self.name}' failed: {e}")
            return

        if state == SUCCEEDED:
            logger.info(f"Robot '{self.name}' reached the goal in frame '{reference_frame}'")
        else:
            logger.info(f"Robot '{self.name}' failed to reach the goal ({state})")

    def control_gripper(self, gripper_name: str, position: float):
        """
        Raises:
            RobotManagerError: SERVICE_REQ_FAIL if the gripper service is unreachable
        """
        client = self.services.gripper if self.services else None
        if client is None:
            raise RobotManagerError(ErrorCode.UNINITIALIZED, "No gripper client configured")

        service = f"{self.absolute_namespace}/gripper_control"
        if client.control(service, gripper_name, position):
            logger.info(f"Gripper '{gripper_name}' of '{self.name}' moved to {position}")
        else:
            logger.info(f"Gripper '{gripper_name}' of '{self.name}' failed to move to {position}")

    # =========================================================================
    # Introspection
    # =========================================================================

    def get_viz_info(self) -> str:
        cfg = self.config
        ns = cfg.absolute_namespace
        rviz: Dict[str, Any] = {}
        if cfg.urdf is not None:
            rviz["urdf"] = {"robot_description": f"{ns}/robot_description"}
        if cfg.manipulation is not None:
            rviz["manipulation"] = {
                "move_group_ns": ns,
                "active_planning_group": self.active_planning_group or cfg.manipulation.active_planning_group,
            }
        if cfg.navigation is not None:
            rviz["navigation"] = {
                "move_base_ns": ns,
                "global_planner": cfg.navigation.global_planner,
                "local_planner": cfg.navigation.local_planner,
            }
        if cfg.gripper is not None:
            rviz["gripper"] = {"gripper_ns": ns}
        return yaml.safe_dump({"RViz": rviz}, sort_keys=False)
