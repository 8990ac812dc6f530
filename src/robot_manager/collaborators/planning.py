"""
Motion planning boundary.

The manager does not plan motions itself. A MotionPlanner creates one
PlanningGroupHandle per planning group once the manipulation controller is
ready; the handles are then driven by the manipulation operations.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from ..geometry import Pose

# Applied to every planning group when it is created
PLANNER_ID = "RRTConnectkConfigDefault"
NUM_PLANNING_ATTEMPTS = 2
PLANNING_TIME = 5.0
GOAL_POSITION_TOLERANCE = 0.001
GOAL_ORIENTATION_TOLERANCE = 0.001
GOAL_JOINT_TOLERANCE = 0.001


class PlanningGroupHandle(ABC):

    name: str = ""

    def configure_defaults(self):
        self.set_planner_id(PLANNER_ID)
        self.set_num_planning_attempts(NUM_PLANNING_ATTEMPTS)
        self.set_planning_time(PLANNING_TIME)
        self.set_goal_position_tolerance(GOAL_POSITION_TOLERANCE)
        self.set_goal_orientation_tolerance(GOAL_ORIENTATION_TOLERANCE)
        self.set_goal_joint_tolerance(GOAL_JOINT_TOLERANCE)

    @abstractmethod
    def set_planner_id(self, planner_id: str):
        pass

    @abstractmethod
    def set_num_planning_attempts(self, attempts: int):
        pass

    @abstractmethod
    def set_planning_time(self, seconds: float):
        pass

    @abstractmethod
    def set_goal_position_tolerance(self, tolerance: float):
        pass

    @abstractmethod
    def set_goal_orientation_tolerance(self, tolerance: float):
        pass

    @abstractmethod
    def set_goal_joint_tolerance(self, tolerance: float):
        pass

    @abstractmethod
    def set_start_state_to_current_state(self):
        pass

    @abstractmethod
    def set_pose_target(self, pose: Pose):
        pass

    @abstractmethod
    def set_named_target(self, name: str):
        pass

    @abstractmethod
    def plan(self) -> Optional[Any]:
        """Returns an opaque plan, or None when no solution was found."""

    @abstractmethod
    def execute(self, plan: Any) -> bool:
        pass

    @abstractmethod
    def current_pose(self) -> Pose:
        """Current end-effector pose of the group."""


class MotionPlanner(ABC):

    @abstractmethod
    def create_group(self, name: str, namespace: str) -> PlanningGroupHandle:
        """
        Raises:
            RobotManagerError: SERVICE_REQ_FAIL if the group cannot be reached
        """
