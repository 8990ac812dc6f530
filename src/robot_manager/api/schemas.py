from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..geometry import Pose


class RobotRequest(BaseModel):
    robot_name: str = ""


class PlanRequest(RobotRequest):
    planning_group: str = ""
    use_named_target: bool = False
    named_target: str = ""
    target_pose: Pose = Field(default_factory=Pose)


class NavigationGoalRequest(RobotRequest):
    reference_frame: str = "map"
    target_pose: Pose = Field(default_factory=Pose)


class GripperControlRequest(RobotRequest):
    gripper_name: str = ""
    position: float = 0.0


class DiscoveryRequest(BaseModel):
    kind: str
    name: str


class ManagerResponse(BaseModel):
    code: str = "OK"
    message: str = ""
    error_stack: List[Dict[str, Any]] = []


class LoadResponse(ManagerResponse):
    robot_name: str = ""
    robot_namespace: str = ""
    handle: str = ""


class ExecuteResponse(ManagerResponse):
    success: bool = False


class ManipulationTargetResponse(ManagerResponse):
    pose: Optional[Pose] = None


class VizInfoResponse(ManagerResponse):
    info: str = ""


class RobotConfigResponse(ManagerResponse):
    robot_config: str = ""
    robot_absolute_namespace: str = ""
