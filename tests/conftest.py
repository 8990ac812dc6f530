"""Shared fakes for the manager's collaborators."""

import threading
from typing import Dict, List, Tuple

import pytest

from robot_manager.collaborators.discovery import InMemoryDiscovery
from robot_manager.collaborators.gripper import GripperClient
from robot_manager.collaborators.ledger import ResourceHandle, ResourceLedger
from robot_manager.collaborators.navigation import SUCCEEDED, NavigationClient
from robot_manager.collaborators.planning import MotionPlanner, PlanningGroupHandle
from robot_manager.config.parser import parse_robot_configs
from robot_manager.errors import ErrorCode, RobotManagerError
from robot_manager.features.feature import WaitSettings
from robot_manager.geometry import Point, Pose
from robot_manager.manager import RobotManager
from robot_manager.recovery import RetryPolicy
from robot_manager.robot import RobotServices

# executable -> readiness names it declares once started
DEFAULT_READINESS = {
    "urdf_publisher": [("param", "robot_description")],
    "arm_driver": [("topic", "joint_states")],
    "move_group": [("param", "robot_description_semantic")],
    "base_driver": [("topic", "odom")],
    "move_base": [("topic", "cmd_vel")],
    "gripper_driver": [],
    "gripper_server": [("service", "gripper_control")],
}


class FakeLedger(ResourceLedger):
    """
    Records allocations and releases. Started executables declare their
    readiness names in the shared discovery registry.
    """

    def __init__(self, discovery: InMemoryDiscovery, readiness=None):
        super().__init__()
        self.discovery = discovery
        self.readiness = dict(DEFAULT_READINESS if readiness is None else readiness)
        self.events: List[Tuple[str, str, str]] = []
        self.held: Dict[int, ResourceHandle] = {}
        self.refuse = set()          # executables whose allocation raises
        self.fail_on_start = set()   # executables that report FAILED right away
        self.never_ready = set()     # executables that never declare readiness
        self.stopped = False
        self._lock = threading.Lock()

    def allocate(self, package, executable, args, namespace):
        if self.stopped:
            raise RobotManagerError(ErrorCode.SERVICE_REQ_FAIL, f"ledger stopped, cannot start {executable}")
        if executable in self.refuse:
            raise RobotManagerError(ErrorCode.SERVICE_REQ_FAIL, f"cannot start {executable}")
        handle = self._mint(package, executable, args, namespace)
        with self._lock:
            self.events.append(("allocate", executable, namespace))
            self.held[handle.id] = handle
        if executable in self.fail_on_start:
            self._report_failure(handle)
        elif executable not in self.never_ready:
            for kind, suffix in self.readiness.get(executable, []):
                self.discovery.declare(kind, f"{namespace}/{suffix}")
        return handle

    def release(self, handle):
        with self._lock:
            self.events.append(("release", handle.executable, handle.namespace))
            self.held.pop(handle.id, None)
        self._forget(handle)

    def stop(self):
        self.stopped = True

    def fail(self, handle):
        self._report_failure(handle)

    def allocations(self) -> List[str]:
        return [e[1] for e in self.events if e[0] == "allocate"]

    def releases(self) -> List[str]:
        return [e[1] for e in self.events if e[0] == "release"]

    def handle_for(self, executable: str) -> ResourceHandle:
        with self._lock:
            return next(h for h in self.held.values() if h.executable == executable)


class FakeGroup(PlanningGroupHandle):

    def __init__(self, name, namespace):
        self.name = name
        self.namespace = namespace
        self.settings = {}
        self.calls = []
        self.plan_result = "ok"
        self.execute_result = True
        self.pose = Pose(position=Point(x=0.4, y=0.1, z=0.9))
        self.executed = []

    def set_planner_id(self, planner_id):
        self.settings["planner_id"] = planner_id

    def set_num_planning_attempts(self, attempts):
        self.settings["attempts"] = attempts

    def set_planning_time(self, seconds):
        self.settings["planning_time"] = seconds

    def set_goal_position_tolerance(self, tolerance):
        self.settings["position_tolerance"] = tolerance

    def set_goal_orientation_tolerance(self, tolerance):
        self.settings["orientation_tolerance"] = tolerance

    def set_goal_joint_tolerance(self, tolerance):
        self.settings["joint_tolerance"] = tolerance

    def set_start_state_to_current_state(self):
        self.calls.append(("start_state",))

    def set_pose_target(self, pose):
        self.calls.append(("pose_target", pose))

    def set_named_target(self, name):
        self.calls.append(("named_target", name))

    def plan(self):
        if self.plan_result is None:
            return None
        target = [c for c in self.calls if c[0] in ("named_target", "pose_target")][-1]
        return f"plan:{self.name}:{target[1] if target[0] == 'named_target' else 'pose'}"

    def execute(self, plan):
        self.executed.append(plan)
        return self.execute_result

    def current_pose(self):
        return self.pose


class FakePlanner(MotionPlanner):

    def __init__(self):
        self.groups: Dict[str, FakeGroup] = {}

    def create_group(self, name, namespace):
        group = FakeGroup(name, namespace)
        self.groups[name] = group
        return group


class FakeNavigation(NavigationClient):

    def __init__(self, available=True, state=SUCCEEDED):
        self.available = available
        self.state = state
        self.goals = []

    def wait_for_server(self, server, timeout):
        return self.available

    def send_goal(self, server, goal):
        self.goals.append((server, goal))
        return str(len(self.goals))

    def wait_for_result(self, server, goal_id):
        return self.state


class FakeGripper(GripperClient):

    def __init__(self, success=True, reachable=True):
        self.success = success
        self.reachable = reachable
        self.calls = []

    def control(self, service, name, position):
        if not self.reachable:
            raise RobotManagerError(ErrorCode.SERVICE_REQ_FAIL, f"{service} unreachable")
        self.calls.append((service, name, position))
        return self.success


def robot_entry(name="alpha", reliability=1.0, urdf=True, manipulation=True,
                navigation=False, gripper=False, manipulation_driver=True):
    entry = {"name": name, "reliability": reliability}
    if urdf:
        entry["urdf"] = {"package": "alpha_description", "executable": "urdf_publisher"}
    if manipulation:
        entry["manipulation"] = {
            "controller": {"package": "alpha_moveit", "executable": "move_group", "args": "--sim"},
            "planning_groups": ["arm", "wrist"],
        }
        if manipulation_driver:
            entry["manipulation"]["driver"] = {"package": "alpha_drivers", "executable": "arm_driver"}
    if navigation:
        entry["navigation"] = {
            "driver": {"package": "alpha_drivers", "executable": "base_driver"},
            "controller": {"package": "alpha_nav", "executable": "move_base"},
            "global_planner": "navfn/NavfnROS",
            "local_planner": "dwa_local_planner/DWAPlannerROS",
        }
    if gripper:
        entry["gripper"] = {
            "driver": {"package": "alpha_drivers", "executable": "gripper_driver"},
            "controller": {"package": "alpha_gripper", "executable": "gripper_server"},
        }
    return entry


def make_configs(entries, namespace):
    return parse_robot_configs({"Robots": entries}, namespace)


FAST_WAIT = WaitSettings(poll_interval=0.01, readiness_timeout=0.5)


@pytest.fixture
def discovery():
    return InMemoryDiscovery()


@pytest.fixture
def ledger(discovery):
    return FakeLedger(discovery)


@pytest.fixture
def planner():
    return FakePlanner()


@pytest.fixture
def services(ledger, discovery, planner):
    return RobotServices(
        ledger=ledger,
        discovery=discovery,
        planner=planner,
        navigation=FakeNavigation(),
        gripper=FakeGripper(),
        wait=FAST_WAIT,
        navigation_server_timeout=0.01,
    )


@pytest.fixture
def make_manager():
    """Build managers with their own fake collaborators."""
    managers = []

    def _make(namespace, entries=(), channel=None, client_factory=None, peers=None,
              recovery_enabled=True, retry_policy=None):
        discovery = InMemoryDiscovery()
        services = RobotServices(
            ledger=FakeLedger(discovery),
            discovery=discovery,
            planner=FakePlanner(),
            navigation=FakeNavigation(),
            gripper=FakeGripper(),
            wait=FAST_WAIT,
            navigation_server_timeout=0.01,
        )
        manager = RobotManager(
            namespace,
            services,
            channel=channel,
            public_url=f"http://{namespace}.test",
            peers=peers,
            client_factory=client_factory,
            retry_policy=retry_policy or RetryPolicy(max_attempts=2, base_delay=0.01, max_delay=0.05),
            recovery_enabled=recovery_enabled,
        )
        manager.store.add_local(make_configs(list(entries), namespace))
        managers.append(manager)
        return manager

    yield _make

    for manager in managers:
        manager.shutdown()

