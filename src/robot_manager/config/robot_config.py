"""
Robot Configuration Model

A RobotConfig describes one robot and the capability bundles it offers:
URDF description, manipulation, navigation and gripper. Each capability is
optional; a present section means the capability is enabled. The raw mapping
the config was parsed from is kept so it can be re-advertised and returned
verbatim, with the reliability score kept current.
"""

import copy
import shlex
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import yaml

from ..errors import ErrorCode, RobotManagerError

FEATURE_SECTIONS = ("urdf", "manipulation", "navigation", "gripper")


def _config_fail(message: str) -> RobotManagerError:
    return RobotManagerError(ErrorCode.CONFIG_FAIL, message)


def _require_mapping(data: Any, what: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise _config_fail(f"'{what}' must be a mapping, got {type(data).__name__}")
    return data


def _require_str(data: Dict[str, Any], key: str, what: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise _config_fail(f"'{what}.{key}' must be a non-empty string")
    return value


# =============================================================================
# Feature Specs
# =============================================================================

@dataclass
class ProcessSpec:
    """Something the resource ledger can start: package, executable, args."""
    package: str
    executable: str
    args: str = ""

    @classmethod
    def from_dict(cls, data: Any, what: str) -> "ProcessSpec":
        data = _require_mapping(data, what)
        args = data.get("args", "")
        if args is None:
            args = ""
        elif isinstance(args, list):
            if not all(isinstance(a, str) for a in args):
                raise _config_fail(f"{what}: every entry of 'args' must be a string")
            args = shlex.join(args)
        elif not isinstance(args, str):
            raise _config_fail(f"{what}: 'args' must be a string or a list of strings")
        return cls(
            package=_require_str(data, "package", what),
            executable=_require_str(data, "executable", what),
            args=args,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"package": self.package, "executable": self.executable, "args": self.args}


@dataclass
class ManipulationSpec:
    controller: ProcessSpec
    driver: Optional[ProcessSpec] = None
    planning_groups: List[str] = field(default_factory=list)
    active_planning_group: str = ""

    def __post_init__(self):
        if not self.active_planning_group and self.planning_groups:
            self.active_planning_group = self.planning_groups[0]

    @property
    def driver_enabled(self) -> bool:
        return self.driver is not None

    @classmethod
    def from_dict(cls, data: Any) -> "ManipulationSpec":
        data = _require_mapping(data, "manipulation")
        groups = data.get("planning_groups") or []
        if not isinstance(groups, list) or not all(isinstance(g, str) for g in groups):
            raise _config_fail("'manipulation.planning_groups' must be a list of strings")
        driver = data.get("driver")
        return cls(
            controller=ProcessSpec.from_dict(data.get("controller"), "manipulation.controller"),
            driver=ProcessSpec.from_dict(driver, "manipulation.driver") if driver is not None else None,
            planning_groups=list(groups),
            active_planning_group=str(data.get("active_planning_group") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "controller": self.controller.to_dict(),
            "planning_groups": list(self.planning_groups),
            "active_planning_group": self.active_planning_group,
        }
        if self.driver is not None:
            data["driver"] = self.driver.to_dict()
        return data


@dataclass
class NavigationSpec:
    controller: ProcessSpec
    driver: Optional[ProcessSpec] = None
    global_planner: str = ""
    local_planner: str = ""

    @property
    def driver_enabled(self) -> bool:
        return self.driver is not None

    @classmethod
    def from_dict(cls, data: Any) -> "NavigationSpec":
        data = _require_mapping(data, "navigation")
        driver = data.get("driver")
        return cls(
            controller=ProcessSpec.from_dict(data.get("controller"), "navigation.controller"),
            driver=ProcessSpec.from_dict(driver, "navigation.driver") if driver is not None else None,
            global_planner=str(data.get("global_planner") or ""),
            local_planner=str(data.get("local_planner") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "controller": self.controller.to_dict(),
            "global_planner": self.global_planner,
            "local_planner": self.local_planner,
        }
        if self.driver is not None:
            data["driver"] = self.driver.to_dict()
        return data


@dataclass
class GripperSpec:
    controller: ProcessSpec
    driver: Optional[ProcessSpec] = None

    @property
    def driver_enabled(self) -> bool:
        return self.driver is not None

    @classmethod
    def from_dict(cls, data: Any) -> "GripperSpec":
        data = _require_mapping(data, "gripper")
        driver = data.get("driver")
        return cls(
            controller=ProcessSpec.from_dict(data.get("controller"), "gripper.controller"),
            driver=ProcessSpec.from_dict(driver, "gripper.driver") if driver is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {"controller": self.controller.to_dict()}
        if self.driver is not None:
            data["driver"] = self.driver.to_dict()
        return data


# =============================================================================
# Robot Config
# =============================================================================

@dataclass(eq=False)
class RobotConfig:
    name: str
    namespace: str = ""
    reliability: float = 1.0
    urdf: Optional[ProcessSpec] = None
    manipulation: Optional[ManipulationSpec] = None
    navigation: Optional[NavigationSpec] = None
    gripper: Optional[GripperSpec] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    def __post_init__(self):
        self.reliability = min(1.0, max(0.0, float(self.reliability)))

    def __eq__(self, other) -> bool:
        # Reliability is runtime state and does not take part in equality
        if not isinstance(other, RobotConfig):
            return NotImplemented
        return (
            self.name == other.name
            and self.namespace == other.namespace
            and self.urdf == other.urdf
            and self.manipulation == other.manipulation
            and self.navigation == other.navigation
            and self.gripper == other.gripper
        )

    @property
    def key(self) -> Tuple[str, str]:
        return (self.name, self.namespace)

    @property
    def absolute_namespace(self) -> str:
        return f"/{self.namespace}/robot_manager/robots/{self.name}"

    @property
    def urdf_enabled(self) -> bool:
        return self.urdf is not None

    @property
    def manipulation_enabled(self) -> bool:
        return self.manipulation is not None

    @property
    def navigation_enabled(self) -> bool:
        return self.navigation is not None

    @property
    def gripper_enabled(self) -> bool:
        return self.gripper is not None

    @property
    def any_feature_enabled(self) -> bool:
        return any(getattr(self, section) is not None for section in FEATURE_SECTIONS)

    def adjust_reliability(self, value: float):
        self.reliability = min(1.0, max(0.0, float(value)))
        self.raw["reliability"] = self.reliability

    def set_active_planning_group(self, group_name: str):
        if self.manipulation is None:
            return
        self.manipulation.active_planning_group = group_name
        section = self.raw.get("manipulation")
        if isinstance(section, dict):
            section["active_planning_group"] = group_name

    @classmethod
    def from_dict(cls, data: Any, namespace: str = "") -> "RobotConfig":
        """
        Build a config from one entry of a ``Robots`` list.

        Raises:
            RobotManagerError: CONFIG_FAIL on malformed input or when no
                capability section is present.
        """
        data = _require_mapping(data, "robot")
        name = _require_str(data, "name", "robot")

        reliability = data.get("reliability", 1.0)
        try:
            reliability = float(reliability)
        except (TypeError, ValueError):
            raise _config_fail(f"Robot '{name}' has a non-numeric reliability: {reliability!r}")

        config = cls(
            name=name,
            namespace=namespace,
            reliability=reliability,
            urdf=ProcessSpec.from_dict(data["urdf"], "urdf") if data.get("urdf") is not None else None,
            manipulation=ManipulationSpec.from_dict(data["manipulation"]) if data.get("manipulation") is not None else None,
            navigation=NavigationSpec.from_dict(data["navigation"]) if data.get("navigation") is not None else None,
            gripper=GripperSpec.from_dict(data["gripper"]) if data.get("gripper") is not None else None,
            raw=copy.deepcopy(data),
        )
        if not config.any_feature_enabled:
            raise _config_fail(f"Robot '{name}' does not enable any of: {', '.join(FEATURE_SECTIONS)}")
        config.raw["reliability"] = config.reliability
        return config

    @classmethod
    def from_yaml(cls, text: str, namespace: str = "") -> "RobotConfig":
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise _config_fail(f"Invalid robot config YAML: {e}")
        return cls.from_dict(data, namespace)

    def to_dict(self) -> Dict[str, Any]:
        data = copy.deepcopy(self.raw)
        data["name"] = self.name
        data["reliability"] = self.reliability
        for section in FEATURE_SECTIONS:
            spec = getattr(self, section)
            if spec is not None:
                data[section] = spec.to_dict()
            else:
                data.pop(section, None)
        return data

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), sort_keys=False)
