"""
Feature Load State Machine

A Feature is one capability of a robot (URDF, manipulation, navigation,
gripper). It has a controller component and, for some capabilities, a
driver component that must be LOADED before the controller is started.

Component states:

    DISABLED                       not configured
    UNLOADED -> LOADING -> LOADED  normal load
                LOADING -> FAILED  allocation, readiness or post-load failed

A component only holds a resource handle while LOADED. A component whose
load fails releases the handle it just obtained before the error
propagates.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from ..collaborators.discovery import Discovery
from ..collaborators.ledger import ResourceHandle, ResourceLedger
from ..config.robot_config import GripperSpec, ManipulationSpec, NavigationSpec, ProcessSpec
from .waiting import cancelled_error, wait_until_ready

logger = logging.getLogger(__name__)


class ComponentState(Enum):
    DISABLED = "disabled"
    UNLOADED = "unloaded"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


@dataclass(frozen=True)
class Readiness:
    """Existence of a param, topic or service under the robot namespace."""
    kind: str
    suffix: str

    def target(self, namespace: str) -> str:
        return f"{namespace}/{self.suffix}"

    def is_ready(self, discovery: Discovery, namespace: str) -> bool:
        name = self.target(namespace)
        if self.kind == "param":
            return discovery.param_exists(name)
        if self.kind == "topic":
            return discovery.topic_exists(name)
        if self.kind == "service":
            return discovery.service_exists(name)
        raise ValueError(f"Unknown readiness kind '{self.kind}'")

    def describe(self, namespace: str) -> str:
        return f"{self.kind} '{self.target(namespace)}'"


@dataclass
class Component:
    role: str
    spec: Optional[ProcessSpec]
    readiness: Optional[Readiness]
    state: ComponentState = ComponentState.UNLOADED
    handle: Optional[ResourceHandle] = None

    def __post_init__(self):
        if self.spec is None:
            self.state = ComponentState.DISABLED

    @property
    def loaded(self) -> bool:
        return self.state == ComponentState.LOADED


@dataclass
class WaitSettings:
    poll_interval: float = 1.0
    readiness_timeout: Optional[float] = 30.0
    # set to abandon in-flight loads
    cancel_event: Optional[threading.Event] = None


class Feature:

    def __init__(
        self,
        name: str,
        namespace: str,
        ledger: ResourceLedger,
        discovery: Discovery,
        controller: ProcessSpec,
        controller_readiness: Optional[Readiness],
        driver: Optional[ProcessSpec] = None,
        driver_readiness: Optional[Readiness] = None,
        post_load: Optional[Callable[[], None]] = None,
        wait: Optional[WaitSettings] = None,
    ):
        self.name = name
        self.namespace = namespace
        self.ledger = ledger
        self.discovery = discovery
        self.controller = Component("controller", controller, controller_readiness)
        self.driver = Component("driver", driver, driver_readiness)
        self.post_load = post_load
        self.wait = wait or WaitSettings()

    @property
    def has_driver(self) -> bool:
        return self.driver.state != ComponentState.DISABLED

    @property
    def loaded(self) -> bool:
        return self.controller.loaded

    @property
    def driver_loaded(self) -> bool:
        return self.driver.loaded

    def handles(self) -> List[ResourceHandle]:
        return [c.handle for c in (self.controller, self.driver) if c.handle is not None]

    def owns(self, handle: ResourceHandle) -> bool:
        return any(h.id == handle.id for h in self.handles())

    def load(self):
        """
        Load the driver (if configured) and then the controller.

        Already loaded components are left alone, so calling this again after
        a partial failure only retries what is missing.

        Raises:
            RobotManagerError: from allocation, readiness or post-load
        """
        if self.has_driver:
            self._load_component(self.driver)
        self._load_component(self.controller, self.post_load)

    def teardown(self):
        """Release the controller and then the driver. Never raises."""
        for component in (self.controller, self.driver):
            handle = component.handle
            if component.state != ComponentState.DISABLED:
                component.state = ComponentState.UNLOADED
            if handle is None:
                continue
            component.handle = None
            logger.info(f"Unloading {self.name} {component.role} {handle}")
            try:
                self.ledger.release(handle)
            except Exception as e:
                logger.warning(f"Failed to release {self.name} {component.role} {handle}: {e}")

    def _load_component(self, component: Component, post_load: Optional[Callable[[], None]] = None):
        if component.loaded:
            return

        cancel = self.wait.cancel_event
        if cancel is not None and cancel.is_set():
            component.state = ComponentState.FAILED
            raise cancelled_error(f"{self.name} {component.role}")

        spec = component.spec
        component.state = ComponentState.LOADING
        logger.info(f"Loading {self.name} {component.role} {spec.package}/{spec.executable} for {self.namespace}")

        try:
            handle = self.ledger.allocate(spec.package, spec.executable, spec.args, self.namespace)
        except Exception:
            component.state = ComponentState.FAILED
            raise

        try:
            if component.readiness is not None:
                wait_until_ready(
                    lambda: component.readiness.is_ready(self.discovery, self.namespace),
                    component.readiness.describe(self.namespace),
                    self.ledger.failure_event(handle),
                    poll_interval=self.wait.poll_interval,
                    timeout=self.wait.readiness_timeout,
                    cancel_event=cancel,
                )
            if post_load is not None:
                post_load()
        except Exception:
            component.state = ComponentState.FAILED
            try:
                self.ledger.release(handle)
            except Exception as e:
                logger.warning(f"Failed to release {handle} after a failed load: {e}")
            raise

        component.handle = handle
        component.state = ComponentState.LOADED
        logger.info(f"{self.name} {component.role} loaded for {self.namespace}")


# =============================================================================
# Capability factories
# =============================================================================

def urdf_feature(spec: ProcessSpec, namespace: str, ledger, discovery, wait=None) -> Feature:
    return Feature(
        "urdf", namespace, ledger, discovery,
        controller=spec,
        controller_readiness=Readiness("param", "robot_description"),
        wait=wait,
    )


def manipulation_feature(
    spec: ManipulationSpec,
    namespace: str,
    ledger,
    discovery,
    post_load: Optional[Callable[[], None]] = None,
    wait=None,
) -> Feature:
    return Feature(
        "manipulation", namespace, ledger, discovery,
        controller=spec.controller,
        controller_readiness=Readiness("param", "robot_description_semantic"),
        driver=spec.driver,
        driver_readiness=Readiness("topic", "joint_states"),
        post_load=post_load,
        wait=wait,
    )


def navigation_feature(spec: NavigationSpec, namespace: str, ledger, discovery, wait=None) -> Feature:
    return Feature(
        "navigation", namespace, ledger, discovery,
        controller=spec.controller,
        controller_readiness=Readiness("topic", "cmd_vel"),
        driver=spec.driver,
        driver_readiness=Readiness("topic", "odom"),
        wait=wait,
    )


def gripper_feature(spec: GripperSpec, namespace: str, ledger, discovery, wait=None) -> Feature:
    # The gripper driver is ready as soon as it is allocated
    return Feature(
        "gripper", namespace, ledger, discovery,
        controller=spec.controller,
        controller_readiness=Readiness("service", "gripper_control"),
        driver=spec.driver,
        driver_readiness=None,
        wait=wait,
    )
