"""
Robot Manager

Routes every robot request either to a Robot loaded by this manager or to
the peer manager owning the robot's namespace.

Load dispatch:
1. most reliable local config with the requested name: build a Robot and
   load it. On failure the config's reliability drops to 0 and it is
   re-advertised so peers stop picking it.
2. else most reliable remote config: forward the load to its owner and
   track the assignment with a non-local proxy Robot.
3. else ROBOT_NOT_FOUND.

Resource failures reported by the ledger tear the owning robot down and
reissue its load in the background with exponential backoff.
"""

import logging
import socket
import threading
from typing import Callable, Dict, List, Optional, Tuple

from .api.client import RobotManagerClient
from .collaborators.discovery import InMemoryDiscovery
from .collaborators.gripper import HttpGripperClient
from .collaborators.ledger import ResourceHandle
from .collaborators.navigation import HttpNavigationClient
from .collaborators.planning import MotionPlanner
from .collaborators.process_ledger import ProcessResourceLedger
from .config.parser import load_local_configs
from .config.robot_config import RobotConfig
from .config.store import ConfigStore
from .errors import ErrorCode, RobotManagerError
from .features.feature import WaitSettings
from .geometry import Pose
from .recovery import RetryPolicy
from .robot import Robot, RobotServices
from .selector import find_robot
from .settings import ManagerSettings
from .sync.channel import LocalSyncBus, SyncChannel, UdpSyncChannel
from .sync.synchronizer import ConfigSynchronizer

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], RobotManagerClient]


class RobotManager:

    def __init__(
        self,
        namespace: str,
        services: RobotServices,
        store: Optional[ConfigStore] = None,
        channel: Optional[SyncChannel] = None,
        public_url: Optional[str] = None,
        peers: Optional[Dict[str, str]] = None,
        client_factory: Optional[ClientFactory] = None,
        retry_policy: Optional[RetryPolicy] = None,
        recovery_enabled: bool = True,
    ):
        self.namespace = namespace
        self.services = services
        self.store = store or ConfigStore()
        self.public_url = public_url
        self.client_factory = client_factory or (lambda url: RobotManagerClient(url))
        self.retry_policy = retry_policy or RetryPolicy()
        self.recovery_enabled = recovery_enabled

        self.synchronizer: Optional[ConfigSynchronizer] = None
        if channel is not None:
            self.synchronizer = ConfigSynchronizer(
                namespace, self.store, channel,
                public_url=public_url,
                on_peer=self.add_peer,
            )

        self._loaded: Dict[str, Robot] = {}
        self._loaded_lock = threading.Lock()
        self._load_locks: Dict[str, threading.Lock] = {}
        self._load_locks_guard = threading.Lock()

        self._peers: Dict[str, str] = dict(peers or {})
        self._peers_lock = threading.Lock()

        # Shared with every robot so shutdown cancels in-flight loads
        if services.stop_event is None:
            services.stop_event = threading.Event()
        self._stop_event = services.stop_event
        self._recovery_threads: List[threading.Thread] = []
        self._recovery_lock = threading.Lock()

        services.ledger.register_failure_callback(self.on_resource_failure)

    @classmethod
    def from_settings(
        cls,
        settings: ManagerSettings,
        planner: Optional[MotionPlanner] = None,
        sync_bus: Optional[LocalSyncBus] = None,
    ) -> "RobotManager":
        """Wire a manager with the process ledger, HTTP clients and configured sync channel."""
        ledger = ProcessResourceLedger(
            package_roots=settings.ledger.package_roots,
            terminate_timeout=settings.ledger.terminate_timeout,
            monitor_interval=settings.ledger.monitor_interval,
        )
        services = RobotServices(
            ledger=ledger,
            discovery=InMemoryDiscovery(),
            planner=planner,
            navigation=HttpNavigationClient(settings.navigation_url) if settings.navigation_url else None,
            gripper=HttpGripperClient(settings.gripper_url) if settings.gripper_url else None,
            wait=WaitSettings(
                poll_interval=settings.loading.poll_interval,
                readiness_timeout=settings.loading.readiness_timeout,
            ),
            navigation_server_timeout=settings.loading.navigation_server_timeout,
        )
        client_timeout = settings.loading.effective_forward_timeout()

        channel: Optional[SyncChannel] = None
        if settings.sync.enabled:
            if settings.sync.channel == "local":
                channel = (sync_bus or LocalSyncBus()).channel()
            else:
                channel = UdpSyncChannel(settings.sync.port, settings.sync.broadcast_address)

        public_url = settings.api.public_url
        if not public_url:
            host = settings.api.host
            if host in ("0.0.0.0", ""):
                host = socket.gethostname()
            public_url = f"http://{host}:{settings.api.port}"

        manager = cls(
            settings.namespace,
            services,
            channel=channel,
            public_url=public_url,
            peers=settings.peers,
            client_factory=lambda url: RobotManagerClient(url, timeout=client_timeout),
            retry_policy=RetryPolicy(
                max_attempts=settings.recovery.max_attempts,
                base_delay=settings.recovery.base_delay,
                multiplier=settings.recovery.multiplier,
                max_delay=settings.recovery.max_delay,
            ),
            recovery_enabled=settings.recovery.enabled,
        )
        manager.load_local_configs(settings.config_source_dir, settings.config_file_name)
        return manager

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def load_local_configs(self, root: str, filename: str = "robot_description.yaml") -> List[RobotConfig]:
        added = self.store.add_local(load_local_configs(root, self.namespace, filename))
        logger.info(f"Manager '{self.namespace}' owns {len(self.store.local())} robot config(s)")
        return added

    def start(self):
        self._stop_event.clear()
        if self.synchronizer is not None:
            self.synchronizer.start()
        logger.info(f"Robot manager '{self.namespace}' started")

    def shutdown(self):
        """Stop recovery, tear down every local robot, then stop sync and the ledger."""
        self._stop_event.set()
        with self._recovery_lock:
            threads = list(self._recovery_threads)
            self._recovery_threads.clear()
        for thread in threads:
            thread.join(timeout=5.0)

        with self._loaded_lock:
            robots = list(self._loaded.values())
            self._loaded.clear()
        for robot in robots:
            robot.teardown()

        if self.synchronizer is not None:
            self.synchronizer.stop()
        self.services.ledger.stop()
        logger.info(f"Robot manager '{self.namespace}' shut down")

    # =========================================================================
    # Peers
    # =========================================================================

    def add_peer(self, namespace: str, url: str):
        with self._peers_lock:
            if self._peers.get(namespace) != url:
                logger.info(f"Peer manager '{namespace}' at {url}")
            self._peers[namespace] = url

    def peers(self) -> Dict[str, str]:
        with self._peers_lock:
            return dict(self._peers)

    def _client_for(self, namespace: str) -> RobotManagerClient:
        with self._peers_lock:
            url = self._peers.get(namespace)
        if not url:
            raise RobotManagerError(
                ErrorCode.SERVICE_REQ_FAIL,
                f"No known address for manager '{namespace}'",
                namespace=self.namespace,
            )
        return self.client_factory(url)

    # =========================================================================
    # Loaded robots
    # =========================================================================

    def loaded_robots(self) -> List[Robot]:
        with self._loaded_lock:
            return list(self._loaded.values())

    def get_loaded_robot(self, robot_name: str) -> Robot:
        with self._loaded_lock:
            robot = self._loaded.get(robot_name)
        if robot is None or robot.config is None:
            raise RobotManagerError(
                ErrorCode.NOT_FOUND,
                f"Robot '{robot_name}' is not loaded",
                namespace=self.namespace,
            )
        return robot

    def _load_lock(self, robot_name: str) -> threading.Lock:
        with self._load_locks_guard:
            return self._load_locks.setdefault(robot_name, threading.Lock())

    def _register(self, robot: Robot):
        with self._loaded_lock:
            self._loaded[robot.name] = robot

    # =========================================================================
    # Load / unload
    # =========================================================================

    def load_robot(self, robot_name: str) -> Robot:
        """
        Load a robot by name, locally if possible, otherwise through its owner.

        Loading a robot that is already loaded returns it unchanged.

        Raises:
            RobotManagerError: ROBOT_NOT_FOUND if no manager knows the name,
                or whatever the local load or the forwarded load raised
        """
        logger.info(f"Load request for robot '{robot_name}'")
        with self._loaded_lock:
            existing = self._loaded.get(robot_name) if robot_name else None
        if existing is not None:
            logger.info(f"Robot '{robot_name}' is already loaded")
            return existing

        config = find_robot(robot_name, self.store.local())
        if config is not None:
            return self._load_local(config)

        config = find_robot(robot_name, self.store.remote())
        if config is not None:
            return self._load_remote(config)

        raise RobotManagerError(
            ErrorCode.ROBOT_NOT_FOUND,
            f"Robot '{robot_name}' was not found",
            namespace=self.namespace,
        )

    def _load_local(self, config: RobotConfig) -> Robot:
        with self._load_lock(config.name):
            with self._loaded_lock:
                existing = self._loaded.get(config.name)
            if existing is not None:
                return existing

            robot = None
            try:
                robot = Robot(config, self.namespace, self.services)
                robot.load()
            except Exception as e:
                if robot is not None:
                    robot.teardown()
                if not self._stop_event.is_set():
                    config.adjust_reliability(0.0)
                    self._advertise(config)
                if isinstance(e, RobotManagerError):
                    raise e.push(e.code, f"Failed to load robot '{config.name}'", self.namespace)
                logger.exception(f"Unexpected error while loading robot '{config.name}'")
                raise RobotManagerError(
                    ErrorCode.UNHANDLED,
                    f"Failed to load robot '{config.name}': {e}",
                    namespace=self.namespace,
                ) from e

            with self._loaded_lock:
                stopping = self._stop_event.is_set()
                if not stopping:
                    self._loaded[robot.name] = robot
            if stopping:
                robot.teardown()
                raise RobotManagerError(
                    ErrorCode.SERVICE_STATUS_FAIL,
                    f"Manager is shutting down, dropped robot '{config.name}' after loading it",
                    namespace=self.namespace,
                )
            logger.info(f"Robot '{config.name}' loaded locally as {robot.robot_id}")
            return robot

    def _load_remote(self, config: RobotConfig) -> Robot:
        with self._load_lock(config.name):
            with self._loaded_lock:
                existing = self._loaded.get(config.name)
            if existing is not None:
                return existing

            logger.info(f"Forwarding load of '{config.name}' to manager '{config.namespace}'")
            result = self._client_for(config.namespace).load_robot(config.name)
            robot = Robot(config, self.namespace, robot_id=result.get("handle") or None)
            self._register(robot)
            return robot

    def unload_robot(self, robot_name: str):
        """Unload a robot. Unknown names and forwarding failures are only logged."""
        with self._loaded_lock:
            robot = self._loaded.pop(robot_name, None)
        if robot is None:
            logger.warning(f"Unload request for robot '{robot_name}', which is not loaded")
            return

        if robot.is_local():
            robot.teardown()
            return

        try:
            self._client_for(robot.config.namespace).unload_robot(robot_name)
        except RobotManagerError as e:
            logger.warning(f"Failed to forward unload of '{robot_name}' to '{robot.config.namespace}': {e}")

    # =========================================================================
    # Routed operations
    # =========================================================================

    def plan_manipulation(
        self,
        robot_name: str,
        planning_group: str = "",
        use_named_target: bool = False,
        named_target: str = "",
        target_pose: Optional[Pose] = None,
    ):
        robot = self.get_loaded_robot(robot_name)
        if robot.is_local():
            robot.plan_manipulation_path(planning_group, use_named_target, named_target, target_pose)
        else:
            self._client_for(robot.config.namespace).plan_manipulation(
                robot_name, planning_group, use_named_target, named_target, target_pose,
            )

    def execute_plan(self, robot_name: str) -> bool:
        robot = self.get_loaded_robot(robot_name)
        if robot.is_local():
            return robot.execute_manipulation_path()
        return self._client_for(robot.config.namespace).execute_plan(robot_name)

    def get_manipulation_target(self, robot_name: str) -> Pose:
        robot = self.get_loaded_robot(robot_name)
        if robot.is_local():
            return robot.get_manipulation_target()
        return self._client_for(robot.config.namespace).get_manipulation_target(robot_name)

    def navigation_goal(self, robot_name: str, reference_frame: str, target_pose: Pose):
        robot = self.get_loaded_robot(robot_name)
        if robot.is_local():
            robot.goal_navigation(reference_frame, target_pose)
        else:
            self._client_for(robot.config.namespace).navigation_goal(robot_name, reference_frame, target_pose)

    def gripper_control(self, robot_name: str, gripper_name: str, position: float):
        robot = self.get_loaded_robot(robot_name)
        if robot.is_local():
            robot.control_gripper(gripper_name, position)
        else:
            self._client_for(robot.config.namespace).gripper_control(robot_name, gripper_name, position)

    def get_viz_info(self, robot_name: str) -> str:
        # Answered from the config, also for proxies
        return self.get_loaded_robot(robot_name).get_viz_info()

    def get_robot_config(self, robot_name: str) -> Tuple[str, str]:
        """
        Returns:
            (config YAML, absolute robot namespace)
        """
        config = self.store.find_by_name(robot_name)
        if config is None:
            raise RobotManagerError(
                ErrorCode.NOT_FOUND,
                f"No config for robot '{robot_name}'",
                namespace=self.namespace,
            )
        return config.to_yaml(), config.absolute_namespace

    # =========================================================================
    # Failure recovery
    # =========================================================================

    def on_resource_failure(self, handle: ResourceHandle):
        """Ledger callback: tear down the robot owning ``handle`` and reload it."""
        with self._loaded_lock:
            robot = next(
                (r for r in self._loaded.values() if r.is_local() and r.has_resource(handle)),
                None,
            )
            if robot is not None:
                del self._loaded[robot.name]
        if robot is None:
            logger.info(f"Resource {handle} failed but no loaded robot owns it")
            return

        logger.warning(f"Resource {handle} of robot '{robot.name}' failed, reloading the robot")
        robot.config.adjust_reliability(0.0)
        self._advertise(robot.config)
        robot.teardown()

        if not self.recovery_enabled or self._stop_event.is_set():
            return

        name = robot.name
        thread = threading.Thread(
            target=self.retry_policy.run,
            args=(lambda: self.load_robot(name), f"reload of robot '{name}'", self._stop_event),
            name=f"recover-{name}",
            daemon=True,
        )
        with self._recovery_lock:
            if self._stop_event.is_set():
                return
            self._recovery_threads = [t for t in self._recovery_threads if t.is_alive()]
            self._recovery_threads.append(thread)
            thread.start()

    def _advertise(self, config: RobotConfig):
        if self.synchronizer is not None:
            self.synchronizer.advertise_config(config)
