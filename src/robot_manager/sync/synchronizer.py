"""
Config Synchronizer

Keeps the remote partition of the ConfigStore eventually consistent with
the local partitions of every peer manager:

* on start, advertise the local partition and request every peer's configs
* on REQUEST_CONFIG, advertise the whole local partition
* on ADVERTISE_CONFIG, stamp the configs with the sender namespace and
  merge them into the remote partition
"""

import logging
import threading
from typing import Callable, Iterable, Optional

from ..config.parser import configs_to_yaml, parse_robot_configs_yaml
from ..config.robot_config import RobotConfig
from ..config.store import ConfigStore
from ..errors import RobotManagerError
from .channel import SyncAction, SyncChannel, SyncMessage

logger = logging.getLogger(__name__)


class ConfigSynchronizer:

    def __init__(
        self,
        namespace: str,
        store: ConfigStore,
        channel: SyncChannel,
        public_url: Optional[str] = None,
        on_peer: Optional[Callable[[str, str], None]] = None,
    ):
        """
        Args:
            namespace: Namespace of this manager
            store: Store whose partitions are synced
            channel: Broadcast channel shared with the peers
            public_url: URL peers can forward requests to
            on_peer: Called with (namespace, url) for every peer that
                announces a URL
        """
        self.namespace = namespace
        self.store = store
        self.channel = channel
        self.public_url = public_url
        self._on_peer = on_peer
        self._started = False
        self._lock = threading.Lock()

    def start(self):
        with self._lock:
            if self._started:
                return
            self.channel.start(self.handle_message)
            self._started = True
        self.advertise_local()
        self.request_configs()
        logger.info(f"Config synchronizer started for namespace '{self.namespace}'")

    def stop(self):
        with self._lock:
            if not self._started:
                return
            self._started = False
        self.channel.stop()

    def request_configs(self):
        self._publish(SyncMessage(SyncAction.REQUEST_CONFIG, self.namespace, sender_url=self.public_url))

    def advertise(self, configs: Iterable[RobotConfig]):
        configs = list(configs)
        if not configs:
            return
        self._publish(SyncMessage(
            SyncAction.ADVERTISE_CONFIG,
            self.namespace,
            payload=configs_to_yaml(configs),
            sender_url=self.public_url,
        ))
        logger.debug(f"Advertised {len(configs)} robot config(s)")

    def advertise_config(self, config: RobotConfig):
        self.advertise([config])

    def advertise_local(self):
        self.advertise(self.store.local())

    def handle_message(self, message: SyncMessage):
        if message.sender_namespace == self.namespace:
            return

        if message.sender_url and self._on_peer is not None:
            self._on_peer(message.sender_namespace, message.sender_url)

        if message.action == SyncAction.REQUEST_CONFIG:
            self.advertise_local()
        elif message.action == SyncAction.ADVERTISE_CONFIG:
            try:
                configs = parse_robot_configs_yaml(message.payload, message.sender_namespace)
            except RobotManagerError as e:
                logger.warning(f"Ignoring advert from '{message.sender_namespace}': {e}")
                return
            self.store.merge_remote(configs)

    def _publish(self, message: SyncMessage):
        if not self._started:
            logger.debug(f"Synchronizer not started, dropping {message.action.value}")
            return
        try:
            self.channel.publish(message)
        except OSError as e:
            logger.error(f"Failed to publish {message.action.value}: {e}")
