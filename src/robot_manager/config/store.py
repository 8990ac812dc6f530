"""
Config Store

Two partitions of RobotConfigs: local (owned by this manager, fixed at
startup) and remote (learned from peers through gossip). Each partition has
its own lock; readers get snapshot lists.
"""

import logging
import threading
from typing import Iterable, List, Optional

from .robot_config import RobotConfig

logger = logging.getLogger(__name__)


class ConfigStore:

    def __init__(self):
        self._local: List[RobotConfig] = []
        self._remote: List[RobotConfig] = []
        self._local_lock = threading.RLock()
        self._remote_lock = threading.RLock()

    def add_local(self, configs: Iterable[RobotConfig]) -> List[RobotConfig]:
        """Add local configs, dropping any (name, namespace) already present."""
        added = []
        with self._local_lock:
            keys = {c.key for c in self._local}
            for config in configs:
                if config.key in keys:
                    logger.warning(f"Ignoring duplicate local robot '{config.name}'")
                    continue
                keys.add(config.key)
                self._local.append(config)
                added.append(config)
        return added

    def merge_remote(self, configs: Iterable[RobotConfig]) -> int:
        """
        Merge advertised configs into the remote partition.

        An entry with the same (name, namespace) is overwritten in place,
        anything else is appended. Merging the same advert twice leaves the
        partition unchanged.

        Returns:
            Number of configs inserted (not overwritten)
        """
        inserted = 0
        with self._remote_lock:
            for config in configs:
                for index, current in enumerate(self._remote):
                    if current.key == config.key:
                        self._remote[index] = config
                        break
                else:
                    self._remote.append(config)
                    inserted += 1
                    logger.info(f"Learned remote robot '{config.name}' from '{config.namespace}'")
        return inserted

    def local(self) -> List[RobotConfig]:
        with self._local_lock:
            return list(self._local)

    def remote(self) -> List[RobotConfig]:
        with self._remote_lock:
            return list(self._remote)

    def find_by_name(self, name: str) -> Optional[RobotConfig]:
        """First config with this name, searching local before remote."""
        for config in self.local():
            if config.name == name:
                return config
        for config in self.remote():
            if config.name == name:
                return config
        return None
