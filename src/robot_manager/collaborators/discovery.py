"""
Discovery primitives: does a parameter, topic or service exist yet?

Readiness of a loaded feature is judged only through this interface.
InMemoryDiscovery is a registry that processes (or tests) fill in, for
example through the manager's discovery endpoints.
"""

import threading
from abc import ABC, abstractmethod
from typing import Dict, Set

DISCOVERY_KINDS = ("param", "topic", "service")


class Discovery(ABC):

    @abstractmethod
    def param_exists(self, name: str) -> bool:
        pass

    @abstractmethod
    def topic_exists(self, name: str) -> bool:
        pass

    @abstractmethod
    def service_exists(self, name: str) -> bool:
        pass

    @abstractmethod
    def delete_params(self, prefix: str) -> int:
        """Delete every parameter under ``prefix``. Returns how many were removed."""

    @abstractmethod
    def delete_scope(self, prefix: str) -> int:
        """Withdraw every param, topic and service under ``prefix``. Returns how many were removed."""


class InMemoryDiscovery(Discovery):

    def __init__(self):
        self._names: Dict[str, Set[str]] = {kind: set() for kind in DISCOVERY_KINDS}
        self._lock = threading.Lock()

    def declare(self, kind: str, name: str):
        self._check_kind(kind)
        with self._lock:
            self._names[kind].add(name)

    def withdraw(self, kind: str, name: str):
        self._check_kind(kind)
        with self._lock:
            self._names[kind].discard(name)

    def exists(self, kind: str, name: str) -> bool:
        self._check_kind(kind)
        with self._lock:
            return name in self._names[kind]

    def param_exists(self, name: str) -> bool:
        return self.exists("param", name)

    def topic_exists(self, name: str) -> bool:
        return self.exists("topic", name)

    def service_exists(self, name: str) -> bool:
        return self.exists("service", name)

    def delete_params(self, prefix: str) -> int:
        scope = prefix.rstrip("/") + "/"
        with self._lock:
            doomed = {n for n in self._names["param"] if n == prefix or n.startswith(scope)}
            self._names["param"] -= doomed
        return len(doomed)

    def delete_scope(self, prefix: str) -> int:
        scope = prefix.rstrip("/") + "/"
        removed = 0
        with self._lock:
            for names in self._names.values():
                doomed = {n for n in names if n == prefix or n.startswith(scope)}
                names -= doomed
                removed += len(doomed)
        return removed

    @staticmethod
    def _check_kind(kind: str):
        if kind not in DISCOVERY_KINDS:
            raise ValueError(f"Unknown discovery kind '{kind}', expected one of {DISCOVERY_KINDS}")
