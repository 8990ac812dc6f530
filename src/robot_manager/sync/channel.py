"""
Config sync channels.

A channel broadcasts SyncMessages to every manager listening on it,
including the sender. LocalSyncBus connects managers living in one process;
UdpSyncChannel uses UDP broadcast datagrams between hosts.
"""

import json
import logging
import socket
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class SyncAction(Enum):
    REQUEST_CONFIG = "request_config"
    ADVERTISE_CONFIG = "advertise_config"


@dataclass
class SyncMessage:
    action: SyncAction
    sender_namespace: str
    payload: str = ""
    sender_url: Optional[str] = None

    def encode(self) -> bytes:
        return json.dumps({
            "action": self.action.value,
            "sender_namespace": self.sender_namespace,
            "sender_url": self.sender_url,
            "payload": self.payload,
        }).encode("utf-8")

    @classmethod
    def decode(cls, data: bytes) -> "SyncMessage":
        """
        Raises:
            ValueError: on malformed JSON or an unknown action
        """
        msg = json.loads(data.decode("utf-8"))
        if not isinstance(msg, dict):
            raise ValueError("sync message is not an object")
        return cls(
            action=SyncAction(msg.get("action")),
            sender_namespace=str(msg.get("sender_namespace", "")),
            payload=str(msg.get("payload") or ""),
            sender_url=msg.get("sender_url"),
        )


MessageHandler = Callable[[SyncMessage], None]


class SyncChannel(ABC):

    @abstractmethod
    def start(self, handler: MessageHandler):
        """Begin delivering received messages to ``handler``."""

    @abstractmethod
    def publish(self, message: SyncMessage):
        pass

    @abstractmethod
    def stop(self):
        pass


# =============================================================================
# In-process channel
# =============================================================================

class LocalSyncBus:
    """Broadcast bus shared by the LocalSyncChannels of one process."""

    def __init__(self):
        self._channels: List["LocalSyncChannel"] = []
        self._lock = threading.Lock()

    def channel(self) -> "LocalSyncChannel":
        return LocalSyncChannel(self)

    def _attach(self, channel: "LocalSyncChannel"):
        with self._lock:
            if channel not in self._channels:
                self._channels.append(channel)

    def _detach(self, channel: "LocalSyncChannel"):
        with self._lock:
            if channel in self._channels:
                self._channels.remove(channel)

    def _deliver(self, message: SyncMessage):
        with self._lock:
            channels = list(self._channels)
        # Round-trip through the wire format so both channels behave alike
        data = message.encode()
        for channel in channels:
            channel._receive(SyncMessage.decode(data))


class LocalSyncChannel(SyncChannel):

    def __init__(self, bus: LocalSyncBus):
        self._bus = bus
        self._handler: Optional[MessageHandler] = None

    def start(self, handler: MessageHandler):
        self._handler = handler
        self._bus._attach(self)

    def publish(self, message: SyncMessage):
        self._bus._deliver(message)

    def stop(self):
        self._bus._detach(self)
        self._handler = None

    def _receive(self, message: SyncMessage):
        handler = self._handler
        if handler is None:
            return
        try:
            handler(message)
        except Exception as e:
            logger.error(f"Sync handler failed for {message.action.value} from '{message.sender_namespace}': {e}")


# =============================================================================
# UDP broadcast channel
# =============================================================================

class UdpSyncChannel(SyncChannel):
    """
    Config sync over UDP broadcast.

    Every manager binds the same port with SO_REUSEADDR and broadcasts JSON
    datagrams to it. A listener thread hands decoded messages to the handler.
    """

    MAX_DATAGRAM = 65507

    def __init__(self, port: int = 9876, broadcast_address: str = "<broadcast>"):
        self.port = port
        self.broadcast_address = broadcast_address
        self._handler: Optional[MessageHandler] = None
        self._stop_event = threading.Event()
        self._listen_thread: Optional[threading.Thread] = None
        self._sock: Optional[socket.socket] = None

    def start(self, handler: MessageHandler):
        self._handler = handler
        self._stop_event.clear()

        self._sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._sock.settimeout(1.0)
        self._sock.bind(("", self.port))

        self._listen_thread = threading.Thread(target=self._listen_loop, name="config-sync", daemon=True)
        self._listen_thread.start()
        logger.info(f"Config sync listening on UDP port {self.port}")

    def publish(self, message: SyncMessage):
        if self._sock is None:
            logger.warning("Config sync channel not started, dropping message")
            return
        data = message.encode()
        if len(data) > self.MAX_DATAGRAM:
            logger.error(f"Sync message of {len(data)} bytes exceeds the datagram limit, dropping it")
            return
        self._sock.sendto(data, (self.broadcast_address, self.port))

    def stop(self):
        self._stop_event.set()
        if self._sock:
            self._sock.close()
        if self._listen_thread:
            self._listen_thread.join(timeout=2.0)
        self._sock = None
        logger.info("Config sync stopped")

    def _listen_loop(self):
        while not self._stop_event.is_set():
            try:
                data, addr = self._sock.recvfrom(self.MAX_DATAGRAM)
            except socket.timeout:
                continue
            except OSError as e:
                if not self._stop_event.is_set():
                    logger.error(f"Listen loop error: {e}")
                break

            try:
                message = SyncMessage.decode(data)
            except ValueError:
                logger.warning(f"Received malformed sync message from {addr[0]}")
                continue

            try:
                self._handler(message)
            except Exception as e:
                logger.error(f"Error processing sync message from {addr[0]}: {e}")
