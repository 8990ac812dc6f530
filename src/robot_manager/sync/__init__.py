from .channel import LocalSyncBus, LocalSyncChannel, SyncAction, SyncChannel, SyncMessage, UdpSyncChannel
from .synchronizer import ConfigSynchronizer
