#!/usr/bin/env python3
"""
Test Suite for Config Store & Gossip Sync

Tests:
- Local/remote partitions and last-write-wins merging
- Request/advertise protocol between managers on a shared bus
- Sync message wire format
"""

from unittest.mock import MagicMock

import pytest

from robot_manager.config.store import ConfigStore
from robot_manager.sync.channel import LocalSyncBus, SyncAction, SyncMessage
from robot_manager.sync.synchronizer import ConfigSynchronizer

from conftest import make_configs, robot_entry


# =============================================================================
# Config Store
# =============================================================================

class TestConfigStore:

    def test_add_local_drops_duplicates(self):
        store = ConfigStore()
        store.add_local(make_configs([robot_entry("alpha")], "ns1"))
        added = store.add_local(make_configs([robot_entry("alpha"), robot_entry("beta")], "ns1"))

        assert [c.name for c in added] == ["beta"]
        assert [c.name for c in store.local()] == ["alpha", "beta"]

    def test_merge_overwrites_same_key(self):
        store = ConfigStore()
        store.merge_remote(make_configs([robot_entry("alpha", reliability=0.9)], "ns2"))
        inserted = store.merge_remote(make_configs([robot_entry("alpha", reliability=0.1)], "ns2"))

        assert inserted == 0
        assert len(store.remote()) == 1
        assert store.remote()[0].reliability == 0.1

    def test_merge_keeps_other_namespaces_apart(self):
        store = ConfigStore()
        store.merge_remote(make_configs([robot_entry("alpha")], "ns2"))
        store.merge_remote(make_configs([robot_entry("alpha")], "ns3"))
        assert sorted(c.namespace for c in store.remote()) == ["ns2", "ns3"]

    def test_merge_is_idempotent(self):
        store = ConfigStore()
        advert = make_configs([robot_entry("alpha"), robot_entry("beta")], "ns2")
        store.merge_remote(advert)
        first = [(c.key, c.reliability) for c in store.remote()]
        store.merge_remote(advert)

        assert [(c.key, c.reliability) for c in store.remote()] == first

    def test_find_by_name_prefers_local(self):
        store = ConfigStore()
        store.merge_remote(make_configs([robot_entry("alpha")], "ns2"))
        store.add_local(make_configs([robot_entry("alpha")], "ns1"))

        assert store.find_by_name("alpha").namespace == "ns1"
        assert store.find_by_name("gamma") is None

    def test_snapshots_are_copies(self):
        store = ConfigStore()
        store.add_local(make_configs([robot_entry("alpha")], "ns1"))
        store.local().clear()
        assert len(store.local()) == 1


# =============================================================================
# Synchronizer
# =============================================================================

def _synchronizer(bus, namespace, entries=(), on_peer=None):
    store = ConfigStore()
    store.add_local(make_configs(list(entries), namespace))
    return ConfigSynchronizer(namespace, store, bus.channel(), public_url=f"http://{namespace}", on_peer=on_peer)


class TestConfigSynchronizer:

    def test_managers_learn_each_other(self):
        bus = LocalSyncBus()
        a = _synchronizer(bus, "ns1", [robot_entry("alpha")])
        b = _synchronizer(bus, "ns2", [robot_entry("beta"), robot_entry("gamma")])

        a.start()
        b.start()

        assert [c.key for c in a.store.remote()] == [("beta", "ns2"), ("gamma", "ns2")]
        assert [c.key for c in b.store.remote()] == [("alpha", "ns1")]

    def test_late_joiner_gets_configs_on_request(self):
        bus = LocalSyncBus()
        a = _synchronizer(bus, "ns1", [robot_entry("alpha")])
        a.start()
        late = _synchronizer(bus, "ns9")
        late.start()

        assert [c.key for c in late.store.remote()] == [("alpha", "ns1")]

    def test_own_messages_are_ignored(self):
        bus = LocalSyncBus()
        a = _synchronizer(bus, "ns1", [robot_entry("alpha")])
        a.start()
        a.advertise_local()
        assert a.store.remote() == []

    def test_advertised_reliability_overwrites_peer_copy(self):
        bus = LocalSyncBus()
        a = _synchronizer(bus, "ns1", [robot_entry("alpha")])
        b = _synchronizer(bus, "ns2")
        a.start()
        b.start()

        config = a.store.local()[0]
        config.adjust_reliability(0.0)
        a.advertise_config(config)

        assert b.store.remote()[0].reliability == 0.0
        assert len(b.store.remote()) == 1

    def test_peer_urls_are_reported(self):
        bus = LocalSyncBus()
        peers = {}
        a = _synchronizer(bus, "ns1", on_peer=lambda ns, url: peers.__setitem__(ns, url))
        b = _synchronizer(bus, "ns2")
        a.start()
        b.start()
        assert peers == {"ns2": "http://ns2"}

    def test_advertising_nothing_publishes_nothing(self):
        channel = MagicMock()
        sync = ConfigSynchronizer("ns1", ConfigStore(), channel)
        sync.start()
        channel.publish.reset_mock()

        sync.advertise([])
        sync.advertise_local()
        channel.publish.assert_not_called()

    def test_start_requests_configs(self):
        channel = MagicMock()
        sync = ConfigSynchronizer("ns1", ConfigStore(), channel)
        sync.start()

        (message,), _ = channel.publish.call_args
        assert message.action == SyncAction.REQUEST_CONFIG
        assert message.sender_namespace == "ns1"

    def test_bad_advert_is_ignored(self):
        store = ConfigStore()
        sync = ConfigSynchronizer("ns1", store, MagicMock())
        sync.handle_message(SyncMessage(SyncAction.ADVERTISE_CONFIG, "ns2", payload="Robots: [oops"))
        assert store.remote() == []

    def test_stopped_channel_receives_nothing(self):
        bus = LocalSyncBus()
        a = _synchronizer(bus, "ns1")
        b = _synchronizer(bus, "ns2", [robot_entry("beta")])
        a.start()
        a.stop()
        b.start()
        assert a.store.remote() == []


class TestSyncMessage:

    def test_wire_format(self):
        message = SyncMessage(SyncAction.ADVERTISE_CONFIG, "ns1", payload="Robots: []", sender_url="http://ns1")
        decoded = SyncMessage.decode(message.encode())
        assert decoded == message

    @pytest.mark.parametrize("data", [b"not json", b"[]", b'{"action": "shout"}'])
    def test_malformed_messages_raise_value_error(self, data):
        with pytest.raises(ValueError):
            SyncMessage.decode(data)
