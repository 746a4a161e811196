"""
Unit tests for the parameter store interface and in-memory implementation.
"""

import json
import tempfile
from pathlib import Path

import pytest
import yaml

from ont_reconciler.errors import ConfigurationError
from ont_reconciler.models import DeviceIdentity
from ont_reconciler.store import (
    InMemoryParameterStore, ParameterStore, ParameterStoreFactory, StoreType,
    collection_base
)


SNAPSHOT = {
    "identity": {"manufacturer": "ZTE", "product_class": "F670L", "serial": "ZTEG00000009"},
    "as_of": 7,
    "parameters": {
        "InternetGatewayDevice.DeviceInfo.Manufacturer": "ZTE",
        "InternetGatewayDevice.LANDevice.1.WLANConfiguration.1.SSID": "home",
    },
    "objects": ["InternetGatewayDevice.Layer3Forwarding.Forwarding."],
    "stale": {
        "InternetGatewayDevice.LANDevice.1.WLANConfiguration.1.SSID": {"value": "old", "as_of": 2},
    },
    "reject_writes": {"InternetGatewayDevice.DeviceInfo.Manufacturer": "not_writable"},
}


class TestCollectionBase:
    """Test collection pattern normalisation."""

    @pytest.mark.parametrize("pattern,expected", [
        ("Device.NAT.PortMapping.*", "Device.NAT.PortMapping"),
        ("Device.NAT.PortMapping.", "Device.NAT.PortMapping"),
        ("Device.NAT.PortMapping", "Device.NAT.PortMapping"),
    ])
    def test_collection_base(self, pattern, expected):
        assert collection_base(pattern) == expected


class TestInMemoryParameterStore:
    """Test InMemoryParameterStore semantics."""

    @pytest.mark.asyncio
    async def test_probe_parameters_and_objects(self):
        store = InMemoryParameterStore(
            parameters={"Device.WiFi.SSID.1.SSID": "x"},
            objects=["Device.NAT.PortMapping"]
        )

        assert (await store.probe("Device.WiFi.SSID.1.SSID")).exists
        assert (await store.probe("Device.WiFi.SSID.1")).exists
        assert (await store.probe("Device.WiFi.SSID.1.")).exists
        assert (await store.probe("Device.NAT.PortMapping")).exists
        assert (await store.probe("Device.NAT")).exists
        assert not (await store.probe("Device.WiFi.SSID.2")).exists
        assert store.probes[0] == "Device.WiFi.SSID.1.SSID"

    @pytest.mark.asyncio
    async def test_probe_does_not_match_name_prefixes(self):
        """Device.WiFi.SSID.1 must not be satisfied by Device.WiFi.SSID.10."""
        store = InMemoryParameterStore(parameters={"Device.WiFi.SSID.10.SSID": "x"})
        assert not (await store.probe("Device.WiFi.SSID.1")).exists

    @pytest.mark.asyncio
    async def test_read(self):
        store = InMemoryParameterStore(parameters={"Device.A": "1"}, as_of=5)

        result = await store.read("Device.A")
        assert (result.exists, result.value, result.as_of) == (True, "1", 5)

        missing = await store.read("Device.B")
        assert missing.exists is False
        assert missing.value is None

    @pytest.mark.asyncio
    async def test_stale_observation_until_refresh(self):
        store = InMemoryParameterStore(
            parameters={"Device.A": "new"},
            stale={"Device.A": ("old", 2)},
            as_of=9
        )

        cached = await store.read("Device.A")
        assert (cached.value, cached.as_of) == ("old", 2)

        fresh = await store.read("Device.A", refresh=True)
        assert (fresh.value, fresh.as_of) == ("new", 9)

        # the refresh replaced the cached observation
        assert (await store.read("Device.A")).value == "new"
        assert store.reads == [("Device.A", False), ("Device.A", True), ("Device.A", False)]

    @pytest.mark.asyncio
    async def test_write(self):
        store = InMemoryParameterStore(stale={"Device.A": ("old", 1)})

        result = await store.write("Device.A", "value")

        assert result.ok is True
        assert store.parameters["Device.A"] == "value"
        assert store.writes == [("Device.A", "value")]
        assert (await store.read("Device.A")).value == "value"

    @pytest.mark.asyncio
    async def test_rejected_write(self):
        store = InMemoryParameterStore(
            parameters={"Device.A": "old"},
            reject_writes={"Device.A": "invalid_value"}
        )

        result = await store.write("Device.A", "new")

        assert result.ok is False
        assert result.error_kind == "invalid_value"
        assert store.parameters["Device.A"] == "old"
        assert store.writes == []

    @pytest.mark.asyncio
    async def test_list_instances_sorted_numerically(self):
        store = InMemoryParameterStore(parameters={
            "Device.NAT.PortMapping.10.ExternalPort": 1,
            "Device.NAT.PortMapping.2.ExternalPort": 1,
            "Device.NAT.PortMappingNumberOfEntries": 2,
        }, objects=["Device.NAT.PortMapping.3"])

        instances = await store.list_instances("Device.NAT.PortMapping.*")

        assert instances == [
            "Device.NAT.PortMapping.2",
            "Device.NAT.PortMapping.3",
            "Device.NAT.PortMapping.10",
        ]

    @pytest.mark.asyncio
    async def test_create_instance_appends(self):
        store = InMemoryParameterStore(objects=["Device.NAT.PortMapping"])

        assert await store.create_instance("Device.NAT.PortMapping") == 1
        assert await store.create_instance("Device.NAT.PortMapping.") == 2
        assert await store.list_instances("Device.NAT.PortMapping") == [
            "Device.NAT.PortMapping.1", "Device.NAT.PortMapping.2"
        ]

    @pytest.mark.asyncio
    async def test_create_instance_never_reuses_removed_index(self):
        store = InMemoryParameterStore(parameters={
            f"Device.NAT.PortMapping.{i}.ExternalPort": 80 + i for i in (1, 2, 3)
        })
        store.delete_instance("Device.NAT.PortMapping.3")
        store.delete_instance("Device.NAT.PortMapping.2")

        assert await store.list_instances("Device.NAT.PortMapping") == ["Device.NAT.PortMapping.1"]
        assert await store.create_instance("Device.NAT.PortMapping") == 4

    @pytest.mark.asyncio
    async def test_tags_and_log(self):
        store = InMemoryParameterStore()
        await store.set_tag("zte", 1)
        await store.log("notice")

        assert store.tags == {"zte": True}
        assert store.notices == ["notice"]

    def test_is_parameter_store(self):
        assert isinstance(InMemoryParameterStore(), ParameterStore)


class TestSnapshots:
    """Test loading and exporting device snapshots."""

    def test_from_snapshot(self):
        store = InMemoryParameterStore.from_snapshot(SNAPSHOT)

        assert store.identity == DeviceIdentity("ZTE", "F670L", "ZTEG00000009")
        assert store.as_of == 7
        assert store.stale["InternetGatewayDevice.LANDevice.1.WLANConfiguration.1.SSID"] == ("old", 2)
        assert "InternetGatewayDevice.Layer3Forwarding.Forwarding" in store.objects
        assert store.reject_writes == {"InternetGatewayDevice.DeviceInfo.Manufacturer": "not_writable"}

    def test_identity_without_manufacturer(self):
        store = InMemoryParameterStore.from_snapshot({"identity": {"serial": "SN1"}})
        assert store.identity.manufacturer is None
        assert store.identity.serial == "SN1"

    @pytest.mark.parametrize("snapshot", [["not", "a", "mapping"], {"identity": "ZTE"}])
    def test_invalid_snapshot(self, snapshot):
        with pytest.raises(ConfigurationError):
            InMemoryParameterStore.from_snapshot(snapshot)

    @pytest.mark.asyncio
    async def test_to_snapshot_includes_writes_and_tags(self):
        store = InMemoryParameterStore.from_snapshot(SNAPSHOT)
        await store.write("InternetGatewayDevice.LANDevice.1.WLANConfiguration.1.SSID", "new")
        await store.set_tag("zte", True)

        snapshot = store.to_snapshot()

        assert snapshot["parameters"]["InternetGatewayDevice.LANDevice.1.WLANConfiguration.1.SSID"] == "new"
        assert "stale" not in snapshot
        assert snapshot["tags"] == {"zte": True}
        assert snapshot["identity"]["serial"] == "ZTEG00000009"

    def test_from_json_and_yaml_files(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            json_path = Path(temp_dir) / "device.json"
            yaml_path = Path(temp_dir) / "device.yaml"
            json_path.write_text(json.dumps(SNAPSHOT), encoding="utf-8")
            yaml_path.write_text(yaml.safe_dump(SNAPSHOT), encoding="utf-8")

            from_json = InMemoryParameterStore.from_snapshot_file(json_path)
            from_yaml = InMemoryParameterStore.from_snapshot_file(str(yaml_path))

            assert from_json.parameters == from_yaml.parameters == SNAPSHOT["parameters"]
            assert from_json.identity == from_yaml.identity

    def test_missing_file(self):
        with pytest.raises(ConfigurationError, match="not found"):
            InMemoryParameterStore.from_snapshot_file("/nonexistent/device.json")

    def test_malformed_file(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "device.json"
            path.write_text("{not json", encoding="utf-8")

            with pytest.raises(ConfigurationError, match="Invalid snapshot"):
                InMemoryParameterStore.from_snapshot_file(path)


class TestParameterStoreFactory:
    """Test ParameterStoreFactory."""

    def test_create_in_memory_store(self):
        store = ParameterStoreFactory.create_store(StoreType.IN_MEMORY, parameters={"Device.A": 1})
        assert isinstance(store, InMemoryParameterStore)
        assert store.parameters == {"Device.A": 1}

    def test_supported_types(self):
        assert StoreType.IN_MEMORY in ParameterStoreFactory.get_supported_types()

    def test_unsupported_type(self, monkeypatch):
        monkeypatch.setattr(ParameterStoreFactory, "_store_registry", {})
        with pytest.raises(ValueError, match="Unsupported store type"):
            ParameterStoreFactory.create_store(StoreType.IN_MEMORY)

    def test_register_store(self, monkeypatch):
        class RecordingStore(InMemoryParameterStore):
            pass

        monkeypatch.setattr(ParameterStoreFactory, "_store_registry", {})
        ParameterStoreFactory.register_store(StoreType.IN_MEMORY, RecordingStore)

        assert isinstance(ParameterStoreFactory.create_store(StoreType.IN_MEMORY), RecordingStore)
