"""
Unit tests for collection discovery and WLAN classification.
"""

import pytest

from ont_reconciler.discovery import InstanceDiscoverer
from ont_reconciler.models import Band, DeviceContext, SchemaGeneration, WlanInstance
from ont_reconciler.resolver import PathResolver
from ont_reconciler.store import InMemoryParameterStore

from conftest import WAN, WLAN, make_legacy_zte_store, make_unified_nokia_store


UNIFIED_NOKIA = DeviceContext("nokia", SchemaGeneration.UNIFIED)
LEGACY_ZTE = DeviceContext("zte", SchemaGeneration.LEGACY)
PORT_MAPPING = f"{WAN}.WANIPConnection.1.PortMapping"


def discoverer_for(store):
    return InstanceDiscoverer(store, PathResolver(store))


class TestInstanceListing:
    """Test instance listing and append-only index planning."""

    @pytest.mark.asyncio
    async def test_list_instances(self):
        store = make_legacy_zte_store()
        instances = await discoverer_for(store).list_instances(PORT_MAPPING + ".*")

        assert instances == [f"{PORT_MAPPING}.1", f"{PORT_MAPPING}.2", f"{PORT_MAPPING}.3"]

    @pytest.mark.asyncio
    async def test_next_free_index_after_existing(self):
        """Three existing rules means the new one lands at index 4."""
        store = make_legacy_zte_store()
        assert await discoverer_for(store).next_free_index(PORT_MAPPING) == 4

    @pytest.mark.asyncio
    async def test_next_free_index_empty_collection(self):
        store = InMemoryParameterStore(objects=["Device.NAT.PortMapping"])
        assert await discoverer_for(store).next_free_index("Device.NAT.PortMapping") == 1


class TestLegacyWlanDiscovery:
    """Test WLANConfiguration classification on the legacy model."""

    @pytest.mark.asyncio
    async def test_classifies_by_possible_channels(self):
        store = make_legacy_zte_store()
        wlans = await discoverer_for(store).discover_wlans(LEGACY_ZTE)

        assert [(w.index, w.band) for w in wlans] == [("1", Band.BAND_2_4), ("5", Band.BAND_5)]
        assert wlans[1].path == f"{WLAN}.5"
        assert wlans[1].channel == "36"
        assert wlans[1].possible_channels == "36,40,44,48"
        assert all(w.aligned for w in wlans)

    @pytest.mark.asyncio
    async def test_falls_back_to_channel(self):
        store = InMemoryParameterStore(parameters={
            f"{WLAN}.1.Channel": "149",
            f"{WLAN}.2.Channel": "auto",
        })
        wlans = await discoverer_for(store).discover_wlans(LEGACY_ZTE)

        assert [w.band for w in wlans] == [Band.BAND_5, Band.UNKNOWN]

    @pytest.mark.asyncio
    async def test_no_wlans(self):
        store = InMemoryParameterStore()
        assert await discoverer_for(store).discover_wlans(LEGACY_ZTE) == []

    def test_instances_for_band(self):
        wlans = [
            WlanInstance(path=f"{WLAN}.1", index="1", band=Band.BAND_2_4),
            WlanInstance(path=f"{WLAN}.5", index="5", band=Band.BAND_5),
            WlanInstance(path=f"{WLAN}.6", index="6", band=Band.BAND_5),
        ]
        assert [w.index for w in InstanceDiscoverer.instances_for_band(wlans, Band.BAND_5)] == ["5", "6"]
        assert InstanceDiscoverer.instances_for_band(wlans, Band.BAND_6) == []


class TestUnifiedWlanDiscovery:
    """Test Radio classification and index alignment on the unified model."""

    @pytest.mark.asyncio
    async def test_classifies_by_frequency_band(self):
        store = make_unified_nokia_store()
        wlans = await discoverer_for(store).discover_wlans(UNIFIED_NOKIA)

        assert [(w.path, w.band) for w in wlans] == [
            ("Device.WiFi.Radio.1", Band.BAND_2_4),
            ("Device.WiFi.Radio.2", Band.BAND_5),
            ("Device.WiFi.Radio.3", Band.BAND_6),
        ]
        assert all(w.aligned for w in wlans)
        assert wlans[0].frequency_band == "2.4GHz"

    @pytest.mark.asyncio
    async def test_missing_access_point_is_unaligned(self):
        store = make_unified_nokia_store()
        store.delete_instance("Device.WiFi.AccessPoint.3")

        wlans = await discoverer_for(store).discover_wlans(UNIFIED_NOKIA)

        assert [w.aligned for w in wlans] == [True, True, False]
        assert "Device.WiFi.AccessPoint.3" in wlans[2].alignment_note

    @pytest.mark.asyncio
    async def test_lower_layers_mismatch_is_unaligned(self):
        """SSID.2 stacked on Radio.1 means index 2 cannot be trusted."""
        store = make_unified_nokia_store(parameters={
            "Device.WiFi.SSID.2.LowerLayers": "Device.WiFi.Radio.1.",
        })
        wlans = await discoverer_for(store).discover_wlans(UNIFIED_NOKIA)

        assert wlans[1].band is Band.BAND_5
        assert wlans[1].aligned is False
        assert "Device.WiFi.Radio.1" in wlans[1].alignment_note

    @pytest.mark.asyncio
    async def test_lower_layers_list_containing_radio_is_aligned(self):
        store = make_unified_nokia_store(parameters={
            "Device.WiFi.SSID.2.LowerLayers": "Device.WiFi.Radio.1., Device.WiFi.Radio.2.",
        })
        wlans = await discoverer_for(store).discover_wlans(UNIFIED_NOKIA)

        assert wlans[1].aligned is True
