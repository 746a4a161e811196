"""Discovery of variable-cardinality collections and WLAN band classification."""

from typing import Dict, List, Optional

from .bands import classify_band, classify_frequency_band
from .logging import get_logger, performance_monitor
from .models import Band, DeviceContext, WlanInstance
from .resolver import PathResolver
from .store import ParameterStore, collection_base


def _references(lower_layers: str) -> List[str]:
    return [ref.strip().rstrip(".") for ref in str(lower_layers).split(",") if ref.strip()]


class InstanceDiscoverer:
    """Enumerates collection instances of one device.

    On the unified schema ``Radio.N``, ``SSID.N`` and ``AccessPoint.N`` are
    expected to share an index; instances where that cannot be confirmed are
    returned with ``aligned`` False.
    """

    def __init__(self, store: ParameterStore, resolver: PathResolver):
        self.store = store
        self.resolver = resolver
        self.logger = get_logger("discovery")

    async def list_instances(self, path_pattern: str, correlation_id: Optional[str] = None) -> List[str]:
        instances = await self.store.list_instances(path_pattern)
        self.logger.log_discovery(
            f"Found {len(instances)} instances under {collection_base(path_pattern)}",
            collection_base(path_pattern), len(instances), correlation_id=correlation_id
        )
        return instances

    async def next_free_index(self, base_path: str, correlation_id: Optional[str] = None) -> int:
        """Append-only allocation: existing instance count plus one."""
        return len(await self.list_instances(base_path, correlation_id)) + 1

    @performance_monitor("discover_wlans", "discovery")
    async def discover_wlans(
        self,
        context: DeviceContext,
        correlation_id: Optional[str] = None
    ) -> List[WlanInstance]:
        """List the device's WLAN instances, each classified into a band."""
        collection = self.resolver.first_candidate("wifi.collection", context)
        if collection is None:
            return []

        wlans = []
        for path in await self.store.list_instances(collection):
            index = path.rsplit(".", 1)[-1]
            if context.is_unified:
                wlan = await self._classify_radio(context, path, index)
                await self._check_alignment(context, wlan)
            else:
                wlan = await self._classify_wlan_configuration(context, path, index)
            wlans.append(wlan)

        bands: Dict[str, str] = {w.path: w.band.value for w in wlans}
        self.logger.log_discovery(
            f"Classified {len(wlans)} WLAN instances under {collection}",
            collection, len(wlans), bands=bands, correlation_id=correlation_id
        )
        return wlans

    async def _read_value(self, key: str, context: DeviceContext, index: str) -> Optional[object]:
        path = self.resolver.first_candidate(key, context, {"i": index})
        if path is None:
            return None
        result = await self.store.read(path)
        return result.value if result.exists else None

    async def _classify_radio(self, context: DeviceContext, path: str, index: str) -> WlanInstance:
        frequency_band = await self._read_value("wifi.radio.frequency_band", context, index)
        channel = await self._read_value("wifi.radio.channel", context, index)
        return WlanInstance(
            path=path,
            index=index,
            band=classify_frequency_band(frequency_band),
            channel=str(channel) if channel is not None else None,
            frequency_band=str(frequency_band) if frequency_band is not None else None
        )

    async def _classify_wlan_configuration(self, context: DeviceContext, path: str, index: str) -> WlanInstance:
        channel = await self._read_value("wifi.radio.channel", context, index)
        possible = await self._read_value("wifi.radio.possible_channels", context, index)
        possible_str = str(possible) if possible is not None else ""
        return WlanInstance(
            path=path,
            index=index,
            band=classify_band(channel, possible_str),
            channel=str(channel) if channel is not None else None,
            possible_channels=possible_str
        )

    async def _check_alignment(self, context: DeviceContext, wlan: WlanInstance) -> None:
        bindings = {"i": wlan.index}
        for key in ("wifi.ssid.object", "wifi.access_point.object"):
            object_path = self.resolver.first_candidate(key, context, bindings)
            if object_path is None or not (await self.store.probe(object_path)).exists:
                wlan.aligned = False
                wlan.alignment_note = f"{object_path or key} missing for {wlan.path}"
                return

        lower_layers_path = self.resolver.first_candidate("wifi.ssid.lower_layers", context, bindings)
        if lower_layers_path is None:
            return
        lower_layers = await self.store.read(lower_layers_path)
        if lower_layers.exists and lower_layers.value:
            references = _references(lower_layers.value)
            if references and wlan.path not in references:
                wlan.aligned = False
                wlan.alignment_note = (
                    f"{lower_layers_path} references {', '.join(references)}, not {wlan.path}"
                )

    @staticmethod
    def instances_for_band(wlans: List[WlanInstance], band: Band) -> List[WlanInstance]:
        return [w for w in wlans if w.band is band]
