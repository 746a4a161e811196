"""Capability registry and vendor alias table.

Both tables are built once at start-up and shared read-only by every device
run. A capability key maps to an ordered tuple of path candidates; order is
resolution priority.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .errors import ConfigurationError
from .models import Band, DeviceContext, PathCandidate, SchemaGeneration


LEGACY = SchemaGeneration.LEGACY
UNIFIED = SchemaGeneration.UNIFIED

IGD = "InternetGatewayDevice"
LEGACY_WLAN = f"{IGD}.LANDevice.1.WLANConfiguration"
LEGACY_WAN_CONNECTION = f"{IGD}.WANDevice.1.WANConnectionDevice.1"

WIFI_BANDS = (Band.BAND_2_4, Band.BAND_5, Band.BAND_6)
WIFI_BAND_ATTRIBUTES = (
    "ssid", "enabled", "password", "security_mode", "mfp",
    "beacon_type", "encryption", "auth_mode",
)

PORT_MAPPING_FIELDS = (
    "PortMappingEnabled", "ExternalPort", "InternalPort", "InternalClient",
    "PortMappingProtocol", "PortMappingDescription",
)


@dataclass(frozen=True)
class VendorAlias:
    """Manufacturer substrings that identify one vendor tag."""
    tag: str
    match: Tuple[str, ...]


VENDOR_ALIASES: Tuple[VendorAlias, ...] = (
    VendorAlias("huawei", ("huawei",)),
    VendorAlias("zte", ("zte",)),
    VendorAlias("nokia", ("nokia", "alcl", "alu")),
    VendorAlias("fiberhome", ("fiberhome",)),
    VendorAlias("tplink", ("tp-link",)),
    VendorAlias("dasan", ("dasan",)),
)


def band_key(band: Band, attribute: str) -> str:
    """Capability key of a per-band WiFi attribute, e.g. ``wifi.band.5.ssid``."""
    return f"wifi.band.{band.value}.{attribute}"


def _c(template: str, vendor: Optional[str] = None,
       schema: Optional[SchemaGeneration] = None) -> PathCandidate:
    return PathCandidate(template=template, vendor_filter=vendor, schema_filter=schema)


def _wifi_band_entries() -> Dict[str, Tuple[PathCandidate, ...]]:
    per_attribute = {
        "ssid": (
            _c("Device.WiFi.SSID.{i}.SSID", schema=UNIFIED),
            _c(LEGACY_WLAN + ".{i}.SSID", schema=LEGACY),
        ),
        "enabled": (
            _c("Device.WiFi.SSID.{i}.Enable", schema=UNIFIED),
            _c(LEGACY_WLAN + ".{i}.Enable", schema=LEGACY),
        ),
        # unified security object, vendor-flat passphrase, nested PSK table
        "password": (
            _c("Device.WiFi.AccessPoint.{i}.Security.KeyPassphrase", schema=UNIFIED),
            _c(LEGACY_WLAN + ".{i}.KeyPassphrase", schema=LEGACY),
            _c(LEGACY_WLAN + ".{i}.PreSharedKey.1.KeyPassphrase", schema=LEGACY),
        ),
        "security_mode": (
            _c("Device.WiFi.AccessPoint.{i}.Security.ModeEnabled", schema=UNIFIED),
        ),
        "mfp": (
            _c("Device.WiFi.AccessPoint.{i}.Security.MFPConfig", schema=UNIFIED),
        ),
        "beacon_type": (
            _c(LEGACY_WLAN + ".{i}.BeaconType", schema=LEGACY),
        ),
        "encryption": (
            _c(LEGACY_WLAN + ".{i}.WPAEncryptionModes", schema=LEGACY),
        ),
        "auth_mode": (
            _c(LEGACY_WLAN + ".{i}.WPAAuthenticationMode", schema=LEGACY),
        ),
    }

    entries = {}
    for band in WIFI_BANDS:
        for attribute in WIFI_BAND_ATTRIBUTES:
            entries[band_key(band, attribute)] = per_attribute[attribute]
    return entries


def _voip_entries() -> Dict[str, Tuple[PathCandidate, ...]]:
    leaves = {
        "voip.proxy_server": "SIP.ProxyServer",
        "voip.proxy_port": "SIP.ProxyServerPort",
        "voip.registrar_server": "SIP.RegistrarServer",
        "voip.registrar_port": "SIP.RegistrarServerPort",
        "voip.line_enable": "Line.1.Enable",
        "voip.auth_username": "Line.1.SIP.AuthUserName",
        "voip.auth_password": "Line.1.SIP.AuthPassword",
        "voip.uri": "Line.1.SIP.URI",
    }
    return {
        key: tuple(
            _c(f"{schema.root}.Services.VoiceService.1.VoiceProfile.1.{leaf}", schema=schema)
            for schema in (UNIFIED, LEGACY)
        )
        for key, leaf in leaves.items()
    }


def _builtin_entries() -> Dict[str, Tuple[PathCandidate, ...]]:
    entries: Dict[str, Tuple[PathCandidate, ...]] = {
        # identity
        "device.identity.unified": (_c("Device.DeviceInfo.Manufacturer"),),
        "device.software_version": (
            _c("Device.DeviceInfo.SoftwareVersion"),
            _c(f"{IGD}.DeviceInfo.SoftwareVersion"),
        ),
        "device.hardware_version": (
            _c("Device.DeviceInfo.HardwareVersion"),
            _c(f"{IGD}.DeviceInfo.HardwareVersion"),
        ),

        # management server
        "management.periodic_inform_enable": (
            _c("Device.ManagementServer.PeriodicInformEnable", schema=UNIFIED),
            _c(f"{IGD}.ManagementServer.PeriodicInformEnable", schema=LEGACY),
        ),
        "management.periodic_inform_interval": (
            _c("Device.ManagementServer.PeriodicInformInterval", schema=UNIFIED),
            _c(f"{IGD}.ManagementServer.PeriodicInformInterval", schema=LEGACY),
        ),

        # WLAN collections and per-instance metadata
        "wifi.collection": (
            _c("Device.WiFi.Radio", schema=UNIFIED),
            _c(LEGACY_WLAN, schema=LEGACY),
        ),
        "wifi.radio.channel": (
            _c("Device.WiFi.Radio.{i}.Channel", schema=UNIFIED),
            _c(LEGACY_WLAN + ".{i}.Channel", schema=LEGACY),
        ),
        "wifi.radio.possible_channels": (
            _c("Device.WiFi.Radio.{i}.PossibleChannels", schema=UNIFIED),
            _c(LEGACY_WLAN + ".{i}.PossibleChannels", schema=LEGACY),
        ),
        "wifi.radio.frequency_band": (
            _c("Device.WiFi.Radio.{i}.OperatingFrequencyBand", schema=UNIFIED),
        ),
        "wifi.ssid.object": (_c("Device.WiFi.SSID.{i}", schema=UNIFIED),),
        "wifi.ssid.lower_layers": (_c("Device.WiFi.SSID.{i}.LowerLayers", schema=UNIFIED),),
        "wifi.access_point.object": (_c("Device.WiFi.AccessPoint.{i}", schema=UNIFIED),),

        # WAN
        "wan.pppoe.enable": (
            _c("Device.PPP.Interface.1.Enable", schema=UNIFIED),
            _c(LEGACY_WAN_CONNECTION + ".WANPPPConnection.1.Enable", schema=LEGACY),
        ),
        "wan.pppoe.username": (
            _c("Device.PPP.Interface.1.Username", schema=UNIFIED),
            _c(LEGACY_WAN_CONNECTION + ".WANPPPConnection.1.Username", schema=LEGACY),
        ),
        "wan.pppoe.password": (
            _c("Device.PPP.Interface.1.Password", schema=UNIFIED),
            _c(LEGACY_WAN_CONNECTION + ".WANPPPConnection.1.Password", schema=LEGACY),
        ),
        "wan.pppoe.connection_type": (
            _c(LEGACY_WAN_CONNECTION + ".WANPPPConnection.1.ConnectionType", schema=LEGACY),
        ),
        "wan.dhcp.enable": (
            _c("Device.IP.Interface.1.Enable", schema=UNIFIED),
            _c(LEGACY_WAN_CONNECTION + ".WANIPConnection.1.Enable", schema=LEGACY),
        ),
        "wan.dhcp.connection_type": (
            _c(LEGACY_WAN_CONNECTION + ".WANIPConnection.1.ConnectionType", schema=LEGACY),
        ),
        "wan.dhcp.addressing_type": (
            _c(LEGACY_WAN_CONNECTION + ".WANIPConnection.1.AddressingType", schema=LEGACY),
        ),
        "wan.vlan.id": (
            _c(LEGACY_WAN_CONNECTION + ".X_HW_VLANMuxID", vendor="huawei", schema=LEGACY),
            _c(LEGACY_WAN_CONNECTION + ".X_ZTE-COM_VLANID", vendor="zte", schema=LEGACY),
        ),
        "wan.vlan.cos": (
            _c(LEGACY_WAN_CONNECTION + ".X_HW_VLAN_CoS", vendor="huawei", schema=LEGACY),
        ),

        # read-only WAN status
        "wan.ip_address": (
            _c("Device.IP.Interface.1.IPv4Address.1.IPAddress", schema=UNIFIED),
            _c(LEGACY_WAN_CONNECTION + ".WANPPPConnection.1.ExternalIPAddress", schema=LEGACY),
            _c(LEGACY_WAN_CONNECTION + ".WANIPConnection.1.ExternalIPAddress", schema=LEGACY),
        ),
        "wan.status": (
            _c("Device.PPP.Interface.1.Status", schema=UNIFIED),
            _c(LEGACY_WAN_CONNECTION + ".WANPPPConnection.1.ConnectionStatus", schema=LEGACY),
            _c(LEGACY_WAN_CONNECTION + ".WANIPConnection.1.ConnectionStatus", schema=LEGACY),
        ),

        # port mapping collection; {wan_connection} is WANIPConnection or WANPPPConnection
        "nat.port_mapping": (
            _c("Device.NAT.PortMapping", schema=UNIFIED),
            _c(LEGACY_WAN_CONNECTION + ".{wan_connection}.1.PortMapping", schema=LEGACY),
        ),

        # optical diagnostics
        "optical.rx_power": (
            _c(f"{IGD}.WANDevice.1.X_ZTE-COM_GponInterfaceConfig.RxPower", vendor="zte"),
            _c(f"{IGD}.X_ALU_COM.OntOpticalParam.RxPower", vendor="nokia", schema=LEGACY),
            _c("Device.X_ALU_COM.OntOpticalParam.RxPower", vendor="nokia"),
        ),
    }

    entries.update(_wifi_band_entries())
    entries.update(_voip_entries())
    return entries


class CapabilityRegistry:
    """Immutable mapping of capability keys to prioritized path candidates."""

    def __init__(
        self,
        entries: Mapping[str, Sequence[PathCandidate]],
        aliases: Sequence[VendorAlias] = VENDOR_ALIASES
    ):
        self._entries = MappingProxyType({key: tuple(candidates) for key, candidates in entries.items()})
        self._aliases = tuple(aliases)

    @property
    def aliases(self) -> Tuple[VendorAlias, ...]:
        return self._aliases

    def keys(self) -> List[str]:
        return sorted(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def candidates(self, key: str) -> Tuple[PathCandidate, ...]:
        """All candidates of a capability in priority order.

        Raises:
            KeyError: If the capability is not registered
        """
        if key not in self._entries:
            raise KeyError(f"Unknown capability: {key}")
        return self._entries[key]

    def candidates_for(self, key: str, context: DeviceContext) -> Tuple[PathCandidate, ...]:
        """Candidates of a capability eligible for a device context, in priority order."""
        return tuple(c for c in self.candidates(key) if c.applies_to(context))

    def extended(
        self,
        extra: Optional[Mapping[str, Sequence[PathCandidate]]] = None,
        aliases: Optional[Sequence[VendorAlias]] = None
    ) -> 'CapabilityRegistry':
        """Return a new registry with extra candidates appended after existing ones."""
        merged: Dict[str, Tuple[PathCandidate, ...]] = dict(self._entries)
        for key, candidates in (extra or {}).items():
            merged[key] = merged.get(key, ()) + tuple(candidates)
        return CapabilityRegistry(merged, aliases if aliases is not None else self._aliases)

    @staticmethod
    def candidates_from_dict(data: Mapping[str, Iterable[Mapping[str, Any]]]) -> Dict[str, Tuple[PathCandidate, ...]]:
        """Parse ``{key: [{template, vendor?, schema?}]}`` into path candidates."""
        parsed: Dict[str, Tuple[PathCandidate, ...]] = {}
        for key, raw_candidates in data.items():
            candidates = []
            for raw in raw_candidates or []:
                if not isinstance(raw, Mapping) or not raw.get("template"):
                    raise ConfigurationError(
                        f"Capability '{key}' candidate needs a template",
                        config_key=f"extra_capabilities.{key}",
                        actual_value=raw
                    )
                schema = raw.get("schema")
                try:
                    schema_filter = SchemaGeneration(schema) if schema else None
                except ValueError as e:
                    raise ConfigurationError(
                        f"Capability '{key}' has unknown schema '{schema}'",
                        config_key=f"extra_capabilities.{key}.schema",
                        actual_value=schema,
                        cause=e
                    )
                candidates.append(PathCandidate(
                    template=str(raw["template"]),
                    vendor_filter=raw.get("vendor"),
                    schema_filter=schema_filter
                ))
            parsed[key] = tuple(candidates)
        return parsed

    def to_dict(self) -> Dict[str, List[Dict[str, Optional[str]]]]:
        return {
            key: [
                {
                    "template": c.template,
                    "vendor": c.vendor_filter,
                    "schema": c.schema_filter.value if c.schema_filter else None,
                }
                for c in candidates
            ]
            for key, candidates in sorted(self._entries.items())
        }


def aliases_from_config(raw_aliases: Iterable[Mapping[str, Any]]) -> Tuple[VendorAlias, ...]:
    """Parse an ordered ``[{tag, match: [...]}]`` list into vendor aliases."""
    aliases = []
    for raw in raw_aliases:
        tag = raw.get("tag") if isinstance(raw, Mapping) else None
        match = raw.get("match") if isinstance(raw, Mapping) else None
        if not tag or not match:
            raise ConfigurationError(
                "Vendor alias needs a tag and a non-empty match list",
                config_key="vendor_aliases",
                actual_value=raw
            )
        if isinstance(match, str):
            match = [match]
        aliases.append(VendorAlias(tag=str(tag).lower(), match=tuple(str(m).lower() for m in match)))
    return tuple(aliases)


_DEFAULT_REGISTRY: Optional[CapabilityRegistry] = None


def default_registry() -> CapabilityRegistry:
    """The built-in registry, created on first use."""
    global _DEFAULT_REGISTRY
    if _DEFAULT_REGISTRY is None:
        _DEFAULT_REGISTRY = CapabilityRegistry(_builtin_entries(), VENDOR_ALIASES)
    return _DEFAULT_REGISTRY
