"""Shared device snapshots for reconciler tests."""

import pytest

from ont_reconciler.models import DeviceIdentity
from ont_reconciler.store import InMemoryParameterStore


WLAN = "InternetGatewayDevice.LANDevice.1.WLANConfiguration"
WAN = "InternetGatewayDevice.WANDevice.1.WANConnectionDevice.1"
VOICE_LEGACY = "InternetGatewayDevice.Services.VoiceService.1.VoiceProfile.1"
VOICE_UNIFIED = "Device.Services.VoiceService.1.VoiceProfile.1"


def legacy_wlan(index, channel, possible, password_leaf="KeyPassphrase"):
    base = f"{WLAN}.{index}"
    return {
        f"{base}.Channel": channel,
        f"{base}.PossibleChannels": possible,
        f"{base}.SSID": f"factory-{index}",
        f"{base}.Enable": "1",
        f"{base}.{password_leaf}": "factorypass",
        f"{base}.BeaconType": "WPAand11i",
        f"{base}.WPAEncryptionModes": "TKIPandAESEncryption",
        f"{base}.WPAAuthenticationMode": "PSKAuthentication",
    }


def voice_parameters(root):
    return {
        f"{root}.SIP.ProxyServer": "",
        f"{root}.SIP.ProxyServerPort": "5060",
        f"{root}.SIP.RegistrarServer": "",
        f"{root}.SIP.RegistrarServerPort": "5060",
        f"{root}.Line.1.Enable": "Disabled",
        f"{root}.Line.1.SIP.AuthUserName": "",
        f"{root}.Line.1.SIP.AuthPassword": "",
        f"{root}.Line.1.SIP.URI": "",
    }


def make_legacy_zte_store(**kwargs):
    """ZTE F670L on the legacy model: flat KeyPassphrase, ZTE VLAN and optical extensions."""
    parameters = {
        "InternetGatewayDevice.DeviceInfo.Manufacturer": "ZTE",
        "InternetGatewayDevice.DeviceInfo.SoftwareVersion": "V9.0.10P1N12",
        f"{WAN}.WANPPPConnection.1.Enable": "0",
        f"{WAN}.WANPPPConnection.1.Username": "",
        f"{WAN}.WANPPPConnection.1.Password": "",
        f"{WAN}.WANPPPConnection.1.ConnectionType": "IP_Bridged",
        f"{WAN}.WANIPConnection.1.Enable": "1",
        f"{WAN}.WANIPConnection.1.ConnectionType": "IP_Routed",
        f"{WAN}.WANIPConnection.1.AddressingType": "DHCP",
        f"{WAN}.WANIPConnection.1.ExternalIPAddress": "100.64.1.20",
        f"{WAN}.X_ZTE-COM_VLANID": "0",
        "InternetGatewayDevice.WANDevice.1.X_ZTE-COM_GponInterfaceConfig.RxPower": "-20.5",
    }
    parameters.update(legacy_wlan(1, "6", "1-13"))
    parameters.update(legacy_wlan(5, "36", "36,40,44,48"))
    parameters.update(voice_parameters(VOICE_LEGACY))
    for index in (1, 2, 3):
        parameters[f"{WAN}.WANIPConnection.1.PortMapping.{index}.ExternalPort"] = str(8000 + index)
    parameters.update(kwargs.pop("parameters", {}))

    return InMemoryParameterStore(
        parameters=parameters,
        identity=kwargs.pop("identity", DeviceIdentity("ZTE Corporation", "F670L", "ZTEG00000001")),
        **kwargs
    )


def make_legacy_huawei_store(**kwargs):
    """Huawei HG8245 on the legacy model: nested PreSharedKey passphrase, Huawei VLAN extension."""
    parameters = {
        "InternetGatewayDevice.DeviceInfo.Manufacturer": "Huawei Technologies Co., Ltd",
        "InternetGatewayDevice.DeviceInfo.SoftwareVersion": "V5R019C10S125",
        f"{WAN}.WANPPPConnection.1.Enable": "0",
        f"{WAN}.WANPPPConnection.1.Username": "",
        f"{WAN}.WANPPPConnection.1.Password": "",
        f"{WAN}.WANPPPConnection.1.ConnectionType": "IP_Routed",
        f"{WAN}.X_HW_VLANMuxID": "0",
        f"{WAN}.X_HW_VLAN_CoS": "0",
    }
    parameters.update(legacy_wlan(1, "11", "1-13", password_leaf="PreSharedKey.1.KeyPassphrase"))
    parameters.update(kwargs.pop("parameters", {}))

    return InMemoryParameterStore(
        parameters=parameters,
        identity=kwargs.pop("identity", DeviceIdentity("Huawei Technologies Co., Ltd", "HG8245H", "48575443A1B2C3D4")),
        **kwargs
    )


def make_unified_nokia_store(radios=(("1", "2.4GHz"), ("2", "5GHz"), ("3", "6GHz")), **kwargs):
    """Nokia G-2425G-A on the unified model with index-aligned Radio/SSID/AccessPoint."""
    parameters = {
        "Device.DeviceInfo.Manufacturer": "Nokia",
        "Device.DeviceInfo.SoftwareVersion": "3FE49362IJHK46",
        "Device.PPP.Interface.1.Enable": False,
        "Device.PPP.Interface.1.Username": "",
        "Device.PPP.Interface.1.Password": "",
        "Device.PPP.Interface.1.Status": "Disconnected",
        "Device.IP.Interface.1.Enable": True,
        "Device.IP.Interface.1.IPv4Address.1.IPAddress": "100.64.2.30",
        "Device.X_ALU_COM.OntOpticalParam.RxPower": "-21.4",
    }
    for index, label in radios:
        parameters.update({
            f"Device.WiFi.Radio.{index}.OperatingFrequencyBand": label,
            f"Device.WiFi.Radio.{index}.Channel": 1,
            f"Device.WiFi.SSID.{index}.SSID": f"nokia-{index}",
            f"Device.WiFi.SSID.{index}.Enable": True,
            f"Device.WiFi.SSID.{index}.LowerLayers": f"Device.WiFi.Radio.{index}.",
            f"Device.WiFi.AccessPoint.{index}.Security.KeyPassphrase": "factorypass",
            f"Device.WiFi.AccessPoint.{index}.Security.ModeEnabled": "WPA2-Personal",
            f"Device.WiFi.AccessPoint.{index}.Security.MFPConfig": "Disabled",
        })
    parameters.update(voice_parameters(VOICE_UNIFIED))
    parameters.update(kwargs.pop("parameters", {}))

    return InMemoryParameterStore(
        parameters=parameters,
        objects=kwargs.pop("objects", ["Device.NAT.PortMapping"]),
        identity=kwargs.pop("identity", DeviceIdentity("Nokia", "G-2425G-A", "ALCLB0000001")),
        **kwargs
    )


@pytest.fixture
def zte_store():
    return make_legacy_zte_store()


@pytest.fixture
def huawei_store():
    return make_legacy_huawei_store()


@pytest.fixture
def nokia_store():
    return make_unified_nokia_store()


@pytest.fixture
def wifi_policy():
    return {
        "wifi": {
            "password": "SharedSecret1",
            "bands": {
                "2.4": {"ssid": "Home", "security": "wpa2"},
                "5": {"ssid": "Home-5G", "security": "wpa2-wpa3", "password": "FiveGHzOnly"},
                "6": {"ssid": "Home-6E", "security": "wpa2"},
            },
        }
    }
