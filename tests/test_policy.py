"""
Unit tests for policy document validation.
"""

import json

import pytest

from ont_reconciler.config import ReconciliationDefaults
from ont_reconciler.errors import PolicyError
from ont_reconciler.models import Band
from ont_reconciler.policy import (
    BandIntent, MigrationIntent, PolicyValidator, ReconciliationIntent, ValidationResult,
    VoipIntent, effective_security, parse_flag
)


@pytest.fixture
def validator():
    return PolicyValidator()


def fields(errors):
    return [(e.section, e.field_name) for e in errors]


class TestEffectiveSecurity:
    """Test band security overrides."""

    def test_6ghz_forces_strongest_mode(self):
        assert effective_security(Band.BAND_6, "wpa2") == "wpa3"
        assert effective_security(Band.BAND_6, "wpa2-wpa3") == "wpa3"

    def test_other_bands_keep_requested_mode(self):
        assert effective_security(Band.BAND_5, "wpa2") == "wpa2"
        assert effective_security(Band.BAND_2_4, "wpa2-wpa3") == "wpa2-wpa3"


class TestDocumentValidation:
    """Test document-level validation."""

    def test_empty_document(self, validator):
        intent, errors = validator.validate({})
        assert errors == []
        assert intent.sections() == ["tagging"]

    def test_json_string_document(self, validator):
        document = json.dumps({"wan": {"type": "dhcp"}})
        intent, errors = validator.validate(document)
        assert errors == []
        assert intent.wan.type == "dhcp"

    def test_invalid_json(self, validator):
        intent, errors = validator.validate("{nope")
        assert fields(errors) == [("document", None)]
        assert isinstance(intent, ReconciliationIntent)

    def test_non_mapping_document(self, validator):
        _, errors = validator.validate(["wifi"])
        assert fields(errors) == [("document", None)]

    def test_section_aliases_and_unknown_sections(self, validator):
        intent, result = validator.validate_document({
            "portForward": {"rules": []},
            "asOf": 12,
            "firewall": {},
        })
        assert intent.port_forward is not None
        assert intent.as_of == 12
        assert result.is_valid
        assert any("firewall" in w for w in result.warnings)

    def test_invalid_section_does_not_void_others(self, validator):
        """A broken wan section leaves the voip intent intact."""
        intent, errors = validator.validate({
            "wan": {"type": "pppoe", "username": "user"},
            "voip": {"server": "sip.example.net", "username": "1001", "password": "pw"},
        })
        assert intent.wan is None
        assert intent.voip == VoipIntent("sip.example.net", "1001", "pw", 5060, 5060)
        assert fields(errors) == [("wan", "password")]
        assert all(isinstance(e, PolicyError) for e in errors)

    @pytest.mark.parametrize("value", [-1, "12", 1.5, True])
    def test_invalid_as_of(self, validator, value):
        intent, errors = validator.validate({"as_of": value})
        assert intent.as_of == 0
        assert fields(errors) == [("as_of", None)]

    def test_correlation_id_propagates(self, validator):
        _, errors = validator.validate({"wan": {"type": "pon"}}, correlation_id="cid-7")
        assert errors[0].context.correlation_id == "cid-7"


class TestWifiValidation:
    """Test wifi section validation."""

    def test_valid_wifi(self, validator, wifi_policy):
        intent, errors = validator.validate(wifi_policy)

        assert errors == []
        assert intent.wifi.bands[Band.BAND_2_4] == BandIntent(Band.BAND_2_4, "Home", "SharedSecret1", "wpa2", True)
        assert intent.wifi.bands[Band.BAND_5].password == "FiveGHzOnly"
        assert intent.wifi.bands[Band.BAND_5].security == "wpa2-wpa3"

    def test_6ghz_security_override(self, validator, wifi_policy):
        """Requesting wpa2 on 6 GHz yields wpa3 and a warning."""
        intent, result = validator.validate_document(wifi_policy)

        assert result.is_valid
        assert intent.wifi.bands[Band.BAND_6].security == "wpa3"
        assert any("overridden" in w for w in result.warnings)

    def test_password_required(self, validator):
        intent, errors = validator.validate({"wifi": {"bands": {"5": {"ssid": "x"}}}})
        assert intent.wifi is None
        assert fields(errors) == [("wifi", "password")]

    def test_bands_required(self, validator):
        intent, errors = validator.validate({"wifi": {"password": "secret123"}})
        assert intent.wifi is None
        assert fields(errors) == [("wifi", "bands")]

    def test_band_without_ssid_is_skipped(self, validator):
        intent, result = validator.validate_document({
            "wifi": {"password": "secret123", "bands": {"2.4": {"ssid": "a"}, "5": {}}}
        })
        assert result.is_valid
        assert list(intent.wifi.bands) == [Band.BAND_2_4]
        assert any("no ssid" in w for w in result.warnings)

    def test_unknown_band_and_bad_security(self, validator):
        intent, errors = validator.validate({
            "wifi": {
                "password": "secret123",
                "bands": {
                    "7": {"ssid": "a"},
                    "5": {"ssid": "b", "security": "wep"},
                    "2.4": {"ssid": "c", "enabled": False},
                },
            }
        })
        assert fields(errors) == [("wifi", "bands.7"), ("wifi", "bands.5.security")]
        assert list(intent.wifi.bands) == [Band.BAND_2_4]
        assert intent.wifi.bands[Band.BAND_2_4].enabled is False

    @pytest.mark.parametrize("raw,expected", [("false", False), ("0", False), (0, False),
                                              ("true", True), (1, True), (True, True)])
    def test_enabled_flag_forms(self, validator, raw, expected):
        intent, errors = validator.validate({
            "wifi": {"password": "secret123", "bands": {"5": {"ssid": "b", "enabled": raw}}}
        })
        assert errors == []
        assert intent.wifi.bands[Band.BAND_5].enabled is expected

    def test_enabled_must_be_boolean(self, validator):
        intent, errors = validator.validate({
            "wifi": {"password": "secret123",
                     "bands": {"5": {"ssid": "b", "enabled": "off"}, "2.4": {"ssid": "a"}}}
        })
        assert fields(errors) == [("wifi", "bands.5.enabled")]
        assert list(intent.wifi.bands) == [Band.BAND_2_4]

    def test_numeric_band_labels(self, validator):
        """YAML turns 2.4 and 5 into numbers."""
        intent, errors = validator.validate({
            "wifi": {"password": "secret123", "bands": {2.4: {"ssid": "a"}, 5: {"ssid": "b"}}}
        })
        assert errors == []
        assert set(intent.wifi.bands) == {Band.BAND_2_4, Band.BAND_5}

    def test_default_security_from_configuration(self):
        validator = PolicyValidator(ReconciliationDefaults(wifi_security="wpa2-wpa3"))
        intent, _ = validator.validate({"wifi": {"password": "secret123", "bands": {"5": {"ssid": "b"}}}})
        assert intent.wifi.bands[Band.BAND_5].security == "wpa2-wpa3"


class TestWanValidation:
    """Test wan section validation."""

    def test_pppoe(self, validator):
        intent, errors = validator.validate({
            "wan": {"type": "PPPoE", "username": "user@isp", "password": "pw", "vlan": "100", "cos": 3}
        })
        assert errors == []
        assert (intent.wan.type, intent.wan.username, intent.wan.vlan, intent.wan.cos) == ("pppoe", "user@isp", 100, 3)

    def test_pppoe_requires_credentials(self, validator):
        intent, errors = validator.validate({"wan": {"type": "pppoe"}})
        assert intent.wan is None
        assert fields(errors) == [("wan", "username"), ("wan", "password")]

    def test_unknown_type(self, validator):
        intent, errors = validator.validate({"wan": {"type": "static"}})
        assert intent.wan is None
        assert fields(errors) == [("wan", "type")]

    def test_invalid_vlan_drops_only_vlan(self, validator):
        intent, errors = validator.validate({"wan": {"type": "dhcp", "vlan": 5000, "cos": 9}})
        assert intent.wan.type == "dhcp"
        assert intent.wan.vlan is None
        assert intent.wan.cos == 0
        assert fields(errors) == [("wan", "vlan"), ("wan", "cos")]

    def test_non_numeric_vlan(self, validator):
        intent, errors = validator.validate({"wan": {"type": "dhcp", "vlan": "ten"}})
        assert intent.wan.vlan is None
        assert fields(errors) == [("wan", "vlan")]


class TestVoipValidation:
    """Test voip section validation."""

    def test_registrar_port_defaults_to_port(self, validator):
        intent, _ = validator.validate({
            "voip": {"server": "sip.example.net", "username": "1001", "password": "pw", "port": 5070}
        })
        assert intent.voip.port == 5070
        assert intent.voip.registrar_port == 5070

    def test_explicit_registrar_port(self, validator):
        intent, _ = validator.validate({
            "voip": {"server": "sip.example.net", "username": "1001", "password": "pw", "registrarPort": 5080}
        })
        assert (intent.voip.port, intent.voip.registrar_port) == (5060, 5080)

    def test_required_fields(self, validator):
        intent, errors = validator.validate({"voip": {"server": "sip.example.net"}})
        assert intent.voip is None
        assert fields(errors) == [("voip", "username"), ("voip", "password")]

    def test_invalid_port(self, validator):
        intent, errors = validator.validate({
            "voip": {"server": "s", "username": "u", "password": "p", "port": 70000}
        })
        assert intent.voip is None
        assert fields(errors) == [("voip", "port")]


class TestPortForwardValidation:
    """Test port forward section validation."""

    def test_rules(self, validator):
        intent, errors = validator.validate({
            "port_forward": {
                "wanType": "PPP",
                "rules": [
                    {"externalPort": 8080, "internalPort": 80, "internalClient": "192.168.1.10",
                     "protocol": "udp", "description": "cam"},
                    {"external_port": "2222", "internal_port": "22", "internal_client": "192.168.1.11"},
                ],
            }
        })
        assert errors == []
        assert intent.port_forward.wan_type == "ppp"
        first, second = intent.port_forward.rules
        assert (first.external_port, first.protocol, first.description) == (8080, "UDP", "cam")
        assert (second.external_port, second.internal_port, second.protocol) == (2222, 22, "TCP")

    def test_incomplete_rule_is_dropped(self, validator):
        intent, errors = validator.validate({
            "port_forward": {"rules": [
                {"externalPort": 8080, "internalClient": "192.168.1.10"},
                {"externalPort": 443, "internalPort": 443, "internalClient": "192.168.1.12"},
            ]}
        })
        assert fields(errors) == [("port_forward", "rules[0].internalPort")]
        assert [r.external_port for r in intent.port_forward.rules] == [443]

    def test_invalid_wan_type(self, validator):
        intent, errors = validator.validate({"port_forward": {"wanType": "lte", "rules": []}})
        assert intent.port_forward is None
        assert fields(errors) == [("port_forward", "wanType")]

    def test_rules_must_be_list(self, validator):
        intent, errors = validator.validate({"port_forward": {"rules": {"a": 1}}})
        assert intent.port_forward is None
        assert fields(errors) == [("port_forward", "rules")]


class TestFlags:
    """Test boolean reading of policy switches."""

    @pytest.mark.parametrize("raw,expected", [
        (True, True), (False, False), ("true", True), ("FALSE", False), (" 1 ", True), (0, False),
        ("off", None), (2, None), (None, None),
    ])
    def test_parse_flag(self, raw, expected):
        assert parse_flag(raw) is expected


class TestMigrationValidation:
    """Test the migration section."""

    @pytest.mark.parametrize("value", [True, "true", {}, {"enabled": True}])
    def test_enabled_with_defaults(self, validator, value):
        intent, errors = validator.validate({"migration": value})
        assert errors == []
        assert intent.migration == MigrationIntent(periodic_inform_interval=300)
        assert intent.sections() == ["migration", "tagging"]

    @pytest.mark.parametrize("value", [False, {"enabled": "false"}])
    def test_disabled(self, validator, value):
        intent, errors = validator.validate({"migration": value})
        assert errors == []
        assert intent.migration is None

    def test_interval_override(self, validator):
        intent, _ = validator.validate({"Migration": {"periodicInformInterval": "600"}})
        assert intent.migration.periodic_inform_interval == 600

    @pytest.mark.parametrize("interval", [0, -5, "soon", True])
    def test_invalid_interval(self, validator, interval):
        intent, errors = validator.validate({"migration": {"periodic_inform_interval": interval}})
        assert intent.migration is None
        assert fields(errors) == [("migration", "periodicInformInterval")]

    def test_invalid_value(self, validator):
        intent, errors = validator.validate({"migration": "later"})
        assert intent.migration is None
        assert fields(errors) == [("migration", None)]


class TestOpticalAndTagging:
    """Test optical thresholds and tagging switches."""

    def test_default_thresholds(self, validator):
        intent, _ = validator.validate({"optical": {}})
        assert (intent.optical.warning, intent.optical.critical) == (-25.0, -28.0)

    def test_optical_true_enables_defaults(self, validator):
        intent, _ = validator.validate({"optical": True})
        assert intent.optical.warning == -25.0

    def test_numeric_overrides(self, validator):
        intent, result = validator.validate_document({"optical": {"thresholds": {"warning": -24, "critical": -27.5}}})
        assert (intent.optical.warning, intent.optical.critical) == (-24.0, -27.5)
        assert result.warnings == []

    def test_non_numeric_overrides_are_ignored(self, validator):
        intent, result = validator.validate_document({"optical": {"thresholds": {"warning": "-20", "critical": None}}})
        assert (intent.optical.warning, intent.optical.critical) == (-25.0, -28.0)
        assert result.is_valid
        assert len(result.warnings) == 2

    @pytest.mark.parametrize("value,expected", [(False, False), (True, True), ({"enabled": False}, False), ({}, True)])
    def test_tagging(self, validator, value, expected):
        intent, errors = validator.validate({"tagging": value})
        assert errors == []
        assert intent.tagging.enabled is expected

    def test_invalid_tagging(self, validator):
        intent, errors = validator.validate({"tagging": "yes"})
        assert intent.tagging.enabled is True
        assert fields(errors) == [("tagging", None)]


class TestValidationResult:
    """Test ValidationResult accumulation."""

    def test_merge(self):
        first = ValidationResult()
        second = ValidationResult()
        second.add_error(PolicyError("bad", section="wan"))
        second.add_warning("careful")

        first.merge(second)

        assert not first.is_valid
        assert len(first.errors) == 1
        assert first.warnings == ["careful"]
        assert "bad" in str(first)
