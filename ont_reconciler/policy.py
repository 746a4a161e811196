"""Policy validation: intent documents to a typed ReconciliationIntent tree."""

import json
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .config import ReconciliationDefaults
from .errors import ErrorContext, PolicyError
from .logging import get_logger
from .models import Band


SECURITY_MODES = ("wpa2", "wpa2-wpa3", "wpa3")
STRONGEST_SECURITY = "wpa3"
WAN_TYPES = ("pppoe", "dhcp")
WAN_CONNECTION_TYPES = ("ip", "ppp")
PERIODIC_INFORM_INTERVAL = 300


def effective_security(band: Band, requested: str) -> str:
    """Security mode actually applied to a band; 6 GHz is always the strongest mode."""
    return STRONGEST_SECURITY if band is Band.BAND_6 else requested


def parse_flag(value: Any) -> Optional[bool]:
    """Boolean reading of true/false, 1/0 and their string forms; None otherwise."""
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true"):
        return True
    if text in ("0", "false"):
        return False
    return None


SECTION_ALIASES = {
    "wifi": "wifi",
    "wan": "wan",
    "voip": "voip",
    "portfwd": "port_forward",
    "portforward": "port_forward",
    "optical": "optical",
    "migration": "migration",
    "tagging": "tagging",
    "asof": "as_of",
}


@dataclass
class BandIntent:
    band: Band
    ssid: str
    password: str
    security: str = "wpa2"
    enabled: bool = True


@dataclass
class WifiIntent:
    bands: Dict[Band, BandIntent] = field(default_factory=dict)


@dataclass
class WanIntent:
    type: str
    username: Optional[str] = None
    password: Optional[str] = None
    vlan: Optional[int] = None
    cos: int = 0


@dataclass
class VoipIntent:
    server: str
    username: str
    password: str
    port: int = 5060
    registrar_port: Optional[int] = None

    def __post_init__(self):
        if self.registrar_port is None:
            self.registrar_port = self.port


@dataclass
class PortForwardRule:
    external_port: int
    internal_port: int
    internal_client: str
    protocol: str = "TCP"
    description: str = ""


@dataclass
class PortForwardIntent:
    rules: List[PortForwardRule] = field(default_factory=list)
    wan_type: str = "ip"


@dataclass
class OpticalIntent:
    warning: float = -25.0
    critical: float = -28.0


@dataclass
class MigrationIntent:
    periodic_inform_interval: int = PERIODIC_INFORM_INTERVAL


@dataclass
class TaggingIntent:
    enabled: bool = True


@dataclass
class ReconciliationIntent:
    """Validated desired state of one device run. Read-only during reconciliation."""
    wifi: Optional[WifiIntent] = None
    wan: Optional[WanIntent] = None
    voip: Optional[VoipIntent] = None
    port_forward: Optional[PortForwardIntent] = None
    optical: Optional[OpticalIntent] = None
    migration: Optional[MigrationIntent] = None
    tagging: TaggingIntent = field(default_factory=TaggingIntent)
    as_of: int = 0

    def sections(self) -> List[str]:
        """Names of the configured intent sections."""
        names = [n for n in ("wifi", "wan", "voip", "port_forward", "optical", "migration")
                 if getattr(self, n) is not None]
        if self.tagging.enabled:
            names.append("tagging")
        return names


class ValidationResult:
    """Container for policy errors and warnings gathered during validation."""

    def __init__(self):
        self.is_valid: bool = True
        self.errors: List[PolicyError] = []
        self.warnings: List[str] = []

    def add_error(self, error: PolicyError):
        """Add an error and mark validation as failed."""
        self.errors.append(error)
        self.is_valid = False

    def add_warning(self, message: str):
        self.warnings.append(message)

    def merge(self, other: 'ValidationResult'):
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        if not other.is_valid:
            self.is_valid = False

    def __str__(self) -> str:
        result = f"Valid: {self.is_valid}"
        if self.errors:
            result += f"\nErrors: {', '.join(e.message for e in self.errors)}"
        if self.warnings:
            result += f"\nWarnings: {', '.join(self.warnings)}"
        return result


def _get(data: Mapping[str, Any], *names: str) -> Any:
    """First present key among camelCase/snake_case spellings."""
    for name in names:
        if name in data and data[name] is not None:
            return data[name]
    return None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and not math.isnan(value)


class PolicyValidator:
    """Validates intent documents and applies documented defaults.

    A missing or invalid field voids only the intent depending on it; the
    rest of the document still produces intents.
    """

    def __init__(self, defaults: Optional[ReconciliationDefaults] = None):
        self.defaults = defaults or ReconciliationDefaults()
        self.logger = get_logger("policy")

    def validate(self, document: Any, correlation_id: Optional[str] = None) -> Tuple[ReconciliationIntent, List[PolicyError]]:
        """Validate a document, returning the intent tree and the policy errors."""
        intent, result = self.validate_document(document, correlation_id)
        return intent, result.errors

    def validate_document(
        self,
        document: Any,
        correlation_id: Optional[str] = None
    ) -> Tuple[ReconciliationIntent, ValidationResult]:
        result = ValidationResult()
        intent = ReconciliationIntent()

        if isinstance(document, (str, bytes)):
            try:
                document = json.loads(document)
            except json.JSONDecodeError as e:
                result.add_error(self._error("Policy document is not valid JSON", "document", cause=e,
                                             correlation_id=correlation_id))
                return intent, result

        if not isinstance(document, Mapping):
            result.add_error(self._error("Policy document must be a mapping", "document",
                                         correlation_id=correlation_id))
            return intent, result

        sections: Dict[str, Any] = {}
        for raw_key, value in document.items():
            key = SECTION_ALIASES.get(str(raw_key).lower().replace("_", "").replace("-", ""))
            if key is None:
                result.add_warning(f"Ignoring unknown policy section '{raw_key}'")
                continue
            sections[key] = value

        handlers = (
            ("wifi", self._validate_wifi),
            ("wan", self._validate_wan),
            ("voip", self._validate_voip),
            ("port_forward", self._validate_port_forward),
            ("optical", self._validate_optical),
            ("migration", self._validate_migration),
        )
        for name, handler in handlers:
            if name not in sections:
                continue
            section_result = ValidationResult()
            setattr(intent, name, handler(sections[name], section_result, correlation_id))
            self.logger.log_policy(
                f"Validated policy section '{name}'" + ("" if section_result.is_valid else " with errors"),
                name, len(section_result.errors), section_result.is_valid,
                correlation_id=correlation_id
            )
            result.merge(section_result)

        if "tagging" in sections:
            intent.tagging = self._validate_tagging(sections["tagging"], result, correlation_id)
        if "as_of" in sections:
            intent.as_of = self._validate_as_of(sections["as_of"], result, correlation_id)

        return intent, result

    def _error(self, message: str, section: str, field_name: Optional[str] = None,
               cause: Optional[Exception] = None, correlation_id: Optional[str] = None) -> PolicyError:
        return PolicyError(
            message,
            section=section,
            field_name=field_name,
            context=ErrorContext(operation="validate_policy", component="policy",
                                 correlation_id=correlation_id),
            cause=cause
        )

    def _port(self, value: Any, section: str, field_name: str, result: ValidationResult,
              correlation_id: Optional[str]) -> Optional[int]:
        try:
            port = int(value)
        except (TypeError, ValueError) as e:
            result.add_error(self._error(f"{section}.{field_name} must be a port number, got {value!r}",
                                         section, field_name, cause=e, correlation_id=correlation_id))
            return None
        if not 1 <= port <= 65535:
            result.add_error(self._error(f"{section}.{field_name} out of range: {port}",
                                         section, field_name, correlation_id=correlation_id))
            return None
        return port

    def _validate_wifi(self, data: Any, result: ValidationResult,
                       correlation_id: Optional[str]) -> Optional[WifiIntent]:
        if not isinstance(data, Mapping):
            result.add_error(self._error("wifi section must be a mapping", "wifi", correlation_id=correlation_id))
            return None

        shared_password = data.get("password")
        bands = data.get("bands")
        if not shared_password:
            result.add_error(self._error("wifi.password is required", "wifi", "password",
                                         correlation_id=correlation_id))
        if not bands:
            result.add_error(self._error("wifi.bands is required", "wifi", "bands",
                                         correlation_id=correlation_id))
        elif not isinstance(bands, Mapping):
            result.add_error(self._error("wifi.bands must be a mapping of band label to settings",
                                         "wifi", "bands", correlation_id=correlation_id))
        if not result.is_valid:
            return None

        intent = WifiIntent()
        for label, band_data in bands.items():
            field_name = f"bands.{label}"
            try:
                band = Band.from_label(str(label))
            except ValueError as e:
                result.add_error(self._error(f"Unknown WiFi band '{label}'", "wifi", field_name,
                                             cause=e, correlation_id=correlation_id))
                continue
            if not isinstance(band_data, Mapping):
                result.add_error(self._error(f"wifi.{field_name} must be a mapping", "wifi", field_name,
                                             correlation_id=correlation_id))
                continue
            if not band_data.get("ssid"):
                result.add_warning(f"wifi.{field_name} has no ssid, band skipped")
                continue

            requested = band_data.get("security") or self.defaults.wifi_security
            if band is Band.BAND_6:
                if requested != STRONGEST_SECURITY:
                    result.add_warning(
                        f"wifi.{field_name}.security '{requested}' overridden to '{STRONGEST_SECURITY}'"
                    )
                security = effective_security(band, requested)
            elif requested not in SECURITY_MODES:
                result.add_error(self._error(
                    f"wifi.{field_name}.security must be one of {', '.join(SECURITY_MODES)}",
                    "wifi", f"{field_name}.security", correlation_id=correlation_id
                ))
                continue
            else:
                security = requested

            enabled = True
            if band_data.get("enabled") is not None:
                enabled = parse_flag(band_data["enabled"])
                if enabled is None:
                    result.add_error(self._error(
                        f"wifi.{field_name}.enabled must be a boolean, got {band_data['enabled']!r}",
                        "wifi", f"{field_name}.enabled", correlation_id=correlation_id
                    ))
                    continue

            intent.bands[band] = BandIntent(
                band=band,
                ssid=str(band_data["ssid"]),
                password=str(band_data.get("password") or shared_password),
                security=security,
                enabled=enabled
            )

        return intent

    def _validate_wan(self, data: Any, result: ValidationResult,
                      correlation_id: Optional[str]) -> Optional[WanIntent]:
        if not isinstance(data, Mapping):
            result.add_error(self._error("wan section must be a mapping", "wan", correlation_id=correlation_id))
            return None

        wan_type = str(data.get("type") or "").lower()
        if wan_type not in WAN_TYPES:
            result.add_error(self._error(f"Unknown WAN type: {data.get('type')!r}", "wan", "type",
                                         correlation_id=correlation_id))
            return None

        intent = WanIntent(type=wan_type)
        if wan_type == "pppoe":
            for name in ("username", "password"):
                if not data.get(name):
                    result.add_error(self._error(f"wan.{name} is required for PPPoE", "wan", name,
                                                 correlation_id=correlation_id))
            if not result.is_valid:
                return None
            intent.username = str(data["username"])
            intent.password = str(data["password"])

        if data.get("vlan") is not None:
            try:
                intent.vlan = int(data["vlan"])
            except (TypeError, ValueError) as e:
                result.add_error(self._error(f"wan.vlan must be an integer, got {data['vlan']!r}",
                                             "wan", "vlan", cause=e, correlation_id=correlation_id))
            if intent.vlan is not None and not 1 <= intent.vlan <= 4094:
                result.add_error(self._error(f"wan.vlan out of range: {intent.vlan}", "wan", "vlan",
                                             correlation_id=correlation_id))
                intent.vlan = None

        if data.get("cos") is not None:
            try:
                cos = int(data["cos"])
            except (TypeError, ValueError) as e:
                result.add_error(self._error(f"wan.cos must be an integer, got {data['cos']!r}",
                                             "wan", "cos", cause=e, correlation_id=correlation_id))
            else:
                if 0 <= cos <= 7:
                    intent.cos = cos
                else:
                    result.add_error(self._error(f"wan.cos out of range: {cos}", "wan", "cos",
                                                 correlation_id=correlation_id))

        return intent

    def _validate_voip(self, data: Any, result: ValidationResult,
                       correlation_id: Optional[str]) -> Optional[VoipIntent]:
        if not isinstance(data, Mapping):
            result.add_error(self._error("voip section must be a mapping", "voip", correlation_id=correlation_id))
            return None

        for name in ("server", "username", "password"):
            if not data.get(name):
                result.add_error(self._error(f"voip.{name} is required", "voip", name,
                                             correlation_id=correlation_id))
        if not result.is_valid:
            return None

        port = self.defaults.sip_port
        if data.get("port") is not None:
            port = self._port(data["port"], "voip", "port", result, correlation_id)
        registrar_raw = _get(data, "registrarPort", "registrar_port")
        registrar_port = port
        if registrar_raw is not None:
            registrar_port = self._port(registrar_raw, "voip", "registrarPort", result, correlation_id)
        if port is None or registrar_port is None:
            return None

        return VoipIntent(
            server=str(data["server"]),
            username=str(data["username"]),
            password=str(data["password"]),
            port=port,
            registrar_port=registrar_port
        )

    def _validate_port_forward(self, data: Any, result: ValidationResult,
                               correlation_id: Optional[str]) -> Optional[PortForwardIntent]:
        if not isinstance(data, Mapping):
            result.add_error(self._error("port_forward section must be a mapping", "port_forward",
                                         correlation_id=correlation_id))
            return None

        wan_type = str(_get(data, "wanType", "wan_type") or "ip").lower()
        if wan_type not in WAN_CONNECTION_TYPES:
            result.add_error(self._error(f"port_forward.wanType must be 'ip' or 'ppp', got {wan_type!r}",
                                         "port_forward", "wanType", correlation_id=correlation_id))
            return None

        rules = data.get("rules")
        if not isinstance(rules, list):
            result.add_error(self._error("port_forward.rules must be a list", "port_forward", "rules",
                                         correlation_id=correlation_id))
            return None

        intent = PortForwardIntent(wan_type=wan_type)
        for position, rule in enumerate(rules):
            field_prefix = f"rules[{position}]"
            if not isinstance(rule, Mapping):
                result.add_error(self._error(f"port_forward.{field_prefix} must be a mapping",
                                             "port_forward", field_prefix, correlation_id=correlation_id))
                continue

            external = _get(rule, "externalPort", "external_port")
            internal = _get(rule, "internalPort", "internal_port")
            client = _get(rule, "internalClient", "internal_client")
            missing = [name for name, value in (("externalPort", external), ("internalPort", internal),
                                                ("internalClient", client)) if value in (None, "")]
            if missing:
                for name in missing:
                    result.add_error(self._error(f"port_forward.{field_prefix}.{name} is required",
                                                 "port_forward", f"{field_prefix}.{name}",
                                                 correlation_id=correlation_id))
                continue

            external_port = self._port(external, "port_forward", f"{field_prefix}.externalPort",
                                       result, correlation_id)
            internal_port = self._port(internal, "port_forward", f"{field_prefix}.internalPort",
                                       result, correlation_id)
            if external_port is None or internal_port is None:
                continue

            intent.rules.append(PortForwardRule(
                external_port=external_port,
                internal_port=internal_port,
                internal_client=str(client),
                protocol=str(rule.get("protocol") or self.defaults.port_forward_protocol).upper(),
                description=str(rule.get("description") or "")
            ))

        return intent

    def _validate_optical(self, data: Any, result: ValidationResult,
                          correlation_id: Optional[str]) -> Optional[OpticalIntent]:
        intent = OpticalIntent(
            warning=self.defaults.optical_warning,
            critical=self.defaults.optical_critical
        )
        if data is None or data is True:
            return intent
        if not isinstance(data, Mapping):
            result.add_error(self._error("optical section must be a mapping", "optical",
                                         correlation_id=correlation_id))
            return None

        thresholds = data.get("thresholds") or {}
        if not isinstance(thresholds, Mapping):
            result.add_warning("optical.thresholds is not a mapping, defaults used")
            return intent

        # only numeric overrides are honoured
        for name in ("warning", "critical"):
            if name not in thresholds:
                continue
            if _is_number(thresholds[name]):
                setattr(intent, name, float(thresholds[name]))
            else:
                result.add_warning(f"optical.thresholds.{name} is not numeric, default kept")

        if intent.critical > intent.warning:
            result.add_warning(
                f"optical critical threshold {intent.critical} is above warning threshold {intent.warning}"
            )
        return intent

    def _validate_migration(self, data: Any, result: ValidationResult,
                            correlation_id: Optional[str]) -> Optional[MigrationIntent]:
        """Accepts ``true``/``false`` or a mapping with ``enabled`` and ``periodicInformInterval``."""
        if data is None:
            return None
        if not isinstance(data, Mapping):
            enabled = parse_flag(data)
            if enabled is None:
                result.add_error(self._error("migration must be a boolean or a mapping", "migration",
                                             correlation_id=correlation_id))
                return None
            return MigrationIntent() if enabled else None

        if data.get("enabled") is not None:
            enabled = parse_flag(data["enabled"])
            if enabled is None:
                result.add_error(self._error(f"migration.enabled must be a boolean, got {data['enabled']!r}",
                                             "migration", "enabled", correlation_id=correlation_id))
                return None
            if not enabled:
                return None

        intent = MigrationIntent()
        raw = _get(data, "periodicInformInterval", "periodic_inform_interval")
        if raw is None:
            return intent
        try:
            interval = 0 if isinstance(raw, bool) else int(raw)
        except (TypeError, ValueError):
            interval = 0
        if interval <= 0:
            result.add_error(self._error(f"migration.periodicInformInterval must be a positive integer, got {raw!r}",
                                         "migration", "periodicInformInterval", correlation_id=correlation_id))
            return None
        intent.periodic_inform_interval = interval
        return intent

    def _validate_tagging(self, data: Any, result: ValidationResult,
                          correlation_id: Optional[str]) -> TaggingIntent:
        if isinstance(data, Mapping):
            data = data.get("enabled", True)
        enabled = parse_flag(data)
        if enabled is None:
            result.add_error(self._error("tagging must be a boolean or a mapping", "tagging",
                                         correlation_id=correlation_id))
            return TaggingIntent()
        return TaggingIntent(enabled=enabled)

    def _validate_as_of(self, data: Any, result: ValidationResult,
                        correlation_id: Optional[str]) -> int:
        if isinstance(data, int) and not isinstance(data, bool) and data >= 0:
            return data
        result.add_error(self._error(f"as_of must be a non-negative integer, got {data!r}", "as_of",
                                     correlation_id=correlation_id))
        return 0
